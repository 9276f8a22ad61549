import logging
from contextlib import asynccontextmanager

import uvicorn
from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from core.auth import fastapi_users, auth_backend
from core.config import settings
from core.errors import AppError
from core.logging_config import configure_logging
from db.database import create_db_and_tables
from routers.inventory import router as inventory_router
from routers.invoices import router as invoices_router
from routers.purchase_orders import router as purchase_orders_router
from routers.transfers import router as transfers_router
from schemas.users import UserRead, UserCreate, UserUpdate

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    configure_logging(settings)
    await create_db_and_tables()
    logger.info("Repair shop API started")
    yield


app = FastAPI(
    title="Repair Shop API",
    description="Inventory, invoicing and purchasing for repair shops",
    version="0.1.0",
    docs_url="/docs",
    redoc_url="/redoc",
    lifespan=lifespan,
)

app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AppError)
async def app_error_handler(request: Request, exc: AppError):
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message})


# Authentication routes (fastapi-users)
app.include_router(fastapi_users.get_auth_router(auth_backend), prefix="/auth/jwt", tags=["auth"],)
app.include_router(fastapi_users.get_register_router(UserRead, UserCreate), prefix="/auth", tags=["auth"])
app.include_router(fastapi_users.get_users_router(UserRead, UserUpdate), prefix="/users", tags=["users"])

# Inventory routes; transfers first so /inventory/transfers is not shadowed
app.include_router(transfers_router, prefix="/inventory/transfers", tags=["transfers"])
app.include_router(inventory_router, prefix="/inventory", tags=["inventory"])

# Billing and purchasing routes
app.include_router(invoices_router, prefix="/invoices", tags=["invoices"])
app.include_router(purchase_orders_router, prefix="/purchase-orders", tags=["purchase-orders"])

if __name__ == "__main__":
    uvicorn.run("main:app", host="0.0.0.0", port=8000, reload=True)
