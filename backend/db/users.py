from fastapi_users.db import SQLAlchemyBaseUserTableUUID
from sqlalchemy import Column, ForeignKey, String, Uuid
from sqlalchemy.orm import relationship
from .database import Base


class User(SQLAlchemyBaseUserTableUUID, Base):
    __tablename__ = "users"

    company_id = Column(Uuid, ForeignKey("companies.id", ondelete="CASCADE"), nullable=True, index=True)
    current_location_id = Column(Uuid, ForeignKey("locations.id", ondelete="SET NULL"), nullable=True)
    first_name = Column(String, nullable=True)
    last_name = Column(String, nullable=True)

    company = relationship("Company")
    current_location = relationship("Location")

