"""
Status enums and their allowed transitions.

Every status change in the services goes through `ensure_transition`, so an
invalid move is rejected in one place with a message naming both states.
"""

from enum import Enum
from typing import Dict, FrozenSet, Mapping, Union

from core.errors import BadRequestError


class InvoiceStatus(str, Enum):
    DRAFT = "draft"
    ISSUED = "issued"
    PAID = "paid"
    OVERDUE = "overdue"
    CANCELLED = "cancelled"


class PurchaseOrderStatus(str, Enum):
    DRAFT = "draft"
    ORDERED = "ordered"
    RECEIVED = "received"
    CANCELLED = "cancelled"


class TransferStatus(str, Enum):
    PENDING = "pending"
    COMPLETED = "completed"
    CANCELLED = "cancelled"


class InvoiceItemType(str, Enum):
    PART = "part"
    SERVICE = "service"
    OTHER = "other"


StatusEnum = Union[InvoiceStatus, PurchaseOrderStatus, TransferStatus]


INVOICE_TRANSITIONS: Dict[InvoiceStatus, FrozenSet[InvoiceStatus]] = {
    InvoiceStatus.DRAFT: frozenset({InvoiceStatus.ISSUED, InvoiceStatus.CANCELLED}),
    InvoiceStatus.ISSUED: frozenset({InvoiceStatus.PAID, InvoiceStatus.OVERDUE, InvoiceStatus.CANCELLED}),
    InvoiceStatus.OVERDUE: frozenset({InvoiceStatus.PAID, InvoiceStatus.CANCELLED}),
    InvoiceStatus.PAID: frozenset(),
    InvoiceStatus.CANCELLED: frozenset(),
}

PURCHASE_ORDER_TRANSITIONS: Dict[PurchaseOrderStatus, FrozenSet[PurchaseOrderStatus]] = {
    PurchaseOrderStatus.DRAFT: frozenset({PurchaseOrderStatus.ORDERED, PurchaseOrderStatus.CANCELLED}),
    PurchaseOrderStatus.ORDERED: frozenset({PurchaseOrderStatus.RECEIVED, PurchaseOrderStatus.CANCELLED}),
    PurchaseOrderStatus.RECEIVED: frozenset(),
    PurchaseOrderStatus.CANCELLED: frozenset(),
}

TRANSFER_TRANSITIONS: Dict[TransferStatus, FrozenSet[TransferStatus]] = {
    TransferStatus.PENDING: frozenset({TransferStatus.COMPLETED, TransferStatus.CANCELLED}),
    TransferStatus.COMPLETED: frozenset(),
    TransferStatus.CANCELLED: frozenset(),
}

_TRANSITIONS: Mapping[type, Mapping] = {
    InvoiceStatus: INVOICE_TRANSITIONS,
    PurchaseOrderStatus: PURCHASE_ORDER_TRANSITIONS,
    TransferStatus: TRANSFER_TRANSITIONS,
}

_LABELS: Mapping[type, str] = {
    InvoiceStatus: "invoice",
    PurchaseOrderStatus: "purchase order",
    TransferStatus: "transfer",
}

# Invoice items may only change while the invoice is in one of these states.
MUTABLE_INVOICE_STATUSES = frozenset({InvoiceStatus.DRAFT, InvoiceStatus.ISSUED, InvoiceStatus.OVERDUE})


def can_transition(current: StatusEnum, target: StatusEnum) -> bool:
    table = _TRANSITIONS[type(target)]
    return target in table.get(type(target)(current), frozenset())


def ensure_transition(current: Union[str, StatusEnum], target: StatusEnum) -> StatusEnum:
    """Return `target` if `current -> target` is allowed, raise BadRequestError otherwise."""
    enum_cls = type(target)
    current = enum_cls(current)
    if not can_transition(current, target):
        label = _LABELS[enum_cls]
        raise BadRequestError(
            f'Cannot move {label} from "{current.value}" to "{target.value}"'
        )
    return target
