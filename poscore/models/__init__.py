# Importing the module registers tables with Base for create_all()
from .enums import (  # noqa: F401
    OrderChannel, OnlineProvider, InvoiceType, OrderState, PayMethod, PaymentRestriction,
    ShiftType, AppPayMethod, CashMoveKind,
)
from .core import (  # noqa: F401
    # Catalog
    MenuItem, ModifierGroup, Modifier, ItemModifierGroup,

    # Orders / cart lines / payments
    Order, OrderItem, OrderItemModifier, Payment, PaymentEdit,

    # Cash shifts & closures
    Shift, CashMovement, ShiftClosure,

    # Audit
    AuditLog,
)

__all__ = [
    # Enums
    "OrderChannel", "OnlineProvider", "InvoiceType", "OrderState", "PayMethod",
    "PaymentRestriction", "ShiftType", "AppPayMethod", "CashMoveKind",

    # Catalog
    "MenuItem", "ModifierGroup", "Modifier", "ItemModifierGroup",

    # Orders
    "Order", "OrderItem", "OrderItemModifier", "Payment", "PaymentEdit",

    # Shifts & closures
    "Shift", "CashMovement", "ShiftClosure",

    # Audit
    "AuditLog",
]

all_models = True
