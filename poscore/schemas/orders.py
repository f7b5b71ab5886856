import uuid
from datetime import datetime, timezone
from decimal import Decimal
from typing import Literal, Optional

from pydantic import BaseModel, Field

from poscore.models.enums import (
    InvoiceType, OnlineProvider, OrderChannel, OrderState, PayMethod, PaymentRestriction,
)


def _uuid() -> str:
    return str(uuid.uuid4())


def _now() -> datetime:
    return datetime.now(timezone.utc)


# ── cart ────────────────────────────────────────────────────────────────────
class Selection(BaseModel):
    group_id: str
    option_id: Optional[str] = None  # None for extras and removables
    quantity: int = 1


class CartItem(BaseModel):
    id: str = Field(default_factory=_uuid)
    item_id: str
    name: str
    quantity: int = Field(ge=1)
    base_price: Decimal
    unit_price: Decimal
    line_total: Decimal
    selections: list[Selection] = []
    modifiers_note: Optional[str] = None
    note: Optional[str] = None
    payment_restriction: PaymentRestriction = PaymentRestriction.ANY
    created_at: datetime = Field(default_factory=_now)

    def kitchen_text(self) -> str:
        parts = [f"{self.quantity}x {self.name}"]
        if self.modifiers_note:
            parts.append(self.modifiers_note)
        if self.note:
            parts.append(f"[{self.note}]")
        return " | ".join(parts)


# ── channel configuration ───────────────────────────────────────────────────
class OrderConfig(BaseModel):
    channel: OrderChannel
    provider: Optional[OnlineProvider] = None
    caller_number: Optional[str] = None
    table_id: Optional[str] = None
    customer_name: Optional[str] = None
    customer_phone: Optional[str] = None
    delivery_address: Optional[str] = None
    invoice_type: InvoiceType = InvoiceType.CONSUMER
    tax_id: Optional[str] = None
    legal_name: Optional[str] = None
    delivery_fee: Decimal = Field(default=Decimal("0"), ge=0)

    @property
    def is_marketplace(self) -> bool:
        return self.channel == OrderChannel.ONLINE


# ── payments ────────────────────────────────────────────────────────────────
class Payment(BaseModel):
    id: str = Field(default_factory=_uuid)
    method: PayMethod
    amount: Decimal
    tendered: Optional[Decimal] = None
    change: Optional[Decimal] = None
    created_at: datetime = Field(default_factory=_now)


class PaymentRow(BaseModel):
    method: PayMethod
    amount: Decimal


class PaymentCorrection(BaseModel):
    before: list[PaymentRow]
    after: list[PaymentRow]
    reason: str
    cash_delta: Decimal


class PaymentConstraints(BaseModel):
    """Amounts that must remain payable by each method family (promotions)."""
    min_cash: Decimal = Decimal("0")
    min_digital: Decimal = Decimal("0")


# ── order snapshot ──────────────────────────────────────────────────────────
class Order(BaseModel):
    id: str = Field(default_factory=_uuid)
    branch_id: str
    state: OrderState = OrderState.NOT_STARTED
    config: Optional[OrderConfig] = None
    items: list[CartItem] = []
    payments: list[Payment] = []
    tip: Decimal = Decimal("0")
    opened_at: datetime = Field(default_factory=_now)
    dispatched_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None


class TimelineEntry(BaseModel):
    kind: Literal["ITEM", "PAYMENT"]
    ref_id: str
    label: str
    amount: Decimal
    created_at: datetime


# ── API payloads ────────────────────────────────────────────────────────────
class OrderIn(BaseModel):
    branch_id: str
    config: Optional[OrderConfig] = None


class AddItemIn(BaseModel):
    item_id: str
    selections: list[Selection] = []
    quantity: int = 1
    note: Optional[str] = None


class LineUpdateIn(BaseModel):
    delta: Optional[int] = None
    note: Optional[str] = None


class TipIn(BaseModel):
    amount: Decimal = Field(ge=0)


class PaymentIn(BaseModel):
    id: Optional[str] = None
    method: PayMethod
    amount: Decimal
    tendered: Optional[Decimal] = None


class CorrectionIn(BaseModel):
    payments: list[PaymentRow]
    reason: str


class CancelIn(BaseModel):
    refund_acknowledged: bool = False
    reason: Optional[str] = None


class OrderOut(BaseModel):
    id: str
    branch_id: str
    state: OrderState
    config: Optional[OrderConfig] = None
    items: list[CartItem]
    payments: list[Payment]
    totals: dict[str, Decimal]
    paid: Decimal
    balance: Decimal
    can_dispatch: bool
