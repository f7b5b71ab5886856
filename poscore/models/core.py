from decimal import Decimal
import datetime as dt
from datetime import datetime

from sqlalchemy import (
    String, ForeignKey, Boolean, Numeric, Enum, Text, DateTime, Date, Integer, JSON, UniqueConstraint
)
from sqlalchemy.orm import Mapped, mapped_column

from poscore.db import Base
from poscore.models.common import IdMixin, TSMMixin
from poscore.models.enums import (
    CashMoveKind, InvoiceType, OnlineProvider, OrderChannel, OrderState, PayMethod,
    PaymentRestriction, ShiftType,
)

# ── Catalog (read side of the pricing adapter) ──────────────────────────────
class MenuItem(Base, IdMixin, TSMMixin):
    __tablename__ = "menu_item"
    name: Mapped[str] = mapped_column(String(160))
    category_id: Mapped[str | None] = mapped_column(String(36))
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    payment_restriction: Mapped[PaymentRestriction] = mapped_column(
        Enum(PaymentRestriction), default=PaymentRestriction.ANY)

class ModifierGroup(Base, IdMixin, TSMMixin):
    __tablename__ = "modifier_group"
    name: Mapped[str] = mapped_column(String(120))
    kind: Mapped[str] = mapped_column(String(20))  # EXTRA | REMOVABLE | OPTION_GROUP
    required: Mapped[bool] = mapped_column(Boolean, default=False)
    max_sel: Mapped[int] = mapped_column(Integer, default=1)
    surcharge: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)  # extras only
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)

class Modifier(Base, IdMixin, TSMMixin):
    __tablename__ = "modifier"
    group_id: Mapped[str] = mapped_column(String(36), ForeignKey("modifier_group.id"))
    name: Mapped[str] = mapped_column(String(120))
    price_delta: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    position: Mapped[int] = mapped_column(Integer, default=0)

class ItemModifierGroup(Base, TSMMixin):
    __tablename__ = "item_modifier_group"
    item_id: Mapped[str] = mapped_column(String(36), ForeignKey("menu_item.id"), primary_key=True)
    group_id: Mapped[str] = mapped_column(String(36), ForeignKey("modifier_group.id"), primary_key=True)
    position: Mapped[int] = mapped_column(Integer, default=0)

# ── Orders / cart lines / payments ──────────────────────────────────────────
class Order(Base, IdMixin, TSMMixin):
    __tablename__ = "order"
    branch_id: Mapped[str] = mapped_column(String(36))
    state: Mapped[OrderState] = mapped_column(Enum(OrderState), default=OrderState.NOT_STARTED)
    channel: Mapped[OrderChannel | None] = mapped_column(Enum(OrderChannel))
    provider: Mapped[OnlineProvider | None] = mapped_column(Enum(OnlineProvider))
    caller_number: Mapped[str | None] = mapped_column(String(20))
    table_id: Mapped[str | None] = mapped_column(String(36))
    customer_name: Mapped[str | None] = mapped_column(String(160))
    customer_phone: Mapped[str | None] = mapped_column(String(40))
    delivery_address: Mapped[str | None] = mapped_column(Text)
    invoice_type: Mapped[InvoiceType] = mapped_column(Enum(InvoiceType), default=InvoiceType.CONSUMER)
    tax_id: Mapped[str | None] = mapped_column(String(32))
    legal_name: Mapped[str | None] = mapped_column(String(200))
    delivery_fee: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    tip: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    dispatched_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    cancelled_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

class OrderItem(Base, IdMixin, TSMMixin):
    __tablename__ = "order_item"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id"))
    item_id: Mapped[str] = mapped_column(String(36))
    name: Mapped[str] = mapped_column(String(160))
    qty: Mapped[int] = mapped_column(Integer)
    base_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    unit_price: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    line_total: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    modifiers_note: Mapped[str | None] = mapped_column(Text)
    note: Mapped[str | None] = mapped_column(Text)
    payment_restriction: Mapped[PaymentRestriction] = mapped_column(
        Enum(PaymentRestriction), default=PaymentRestriction.ANY)
    added_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

class OrderItemModifier(Base, IdMixin, TSMMixin):
    __tablename__ = "order_item_modifier"
    order_item_id: Mapped[str] = mapped_column(String(36), ForeignKey("order_item.id"))
    group_id: Mapped[str] = mapped_column(String(36))
    option_id: Mapped[str | None] = mapped_column(String(36))
    qty: Mapped[int] = mapped_column(Integer, default=1)

class Payment(Base, IdMixin, TSMMixin):
    __tablename__ = "payment"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id"))
    method: Mapped[PayMethod] = mapped_column(Enum(PayMethod))
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))
    tendered: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    change: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    paid_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))

class PaymentEdit(Base, IdMixin, TSMMixin):
    __tablename__ = "payment_edit"
    order_id: Mapped[str] = mapped_column(String(36), ForeignKey("order.id"))
    before: Mapped[list] = mapped_column(JSON)
    after: Mapped[list] = mapped_column(JSON)
    reason: Mapped[str] = mapped_column(Text)
    edited_by: Mapped[str | None] = mapped_column(String(36))

# ── Cash shifts ─────────────────────────────────────────────────────────────
class Shift(Base, IdMixin, TSMMixin):
    __tablename__ = "shift"
    branch_id: Mapped[str] = mapped_column(String(36))
    opened_by: Mapped[str] = mapped_column(String(36))
    opened_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    closed_by: Mapped[str | None] = mapped_column(String(36))
    closed_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True))
    opening_float: Mapped[Decimal] = mapped_column(Numeric(10, 2), default=0)
    expected_cash: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    actual_cash: Mapped[Decimal | None] = mapped_column(Numeric(10, 2))
    close_note: Mapped[str | None] = mapped_column(Text)
    locked: Mapped[bool] = mapped_column(Boolean, default=False)

class CashMovement(Base, IdMixin, TSMMixin):
    __tablename__ = "cash_movement"
    shift_id: Mapped[str] = mapped_column(String(36), ForeignKey("shift.id"))
    kind: Mapped[CashMoveKind] = mapped_column(Enum(CashMoveKind))
    amount: Mapped[Decimal] = mapped_column(Numeric(10, 2))  # always positive; kind carries sign
    reason: Mapped[str | None] = mapped_column(Text)
    order_id: Mapped[str | None] = mapped_column(String(36))

# ── Shift closures (one per branch/date/shift) ──────────────────────────────
class ShiftClosure(Base, IdMixin, TSMMixin):
    __tablename__ = "shift_closure"
    branch_id: Mapped[str] = mapped_column(String(36))
    date: Mapped[dt.date] = mapped_column(Date)
    shift: Mapped[ShiftType] = mapped_column(Enum(ShiftType))
    counter_sales: Mapped[dict] = mapped_column(JSON, default=dict)
    app_sales: Mapped[dict] = mapped_column(JSON, default=dict)
    product_units: Mapped[dict] = mapped_column(JSON, default=dict)
    terminal_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    cash_difference: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    invoiced_total: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_sold: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_cash: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_digital: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    total_units: Mapped[int] = mapped_column(Integer, default=0)
    expected_invoiced: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    invoice_difference: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    terminal_difference: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    apps_difference: Mapped[Decimal] = mapped_column(Numeric(12, 2), default=0)
    invoice_alert: Mapped[bool] = mapped_column(Boolean, default=False)
    terminal_alert: Mapped[bool] = mapped_column(Boolean, default=False)
    apps_alert: Mapped[bool] = mapped_column(Boolean, default=False)
    cash_alert: Mapped[bool] = mapped_column(Boolean, default=False)
    has_alert: Mapped[bool] = mapped_column(Boolean, default=False)
    detail: Mapped[dict] = mapped_column(JSON, default=dict)  # full ClosureResult
    notes: Mapped[str | None] = mapped_column(Text)
    closed_by: Mapped[str | None] = mapped_column(String(36))
    __table_args__ = (
        UniqueConstraint("branch_id", "date", "shift", name="uq_shift_closure_key"),
    )

# ── Audit ───────────────────────────────────────────────────────────────────
class AuditLog(Base, IdMixin, TSMMixin):
    __tablename__ = "audit_log"
    actor_user_id: Mapped[str | None] = mapped_column(String(36))
    entity: Mapped[str] = mapped_column(String(60))
    entity_id: Mapped[str] = mapped_column(String(36))
    action: Mapped[str] = mapped_column(String(60))
    reason: Mapped[str | None] = mapped_column(Text)
    before: Mapped[str | None] = mapped_column(Text)
    after: Mapped[str | None] = mapped_column(Text)
