"""Persistence collaborator behind the order core.

`Repository` is the narrow interface the services depend on; `SqlRepository`
implements it on the SQLAlchemy session. Every write commits immediately and
any SQLAlchemyError surfaces as RepositoryError after a rollback.
"""
import datetime as dt
import logging
from contextlib import contextmanager
from datetime import datetime, timezone
from decimal import Decimal
from typing import Protocol

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from poscore.errors import NotFound, PaymentIdConflict, RepositoryError
from poscore.models.core import (
    CashMovement, Order as OrderRow, OrderItem, OrderItemModifier, Payment as PaymentRow,
    PaymentEdit, Shift, ShiftClosure,
)
from poscore.models.enums import CashMoveKind, ShiftType
from poscore.schemas.catalog import Item, ModifierGroup
from poscore.schemas.closure import ClosureResult, ShiftClosureInput, ShiftClosureRecord
from poscore.schemas.orders import CartItem, Order, OrderConfig, Payment, Selection
from poscore.services.billing import money, money_sum
from poscore.services.catalog import SqlCatalog
from poscore.util.audit import log_audit

log = logging.getLogger(__name__)

_CONFIG_FIELDS = (
    "channel", "provider", "caller_number", "table_id", "customer_name", "customer_phone",
    "delivery_address", "invoice_type", "tax_id", "legal_name", "delivery_fee",
)


class Repository(Protocol):
    def fetch_item(self, item_id: str) -> Item: ...
    def fetch_item_modifiers(self, item_id: str) -> list[ModifierGroup]: ...

    def persist_order(self, order: Order) -> str: ...
    def cancel_order(self, order: Order, refunds: list[Payment], reason: str | None = None,
                     actor: str | None = None) -> None: ...
    def load_order(self, order_id: str) -> Order: ...

    def append_cart_item(self, order_id: str, line: CartItem) -> None: ...
    def remove_cart_item(self, line_id: str) -> None: ...
    def update_cart_item_quantity(self, line_id: str, quantity: int, line_total: Decimal) -> None: ...
    def update_cart_item_note(self, line_id: str, note: str | None) -> None: ...

    def persist_payment(self, order_id: str, payment: Payment) -> None: ...
    def delete_payment(self, payment_id: str) -> None: ...
    def replace_payments(self, order_id: str, payments: list[Payment], reason: str,
                         before: list[Payment], actor: str | None = None) -> None: ...

    def find_open_shift(self, branch_id: str) -> str | None: ...
    def record_cash_movement(self, shift_id: str, signed_amount: Decimal, concept: str,
                             order_id: str | None = None) -> None: ...

    def load_closure(self, branch_id: str, date: dt.date, shift: ShiftType) -> ShiftClosureRecord | None: ...
    def save_closure(self, record: ShiftClosureRecord) -> ShiftClosureRecord: ...


def _aware(value: datetime | None) -> datetime | None:
    # sqlite hands back naive datetimes even for timezone=True columns
    if value is not None and value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class SqlRepository:
    def __init__(self, db: Session):
        self.db = db
        self.catalog = SqlCatalog(db)

    @contextmanager
    def _write(self, op: str):
        try:
            yield
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            log.error("repository %s failed: %s", op, e)
            raise RepositoryError(f"could not {op}") from e

    @contextmanager
    def _read(self, op: str):
        try:
            yield
        except SQLAlchemyError as e:
            log.error("repository %s failed: %s", op, e)
            raise RepositoryError(f"could not {op}") from e

    # ---------- catalog ----------

    def fetch_item(self, item_id: str) -> Item:
        with self._read("load menu item"):
            return self.catalog.fetch_item(item_id)

    def fetch_item_modifiers(self, item_id: str) -> list[ModifierGroup]:
        with self._read("load modifiers"):
            return self.catalog.fetch_item_modifiers(item_id)

    # ---------- orders ----------

    def _stage_header(self, order: Order) -> OrderRow:
        row = self.db.get(OrderRow, order.id)
        if row is None:
            row = OrderRow(id=order.id, branch_id=order.branch_id)
            self.db.add(row)
        else:
            row.touch()
        row.state = order.state
        row.tip = order.tip
        row.opened_at = order.opened_at
        row.dispatched_at = order.dispatched_at
        row.cancelled_at = order.cancelled_at
        if order.config is not None:
            cfg = order.config.model_dump()
            for f in _CONFIG_FIELDS:
                setattr(row, f, cfg[f])
        return row

    def persist_order(self, order: Order) -> str:
        """Upsert the order header (state, channel config, tip, timestamps)."""
        with self._write("save order"):
            self._stage_header(order)
        return order.id

    def cancel_order(self, order: Order, refunds: list[Payment], reason: str | None = None,
                     actor: str | None = None) -> None:
        """Header and its CANCEL audit row land in the same commit."""
        with self._write("cancel order"):
            self._stage_header(order)
            log_audit(self.db, actor, "order", order.id, "CANCEL",
                      after={"refunds": [p.model_dump(mode="json") for p in refunds]}, reason=reason)

    def load_order(self, order_id: str) -> Order:
        with self._read("load order"):
            row = self.db.get(OrderRow, order_id)
            if row is None or row.is_deleted:
                raise NotFound(f"order {order_id} not found")
            lines = (
                self.db.query(OrderItem)
                .filter(OrderItem.order_id == order_id, OrderItem.deleted_at.is_(None))
                .order_by(OrderItem.added_at)
                .all()
            )
            payments = (
                self.db.query(PaymentRow)
                .filter(PaymentRow.order_id == order_id)
                .order_by(PaymentRow.paid_at)
                .all()
            )
            return Order(
                id=row.id,
                branch_id=row.branch_id,
                state=row.state,
                config=self._config_of(row),
                items=[self._cart_item_of(l) for l in lines],
                payments=[self._payment_of(p) for p in payments],
                tip=money(row.tip),
                opened_at=_aware(row.opened_at) or _aware(row.created_at),
                dispatched_at=_aware(row.dispatched_at),
                cancelled_at=_aware(row.cancelled_at),
            )

    def _config_of(self, row: OrderRow) -> OrderConfig | None:
        if row.channel is None:
            return None
        return OrderConfig(**{f: getattr(row, f) for f in _CONFIG_FIELDS if getattr(row, f) is not None})

    def _cart_item_of(self, l: OrderItem) -> CartItem:
        mods = (
            self.db.query(OrderItemModifier)
            .filter(OrderItemModifier.order_item_id == l.id, OrderItemModifier.deleted_at.is_(None))
            .all()
        )
        return CartItem(
            id=l.id,
            item_id=l.item_id,
            name=l.name,
            quantity=l.qty,
            base_price=money(l.base_price),
            unit_price=money(l.unit_price),
            line_total=money(l.line_total),
            selections=[Selection(group_id=m.group_id, option_id=m.option_id, quantity=m.qty) for m in mods],
            modifiers_note=l.modifiers_note,
            note=l.note,
            payment_restriction=l.payment_restriction,
            created_at=_aware(l.added_at),
        )

    def _payment_of(self, p: PaymentRow) -> Payment:
        return Payment(
            id=p.id,
            method=p.method,
            amount=money(p.amount),
            tendered=money(p.tendered) if p.tendered is not None else None,
            change=money(p.change) if p.change is not None else None,
            created_at=_aware(p.paid_at),
        )

    # ---------- cart lines ----------

    def append_cart_item(self, order_id: str, line: CartItem) -> None:
        with self._write("add cart item"):
            self.db.add(OrderItem(
                id=line.id,
                order_id=order_id,
                item_id=line.item_id,
                name=line.name,
                qty=line.quantity,
                base_price=line.base_price,
                unit_price=line.unit_price,
                line_total=line.line_total,
                modifiers_note=line.modifiers_note,
                note=line.note,
                payment_restriction=line.payment_restriction,
                added_at=line.created_at,
            ))
            for s in line.selections:
                self.db.add(OrderItemModifier(
                    order_item_id=line.id, group_id=s.group_id, option_id=s.option_id, qty=s.quantity,
                ))

    def _line(self, line_id: str) -> OrderItem:
        row = self.db.get(OrderItem, line_id)
        if row is None or row.is_deleted:
            raise NotFound(f"cart line {line_id} not found")
        return row

    def remove_cart_item(self, line_id: str) -> None:
        with self._write("remove cart item"):
            self._line(line_id).soft_delete()

    def update_cart_item_quantity(self, line_id: str, quantity: int, line_total: Decimal) -> None:
        with self._write("update cart item"):
            row = self._line(line_id)
            row.qty = quantity
            row.line_total = line_total
            row.touch()

    def update_cart_item_note(self, line_id: str, note: str | None) -> None:
        with self._write("update cart item note"):
            row = self._line(line_id)
            row.note = note
            row.touch()

    # ---------- payments ----------

    def _payment_row(self, order_id: str, p: Payment) -> PaymentRow:
        return PaymentRow(
            id=p.id, order_id=order_id, method=p.method, amount=p.amount,
            tendered=p.tendered, change=p.change, paid_at=p.created_at,
        )

    def persist_payment(self, order_id: str, payment: Payment) -> None:
        """Insert once per (order, id); an id owned by another order is refused."""
        with self._write("save payment"):
            existing = self.db.get(PaymentRow, payment.id)
            if existing is not None:
                if existing.order_id != order_id:
                    raise PaymentIdConflict(f"payment {payment.id} belongs to another order")
                return
            self.db.add(self._payment_row(order_id, payment))

    def delete_payment(self, payment_id: str) -> None:
        with self._write("delete payment"):
            row = self.db.get(PaymentRow, payment_id)
            if row is None:
                raise NotFound(f"payment {payment_id} not found")
            self.db.delete(row)

    def replace_payments(self, order_id: str, payments: list[Payment], reason: str,
                         before: list[Payment], actor: str | None = None) -> None:
        before_rows = [{"method": p.method.value, "amount": str(p.amount)} for p in before]
        after_rows = [{"method": p.method.value, "amount": str(p.amount)} for p in payments]
        with self._write("replace payments"):
            self.db.query(PaymentRow).filter(PaymentRow.order_id == order_id).delete()
            for p in payments:
                self.db.add(self._payment_row(order_id, p))
            self.db.add(PaymentEdit(order_id=order_id, before=before_rows, after=after_rows,
                                    reason=reason, edited_by=actor))
            log_audit(self.db, actor, "order", order_id, "PAYMENTS_EDIT",
                      before=before_rows, after=after_rows, reason=reason)

    # ---------- cash shift ----------

    def find_open_shift(self, branch_id: str) -> str | None:
        with self._read("find open shift"):
            s = (
                self.db.query(Shift)
                .filter(Shift.branch_id == branch_id, Shift.closed_at.is_(None), Shift.locked.is_(False))
                .order_by(Shift.opened_at.desc())
                .first()
            )
            return s.id if s else None

    def record_cash_movement(self, shift_id: str, signed_amount: Decimal, concept: str,
                             order_id: str | None = None) -> None:
        amount = money(signed_amount)
        if amount == 0:
            return
        with self._write("record cash movement"):
            self.db.add(CashMovement(
                shift_id=shift_id,
                kind=CashMoveKind.PAYIN if amount > 0 else CashMoveKind.PAYOUT,
                amount=abs(amount),
                reason=concept,
                order_id=order_id,
            ))
        log.info("shift %s cash %s: %s", shift_id, amount, concept)

    def expected_cash(self, shift_id: str) -> Decimal:
        with self._read("compute expected cash"):
            s = self.db.get(Shift, shift_id)
            if s is None:
                raise NotFound(f"shift {shift_id} not found")
            moves = self.db.query(CashMovement).filter(CashMovement.shift_id == shift_id).all()
            payins = money_sum(m.amount for m in moves if m.kind == CashMoveKind.PAYIN)
            payouts = money_sum(m.amount for m in moves if m.kind == CashMoveKind.PAYOUT)
            return money(s.opening_float) + payins - payouts

    # ---------- closures ----------

    def _closure_row(self, branch_id: str, date: dt.date, shift: ShiftType) -> ShiftClosure | None:
        return (
            self.db.query(ShiftClosure)
            .filter(ShiftClosure.branch_id == branch_id, ShiftClosure.date == date,
                    ShiftClosure.shift == shift, ShiftClosure.deleted_at.is_(None))
            .first()
        )

    def load_closure(self, branch_id: str, date: dt.date, shift: ShiftType) -> ShiftClosureRecord | None:
        with self._read("load closure"):
            row = self._closure_row(branch_id, date, shift)
            if row is None:
                return None
            data = ShiftClosureInput(
                branch_id=row.branch_id,
                date=row.date,
                shift=row.shift,
                counter_sales=row.counter_sales or {},
                app_sales=row.app_sales or {},
                terminal_total=money(row.terminal_total),
                cash_difference=money(row.cash_difference),
                invoiced_total=money(row.invoiced_total),
                product_units=row.product_units or {},
                notes=row.notes,
            )
            return ShiftClosureRecord(
                input=data,
                result=ClosureResult.model_validate(row.detail),
                closed_by=row.closed_by,
            )

    def save_closure(self, record: ShiftClosureRecord) -> ShiftClosureRecord:
        """Insert or supersede the closure for (branch, date, shift)."""
        data, result = record.input, record.result
        raw = data.model_dump(mode="json")
        with self._write("save closure"):
            row = self._closure_row(data.branch_id, data.date, data.shift)
            if row is None:
                row = ShiftClosure(branch_id=data.branch_id, date=data.date, shift=data.shift)
                self.db.add(row)
                action = "CREATE"
            else:
                row.touch()
                action = "UPDATE"
            row.counter_sales = raw["counter_sales"]
            row.app_sales = raw["app_sales"]
            row.product_units = raw["product_units"]
            row.terminal_total = data.terminal_total
            row.cash_difference = data.cash_difference
            row.invoiced_total = data.invoiced_total
            row.total_sold = result.total_sold
            row.total_cash = result.total_cash
            row.total_digital = result.total_digital
            row.total_units = result.total_units
            row.expected_invoiced = result.invoice.expected
            row.invoice_difference = result.invoice.difference
            row.terminal_difference = result.terminal.difference
            row.apps_difference = result.apps_difference
            row.invoice_alert = result.invoice.alert
            row.terminal_alert = result.terminal.alert
            row.apps_alert = result.apps_alert
            row.cash_alert = result.cash_alert
            row.has_alert = result.has_alert
            row.detail = result.model_dump(mode="json")
            row.notes = data.notes
            row.closed_by = record.closed_by
            self.db.flush()
            log_audit(self.db, record.closed_by, "shift_closure", row.id, action,
                      after={"total_sold": result.total_sold, "has_alert": result.has_alert})
        return record
