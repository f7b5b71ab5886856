"""Order state machine.

    NOT_STARTED -> CONFIGURING -> BUILDING <-> AWAITING_SETTLEMENT <-> SETTLED -> DISPATCHED
                                   (any pre-dispatch state) -> CANCELLED

BUILDING / AWAITING_SETTLEMENT / SETTLED are derived from the cart and the
ledger after every mutation; the other transitions are explicit method calls.
`can_dispatch` is the only gate for sending an order to the kitchen.
"""
import logging
import uuid
from datetime import datetime, timezone
from decimal import Decimal

from poscore.errors import (
    IllegalTransition, MissingChannelFields, NotSettled, OrderLocked, RefundRequired,
)
from poscore.models.enums import InvoiceType, OrderChannel, OrderState, PaymentRestriction, PayMethod
from poscore.schemas.catalog import Item
from poscore.schemas.orders import (
    CartItem, Order, OrderConfig, Payment, PaymentConstraints, PaymentCorrection, PaymentRow,
    Selection, TimelineEntry,
)
from poscore.services.billing import compute_totals, money, money_sum
from poscore.services.cart import CartEngine
from poscore.services.catalog import CatalogAdapter
from poscore.services.ledger import PaymentLedger

log = logging.getLogger(__name__)

OPEN_STATES = (OrderState.BUILDING, OrderState.AWAITING_SETTLEMENT, OrderState.SETTLED)
FINAL_STATES = (OrderState.DISPATCHED, OrderState.CANCELLED)


def _blank(v) -> bool:
    return v is None or not str(v).strip()


def missing_channel_fields(config: OrderConfig) -> list[str]:
    missing: list[str] = []
    ch = config.channel
    if ch == OrderChannel.DINE_IN:
        if _blank(config.caller_number) and _blank(config.table_id):
            missing.append("caller_number")
    elif ch == OrderChannel.TAKEAWAY:
        if _blank(config.customer_name) and _blank(config.caller_number):
            missing.append("customer_name")
    elif ch in (OrderChannel.DELIVERY, OrderChannel.ONLINE):
        if ch == OrderChannel.ONLINE and config.provider is None:
            missing.append("provider")
        for f in ("customer_name", "customer_phone", "delivery_address"):
            if _blank(getattr(config, f)):
                missing.append(f)
    if config.invoice_type == InvoiceType.TAX_INVOICE:
        for f in ("tax_id", "legal_name"):
            if _blank(getattr(config, f)):
                missing.append(f)
    return missing


class OrderLifecycle:
    def __init__(self, branch_id: str, catalog: CatalogAdapter | None = None, order_id: str | None = None):
        self.id = order_id or str(uuid.uuid4())
        self.branch_id = branch_id
        self.state = OrderState.NOT_STARTED
        self.config: OrderConfig | None = None
        self.tip = Decimal("0")
        self.opened_at = datetime.now(timezone.utc)
        self.dispatched_at: datetime | None = None
        self.cancelled_at: datetime | None = None
        self.cart = CartEngine(catalog)
        self.ledger = PaymentLedger()

    # ---------- state helpers ----------

    def _set_state(self, new: OrderState) -> None:
        if new != self.state:
            log.info("order %s: %s -> %s", self.id, self.state.value, new.value)
            self.state = new

    def _require_open(self) -> None:
        if self.state == OrderState.DISPATCHED:
            raise OrderLocked("order was already sent to the kitchen")
        if self.state not in OPEN_STATES:
            raise IllegalTransition(f"order is {self.state.value}")

    def _refresh(self) -> None:
        if self.state not in OPEN_STATES and self.state != OrderState.CONFIGURING:
            return
        if not self.cart.is_empty() and self.ledger.is_settled():
            self._set_state(OrderState.SETTLED)
        elif self.ledger.payments:
            self._set_state(OrderState.AWAITING_SETTLEMENT)
        else:
            self._set_state(OrderState.BUILDING)

    def _sync_ledger(self) -> None:
        self.ledger.constraints = self.payment_constraints()
        self.ledger.allow_voucher = bool(self.config and self.config.is_marketplace)
        self.ledger.total = self.totals()["total"]

    def _atomic(self, fn):
        """Apply `fn` to the cart; undo everything if the ledger refuses the new total."""
        self._require_open()
        items = self.cart.snapshot()
        config, tip = self.config, self.tip
        try:
            result = fn()
            self._sync_ledger()
        except Exception:
            self.cart.restore(items)
            self.config, self.tip = config, tip
            self._sync_ledger()
            raise
        self._refresh()
        return result

    # ---------- configuration ----------

    def configure(self, config: OrderConfig) -> None:
        if self.state in FINAL_STATES:
            raise IllegalTransition(f"cannot configure a {self.state.value.lower()} order")
        if self.state == OrderState.NOT_STARTED:
            self._set_state(OrderState.CONFIGURING)
        missing = missing_channel_fields(config)
        if missing:
            raise MissingChannelFields(missing)
        if self.state == OrderState.CONFIGURING:
            self.config = config
            self._sync_ledger()
            self._set_state(OrderState.BUILDING)
            return

        def apply():
            self.config = config
        self._atomic(apply)

    # ---------- cart ----------

    def add_item(self, item: Item, selections: list[Selection] | None = None,
                 quantity: int = 1, note: str | None = None) -> CartItem:
        return self._atomic(lambda: self.cart.confirm_selection(item, selections, quantity, note))

    def update_quantity(self, line_id: str, delta: int) -> CartItem | None:
        return self._atomic(lambda: self.cart.update_quantity(line_id, delta))

    def remove_item(self, line_id: str) -> CartItem:
        return self._atomic(lambda: self.cart.remove_item(line_id))

    def update_line(self, line_id: str, delta: int = 0, note: str | None = None) -> CartItem | None:
        """Note and quantity change together, or not at all."""
        def apply():
            line = self.cart.get(line_id)
            if note is not None:
                line = self.cart.update_note(line_id, note)
            if delta:
                line = self.cart.update_quantity(line_id, delta)
            return line
        return self._atomic(apply)

    def set_tip(self, amount) -> Decimal:
        def apply():
            self.tip = money(amount)
            return self.tip
        return self._atomic(apply)

    # ---------- payments ----------

    def register_payment(self, method: PayMethod, amount, tendered=None,
                         payment_id: str | None = None) -> Payment:
        # a retried id returns what was stored, even once the order is locked
        for p in self.ledger.payments:
            if payment_id and p.id == payment_id:
                return p
        self._require_open()
        payment = self.ledger.register(method, amount, tendered, payment_id)
        self._refresh()
        return payment

    def remove_payment(self, payment_id: str) -> Payment:
        self._require_open()
        payment = self.ledger.remove(payment_id)
        self._refresh()
        return payment

    def correct_payments(self, rows: list[PaymentRow], reason: str) -> PaymentCorrection:
        if self.state != OrderState.DISPATCHED:
            raise IllegalTransition("payments can only be corrected on dispatched orders")
        return self.ledger.replace_all(rows, reason)

    # ---------- terminal transitions ----------

    @property
    def can_dispatch(self) -> bool:
        return (
            self.state == OrderState.SETTLED
            and not self.cart.is_empty()
            and self.ledger.is_settled()
        )

    def dispatch(self) -> None:
        if self.state in FINAL_STATES:
            raise IllegalTransition(f"order is already {self.state.value.lower()}")
        if not self.can_dispatch:
            raise NotSettled(f"pending balance {self.ledger.balance()}")
        self.dispatched_at = datetime.now(timezone.utc)
        self._set_state(OrderState.DISPATCHED)

    def cancel(self, refund_acknowledged: bool = False) -> list[Payment]:
        """Cancel before dispatch; returns the payments that must be refunded."""
        if self.state in FINAL_STATES:
            raise IllegalTransition(f"order is already {self.state.value.lower()}")
        refunds = list(self.ledger.payments)
        if refunds and not refund_acknowledged:
            raise RefundRequired(f"{len(refunds)} payment(s) must be refunded first")
        self.cancelled_at = datetime.now(timezone.utc)
        self._set_state(OrderState.CANCELLED)
        return refunds

    # ---------- queries ----------

    def totals(self) -> dict:
        cfg = self.config
        return compute_totals(
            self.cart.items,
            channel=cfg.channel if cfg else None,
            delivery_fee=cfg.delivery_fee if cfg else None,
            tip=self.tip,
        )

    def payment_constraints(self) -> PaymentConstraints:
        lines = self.cart.items
        return PaymentConstraints(
            min_cash=money_sum(l.line_total for l in lines
                               if l.payment_restriction == PaymentRestriction.CASH_ONLY),
            min_digital=money_sum(l.line_total for l in lines
                                  if l.payment_restriction == PaymentRestriction.DIGITAL_ONLY),
        )

    def timeline(self) -> list[TimelineEntry]:
        entries = [
            TimelineEntry(kind="ITEM", ref_id=l.id, label=l.kitchen_text(),
                          amount=l.line_total, created_at=l.created_at)
            for l in self.cart.items
        ] + [
            TimelineEntry(kind="PAYMENT", ref_id=p.id, label=p.method.value,
                          amount=p.amount, created_at=p.created_at)
            for p in self.ledger.payments
        ]
        return sorted(entries, key=lambda e: e.created_at)

    def to_order(self) -> Order:
        return Order(
            id=self.id,
            branch_id=self.branch_id,
            state=self.state,
            config=self.config,
            items=self.cart.snapshot(),
            payments=list(self.ledger.payments),
            tip=self.tip,
            opened_at=self.opened_at,
            dispatched_at=self.dispatched_at,
            cancelled_at=self.cancelled_at,
        )

    @classmethod
    def restore(cls, order: Order, catalog: CatalogAdapter | None = None) -> "OrderLifecycle":
        """Rebuild a lifecycle from a stored snapshot without re-validating it."""
        lc = cls(order.branch_id, catalog, order_id=order.id)
        lc.state = order.state
        lc.config = order.config
        lc.tip = money(order.tip)
        lc.opened_at = order.opened_at
        lc.dispatched_at = order.dispatched_at
        lc.cancelled_at = order.cancelled_at
        lc.cart.restore(order.items)
        lc.ledger = PaymentLedger(
            total=lc.totals()["total"],
            payments=order.payments,
            allow_voucher=bool(lc.config and lc.config.is_marketplace),
            constraints=lc.payment_constraints(),
        )
        return lc
