"""Glue between an OrderLifecycle and the repository.

Each operation mutates the in-memory lifecycle first (which enforces every
invariant) and then writes the change through. A repository failure leaves the
lifecycle as it is; the caller can retry the write or reload the order.
"""
import logging
from contextlib import contextmanager
from decimal import Decimal

from poscore.errors import OperationInProgress, PaymentIdConflict
from poscore.models.enums import PayMethod
from poscore.schemas.orders import CartItem, OrderConfig, Payment, PaymentCorrection, PaymentRow, Selection
from poscore.services.billing import ZERO, money
from poscore.services.lifecycle import OrderLifecycle
from poscore.services.repository import Repository

log = logging.getLogger(__name__)


class OrderService:
    def __init__(self, repo: Repository, lifecycle: OrderLifecycle, actor_id: str | None = None):
        self.repo = repo
        self.lifecycle = lifecycle
        self.actor_id = actor_id
        self._busy = False

    @classmethod
    def start(cls, repo: Repository, branch_id: str, config: OrderConfig | None = None,
              actor_id: str | None = None) -> "OrderService":
        svc = cls(repo, OrderLifecycle(branch_id, catalog=repo), actor_id)
        with svc._operation():
            if config is not None:
                svc.lifecycle.configure(config)
            repo.persist_order(svc.lifecycle.to_order())
        return svc

    @classmethod
    def open(cls, repo: Repository, order_id: str, actor_id: str | None = None) -> "OrderService":
        order = repo.load_order(order_id)
        return cls(repo, OrderLifecycle.restore(order, catalog=repo), actor_id)

    @property
    def order_id(self) -> str:
        return self.lifecycle.id

    @contextmanager
    def _operation(self):
        if self._busy:
            raise OperationInProgress("another change to this order is still being saved")
        self._busy = True
        try:
            yield
        finally:
            self._busy = False

    def _save_header(self) -> None:
        self.repo.persist_order(self.lifecycle.to_order())

    def _cash(self, amount: Decimal, concept: str) -> None:
        """Post a drawer movement to the branch's open shift, if there is one."""
        if money(amount) == ZERO:
            return
        shift_id = self.repo.find_open_shift(self.lifecycle.branch_id)
        if shift_id is None:
            log.info("order %s: no open shift, cash movement %s not recorded", self.order_id, amount)
            return
        self.repo.record_cash_movement(shift_id, amount, concept, order_id=self.order_id)

    # ---------- configuration / cart ----------

    def configure(self, config: OrderConfig) -> None:
        with self._operation():
            self.lifecycle.configure(config)
            self._save_header()

    def add_item(self, item_id: str, selections: list[Selection] | None = None,
                 quantity: int = 1, note: str | None = None) -> CartItem:
        with self._operation():
            item = self.repo.fetch_item(item_id)
            line = self.lifecycle.add_item(item, selections, quantity, note)
            self.repo.append_cart_item(self.order_id, line)
            self._save_header()
            return line

    def update_quantity(self, line_id: str, delta: int) -> CartItem | None:
        with self._operation():
            line = self.lifecycle.update_quantity(line_id, delta)
            if line is None:
                self.repo.remove_cart_item(line_id)
            else:
                self.repo.update_cart_item_quantity(line_id, line.quantity, line.line_total)
            self._save_header()
            return line

    def remove_item(self, line_id: str) -> CartItem:
        with self._operation():
            line = self.lifecycle.remove_item(line_id)
            self.repo.remove_cart_item(line_id)
            self._save_header()
            return line

    def update_line(self, line_id: str, delta: int = 0, note: str | None = None) -> CartItem | None:
        with self._operation():
            line = self.lifecycle.update_line(line_id, delta, note)
            if line is None:
                self.repo.remove_cart_item(line_id)
            else:
                if note is not None:
                    self.repo.update_cart_item_note(line_id, line.note)
                if delta:
                    self.repo.update_cart_item_quantity(line_id, line.quantity, line.line_total)
            self._save_header()
            return line

    def set_tip(self, amount) -> Decimal:
        with self._operation():
            tip = self.lifecycle.set_tip(amount)
            self._save_header()
            return tip

    # ---------- payments ----------

    def register_payment(self, method: PayMethod, amount, tendered=None,
                         payment_id: str | None = None) -> Payment:
        with self._operation():
            known = payment_id is not None and any(p.id == payment_id for p in self.lifecycle.ledger.payments)
            payment = self.lifecycle.register_payment(method, amount, tendered, payment_id)
            try:
                self.repo.persist_payment(self.order_id, payment)
            except PaymentIdConflict:
                self.lifecycle.remove_payment(payment.id)
                raise
            self._save_header()
            if payment.method == PayMethod.CASH and not known:
                self._cash(payment.amount, f"Order {self.order_id[:8]} cash payment")
            return payment

    def remove_payment(self, payment_id: str) -> Payment:
        with self._operation():
            payment = self.lifecycle.remove_payment(payment_id)
            self.repo.delete_payment(payment_id)
            self._save_header()
            if payment.method == PayMethod.CASH:
                self._cash(-payment.amount, f"Order {self.order_id[:8]} cash payment removed")
            return payment

    def correct_payments(self, rows: list[PaymentRow], reason: str) -> PaymentCorrection:
        with self._operation():
            before = list(self.lifecycle.ledger.payments)
            correction = self.lifecycle.correct_payments(rows, reason)
            self.repo.replace_payments(self.order_id, list(self.lifecycle.ledger.payments),
                                       correction.reason, before, self.actor_id)
            self._cash(correction.cash_delta, f"Payment adjustment ({correction.reason})")
            return correction

    # ---------- terminal transitions ----------

    def dispatch(self) -> None:
        with self._operation():
            self.lifecycle.dispatch()
            self._save_header()

    def cancel(self, refund_acknowledged: bool = False, reason: str | None = None) -> list[Payment]:
        with self._operation():
            refunds = self.lifecycle.cancel(refund_acknowledged)
            self.repo.cancel_order(self.lifecycle.to_order(), refunds, reason, self.actor_id)
            cash = sum((p.amount for p in refunds if p.method == PayMethod.CASH), ZERO)
            self._cash(-cash, f"Order {self.order_id[:8]} cancelled, cash refund")
            return refunds
