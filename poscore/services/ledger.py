"""Progressive split-payment ledger for a single order.

Invariant: balance == total - paid and balance >= 0 at all times. Anything
that would break it (an overpayment, a total shrinking below what was already
collected) is rejected before state changes.
"""
import logging
import uuid
from decimal import Decimal

from poscore.errors import (
    CorrectionUnbalanced, ExceedsMethodCap, InsufficientTender, InvalidAmount, MethodNotAllowed,
    NotFound, Overpayment, TotalBelowPaid, ValidationError,
)
from poscore.models.enums import DIGITAL_METHODS, PayMethod
from poscore.schemas.orders import Payment, PaymentConstraints, PaymentCorrection, PaymentRow
from poscore.services.billing import EPSILON, ZERO, is_zero, money, money_sum

log = logging.getLogger(__name__)


def _family(method: PayMethod) -> str:
    if method == PayMethod.CASH:
        return "cash"
    if method in DIGITAL_METHODS:
        return "digital"
    return "voucher"


class PaymentLedger:
    def __init__(self, total=ZERO, payments: list[Payment] | None = None,
                 allow_voucher: bool = False, constraints: PaymentConstraints | None = None):
        self.payments: list[Payment] = list(payments or [])
        self.allow_voucher = allow_voucher
        self.constraints = constraints or PaymentConstraints()
        # trusted on construction; restored orders carry their own payments
        self._total = money(total)

    # ---------- total ----------

    @property
    def total(self) -> Decimal:
        return self._total

    @total.setter
    def total(self, value) -> None:
        value = money(value)
        if value < 0:
            raise InvalidAmount("order total cannot be negative")
        if self.paid() - value >= EPSILON:
            raise TotalBelowPaid(f"total {value} is below the {self.paid()} already paid")
        self._total = value

    # ---------- queries ----------

    def paid(self) -> Decimal:
        return money_sum(p.amount for p in self.payments)

    def balance(self) -> Decimal:
        return self._total - self.paid()

    def is_settled(self) -> bool:
        return is_zero(self.balance())

    def cash_total(self) -> Decimal:
        return money_sum(p.amount for p in self.payments if p.method == PayMethod.CASH)

    def digital_total(self) -> Decimal:
        return money_sum(p.amount for p in self.payments if p.method in DIGITAL_METHODS)

    def get(self, payment_id: str) -> Payment:
        for p in self.payments:
            if p.id == payment_id:
                return p
        raise NotFound(f"payment {payment_id} not found")

    def _reserves(self) -> tuple[Decimal, Decimal]:
        """(cash, digital) amounts still owed to promotion-restricted lines."""
        cash = max(ZERO, money(self.constraints.min_cash) - self.cash_total())
        digital = max(ZERO, money(self.constraints.min_digital) - self.digital_total())
        return cash, digital

    def max_registrable(self, method: PayMethod) -> Decimal:
        remaining = max(ZERO, self.balance())
        cash_reserve, digital_reserve = self._reserves()
        family = _family(method)
        if family == "cash":
            cap = remaining - digital_reserve
        elif family == "digital":
            cap = remaining - cash_reserve
        else:
            cap = remaining - cash_reserve - digital_reserve
        return max(ZERO, cap)

    # ---------- mutations ----------

    def register(self, method: PayMethod, amount, tendered=None, payment_id: str | None = None) -> Payment:
        if payment_id:
            for p in self.payments:
                if p.id == payment_id:
                    return p

        method = PayMethod(method)
        amount = money(amount)
        if amount <= 0:
            raise InvalidAmount("amount must be greater than zero")
        if method == PayMethod.VOUCHER and not self.allow_voucher:
            raise MethodNotAllowed("vouchers are only accepted on marketplace orders")
        remaining = self.balance()
        if amount - remaining >= EPSILON:
            raise Overpayment(f"amount {amount} exceeds the pending balance {remaining}")
        cap = self.max_registrable(method)
        if amount - cap >= EPSILON:
            raise ExceedsMethodCap(method.value, cap)

        tendered_amt = change = None
        if method == PayMethod.CASH:
            tendered_amt = money(tendered) if tendered is not None else amount
            if tendered_amt < amount:
                raise InsufficientTender(f"tendered {tendered_amt} is less than {amount}")
            change = tendered_amt - amount

        payment = Payment(
            id=payment_id or str(uuid.uuid4()),
            method=method,
            amount=amount,
            tendered=tendered_amt,
            change=change,
        )
        self.payments.append(payment)
        log.info("payment %s %s %s registered, balance %s", payment.id, method.value, amount, self.balance())
        return payment

    def remove(self, payment_id: str) -> Payment:
        payment = self.get(payment_id)
        self.payments = [p for p in self.payments if p.id != payment_id]
        log.info("payment %s removed, balance %s", payment_id, self.balance())
        return payment

    def _check_methods(self, rows: list[PaymentRow]) -> None:
        """The method rules of `register`, applied to a complete replacement set."""
        if not self.allow_voucher and any(r.method == PayMethod.VOUCHER for r in rows):
            raise MethodNotAllowed("vouchers are only accepted on marketplace orders")
        cash = money_sum(r.amount for r in rows if r.method == PayMethod.CASH)
        digital = money_sum(r.amount for r in rows if r.method in DIGITAL_METHODS)
        min_cash = money(self.constraints.min_cash)
        min_digital = money(self.constraints.min_digital)
        if min_cash - cash >= EPSILON:
            other = next(r.method for r in rows if r.method != PayMethod.CASH)
            raise ExceedsMethodCap(other.value, self._total - min_cash)
        if min_digital - digital >= EPSILON:
            other = next(r.method for r in rows if r.method not in DIGITAL_METHODS)
            raise ExceedsMethodCap(other.value, self._total - min_digital)

    def replace_all(self, rows: list[PaymentRow], reason: str) -> PaymentCorrection:
        """Swap the whole payment set for `rows`; the sum must still match the total."""
        reason = (reason or "").strip()
        if not reason:
            raise ValidationError("a reason is required to correct payments")
        if not rows:
            raise ValidationError("at least one payment is required")
        after = [PaymentRow(method=r.method, amount=money(r.amount)) for r in rows]
        if any(r.amount <= 0 for r in after):
            raise InvalidAmount("every payment amount must be greater than zero")
        new_sum = money_sum(r.amount for r in after)
        if abs(new_sum - self._total) >= EPSILON:
            raise CorrectionUnbalanced(f"payments sum {new_sum} but the order total is {self._total}")
        self._check_methods(after)

        before = [PaymentRow(method=p.method, amount=p.amount) for p in self.payments]
        cash_before = self.cash_total()
        self.payments = [
            Payment(method=r.method, amount=r.amount,
                    tendered=r.amount if r.method == PayMethod.CASH else None,
                    change=ZERO if r.method == PayMethod.CASH else None)
            for r in after
        ]
        cash_delta = self.cash_total() - cash_before
        log.info("payments corrected (%s), cash delta %s", reason, cash_delta)
        return PaymentCorrection(before=before, after=after, reason=reason, cash_delta=cash_delta)
