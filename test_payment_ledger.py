from decimal import Decimal

import pytest

from poscore.errors import (
    CorrectionUnbalanced, ExceedsMethodCap, InsufficientTender, InvalidAmount, MethodNotAllowed,
    NotFound, Overpayment, TotalBelowPaid, ValidationError,
)
from poscore.models.enums import PayMethod
from poscore.schemas.orders import Payment, PaymentConstraints, PaymentRow
from poscore.services.billing import quick_amounts
from poscore.services.ledger import PaymentLedger


def test_split_payment_settles_and_reopens():
    ledger = PaymentLedger(total=3000)
    cash = ledger.register(PayMethod.CASH, 2000, tendered=2500)
    assert cash.change == Decimal("500")
    assert ledger.balance() == Decimal("1000")

    card = ledger.register(PayMethod.DEBIT, 1000)
    assert ledger.is_settled()
    assert ledger.balance() == 0

    ledger.remove(card.id)
    assert ledger.balance() == Decimal("1000")
    assert not ledger.is_settled()
    assert ledger.cash_total() == Decimal("2000")


def test_rejections_leave_ledger_untouched():
    ledger = PaymentLedger(total=1000)
    with pytest.raises(InvalidAmount):
        ledger.register(PayMethod.CASH, 0)
    with pytest.raises(InvalidAmount):
        ledger.register(PayMethod.DEBIT, -5)
    with pytest.raises(Overpayment):
        ledger.register(PayMethod.CREDIT, "1000.01")
    with pytest.raises(InsufficientTender):
        ledger.register(PayMethod.CASH, 500, tendered=400)
    with pytest.raises(MethodNotAllowed):
        ledger.register(PayMethod.VOUCHER, 100)
    assert ledger.payments == []
    assert ledger.balance() == Decimal("1000")


def test_cash_without_tender_means_exact_amount():
    ledger = PaymentLedger(total=750)
    p = ledger.register(PayMethod.CASH, 750)
    assert p.tendered == Decimal("750")
    assert p.change == 0


def test_digital_payment_has_no_tender():
    ledger = PaymentLedger(total=750)
    p = ledger.register(PayMethod.QR, 750, tendered=1000)
    assert p.tendered is None and p.change is None


def test_same_payment_id_is_idempotent():
    ledger = PaymentLedger(total=1000)
    first = ledger.register(PayMethod.DEBIT, 400, payment_id="p-1")
    again = ledger.register(PayMethod.DEBIT, 400, payment_id="p-1")
    assert again is first
    assert ledger.paid() == Decimal("400")


def test_remove_unknown_payment():
    with pytest.raises(NotFound):
        PaymentLedger(total=10).remove("nope")


def test_voucher_on_marketplace_orders():
    ledger = PaymentLedger(total=1000, allow_voucher=True)
    ledger.register(PayMethod.VOUCHER, 300)
    assert ledger.balance() == Decimal("700")


def test_total_cannot_drop_below_paid():
    ledger = PaymentLedger(total=1000)
    ledger.register(PayMethod.DEBIT, 800)
    ledger.total = 900
    assert ledger.balance() == Decimal("100")
    with pytest.raises(TotalBelowPaid):
        ledger.total = 700
    assert ledger.total == Decimal("900")
    assert ledger.balance() >= 0


def test_restricted_lines_reserve_method_caps():
    # 800 of a 2000 order is a cash-only promotion
    ledger = PaymentLedger(total=2000, constraints=PaymentConstraints(min_cash=Decimal("800")))
    assert ledger.max_registrable(PayMethod.DEBIT) == Decimal("1200")
    assert ledger.max_registrable(PayMethod.CASH) == Decimal("2000")
    with pytest.raises(ExceedsMethodCap) as ei:
        ledger.register(PayMethod.DEBIT, 1500)
    assert ei.value.cap == Decimal("1200")

    ledger.register(PayMethod.CASH, 800)
    assert ledger.max_registrable(PayMethod.DEBIT) == Decimal("1200")
    ledger.register(PayMethod.DEBIT, 1200)
    assert ledger.is_settled()


def test_correction_must_balance():
    ledger = PaymentLedger(total=3000)
    ledger.register(PayMethod.CASH, 2000, tendered=2000)
    ledger.register(PayMethod.DEBIT, 1000)

    with pytest.raises(CorrectionUnbalanced):
        ledger.replace_all([PaymentRow(method=PayMethod.CASH, amount=Decimal("2990"))], "typo")
    with pytest.raises(ValidationError):
        ledger.replace_all([PaymentRow(method=PayMethod.CASH, amount=Decimal("3000"))], "   ")
    with pytest.raises(ValidationError):
        ledger.replace_all([], "empty")
    assert ledger.paid() == Decimal("3000")
    assert len(ledger.payments) == 2

    fix = ledger.replace_all([
        PaymentRow(method=PayMethod.CASH, amount=Decimal("1000")),
        PaymentRow(method=PayMethod.CREDIT, amount=Decimal("2000.004")),
    ], "card was credit, not cash")
    assert fix.cash_delta == Decimal("-1000")
    assert [r.method for r in fix.before] == [PayMethod.CASH, PayMethod.DEBIT]
    assert ledger.cash_total() == Decimal("1000")
    assert ledger.is_settled()


def test_ledger_built_over_existing_payments():
    stored = [Payment(method=PayMethod.DEBIT, amount=Decimal("400"))]
    ledger = PaymentLedger(total=1000, payments=stored)
    assert ledger.paid() == Decimal("400")
    assert ledger.balance() == Decimal("600")
    ledger.register(PayMethod.CASH, 600)
    assert ledger.is_settled()


def test_correction_follows_method_rules():
    ledger = PaymentLedger(total=1000)
    ledger.register(PayMethod.DEBIT, 1000)
    with pytest.raises(MethodNotAllowed):
        ledger.replace_all([PaymentRow(method=PayMethod.VOUCHER, amount=Decimal("1000"))], "voucher")

    promo = PaymentLedger(total=2000, constraints=PaymentConstraints(min_cash=Decimal("800")))
    promo.register(PayMethod.CASH, 800)
    promo.register(PayMethod.DEBIT, 1200)
    with pytest.raises(ExceedsMethodCap) as ei:
        promo.replace_all([PaymentRow(method=PayMethod.CASH, amount=Decimal("500")),
                           PaymentRow(method=PayMethod.CREDIT, amount=Decimal("1500"))], "card")
    assert ei.value.cap == Decimal("1200")
    assert promo.cash_total() == Decimal("800")

    promo.replace_all([PaymentRow(method=PayMethod.CASH, amount=Decimal("800")),
                       PaymentRow(method=PayMethod.CREDIT, amount=Decimal("1200"))], "credit, not debit")
    assert [p.method for p in promo.payments] == [PayMethod.CASH, PayMethod.CREDIT]


def test_quick_amounts():
    assert quick_amounts(3200) == [Decimal("4000"), Decimal("5000"), Decimal("10000"), Decimal("20000")]
    assert quick_amounts(1000) == [Decimal("2000"), Decimal("5000"), Decimal("10000"), Decimal("20000")]
    assert quick_amounts(25000) == [Decimal("26000"), Decimal("30000"), Decimal("40000")]
