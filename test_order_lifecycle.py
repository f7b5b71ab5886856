import random
from datetime import datetime, timedelta, timezone
from decimal import Decimal

import pytest

from poscore.errors import (
    ExceedsMethodCap, IllegalTransition, MissingChannelFields, NotSettled, OrderLocked, PosError,
    RefundRequired, TotalBelowPaid,
)
from poscore.models.enums import InvoiceType, OnlineProvider, OrderChannel, OrderState, PayMethod
from poscore.schemas.orders import OrderConfig, PaymentRow, Selection
from poscore.services.lifecycle import OrderLifecycle, missing_channel_fields

DINE_IN = OrderConfig(channel=OrderChannel.DINE_IN, caller_number="17")


def new_order(catalog, config=DINE_IN):
    lc = OrderLifecycle("branch-1", catalog)
    lc.configure(config)
    return lc


def sodas(lc, catalog, qty=1):
    return lc.add_item(catalog.fetch_item("soda"), quantity=qty)


# ── configuration ───────────────────────────────────────────────────────────

def test_configure_requires_channel_fields(catalog):
    lc = OrderLifecycle("branch-1", catalog)
    assert lc.state == OrderState.NOT_STARTED
    with pytest.raises(MissingChannelFields) as ei:
        lc.configure(OrderConfig(channel=OrderChannel.DINE_IN))
    assert ei.value.fields == ["caller_number"]
    assert lc.state == OrderState.CONFIGURING

    lc.configure(OrderConfig(channel=OrderChannel.DINE_IN, table_id="T4"))
    assert lc.state == OrderState.BUILDING


@pytest.mark.parametrize("config,missing", [
    (OrderConfig(channel=OrderChannel.TAKEAWAY), ["customer_name"]),
    (OrderConfig(channel=OrderChannel.TAKEAWAY, caller_number="3"), []),
    (OrderConfig(channel=OrderChannel.DELIVERY, customer_name="Ana"), ["customer_phone", "delivery_address"]),
    (OrderConfig(channel=OrderChannel.ONLINE, customer_name="Ana", customer_phone="1",
                 delivery_address="Main 1"), ["provider"]),
    (OrderConfig(channel=OrderChannel.DINE_IN, caller_number="9", invoice_type=InvoiceType.TAX_INVOICE,
                 legal_name="Acme SA"), ["tax_id"]),
])
def test_missing_channel_fields(config, missing):
    assert missing_channel_fields(config) == missing


def test_cart_closed_until_configured(catalog):
    lc = OrderLifecycle("branch-1", catalog)
    with pytest.raises(IllegalTransition):
        sodas(lc, catalog)


# ── settlement ──────────────────────────────────────────────────────────────

def test_split_payment_scenario(catalog):
    lc = new_order(catalog)
    sodas(lc, catalog, 6)
    assert lc.totals()["total"] == Decimal("3000")
    assert lc.state == OrderState.BUILDING

    cash = lc.register_payment(PayMethod.CASH, 2000, tendered=2500)
    assert cash.change == Decimal("500")
    assert lc.state == OrderState.AWAITING_SETTLEMENT
    card = lc.register_payment(PayMethod.DEBIT, 1000)
    assert lc.state == OrderState.SETTLED
    assert lc.can_dispatch

    lc.remove_payment(card.id)
    assert lc.ledger.balance() == Decimal("1000")
    assert lc.state == OrderState.AWAITING_SETTLEMENT
    assert not lc.can_dispatch
    with pytest.raises(NotSettled):
        lc.dispatch()

    lc.register_payment(PayMethod.CREDIT, 1000)
    lc.dispatch()
    assert lc.state == OrderState.DISPATCHED
    assert lc.dispatched_at is not None


def test_dispatched_order_is_locked(catalog):
    lc = new_order(catalog)
    line = sodas(lc, catalog)
    p = lc.register_payment(PayMethod.QR, 500)
    lc.dispatch()
    with pytest.raises(OrderLocked):
        sodas(lc, catalog)
    with pytest.raises(OrderLocked):
        lc.remove_item(line.id)
    with pytest.raises(OrderLocked):
        lc.remove_payment(p.id)
    with pytest.raises(IllegalTransition):
        lc.dispatch()
    with pytest.raises(IllegalTransition):
        lc.cancel(refund_acknowledged=True)


def test_retried_payment_after_dispatch_returns_stored(catalog):
    lc = new_order(catalog)
    sodas(lc, catalog)
    p = lc.register_payment(PayMethod.QR, 500, payment_id="qr-1")
    lc.dispatch()
    assert lc.register_payment(PayMethod.QR, 500, payment_id="qr-1") is p
    assert lc.ledger.paid() == Decimal("500")
    with pytest.raises(OrderLocked):
        lc.register_payment(PayMethod.QR, 500, payment_id="qr-2")


def test_empty_cart_is_never_dispatchable(catalog):
    lc = new_order(catalog)
    assert lc.ledger.is_settled()
    assert lc.state == OrderState.BUILDING
    assert not lc.can_dispatch
    with pytest.raises(NotSettled):
        lc.dispatch()


def test_adding_after_settlement_reopens(catalog):
    lc = new_order(catalog)
    sodas(lc, catalog)
    lc.register_payment(PayMethod.DEBIT, 500)
    assert lc.state == OrderState.SETTLED

    sodas(lc, catalog)
    assert lc.state == OrderState.AWAITING_SETTLEMENT
    assert lc.ledger.balance() == Decimal("500")
    assert not lc.can_dispatch


def test_removal_below_paid_is_rolled_back(catalog):
    lc = new_order(catalog)
    line = sodas(lc, catalog, 2)
    lc.register_payment(PayMethod.DEBIT, 1000)

    with pytest.raises(TotalBelowPaid):
        lc.remove_item(line.id)
    with pytest.raises(TotalBelowPaid):
        lc.update_quantity(line.id, -1)
    assert len(lc.cart.items) == 1
    assert lc.cart.items[0].quantity == 2
    assert lc.state == OrderState.SETTLED
    assert lc.ledger.balance() == 0


def test_line_update_applies_note_and_quantity_together(catalog):
    lc = new_order(catalog)
    line = sodas(lc, catalog, 2)
    lc.register_payment(PayMethod.DEBIT, 1000)

    with pytest.raises(TotalBelowPaid):
        lc.update_line(line.id, -1, "no ice")
    assert lc.cart.get(line.id).note is None
    assert lc.cart.get(line.id).quantity == 2

    updated = lc.update_line(line.id, note="no ice")
    assert updated.note == "no ice"
    assert lc.state == OrderState.SETTLED


def test_removal_while_partially_paid(catalog):
    lc = new_order(catalog)
    line = sodas(lc, catalog, 3)
    lc.register_payment(PayMethod.CASH, 500)
    lc.update_quantity(line.id, -1)
    assert lc.ledger.balance() == Decimal("500")
    assert lc.state == OrderState.AWAITING_SETTLEMENT


def test_delivery_fee_and_tip(catalog):
    delivery = OrderConfig(channel=OrderChannel.DELIVERY, customer_name="Ana", customer_phone="555",
                           delivery_address="Main 1", delivery_fee=Decimal("300"))
    lc = new_order(catalog, delivery)
    sodas(lc, catalog)
    lc.set_tip(100)
    assert lc.totals() == {
        "subtotal": Decimal("500"), "delivery_fee": Decimal("300"),
        "tip": Decimal("100"), "total": Decimal("900"),
    }

    lc.register_payment(PayMethod.TRANSFER, 900)
    with pytest.raises(TotalBelowPaid):
        lc.set_tip(0)
    assert lc.tip == Decimal("100")

    # fee only applies to delivery channels
    takeaway = new_order(catalog, OrderConfig(channel=OrderChannel.TAKEAWAY, customer_name="Ana",
                                              delivery_fee=Decimal("300")))
    sodas(takeaway, catalog)
    assert takeaway.totals()["total"] == Decimal("500")


def test_reconfigure_keeps_cart(catalog):
    lc = new_order(catalog)
    sodas(lc, catalog)
    lc.configure(OrderConfig(channel=OrderChannel.TAKEAWAY, customer_name="Bob"))
    assert lc.state == OrderState.BUILDING
    assert lc.config.channel == OrderChannel.TAKEAWAY
    assert len(lc.cart.items) == 1


def test_promotion_reserves_cash(catalog):
    lc = new_order(catalog)
    lc.add_item(catalog.fetch_item("promo"))
    sodas(lc, catalog)
    assert lc.payment_constraints().min_cash == Decimal("800")
    with pytest.raises(ExceedsMethodCap):
        lc.register_payment(PayMethod.DEBIT, 1300)
    lc.register_payment(PayMethod.DEBIT, 500)
    lc.register_payment(PayMethod.CASH, 800)
    assert lc.can_dispatch


def test_voucher_only_on_marketplace(catalog):
    online = OrderConfig(channel=OrderChannel.ONLINE, provider=OnlineProvider.RAPPI, customer_name="Ana",
                         customer_phone="555", delivery_address="Main 1")
    lc = new_order(catalog, online)
    sodas(lc, catalog)
    lc.register_payment(PayMethod.VOUCHER, 500)
    assert lc.state == OrderState.SETTLED

    counter = new_order(catalog)
    sodas(counter, catalog)
    with pytest.raises(PosError):
        counter.register_payment(PayMethod.VOUCHER, 500)


# ── cancel / correction ─────────────────────────────────────────────────────

def test_cancel_without_payments(catalog):
    lc = new_order(catalog)
    sodas(lc, catalog)
    assert lc.cancel() == []
    assert lc.state == OrderState.CANCELLED
    with pytest.raises(IllegalTransition):
        sodas(lc, catalog)


def test_cancel_with_payments_needs_refund(catalog):
    lc = new_order(catalog)
    sodas(lc, catalog, 2)
    lc.register_payment(PayMethod.CASH, 400)
    with pytest.raises(RefundRequired):
        lc.cancel()
    assert lc.state == OrderState.AWAITING_SETTLEMENT
    refunds = lc.cancel(refund_acknowledged=True)
    assert [p.amount for p in refunds] == [Decimal("400")]
    assert lc.state == OrderState.CANCELLED


def test_correction_only_after_dispatch(catalog):
    lc = new_order(catalog)
    sodas(lc, catalog)
    lc.register_payment(PayMethod.CASH, 500)
    rows = [PaymentRow(method=PayMethod.DEBIT, amount=Decimal("500"))]
    with pytest.raises(IllegalTransition):
        lc.correct_payments(rows, "wrong method")

    lc.dispatch()
    fix = lc.correct_payments(rows, "wrong method")
    assert fix.cash_delta == Decimal("-500")
    assert lc.state == OrderState.DISPATCHED
    assert [p.method for p in lc.ledger.payments] == [PayMethod.DEBIT]


# ── queries ─────────────────────────────────────────────────────────────────

def test_timeline_merges_by_time(catalog):
    lc = new_order(catalog)
    t0 = datetime(2026, 1, 1, 20, 0, tzinfo=timezone.utc)
    first = sodas(lc, catalog)
    pay = lc.register_payment(PayMethod.CASH, 500)
    second = sodas(lc, catalog)
    first.created_at, pay.created_at, second.created_at = t0, t0 + timedelta(minutes=1), t0 + timedelta(minutes=2)

    assert [e.ref_id for e in lc.timeline()] == [first.id, pay.id, second.id]
    assert [e.kind for e in lc.timeline()] == ["ITEM", "PAYMENT", "ITEM"]


def test_snapshot_round_trip(catalog):
    lc = new_order(catalog)
    lc.add_item(catalog.fetch_item("burger"), [Selection(group_id="bread", option_id="a")])
    lc.register_payment(PayMethod.DEBIT, 600)

    again = OrderLifecycle.restore(lc.to_order(), catalog)
    assert again.id == lc.id
    assert again.state == OrderState.AWAITING_SETTLEMENT
    assert again.ledger.balance() == Decimal("400")
    again.register_payment(PayMethod.CASH, 400)
    assert again.can_dispatch


@pytest.mark.parametrize("seed", range(25))
def test_balance_invariant_under_random_operations(catalog, seed):
    rnd = random.Random(seed)
    lc = new_order(catalog)
    methods = [PayMethod.CASH, PayMethod.DEBIT, PayMethod.QR, PayMethod.VOUCHER]

    for _ in range(40):
        op = rnd.choice(["add", "qty", "remove", "pay", "unpay", "tip", "dispatch"])
        try:
            if op == "add":
                name = rnd.choice(["soda", "promo", "burger"])
                sel = [Selection(group_id="bread", option_id="a")] if name == "burger" else []
                lc.add_item(catalog.fetch_item(name), sel, quantity=rnd.randint(1, 3))
            elif op == "qty" and lc.cart.items:
                lc.update_quantity(rnd.choice(lc.cart.items).id, rnd.choice([-2, -1, 1]))
            elif op == "remove" and lc.cart.items:
                lc.remove_item(rnd.choice(lc.cart.items).id)
            elif op == "pay":
                lc.register_payment(rnd.choice(methods), rnd.choice([100, 250, 500, 1000, 1800]),
                                    tendered=2000)
            elif op == "unpay" and lc.ledger.payments:
                lc.remove_payment(rnd.choice(lc.ledger.payments).id)
            elif op == "tip":
                lc.set_tip(rnd.choice([0, 50, 100]))
            elif op == "dispatch":
                lc.dispatch()
        except PosError:
            pass

        total = lc.totals()["total"]
        balance = lc.ledger.balance()
        assert balance == total - lc.ledger.paid()
        assert balance >= 0, f"negative balance after {op}"
        if balance > 0:
            assert not lc.can_dispatch
            assert lc.state != OrderState.DISPATCHED
        if lc.state == OrderState.DISPATCHED:
            break
