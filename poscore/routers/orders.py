from fastapi import APIRouter, Depends

from poscore.deps import get_repo, require_auth, require_perm
from poscore.errors import ValidationError
from poscore.schemas.orders import (
    AddItemIn, CancelIn, CorrectionIn, LineUpdateIn, OrderConfig, OrderIn, OrderOut, PaymentIn,
    TimelineEntry, TipIn,
)
from poscore.services.billing import quick_amounts
from poscore.services.lifecycle import OrderLifecycle
from poscore.services.order_service import OrderService
from poscore.services.repository import SqlRepository

router = APIRouter(prefix="/orders", tags=["orders"])


def _out(lc: OrderLifecycle) -> OrderOut:
    return OrderOut(
        id=lc.id,
        branch_id=lc.branch_id,
        state=lc.state,
        config=lc.config,
        items=lc.cart.items,
        payments=lc.ledger.payments,
        totals=lc.totals(),
        paid=lc.ledger.paid(),
        balance=lc.ledger.balance(),
        can_dispatch=lc.can_dispatch,
    )


@router.post("/", response_model=OrderOut)
def open_order(body: OrderIn, repo: SqlRepository = Depends(get_repo), sub: str = Depends(require_auth)):
    svc = OrderService.start(repo, body.branch_id, body.config, actor_id=sub)
    return _out(svc.lifecycle)


@router.get("/{order_id}", response_model=OrderOut)
def get_order(order_id: str, repo: SqlRepository = Depends(get_repo), sub: str = Depends(require_auth)):
    return _out(OrderService.open(repo, order_id, sub).lifecycle)


@router.get("/{order_id}/timeline", response_model=list[TimelineEntry])
def order_timeline(order_id: str, repo: SqlRepository = Depends(get_repo), sub: str = Depends(require_auth)):
    return OrderService.open(repo, order_id, sub).lifecycle.timeline()


@router.get("/{order_id}/quick-amounts")
def order_quick_amounts(order_id: str, repo: SqlRepository = Depends(get_repo), sub: str = Depends(require_auth)):
    """Suggested cash tenders for the pending balance."""
    balance = OrderService.open(repo, order_id, sub).lifecycle.ledger.balance()
    return {"balance": balance, "options": quick_amounts(balance)}


@router.put("/{order_id}/config", response_model=OrderOut)
def configure_order(order_id: str, body: OrderConfig, repo: SqlRepository = Depends(get_repo),
                    sub: str = Depends(require_auth)):
    svc = OrderService.open(repo, order_id, sub)
    svc.configure(body)
    return _out(svc.lifecycle)


# ---------- cart ----------

@router.post("/{order_id}/items", response_model=OrderOut)
def add_item(order_id: str, body: AddItemIn, repo: SqlRepository = Depends(get_repo),
             sub: str = Depends(require_auth)):
    svc = OrderService.open(repo, order_id, sub)
    svc.add_item(body.item_id, body.selections, body.quantity, body.note)
    return _out(svc.lifecycle)


@router.patch("/{order_id}/items/{line_id}", response_model=OrderOut)
def update_item(order_id: str, line_id: str, body: LineUpdateIn, repo: SqlRepository = Depends(get_repo),
                sub: str = Depends(require_auth)):
    if body.delta is None and body.note is None:
        raise ValidationError("nothing to update")
    svc = OrderService.open(repo, order_id, sub)
    svc.update_line(line_id, body.delta or 0, body.note)
    return _out(svc.lifecycle)


@router.delete("/{order_id}/items/{line_id}", response_model=OrderOut)
def remove_item(order_id: str, line_id: str, repo: SqlRepository = Depends(get_repo),
                sub: str = Depends(require_auth)):
    svc = OrderService.open(repo, order_id, sub)
    svc.remove_item(line_id)
    return _out(svc.lifecycle)


@router.put("/{order_id}/tip", response_model=OrderOut)
def set_tip(order_id: str, body: TipIn, repo: SqlRepository = Depends(get_repo), sub: str = Depends(require_auth)):
    svc = OrderService.open(repo, order_id, sub)
    svc.set_tip(body.amount)
    return _out(svc.lifecycle)


# ---------- payments ----------

@router.post("/{order_id}/payments")
def add_payment(order_id: str, body: PaymentIn, repo: SqlRepository = Depends(get_repo),
                sub: str = Depends(require_auth)):
    svc = OrderService.open(repo, order_id, sub)
    payment = svc.register_payment(body.method, body.amount, body.tendered, body.id)
    return {"payment": payment, "order": _out(svc.lifecycle)}


@router.delete("/{order_id}/payments/{payment_id}", response_model=OrderOut)
def remove_payment(order_id: str, payment_id: str, repo: SqlRepository = Depends(get_repo),
                   sub: str = Depends(require_auth)):
    svc = OrderService.open(repo, order_id, sub)
    svc.remove_payment(payment_id)
    return _out(svc.lifecycle)


@router.put("/{order_id}/payments")
def correct_payments(order_id: str, body: CorrectionIn, repo: SqlRepository = Depends(get_repo),
                     sub: str = Depends(require_perm("PAYMENT_EDIT"))):
    svc = OrderService.open(repo, order_id, sub)
    correction = svc.correct_payments(body.payments, body.reason)
    return {"correction": correction, "order": _out(svc.lifecycle)}


# ---------- kitchen / cancel ----------

@router.post("/{order_id}/dispatch", response_model=OrderOut)
def dispatch_order(order_id: str, repo: SqlRepository = Depends(get_repo), sub: str = Depends(require_auth)):
    svc = OrderService.open(repo, order_id, sub)
    svc.dispatch()
    return _out(svc.lifecycle)


@router.post("/{order_id}/cancel")
def cancel_order(order_id: str, body: CancelIn, repo: SqlRepository = Depends(get_repo),
                 sub: str = Depends(require_auth)):
    svc = OrderService.open(repo, order_id, sub)
    refunds = svc.cancel(body.refund_acknowledged, body.reason)
    return {"refunds": refunds, "order": _out(svc.lifecycle)}
