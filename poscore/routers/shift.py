from datetime import datetime, timezone
from decimal import Decimal

from fastapi import APIRouter, Depends, HTTPException
from pydantic import BaseModel, Field

from poscore.deps import get_claims, get_repo, has_perm, require_auth, require_perm
from poscore.errors import ConsistencyError, NotFound
from poscore.models.core import Shift
from poscore.services.billing import money
from poscore.services.repository import SqlRepository
from poscore.util.audit import log_audit

router = APIRouter(prefix="/shift", tags=["shift"])


class ShiftOpenIn(BaseModel):
    branch_id: str
    opening_float: Decimal = Field(default=Decimal("0"), ge=0)


class CashMoveIn(BaseModel):
    amount: Decimal = Field(gt=0)
    reason: str | None = None


class ShiftCloseIn(BaseModel):
    actual_cash: Decimal = Field(ge=0)
    note: str | None = None


def _open_shift(repo: SqlRepository, shift_id: str) -> Shift:
    s = repo.db.get(Shift, shift_id)
    if not s:
        raise NotFound(f"shift {shift_id} not found")
    if s.locked or s.closed_at is not None:
        raise ConsistencyError("shift is already closed")
    return s


@router.post("/open")
def open_shift(body: ShiftOpenIn, repo: SqlRepository = Depends(get_repo), sub: str = Depends(require_auth)):
    if repo.find_open_shift(body.branch_id):
        raise ConsistencyError("branch already has an open shift")
    db = repo.db
    s = Shift(branch_id=body.branch_id, opened_by=sub, opened_at=datetime.now(timezone.utc),
              opening_float=money(body.opening_float))
    db.add(s); db.flush()
    log_audit(db, sub, "shift", s.id, "OPEN", after={"opening_float": s.opening_float})
    db.commit()
    return {"shift_id": s.id}


@router.post("/{shift_id}/payin")
def payin(shift_id: str, body: CashMoveIn, repo: SqlRepository = Depends(get_repo), sub: str = Depends(require_auth)):
    _open_shift(repo, shift_id)
    repo.record_cash_movement(shift_id, money(body.amount), body.reason or "Pay-in")
    return {"ok": True, "expected_cash": repo.expected_cash(shift_id)}


@router.post("/{shift_id}/payout")
def payout(shift_id: str, body: CashMoveIn, repo: SqlRepository = Depends(get_repo), sub: str = Depends(require_auth)):
    _open_shift(repo, shift_id)
    repo.record_cash_movement(shift_id, -money(body.amount), body.reason or "Pay-out")
    return {"ok": True, "expected_cash": repo.expected_cash(shift_id)}


@router.post("/{shift_id}/close")
def close_shift(shift_id: str, body: ShiftCloseIn, repo: SqlRepository = Depends(get_repo),
                sub: str = Depends(require_perm("SHIFT_CLOSE")), claims: dict = Depends(get_claims)):
    s = _open_shift(repo, shift_id)
    expected = repo.expected_cash(shift_id)
    actual = money(body.actual_cash)
    mismatch = actual - expected
    # require MANAGER_APPROVE when mismatch != 0
    if mismatch != 0 and not has_perm(claims, "MANAGER_APPROVE"):
        raise HTTPException(403, detail="Manager approval required for mismatch")
    s.expected_cash = expected
    s.actual_cash = actual
    s.close_note = body.note
    s.closed_by = sub
    s.closed_at = datetime.now(timezone.utc)
    s.locked = True
    log_audit(repo.db, sub, "shift", s.id, "CLOSE",
              after={"expected": expected, "actual": actual, "note": body.note})
    repo.db.commit()
    return {"ok": True, "expected_cash": expected, "mismatch": mismatch}
