import datetime as dt

from fastapi import APIRouter, Depends

from poscore.deps import get_repo, require_auth, require_perm
from poscore.models.enums import ShiftType
from poscore.schemas.closure import ClosureResult, ShiftClosureInput, ShiftClosureRecord
from poscore.services.closure_service import get_closure, preview_closure, save_closure
from poscore.services.repository import SqlRepository

router = APIRouter(prefix="/closures", tags=["closures"])


@router.get("/{branch_id}/{date}/{shift}", response_model=ShiftClosureRecord)
def read_closure(branch_id: str, date: dt.date, shift: ShiftType,
                 repo: SqlRepository = Depends(get_repo), sub: str = Depends(require_auth)):
    return get_closure(repo, branch_id, date, shift)


@router.post("/preview", response_model=ClosureResult)
def preview(body: ShiftClosureInput, sub: str = Depends(require_auth)):
    """Run every check without storing anything, for the closing form's live alerts."""
    return preview_closure(body)


@router.put("/", response_model=ShiftClosureRecord)
def upsert_closure(body: ShiftClosureInput, repo: SqlRepository = Depends(get_repo),
                   sub: str = Depends(require_perm("SHIFT_CLOSE"))):
    return save_closure(repo, body, closed_by=sub)
