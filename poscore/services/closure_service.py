import datetime as dt
import logging

from poscore.errors import NotFound
from poscore.models.enums import ShiftType
from poscore.schemas.closure import ClosureResult, ShiftClosureInput, ShiftClosureRecord
from poscore.services.reconciliation import ReconciliationPolicy, reconcile
from poscore.services.repository import Repository

log = logging.getLogger(__name__)


def preview_closure(data: ShiftClosureInput, policy: ReconciliationPolicy | None = None) -> ClosureResult:
    return reconcile(data, policy)


def save_closure(repo: Repository, data: ShiftClosureInput, closed_by: str | None = None,
                 policy: ReconciliationPolicy | None = None) -> ShiftClosureRecord:
    """Reconcile and store; alerts are recorded, never a reason to refuse."""
    record = ShiftClosureRecord(input=data, result=reconcile(data, policy), closed_by=closed_by)
    repo.save_closure(record)
    log.info("closure saved %s %s %s (alert=%s)", data.branch_id, data.date, data.shift.value,
             record.result.has_alert)
    return record


def get_closure(repo: Repository, branch_id: str, date: dt.date, shift: ShiftType) -> ShiftClosureRecord:
    record = repo.load_closure(branch_id, date, shift)
    if record is None:
        raise NotFound(f"no closure for {branch_id} {date} {shift.value}")
    return record
