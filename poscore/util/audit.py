import json
from sqlalchemy.orm import Session
from poscore.models.core import AuditLog


def _dump(data) -> str | None:
    return json.dumps(data, default=str) if data else None


def log_audit(db: Session, actor_user_id: str | None, entity: str, entity_id: str,
              action: str, before=None, after=None, reason: str | None = None) -> AuditLog:
    """Stage an audit row; the caller's commit persists it with the change it describes."""
    entry = AuditLog(
        actor_user_id=actor_user_id,
        entity=entity, entity_id=entity_id,
        action=action,
        reason=reason,
        before=_dump(before),
        after=_dump(after),
    )
    db.add(entry)
    return entry
