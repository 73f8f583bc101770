"""
Audit logging service for note ledger mutations.
Entries are written in the caller's transaction, so a rolled back
mutation leaves no trail.
"""
from delivery_notes.models.audit_log import AuditLog, AuditAction
from datetime import datetime, timezone
import json
import logging

logger = logging.getLogger(__name__)


def log_action(session, action: AuditAction, note_id: int, actor: str = None, details: dict = None):
    """
    Add an audit entry to the session.

    Args:
        session: Database session
        action: AuditAction enum value
        note_id: ID of the affected note
        actor: Name of whoever triggered the change
        details: Dict with the snapshot of the change (JSON encoded)

    Returns:
        The pending AuditLog entry. Caller is responsible for committing.
    """
    entry = AuditLog(
        action=action,
        note_id=note_id,
        actor=actor,
        details=json.dumps(details, default=str) if details else None,
        created_at=datetime.now(timezone.utc)
    )
    session.add(entry)
    logger.debug(f"Audit log queued: {action.value} on note {note_id} by {actor}")
    return entry


def get_note_history(session, note_id: int, limit: int = 100):
    """
    Audit entries of a note, oldest first.

    Args:
        session: Database session
        note_id: Note ID (deleted notes keep their history)
        limit: Max number of results

    Returns:
        List of AuditLog objects
    """
    return session.query(AuditLog).filter(
        AuditLog.note_id == note_id
    ).order_by(AuditLog.created_at, AuditLog.id).limit(limit).all()


def decode_details(entry: AuditLog) -> dict:
    """Details of an entry as a dict."""
    if not entry.details:
        return {}
    return json.loads(entry.details)
