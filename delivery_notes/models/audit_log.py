"""
Audit Log model for tracking ledger mutations.
"""
from sqlalchemy import Column, Integer, String, Text, DateTime, Enum as SQLEnum
from datetime import datetime, timezone
import enum

from delivery_notes.database import Base


class AuditAction(enum.Enum):
    """Enumeration of auditable actions."""
    CREATE_NOTE = "CREATE_NOTE"
    UPDATE_NOTE_STATUS = "UPDATE_NOTE_STATUS"
    DELETE_NOTE = "DELETE_NOTE"


class AuditLog(Base):
    """
    Append-only trail of note ledger mutations.

    note_id is a plain column, not a foreign key, so the trail of a
    deleted note survives the note itself.
    """
    __tablename__ = 'audit_log'

    id = Column(Integer, primary_key=True)
    action = Column(SQLEnum(AuditAction, name='audit_action'), nullable=False, index=True)
    note_id = Column(Integer, nullable=False, index=True)
    actor = Column(String(120))
    details = Column(Text)  # JSON with the snapshot of the change
    created_at = Column(DateTime(timezone=True), default=lambda: datetime.now(timezone.utc), nullable=False, index=True)

    def __repr__(self):
        return f"<AuditLog {self.action.value} note {self.note_id} at {self.created_at}>"
