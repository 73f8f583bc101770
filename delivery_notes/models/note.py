"""Note model (outbound stock delivery note)."""
from decimal import Decimal
import enum

from sqlalchemy import Column, Integer, SmallInteger, String, Text, Numeric, DateTime, event, inspect
from sqlalchemy.orm import relationship
from sqlalchemy.types import TypeDecorator
from delivery_notes.database import Base
from delivery_notes.exceptions import (
    ImmutableNoteError, InvalidStatusError, InvalidStatusTransitionError
)


class NoteStatus(enum.IntEnum):
    """Note lifecycle stage. The numeric codes are the stored values."""
    CREATED = 1
    PROCESSING = 2
    SHIPPED = 3
    CLOSED = 4

    @classmethod
    def coerce(cls, value):
        """Accept a member, its numeric code or its name."""
        if isinstance(value, cls):
            return value
        if isinstance(value, str):
            candidate = value.strip()
            if candidate.isdigit():
                value = int(candidate)
            else:
                try:
                    return cls[candidate.upper()]
                except KeyError:
                    raise InvalidStatusError(value) from None
        if isinstance(value, bool):
            raise InvalidStatusError(value)
        try:
            return cls(value)
        except (ValueError, TypeError):
            raise InvalidStatusError(value) from None


# Any status may currently move to any status. Narrow the sets here to
# enforce a stricter lifecycle; Note.set_status is the only writer.
STATUS_TRANSITIONS = {status: frozenset(NoteStatus) for status in NoteStatus}


class NoteStatusType(TypeDecorator):
    """Stores NoteStatus as its numeric code."""
    impl = SmallInteger
    cache_ok = True

    def process_bind_param(self, value, dialect):
        if value is None:
            return None
        return int(NoteStatus.coerce(value))

    def process_result_value(self, value, dialect):
        if value is None:
            return None
        return NoteStatus(value)


class Note(Base):
    """Delivery note header with its stored total."""

    __tablename__ = 'note'

    id = Column(Integer, primary_key=True, autoincrement=True)
    code = Column(String(64), nullable=False, unique=True)
    creator_name = Column(String(120), nullable=False)
    customer_name = Column(String(255), nullable=False)
    customer_address = Column(String(255), nullable=False)
    reason = Column(Text, nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    status = Column(NoteStatusType(), nullable=False, default=NoteStatus.CREATED, index=True)
    total = Column(Numeric(10, 2), nullable=False, default=0)

    # Relationships
    lines = relationship(
        'NoteLine',
        back_populates='note',
        cascade='all, delete-orphan',
        passive_deletes=True,
        order_by='NoteLine.id'
    )

    def __repr__(self):
        status = self.status.name if self.status is not None else None
        return f"<Note(id={self.id}, code='{self.code}', status={status}, total={self.total})>"

    def set_status(self, new_status):
        """Validated setter for the only field that may change after creation."""
        new_status = NoteStatus.coerce(new_status)
        current = NoteStatus.coerce(self.status) if self.status is not None else NoteStatus.CREATED
        if new_status not in STATUS_TRANSITIONS[current]:
            raise InvalidStatusTransitionError(current, new_status)
        self.status = new_status
        return new_status

    @staticmethod
    def compute_total(lines):
        """Sum of the line subtotals."""
        return sum((line.subtotal for line in lines), Decimal('0.00')).quantize(Decimal('0.01'))


_FROZEN_NOTE_FIELDS = ('code', 'total', 'created_at')


@event.listens_for(Note, 'before_update')
def _reject_frozen_note_changes(mapper, connection, target):
    state = inspect(target)
    for field in _FROZEN_NOTE_FIELDS:
        if state.attrs[field].history.has_changes():
            raise ImmutableNoteError(f"Note {target.id}: '{field}' cannot change after creation")
