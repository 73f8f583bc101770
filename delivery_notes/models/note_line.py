"""Note Line model."""
from sqlalchemy import Column, Integer, Numeric, ForeignKey, UniqueConstraint, CheckConstraint, event, inspect
from sqlalchemy.orm import relationship, Session
from delivery_notes.database import Base
from delivery_notes.exceptions import ImmutableNoteError
from delivery_notes.models.note import Note


class NoteLine(Base):
    """One product leaving the warehouse on a note, with its price snapshot."""

    __tablename__ = 'note_line'
    __table_args__ = (
        UniqueConstraint('note_id', 'product_id', name='uq_note_line_product'),
        CheckConstraint('quantity > 0', name='ck_note_line_quantity_positive'),
    )

    id = Column(Integer, primary_key=True, autoincrement=True)
    note_id = Column(Integer, ForeignKey('note.id', ondelete='CASCADE'), nullable=False, index=True)
    product_id = Column(Integer, ForeignKey('product.id'), nullable=False, index=True)
    quantity = Column(Integer, nullable=False)
    unit_price = Column(Numeric(10, 2), nullable=False)
    subtotal = Column(Numeric(10, 2), nullable=False)

    # Relationships
    note = relationship('Note', back_populates='lines')
    product = relationship('Product')

    def __repr__(self):
        return f"<NoteLine(id={self.id}, product_id={self.product_id}, quantity={self.quantity})>"


@event.listens_for(NoteLine, 'before_update')
def _reject_line_changes(mapper, connection, target):
    raise ImmutableNoteError(f"Line {target.id} of note {target.note_id} cannot change after creation")


@event.listens_for(Session, 'before_flush')
def _reject_line_set_changes(session, flush_context, instances):
    """
    The line set of a committed note is fixed: lines are only inserted
    together with a new note and only deleted together with their note.
    """
    for obj in session.new:
        if not isinstance(obj, NoteLine):
            continue
        if obj.note is None or inspect(obj.note).persistent:
            note_id = obj.note.id if obj.note is not None else obj.note_id
            raise ImmutableNoteError(f"Note {note_id}: lines cannot be added after creation")

    for obj in session.deleted:
        if isinstance(obj, NoteLine) and obj.note not in session.deleted:
            raise ImmutableNoteError(f"Note {obj.note_id}: lines cannot be removed after creation")

    for obj in session.dirty:
        if isinstance(obj, Note) and inspect(obj).attrs.lines.history.has_changes():
            raise ImmutableNoteError(f"Note {obj.id}: lines cannot be added or removed after creation")
