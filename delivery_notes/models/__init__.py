"""Models package - exports all SQLAlchemy models."""
from delivery_notes.models.warehouse import Warehouse
from delivery_notes.models.product import Product
from delivery_notes.models.note import Note, NoteStatus, STATUS_TRANSITIONS
from delivery_notes.models.note_line import NoteLine
from delivery_notes.models.audit_log import AuditLog, AuditAction

__all__ = [
    'Warehouse', 'Product',
    'Note', 'NoteStatus', 'STATUS_TRANSITIONS', 'NoteLine',
    'AuditLog', 'AuditAction',
]
