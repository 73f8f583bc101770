"""
Note ledger service with transactional logic.
Handles note creation (stock decrement included), status changes and deletion.
"""
import logging
from dataclasses import dataclass, asdict
from datetime import datetime, timezone
from decimal import Decimal
from typing import Iterable, List, NamedTuple, Optional

from sqlalchemy.exc import IntegrityError, OperationalError
from sqlalchemy.orm import selectinload

from delivery_notes.models import Note, NoteLine, NoteStatus, AuditAction
from delivery_notes.exceptions import (
    NoteLedgerError, ValidationError, NotFoundError, DuplicateProductError,
    DuplicateNoteCodeError, UnknownProductError, InsufficientStockError,
    NegativeStockError, ConcurrencyConflict
)
from delivery_notes.services import catalog_service
from delivery_notes.services.audit_service import log_action
from delivery_notes.services.note_guard import find_duplicate_product_ids
from delivery_notes.services.note_query_service import invalidate_status_counts

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class NoteHeader:
    """Header fields of a note, all required."""
    code: str
    creator_name: str
    customer_name: str
    customer_address: str
    reason: str


class NoteLineSpec(NamedTuple):
    """A requested (product_id, quantity) pair."""
    product_id: int
    quantity: int


_HEADER_LABELS = {
    'code': 'Note code',
    'creator_name': 'Creator name',
    'customer_name': 'Customer',
    'customer_address': 'Customer address',
    'reason': 'Reason',
}


def create_note(session, header: NoteHeader, lines: Iterable, actor: str = None) -> int:
    """
    Validate and commit a new note, decrementing stock for every line.

    Steps:
    1. Reject empty line sets, blank header fields and non-positive quantities
    2. Reject duplicated products
    3. Reject a note code that is already taken
    4. Lock the product rows and resolve every line (first unknown id fails)
    5. Check stock for every line
    6. Insert note + lines with price snapshots, decrement stock, audit, commit

    Nothing is written unless every step passes; any failure rolls the
    session back, leaving the catalog untouched.

    Args:
        session: SQLAlchemy session
        header: NoteHeader
        lines: Ordered (product_id, quantity) pairs, NoteLineSpec or dicts
        actor: Who is recording the note (defaults to the creator name)

    Returns:
        ID of the new note

    Raises:
        ValidationError, DuplicateProductError, DuplicateNoteCodeError,
        UnknownProductError, InsufficientStockError, ConcurrencyConflict
    """
    items = _normalize_lines(lines)
    if not items:
        raise ValidationError('A note needs at least one product line')

    header = _clean_header(header)

    duplicates = find_duplicate_product_ids(items)
    if duplicates:
        logger.warning(f"Note {header.code} rejected: duplicated products {sorted(duplicates)}")
        raise DuplicateProductError(duplicates)

    try:
        # 1. Code must be free
        if session.query(Note.id).filter(Note.code == header.code).first() is not None:
            raise DuplicateNoteCodeError(header.code)

        # 2. Lock and resolve products, in request order
        products = catalog_service.lock_products(session, [item.product_id for item in items])
        for item in items:
            if item.product_id not in products:
                raise UnknownProductError(item.product_id)

        # 3. Validate stock
        for item in items:
            product = products[item.product_id]
            if item.quantity > product.quantity:
                raise InsufficientStockError(product.name, item.quantity, product.quantity, product_id=product.id)

        # 4. Create Note with its lines (price snapshot)
        note = Note(
            code=header.code,
            creator_name=header.creator_name,
            customer_name=header.customer_name,
            customer_address=header.customer_address,
            reason=header.reason,
            created_at=datetime.now(timezone.utc),
            status=NoteStatus.CREATED
        )
        for item in items:
            product = products[item.product_id]
            note.lines.append(NoteLine(
                product_id=product.id,
                quantity=item.quantity,
                unit_price=product.price,
                subtotal=(product.price * item.quantity).quantize(Decimal('0.01'))
            ))
        note.total = Note.compute_total(note.lines)

        session.add(note)
        session.flush()
        note_id = note.id

        # 5. Decrement stock
        for item in items:
            catalog_service.decrement_quantity(session, item.product_id, item.quantity)

        # 6. Audit trail
        log_action(session, AuditAction.CREATE_NOTE, note_id, actor or header.creator_name, details={
            'code': note.code,
            'total': note.total,
            'lines': [
                {'product_id': line.product_id, 'quantity': line.quantity, 'unit_price': line.unit_price}
                for line in note.lines
            ],
        })

        session.commit()

    except NegativeStockError as e:
        # Stock was taken by a concurrent commit after our check
        session.rollback()
        logger.warning(f"Note {header.code} lost a stock race: {e.message}")
        raise
    except NoteLedgerError as e:
        session.rollback()
        logger.warning(f"Note {header.code} rejected: {e.message}")
        raise
    except OperationalError as e:
        session.rollback()
        logger.warning(f"Note {header.code} rolled back on concurrent update: {e.orig}")
        raise ConcurrencyConflict() from e
    except IntegrityError as e:
        session.rollback()
        if session.query(Note.id).filter(Note.code == header.code).first() is not None:
            raise DuplicateNoteCodeError(header.code) from e
        logger.warning(f"Note {header.code} rolled back on integrity error: {e.orig}")
        raise ConcurrencyConflict() from e
    except Exception:
        session.rollback()
        raise

    logger.info(f"Note {note_id} ({header.code}) committed: {len(items)} lines, total {note.total}")
    invalidate_status_counts()
    return note_id


def update_status(session, note_id: int, new_status, actor: str = None) -> NoteStatus:
    """
    Set the status of a note. Only the status (and an audit entry) is written.

    Args:
        session: SQLAlchemy session
        note_id: Note ID
        new_status: NoteStatus, numeric code or name
        actor: Who triggered the change

    Returns:
        The status now stored

    Raises:
        InvalidStatusError: unknown status value
        InvalidStatusTransitionError: move forbidden by STATUS_TRANSITIONS
        NotFoundError: note does not exist
    """
    status = NoteStatus.coerce(new_status)

    try:
        note = session.get(Note, note_id, with_for_update=True, populate_existing=True)
        if note is None:
            raise NotFoundError(f'Note {note_id} not found')

        previous = note.status
        note.set_status(status)

        log_action(session, AuditAction.UPDATE_NOTE_STATUS, note.id, actor, details={
            'from': previous.name,
            'to': status.name,
        })
        session.commit()

    except NoteLedgerError:
        session.rollback()
        raise
    except OperationalError as e:
        session.rollback()
        raise ConcurrencyConflict() from e
    except Exception:
        session.rollback()
        raise

    logger.info(f"Note {note_id} status {previous.name} -> {status.name}")
    invalidate_status_counts()
    return status


def delete_note(session, note_id: int, actor: str = None) -> None:
    """
    Delete a note and its lines.

    Stock taken by the note is NOT restored: the catalog is left as is.

    Raises:
        NotFoundError: note does not exist
    """
    try:
        note = session.get(Note, note_id)
        if note is None:
            raise NotFoundError(f'Note {note_id} not found')

        snapshot = {
            'code': note.code,
            'status': note.status.name,
            'total': note.total,
            'lines': [{'product_id': line.product_id, 'quantity': line.quantity} for line in note.lines],
        }

        session.delete(note)
        log_action(session, AuditAction.DELETE_NOTE, note_id, actor, details=snapshot)
        session.commit()

    except NoteLedgerError:
        session.rollback()
        raise
    except OperationalError as e:
        session.rollback()
        raise ConcurrencyConflict() from e
    except Exception:
        session.rollback()
        raise

    logger.info(f"Note {note_id} ({snapshot['code']}) deleted, stock not restored")
    invalidate_status_counts()


def note_exists(session, note_id: int) -> bool:
    """Check whether a note id resolves."""
    return session.query(Note.id).filter(Note.id == note_id).first() is not None


def get_note_with_lines(session, note_id: int) -> Optional[Note]:
    """Note with its lines (ordered) and their products loaded, or None."""
    return session.query(Note).options(
        selectinload(Note.lines).joinedload(NoteLine.product)
    ).filter(Note.id == note_id).first()


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _normalize_lines(lines) -> List[NoteLineSpec]:
    """Turn pairs/dicts into NoteLineSpecs and check every quantity."""
    items = []
    for line in lines or []:
        if isinstance(line, dict):
            product_id, quantity = line.get('product_id'), line.get('quantity')
        else:
            try:
                product_id, quantity = line
            except (TypeError, ValueError):
                raise ValidationError(f'Invalid note line: {line!r}')

        if product_id is None:
            raise ValidationError('Every note line needs a product')
        if isinstance(product_id, bool) or not isinstance(product_id, int):
            raise ValidationError(f'Product id must be an integer, got {product_id!r}')
        if isinstance(quantity, bool) or not isinstance(quantity, int) or quantity <= 0:
            raise ValidationError(f'Quantity for product {product_id} must be a positive integer, got {quantity!r}')

        items.append(NoteLineSpec(product_id, quantity))
    return items


def _clean_header(header: NoteHeader) -> NoteHeader:
    """Strip header fields, rejecting blanks."""
    if header is None:
        raise ValidationError('Note header is required')
    values = asdict(header)
    for field, label in _HEADER_LABELS.items():
        value = values.get(field)
        if not isinstance(value, str) or not value.strip():
            raise ValidationError(f'{label} is required')
        values[field] = value.strip()
    return NoteHeader(**values)
