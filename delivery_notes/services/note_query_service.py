"""
Read side of the note ledger: listing, paging and status counters.
Status counters go through the Redis cache and are invalidated by every
ledger write.
"""
import logging
import math
from dataclasses import dataclass, field
from datetime import date, datetime, time
from typing import Iterable, List, Optional, Union

from flask import current_app, has_app_context
from sqlalchemy import func
from sqlalchemy.orm import selectinload

from delivery_notes.models import Note, NoteLine, NoteStatus
from delivery_notes.exceptions import ValidationError
from delivery_notes.services.cache_service import CacheService, get_cache

logger = logging.getLogger(__name__)

NOTES_CACHE_MODULE = 'notes'
SORT_NEWEST = 'newest'
SORT_OLDEST = 'oldest'
DEFAULT_PAGE_SIZE = 10


@dataclass
class Page:
    """One page of a listing."""
    items: List[Note]
    page: int
    page_size: int
    total: int
    total_pages: int = field(init=False)

    def __post_init__(self):
        self.total_pages = max(1, math.ceil(self.total / self.page_size))

    @property
    def has_previous(self) -> bool:
        return self.page > 1

    @property
    def has_next(self) -> bool:
        return self.page < self.total_pages


def list_notes(
    session,
    code_contains: str = None,
    created_from: Union[date, datetime, None] = None,
    created_to: Union[date, datetime, None] = None,
    sort: Optional[str] = None,
    page: int = 1,
    page_size: int = None
) -> Page:
    """
    Filtered, sorted, paginated notes with their lines loaded.

    Args:
        session: SQLAlchemy session
        code_contains: Case-insensitive substring of the note code
        created_from: Lower bound of created_at, inclusive
        created_to: Upper bound of created_at, inclusive (a date covers the whole day)
        sort: 'newest', 'oldest' or None for insertion order
        page: 1-based page number, clamped to the available pages
        page_size: Defaults to NOTES_PAGE_SIZE

    The date filter only applies when both bounds are given.
    """
    if page_size is None:
        page_size = current_app.config.get('NOTES_PAGE_SIZE', DEFAULT_PAGE_SIZE) if has_app_context() else DEFAULT_PAGE_SIZE
    if isinstance(page_size, bool) or not isinstance(page_size, int) or page_size <= 0:
        raise ValidationError(f'page_size must be a positive integer, got {page_size!r}')
    if sort not in (None, SORT_NEWEST, SORT_OLDEST):
        raise ValidationError(f"sort must be '{SORT_NEWEST}' or '{SORT_OLDEST}', got {sort!r}")

    query = session.query(Note)

    if code_contains:
        query = query.filter(Note.code.ilike(f'%{code_contains.strip()}%'))

    if created_from is not None and created_to is not None:
        query = query.filter(
            Note.created_at >= _start_of(created_from),
            Note.created_at <= _end_of(created_to)
        )

    if sort == SORT_NEWEST:
        query = query.order_by(Note.created_at.desc(), Note.id.desc())
    elif sort == SORT_OLDEST:
        query = query.order_by(Note.created_at.asc(), Note.id.asc())
    else:
        query = query.order_by(Note.id)

    total = query.count()
    result = Page(items=[], page=1, page_size=page_size, total=total)
    result.page = min(max(1, page or 1), result.total_pages)

    result.items = query.options(
        selectinload(Note.lines).joinedload(NoteLine.product)
    ).offset((result.page - 1) * page_size).limit(page_size).all()

    return result


def list_all_notes(session, created_from=None, created_to=None) -> List[Note]:
    """Every note in the date range (both bounds required), oldest first. Used by exports."""
    query = session.query(Note).options(selectinload(Note.lines).joinedload(NoteLine.product))
    if created_from is not None and created_to is not None:
        query = query.filter(
            Note.created_at >= _start_of(created_from),
            Note.created_at <= _end_of(created_to)
        )
    return query.order_by(Note.created_at, Note.id).all()


def count_by_status(session, status) -> int:
    """Number of notes in a status (cached)."""
    status = NoteStatus.coerce(status)

    def _load():
        return session.query(func.count(Note.id)).filter(Note.status == status).scalar() or 0

    cache = _cache()
    if cache is None:
        return _load()
    return cache.memoize(NOTES_CACHE_MODULE, f'count:{int(status)}', _load, _notes_ttl())


def any_status_in(session, statuses: Iterable) -> bool:
    """Whether any note is in one of the statuses (cached)."""
    wanted = sorted({NoteStatus.coerce(s) for s in statuses})
    if not wanted:
        return False

    def _load():
        return session.query(Note.id).filter(Note.status.in_(wanted)).first() is not None

    cache = _cache()
    if cache is None:
        return _load()
    key = 'any:' + '-'.join(str(int(s)) for s in wanted)
    return cache.memoize(NOTES_CACHE_MODULE, key, _load, _notes_ttl())


def invalidate_status_counts() -> None:
    """Drop cached counters after a ledger write."""
    cache = _cache()
    if cache is not None:
        cache.invalidate_module(NOTES_CACHE_MODULE)


# =====================================================
# PRIVATE HELPERS
# =====================================================

def _cache() -> Optional[CacheService]:
    try:
        return get_cache()
    except RuntimeError:
        logger.debug("[CACHE] Not initialized, reading status counters from the database")
        return None


def _notes_ttl() -> Optional[int]:
    if has_app_context():
        return current_app.config.get('CACHE_NOTES_TTL')
    return None


def _start_of(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.min)


def _end_of(value: Union[date, datetime]) -> datetime:
    if isinstance(value, datetime):
        return value
    return datetime.combine(value, time.max)
