"""
Unit tests for the note models (no database).
"""

import pytest
from decimal import Decimal

from delivery_notes.exceptions import InvalidStatusError, InvalidStatusTransitionError
from delivery_notes.models import Note, NoteLine, NoteStatus
from delivery_notes.models import note as note_module


class TestNoteStatus:
    """Tests for NoteStatus.coerce."""

    def test_numeric_codes_are_preserved(self):
        assert [int(s) for s in NoteStatus] == [1, 2, 3, 4]

    @pytest.mark.parametrize('value, expected', [
        (NoteStatus.SHIPPED, NoteStatus.SHIPPED),
        (2, NoteStatus.PROCESSING),
        ('4', NoteStatus.CLOSED),
        ('created', NoteStatus.CREATED),
        (' Shipped ', NoteStatus.SHIPPED),
    ])
    def test_coerce_accepts_members_codes_and_names(self, value, expected):
        assert NoteStatus.coerce(value) is expected

    @pytest.mark.parametrize('value', [0, 5, -1, 'archived', '', None, True, 2.5])
    def test_coerce_rejects_unknown_values(self, value):
        with pytest.raises(InvalidStatusError):
            NoteStatus.coerce(value)


class TestNoteSetStatus:
    """Tests for the single status setter."""

    def test_any_status_can_move_to_any_status(self):
        for current in NoteStatus:
            for requested in NoteStatus:
                note = Note(status=current)
                assert note.set_status(requested) is requested
                assert note.status is requested

    def test_backwards_move_allowed(self):
        note = Note(status=NoteStatus.CLOSED)
        note.set_status(1)
        assert note.status is NoteStatus.CREATED

    def test_invalid_value_leaves_status_untouched(self):
        note = Note(status=NoteStatus.PROCESSING)
        with pytest.raises(InvalidStatusError):
            note.set_status(9)
        assert note.status is NoteStatus.PROCESSING

    def test_stricter_transition_table_is_enforced(self, monkeypatch):
        strict = dict(note_module.STATUS_TRANSITIONS)
        strict[NoteStatus.CLOSED] = frozenset({NoteStatus.CLOSED})
        monkeypatch.setattr(note_module, 'STATUS_TRANSITIONS', strict)

        note = Note(status=NoteStatus.CLOSED)
        with pytest.raises(InvalidStatusTransitionError):
            note.set_status(NoteStatus.CREATED)
        assert note.status is NoteStatus.CLOSED


class TestNoteTotal:
    """Tests for Note.compute_total."""

    def test_total_is_sum_of_subtotals(self):
        lines = [
            NoteLine(quantity=20, unit_price=Decimal('10.00'), subtotal=Decimal('200.00')),
            NoteLine(quantity=3, unit_price=Decimal('2.50'), subtotal=Decimal('7.50')),
        ]
        assert Note.compute_total(lines) == Decimal('207.50')

    def test_total_of_no_lines_is_zero(self):
        assert Note.compute_total([]) == Decimal('0.00')
