"""
Concurrent note creation against the same product.
Each thread runs in its own scoped session, as concurrent requests would.
"""

import threading

import pytest

from delivery_notes.database import get_session
from delivery_notes.exceptions import InsufficientStockError, ConcurrencyConflict
from delivery_notes.models import Note
from delivery_notes.services import catalog_service, note_service


def test_two_creates_cannot_oversell(session, warehouse, make_header, quantity_of):
    product = catalog_service.create_product(session, warehouse.id, 'HOT-1', 'Hot Item', '5.00', 100)
    product_id = product.id
    barrier = threading.Barrier(2)
    outcomes = []
    lock = threading.Lock()

    def submit(code):
        thread_session = get_session()
        try:
            barrier.wait()
            note_service.create_note(thread_session, make_header(code=code), [(product_id, 60)])
            result = 'ok'
        except (InsufficientStockError, ConcurrencyConflict) as e:
            result = e
        finally:
            thread_session.remove()
        with lock:
            outcomes.append(result)

    threads = [threading.Thread(target=submit, args=(f'RACE-{i}',)) for i in range(2)]
    for t in threads:
        t.start()
    for t in threads:
        t.join(timeout=60)

    assert len(outcomes) == 2
    assert outcomes.count('ok') == 1
    failure = next(o for o in outcomes if o != 'ok')
    assert isinstance(failure, (InsufficientStockError, ConcurrencyConflict))
    assert quantity_of(product_id) == 40
    assert session.query(Note).count() == 1


def test_sequential_creates_see_updated_stock(session, product_p1, make_header, quantity_of):
    note_service.create_note(session, make_header(code='SEQ-1'), [(product_p1.id, 30)])

    with pytest.raises(InsufficientStockError) as exc_info:
        note_service.create_note(session, make_header(code='SEQ-2'), [(product_p1.id, 30)])

    assert exc_info.value.available == 20
    assert quantity_of(product_p1.id) == 20
