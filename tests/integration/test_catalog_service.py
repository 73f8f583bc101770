"""
Integration tests for the catalog service.
"""

import pytest
from decimal import Decimal

from delivery_notes.exceptions import (
    ValidationError, NotFoundError, UnknownProductError, NegativeStockError
)
from delivery_notes.services import catalog_service, note_service


class TestProductRegistration:

    def test_create_product(self, session, warehouse):
        product = catalog_service.create_product(session, warehouse.id, 'SKU-1', 'Bolt', '0.35', 500)

        assert product.id is not None
        assert product.price == Decimal('0.35')
        assert product.quantity == 500
        assert product.warehouse.name == 'Main Warehouse'

    def test_product_code_unique(self, session, warehouse, product_p1):
        with pytest.raises(ValidationError, match="already exists"):
            catalog_service.create_product(session, warehouse.id, 'P1', 'Other', '1.00', 1)

    @pytest.mark.parametrize('price, quantity', [('-1', 5), ('1.00', -5), ('abc', 5), ('1.00', 2.5)])
    def test_rejects_invalid_price_or_quantity(self, session, warehouse, price, quantity):
        with pytest.raises(ValidationError):
            catalog_service.create_product(session, warehouse.id, 'X1', 'Broken', price, quantity)

    def test_unknown_warehouse(self, session):
        with pytest.raises(NotFoundError):
            catalog_service.create_product(session, 999, 'X1', 'Orphan', '1.00', 1)

    def test_warehouse_name_unique(self, session, warehouse):
        with pytest.raises(ValidationError):
            catalog_service.create_warehouse(session, 'Main Warehouse')


class TestReads:

    def test_get_product_and_exists(self, session, product_p1):
        assert catalog_service.get_product(session, product_p1.id).code == 'P1'
        assert catalog_service.product_exists(session, product_p1.id) is True
        assert catalog_service.get_product(session, 999) is None
        assert catalog_service.product_exists(session, 999) is False

    def test_lock_products_skips_unknown_ids(self, session, product_p1, product_p2):
        locked = catalog_service.lock_products(session, [product_p2.id, 999, product_p1.id])
        assert set(locked) == {product_p1.id, product_p2.id}
        session.rollback()

    def test_list_products_search_and_low_stock(self, session, warehouse, product_p1, product_p2):
        low = catalog_service.create_product(session, warehouse.id, 'P3', 'Widget Mini', '1.00', 3)

        assert [p.code for p in catalog_service.list_products(session, search='widget')] == ['P1', 'P3']
        assert [p.code for p in catalog_service.list_products(session, low_stock=True)] == [low.code]
        assert catalog_service.count_low_stock(session) == 1


class TestDecrementQuantity:

    def test_decrement(self, session, product_p1, quantity_of):
        product = catalog_service.decrement_quantity(session, product_p1.id, 20)
        session.commit()

        assert product.quantity == 30
        assert quantity_of(product_p1.id) == 30

    def test_decrement_to_exactly_zero(self, session, product_p1, quantity_of):
        catalog_service.decrement_quantity(session, product_p1.id, 50)
        session.commit()
        assert quantity_of(product_p1.id) == 0

    def test_rejects_instead_of_clamping(self, session, product_p1, quantity_of):
        with pytest.raises(NegativeStockError) as exc_info:
            catalog_service.decrement_quantity(session, product_p1.id, 51)
        session.rollback()

        assert exc_info.value.available == 50
        assert quantity_of(product_p1.id) == 50

    def test_unknown_product(self, session):
        with pytest.raises(UnknownProductError):
            catalog_service.decrement_quantity(session, 999, 1)
        session.rollback()

    @pytest.mark.parametrize('amount', [0, -3, True, 1.5])
    def test_amount_must_be_positive_integer(self, session, product_p1, amount):
        with pytest.raises(ValidationError):
            catalog_service.decrement_quantity(session, product_p1.id, amount)


class TestProductMaintenance:

    def test_restock_and_reprice(self, session, product_p1, quantity_of):
        product = catalog_service.update_product(session, product_p1.id, price='12.5', quantity=80)

        assert product.price == Decimal('12.50')
        assert quantity_of(product_p1.id) == 80

    def test_only_given_fields_change(self, session, product_p1):
        catalog_service.update_product(session, product_p1.id, name='Widget XL')

        session.expire_all()
        product = catalog_service.get_product(session, product_p1.id)
        assert (product.code, product.name, product.price, product.quantity) == ('P1', 'Widget XL', Decimal('10.00'), 50)

    def test_move_to_another_warehouse(self, session, product_p1):
        other = catalog_service.create_warehouse(session, 'Overflow')
        product = catalog_service.update_product(session, product_p1.id, warehouse_id=other.id)
        assert product.warehouse.name == 'Overflow'

    def test_code_taken_by_another_product(self, session, product_p1, product_p2):
        with pytest.raises(ValidationError, match='already exists'):
            catalog_service.update_product(session, product_p2.id, code='P1')

        session.expire_all()
        assert catalog_service.get_product(session, product_p2.id).code == 'P2'

    @pytest.mark.parametrize('changes', [
        {'price': '-1'}, {'price': 'free'}, {'quantity': -1}, {'quantity': 1.5}, {'code': '  '}, {'name': ''},
    ])
    def test_rejects_invalid_changes(self, session, product_p1, quantity_of, changes):
        with pytest.raises(ValidationError):
            catalog_service.update_product(session, product_p1.id, **changes)
        assert quantity_of(product_p1.id) == 50

    def test_unknown_product_or_warehouse(self, session, product_p1):
        with pytest.raises(UnknownProductError):
            catalog_service.update_product(session, 999, quantity=5)
        with pytest.raises(NotFoundError):
            catalog_service.update_product(session, product_p1.id, warehouse_id=999)

    def test_delete_unused_product(self, session, product_p1):
        catalog_service.delete_product(session, product_p1.id)
        assert catalog_service.product_exists(session, product_p1.id) is False

    def test_product_on_a_note_cannot_be_deleted(self, session, product_p1, make_header):
        note_service.create_note(session, make_header(), [(product_p1.id, 1)])

        with pytest.raises(ValidationError, match='on 1 note'):
            catalog_service.delete_product(session, product_p1.id)
        assert catalog_service.product_exists(session, product_p1.id) is True

    def test_delete_unknown_product(self, session):
        with pytest.raises(UnknownProductError):
            catalog_service.delete_product(session, 999)


class TestWarehouseListing:

    def test_list_warehouses_by_name(self, session, warehouse, product_p1, product_p2):
        catalog_service.create_warehouse(session, 'Annex', '9 Side Street')

        warehouses = catalog_service.list_warehouses(session)

        assert [w.name for w in warehouses] == ['Annex', 'Main Warehouse']
        assert [len(w.products) for w in warehouses] == [0, 2]
