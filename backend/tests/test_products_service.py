# Overview: Pytest coverage for the product catalog.

import pytest

from stockledger.models import ProductCategory
from stockledger.services import products_service
from stockledger.validation import DuplicateName, InvalidShelfLife, ProductNotFound, ValidationError


class TestCreateProduct:

    def test_create_ingredient(self, db_session):
        p = products_service.create_product(
            name="  Flour ", category="INGREDIENT", unit="kg", shelf_life_days=90, low_stock_threshold=3
        )
        assert p.id is not None
        assert p.name == "Flour"
        assert p.category == ProductCategory.INGREDIENT
        assert p.shelf_life_days == 90
        assert p.is_archived is False

    def test_non_ingredient_drops_shelf_life(self, db_session):
        p = products_service.create_product(
            name="Napkins", category="NON_INGREDIENT", unit="pcs", shelf_life_days=30
        )
        assert p.shelf_life_days is None
        assert p.low_stock_threshold == 0

    @pytest.mark.parametrize("shelf_life", [None, 0, -3])
    def test_ingredient_requires_positive_shelf_life(self, db_session, shelf_life):
        with pytest.raises(InvalidShelfLife):
            products_service.create_product(
                name="Eggs", category="INGREDIENT", unit="pcs", shelf_life_days=shelf_life
            )

    def test_duplicate_active_name(self, db_session, milk):
        with pytest.raises(DuplicateName):
            products_service.create_product(
                name="milk", category="INGREDIENT", unit="L", shelf_life_days=5
            )

    def test_archived_name_can_be_reused(self, db_session, milk):
        products_service.archive_product(milk.id)
        again = products_service.create_product(
            name="Milk", category="INGREDIENT", unit="L", shelf_life_days=7
        )
        assert again.id != milk.id

    @pytest.mark.parametrize("field,value", [
        ("name", "   "),
        ("unit", ""),
        ("category", "SPICE"),
        ("low_stock_threshold", -1),
    ])
    def test_invalid_fields(self, db_session, field, value):
        kwargs = dict(name="Sugar", category="INGREDIENT", unit="kg", shelf_life_days=365, low_stock_threshold=0)
        kwargs[field] = value
        with pytest.raises(ValidationError):
            products_service.create_product(**kwargs)


class TestUpdateProduct:

    def test_update_editable_fields(self, db_session, milk):
        p = products_service.update_product(milk.id, {"unit": "ml", "low_stock_threshold": 9, "shelf_life_days": 12})
        assert p.unit == "ml"
        assert p.low_stock_threshold == 9
        assert p.shelf_life_days == 12

    def test_category_is_immutable(self, db_session, milk):
        with pytest.raises(ValidationError):
            products_service.update_product(milk.id, {"category": "NON_INGREDIENT"})

    def test_same_category_is_accepted(self, db_session, milk):
        p = products_service.update_product(milk.id, {"category": "INGREDIENT", "unit": "L"})
        assert p.category == ProductCategory.INGREDIENT

    def test_rename_to_existing_name(self, db_session, milk, cups):
        with pytest.raises(DuplicateName):
            products_service.update_product(cups.id, {"name": "MILK"})

    def test_shelf_life_on_non_ingredient_is_dropped(self, db_session, cups):
        updated = products_service.update_product(cups.id, {"shelf_life_days": 10, "unit": "box"})
        assert updated.shelf_life_days is None
        assert updated.unit == "box"

    def test_ingredient_shelf_life_update_is_validated(self, db_session, milk):
        with pytest.raises(InvalidShelfLife):
            products_service.update_product(milk.id, {"shelf_life_days": 0})
        assert products_service.get_product(milk.id).shelf_life_days == 10

    def test_unknown_product(self, db_session):
        with pytest.raises(ProductNotFound):
            products_service.update_product(404, {"unit": "kg"})


class TestArchive:

    def test_archive_is_idempotent(self, db_session, milk):
        products_service.archive_product(milk.id)
        p = products_service.archive_product(milk.id)
        assert p.is_archived is True

    def test_archived_hidden_from_active_list(self, db_session, milk, cups):
        products_service.archive_product(milk.id)

        active = products_service.list_products()
        everything = products_service.list_products(include_archived=True)

        assert [p.id for p in active] == [cups.id]
        assert {p.id for p in everything} == {milk.id, cups.id}

    def test_unarchive_conflicts_with_new_active_product(self, db_session, milk):
        products_service.archive_product(milk.id)
        products_service.create_product(name="Milk", category="INGREDIENT", unit="L", shelf_life_days=7)

        with pytest.raises(DuplicateName):
            products_service.unarchive_product(milk.id)
        assert products_service.get_product(milk.id).is_archived is True

    def test_unarchive(self, db_session, milk):
        products_service.archive_product(milk.id)
        p = products_service.unarchive_product(milk.id)
        assert p.is_archived is False
