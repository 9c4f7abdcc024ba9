"""Tests for row validation and filter signatures."""

import pytest

from core.errors import RemoteDataError
from core.models import Product, SearchFilters, WishlistEntry

from conftest import PRODUCT_ROWS


class TestProductFromRow:
    def test_full_row(self):
        p = Product.from_row(PRODUCT_ROWS[0])
        assert p.id == "p1"
        assert p.price == 3.5
        assert p.vendor_name == "Ada Farms"
        assert p.is_available is True
        assert p.is_on_sale is False

    def test_minimal_row_gets_defaults(self):
        p = Product.from_row({"id": 7, "vendor_id": "v", "name": "Eggs", "price": 2})
        assert p.id == "7"
        assert p.price == 2.0
        assert p.stock == 0
        assert p.is_available is True
        assert p.description is None

    def test_profiles_join_is_read_as_vendor(self):
        row = dict(PRODUCT_ROWS[1], profiles={"full_name": "Bo"})
        assert Product.from_row(row).vendor_name == "Bo"

    @pytest.mark.parametrize(
        "patch",
        [
            {"name": None},
            {"price": "3.50"},
            {"price": True},
            {"stock": 1.5},
            {"is_available": "yes"},
        ],
    )
    def test_invalid_rows_raise(self, patch):
        row = dict(PRODUCT_ROWS[0], **patch)
        with pytest.raises(RemoteDataError):
            Product.from_row(row)

    def test_null_columns_take_defaults(self):
        row = dict(PRODUCT_ROWS[0], stock=None, is_available=None, vendor=None)
        p = Product.from_row(row)
        assert p.stock == 0
        assert p.is_available is True
        assert p.vendor_name is None

    def test_non_object_raises(self):
        with pytest.raises(RemoteDataError):
            Product.from_row(["p1"])


class TestWishlistEntryFromRow:
    def test_product_id_is_normalized_to_str(self):
        assert WishlistEntry.from_row({"product_id": 12}, "alice").product_id == "12"

    @pytest.mark.parametrize("product_id", [None, True, 1.5])
    def test_bad_product_id_raises(self, product_id):
        with pytest.raises(RemoteDataError, match="product_id"):
            WishlistEntry.from_row({"product_id": product_id}, "alice")

    def test_row_for_another_user_raises(self):
        with pytest.raises(RemoteDataError):
            WishlistEntry.from_row({"user_id": "bob", "product_id": "p1"}, "alice")

    def test_as_match(self):
        entry = WishlistEntry(user_id="alice", product_id="p1")
        assert entry.as_match() == {"user_id": "alice", "product_id": "p1"}


class TestSearchFilters:
    def test_signature_ignores_unset_and_key_order(self):
        a = SearchFilters(vendor_id="v1", category="Fruits")
        b = SearchFilters(category="Fruits", vendor_id="v1")
        assert a.signature_part() == b.signature_part() == '{"category":"Fruits","vendor_id":"v1"}'
        assert SearchFilters().signature_part() == "{}"

    def test_unknown_sort_key_rejected(self):
        with pytest.raises(ValueError):
            SearchFilters(sort_by="cheapest")

    def test_merged_rejects_unknown_names(self):
        with pytest.raises(ValueError):
            SearchFilters().merged(colour="red")

    def test_filters_are_immutable(self):
        with pytest.raises(ValueError):
            SearchFilters().category = "Fruits"

    def test_merged_returns_new_filters(self):
        base = SearchFilters(category="Fruits")
        merged = base.merged(category=None, min_price=2)
        assert base.category == "Fruits"
        assert merged == SearchFilters(min_price=2)
