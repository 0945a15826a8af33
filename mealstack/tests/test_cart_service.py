from datetime import timedelta

import pytest

from ..core.exceptions import (
    InvalidAddressError,
    InvalidDateError,
    ItemUnavailableError,
    NotFoundError,
)
from .conftest import TODAY


class TestCartService:
    """Cart service tests"""

    def test_add_line_captures_price(self, container, sample_user, verified_address, menu_items, tomorrow):
        line = container.cart.add_line(sample_user["id"], menu_items["thali"].id, tomorrow, "lunch",
                                       quantity=2, address_id=verified_address.id)
        assert line.unit_price_cents == 12000
        assert line.item_name == "Veg Thali"
        assert line.day_of_week == "tuesday"

        # Later price changes do not touch the cart line
        container.catalog.update_item(menu_items["thali"].id, {"price_cents": 15000})
        cart = container.cart.get_cart(sample_user["id"])
        assert cart.lines[0].unit_price_cents == 12000

    def test_identical_lines_merge(self, container, sample_user, verified_address, menu_items, tomorrow):
        cart = container.cart
        cart.add_line(sample_user["id"], menu_items["thali"].id, tomorrow, "lunch", 1, verified_address.id)
        line = cart.add_line(sample_user["id"], menu_items["thali"].id, tomorrow, "lunch", 2, verified_address.id)
        assert line.quantity == 3
        assert len(cart.get_cart(sample_user["id"]).lines) == 1

    def test_lines_without_address_merge(self, container, sample_user, menu_items, tomorrow):
        cart = container.cart
        cart.add_line(sample_user["id"], menu_items["poha"].id, tomorrow, "breakfast")
        line = cart.add_line(sample_user["id"], menu_items["poha"].id, tomorrow, "breakfast")
        assert line.quantity == 2

    def test_past_date_rejected(self, container, sample_user, menu_items):
        with pytest.raises(InvalidDateError):
            container.cart.add_line(sample_user["id"], menu_items["thali"].id,
                                    TODAY - timedelta(days=1), "lunch")

    def test_inactive_item_rejected(self, container, sample_user, menu_items, tomorrow):
        container.catalog.deactivate_item(menu_items["thali"].id)
        with pytest.raises(ItemUnavailableError):
            container.cart.add_line(sample_user["id"], menu_items["thali"].id, tomorrow, "lunch")

    def test_foreign_address_rejected(self, container, other_user, verified_address, menu_items, tomorrow):
        with pytest.raises(InvalidAddressError):
            container.cart.add_line(other_user["id"], menu_items["thali"].id, tomorrow, "lunch",
                                    address_id=verified_address.id)

    def test_groups_and_totals(self, container, sample_user, verified_address, menu_items, tomorrow):
        """One delivery charge per (date, meal type, address) group"""
        cart = container.cart
        uid, addr = sample_user["id"], verified_address.id
        cart.add_line(uid, menu_items["thali"].id, tomorrow, "lunch", 1, addr)
        cart.add_line(uid, menu_items["paneer"].id, tomorrow, "lunch", 2, addr)
        cart.add_line(uid, menu_items["khichdi"].id, tomorrow, "dinner", 1, addr)

        result = cart.get_cart(uid)

        assert len(result.groups) == 2
        lunch, dinner = result.groups
        assert lunch.meal_type == "lunch"
        assert lunch.subtotal_cents == 12000 + 2 * 8000
        assert lunch.total_cents == lunch.subtotal_cents + 500
        assert dinner.total_cents == 10000 + 500
        assert result.summary.total_items == 4
        assert result.summary.delivery_charges_cents == 1000
        assert result.summary.total_cents == 12000 + 16000 + 10000 + 1000

    def test_update_quantity_and_remove(self, container, sample_user, menu_items, tomorrow):
        cart = container.cart
        line = cart.add_line(sample_user["id"], menu_items["thali"].id, tomorrow, "lunch")
        assert cart.update_quantity(sample_user["id"], line.id, 4).quantity == 4

        cart.remove_line(sample_user["id"], line.id)
        with pytest.raises(NotFoundError):
            cart.remove_line(sample_user["id"], line.id)

    def test_other_user_cannot_edit_line(self, container, sample_user, other_user, menu_items, tomorrow):
        line = container.cart.add_line(sample_user["id"], menu_items["thali"].id, tomorrow, "lunch")
        with pytest.raises(NotFoundError):
            container.cart.update_quantity(other_user["id"], line.id, 2)

    def test_update_address_merges_twin(self, container, sample_user, verified_address, menu_items, tomorrow):
        """Moving a line onto an address that already has the same item merges them"""
        cart = container.cart
        uid = sample_user["id"]
        cart.add_line(uid, menu_items["thali"].id, tomorrow, "lunch", 2, verified_address.id)
        loose = cart.add_line(uid, menu_items["thali"].id, tomorrow, "lunch", 1)

        merged = cart.update_address(uid, loose.id, verified_address.id)

        assert merged.quantity == 3
        assert len(cart.get_cart(uid).lines) == 1

    def test_clear_date_and_expired(self, container, clock, sample_user, menu_items, tomorrow):
        cart = container.cart
        uid = sample_user["id"]
        cart.add_line(uid, menu_items["thali"].id, TODAY, "lunch")
        cart.add_line(uid, menu_items["thali"].id, tomorrow, "lunch")
        cart.add_line(uid, menu_items["khichdi"].id, tomorrow + timedelta(days=1), "dinner")

        assert cart.clear_date(uid, tomorrow + timedelta(days=1)) == 1

        clock.now = clock.now + timedelta(days=1)
        assert cart.clear_expired(uid) == 1
        remaining = cart.get_cart(uid).lines
        assert [line.order_date for line in remaining] == [tomorrow]

    def test_to_drafts_requires_address(self, container, sample_user, menu_items, tomorrow):
        container.cart.add_line(sample_user["id"], menu_items["thali"].id, tomorrow, "lunch")
        cart = container.cart.get_cart(sample_user["id"])
        with pytest.raises(InvalidAddressError):
            container.cart.to_drafts(cart.groups)
