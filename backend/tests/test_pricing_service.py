"""
Price resolver and order total tests.

Verifies:
- Flat and variant base prices
- Effective addon set (category links, exclusions, item-only rules)
- Addon price precedence and quantity caps
- Totals multiply by line quantity, tax is zero
"""

import pytest

from cafepos.errors import InvalidRequest, NotFound
from cafepos.services import catalog_service, pricing_service
from cafepos.services.catalog_service import SOURCE_CATEGORY, SOURCE_ITEM
from cafepos.validation import AddonSelection, LineRequest


# =============================================================================
# BASE PRICE
# =============================================================================


class TestBasePrice:

    def test_flat_item_uses_base_price(self, catalog):
        breakdown = pricing_service.calculate_line_price(catalog.chicken)
        assert breakdown.base_price_cents == 18000
        assert breakdown.unit_price_cents == 18000
        assert breakdown.variant_id is None
        assert breakdown.addons == ()

    def test_flat_item_ignores_variant_id(self, catalog):
        breakdown = pricing_service.calculate_line_price(catalog.chicken, variant_id=catalog.coffee_large)
        assert breakdown.variant_id is None
        assert breakdown.base_price_cents == 18000

    def test_variant_item_uses_variant_price(self, catalog):
        breakdown = pricing_service.calculate_line_price(catalog.coffee, variant_id=catalog.coffee_large)
        assert breakdown.base_price_cents == 13000
        assert breakdown.variant_name == "400ml"
        assert breakdown.to_dict()["unit_price"] == "130.00"

    def test_variant_required(self, catalog):
        with pytest.raises(InvalidRequest):
            pricing_service.calculate_line_price(catalog.coffee)

    def test_unavailable_variant_rejected(self, catalog):
        with pytest.raises(InvalidRequest):
            pricing_service.calculate_line_price(catalog.coffee, variant_id=catalog.coffee_litre)

    def test_unknown_variant_rejected(self, catalog):
        with pytest.raises(InvalidRequest):
            pricing_service.calculate_line_price(catalog.coffee, variant_id=999999)

    def test_unavailable_item_not_found(self, catalog):
        with pytest.raises(NotFound):
            pricing_service.calculate_line_price(catalog.soup)

    def test_missing_item_not_found(self, catalog):
        with pytest.raises(NotFound):
            pricing_service.calculate_line_price(999999)


# =============================================================================
# ADDONS
# =============================================================================


class TestAddons:

    def test_chicken_with_two_extra_rice(self, catalog):
        breakdown = pricing_service.calculate_line_price(
            catalog.chicken,
            addon_selections=[{"addon_id": catalog.rice, "quantity": 2}],
        )
        assert breakdown.base_price_cents == 18000
        assert breakdown.addons_total_cents == 8000
        assert breakdown.unit_price_cents == 26000
        assert breakdown.addons[0].name == "Extra Rice"
        assert breakdown.addons[0].subtotal_cents == 8000

    def test_accepts_addon_selection_objects(self, catalog):
        breakdown = pricing_service.calculate_line_price(
            catalog.chicken,
            addon_selections=(AddonSelection(addon_id=catalog.rice, quantity=1),),
        )
        assert breakdown.unit_price_cents == 22000

    def test_item_override_beats_category_override(self, catalog):
        on_chicken = pricing_service.calculate_line_price(
            catalog.chicken, addon_selections=[{"addon_id": catalog.egg, "quantity": 1}]
        )
        on_paneer = pricing_service.calculate_line_price(
            catalog.paneer, addon_selections=[{"addon_id": catalog.egg, "quantity": 1}]
        )
        assert on_chicken.addons[0].unit_price_cents == 1000
        assert on_paneer.addons[0].unit_price_cents == 1500

    def test_addon_over_cap_rejected(self, catalog):
        with pytest.raises(InvalidRequest) as exc:
            pricing_service.calculate_line_price(
                catalog.chicken, addon_selections=[{"addon_id": catalog.rice, "quantity": 4}]
            )
        assert exc.value.details["max_quantity"] == 3

    def test_item_cap_beats_addon_cap(self, catalog):
        with pytest.raises(InvalidRequest):
            pricing_service.calculate_line_price(
                catalog.chicken, addon_selections=[{"addon_id": catalog.egg, "quantity": 3}]
            )

    def test_uncapped_addon_limited_to_ten(self, catalog):
        ok = pricing_service.calculate_line_price(
            catalog.paneer, addon_selections=[{"addon_id": catalog.egg, "quantity": 10}]
        )
        assert ok.addons_total_cents == 15000

        with pytest.raises(InvalidRequest):
            pricing_service.calculate_line_price(
                catalog.paneer, addon_selections=[{"addon_id": catalog.egg, "quantity": 11}]
            )

    def test_excluded_addon_rejected(self, catalog):
        with pytest.raises(InvalidRequest):
            pricing_service.calculate_line_price(
                catalog.paneer, addon_selections=[{"addon_id": catalog.extra_chicken}]
            )

    def test_exclusion_is_per_item(self, catalog):
        breakdown = pricing_service.calculate_line_price(
            catalog.chicken, addon_selections=[{"addon_id": catalog.extra_chicken}]
        )
        assert breakdown.addons_total_cents == 7000

    def test_item_only_addon(self, catalog):
        breakdown = pricing_service.calculate_line_price(
            catalog.coffee,
            variant_id=catalog.coffee_small,
            addon_selections=[{"addon_id": catalog.shot, "quantity": 2}],
        )
        assert breakdown.unit_price_cents == 9000 + 6000

        with pytest.raises(InvalidRequest):
            pricing_service.calculate_line_price(
                catalog.chicken, addon_selections=[{"addon_id": catalog.shot}]
            )

    def test_unavailable_addon_rejected(self, catalog):
        with pytest.raises(InvalidRequest):
            pricing_service.calculate_line_price(
                catalog.chicken, addon_selections=[{"addon_id": catalog.truffle}]
            )

    def test_duplicate_addon_rejected(self, catalog):
        with pytest.raises(InvalidRequest):
            pricing_service.calculate_line_price(
                catalog.chicken,
                addon_selections=[
                    {"addon_id": catalog.rice, "quantity": 1},
                    {"addon_id": catalog.rice, "quantity": 1},
                ],
            )

    def test_effective_addons_listing(self, catalog):
        addons = {a.addon_id: a for a in catalog_service.get_effective_addons(catalog.chicken)}
        assert set(addons) == {catalog.rice, catalog.egg, catalog.extra_chicken}
        assert addons[catalog.egg].price_cents == 1000
        assert addons[catalog.egg].max_quantity == 2
        assert addons[catalog.rice].source == SOURCE_CATEGORY

        coffee_addons = catalog_service.get_effective_addons(catalog.coffee)
        assert [(a.addon_id, a.source) for a in coffee_addons] == [(catalog.shot, SOURCE_ITEM)]


# =============================================================================
# ORDER TOTALS
# =============================================================================


class TestOrderTotals:

    def test_quantity_multiplies_unit_price(self, catalog):
        line = LineRequest(
            menu_item_id=catalog.chicken,
            addon_selections=(AddonSelection(addon_id=catalog.rice, quantity=2),),
            quantity=2,
        )
        totals = pricing_service.calculate_order_total([line])
        assert totals.lines[0].breakdown.unit_price_cents == 26000
        assert totals.lines[0].line_total_cents == 52000
        assert totals.subtotal_cents == 52000
        assert totals.tax_cents == 0
        assert totals.total_cents == totals.subtotal_cents

    def test_total_is_sum_of_lines(self, catalog):
        lines = [
            LineRequest(menu_item_id=catalog.chicken, quantity=3),
            LineRequest(menu_item_id=catalog.coffee, variant_id=catalog.coffee_small, quantity=2),
        ]
        totals = pricing_service.calculate_order_total(lines)
        assert totals.total_cents == sum(
            line.breakdown.unit_price_cents * line.quantity for line in totals.lines
        )
        assert totals.total_cents == 18000 * 3 + 9000 * 2
        assert totals.to_dict()["total"] == "720.00"

    def test_any_failing_line_fails_the_order(self, catalog):
        lines = [
            LineRequest(menu_item_id=catalog.chicken),
            LineRequest(menu_item_id=catalog.coffee),
        ]
        with pytest.raises(InvalidRequest):
            pricing_service.calculate_order_total(lines)

    def test_empty_order_rejected(self, catalog):
        with pytest.raises(InvalidRequest):
            pricing_service.calculate_order_total([])
