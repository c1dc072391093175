"""Settings reader/writer: defaults, validation and ADMIN-only writes."""

import json
from decimal import Decimal

import pytest

from cafepos.errors import Forbidden, InvalidRequest
from cafepos.models import Setting
from cafepos.services import settings_service
from cafepos.services.settings_service import (
    LOYALTY_RATIO_KEY,
    TIER_THRESHOLDS_KEY,
    VIP_THRESHOLD_KEY,
    LoyaltyRatio,
    TierThresholds,
    VipThreshold,
)


class TestDefaults:

    def test_defaults_when_nothing_stored(self, db_session):
        assert settings_service.get_loyalty_ratio() == LoyaltyRatio(1000, Decimal("1"))
        assert settings_service.get_tier_thresholds() == TierThresholds(0, 200000, 500000, 1000000)
        assert settings_service.get_vip_threshold() == VipThreshold(10)

    def test_invalid_stored_value_falls_back_to_default(self, db_session):
        db_session.add(Setting(key=LOYALTY_RATIO_KEY, value_json=json.dumps({"spend_amount": 0})))
        db_session.add(Setting(key=VIP_THRESHOLD_KEY, value_json="not json"))
        db_session.commit()

        assert settings_service.get_loyalty_ratio().spend_amount_cents == 1000
        assert settings_service.get_vip_threshold().min_orders == 10

    def test_ensure_default_settings_is_idempotent(self, db_session):
        assert settings_service.ensure_default_settings() == 3
        assert settings_service.ensure_default_settings() == 0
        assert db_session.query(Setting).count() == 3

    def test_get_all_settings_flags_defaults(self, admin):
        settings_service.update_setting(admin, VIP_THRESHOLD_KEY, {"min_orders": 5})

        result = settings_service.get_all_settings()
        assert set(result) == {LOYALTY_RATIO_KEY, TIER_THRESHOLDS_KEY, VIP_THRESHOLD_KEY}
        assert result[VIP_THRESHOLD_KEY]["is_default"] is False
        assert result[VIP_THRESHOLD_KEY]["value"] == {"min_orders": 5}
        assert result[VIP_THRESHOLD_KEY]["updated_by_user_id"] == admin.user_id
        assert result[LOYALTY_RATIO_KEY]["is_default"] is True
        assert result[LOYALTY_RATIO_KEY]["value"] == {"spend_amount": 10, "points_earned": 1}


class TestUpdates:

    def test_admin_updates_ratio(self, admin):
        settings_service.update_setting(
            admin, LOYALTY_RATIO_KEY, {"spend_amount": "5", "points_earned": 2}
        )
        ratio = settings_service.get_loyalty_ratio()
        assert ratio.spend_amount_cents == 500
        assert ratio.points_earned == Decimal("2")

    def test_update_replaces_existing_row(self, admin, db_session):
        settings_service.update_setting(admin, VIP_THRESHOLD_KEY, {"min_orders": 5})
        settings_service.update_setting(admin, VIP_THRESHOLD_KEY, {"min_orders": 7})
        assert db_session.query(Setting).filter_by(key=VIP_THRESHOLD_KEY).count() == 1
        assert settings_service.get_vip_threshold().min_orders == 7

    def test_manager_cannot_update(self, manager):
        with pytest.raises(Forbidden):
            settings_service.update_setting(manager, VIP_THRESHOLD_KEY, {"min_orders": 5})
        assert settings_service.get_vip_threshold().min_orders == 10

    def test_unknown_key_rejected(self, admin):
        with pytest.raises(InvalidRequest):
            settings_service.update_setting(admin, "tax_rate", {"rate": 5})

    @pytest.mark.parametrize(
        "value",
        [
            {"spend_amount": 0, "points_earned": 1},
            {"spend_amount": -10, "points_earned": 1},
            {"spend_amount": 10, "points_earned": 0},
            {"spend_amount": "ten", "points_earned": 1},
            {"spend_amount": True, "points_earned": 1},
            {"spend_amount": 10},
            {"spend_amount": 10, "points_earned": 1, "bonus": 2},
            [10, 1],
        ],
    )
    def test_invalid_ratio_rejected(self, admin, value):
        with pytest.raises(InvalidRequest):
            settings_service.update_setting(admin, LOYALTY_RATIO_KEY, value)

    @pytest.mark.parametrize(
        "value",
        [
            {"bronze": 0, "silver": 5000, "gold": 2000, "platinum": 10000},
            {"bronze": 0, "silver": 2000, "gold": 5000},
            {"bronze": -1, "silver": 2000, "gold": 5000, "platinum": 10000},
            {"bronze": 0, "silver": 2000, "gold": 5000, "platinum": 10000, "diamond": 20000},
        ],
    )
    def test_invalid_tiers_rejected(self, admin, value):
        with pytest.raises(InvalidRequest):
            settings_service.update_setting(admin, TIER_THRESHOLDS_KEY, value)

    @pytest.mark.parametrize("huge", ["1e30", 1e30, Decimal("1E+30")])
    def test_huge_tier_threshold_rejected(self, admin, huge):
        value = {"bronze": 0, "silver": 2000, "gold": 5000, "platinum": huge}
        with pytest.raises(InvalidRequest, match="out of range"):
            settings_service.update_setting(admin, TIER_THRESHOLDS_KEY, value)
        assert settings_service.get_tier_thresholds().platinum_cents == 1000000

    @pytest.mark.parametrize("huge", ["1e30", 1e30])
    def test_huge_spend_amount_rejected(self, admin, huge):
        with pytest.raises(InvalidRequest, match="out of range"):
            settings_service.update_setting(
                admin, LOYALTY_RATIO_KEY, {"spend_amount": huge, "points_earned": 1}
            )
        assert settings_service.get_loyalty_ratio().spend_amount_cents == 1000

    def test_fractional_points_stored_exactly(self, admin, db_session):
        settings_service.update_setting(
            admin, LOYALTY_RATIO_KEY, {"spend_amount": "12.5", "points_earned": "1.123456789012345678"}
        )

        stored = json.loads(db_session.query(Setting).filter_by(key=LOYALTY_RATIO_KEY).one().value_json)
        assert stored == {"spend_amount": "12.5", "points_earned": "1.123456789012345678"}

        ratio = settings_service.get_loyalty_ratio()
        assert ratio.spend_amount_cents == 1250
        assert ratio.points_earned == Decimal("1.123456789012345678")

    def test_equal_tier_thresholds_allowed(self, admin):
        settings_service.update_setting(
            admin, TIER_THRESHOLDS_KEY, {"bronze": 0, "silver": 1000, "gold": 1000, "platinum": 3000}
        )
        assert settings_service.get_tier_thresholds() == TierThresholds(0, 100000, 100000, 300000)

    @pytest.mark.parametrize("min_orders", [0, -3, 1.5, True, "10"])
    def test_invalid_vip_threshold_rejected(self, admin, min_orders):
        with pytest.raises(InvalidRequest):
            settings_service.update_setting(admin, VIP_THRESHOLD_KEY, {"min_orders": min_orders})
