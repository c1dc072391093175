"""
Settings Service - loyalty ratio, tier thresholds and VIP threshold.

WHY: The order core needs three configuration values. They are read through
typed accessors that always return something usable: the stored value when it
validates, the system default otherwise. Writes are validated up front so a
bad value never reaches the table.

RECOGNIZED KEYS:
- loyalty_points_ratio: {"spend_amount": >0, "points_earned": >0}
- tier_thresholds:      {"bronze", "silver", "gold", "platinum"}, each >= 0,
                        non-decreasing in that order
- vip_order_threshold:  {"min_orders": positive integer}

Amounts are in currency units (10 means 10.00), matching what an admin types.
"""

from __future__ import annotations

import json
from dataclasses import dataclass
from decimal import Decimal, InvalidOperation
from typing import Any

from flask import current_app

from ..errors import CoreError, InvalidRequest
from ..extensions import db
from ..models import Setting
from ..money import to_cents
from .concurrency import run_in_transaction
from .permission_service import ADMIN_ONLY, Principal, require_role


LOYALTY_RATIO_KEY = "loyalty_points_ratio"
TIER_THRESHOLDS_KEY = "tier_thresholds"
VIP_THRESHOLD_KEY = "vip_order_threshold"

TIER_BRONZE = "bronze"
TIER_SILVER = "silver"
TIER_GOLD = "gold"
TIER_PLATINUM = "platinum"
TIER_ORDER = (TIER_BRONZE, TIER_SILVER, TIER_GOLD, TIER_PLATINUM)

DEFAULT_VALUES: dict[str, dict] = {
    LOYALTY_RATIO_KEY: {"spend_amount": 10, "points_earned": 1},
    TIER_THRESHOLDS_KEY: {TIER_BRONZE: 0, TIER_SILVER: 2000, TIER_GOLD: 5000, TIER_PLATINUM: 10000},
    VIP_THRESHOLD_KEY: {"min_orders": 10},
}

DESCRIPTIONS: dict[str, str] = {
    LOYALTY_RATIO_KEY: "Points earned per amount spent",
    TIER_THRESHOLDS_KEY: "Lifetime spend required for each customer tier",
    VIP_THRESHOLD_KEY: "Completed orders required for VIP status",
}


@dataclass(frozen=True)
class LoyaltyRatio:
    spend_amount_cents: int
    points_earned: Decimal

    def to_dict(self) -> dict:
        return {
            "spend_amount": _plain_number(Decimal(self.spend_amount_cents) / 100),
            "points_earned": _plain_number(self.points_earned),
        }


@dataclass(frozen=True)
class TierThresholds:
    bronze_cents: int
    silver_cents: int
    gold_cents: int
    platinum_cents: int

    def as_pairs(self) -> list[tuple[str, int]]:
        """(tier, threshold_cents) from lowest to highest."""
        return [
            (TIER_BRONZE, self.bronze_cents),
            (TIER_SILVER, self.silver_cents),
            (TIER_GOLD, self.gold_cents),
            (TIER_PLATINUM, self.platinum_cents),
        ]

    def to_dict(self) -> dict:
        return {tier: _plain_number(Decimal(cents) / 100) for tier, cents in self.as_pairs()}


@dataclass(frozen=True)
class VipThreshold:
    min_orders: int

    def to_dict(self) -> dict:
        return {"min_orders": self.min_orders}


@dataclass(frozen=True)
class SettingsSnapshot:
    """The three values loyalty calculations need, read together."""
    loyalty_ratio: LoyaltyRatio
    tier_thresholds: TierThresholds
    vip_threshold: VipThreshold


def _plain_number(value: Decimal) -> int | str:
    """Whole numbers stay JSON ints; fractions are kept as exact decimal strings."""
    if value == value.to_integral_value():
        return int(value)
    return format(value.normalize(), "f")


def _positive_decimal(value: Any, field_name: str) -> Decimal:
    if isinstance(value, bool) or not isinstance(value, (int, float, str, Decimal)):
        raise InvalidRequest(f"{field_name} must be a positive number")
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise InvalidRequest(f"{field_name} must be a positive number")
    if not result.is_finite() or result <= 0:
        raise InvalidRequest(f"{field_name} must be a positive number")
    return result


# -----------------------------------------------------------------------------
# Validation (write time)
# -----------------------------------------------------------------------------

def parse_loyalty_ratio(value: Any) -> LoyaltyRatio:
    if not isinstance(value, dict):
        raise InvalidRequest("loyalty_points_ratio must be an object")
    unknown = set(value) - {"spend_amount", "points_earned"}
    if unknown:
        raise InvalidRequest(f"Unknown fields in loyalty_points_ratio: {', '.join(sorted(unknown))}")
    spend = _positive_decimal(value.get("spend_amount"), "spend_amount")
    points = _positive_decimal(value.get("points_earned"), "points_earned")
    spend_cents = to_cents(spend, "spend_amount")
    if spend_cents <= 0:
        raise InvalidRequest("spend_amount must be a positive number")
    return LoyaltyRatio(spend_amount_cents=spend_cents, points_earned=points)


def parse_tier_thresholds(value: Any) -> TierThresholds:
    if not isinstance(value, dict):
        raise InvalidRequest("tier_thresholds must be an object")
    unknown = set(value) - set(TIER_ORDER)
    if unknown:
        raise InvalidRequest(f"Unknown tiers: {', '.join(sorted(unknown))}")

    cents: list[int] = []
    for tier in TIER_ORDER:
        if tier not in value:
            raise InvalidRequest(f"tier_thresholds.{tier} is required")
        raw = value[tier]
        if isinstance(raw, bool) or not isinstance(raw, (int, float, str, Decimal)):
            raise InvalidRequest(f"tier_thresholds.{tier} must be a number")
        amount = to_cents(raw, f"tier_thresholds.{tier}")
        if amount < 0:
            raise InvalidRequest(f"tier_thresholds.{tier} must be non-negative")
        cents.append(amount)

    for (lower_tier, lower), (upper_tier, upper) in zip(
        zip(TIER_ORDER, cents), zip(TIER_ORDER[1:], cents[1:])
    ):
        if upper < lower:
            raise InvalidRequest(
                f"Tier thresholds must be in ascending order ({upper_tier} is below {lower_tier})"
            )
    return TierThresholds(*cents)


def parse_vip_threshold(value: Any) -> VipThreshold:
    if not isinstance(value, dict):
        raise InvalidRequest("vip_order_threshold must be an object")
    unknown = set(value) - {"min_orders"}
    if unknown:
        raise InvalidRequest(f"Unknown fields in vip_order_threshold: {', '.join(sorted(unknown))}")
    min_orders = value.get("min_orders")
    if isinstance(min_orders, bool) or not isinstance(min_orders, int) or min_orders <= 0:
        raise InvalidRequest("min_orders must be a positive integer")
    return VipThreshold(min_orders=min_orders)


PARSERS = {
    LOYALTY_RATIO_KEY: parse_loyalty_ratio,
    TIER_THRESHOLDS_KEY: parse_tier_thresholds,
    VIP_THRESHOLD_KEY: parse_vip_threshold,
}


def validate_setting_value(key: str, value: Any):
    parser = PARSERS.get(key)
    if parser is None:
        raise InvalidRequest(f"Unknown setting: {key}", details={"allowed_keys": sorted(PARSERS)})
    return parser(value)


# -----------------------------------------------------------------------------
# Reads
# -----------------------------------------------------------------------------

def _load(key: str):
    """Stored value for ``key`` parsed, or the default when absent or invalid."""
    parser = PARSERS[key]
    row = db.session.query(Setting).filter_by(key=key).first()
    if row is not None:
        try:
            return parser(json.loads(row.value_json))
        except (ValueError, CoreError) as exc:
            current_app.logger.warning("Stored setting %s is invalid, using default: %s", key, exc)
    return parser(DEFAULT_VALUES[key])


def get_loyalty_ratio() -> LoyaltyRatio:
    return _load(LOYALTY_RATIO_KEY)


def get_tier_thresholds() -> TierThresholds:
    return _load(TIER_THRESHOLDS_KEY)


def get_vip_threshold() -> VipThreshold:
    return _load(VIP_THRESHOLD_KEY)


def get_snapshot() -> SettingsSnapshot:
    return SettingsSnapshot(
        loyalty_ratio=get_loyalty_ratio(),
        tier_thresholds=get_tier_thresholds(),
        vip_threshold=get_vip_threshold(),
    )


def get_all_settings() -> dict[str, dict]:
    """Effective value of every recognized key, with whether it is defaulted."""
    rows = {row.key: row for row in db.session.query(Setting).all()}
    result: dict[str, dict] = {}
    for key in PARSERS:
        row = rows.get(key)
        result[key] = {
            "value": _load(key).to_dict(),
            "description": DESCRIPTIONS[key],
            "is_default": row is None,
            "updated_by_user_id": row.updated_by_user_id if row else None,
            "updated_at": row.to_dict()["updated_at"] if row else None,
        }
    return result


# -----------------------------------------------------------------------------
# Writes
# -----------------------------------------------------------------------------

def _upsert(key: str, value: Any, user_id: int | None) -> Setting:
    row = db.session.query(Setting).filter_by(key=key).first()
    value_json = json.dumps(value, sort_keys=True)
    if row is None:
        row = Setting(
            key=key,
            value_json=value_json,
            description=DESCRIPTIONS[key],
            updated_by_user_id=user_id,
        )
        db.session.add(row)
    else:
        row.value_json = value_json
        row.updated_by_user_id = user_id
    db.session.flush()
    return row


def update_setting(principal: Principal, key: str, value: Any) -> Setting:
    """
    Validate and store one setting. ADMIN only.

    The stored JSON is the normalized form, so "10.0" and 10 store the same.
    """
    require_role(principal, *ADMIN_ONLY, action="update_setting")
    parsed = validate_setting_value(key, value)

    def _op():
        row = _upsert(key, parsed.to_dict(), principal.user_id)
        current_app.logger.info("Setting %s updated by user %s", key, principal.user_id)
        return row

    return run_in_transaction(_op)


def ensure_default_settings() -> int:
    """Insert defaults for keys with no stored row. Returns count inserted."""
    existing = {key for (key,) in db.session.query(Setting.key).all()}
    added = 0
    for key, value in DEFAULT_VALUES.items():
        if key in existing:
            continue
        _upsert(key, value, None)
        added += 1
    db.session.commit()
    return added
