"""
Loyalty/Tier Calculator

Pure functions over stored aggregates and settings values. Nothing here reads
or writes the database, so tier and VIP status can always be recomputed from
a customer's totals.

POINTS: floor(total / spend_amount) * points_earned, truncated to an integer.
With the default ratio (1 point per 10.00) an order of 235.00 earns 23.

REDEMPTION: 1 point pays for 1.00 of an order; a partial unit costs a full
point.
"""

from __future__ import annotations

import math
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR

from ..money import format_cents
from .settings_service import (
    TIER_BRONZE,
    LoyaltyRatio,
    SettingsSnapshot,
    TierThresholds,
    VipThreshold,
)


@dataclass(frozen=True)
class CustomerStanding:
    customer_id: int | None
    tier: str
    is_vip: bool
    next_tier: str | None
    amount_to_next_tier_cents: int | None
    orders_to_vip: int
    loyalty_points: int
    total_orders: int
    total_spent_cents: int

    def to_dict(self) -> dict:
        return {
            "customer_id": self.customer_id,
            "tier": self.tier,
            "is_vip": self.is_vip,
            "next_tier": self.next_tier,
            "amount_to_next_tier": format_cents(self.amount_to_next_tier_cents),
            "orders_to_vip": self.orders_to_vip,
            "loyalty_points": self.loyalty_points,
            "total_orders": self.total_orders,
            "total_spent": format_cents(self.total_spent_cents),
        }


def calculate_points_earned(total_cents: int, ratio: LoyaltyRatio | None) -> int:
    if ratio is None or total_cents <= 0 or ratio.spend_amount_cents <= 0:
        return 0
    units = (Decimal(total_cents) / Decimal(ratio.spend_amount_cents)).to_integral_value(rounding=ROUND_FLOOR)
    return int((units * ratio.points_earned).to_integral_value(rounding=ROUND_FLOOR))


def points_required_for(total_cents: int) -> int:
    """Points needed to pay ``total_cents`` in full with LOYALTY."""
    if total_cents <= 0:
        return 0
    return math.ceil(total_cents / 100)


def calculate_tier(total_spent_cents: int, thresholds: TierThresholds) -> str:
    """Highest tier whose threshold is at or below spend. Never below bronze."""
    tier = TIER_BRONZE
    for name, threshold in thresholds.as_pairs():
        if total_spent_cents >= threshold:
            tier = name
    return tier


def next_tier(total_spent_cents: int, thresholds: TierThresholds) -> tuple[str | None, int | None]:
    """(next tier, cents still needed) or (None, None) at the top tier."""
    for name, threshold in thresholds.as_pairs():
        if total_spent_cents < threshold:
            return name, threshold - total_spent_cents
    return None, None


def is_vip(total_orders: int, vip_threshold: VipThreshold) -> bool:
    return total_orders >= vip_threshold.min_orders


def describe_customer(customer, settings_snapshot: SettingsSnapshot) -> CustomerStanding:
    spent = customer.total_spent_cents or 0
    orders = customer.total_orders or 0
    upcoming, remaining = next_tier(spent, settings_snapshot.tier_thresholds)
    return CustomerStanding(
        customer_id=customer.id,
        tier=calculate_tier(spent, settings_snapshot.tier_thresholds),
        is_vip=is_vip(orders, settings_snapshot.vip_threshold),
        next_tier=upcoming,
        amount_to_next_tier_cents=remaining,
        orders_to_vip=max(settings_snapshot.vip_threshold.min_orders - orders, 0),
        loyalty_points=customer.loyalty_points or 0,
        total_orders=orders,
        total_spent_cents=spent,
    )
