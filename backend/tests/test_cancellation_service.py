"""
Cancellation workflow tests.

Verifies:
- CONFIRMED -> PENDING_CANCELLATION -> CANCELLED | CONFIRMED
- Approval reverses customer aggregates using values stored on the order
- Rejection leaves aggregates untouched and clears the request
- Role gates: MANAGER may request, only ADMIN may decide
- Every transition lands in the status history
"""

import pytest
from sqlalchemy import text

from cafepos.errors import Forbidden, InvalidRequest, InvalidState, NotFound
from cafepos.extensions import db
from cafepos.models import Customer
from cafepos.services import cancellation_service, order_service, settings_service
from cafepos.services.settings_service import LOYALTY_RATIO_KEY

from conftest import chicken_with_rice


REASON = "Customer changed their mind"


def aggregates(db_session, customer_id):
    customer = db_session.get(Customer, customer_id)
    db_session.refresh(customer)
    return customer.total_orders, customer.total_spent_cents, customer.loyalty_points


@pytest.fixture
def order(manager, catalog, customer):
    """Confirmed order of 260.00 for the fixture customer (earns 26 points)."""
    return order_service.create_order(manager, {
        "items": [chicken_with_rice(catalog)],
        "payment_method": "CASH",
        "customer_id": customer.id,
    })


@pytest.fixture
def pending(order, manager):
    return cancellation_service.request_cancellation(order.id, manager, REASON)


# =============================================================================
# REQUEST
# =============================================================================


class TestRequest:

    def test_request_moves_to_pending(self, order, manager):
        result = cancellation_service.request_cancellation(order.id, manager, f"  {REASON}  ")

        assert result.status == "PENDING_CANCELLATION"
        assert result.cancellation_reason == REASON
        assert result.cancellation_requested_by_user_id == manager.user_id
        assert result.cancellation_requested_at is not None

    def test_request_does_not_touch_aggregates(self, order, manager, customer, db_session):
        before = aggregates(db_session, customer.id)
        cancellation_service.request_cancellation(order.id, manager, REASON)
        assert aggregates(db_session, customer.id) == before

    @pytest.mark.parametrize("reason", [None, "", "    ", "oops", "x" * 501, 12345])
    def test_reason_validated(self, order, manager, reason):
        with pytest.raises(InvalidRequest):
            cancellation_service.request_cancellation(order.id, manager, reason)
        assert order_service.get_order(order.id).status == "CONFIRMED"

    def test_request_twice_invalid(self, pending, manager):
        with pytest.raises(InvalidState):
            cancellation_service.request_cancellation(pending.id, manager, REASON)

    def test_missing_order(self, manager, db_session):
        with pytest.raises(NotFound):
            cancellation_service.request_cancellation(404, manager, REASON)


# =============================================================================
# DECISION
# =============================================================================


class TestApprove:

    def test_approve_reverses_aggregates_exactly(self, manager, admin, catalog, customer, db_session):
        before = aggregates(db_session, customer.id)
        order = order_service.create_order(manager, {
            "items": [chicken_with_rice(catalog, quantity=2)],
            "payment_method": "CARD",
            "customer_id": customer.id,
        })
        assert aggregates(db_session, customer.id) == (before[0] + 1, before[1] + 52000, before[2] + 52)

        cancellation_service.request_cancellation(order.id, manager, REASON)
        result = cancellation_service.decide_cancellation(order.id, admin, approve=True, notes="Refunded")

        assert result.status == "CANCELLED"
        assert result.cancelled_by_user_id == admin.user_id
        assert result.cancelled_at is not None
        assert result.cancellation_decided_by_user_id == admin.user_id
        assert result.cancellation_decision_notes == "Refunded"
        assert aggregates(db_session, customer.id) == before

    def test_reversal_uses_stored_points_after_ratio_change(self, manager, admin, catalog, customer, db_session):
        order = order_service.create_order(manager, {
            "items": [{"menu_item_id": catalog.platter}],
            "payment_method": "CASH",
            "customer_id": customer.id,
        })
        assert order.total_cents == 100000
        assert order.loyalty_points_earned == 100
        assert aggregates(db_session, customer.id) == (1, 100000, 600)

        settings_service.update_setting(admin, LOYALTY_RATIO_KEY, {"spend_amount": 1, "points_earned": 1})

        cancellation_service.request_cancellation(order.id, manager, REASON)
        cancellation_service.decide_cancellation(order.id, admin, approve=True)

        assert aggregates(db_session, customer.id) == (0, 0, 500)

    def test_approve_returns_redeemed_points(self, manager, admin, catalog, customer, db_session):
        order = order_service.create_order(manager, {
            "items": [chicken_with_rice(catalog)],
            "payment_method": "LOYALTY",
            "customer_id": customer.id,
        })
        assert aggregates(db_session, customer.id)[2] == 500 - 260 + 26

        cancellation_service.request_cancellation(order.id, manager, REASON)
        cancellation_service.decide_cancellation(order.id, admin, approve=True)

        assert aggregates(db_session, customer.id) == (0, 0, 500)

    def test_reversal_is_not_clamped(self, manager, admin, catalog, customer, db_session):
        earning = order_service.create_order(manager, {
            "items": [{"menu_item_id": catalog.platter}],
            "payment_method": "CASH",
            "customer_id": customer.id,
        })
        # Spend everything, including the 100 points just earned
        order_service.create_order(manager, {
            "items": [chicken_with_rice(catalog, quantity=2, rice=3)],
            "payment_method": "LOYALTY",
            "customer_id": customer.id,
        })
        assert aggregates(db_session, customer.id)[2] == 600 - 600 + 60

        cancellation_service.request_cancellation(earning.id, manager, REASON)
        cancellation_service.decide_cancellation(earning.id, admin, approve=True)

        assert aggregates(db_session, customer.id)[2] == -40

    def test_anonymous_order_approval(self, manager, admin, catalog):
        order = order_service.create_order(manager, {
            "items": [chicken_with_rice(catalog)],
            "payment_method": "CASH",
        })
        cancellation_service.request_cancellation(order.id, manager, REASON)
        result = cancellation_service.decide_cancellation(order.id, admin, approve=True)
        assert result.status == "CANCELLED"

    def test_cancelled_is_terminal(self, pending, admin, manager):
        cancellation_service.decide_cancellation(pending.id, admin, approve=True)

        with pytest.raises(InvalidState):
            cancellation_service.decide_cancellation(pending.id, admin, approve=True)
        with pytest.raises(InvalidState):
            cancellation_service.decide_cancellation(pending.id, admin, approve=False)
        with pytest.raises(InvalidState):
            cancellation_service.request_cancellation(pending.id, manager, REASON)


class TestReject:

    def test_reject_restores_confirmed(self, pending, admin, customer, db_session):
        before = aggregates(db_session, customer.id)
        result = cancellation_service.decide_cancellation(
            pending.id, admin, approve=False, notes="Already served"
        )

        assert result.status == "CONFIRMED"
        assert result.cancellation_reason is None
        assert result.cancellation_requested_by_user_id is None
        assert result.cancellation_requested_at is None
        assert result.cancellation_decided_by_user_id == admin.user_id
        assert result.cancellation_decision_notes == "Already served"
        assert result.cancelled_at is None
        assert aggregates(db_session, customer.id) == before

    def test_can_request_again_after_reject(self, pending, admin, manager):
        cancellation_service.decide_cancellation(pending.id, admin, approve=False)
        again = cancellation_service.request_cancellation(pending.id, manager, "Second attempt")

        assert again.status == "PENDING_CANCELLATION"
        assert again.cancellation_decided_by_user_id is None
        assert again.cancellation_decision_notes is None


class TestDecisionGuards:

    def test_decide_on_confirmed_invalid(self, order, admin):
        with pytest.raises(InvalidState):
            cancellation_service.decide_cancellation(order.id, admin, approve=True)
        assert order_service.get_order(order.id).status == "CONFIRMED"

    def test_manager_cannot_decide(self, pending, manager):
        with pytest.raises(Forbidden):
            cancellation_service.decide_cancellation(pending.id, manager, approve=True)
        assert order_service.get_order(pending.id).status == "PENDING_CANCELLATION"

    def test_expected_status_mismatch(self, pending, admin):
        with pytest.raises(InvalidState):
            cancellation_service.decide_cancellation(
                pending.id, admin, approve=True, expected_status="CONFIRMED"
            )
        assert order_service.get_order(pending.id).status == "PENDING_CANCELLATION"

    def test_expected_status_match(self, pending, admin):
        result = cancellation_service.decide_cancellation(
            pending.id, admin, approve=False, expected_status="PENDING_CANCELLATION"
        )
        assert result.status == "CONFIRMED"

    @pytest.mark.parametrize("approve", ["yes", 1, None])
    def test_approve_must_be_boolean(self, pending, admin, approve):
        with pytest.raises(InvalidRequest):
            cancellation_service.decide_cancellation(pending.id, admin, approve=approve)

    def test_notes_length(self, pending, admin):
        with pytest.raises(InvalidRequest):
            cancellation_service.decide_cancellation(pending.id, admin, approve=False, notes="n" * 501)


# =============================================================================
# HISTORY
# =============================================================================


class TestHistory:

    def test_every_transition_recorded(self, pending, admin, manager):
        cancellation_service.decide_cancellation(pending.id, admin, approve=False, notes="No")
        cancellation_service.request_cancellation(pending.id, manager, REASON)
        cancellation_service.decide_cancellation(pending.id, admin, approve=True)

        history = cancellation_service.get_status_history(pending.id)
        assert [(h.previous_status, h.new_status, h.action) for h in history] == [
            ("CONFIRMED", "PENDING_CANCELLATION", "REQUEST"),
            ("PENDING_CANCELLATION", "CONFIRMED", "REJECT"),
            ("CONFIRMED", "PENDING_CANCELLATION", "REQUEST"),
            ("PENDING_CANCELLATION", "CANCELLED", "APPROVE"),
        ]
        assert history[0].changed_by_user_id == manager.user_id
        assert history[0].reason == REASON
        assert history[1].reason == "No"
        assert history[3].changed_by_user_id == admin.user_id

    def test_failed_transition_leaves_no_history(self, order, admin):
        with pytest.raises(InvalidState):
            cancellation_service.decide_cancellation(order.id, admin, approve=True)
        assert cancellation_service.get_status_history(order.id) == []

    def test_history_for_missing_order(self, db_session):
        with pytest.raises(NotFound):
            cancellation_service.get_status_history(12345)

    def test_pending_list(self, pending, manager, catalog):
        order_service.create_order(manager, {
            "items": [chicken_with_rice(catalog)],
            "payment_method": "CASH",
        })
        assert [o.id for o in cancellation_service.list_pending_cancellations()] == [pending.id]


# =============================================================================
# CONCURRENT DECISIONS
# =============================================================================


class TestConcurrentDecision:

    def test_stale_version_is_invalid_state(self, pending, admin, customer, db_session, monkeypatch, caplog):
        before = aggregates(db_session, customer.id)
        lock_order = cancellation_service._lock_order

        # Another register decides between our read and our write
        def lock_then_bump(order_id):
            order = lock_order(order_id)
            db.session.execute(
                text("UPDATE orders SET version_id = version_id + 1 WHERE id = :id"),
                {"id": order_id},
            )
            return order

        monkeypatch.setattr(cancellation_service, "_lock_order", lock_then_bump)

        with pytest.raises(InvalidState):
            cancellation_service.decide_cancellation(pending.id, admin, approve=True)

        assert caplog.text.count("Retrying after concurrency failure") == 2
        assert order_service.get_order(pending.id).status == "PENDING_CANCELLATION"
        assert aggregates(db_session, customer.id) == before
        assert [h.action for h in cancellation_service.get_status_history(pending.id)] == ["REQUEST"]
