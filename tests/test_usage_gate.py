"""Tests for the monthly AI credit gate."""

from datetime import timedelta

import pytest
from sqlalchemy import select
from sqlalchemy.orm import Session

from conftest import COMPANY_ID
from statement_ingest.core.db import AiUsage, CompanyPlan, CreditLedger
from statement_ingest.core.settings import Settings
from statement_ingest.core.utils import month_key, start_of_month, utcnow
from statement_ingest.services import usage_gate
from statement_ingest.services.usage_gate import UsageGate, credit_cost


def _seed_usage(session: Session, credits: int, created_at: object = None) -> None:
    session.add(
        AiUsage(
            company_id=COMPANY_ID,
            task_type="parse_statement",
            credits_used=credits,
            created_at=created_at or utcnow(),
        )
    )
    session.commit()


def test_credit_costs() -> None:
    """Test the per-task credit table and the default for unknown tasks."""
    costs = {task: credit_cost(task) for task in ("parse_statement", "generate_proposal", "chat", "unheard_of")}
    if costs != {"parse_statement": 2, "generate_proposal": 3, "chat": 1, "unheard_of": 1}:
        msg = f"Unexpected credit costs: {costs}"
        raise AssertionError(msg)


def test_reserve_up_to_exact_limit(session: Session, settings: Settings) -> None:
    """Test that a request fitting exactly under the limit passes and the next one is rejected."""
    _seed_usage(session, 498)
    gate = UsageGate(session, settings)
    if gate.check_and_reserve(COMPANY_ID, "parse_statement") is None:
        msg = "Expected 498 + 2 <= 500 to be allowed"
        raise AssertionError(msg)
    if gate.check_and_reserve(COMPANY_ID, "chat") is not None:
        msg = "Expected 500 + 1 > 500 to be rejected"
        raise AssertionError(msg)


def test_reserve_rejects_when_over_limit(session: Session, settings: Settings) -> None:
    """Test that 499 used credits reject a two-credit task."""
    _seed_usage(session, 499)
    if UsageGate(session, settings).check_and_reserve(COMPANY_ID, "parse_statement") is not None:
        msg = "Expected 499 + 2 > 500 to be rejected"
        raise AssertionError(msg)


def test_reservations_count_before_usage_is_recorded(session: Session, settings: Settings) -> None:
    """Test that back-to-back reservations cannot overshoot the limit together."""
    _seed_usage(session, 497)
    gate = UsageGate(session, settings)
    first = gate.check_and_reserve(COMPANY_ID, "parse_statement")
    second = gate.check_and_reserve(COMPANY_ID, "parse_statement")
    if (first, second) != (month_key(), None):
        msg = f"Expected only the first reservation to pass, got {(first, second)}"
        raise AssertionError(msg)


def test_release_returns_credits(session: Session, settings: Settings) -> None:
    """Test that a released reservation frees room for another request."""
    _seed_usage(session, 498)
    gate = UsageGate(session, settings)
    period = gate.check_and_reserve(COMPANY_ID, "parse_statement")
    gate.release(COMPANY_ID, "parse_statement", period)
    if gate.check_and_reserve(COMPANY_ID, "parse_statement") is None:
        msg = "Expected the released credits to be available again"
        raise AssertionError(msg)


def test_release_after_month_rollover_uses_reserved_period(
    session: Session, settings: Settings, monkeypatch: pytest.MonkeyPatch
) -> None:
    """Test that a release after the month changes still returns credits to the reserving period."""
    _seed_usage(session, 10)
    gate = UsageGate(session, settings)
    period = gate.check_and_reserve(COMPANY_ID, "parse_statement")
    monkeypatch.setattr(usage_gate, "month_key", lambda: "2099-01")
    gate.release(COMPANY_ID, "parse_statement", period)

    session.expire_all()
    stmt = select(CreditLedger.period, CreditLedger.reserved).where(CreditLedger.company_id == COMPANY_ID)
    ledger = {row.period: row.reserved for row in session.execute(stmt)}
    if ledger != {period: 10}:
        msg = f"Expected only the reserving period to be credited back, got {ledger}"
        raise AssertionError(msg)


def test_company_plan_sets_limit(session: Session, settings: Settings) -> None:
    """Test that a stored plan tier overrides the default and unknown tiers fall back."""
    session.add_all(
        [CompanyPlan(company_id=COMPANY_ID, plan_tier="free"), CompanyPlan(company_id="odd-co", plan_tier="platinum")]
    )
    session.commit()
    gate = UsageGate(session, settings)
    if gate.credit_limit(COMPANY_ID) != 50:  # noqa: PLR2004
        msg = f"Expected free tier limit 50, got {gate.credit_limit(COMPANY_ID)}"
        raise AssertionError(msg)
    if gate.credit_limit("odd-co") != 500:  # noqa: PLR2004
        msg = f"Expected fallback limit 500, got {gate.credit_limit('odd-co')}"
        raise AssertionError(msg)

    _seed_usage(session, 49)
    if gate.check_and_reserve(COMPANY_ID, "parse_statement") is not None:
        msg = "Expected 49 + 2 > 50 to be rejected on the free tier"
        raise AssertionError(msg)


def test_usage_before_month_start_is_ignored(session: Session, settings: Settings) -> None:
    """Test that last month's credits do not count against this month."""
    _seed_usage(session, 500, created_at=start_of_month() - timedelta(seconds=1))
    _seed_usage(session, 7)
    gate = UsageGate(session, settings)
    if gate.monthly_usage(COMPANY_ID) != 7:  # noqa: PLR2004
        msg = f"Expected 7 credits this month, got {gate.monthly_usage(COMPANY_ID)}"
        raise AssertionError(msg)
    if gate.check_and_reserve(COMPANY_ID, "parse_statement") != month_key():
        msg = "Expected the reservation to pass in the current period"
        raise AssertionError(msg)


def test_record_usage_and_snapshot(session: Session, settings: Settings) -> None:
    """Test that recorded usage shows up in the monthly snapshot."""
    gate = UsageGate(session, settings)
    row = gate.record_usage(
        COMPANY_ID, "parse_statement", 1200, 300, 2, user_id="user-9", metadata={"statement_id": "stmt-1"}
    )
    if row.usage_metadata != {"statement_id": "stmt-1"} or row.user_id != "user-9":
        msg = f"Unexpected usage row: {row.usage_metadata} {row.user_id}"
        raise AssertionError(msg)
    snapshot = gate.usage_snapshot(COMPANY_ID)
    if (snapshot.plan_tier, snapshot.limit, snapshot.used, snapshot.remaining) != ("professional", 500, 2, 498):
        msg = f"Unexpected snapshot: {snapshot}"
        raise AssertionError(msg)
