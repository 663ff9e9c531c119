"""Monthly AI credit quota: reservation before a pipeline run, usage recording after it.

Reservations go through a per-company, per-month counter row updated with a conditional
``UPDATE ... WHERE reserved + cost <= limit``, so two concurrent requests cannot both pass a
check that only one of them fits under. The counter is seeded from the ``ai_usage`` sum the
first time a company reserves in a month.
"""

from sqlalchemy import func, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from statement_ingest.core.db import AiUsage, CompanyPlan, CreditLedger
from statement_ingest.core.models import UsageSnapshot
from statement_ingest.core.settings import Settings
from statement_ingest.core.utils import get_logger, month_key, start_of_month

CREDIT_COSTS: dict[str, int] = {
    "parse_receipt": 1,
    "parse_statement": 2,
    "generate_proposal": 3,
    "chat": 1,
    "categorize": 1,
    "extract": 1,
}
DEFAULT_CREDIT_COST = 1

PLAN_LIMITS: dict[str, int] = {
    "free": 50,
    "starter": 200,
    "professional": 500,
    "enterprise": 2000,
}

logger = get_logger("statement-ingest.usage")


def credit_cost(task_type: str) -> int:
    """Credits charged for one invocation of ``task_type``."""
    return CREDIT_COSTS.get(task_type, DEFAULT_CREDIT_COST)


class UsageGate:
    """Credit quota checks and usage bookkeeping for one request."""

    def __init__(self, session: Session, settings: Settings) -> None:
        """Initialize the gate with a SQLAlchemy session and settings."""
        self.session = session
        self.settings = settings

    def plan_tier(self, company_id: str) -> str:
        """Return the company's plan tier, falling back to the configured default."""
        tier = self.session.execute(
            select(CompanyPlan.plan_tier).where(CompanyPlan.company_id == company_id)
        ).scalar_one_or_none()
        return tier or self.settings.default_plan_tier

    def credit_limit(self, company_id: str) -> int:
        """Monthly credit ceiling for the company's plan."""
        tier = self.plan_tier(company_id)
        if tier not in PLAN_LIMITS:
            logger.warning(f"Unknown plan tier '{tier}' for company {company_id}; using default")
            tier = self.settings.default_plan_tier
        return PLAN_LIMITS[tier]

    def monthly_usage(self, company_id: str) -> int:
        """Sum of credits recorded for the company since the start of the month."""
        total = self.session.execute(
            select(func.coalesce(func.sum(AiUsage.credits_used), 0)).where(
                AiUsage.company_id == company_id,
                AiUsage.created_at >= start_of_month(),
            )
        ).scalar_one()
        return int(total)

    def check_and_reserve(self, company_id: str, task_type: str) -> str | None:
        """Reserve the task's credits if they fit under the monthly limit.

        Returns the ``YYYY-MM`` period the credits were reserved in, or ``None`` when the
        limit would be exceeded. Pass the period back to ``release``.
        """
        cost = credit_cost(task_type)
        limit = self.credit_limit(company_id)
        period = month_key()
        self._ensure_ledger(company_id, period)
        result = self.session.execute(
            update(CreditLedger)
            .where(
                CreditLedger.company_id == company_id,
                CreditLedger.period == period,
                CreditLedger.reserved + cost <= limit,
            )
            .values(reserved=CreditLedger.reserved + cost)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        if result.rowcount != 1:
            logger.warning(f"Credit limit {limit} reached for company {company_id}; rejected {task_type}")
            return None
        logger.info(f"Reserved {cost} credits for company {company_id} ({task_type}, period {period})")
        return period

    def release(self, company_id: str, task_type: str, period: str) -> None:
        """Return a reservation made in ``period`` whose pipeline run failed."""
        cost = credit_cost(task_type)
        self.session.execute(
            update(CreditLedger)
            .where(
                CreditLedger.company_id == company_id,
                CreditLedger.period == period,
                CreditLedger.reserved >= cost,
            )
            .values(reserved=CreditLedger.reserved - cost)
            .execution_options(synchronize_session=False)
        )
        self.session.commit()
        logger.info(f"Released {cost} credits for company {company_id} ({task_type}, period {period})")

    def record_usage(  # noqa: PLR0913
        self,
        company_id: str,
        task_type: str,
        tokens_in: int,
        tokens_out: int,
        credits_used: int,
        user_id: str | None = None,
        model: str | None = None,
        metadata: dict | None = None,
    ) -> AiUsage:
        """Append one usage row for a completed invocation."""
        row = AiUsage(
            company_id=company_id,
            user_id=user_id,
            task_type=task_type,
            model=model,
            input_tokens=tokens_in,
            output_tokens=tokens_out,
            credits_used=credits_used,
            usage_metadata=metadata or {},
        )
        self.session.add(row)
        self.session.commit()
        return row

    def usage_snapshot(self, company_id: str) -> UsageSnapshot:
        """Plan, limit and consumption for the current month."""
        limit = self.credit_limit(company_id)
        used = self.monthly_usage(company_id)
        return UsageSnapshot(
            company_id=company_id,
            plan_tier=self.plan_tier(company_id),
            limit=limit,
            used=used,
            remaining=max(limit - used, 0),
        )

    def _ensure_ledger(self, company_id: str, period: str) -> None:
        exists = self.session.execute(
            select(CreditLedger.id).where(CreditLedger.company_id == company_id, CreditLedger.period == period)
        ).scalar_one_or_none()
        if exists is not None:
            return
        seed = self.monthly_usage(company_id)
        self.session.add(CreditLedger(company_id=company_id, period=period, reserved=seed))
        try:
            self.session.commit()
        except IntegrityError:
            # created by a concurrent request
            self.session.rollback()
