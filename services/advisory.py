from __future__ import annotations

import logging
from datetime import datetime
from typing import Awaitable, Callable, Optional

from schemas.advisory import CreditAdvisory, Number
from schemas.result import Result
from schemas.scoring import ScoringConfiguration
from services.advisory_scoring import CategoryAssessment, score_advisory
from services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)

# Produces the pre-scored categories for a loan application (bureau, financials, cashflow, ...)
Assessor = Callable[[str], Awaitable[list[CategoryAssessment]]]


async def generate_credit_advisory(
    loan_application_id: str,
    requested_amount: Number,
    requested_tenor_months: int,
    generated_by_user_id: str,
    assessor: Assessor,
    config: Optional[ScoringConfiguration] = None,
    model_version: str = "",
    uow_factory: Callable[[], UnitOfWork] = UnitOfWork,
    now: Optional[datetime] = None,
) -> Result:
    """
    Create a new advisory for the application, score it and store it.
    The advisory is stored even when assessment or scoring fails (status Failed with
    the error message); earlier advisories stay as history.
    """
    config = config or ScoringConfiguration()
    created = CreditAdvisory.create(loan_application_id, generated_by_user_id, model_version, now=now)
    if not created:
        return created
    advisory = created.value

    try:
        assessments = await assessor(loan_application_id)
        scored = score_advisory(
            advisory,
            assessments,
            config,
            requested_amount,
            requested_tenor_months,
            now=now,
        )
        if not scored:
            advisory.mark_failed(scored.error)
    except Exception as e:
        logger.exception("Assessor failed for loan application %s", loan_application_id)
        advisory.mark_failed(str(e))

    async with uow_factory() as uow:
        saved = await uow.advisories.add(advisory)
        if not saved:
            return saved
        committed = await uow.commit()
        if not committed:
            return committed

    if advisory.error_message:
        logger.warning("Advisory %s failed: %s", advisory.id, advisory.error_message)
    else:
        logger.info(
            "Advisory %s completed for %s: score=%s rating=%s recommendation=%s",
            advisory.id,
            loan_application_id,
            advisory.overall_score,
            advisory.overall_rating.value,
            advisory.recommendation.value if advisory.recommendation else None,
        )
    return Result.success(advisory)


async def get_latest_advisory(
    loan_application_id: str,
    uow_factory: Callable[[], UnitOfWork] = UnitOfWork,
) -> Result:
    async with uow_factory() as uow:
        advisory = await uow.advisories.get_latest(loan_application_id)
    if advisory is None:
        return Result.not_found(f"No credit advisory for loan application {loan_application_id}")
    return Result.success(advisory)


async def list_advisory_history(
    loan_application_id: str,
    uow_factory: Callable[[], UnitOfWork] = UnitOfWork,
) -> list[CreditAdvisory]:
    async with uow_factory() as uow:
        return await uow.advisories.list_for_application(loan_application_id)
