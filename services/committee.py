from __future__ import annotations

import logging
from datetime import datetime
from decimal import Decimal
from typing import Callable, Optional

from config import settings
from schemas.committee import CommitteeReview
from schemas.enums import CommentVisibility, CommitteeDecision, CommitteeType, CommitteeVote
from schemas.result import Result
from services.unit_of_work import UnitOfWork

logger = logging.getLogger(__name__)


class CommitteeService:
    """Load a review, apply one committee operation, save it against the loaded version."""

    def __init__(self, uow_factory: Callable[[], UnitOfWork] = UnitOfWork):
        self.uow_factory = uow_factory

    async def create_review(
        self,
        loan_application_id: str,
        committee_type: CommitteeType,
        required_votes: int,
        minimum_approval_votes: int,
        deadline_hours: Optional[int] = None,
        application_number: str = "",
        circulated_by_user_id: Optional[str] = None,
        members: Optional[list[tuple[str, str, bool]]] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        """members: (user_id, role, is_chairperson) tuples added at circulation."""
        async with self.uow_factory() as uow:
            if await uow.reviews.get_by_loan_application_id(loan_application_id) is not None:
                return Result.invalid(f"Committee review already exists for loan application {loan_application_id}")

            created = CommitteeReview.create(
                loan_application_id,
                committee_type,
                required_votes,
                minimum_approval_votes,
                settings.committee_default_deadline_hours if deadline_hours is None else deadline_hours,
                application_number=application_number,
                circulated_by_user_id=circulated_by_user_id,
                now=now,
            )
            if not created:
                return created
            review = created.value
            for user_id, role, is_chairperson in members or []:
                added = review.add_member(user_id, role, is_chairperson, now=now)
                if not added:
                    return added

            saved = await uow.reviews.add(review)
            if not saved:
                return saved
            committed = await uow.commit()
            if not committed:
                return committed

        logger.info(
            "Committee review %s circulated for loan application %s (%s, %d members)",
            review.id,
            loan_application_id,
            committee_type.value,
            len(review.members),
        )
        return Result.success(review)

    async def get_review(self, review_id: str) -> Result:
        async with self.uow_factory() as uow:
            review = await uow.reviews.get(review_id)
        if review is None:
            return Result.not_found(f"Committee review {review_id} not found")
        return Result.success(review)

    async def add_member(
        self,
        review_id: str,
        user_id: str,
        role: str,
        is_chairperson: bool = False,
        now: Optional[datetime] = None,
    ) -> Result:
        return await self._apply(review_id, lambda r: r.add_member(user_id, role, is_chairperson, now=now))

    async def remove_member(self, review_id: str, user_id: str) -> Result:
        return await self._apply(review_id, lambda r: r.remove_member(user_id))

    async def replace_member(
        self,
        review_id: str,
        user_id: str,
        new_user_id: str,
        role: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        return await self._apply(review_id, lambda r: r.replace_member(user_id, new_user_id, role=role, now=now))

    async def record_view(self, review_id: str, user_id: str, now: Optional[datetime] = None) -> Result:
        def view(review: CommitteeReview) -> Result:
            member = review.get_member(user_id)
            if member is None:
                return Result.not_found("User is not a committee member")
            member.record_view(now)
            return Result.success(member)

        return await self._apply(review_id, view)

    async def cast_vote(
        self,
        review_id: str,
        user_id: str,
        vote: CommitteeVote,
        comment: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        result = await self._apply(review_id, lambda r: r.cast_vote(user_id, vote, comment, now=now))
        if result:
            logger.info("Vote %s cast by %s on review %s", vote.value, user_id, review_id)
        return result

    async def record_decision(
        self,
        review_id: str,
        decision: CommitteeDecision,
        rationale: str,
        decided_by_user_id: Optional[str] = None,
        approved_amount: Optional[Decimal] = None,
        approved_tenor_months: Optional[int] = None,
        approved_interest_rate: Optional[Decimal] = None,
        conditions: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        result = await self._apply(
            review_id,
            lambda r: r.record_decision(
                decision,
                rationale,
                decided_by_user_id=decided_by_user_id,
                approved_amount=approved_amount,
                approved_tenor_months=approved_tenor_months,
                approved_interest_rate=approved_interest_rate,
                conditions=conditions,
                now=now,
            ),
        )
        if result:
            logger.info("Committee review %s decided: %s", review_id, decision.value)
        return result

    async def add_comment(
        self,
        review_id: str,
        user_id: str,
        content: str,
        visibility: CommentVisibility = CommentVisibility.COMMITTEE,
        parent_comment_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        return await self._apply(
            review_id,
            lambda r: r.add_comment(user_id, content, visibility, parent_comment_id, now=now),
        )

    async def edit_comment(
        self,
        review_id: str,
        comment_id: str,
        edited_by_user_id: str,
        content: str,
        now: Optional[datetime] = None,
    ) -> Result:
        return await self._apply(review_id, lambda r: r.edit_comment(comment_id, edited_by_user_id, content, now=now))

    async def expire_overdue_reviews(self, now: Optional[datetime] = None) -> int:
        """Move every open review past its deadline to Expired. Returns how many were expired."""
        async with self.uow_factory() as uow:
            overdue = await uow.reviews.list_overdue(now)

        expired = 0
        for candidate in overdue:
            try:
                result = await self._apply(candidate.id, lambda r: r.expire(now))
            except Exception:
                logger.exception("Failed to expire committee review %s", candidate.id)
                continue
            if result:
                expired += 1
                logger.info("Committee review %s expired with %d pending votes", candidate.id, candidate.pending_votes)
            else:
                logger.warning("Committee review %s not expired: %s", candidate.id, result.error)
        return expired

    async def _apply(self, review_id: str, operation: Callable[[CommitteeReview], Result]) -> Result:
        async with self.uow_factory() as uow:
            review = await uow.reviews.get(review_id)
            if review is None:
                return Result.not_found(f"Committee review {review_id} not found")
            outcome = operation(review)
            if not outcome:
                return outcome
            saved = await uow.reviews.update(review)
            if not saved:
                return saved
            committed = await uow.commit()
            if not committed:
                return committed
        return outcome
