"""
Committee review: quorum-based voting on a loan application.

Circulated -> Voting (first vote cast) -> Decided | Expired.
Votes are final. A decision may only be recorded once quorum is reached;
the review exposes has_quorum / has_majority_approval and leaves the call to a human.
"""
from __future__ import annotations

from datetime import datetime, timedelta
from decimal import Decimal
from typing import Optional

from pydantic import BaseModel, Field

from schemas.base import AggregateRoot, is_blank, new_id, now_or
from schemas.enums import (
    CommentVisibility,
    CommitteeDecision,
    CommitteeReviewStatus,
    CommitteeType,
    CommitteeVote,
)
from schemas.events import (
    CommitteeDecisionRecorded,
    CommitteeMemberAdded,
    CommitteeReviewCreated,
    CommitteeReviewExpired,
    CommitteeVoteCast,
)
from schemas.result import ErrorKind, Result

MAX_COMMENT_LENGTH = 2000

TERMINAL_STATUSES = frozenset({CommitteeReviewStatus.DECIDED, CommitteeReviewStatus.EXPIRED})

APPROVAL_DECISIONS = frozenset({CommitteeDecision.APPROVED, CommitteeDecision.APPROVED_WITH_CONDITIONS})


class CommitteeMember(BaseModel):
    user_id: str
    role: str
    is_chairperson: bool = False
    vote: CommitteeVote = CommitteeVote.PENDING
    voted_at: Optional[datetime] = None
    vote_comment: Optional[str] = None
    assigned_at: datetime
    first_viewed_at: Optional[datetime] = None
    view_count: int = 0

    @property
    def has_voted(self) -> bool:
        return self.vote != CommitteeVote.PENDING

    def record_view(self, now: Optional[datetime] = None) -> None:
        if self.first_viewed_at is None:
            self.first_viewed_at = now_or(now)
        self.view_count += 1


class CommitteeComment(BaseModel):
    id: str
    user_id: str
    content: str
    visibility: CommentVisibility = CommentVisibility.COMMITTEE
    parent_comment_id: Optional[str] = None
    created_at: datetime
    edited_at: Optional[datetime] = None
    is_edited: bool = False


def _validate_comment_content(content: Optional[str]) -> Optional[Result]:
    if is_blank(content):
        return Result.invalid("Comment content is required")
    if len(content) > MAX_COMMENT_LENGTH:
        return Result.invalid(f"Comment cannot exceed {MAX_COMMENT_LENGTH} characters")
    return None


class CommitteeReview(AggregateRoot):
    loan_application_id: str
    application_number: str = ""
    committee_type: CommitteeType
    status: CommitteeReviewStatus = CommitteeReviewStatus.CIRCULATED

    circulated_at: datetime
    circulated_by_user_id: Optional[str] = None
    deadline_at: datetime
    required_votes: int
    minimum_approval_votes: int

    final_decision: Optional[CommitteeDecision] = None
    decision_at: Optional[datetime] = None
    decision_by_user_id: Optional[str] = None
    decision_rationale: Optional[str] = None

    approved_amount: Optional[Decimal] = None
    approved_tenor_months: Optional[int] = None
    approved_interest_rate: Optional[Decimal] = None
    approval_conditions: Optional[str] = None

    members: list[CommitteeMember] = Field(default_factory=list)
    comments: list[CommitteeComment] = Field(default_factory=list)

    @classmethod
    def create(
        cls,
        loan_application_id: str,
        committee_type: CommitteeType,
        required_votes: int,
        minimum_approval_votes: int,
        deadline_hours: int,
        application_number: str = "",
        circulated_by_user_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        if is_blank(loan_application_id):
            return Result.invalid("Loan application ID is required")
        if required_votes <= 0:
            return Result.invalid("Required votes must be greater than zero")
        if minimum_approval_votes <= 0 or minimum_approval_votes > required_votes:
            return Result.invalid("Minimum approval votes must be between 1 and required votes")
        if deadline_hours <= 0:
            return Result.invalid("Deadline hours must be greater than zero")

        now = now_or(now)
        review = cls(
            id=new_id("cmr"),
            loan_application_id=loan_application_id,
            application_number=application_number,
            committee_type=committee_type,
            circulated_at=now,
            circulated_by_user_id=circulated_by_user_id,
            deadline_at=now + timedelta(hours=deadline_hours),
            required_votes=required_votes,
            minimum_approval_votes=minimum_approval_votes,
        )
        review.add_event(
            CommitteeReviewCreated(
                aggregate_id=review.id,
                loan_application_id=loan_application_id,
                application_number=application_number,
                committee_type=committee_type,
                deadline_at=review.deadline_at,
            )
        )
        return Result.success(review)

    # --- membership ---

    def get_member(self, user_id: str) -> Optional[CommitteeMember]:
        return next((m for m in self.members if m.user_id == user_id), None)

    def add_member(
        self,
        user_id: str,
        role: str,
        is_chairperson: bool = False,
        now: Optional[datetime] = None,
    ) -> Result:
        if self.is_closed:
            return Result.failure(ErrorKind.CLOSED, f"Committee review is {self.status.value}")
        # Once voting starts the seat list is fixed; replace_member swaps pending voters
        if self.status != CommitteeReviewStatus.CIRCULATED:
            return Result.invalid_state("Cannot add members after voting has started")
        if is_blank(user_id):
            return Result.invalid("User ID is required")
        if is_blank(role):
            return Result.invalid("Role is required")
        if self.get_member(user_id) is not None:
            return Result.invalid("Member already added to committee")

        member = CommitteeMember(
            user_id=user_id,
            role=role,
            is_chairperson=is_chairperson,
            assigned_at=now_or(now),
        )
        self.members.append(member)
        self.add_event(
            CommitteeMemberAdded(
                aggregate_id=self.id,
                loan_application_id=self.loan_application_id,
                user_id=user_id,
                role=role,
            )
        )
        return Result.success(member)

    def remove_member(self, user_id: str) -> Result:
        if self.status != CommitteeReviewStatus.CIRCULATED:
            return Result.invalid_state("Cannot remove members after voting has started")
        member = self.get_member(user_id)
        if member is None:
            return Result.not_found("Member not found")
        self.members.remove(member)
        return Result.success(member)

    def replace_member(
        self,
        user_id: str,
        new_user_id: str,
        role: Optional[str] = None,
        is_chairperson: Optional[bool] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        """Swap a reviewer who has not voted yet, keeping their seat position."""
        if self.is_closed:
            return Result.failure(ErrorKind.CLOSED, f"Committee review is {self.status.value}")
        member = self.get_member(user_id)
        if member is None:
            return Result.not_found("Member not found")
        if member.has_voted:
            return Result.failure(ErrorKind.ALREADY_VOTED, "Cannot replace a member who has already voted")
        if is_blank(new_user_id):
            return Result.invalid("User ID is required")
        if self.get_member(new_user_id) is not None:
            return Result.invalid("Member already added to committee")

        replacement = CommitteeMember(
            user_id=new_user_id,
            role=role or member.role,
            is_chairperson=member.is_chairperson if is_chairperson is None else is_chairperson,
            assigned_at=now_or(now),
        )
        self.members[self.members.index(member)] = replacement
        self.add_event(
            CommitteeMemberAdded(
                aggregate_id=self.id,
                loan_application_id=self.loan_application_id,
                user_id=new_user_id,
                role=replacement.role,
            )
        )
        return Result.success(replacement)

    # --- voting ---

    def cast_vote(
        self,
        user_id: str,
        vote: CommitteeVote,
        comment: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        member = self.get_member(user_id)
        if member is None:
            return Result.not_found("User is not a committee member")
        if member.has_voted:
            return Result.failure(ErrorKind.ALREADY_VOTED, "Member has already voted")
        if self.is_closed:
            return Result.failure(ErrorKind.CLOSED, f"Committee review is {self.status.value}")
        if vote == CommitteeVote.PENDING:
            return Result.invalid("Vote must be approve, reject or abstain")

        member.vote = vote
        member.voted_at = now_or(now)
        member.vote_comment = comment
        if self.status == CommitteeReviewStatus.CIRCULATED:
            self.status = CommitteeReviewStatus.VOTING

        self.add_event(
            CommitteeVoteCast(
                aggregate_id=self.id,
                loan_application_id=self.loan_application_id,
                user_id=user_id,
                vote=vote,
            )
        )
        return Result.success(member)

    @property
    def approval_votes(self) -> int:
        return self._count(CommitteeVote.APPROVE)

    @property
    def rejection_votes(self) -> int:
        return self._count(CommitteeVote.REJECT)

    @property
    def abstain_votes(self) -> int:
        return self._count(CommitteeVote.ABSTAIN)

    @property
    def pending_votes(self) -> int:
        return self._count(CommitteeVote.PENDING)

    @property
    def votes_cast(self) -> int:
        return self.approval_votes + self.rejection_votes + self.abstain_votes

    @property
    def has_quorum(self) -> bool:
        return self.votes_cast >= self.required_votes

    @property
    def has_majority_approval(self) -> bool:
        return self.approval_votes >= self.minimum_approval_votes

    @property
    def is_eligible_for_decision(self) -> bool:
        return self.has_quorum and self.has_majority_approval

    @property
    def is_closed(self) -> bool:
        return self.status in TERMINAL_STATUSES

    def is_overdue(self, now: Optional[datetime] = None) -> bool:
        return self.status != CommitteeReviewStatus.DECIDED and now_or(now) > self.deadline_at

    def _count(self, vote: CommitteeVote) -> int:
        return sum(1 for m in self.members if m.vote == vote)

    # --- decision ---

    def record_decision(
        self,
        decision: CommitteeDecision,
        rationale: str,
        decided_by_user_id: Optional[str] = None,
        approved_amount: Optional[Decimal] = None,
        approved_tenor_months: Optional[int] = None,
        approved_interest_rate: Optional[Decimal] = None,
        conditions: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        if self.is_closed:
            return Result.failure(ErrorKind.CLOSED, f"Committee review is {self.status.value}")
        if not self.has_quorum:
            return Result.invalid_state(
                f"Quorum not reached: {self.votes_cast} of {self.required_votes} required votes cast"
            )
        if is_blank(rationale):
            return Result.invalid("Decision rationale is required")
        if decision in APPROVAL_DECISIONS:
            if approved_amount is None or approved_amount <= 0:
                return Result.invalid("Approved amount is required for approval")
            if approved_tenor_months is None or approved_tenor_months <= 0:
                return Result.invalid("Approved tenor is required for approval")
            if approved_interest_rate is None or approved_interest_rate <= 0:
                return Result.invalid("Approved interest rate is required for approval")

        self.final_decision = decision
        self.decision_at = now_or(now)
        self.decision_by_user_id = decided_by_user_id
        self.decision_rationale = rationale
        self.approved_amount = approved_amount
        self.approved_tenor_months = approved_tenor_months
        self.approved_interest_rate = approved_interest_rate
        self.approval_conditions = conditions
        self.status = CommitteeReviewStatus.DECIDED

        self.add_event(
            CommitteeDecisionRecorded(
                aggregate_id=self.id,
                loan_application_id=self.loan_application_id,
                decision=decision,
                approved_amount=approved_amount,
                approved_tenor_months=approved_tenor_months,
                approved_interest_rate=approved_interest_rate,
            )
        )
        return Result.success(self)

    def expire(self, now: Optional[datetime] = None) -> Result:
        if self.is_closed:
            return Result.failure(ErrorKind.CLOSED, f"Committee review is {self.status.value}")
        if not self.is_overdue(now):
            return Result.invalid_state("Committee review deadline has not passed")

        self.status = CommitteeReviewStatus.EXPIRED
        self.add_event(
            CommitteeReviewExpired(
                aggregate_id=self.id,
                loan_application_id=self.loan_application_id,
                deadline_at=self.deadline_at,
                pending_votes=self.pending_votes,
            )
        )
        return Result.success(self)

    # --- discussion ---

    def add_comment(
        self,
        user_id: str,
        content: str,
        visibility: CommentVisibility = CommentVisibility.COMMITTEE,
        parent_comment_id: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> Result:
        invalid = _validate_comment_content(content)
        if invalid is not None:
            return invalid
        if visibility == CommentVisibility.COMMITTEE and self.get_member(user_id) is None:
            return Result.invalid("Only committee members can add committee-visible comments")
        if parent_comment_id is not None and self.get_comment(parent_comment_id) is None:
            return Result.not_found("Parent comment not found")

        comment = CommitteeComment(
            id=new_id("cmc"),
            user_id=user_id,
            content=content,
            visibility=visibility,
            parent_comment_id=parent_comment_id,
            created_at=now_or(now),
        )
        self.comments.append(comment)
        return Result.success(comment)

    def edit_comment(self, comment_id: str, edited_by_user_id: str, content: str, now: Optional[datetime] = None) -> Result:
        comment = self.get_comment(comment_id)
        if comment is None:
            return Result.not_found("Comment not found")
        if comment.user_id != edited_by_user_id:
            return Result.invalid("Only the author can edit a comment")
        invalid = _validate_comment_content(content)
        if invalid is not None:
            return invalid

        comment.content = content
        comment.edited_at = now_or(now)
        comment.is_edited = True
        return Result.success(comment)

    def get_comment(self, comment_id: str) -> Optional[CommitteeComment]:
        return next((c for c in self.comments if c.id == comment_id), None)

    def replies_to(self, comment_id: str) -> list[CommitteeComment]:
        return [c for c in self.comments if c.parent_comment_id == comment_id]

    def visible_comments(self, visibilities: set[CommentVisibility]) -> list[CommitteeComment]:
        return [c for c in self.comments if c.visibility in visibilities]
