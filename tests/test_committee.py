"""
Committee review: membership, voting, quorum, decisions, expiry and discussion.
Run: python -m pytest tests/test_committee.py -v
"""
import unittest
from datetime import datetime, timedelta, timezone
from decimal import Decimal

from schemas.committee import MAX_COMMENT_LENGTH, CommitteeReview
from schemas.enums import (
    CommentVisibility,
    CommitteeDecision,
    CommitteeReviewStatus,
    CommitteeType,
    CommitteeVote,
)
from schemas.events import CommitteeDecisionRecorded, CommitteeReviewExpired
from schemas.result import ErrorKind

NOW = datetime(2026, 3, 2, 9, 0, tzinfo=timezone.utc)


def _review(required_votes=3, minimum_approval_votes=2, members=("m1", "m2", "m3")) -> CommitteeReview:
    review = CommitteeReview.create(
        "loan-1",
        CommitteeType.HEAD_OFFICE_CREDIT,
        required_votes,
        minimum_approval_votes,
        deadline_hours=72,
        application_number="CL-2026-0001",
        circulated_by_user_id="secretary-1",
        now=NOW,
    ).value
    for i, user_id in enumerate(members):
        review.add_member(user_id, "CommitteeMember", is_chairperson=(i == 0), now=NOW)
    return review


def _approve(review, **overrides):
    terms = {
        "approved_amount": Decimal("50000000"),
        "approved_tenor_months": 36,
        "approved_interest_rate": Decimal("21.5"),
    }
    terms.update(overrides)
    return review.record_decision(CommitteeDecision.APPROVED, "Strong cashflow", decided_by_user_id="m1", **terms)


class TestCommitteeReviewCreation(unittest.TestCase):
    def test_create_sets_deadline_and_status(self):
        review = _review()
        self.assertEqual(review.status, CommitteeReviewStatus.CIRCULATED)
        self.assertEqual(review.deadline_at, NOW + timedelta(hours=72))
        self.assertEqual(review.pending_votes, 3)
        self.assertTrue(review.members[0].is_chairperson)

    def test_create_validation(self):
        cases = [
            (0, 1, 72),
            (3, 0, 72),
            (3, 4, 72),
            (3, 2, 0),
        ]
        for required, minimum, hours in cases:
            result = CommitteeReview.create("loan-1", CommitteeType.BRANCH_CREDIT, required, minimum, hours)
            self.assertEqual(result.kind, ErrorKind.VALIDATION_ERROR, (required, minimum, hours))


class TestCommitteeVoting(unittest.TestCase):
    def test_two_approvals_and_one_rejection_can_be_decided(self):
        review = _review()
        review.cast_vote("m1", CommitteeVote.APPROVE, now=NOW)
        review.cast_vote("m2", CommitteeVote.APPROVE, now=NOW)
        review.cast_vote("m3", CommitteeVote.REJECT, "Collateral thin", now=NOW)

        self.assertTrue(review.has_quorum)
        self.assertTrue(review.has_majority_approval)
        self.assertTrue(review.is_eligible_for_decision)
        self.assertEqual((review.approval_votes, review.rejection_votes, review.pending_votes), (2, 1, 0))

        result = _approve(review)
        self.assertTrue(result.ok, result.error)
        self.assertEqual(review.status, CommitteeReviewStatus.DECIDED)
        self.assertEqual(review.final_decision, CommitteeDecision.APPROVED)
        self.assertEqual(review.approved_tenor_months, 36)
        self.assertIsInstance(review.pending_events[-1], CommitteeDecisionRecorded)

    def test_decision_without_quorum_fails(self):
        review = _review()
        review.cast_vote("m1", CommitteeVote.APPROVE)

        self.assertFalse(review.has_quorum)
        result = _approve(review)
        self.assertEqual(result.kind, ErrorKind.INVALID_STATE_TRANSITION)
        self.assertEqual(review.status, CommitteeReviewStatus.VOTING)
        self.assertIsNone(review.final_decision)

    def test_first_vote_starts_voting(self):
        review = _review()
        review.cast_vote("m2", CommitteeVote.ABSTAIN)
        self.assertEqual(review.status, CommitteeReviewStatus.VOTING)
        self.assertEqual(review.abstain_votes, 1)

    def test_votes_are_final(self):
        review = _review()
        review.cast_vote("m1", CommitteeVote.APPROVE)

        result = review.cast_vote("m1", CommitteeVote.REJECT)
        self.assertEqual(result.kind, ErrorKind.ALREADY_VOTED)
        self.assertEqual(review.approval_votes, 1)
        self.assertEqual(review.rejection_votes, 0)
        self.assertEqual(review.get_member("m1").vote, CommitteeVote.APPROVE)

    def test_non_member_cannot_vote(self):
        result = _review().cast_vote("outsider", CommitteeVote.APPROVE)
        self.assertEqual(result.kind, ErrorKind.NOT_FOUND)

    def test_pending_is_not_a_vote(self):
        result = _review().cast_vote("m1", CommitteeVote.PENDING)
        self.assertEqual(result.kind, ErrorKind.VALIDATION_ERROR)

    def test_vote_after_decision_is_closed(self):
        review = _review(required_votes=2)
        review.cast_vote("m1", CommitteeVote.REJECT)
        review.cast_vote("m2", CommitteeVote.REJECT)
        self.assertTrue(review.record_decision(CommitteeDecision.REJECTED, "Weak DSCR").ok)

        result = review.cast_vote("m3", CommitteeVote.APPROVE)
        self.assertEqual(result.kind, ErrorKind.CLOSED)
        self.assertEqual(review.approval_votes, 0)

    def test_decision_is_recorded_once(self):
        review = _review(required_votes=2)
        review.cast_vote("m1", CommitteeVote.REJECT)
        review.cast_vote("m2", CommitteeVote.REJECT)
        review.record_decision(CommitteeDecision.REJECTED, "Weak DSCR")
        result = review.record_decision(CommitteeDecision.DEFERRED, "Changed mind")
        self.assertEqual(result.kind, ErrorKind.CLOSED)
        self.assertEqual(review.final_decision, CommitteeDecision.REJECTED)

    def test_approval_needs_terms_and_rationale(self):
        review = _review()
        for user_id in ("m1", "m2", "m3"):
            review.cast_vote(user_id, CommitteeVote.APPROVE)

        self.assertEqual(_approve(review, approved_amount=None).kind, ErrorKind.VALIDATION_ERROR)
        self.assertEqual(_approve(review, approved_tenor_months=0).kind, ErrorKind.VALIDATION_ERROR)
        self.assertEqual(_approve(review, approved_interest_rate=None).kind, ErrorKind.VALIDATION_ERROR)
        result = review.record_decision(CommitteeDecision.APPROVED_WITH_CONDITIONS, "")
        self.assertEqual(result.kind, ErrorKind.VALIDATION_ERROR)
        self.assertEqual(review.status, CommitteeReviewStatus.VOTING)

    def test_quorum_can_be_met_without_majority(self):
        review = _review()
        review.cast_vote("m1", CommitteeVote.APPROVE)
        review.cast_vote("m2", CommitteeVote.REJECT)
        review.cast_vote("m3", CommitteeVote.ABSTAIN)
        self.assertTrue(review.has_quorum)
        self.assertFalse(review.has_majority_approval)
        self.assertFalse(review.is_eligible_for_decision)
        self.assertTrue(review.record_decision(CommitteeDecision.REJECTED, "No majority").ok)


class TestCommitteeMembership(unittest.TestCase):
    def test_duplicate_member_rejected(self):
        result = _review().add_member("m1", "CommitteeMember")
        self.assertEqual(result.kind, ErrorKind.VALIDATION_ERROR)

    def test_no_new_members_once_voting_starts(self):
        review = _review(required_votes=2, minimum_approval_votes=1)
        review.cast_vote("m1", CommitteeVote.APPROVE)

        result = review.add_member("m4", "RiskManager")
        self.assertEqual(result.kind, ErrorKind.INVALID_STATE_TRANSITION)
        self.assertIsNone(review.get_member("m4"))
        self.assertEqual(len(review.members), 3)
        self.assertEqual(review.pending_votes, 2)

        self.assertTrue(review.replace_member("m3", "m4", now=NOW).ok)

        review.cast_vote("m2", CommitteeVote.REJECT)
        review.record_decision(CommitteeDecision.REJECTED, "Weak DSCR")
        self.assertEqual(review.add_member("m5", "RiskManager").kind, ErrorKind.CLOSED)

    def test_remove_only_before_voting(self):
        review = _review()
        self.assertTrue(review.remove_member("m3").ok)
        self.assertEqual(review.remove_member("m3").kind, ErrorKind.NOT_FOUND)
        review.cast_vote("m1", CommitteeVote.APPROVE)
        self.assertEqual(review.remove_member("m2").kind, ErrorKind.INVALID_STATE_TRANSITION)

    def test_replace_pending_member_only(self):
        review = _review()
        review.cast_vote("m1", CommitteeVote.APPROVE)

        self.assertEqual(review.replace_member("m1", "m9").kind, ErrorKind.ALREADY_VOTED)
        result = review.replace_member("m2", "m9", now=NOW)
        self.assertTrue(result.ok)
        self.assertEqual([m.user_id for m in review.members], ["m1", "m9", "m3"])
        self.assertIsNone(review.get_member("m2"))

    def test_record_view(self):
        member = _review().get_member("m2")
        member.record_view(NOW)
        member.record_view(NOW + timedelta(hours=1))
        self.assertEqual(member.first_viewed_at, NOW)
        self.assertEqual(member.view_count, 2)


class TestCommitteeExpiry(unittest.TestCase):
    def test_overdue_review_expires(self):
        review = _review()
        review.cast_vote("m1", CommitteeVote.APPROVE)
        past_deadline = NOW + timedelta(hours=73)

        self.assertFalse(review.is_overdue(NOW + timedelta(hours=72)))
        self.assertEqual(review.expire(NOW + timedelta(hours=1)).kind, ErrorKind.INVALID_STATE_TRANSITION)
        self.assertTrue(review.is_overdue(past_deadline))

        self.assertTrue(review.expire(past_deadline).ok)
        self.assertEqual(review.status, CommitteeReviewStatus.EXPIRED)
        expired = review.pending_events[-1]
        self.assertIsInstance(expired, CommitteeReviewExpired)
        self.assertEqual(expired.pending_votes, 2)

        self.assertEqual(review.cast_vote("m2", CommitteeVote.APPROVE).kind, ErrorKind.CLOSED)
        self.assertEqual(review.expire(past_deadline).kind, ErrorKind.CLOSED)

    def test_decided_review_is_never_overdue(self):
        review = _review(required_votes=1, minimum_approval_votes=1)
        review.cast_vote("m1", CommitteeVote.REJECT)
        review.record_decision(CommitteeDecision.REJECTED, "Weak DSCR")
        self.assertFalse(review.is_overdue(NOW + timedelta(days=30)))


class TestCommitteeComments(unittest.TestCase):
    def test_committee_comments_only_from_members(self):
        review = _review()
        result = review.add_comment("outsider", "I have concerns")
        self.assertEqual(result.kind, ErrorKind.VALIDATION_ERROR)

        result = review.add_comment("outsider", "Docs received", visibility=CommentVisibility.INTERNAL)
        self.assertTrue(result.ok)

    def test_threaded_replies(self):
        review = _review()
        parent = review.add_comment("m1", "Is the collateral perfected?").value
        reply = review.add_comment("m2", "Yes, as of last week", parent_comment_id=parent.id).value

        self.assertEqual(review.replies_to(parent.id), [reply])
        result = review.add_comment("m2", "Orphan", parent_comment_id="cmc-missing")
        self.assertEqual(result.kind, ErrorKind.NOT_FOUND)

    def test_comment_length_limit(self):
        review = _review()
        self.assertTrue(review.add_comment("m1", "x" * MAX_COMMENT_LENGTH).ok)
        result = review.add_comment("m1", "x" * (MAX_COMMENT_LENGTH + 1))
        self.assertEqual(result.kind, ErrorKind.VALIDATION_ERROR)
        self.assertEqual(review.add_comment("m1", "  ").kind, ErrorKind.VALIDATION_ERROR)

    def test_only_author_edits(self):
        review = _review()
        comment = review.add_comment("m1", "Draft note").value

        self.assertEqual(review.edit_comment(comment.id, "m2", "Hijack").kind, ErrorKind.VALIDATION_ERROR)
        self.assertTrue(review.edit_comment(comment.id, "m1", "Final note", now=NOW).ok)
        self.assertEqual(comment.content, "Final note")
        self.assertTrue(comment.is_edited)
        self.assertEqual(comment.edited_at, NOW)

    def test_visible_comments(self):
        review = _review()
        review.add_comment("m1", "Committee only")
        review.add_comment("m1", "Tell the customer", visibility=CommentVisibility.APPLICANT)
        visible = review.visible_comments({CommentVisibility.APPLICANT})
        self.assertEqual([c.content for c in visible], ["Tell the customer"])


if __name__ == "__main__":
    unittest.main()
