from enum import Enum


class LoanApplicationType(str, Enum):
    RETAIL = "retail"
    CORPORATE = "corporate"


class LoanApplicationStatus(str, Enum):
    DRAFT = "draft"
    SUBMITTED = "submitted"
    DATA_GATHERING = "data_gathering"
    BRANCH_REVIEW = "branch_review"
    BRANCH_APPROVED = "branch_approved"
    BRANCH_RETURNED = "branch_returned"
    BRANCH_REJECTED = "branch_rejected"
    CREDIT_ANALYSIS = "credit_analysis"
    HO_REVIEW = "ho_review"
    COMMITTEE_CIRCULATION = "committee_circulation"
    COMMITTEE_APPROVED = "committee_approved"
    COMMITTEE_REJECTED = "committee_rejected"
    FINAL_APPROVAL = "final_approval"
    APPROVED = "approved"
    REJECTED = "rejected"
    OFFER_GENERATED = "offer_generated"
    OFFER_ACCEPTED = "offer_accepted"
    DISBURSED = "disbursed"
    CLOSED = "closed"
    CANCELLED = "cancelled"


class WorkflowAction(str, Enum):
    CREATE = "create"
    SUBMIT = "submit"
    APPROVE = "approve"
    REJECT = "reject"
    RETURN = "return"
    ASSIGN = "assign"
    UNASSIGN = "unassign"
    ESCALATE = "escalate"
    COMPLETE = "complete"
    CANCEL = "cancel"
    REOPEN = "reopen"
    MOVE_TO_NEXT_STAGE = "move_to_next_stage"
    REQUEST_INFO = "request_info"
    PROVIDE_INFO = "provide_info"
    OVERRIDE = "override"


class CommitteeType(str, Enum):
    BRANCH_CREDIT = "branch_credit"
    REGIONAL_CREDIT = "regional_credit"
    HEAD_OFFICE_CREDIT = "head_office_credit"
    MANAGEMENT_CREDIT = "management_credit"
    BOARD_CREDIT = "board_credit"


class CommitteeReviewStatus(str, Enum):
    CIRCULATED = "circulated"
    VOTING = "voting"
    DECIDED = "decided"
    EXPIRED = "expired"


class CommitteeVote(str, Enum):
    PENDING = "pending"
    APPROVE = "approve"
    REJECT = "reject"
    ABSTAIN = "abstain"


class CommitteeDecision(str, Enum):
    APPROVED = "approved"
    APPROVED_WITH_CONDITIONS = "approved_with_conditions"
    REJECTED = "rejected"
    DEFERRED = "deferred"
    ESCALATED = "escalated"


class CommentVisibility(str, Enum):
    COMMITTEE = "committee"
    INTERNAL = "internal"
    APPLICANT = "applicant"


class RiskCategory(str, Enum):
    CREDIT_HISTORY = "credit_history"
    FINANCIAL_HEALTH = "financial_health"
    CASHFLOW_STABILITY = "cashflow_stability"
    DEBT_SERVICE_CAPACITY = "debt_service_capacity"
    COLLATERAL_COVERAGE = "collateral_coverage"
    MANAGEMENT_RISK = "management_risk"
    INDUSTRY_RISK = "industry_risk"
    CONCENTRATION_RISK = "concentration_risk"


class RiskRating(str, Enum):
    VERY_LOW = "very_low"
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    VERY_HIGH = "very_high"


class AdvisoryStatus(str, Enum):
    PENDING = "pending"
    PROCESSING = "processing"
    COMPLETED = "completed"
    FAILED = "failed"


class AdvisoryRecommendation(str, Enum):
    STRONG_APPROVE = "strong_approve"
    APPROVE = "approve"
    APPROVE_WITH_CONDITIONS = "approve_with_conditions"
    REFER = "refer"
    DECLINE = "decline"
