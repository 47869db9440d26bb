from schemas.advisory import CreditAdvisory, RiskScore, rating_for_score
from schemas.committee import CommitteeComment, CommitteeMember, CommitteeReview
from schemas.result import ErrorKind, Result
from schemas.scoring import CategoryWeights, LoanAdjustmentConfig, RecommendationThresholds, ScoringConfiguration
from schemas.workflow import (
    AvailableAction,
    WorkflowDefinition,
    WorkflowInstance,
    WorkflowStage,
    WorkflowTransition,
    WorkflowTransitionLog,
)

__all__ = [
    "AvailableAction",
    "CategoryWeights",
    "CommitteeComment",
    "CommitteeMember",
    "CommitteeReview",
    "CreditAdvisory",
    "ErrorKind",
    "LoanAdjustmentConfig",
    "RecommendationThresholds",
    "Result",
    "RiskScore",
    "ScoringConfiguration",
    "WorkflowDefinition",
    "WorkflowInstance",
    "WorkflowStage",
    "WorkflowTransition",
    "WorkflowTransitionLog",
    "rating_for_score",
]
