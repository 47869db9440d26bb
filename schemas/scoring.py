"""
Scoring configuration snapshot.

Weights and thresholds are data handed to the aggregator as an immutable,
versioned value. Changing a parameter produces a new snapshot via revise().
"""
from decimal import Decimal
from typing import Any, Optional

from pydantic import BaseModel, Field

from schemas.enums import RiskCategory

WEIGHT_SUM_TOLERANCE = Decimal("0.001")


class CategoryWeights(BaseModel):
    """Contribution of each category to the overall score (must sum to 1.0)."""
    credit_history: Decimal = Field(Decimal("0.25"), ge=0, le=1)
    financial_health: Decimal = Field(Decimal("0.25"), ge=0, le=1)
    cashflow_stability: Decimal = Field(Decimal("0.15"), ge=0, le=1)
    debt_service_capacity: Decimal = Field(Decimal("0.20"), ge=0, le=1)
    collateral_coverage: Decimal = Field(Decimal("0.15"), ge=0, le=1)

    model_config = {"frozen": True}

    def weight_for(self, category: RiskCategory) -> Decimal:
        # Categories without a configured weight do not move the overall score
        return getattr(self, category.value, Decimal("0"))

    @property
    def total(self) -> Decimal:
        return sum((getattr(self, name) for name in type(self).model_fields), Decimal("0"))


class RecommendationThresholds(BaseModel):
    strong_approve_min_score: Decimal = Decimal("75")
    strong_approve_max_red_flags: int = 0
    approve_min_score: Decimal = Decimal("65")
    approve_max_red_flags: int = 1
    approve_with_conditions_min_score: Decimal = Decimal("50")
    # Below this score the recommendation is Decline
    refer_min_score: Decimal = Decimal("35")
    critical_red_flags_threshold: int = 3

    model_config = {"frozen": True}


class LoanAdjustmentConfig(BaseModel):
    """Score bands -> amount multiplier and rate adjustment over the base rate."""
    score_80_plus_multiplier: Decimal = Decimal("1.0")
    score_70_plus_multiplier: Decimal = Decimal("0.9")
    score_60_plus_multiplier: Decimal = Decimal("0.75")
    score_50_plus_multiplier: Decimal = Decimal("0.6")
    below_score_50_multiplier: Decimal = Decimal("0.5")

    base_interest_rate: Decimal = Decimal("18.0")
    score_80_plus_rate_adjustment: Decimal = Decimal("-2.0")
    score_70_plus_rate_adjustment: Decimal = Decimal("-1.0")
    score_60_plus_rate_adjustment: Decimal = Decimal("0")
    score_50_plus_rate_adjustment: Decimal = Decimal("2.0")
    below_score_50_rate_adjustment: Decimal = Decimal("4.0")

    max_tenor_for_low_scores: int = 36
    low_score_threshold_for_tenor_restriction: Decimal = Decimal("70")
    max_exposure_multiplier: Decimal = Decimal("1.2")

    model_config = {"frozen": True}


class ScoringConfiguration(BaseModel):
    version: int = 1
    weights: CategoryWeights = Field(default_factory=CategoryWeights)
    recommendations: RecommendationThresholds = Field(default_factory=RecommendationThresholds)
    loan_adjustments: LoanAdjustmentConfig = Field(default_factory=LoanAdjustmentConfig)

    model_config = {"frozen": True}

    def revise(
        self,
        weights: Optional[dict[str, Any]] = None,
        recommendations: Optional[dict[str, Any]] = None,
        loan_adjustments: Optional[dict[str, Any]] = None,
    ) -> "ScoringConfiguration":
        """Return a new snapshot (version + 1) with the given sections partially overridden."""
        return ScoringConfiguration(
            version=self.version + 1,
            weights=self.weights.model_validate({**self.weights.model_dump(), **(weights or {})}),
            recommendations=self.recommendations.model_validate(
                {**self.recommendations.model_dump(), **(recommendations or {})}
            ),
            loan_adjustments=self.loan_adjustments.model_validate(
                {**self.loan_adjustments.model_dump(), **(loan_adjustments or {})}
            ),
        )

    def weight_errors(self) -> list[str]:
        total = self.weights.total
        if abs(total - Decimal("1")) > WEIGHT_SUM_TOLERANCE:
            return [f"Category weights must sum to 1.0 (got {total})"]
        return []
