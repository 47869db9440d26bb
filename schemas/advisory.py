"""
Credit advisory: weighted aggregation of pre-scored risk categories.

Pending -> Processing -> Completed | Failed.
Scores are held one per category (last write wins); red flags are an append-only
union across everything ever added, so removing or replacing a score does not
retract flags already merged.
"""
from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Iterable, Optional, Union

from pydantic import BaseModel, Field

from schemas.base import AggregateRoot, is_blank, new_id, now_or
from schemas.enums import AdvisoryRecommendation, AdvisoryStatus, RiskCategory, RiskRating
from schemas.events import CreditAdvisoryCompleted, CreditAdvisoryFailed
from schemas.result import Result

Number = Union[int, float, Decimal]

CRITICAL_RED_FLAG_COUNT = 3

_HUNDRED = Decimal("100")
_ZERO = Decimal("0")
_ONE = Decimal("1")
_CENTS = Decimal("0.01")


def to_decimal(value: Number) -> Decimal:
    return value if isinstance(value, Decimal) else Decimal(str(value))


def _clamp(value: Decimal, low: Decimal, high: Decimal) -> Decimal:
    return max(low, min(high, value))


def rating_for_score(score: Number) -> RiskRating:
    """Fixed thresholds: >=80 very low, >=65 low, >=50 medium, >=35 high, else very high."""
    score = to_decimal(score)
    if score >= 80:
        return RiskRating.VERY_LOW
    if score >= 65:
        return RiskRating.LOW
    if score >= 50:
        return RiskRating.MEDIUM
    if score >= 35:
        return RiskRating.HIGH
    return RiskRating.VERY_HIGH


class RiskScore(BaseModel):
    category: RiskCategory
    score: Decimal
    weight: Decimal
    rating: RiskRating
    rationale: str = ""
    red_flags: list[str] = Field(default_factory=list)
    positive_indicators: list[str] = Field(default_factory=list)

    model_config = {"frozen": True}

    @classmethod
    def create(
        cls,
        category: RiskCategory,
        score: Number,
        weight: Number,
        rationale: str,
        red_flags: Optional[Iterable[str]] = None,
        positive_indicators: Optional[Iterable[str]] = None,
    ) -> "RiskScore":
        clamped = _clamp(to_decimal(score), _ZERO, _HUNDRED)
        return cls(
            category=category,
            score=clamped,
            weight=_clamp(to_decimal(weight), _ZERO, _ONE),
            rating=rating_for_score(clamped),
            rationale=rationale or "",
            red_flags=list(red_flags or []),
            positive_indicators=list(positive_indicators or []),
        )

    @property
    def weighted_score(self) -> Decimal:
        return self.score * self.weight


def weighted_mean(scores: Iterable[RiskScore]) -> Decimal:
    """Banker's-rounded sum(weighted) / sum(weight) to 2 dp, or 0 when no weight is present."""
    scores = list(scores)
    total_weight = sum((s.weight for s in scores), _ZERO)
    if total_weight <= 0:
        return _ZERO
    total = sum((s.weighted_score for s in scores), _ZERO)
    return (total / total_weight).quantize(_CENTS, rounding=ROUND_HALF_EVEN)


class CreditAdvisory(AggregateRoot):
    loan_application_id: str
    status: AdvisoryStatus = AdvisoryStatus.PENDING

    overall_score: Decimal = _ZERO
    overall_rating: Optional[RiskRating] = None
    recommendation: Optional[AdvisoryRecommendation] = None

    risk_scores: dict[RiskCategory, RiskScore] = Field(default_factory=dict)

    recommended_amount: Optional[Decimal] = None
    recommended_tenor_months: Optional[int] = None
    recommended_interest_rate: Optional[Decimal] = None
    max_exposure: Optional[Decimal] = None

    conditions: list[str] = Field(default_factory=list)
    covenants: list[str] = Field(default_factory=list)
    red_flags: list[str] = Field(default_factory=list)

    executive_summary: Optional[str] = None
    strengths_analysis: Optional[str] = None
    weaknesses_analysis: Optional[str] = None
    mitigating_factors: Optional[str] = None
    key_risks: Optional[str] = None

    model_version: str = ""
    scoring_config_version: Optional[int] = None
    generated_by_user_id: str
    created_at: datetime
    # Overwritten by complete(): generation time is completion time
    generated_at: datetime
    error_message: Optional[str] = None

    bureau_report_ids: list[str] = Field(default_factory=list)
    financial_statement_ids: list[str] = Field(default_factory=list)
    cashflow_analysis_id: Optional[str] = None

    model_config = {"protected_namespaces": ()}

    @classmethod
    def create(
        cls,
        loan_application_id: str,
        generated_by_user_id: str,
        model_version: str,
        now: Optional[datetime] = None,
    ) -> Result:
        if is_blank(loan_application_id):
            return Result.invalid("Loan application ID is required")
        now = now_or(now)
        return Result.success(
            cls(
                id=new_id("adv"),
                loan_application_id=loan_application_id,
                generated_by_user_id=generated_by_user_id,
                model_version=model_version,
                created_at=now,
                generated_at=now,
            )
        )

    def start_processing(self) -> Result:
        if self.status != AdvisoryStatus.PENDING:
            return Result.invalid_state(f"Advisory is {self.status.value}, not pending")
        self.status = AdvisoryStatus.PROCESSING
        return Result.success(self)

    def add_risk_score(self, score: RiskScore) -> Result:
        if self.status != AdvisoryStatus.PROCESSING:
            return Result.invalid_state("Advisory must be in processing status to add scores")

        # Re-inserting moves a recomputed category to the end
        self.risk_scores.pop(score.category, None)
        self.risk_scores[score.category] = score
        for flag in score.red_flags:
            if flag not in self.red_flags:
                self.red_flags.append(flag)
        return Result.success(score)

    def remove_risk_score(self, category: RiskCategory) -> Result:
        if self.status != AdvisoryStatus.PROCESSING:
            return Result.invalid_state("Advisory must be in processing status to remove scores")
        removed = self.risk_scores.pop(category, None)
        if removed is None:
            return Result.not_found(f"No risk score for category {category.value}")
        return Result.success(removed)

    def get_score(self, category: RiskCategory) -> Decimal:
        score = self.risk_scores.get(category)
        return score.score if score is not None else _ZERO

    def set_recommendation(
        self,
        recommendation: AdvisoryRecommendation,
        recommended_amount: Optional[Decimal] = None,
        recommended_tenor_months: Optional[int] = None,
        recommended_interest_rate: Optional[Decimal] = None,
        max_exposure: Optional[Decimal] = None,
    ) -> Result:
        if self.status != AdvisoryStatus.PROCESSING:
            return Result.invalid_state("Advisory must be in processing status")
        self.recommendation = recommendation
        self.recommended_amount = recommended_amount
        self.recommended_tenor_months = recommended_tenor_months
        self.recommended_interest_rate = recommended_interest_rate
        self.max_exposure = max_exposure
        return Result.success(self)

    def add_condition(self, condition: str) -> Result:
        if is_blank(condition):
            return Result.invalid("Condition cannot be empty")
        if condition not in self.conditions:
            self.conditions.append(condition)
        return Result.success(self)

    def add_covenant(self, covenant: str) -> Result:
        if is_blank(covenant):
            return Result.invalid("Covenant cannot be empty")
        if covenant not in self.covenants:
            self.covenants.append(covenant)
        return Result.success(self)

    def set_analysis_content(
        self,
        executive_summary: str,
        strengths_analysis: str,
        weaknesses_analysis: str,
        mitigating_factors: Optional[str] = None,
        key_risks: Optional[str] = None,
    ) -> Result:
        if self.status != AdvisoryStatus.PROCESSING:
            return Result.invalid_state("Advisory must be in processing status")
        self.executive_summary = executive_summary
        self.strengths_analysis = strengths_analysis
        self.weaknesses_analysis = weaknesses_analysis
        self.mitigating_factors = mitigating_factors
        self.key_risks = key_risks
        return Result.success(self)

    def set_input_references(
        self,
        bureau_report_ids: list[str],
        financial_statement_ids: list[str],
        cashflow_analysis_id: Optional[str] = None,
    ) -> Result:
        self.bureau_report_ids = list(bureau_report_ids)
        self.financial_statement_ids = list(financial_statement_ids)
        self.cashflow_analysis_id = cashflow_analysis_id
        return Result.success(self)

    def complete(self, now: Optional[datetime] = None) -> Result:
        if self.status != AdvisoryStatus.PROCESSING:
            return Result.invalid_state("Advisory must be in processing status")
        if not self.risk_scores:
            return Result.invalid("At least one risk score is required")

        self.overall_score = weighted_mean(self.risk_scores.values())
        self.overall_rating = rating_for_score(self.overall_score)
        self.status = AdvisoryStatus.COMPLETED
        self.generated_at = now_or(now)

        self.add_event(
            CreditAdvisoryCompleted(
                aggregate_id=self.id,
                loan_application_id=self.loan_application_id,
                overall_score=self.overall_score,
                overall_rating=self.overall_rating,
                recommendation=self.recommendation,
                has_critical_red_flags=self.has_critical_red_flags,
            )
        )
        return Result.success(self)

    def mark_failed(self, reason: str) -> Result:
        self.status = AdvisoryStatus.FAILED
        self.error_message = reason or "Advisory generation failed"
        self.add_event(
            CreditAdvisoryFailed(
                aggregate_id=self.id,
                loan_application_id=self.loan_application_id,
                error_message=self.error_message,
            )
        )
        return Result.success(self)

    @property
    def has_critical_red_flags(self) -> bool:
        return len(self.red_flags) >= CRITICAL_RED_FLAG_COUNT or any(
            s.rating == RiskRating.VERY_HIGH for s in self.risk_scores.values()
        )
