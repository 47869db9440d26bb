"""
Turns pre-scored category assessments into a credit advisory recommendation.
Pure functions of (assessments, scoring configuration); nothing here reads the clock
or the database.
"""
from __future__ import annotations

from datetime import datetime
from decimal import ROUND_HALF_EVEN, Decimal
from typing import Iterable, Optional

from pydantic import BaseModel, Field

from schemas.advisory import CreditAdvisory, Number, RiskScore, rating_for_score, to_decimal, weighted_mean
from schemas.enums import AdvisoryRecommendation, RiskCategory
from schemas.result import Result
from schemas.scoring import LoanAdjustmentConfig, RecommendationThresholds, ScoringConfiguration

_THOUSAND = Decimal("1000")

KEY_RISKS = {
    AdvisoryRecommendation.DECLINE: "Multiple critical risk factors identified. Loan does not meet minimum underwriting standards.",
    AdvisoryRecommendation.REFER: (
        "Borderline case requiring senior credit committee review. "
        "Key concerns include marginal financials and/or credit history issues."
    ),
    AdvisoryRecommendation.APPROVE_WITH_CONDITIONS: "Acceptable risk with conditions. Ongoing monitoring recommended.",
}


class CategoryAssessment(BaseModel):
    """One category as scored by the assessor (0-100), before weighting."""
    category: RiskCategory
    score: Decimal
    rationale: str = ""
    red_flags: list[str] = Field(default_factory=list)
    positive_indicators: list[str] = Field(default_factory=list)


class LoanTerms(BaseModel):
    amount: Decimal
    tenor_months: int
    interest_rate: Decimal
    max_exposure: Decimal


class Covenants(BaseModel):
    conditions: list[str] = Field(default_factory=list)
    covenants: list[str] = Field(default_factory=list)


def build_risk_scores(assessments: Iterable[CategoryAssessment], config: ScoringConfiguration) -> Result:
    """Weight each assessment from the configuration. Fails when the weights do not sum to 1."""
    errors = config.weight_errors()
    if errors:
        return Result.invalid("; ".join(errors))
    return Result.success(
        [
            RiskScore.create(
                category=a.category,
                score=a.score,
                weight=config.weights.weight_for(a.category),
                rationale=a.rationale,
                red_flags=a.red_flags,
                positive_indicators=a.positive_indicators,
            )
            for a in assessments
        ]
    )


def derive_recommendation(
    score: Number,
    red_flag_count: int,
    thresholds: Optional[RecommendationThresholds] = None,
) -> AdvisoryRecommendation:
    t = thresholds or RecommendationThresholds()
    score = to_decimal(score)
    if red_flag_count >= t.critical_red_flags_threshold or score < t.refer_min_score:
        return AdvisoryRecommendation.DECLINE
    if score >= t.strong_approve_min_score and red_flag_count <= t.strong_approve_max_red_flags:
        return AdvisoryRecommendation.STRONG_APPROVE
    if score >= t.approve_min_score and red_flag_count <= t.approve_max_red_flags:
        return AdvisoryRecommendation.APPROVE
    if score >= t.approve_with_conditions_min_score:
        return AdvisoryRecommendation.APPROVE_WITH_CONDITIONS
    return AdvisoryRecommendation.REFER


def _band(score: Decimal, at_80, at_70, at_60, at_50, below_50):
    if score >= 80:
        return at_80
    if score >= 70:
        return at_70
    if score >= 60:
        return at_60
    if score >= 50:
        return at_50
    return below_50


def recommend_loan_terms(
    score: Number,
    recommendation: AdvisoryRecommendation,
    requested_amount: Number,
    requested_tenor_months: int,
    adjustments: Optional[LoanAdjustmentConfig] = None,
) -> Optional[LoanTerms]:
    """Scale the requested facility by score band. Declined applications get no terms."""
    if recommendation == AdvisoryRecommendation.DECLINE:
        return None
    cfg = adjustments or LoanAdjustmentConfig()
    score = to_decimal(score)

    multiplier = _band(
        score,
        cfg.score_80_plus_multiplier,
        cfg.score_70_plus_multiplier,
        cfg.score_60_plus_multiplier,
        cfg.score_50_plus_multiplier,
        cfg.below_score_50_multiplier,
    )
    amount = (to_decimal(requested_amount) * multiplier / _THOUSAND).quantize(Decimal("1"), ROUND_HALF_EVEN) * _THOUSAND

    tenor = requested_tenor_months
    if score < cfg.low_score_threshold_for_tenor_restriction:
        tenor = min(requested_tenor_months, cfg.max_tenor_for_low_scores)

    rate = cfg.base_interest_rate + _band(
        score,
        cfg.score_80_plus_rate_adjustment,
        cfg.score_70_plus_rate_adjustment,
        cfg.score_60_plus_rate_adjustment,
        cfg.score_50_plus_rate_adjustment,
        cfg.below_score_50_rate_adjustment,
    )
    return LoanTerms(
        amount=amount,
        tenor_months=tenor,
        interest_rate=rate,
        max_exposure=amount * cfg.max_exposure_multiplier,
    )


def derive_conditions(score: Number, red_flags: Iterable[str]) -> Covenants:
    score = to_decimal(score)
    flags = [f.lower() for f in red_flags]
    result = Covenants()
    if score < 70:
        result.conditions.append("Quarterly financial statements submission required")
        result.covenants.append("Maintain minimum current ratio of 1.2x")
    if score < 60:
        result.conditions.append("Monthly bank statement submission for first 12 months")
        result.conditions.append("Personal guarantee from principal shareholders required")
        result.covenants.append("Maintain DSCR above 1.25x")
    if any("collateral" in f for f in flags):
        result.conditions.append("Additional collateral to achieve 70% LTV required")
    if any("delinquent" in f or "default" in f for f in flags):
        result.conditions.append("Clear all outstanding delinquent facilities before disbursement")
    result.covenants.append("No additional borrowing without bank consent")
    result.covenants.append("Maintain insurance coverage on all pledged assets")
    return result


def build_analysis(
    scores: Iterable[RiskScore],
    overall_score: Decimal,
    recommendation: AdvisoryRecommendation,
    requested_amount: Number,
    requested_tenor_months: int,
) -> dict[str, Optional[str]]:
    scores = list(scores)
    strengths = [p for s in scores for p in s.positive_indicators][:5]
    weaknesses = [f for s in scores for f in s.red_flags][:5]
    rating = rating_for_score(overall_score).value.replace("_", " ")
    return {
        "executive_summary": (
            f"Credit assessment for a loan of {to_decimal(requested_amount):,.0f} over {requested_tenor_months} months. "
            f"Overall risk score: {overall_score:.1f}/100 ({rating} risk). "
            f"Recommendation: {recommendation.value}. Assessment based on {len(scores)} scored categories."
        ),
        "strengths_analysis": ". ".join(strengths) + "." if strengths else "Limited positive indicators identified.",
        "weaknesses_analysis": ". ".join(weaknesses) + "." if weaknesses else "No significant weaknesses identified.",
        "key_risks": KEY_RISKS.get(recommendation),
    }


def score_advisory(
    advisory: CreditAdvisory,
    assessments: Iterable[CategoryAssessment],
    config: ScoringConfiguration,
    requested_amount: Number,
    requested_tenor_months: int,
    now: Optional[datetime] = None,
) -> Result:
    """
    Run a pending advisory through scoring to Completed.
    On any rejection the advisory is left as it was at that step for the caller to mark failed.
    """
    started = advisory.start_processing()
    if not started:
        return started

    built = build_risk_scores(assessments, config)
    if not built:
        return built
    for score in built.value:
        added = advisory.add_risk_score(score)
        if not added:
            return added
    if not advisory.risk_scores:
        return Result.invalid("Assessor returned no category scores")

    overall = weighted_mean(advisory.risk_scores.values())
    recommendation = derive_recommendation(overall, len(advisory.red_flags), config.recommendations)
    terms = recommend_loan_terms(
        overall, recommendation, requested_amount, requested_tenor_months, config.loan_adjustments
    )
    advisory.set_recommendation(
        recommendation,
        recommended_amount=terms.amount if terms else None,
        recommended_tenor_months=terms.tenor_months if terms else None,
        recommended_interest_rate=terms.interest_rate if terms else None,
        max_exposure=terms.max_exposure if terms else None,
    )

    derived = derive_conditions(overall, advisory.red_flags)
    for condition in derived.conditions:
        advisory.add_condition(condition)
    for covenant in derived.covenants:
        advisory.add_covenant(covenant)

    analysis = build_analysis(
        advisory.risk_scores.values(), overall, recommendation, requested_amount, requested_tenor_months
    )
    advisory.set_analysis_content(**analysis)
    advisory.scoring_config_version = config.version
    return advisory.complete(now)
