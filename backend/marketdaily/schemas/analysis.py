"""Validated narrative-analysis records.

Each record mirrors the JSON object the LLM is asked to return. A reply that
parses but is missing fields or has the wrong types fails validation and the
caller substitutes the record's ``fallback()``.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator

ANALYSIS_UNAVAILABLE = "Analysis unavailable"

RISK_LEVELS = ("low", "medium", "high", "critical", "unknown")


def _normalize_risk(value: str) -> str:
    level = value.strip().lower()
    if level not in RISK_LEVELS:
        raise ValueError(f"unsupported risk level: {value!r}")
    return level


class AnalysisRecord(BaseModel):
    model_config = ConfigDict(extra="ignore")

    # False only on fallback records. Set by the analyzer, never taken from
    # an LLM reply; kept in report snapshots.
    available: bool = True


class PortfolioRecommendations(AnalysisRecord):
    recommendations: list[str]
    risk_level: str
    summary: str

    @field_validator("risk_level")
    @classmethod
    def _risk(cls, v: str) -> str:
        return _normalize_risk(v)

    @classmethod
    def fallback(cls) -> "PortfolioRecommendations":
        return cls(
            recommendations=[],
            risk_level="unknown",
            summary=ANALYSIS_UNAVAILABLE,
            available=False,
        )


class EnhancedAnalysis(AnalysisRecord):
    summary: str
    recommendations: list[str]
    risk_assessment: str
    market_outlook: str
    action_items: list[str]

    @field_validator("risk_assessment")
    @classmethod
    def _risk(cls, v: str) -> str:
        return _normalize_risk(v)

    @field_validator("recommendations")
    @classmethod
    def _cap_recommendations(cls, v: list[str]) -> list[str]:
        return v[:5]

    @field_validator("action_items")
    @classmethod
    def _cap_actions(cls, v: list[str]) -> list[str]:
        return v[:3]

    @classmethod
    def fallback(cls) -> "EnhancedAnalysis":
        return cls(
            summary=ANALYSIS_UNAVAILABLE,
            recommendations=[],
            risk_assessment="unknown",
            market_outlook="",
            action_items=[],
            available=False,
        )


class ExternalNewsAnalysis(AnalysisRecord):
    summary: str
    key_trends: list[str]
    sentiment: str
    risk_factors: list[str]

    @classmethod
    def fallback(cls) -> "ExternalNewsAnalysis":
        return cls(
            summary=ANALYSIS_UNAVAILABLE,
            key_trends=[],
            sentiment="neutral",
            risk_factors=[],
            available=False,
        )


class TopicAnalysis(AnalysisRecord):
    summary: str
    analysis: str
    trends: list[str]
    recommendations: list[str]
    risk_factors: list[str] = Field(default_factory=list)
    opportunities: list[str] = Field(default_factory=list)

    @classmethod
    def fallback(cls) -> "TopicAnalysis":
        return cls(
            summary=ANALYSIS_UNAVAILABLE,
            analysis="",
            trends=[],
            recommendations=[],
            available=False,
        )

    @classmethod
    def no_data(cls, topic: str) -> "TopicAnalysis":
        return cls(
            summary=f'No news found about "{topic}"',
            analysis="Insufficient data for analysis",
            trends=[],
            recommendations=[],
            available=False,
        )
