"""Data classes for the listing review pipeline."""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Any, ClassVar, Iterable, Optional


class Tier(str, Enum):
    """Engine severity tiers, highest first."""

    CRITICAL = "critical"
    HIGH = "high"
    MEDIUM = "medium"
    LOW = "low"
    WARNING = "warning"

    @property
    def rank(self) -> int:
        return _TIER_RANK[self]

    @classmethod
    def parse(cls, value: Any) -> Tier:
        """Coerce a stored value to a tier; unknown values become WARNING."""
        if isinstance(value, Tier):
            return value
        try:
            return cls(str(value).strip().lower())
        except ValueError:
            return cls.WARNING


TIER_ORDER = (Tier.CRITICAL, Tier.HIGH, Tier.MEDIUM, Tier.LOW, Tier.WARNING)
_TIER_RANK = {tier: len(TIER_ORDER) - i for i, tier in enumerate(TIER_ORDER)}
SEVERE_TIERS = frozenset({Tier.CRITICAL, Tier.HIGH})


class ComplianceStatus(str, Enum):
    """UI-facing verdict. Distinct from Tier.WARNING."""

    PASS = "pass"
    WARNING = "warning"
    FAIL = "fail"

    @classmethod
    def from_tiers(cls, tiers: Iterable[Tier]) -> ComplianceStatus:
        seen = False
        for tier in tiers:
            if tier in SEVERE_TIERS:
                return cls.FAIL
            seen = True
        return cls.WARNING if seen else cls.PASS


# ---------------------------------------------------------------------------
# Inputs
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Rule:
    term: str
    risk_level: Tier = Tier.WARNING
    reason: str = ""
    category: str = ""

    def __post_init__(self):
        object.__setattr__(self, "risk_level", Tier.parse(self.risk_level))

    @classmethod
    def from_record(cls, record: Any) -> Optional[Rule]:
        if not isinstance(record, dict):
            return None
        term = str(record.get("term") or "").strip()
        if not term:
            return None
        return cls(
            term=term,
            risk_level=record.get("risk_level", record.get("riskLevel")),
            reason=str(record.get("reason") or ""),
            category=str(record.get("category") or ""),
        )


@dataclass(frozen=True)
class PolicySection:
    title: str
    summary: str = ""
    category: str = ""
    risk_level: Tier = Tier.WARNING

    def __post_init__(self):
        object.__setattr__(self, "risk_level", Tier.parse(self.risk_level))

    @classmethod
    def from_record(cls, record: Any) -> Optional[PolicySection]:
        if not isinstance(record, dict):
            return None
        title = str(record.get("title") or record.get("section_title") or "").strip()
        if not title:
            return None
        summary = record.get("summary") or record.get("plain_english_summary") or ""
        return cls(
            title=title,
            summary=str(summary),
            category=str(record.get("category") or ""),
            risk_level=record.get("risk_level", record.get("riskLevel")),
        )

    def to_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "summary": self.summary,
            "category": self.category,
            "riskLevel": self.risk_level.value,
        }


# ---------------------------------------------------------------------------
# Issues
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Context:
    snippet_before: str
    term: str
    snippet_after: str
    position: int
    sentence_or_paragraph: str

    def to_payload(self) -> dict[str, Any]:
        return {
            "snippetBefore": self.snippet_before,
            "term": self.term,
            "snippetAfter": self.snippet_after,
            "position": self.position,
            "sentenceOrParagraph": self.sentence_or_paragraph,
        }


@dataclass(frozen=True)
class Issue:
    """Common shape of every reported concern, raw or grouped."""

    type: ClassVar[str] = ""

    term: str
    category: str
    risk_level: Tier
    description: str
    found_in: Optional[Context] = None
    occurrences: tuple[Issue, ...] = ()
    occurrence_count: int = 1
    group_id: str = ""
    is_grouped: bool = False

    def __post_init__(self):
        object.__setattr__(self, "risk_level", Tier.parse(self.risk_level))

    @property
    def normalized_term(self) -> str:
        return self.term.strip().lower()

    @property
    def contexts(self) -> list[Context]:
        """Every stored context, across grouped occurrences."""
        members = self.occurrences or (self,)
        return [m.found_in for m in members if m.found_in is not None]

    def _extra_payload(self) -> dict[str, Any]:
        return {}

    def to_payload(self) -> dict[str, Any]:
        payload = {
            "type": self.type,
            "term": self.term,
            "category": self.category,
            "riskLevel": self.risk_level.value,
            "description": self.description,
            "foundIn": self.found_in.to_payload() if self.found_in else None,
            "occurrences": [o.to_payload() for o in self.occurrences],
            "occurrenceCount": self.occurrence_count,
            "groupId": self.group_id,
            "isGrouped": self.is_grouped,
        }
        payload.update(self._extra_payload())
        return payload


@dataclass(frozen=True)
class RuleIssue(Issue):
    type: ClassVar[str] = "rule"

    reason: str = ""

    def _extra_payload(self) -> dict[str, Any]:
        return {"reason": self.reason}


@dataclass(frozen=True)
class PolicyIssue(Issue):
    type: ClassVar[str] = "policy"

    policy_section: str = ""
    match_score: float = 0.0

    def _extra_payload(self) -> dict[str, Any]:
        return {"policySection": self.policy_section, "matchScore": round(self.match_score, 3)}


@dataclass(frozen=True)
class AIIssue(Issue):
    type: ClassVar[str] = "ai"

    reasoning: str = ""
    model_used: str = ""

    def _extra_payload(self) -> dict[str, Any]:
        return {"reasoning": self.reasoning, "modelUsed": self.model_used}


# ---------------------------------------------------------------------------
# Results
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class MatchedPolicySection:
    title: str
    category: str
    risk_level: Tier
    match_score: float

    def to_payload(self) -> dict[str, Any]:
        return {
            "title": self.title,
            "category": self.category,
            "riskLevel": self.risk_level.value,
            "matchScore": round(self.match_score, 3),
        }


@dataclass(frozen=True)
class AugmentationResult:
    status: ComplianceStatus
    flagged_terms: tuple[str, ...] = ()
    suggestions: tuple[str, ...] = ()
    confidence: float = 0.0
    reasoning: str = ""
    model_used: str = ""

    def to_payload(self) -> dict[str, Any]:
        return {
            "status": self.status.value,
            "flaggedTerms": list(self.flagged_terms),
            "suggestions": list(self.suggestions),
            "confidence": self.confidence,
            "reasoning": self.reasoning,
            "modelUsed": self.model_used,
        }


@dataclass(frozen=True)
class RiskAssessment:
    critical: int = 0
    high: int = 0
    medium: int = 0
    low: int = 0
    warning: int = 0
    overall: Optional[Tier] = None

    def count(self, tier: Tier) -> int:
        return getattr(self, tier.value)

    @property
    def total(self) -> int:
        return sum(self.count(t) for t in TIER_ORDER)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {t.value: self.count(t) for t in TIER_ORDER}
        payload["overall"] = self.overall.value if self.overall else "none"
        return payload


@dataclass(frozen=True)
class SectionHealth:
    field_name: str
    status: ComplianceStatus
    issue_count: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "fieldName": self.field_name,
            "status": self.status.value,
            "issueCount": self.issue_count,
        }


@dataclass(frozen=True)
class Recommendation:
    priority: str
    message: str
    action: str
    count: int = 0

    def to_payload(self) -> dict[str, Any]:
        return {
            "priority": self.priority,
            "message": self.message,
            "action": self.action,
            "count": self.count,
        }


@dataclass(frozen=True)
class ActionItem:
    """A concrete follow-up: drop one rule term, or apply one AI suggestion."""

    type: str
    reason: str
    severity: Tier
    term: str = ""
    source: str = ""

    def __post_init__(self):
        object.__setattr__(self, "severity", Tier.parse(self.severity))

    def to_payload(self) -> dict[str, Any]:
        return {
            "type": self.type,
            "term": self.term,
            "reason": self.reason,
            "severity": self.severity.value,
            "source": self.source,
        }


@dataclass(frozen=True)
class AnalysisReport:
    timestamp: str
    listing_text: str
    total_issues: int
    compliance_score: int
    compliance_status: ComplianceStatus
    risk_assessment: RiskAssessment
    flagged_issues: tuple[Issue, ...]
    section_health: tuple[SectionHealth, ...]
    recommendations: tuple[Recommendation, ...]
    matched_policy_sections: tuple[MatchedPolicySection, ...] = ()
    ai_suggestions: tuple[str, ...] = ()
    augmentation: Optional[AugmentationResult] = None
    action_items: tuple[ActionItem, ...] = ()

    def to_payload(self) -> dict[str, Any]:
        return {
            "timestamp": self.timestamp,
            "listingText": self.listing_text,
            "totalIssues": self.total_issues,
            "complianceScore": self.compliance_score,
            "complianceStatus": self.compliance_status.value,
            "riskAssessment": self.risk_assessment.to_payload(),
            "flaggedIssues": [i.to_payload() for i in self.flagged_issues],
            "sectionHealth": [s.to_payload() for s in self.section_health],
            "recommendations": [r.to_payload() for r in self.recommendations],
            "matchedPolicySections": [m.to_payload() for m in self.matched_policy_sections],
            "aiSuggestions": list(self.ai_suggestions),
            "augmentation": self.augmentation.to_payload() if self.augmentation else None,
            "actionItems": [a.to_payload() for a in self.action_items],
        }
