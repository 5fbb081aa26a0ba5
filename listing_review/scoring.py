"""Issue grouping, risk aggregation, and compliance scoring."""

import hashlib
from dataclasses import replace
from typing import Iterable

from .config import TIER_PENALTIES, SEVERE_ISSUE_PENALTY
from .models import Issue, RiskAssessment, SEVERE_TIERS, TIER_ORDER, Tier


def group_id_for(normalized_term: str) -> str:
    digest = hashlib.sha1(normalized_term.encode("utf-8")).hexdigest()[:12]
    return f"grp_{digest}"


def group_issues(issues: Iterable[Issue]) -> list[Issue]:
    """Merge issues that share a normalized term.

    The first issue for a term seeds the group; later ones add their members
    to ``occurrences`` and only raise the severity, never lower it. Running
    this on an already-grouped list returns an equal list.
    """
    groups: dict[str, Issue] = {}
    for issue in issues:
        key = issue.normalized_term
        members = issue.occurrences or (issue,)
        existing = groups.get(key)
        if existing is None:
            groups[key] = replace(
                issue,
                occurrences=tuple(members),
                occurrence_count=len(members),
                group_id=group_id_for(key),
                is_grouped=len(members) > 1,
            )
            continue

        merged = existing.occurrences + tuple(members)
        updates = dict(
            occurrences=merged,
            occurrence_count=len(merged),
            is_grouped=True,
        )
        if Tier.parse(issue.risk_level).rank > Tier.parse(existing.risk_level).rank:
            updates["risk_level"] = issue.risk_level
            updates["description"] = issue.description
        groups[key] = replace(existing, **updates)
    return list(groups.values())


def assess_risk(grouped: Iterable[Issue]) -> RiskAssessment:
    """Tally one count per group and derive the overall tier."""
    counts = {tier: 0 for tier in TIER_ORDER}
    for issue in grouped:
        counts[Tier.parse(issue.risk_level)] += 1
    overall = next((tier for tier in TIER_ORDER if counts[tier] > 0), None)
    return RiskAssessment(
        critical=counts[Tier.CRITICAL],
        high=counts[Tier.HIGH],
        medium=counts[Tier.MEDIUM],
        low=counts[Tier.LOW],
        warning=counts[Tier.WARNING],
        overall=overall,
    )


def compliance_score(risk: RiskAssessment) -> int:
    """100 minus weighted tier penalties, clamped to [0, 100]."""
    score = 100
    for tier in TIER_ORDER:
        score -= TIER_PENALTIES[tier.value] * risk.count(tier)
    if any(risk.count(tier) > 0 for tier in SEVERE_TIERS):
        score -= SEVERE_ISSUE_PENALTY
    return max(0, min(100, score))
