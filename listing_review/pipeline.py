"""Main orchestration pipeline: rules + policy sections + optional AI, then grouping and scoring."""

import logging
import threading
from datetime import datetime, timezone
from typing import Iterable, Optional

from .config import AI_TIMEOUT_SECONDS
from .models import AnalysisReport, ComplianceStatus, Issue, PolicySection, Rule, Tier
from .matching import match_rules, score_policy_sections
from .analysis import (
    Augmenter, augmentation_issues, reconcile_augmentation, request_augmentation,
    split_title_description,
)
from .scoring import group_issues, assess_risk, compliance_score
from .output import analyze_section_health, generate_action_items, generate_recommendations
from .extractors import DataUnavailableError, Store

logger = logging.getLogger(__name__)


class ListingValidationError(ValueError):
    """The listing text is empty or whitespace only."""


def analyze_listing(
    listing_text: str,
    rules: Iterable[Rule],
    policy_sections: Iterable[PolicySection] = (),
    augmenter: Optional[Augmenter] = None,
    timeout: float = AI_TIMEOUT_SECONDS,
    cancel_event: Optional[threading.Event] = None,
    now: Optional[datetime] = None,
) -> AnalysisReport:
    """
    Analyze one listing against a full rule set and policy section snapshot.

    The AI step is optional and never fatal; everything else is deterministic
    for a given input and ``now``.
    """
    if not listing_text or not listing_text.strip():
        raise ListingValidationError("Listing text is empty")

    rules = list(rules)
    policy_sections = list(policy_sections)

    raw: list[Issue] = []
    raw.extend(match_rules(listing_text, rules))

    matched_sections, policy_issues = score_policy_sections(listing_text, policy_sections)
    raw.extend(policy_issues)

    augmentation = None
    if augmenter is not None:
        title, description = split_title_description(listing_text)
        augmentation = request_augmentation(
            augmenter, title, description, timeout=timeout, cancel_event=cancel_event,
        )
        if augmentation is not None:
            ai_issues = augmentation_issues(augmentation, listing_text)
            augmentation = reconcile_augmentation(augmentation, ai_issues)
            raw.extend(ai_issues)

    grouped = group_issues(raw)
    risk = assess_risk(grouped)
    logger.info(
        "Listing analysis: %d raw issues, %d groups, overall=%s",
        len(raw), len(grouped), risk.overall.value if risk.overall else "none",
    )

    return AnalysisReport(
        timestamp=(now or datetime.now(timezone.utc)).isoformat(),
        listing_text=listing_text,
        total_issues=len(grouped),
        compliance_score=compliance_score(risk),
        compliance_status=ComplianceStatus.from_tiers(Tier.parse(i.risk_level) for i in grouped),
        risk_assessment=risk,
        flagged_issues=tuple(grouped),
        section_health=tuple(analyze_section_health(listing_text, grouped)),
        recommendations=tuple(generate_recommendations(risk, len(grouped))),
        matched_policy_sections=tuple(matched_sections),
        ai_suggestions=augmentation.suggestions if augmentation else (),
        augmentation=augmentation,
        action_items=tuple(generate_action_items(grouped, augmentation)),
    )


def run_analysis(
    listing_text: str,
    store: Store,
    augmenter: Optional[Augmenter] = None,
    timeout: float = AI_TIMEOUT_SECONDS,
    cancel_event: Optional[threading.Event] = None,
    progress_callback=None,
) -> tuple[AnalysisReport, dict]:
    """
    Fetch a data snapshot from the store and analyze the listing.

    Returns (report, metadata). Store failures raise DataUnavailableError.
    """
    def progress(step, total, msg):
        if progress_callback:
            progress_callback(step, total, msg)
        else:
            logger.info(msg)

    if not listing_text or not listing_text.strip():
        raise ListingValidationError("Listing text is empty")

    progress(1, 3, "Loading rules and policy sections...")
    try:
        rules = store.fetch_rules()
        sections = store.fetch_policy_sections()
    except Exception as e:
        raise DataUnavailableError(f"Could not load compliance data: {e}") from e
    progress(1, 3, f"  {len(rules)} rules, {len(sections)} policy sections")

    progress(2, 3, "Analyzing listing...")
    report = analyze_listing(
        listing_text, rules, sections,
        augmenter=augmenter, timeout=timeout, cancel_event=cancel_event,
    )

    ai_model = getattr(augmenter, "model", None) if augmenter else None
    if report.augmentation is not None and report.augmentation.model_used:
        ai_model = report.augmentation.model_used

    metadata = {
        "rules_loaded": len(rules),
        "policy_sections_loaded": len(sections),
        "ai_model": ai_model,
        "ai_used": report.augmentation is not None,
    }
    progress(3, 3, f"  {report.total_issues} issues, score {report.compliance_score}/100")
    return report, metadata
