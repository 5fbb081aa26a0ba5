"""Output generation: section health, recommendations, rich terminal output."""

import re
from typing import Iterable, Optional

from .config import SECTION_CONTEXT_PREFIX
from .models import (
    ActionItem, AnalysisReport, AugmentationResult, ComplianceStatus, Issue,
    Recommendation, RiskAssessment, RuleIssue, SectionHealth, Tier,
)

LISTING_FIELDS = ("Title", "Description", "Tags", "Category", "Price")

_LABEL_RE = re.compile(
    r"^\s*(" + "|".join(LISTING_FIELDS) + r")\s*:\s*", re.IGNORECASE,
)


def extract_fields(listing_text: str) -> dict[str, str]:
    """Content of each labeled line, keyed by canonical field name."""
    fields: dict[str, str] = {}
    for line in listing_text.splitlines():
        m = _LABEL_RE.match(line)
        if not m:
            continue
        name = m.group(1).capitalize()
        if name not in fields:
            fields[name] = line[m.end():].strip()
    return fields


def _strip_label(text: str) -> str:
    return _LABEL_RE.sub("", text, count=1)


def _overlaps(issue: Issue, content: str) -> bool:
    low = content.lower()
    if not low:
        return False
    if issue.normalized_term and issue.normalized_term in low:
        return True
    for ctx in issue.contexts:
        prefix = _strip_label(ctx.sentence_or_paragraph).strip().lower()[:SECTION_CONTEXT_PREFIX]
        if prefix and prefix in low:
            return True
    return False


def analyze_section_health(listing_text: str, grouped: Iterable[Issue]) -> list[SectionHealth]:
    """Pass / warning / fail per labeled field, in canonical field order."""
    fields = extract_fields(listing_text)
    issues = list(grouped)
    health: list[SectionHealth] = []
    for name in LISTING_FIELDS:
        if name not in fields:
            continue
        hits = [i for i in issues if _overlaps(i, fields[name])]
        health.append(SectionHealth(
            field_name=name.lower(),
            status=ComplianceStatus.from_tiers(Tier.parse(i.risk_level) for i in hits),
            issue_count=len(hits),
        ))
    return health


# ---------------------------------------------------------------------------
# Recommendations
# ---------------------------------------------------------------------------

_TIER_GUIDANCE = (
    (Tier.CRITICAL,
     "Your listing contains {n} critical policy violations that must be addressed before listing.",
     "Review and remove all flagged critical terms immediately."),
    (Tier.HIGH,
     "{n} high-risk issues detected that could lead to listing removal.",
     "Modify or remove high-risk terms and phrases."),
    (Tier.MEDIUM,
     "{n} medium-risk issues may require attention.",
     "Review medium-risk items and consider alternative wording."),
    (Tier.WARNING,
     "{n} warning-level issues detected.",
     "Review flagged terms for potential policy concerns."),
)


def generate_recommendations(risk: RiskAssessment, total_issues: int) -> list[Recommendation]:
    recommendations = []
    for tier, message, action in _TIER_GUIDANCE:
        n = risk.count(tier)
        if n > 0:
            recommendations.append(Recommendation(
                priority=tier.value, message=message.format(n=n), action=action, count=n,
            ))
    if total_issues == 0:
        recommendations.append(Recommendation(
            priority="success",
            message="No policy violations detected in your listing.",
            action="Your listing appears to be compliant with marketplace policies.",
        ))
    return recommendations


def generate_action_items(
    issues: Iterable[Issue],
    augmentation: Optional[AugmentationResult] = None,
) -> list[ActionItem]:
    """Per-term follow-ups that sit next to the tier summaries.

    One ``remove_term`` item per grouped issue that a rule produced, carrying
    that rule's reason and tier, then one ``ai_suggestion`` item per model
    suggestion.
    """
    items = []
    for issue in issues:
        hits = [m for m in (issue.occurrences or (issue,)) if isinstance(m, RuleIssue)]
        if not hits:
            continue
        top = max(hits, key=lambda m: m.risk_level.rank)
        items.append(ActionItem(
            type="remove_term",
            term=issue.term,
            reason=top.reason or top.description,
            severity=top.risk_level,
            source="rule",
        ))
    if augmentation is not None:
        severity = Tier.HIGH if augmentation.status == ComplianceStatus.FAIL else Tier.MEDIUM
        for suggestion in augmentation.suggestions:
            items.append(ActionItem(
                type="ai_suggestion", reason=suggestion, severity=severity, source="AI Analysis",
            ))
    return items


# ---------------------------------------------------------------------------
# Terminal output
# ---------------------------------------------------------------------------

_RISK_STYLE = {
    "critical": "bold white on red", "high": "bold red", "medium": "bold yellow",
    "low": "bold green", "warning": "yellow",
}


def _ranked(issues: Iterable[Issue]) -> list[Issue]:
    return sorted(issues, key=lambda i: (-Tier.parse(i.risk_level).rank, -i.occurrence_count))


def print_rich_summary(report: AnalysisReport, metadata: Optional[dict] = None) -> None:
    try:
        from rich.console import Console
        from rich.table import Table
        from rich.panel import Panel
        from rich import box
    except ImportError:
        return _print_plain_summary(report)

    metadata = metadata or {}
    risk = report.risk_assessment
    console = Console()
    console.print()
    summary_text = (
        f"[bold]Score:[/bold] {report.compliance_score}/100  "
        f"[bold]Status:[/bold] {report.compliance_status.value.upper()}\n"
        f"[bold white on red]Critical:[/] {risk.critical}  "
        f"[bold red]High:[/bold red] {risk.high}  "
        f"[bold yellow]Medium:[/bold yellow] {risk.medium}  "
        f"[bold green]Low:[/bold green] {risk.low}  "
        f"[yellow]Warning:[/yellow] {risk.warning}\n"
        f"[bold]Rules:[/bold] {metadata.get('rules_loaded', 'N/A')}  "
        f"[bold]Policy sections:[/bold] {metadata.get('policy_sections_loaded', 'N/A')}  "
        f"[bold]AI:[/bold] {metadata.get('ai_model', 'off')}"
    )
    console.print(Panel(summary_text, title="Listing Review Summary", border_style="blue", expand=False))

    if report.flagged_issues:
        table = Table(title="Flagged Issues", box=box.ROUNDED, show_lines=True)
        table.add_column("Term", style="bold", width=22)
        table.add_column("Risk", width=10)
        table.add_column("Source", width=8)
        table.add_column("Hits", width=5)
        table.add_column("Context", width=60)
        for issue in _ranked(report.flagged_issues)[:15]:
            level = Tier.parse(issue.risk_level).value
            ctx = issue.found_in.sentence_or_paragraph if issue.found_in else issue.description
            table.add_row(
                issue.term,
                f"[{_RISK_STYLE.get(level, '')}]{level}[/]",
                issue.type,
                str(issue.occurrence_count),
                ctx[:80] + "..." if len(ctx) > 80 else ctx,
            )
        console.print(table)

    if report.section_health:
        health = Table(title="Section Health", box=box.SIMPLE)
        health.add_column("Field")
        health.add_column("Status")
        health.add_column("Issues")
        status_style = {"pass": "green", "warning": "yellow", "fail": "red"}
        for s in report.section_health:
            health.add_row(s.field_name, f"[{status_style[s.status.value]}]{s.status.value}[/]", str(s.issue_count))
        console.print(health)

    for rec in report.recommendations:
        console.print(f"  [bold]{rec.priority.upper()}[/bold] {rec.message} {rec.action}")
    for item in report.action_items:
        label = f"{item.type}: {item.term}" if item.term else item.type
        console.print(f"    [{_RISK_STYLE.get(item.severity.value, '')}]{label}[/] {item.reason}")
    console.print()


def _print_plain_summary(report: AnalysisReport) -> None:
    print(f"\n{'='*60}")
    print(f"  SUMMARY")
    print(f"{'='*60}")
    print(f"  Compliance score : {report.compliance_score}/100 ({report.compliance_status.value})")
    print(f"  Risk breakdown   : {report.risk_assessment.to_payload()}")
    print(f"  Flagged issues   : {report.total_issues}")
    if report.flagged_issues:
        print(f"\n  TOP ISSUES:")
        for issue in _ranked(report.flagged_issues)[:5]:
            print(f"    [{Tier.parse(issue.risk_level).value:8s}] {issue.term} x{issue.occurrence_count}")
    for rec in report.recommendations:
        print(f"  {rec.priority.upper()}: {rec.message}")
    for item in report.action_items:
        print(f"    - {item.type} {item.term} ({item.severity.value}): {item.reason}")
    print()
