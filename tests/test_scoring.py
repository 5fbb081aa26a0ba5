import pytest

from listing_review.matching import match_rules
from listing_review.models import AIIssue, RiskAssessment, RuleIssue, Tier
from listing_review.scoring import assess_risk, compliance_score, group_id_for, group_issues


def _issue(term, tier, description="", cls=RuleIssue):
    return cls(term=term, category="test", risk_level=tier, description=description or f"{tier.value} {term}")


class TestGroupIssues:
    def test_repeated_term_groups_into_one(self, rules):
        raw = match_rules("Replica bag. Another replica wallet.", rules)
        grouped = group_issues(raw)
        assert len(grouped) == 1
        group = grouped[0]
        assert group.occurrence_count == 2
        assert group.is_grouped is True
        assert len(group.occurrences) == 2
        assert [c.position for c in group.contexts] == [0, 21]
        assert group.group_id == group_id_for("replica")

    def test_single_issue_is_not_marked_grouped(self):
        grouped = group_issues([_issue("nike", Tier.HIGH)])
        assert grouped[0].occurrence_count == 1
        assert grouped[0].is_grouped is False

    def test_grouping_is_case_and_whitespace_insensitive(self):
        grouped = group_issues([_issue("Nike", Tier.HIGH), _issue(" nike ", Tier.HIGH)])
        assert len(grouped) == 1
        assert grouped[0].term == "Nike"

    def test_severity_only_goes_up(self):
        grouped = group_issues([
            _issue("nike", Tier.LOW, "low desc"),
            _issue("nike", Tier.HIGH, "high desc"),
            _issue("nike", Tier.MEDIUM, "medium desc"),
        ])
        assert grouped[0].risk_level == Tier.HIGH
        assert grouped[0].description == "high desc"
        assert grouped[0].occurrence_count == 3

    def test_equal_tier_keeps_first_description(self):
        grouped = group_issues([_issue("nike", Tier.HIGH, "first"), _issue("nike", Tier.HIGH, "second")])
        assert grouped[0].description == "first"

    def test_issue_types_merge_on_shared_term(self):
        grouped = group_issues([_issue("nike", Tier.MEDIUM), _issue("Nike", Tier.HIGH, cls=AIIssue)])
        assert len(grouped) == 1
        assert grouped[0].type == "rule"
        assert grouped[0].risk_level == Tier.HIGH

    def test_grouping_is_idempotent(self, rules):
        raw = match_rules("Replica nike. Wholesale replica. Nike guaranteed!", rules)
        once = group_issues(raw)
        assert group_issues(once) == once

    def test_first_seen_order_is_kept(self):
        grouped = group_issues([_issue("b", Tier.LOW), _issue("a", Tier.LOW), _issue("b", Tier.LOW)])
        assert [g.term for g in grouped] == ["b", "a"]


def test_group_id_is_stable():
    gid = group_id_for("replica")
    assert gid == group_id_for("replica")
    assert gid.startswith("grp_")
    assert len(gid) == len("grp_") + 12


class TestAssessRisk:
    def test_counts_groups_not_occurrences(self, rules):
        grouped = group_issues(match_rules("Replica bag. Another replica wallet.", rules))
        risk = assess_risk(grouped)
        assert risk.high == 1
        assert risk.total == 1
        assert risk.overall == Tier.HIGH

    def test_overall_is_highest_tier(self):
        risk = assess_risk([_issue("a", Tier.WARNING), _issue("b", Tier.CRITICAL), _issue("c", Tier.LOW)])
        assert risk.overall == Tier.CRITICAL
        assert (risk.critical, risk.high, risk.medium, risk.low, risk.warning) == (1, 0, 0, 1, 1)

    def test_empty_has_no_overall(self):
        risk = assess_risk([])
        assert risk.overall is None
        assert risk.to_payload() == {
            "critical": 0, "high": 0, "medium": 0, "low": 0, "warning": 0, "overall": "none",
        }

    def test_unknown_tier_counts_as_warning(self):
        risk = assess_risk([_issue("a", "severe", "unknown tier")])
        assert risk.warning == 1


class TestComplianceScore:
    def test_single_high_group(self, rules):
        grouped = group_issues(match_rules("Replica bag. Another replica wallet.", rules))
        assert compliance_score(assess_risk(grouped)) == 100 - 30 - 20

    def test_no_issues_is_perfect(self):
        assert compliance_score(RiskAssessment()) == 100

    @pytest.mark.parametrize("tier,expected", [
        (Tier.CRITICAL, 40),
        (Tier.HIGH, 50),
        (Tier.MEDIUM, 85),
        (Tier.LOW, 95),
        (Tier.WARNING, 98),
    ])
    def test_penalty_per_tier(self, tier, expected):
        assert compliance_score(assess_risk([_issue("x", tier)])) == expected

    def test_clamped_at_zero(self):
        risk = RiskAssessment(critical=3)
        assert compliance_score(risk) == 0

    def test_adding_an_issue_never_raises_the_score(self):
        issues = []
        previous = compliance_score(assess_risk(issues))
        for i, tier in enumerate([Tier.WARNING, Tier.LOW, Tier.MEDIUM, Tier.HIGH, Tier.CRITICAL, Tier.LOW]):
            issues.append(_issue(f"term{i}", tier))
            score = compliance_score(assess_risk(issues))
            assert 0 <= score <= previous
            previous = score
