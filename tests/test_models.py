from listing_review.models import (
    ComplianceStatus, Context, PolicySection, Rule, RuleIssue, TIER_ORDER, Tier,
)


def test_tier_order_and_rank():
    assert [t.value for t in TIER_ORDER] == ["critical", "high", "medium", "low", "warning"]
    ranks = [t.rank for t in TIER_ORDER]
    assert ranks == sorted(ranks, reverse=True)


def test_tier_parse():
    assert Tier.parse(" HIGH ") == Tier.HIGH
    assert Tier.parse(Tier.LOW) == Tier.LOW
    assert Tier.parse("severe") == Tier.WARNING
    assert Tier.parse(None) == Tier.WARNING


def test_status_from_tiers():
    assert ComplianceStatus.from_tiers([]) == ComplianceStatus.PASS
    assert ComplianceStatus.from_tiers([Tier.LOW, Tier.WARNING]) == ComplianceStatus.WARNING
    assert ComplianceStatus.from_tiers([Tier.MEDIUM, Tier.CRITICAL]) == ComplianceStatus.FAIL
    assert not isinstance(Tier.WARNING, ComplianceStatus)


def test_rule_from_record():
    rule = Rule.from_record({"term": " nike ", "riskLevel": "high", "reason": "brand"})
    assert rule == Rule(term="nike", risk_level=Tier.HIGH, reason="brand")
    assert Rule.from_record({"risk_level": "high"}) is None
    assert Rule.from_record(["nike"]) is None


def test_policy_section_round_trips_through_payload():
    section = PolicySection(title="Trademarks", summary="No brands", category="ip", risk_level=Tier.HIGH)
    assert PolicySection.from_record(section.to_payload()) == section


def test_issue_payload_shape():
    ctx = Context("buy", "nike", "now", 4, "buy nike now")
    issue = RuleIssue(term="nike", category="ip", risk_level=Tier.HIGH, description="brand",
                      found_in=ctx, reason="brand")
    payload = issue.to_payload()
    assert payload["type"] == "rule"
    assert payload["riskLevel"] == "high"
    assert payload["foundIn"]["sentenceOrParagraph"] == "buy nike now"
    assert payload["reason"] == "brand"
    assert payload["occurrences"] == []
    assert issue.contexts == [ctx]


def test_records_coerce_string_tiers():
    assert Rule(term="nike", risk_level="HIGH").risk_level is Tier.HIGH
    assert Rule(term="nike", risk_level="severe").risk_level is Tier.WARNING
    assert PolicySection(title="Trademarks", risk_level="critical").risk_level is Tier.CRITICAL
    issue = RuleIssue(term="nike", category="ip", risk_level="medium", description="brand")
    assert issue.risk_level is Tier.MEDIUM
    assert issue.to_payload()["riskLevel"] == "medium"
