from decimal import Decimal

import pytest

from salesops.core.config import get_settings
from salesops.insights.policy import InsightsPolicy, build_insights_policy, get_insights_policy
from salesops.insights.rules import Rule, last_match, matching


def test_defaults_without_overrides() -> None:
    assert build_insights_policy(None) == InsightsPolicy()
    assert build_insights_policy({}) == InsightsPolicy()


def test_overrides_are_coerced_to_field_types() -> None:
    policy = build_insights_policy({"vip_spend": 2500, "top_n": "3", "recency_weight": "0.5"})

    assert policy.vip_spend == Decimal("2500")
    assert policy.top_n == 3
    assert policy.recency_weight == 0.5
    assert policy.frequency_weight == InsightsPolicy().frequency_weight


def test_unknown_override_is_rejected() -> None:
    with pytest.raises(ValueError, match="Unknown insights policy fields: bogus_threshold"):
        build_insights_policy({"bogus_threshold": 1})


def test_policy_reads_settings_overrides(monkeypatch) -> None:
    monkeypatch.setenv("INSIGHTS_POLICY_OVERRIDES", '{"top_performer_sales": 75000}')
    get_settings.cache_clear()
    try:
        assert get_insights_policy().top_performer_sales == Decimal("75000")
    finally:
        monkeypatch.delenv("INSIGHTS_POLICY_OVERRIDES")
        get_settings.cache_clear()


def test_last_match_and_matching() -> None:
    rules = (
        Rule("positive", lambda value: value > 0, "positive"),
        Rule("large", lambda value: value > 100, "large"),
        Rule("even", lambda value: value % 2 == 0, "even"),
    )

    assert last_match(rules, 150, "none") == "even"
    assert last_match(rules, 151, "none") == "large"
    assert last_match(rules, -1, "none") == "none"
    assert matching(rules, 4) == ["positive", "even"]
