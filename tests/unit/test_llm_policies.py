import sys
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[2]
sys.path.insert(0, str(ROOT))
sys.path.insert(0, str(ROOT / "src"))

from services.llm import policies  # noqa: E402
from services.llm.provider_registry import Provider  # noqa: E402


def test_defaults_without_policy_file(tmp_path):
    policy = policies.load_policy(tmp_path / "missing.yaml")

    assert policy.daily_cost_threshold == pytest.approx(0.10)
    assert policy.free_query_cap == 50
    assert policy.history_window == 10
    assert policy.default_order == [Provider.GEMINI, Provider.HUGGINGFACE, Provider.OLLAMA]
    assert policy.pricing_for(Provider.GEMINI).free_token_threshold == 1000
    assert policy.pricing_for(Provider.OLLAMA).is_free


def test_shipped_policy_file_matches_defaults():
    policy = policies.load_policy()
    assert policy.daily_cost_threshold == pytest.approx(0.10)
    assert policy.free_query_cap == 50
    assert policy.pricing_for(Provider.GEMINI).rate_per_1k_tokens == pytest.approx(0.00025)


def test_policy_file_overrides_defaults(tmp_path):
    policy_file = tmp_path / "llm_policies.yaml"
    policy_file.write_text(
        """
        routing:
          daily_cost_threshold: 0.5
          free_query_cap: 10
          default_order: [ollama, gemini]
          pricing:
            huggingface:
              rate_per_1k_tokens: 0.001
              free_token_threshold: 0
        """
    )

    policy = policies.load_policy(policy_file)

    assert policy.daily_cost_threshold == pytest.approx(0.5)
    assert policy.free_query_cap == 10
    assert policy.default_order == [Provider.OLLAMA, Provider.GEMINI]
    assert policy.pricing_for(Provider.HUGGINGFACE).rate_per_1k_tokens == pytest.approx(0.001)
    # untouched entries keep their defaults
    assert policy.pricing_for(Provider.GEMINI).free_token_threshold == 1000


def test_explicit_overrides_win_and_none_is_ignored(tmp_path):
    policy_file = tmp_path / "llm_policies.yaml"
    policy_file.write_text("routing:\n  free_query_cap: 10\n")

    policy = policies.load_policy(
        policy_file,
        overrides={"free_query_cap": 3, "daily_cost_threshold": None},
    )

    assert policy.free_query_cap == 3
    assert policy.daily_cost_threshold == pytest.approx(0.10)


def test_history_window_is_bounded():
    with pytest.raises(policies.PolicyError):
        policies.RoutingPolicy(history_window=11)


def test_negative_pricing_rejected():
    with pytest.raises(policies.PolicyError):
        policies.RoutingPolicy(pricing={Provider.GEMINI: policies.PricingRule(rate_per_1k_tokens=-1)})

