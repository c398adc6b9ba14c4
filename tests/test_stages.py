"""Stage ordering and completion policy table."""
import pytest

from api.features.interview.stages import (
    STAGE_ORDER,
    STAGE_POLICIES,
    Stage,
    StagePolicy,
    policy_for,
    validate_policies,
)


def test_stage_order_is_fixed():
    assert [s.value for s in STAGE_ORDER] == [
        "initial",
        "interests",
        "skills",
        "challenges",
        "aspirations",
        "recommendations",
    ]
    assert Stage.first() is Stage.INITIAL


def test_successor_chain_ends_at_terminal_stage():
    assert Stage.INITIAL.next_stage() is Stage.INTERESTS
    assert Stage.ASPIRATIONS.next_stage() is Stage.RECOMMENDATIONS
    assert Stage.RECOMMENDATIONS.next_stage() is None
    assert Stage.RECOMMENDATIONS.is_terminal
    assert not Stage.SKILLS.is_terminal


def test_every_stage_has_a_policy_entry():
    assert set(STAGE_POLICIES) == set(Stage)
    assert policy_for(Stage.RECOMMENDATIONS) is None
    assert policy_for(Stage.INTERESTS).min_length == 10


def test_validate_policies_rejects_missing_stage():
    partial = {s: p for s, p in STAGE_POLICIES.items() if s is not Stage.SKILLS}
    with pytest.raises(RuntimeError):
        validate_policies(partial)


def test_validate_policies_rejects_gate_on_terminal_stage():
    policies = dict(STAGE_POLICIES)
    policies[Stage.RECOMMENDATIONS] = StagePolicy(keywords=("x",), min_length=1)
    with pytest.raises(RuntimeError):
        validate_policies(policies)


def test_keyword_match_is_substring_on_lowercased_text():
    policy = policy_for(Stage.SKILLS)
    assert policy.matches_keyword("i am really good at math")
    assert not policy.matches_keyword("nothing relevant here")
    assert policy.meets_length("x" * 15)
    assert not policy.meets_length("x" * 14)
