import pytest

from turn_engine.domain.errors import PolicyConfigError
from turn_engine.domain.models.policy import PolicyDecision, PolicyEngineConfig, PolicyRule
from turn_engine.domain.models.tool import ParsedCall
from turn_engine.domain.services.policy_engine import PolicyEngine, stable_stringify


def _engine(rules, default=PolicyDecision.ASK_USER, non_interactive=False):
    return PolicyEngine(PolicyEngineConfig(rules=rules, default_decision=default, non_interactive=non_interactive))


def test_higher_priority_rule_wins():
    engine = _engine([
        PolicyRule(tool_name="x", decision=PolicyDecision.DENY, priority=1),
        PolicyRule(tool_name="x", decision=PolicyDecision.ALLOW, priority=5),
    ])
    assert engine.check(ParsedCall(name="x")) is PolicyDecision.ALLOW


def test_check_is_deterministic():
    engine = _engine([PolicyRule(tool_name="x", decision=PolicyDecision.DENY, args_pattern="rm")])
    call = ParsedCall(name="x", args={"cmd": "rm -rf"})
    assert {engine.check(call) for _ in range(5)} == {PolicyDecision.DENY}


def test_equal_priority_keeps_insertion_order():
    engine = _engine([
        PolicyRule(decision=PolicyDecision.DENY),
        PolicyRule(decision=PolicyDecision.ALLOW),
    ])
    assert engine.check(ParsedCall(name="anything")) is PolicyDecision.DENY


def test_default_decision_when_nothing_matches():
    engine = _engine([PolicyRule(tool_name="other", decision=PolicyDecision.ALLOW)], default=PolicyDecision.DENY)
    assert engine.check(ParsedCall(name="x")) is PolicyDecision.DENY


@pytest.mark.parametrize("decision,expected", [
    (PolicyDecision.ASK_USER, PolicyDecision.DENY),
    (PolicyDecision.ALLOW, PolicyDecision.ALLOW),
    (PolicyDecision.DENY, PolicyDecision.DENY),
])
def test_non_interactive_coerces_only_ask_user(decision, expected):
    by_rule = _engine([PolicyRule(tool_name="x", decision=decision)], non_interactive=True)
    by_default = _engine([], default=decision, non_interactive=True)
    assert by_rule.check(ParsedCall(name="x")) is expected
    assert by_default.check(ParsedCall(name="x")) is expected


def test_args_pattern_matches_canonical_json():
    engine = _engine([
        PolicyRule(tool_name="shell", decision=PolicyDecision.DENY, args_pattern=r'"command":"rm ', priority=10),
        PolicyRule(tool_name="shell", decision=PolicyDecision.ALLOW),
    ])
    assert engine.check(ParsedCall(name="shell", args={"z": 1, "command": "rm -rf /"})) is PolicyDecision.DENY
    assert engine.check(ParsedCall(name="shell", args={"command": "ls"})) is PolicyDecision.ALLOW


def test_pattern_never_matches_empty_args():
    engine = _engine([PolicyRule(decision=PolicyDecision.DENY, args_pattern=".*")], default=PolicyDecision.ALLOW)
    assert engine.check(ParsedCall(name="x", args={})) is PolicyDecision.ALLOW


def test_stable_stringify_sorts_keys():
    assert stable_stringify({"b": 1, "a": {"d": 2, "c": "é"}}) == '{"a":{"c":"é","d":2},"b":1}'


def test_add_and_remove_rules():
    engine = _engine([], default=PolicyDecision.ASK_USER)
    engine.add_rule(PolicyRule(tool_name="x", decision=PolicyDecision.ALLOW, priority=1))
    engine.add_rule(PolicyRule(tool_name="x", decision=PolicyDecision.DENY, priority=3))
    assert [r.priority for r in engine.rules] == [3, 1]
    assert engine.check(ParsedCall(name="x")) is PolicyDecision.DENY

    engine.remove_rules_for_tool("x")
    assert engine.rules == ()
    assert engine.check(ParsedCall(name="x")) is PolicyDecision.ASK_USER


def test_invalid_rule_configuration_fails_at_construction():
    with pytest.raises(PolicyConfigError):
        PolicyRule(decision="maybe")
    with pytest.raises(PolicyConfigError):
        PolicyRule(decision=PolicyDecision.ALLOW, args_pattern="(unclosed")
