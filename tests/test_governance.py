"""Tests for the Policy Evaluator."""

import threading

import pytest

from intent_kernel.audit.store import AuditStore
from intent_kernel.governance.guardrail import (
    DANGEROUS_ACTIONS,
    SAFE_ACTIONS,
    PolicyEvaluator,
)
from intent_kernel.models.policy import PolicyVerdict, SecurityPolicy


def _make_evaluator(apps=(), domains=(), require_approval=True) -> PolicyEvaluator:
    policy = SecurityPolicy(
        allowed_apps=list(apps),
        allowed_domains=list(domains),
        require_approval=require_approval,
    )
    return PolicyEvaluator(policy, AuditStore(":memory:"))


class TestAppAllowList:
    def test_open_policy_allows_any_executable(self):
        evaluator = _make_evaluator()
        assert evaluator.is_allowed("open", "notepad.exe") is True
        assert evaluator.is_allowed("open", "anything.exe") is True

    def test_allow_listed_executable(self):
        evaluator = _make_evaluator(apps=["notepad.exe"])
        assert evaluator.is_allowed("open", "notepad.exe") is True

    def test_allow_list_is_case_insensitive(self):
        evaluator = _make_evaluator(apps=["Notepad.EXE"])
        assert evaluator.is_allowed("open", "NOTEPAD.exe") is True

    def test_executable_not_in_allow_list(self):
        evaluator = _make_evaluator(apps=["notepad.exe"])
        decision = evaluator.evaluate("open", "malware.exe")

        assert decision.allowed is False
        assert decision.verdict == PolicyVerdict.REJECTED
        assert decision.rule == "app_not_allowed"

    def test_non_executable_target_skips_app_check(self):
        evaluator = _make_evaluator(apps=["notepad.exe"])
        assert evaluator.is_allowed("type", "hello world") is True


class TestDomainAllowList:
    def test_open_policy_allows_any_url(self):
        evaluator = _make_evaluator()
        assert evaluator.is_allowed("search", "https://evil.example/x") is True

    def test_allowed_domain(self):
        evaluator = _make_evaluator(domains=["www.google.com"])
        assert evaluator.is_allowed("search", "https://www.google.com/search?q=x") is True

    def test_domain_match_is_case_insensitive(self):
        evaluator = _make_evaluator(domains=["WWW.Google.com"])
        assert evaluator.is_allowed("search", "HTTPS://www.GOOGLE.com/") is True

    def test_disallowed_domain(self):
        evaluator = _make_evaluator(domains=["www.google.com"])
        decision = evaluator.evaluate("search", "http://evil.example/payload")

        assert decision.allowed is False
        assert decision.rule == "domain_not_allowed"

    def test_malformed_url_uses_raw_target_as_host(self):
        evaluator = _make_evaluator(domains=["example.com"])
        # Unbalanced IPv6 bracket makes urlsplit raise ValueError.
        assert evaluator.is_allowed("search", "http://[::1") is False

    def test_malformed_url_matching_raw_string_is_allowed(self):
        evaluator = _make_evaluator(domains=["http://[::1"])
        assert evaluator.is_allowed("search", "http://[::1") is True


class TestVerbRules:
    def test_empty_action_denied(self):
        evaluator = _make_evaluator()
        assert evaluator.is_allowed("", "notepad.exe") is False
        assert evaluator.is_allowed("   ", None) is False
        assert evaluator.evaluate(None).rule == "empty_action"

    @pytest.mark.parametrize("verb", sorted(SAFE_ACTIONS))
    def test_safe_verbs_always_allowed(self, verb):
        evaluator = _make_evaluator(apps=["notepad.exe"], domains=["example.com"])
        assert evaluator.is_allowed(verb, "malware.exe") is True
        assert evaluator.is_allowed(verb.upper(), "https://evil.example") is True
        assert evaluator.is_allowed(verb, None) is True

    @pytest.mark.parametrize("verb", sorted(DANGEROUS_ACTIONS))
    def test_dangerous_verbs_always_denied(self, verb):
        evaluator = _make_evaluator()
        assert evaluator.is_allowed(verb, "notepad.exe") is False
        assert evaluator.is_allowed(verb.title(), None) is False

    def test_dangerous_verb_escalates(self):
        evaluator = _make_evaluator(require_approval=False)
        decision = evaluator.evaluate("shutdown", None)

        assert decision.verdict == PolicyVerdict.ESCALATE
        assert decision.rule == "dangerous_action"
        assert decision.allowed is False

    def test_other_verbs_allowed_by_default(self):
        evaluator = _make_evaluator()
        decision = evaluator.evaluate("open", None)
        assert decision.allowed is True
        assert decision.rule == "default_allow"


class TestAuditTrail:
    def test_denial_then_log(self):
        evaluator = _make_evaluator(apps=["notepad.exe"])
        before = len(evaluator.recent_logs(1000))

        assert evaluator.is_allowed("open", "malware.exe") is False
        evaluator.log_action("open", False)

        logs = evaluator.recent_logs(1000)
        assert len(logs) == before + 1
        assert logs[-1].action == "open"
        assert logs[-1].approved is False

    def test_evaluate_does_not_log(self):
        evaluator = _make_evaluator()
        evaluator.evaluate("open", "notepad.exe")
        evaluator.is_allowed("open", "notepad.exe")
        assert evaluator.recent_logs() == []

    def test_authorize_logs_outcome(self):
        evaluator = _make_evaluator(apps=["notepad.exe"])
        evaluator.authorize("open", "notepad.exe")
        evaluator.authorize("open", "malware.exe")

        logs = evaluator.recent_logs()
        assert [(l.target, l.approved) for l in logs] == [
            ("notepad.exe", True),
            ("malware.exe", False),
        ]
        assert logs[1].reason is not None

    def test_recent_logs_are_oldest_first_and_bounded(self):
        evaluator = _make_evaluator()
        for i in range(5):
            evaluator.log_action(f"action_{i}", True)

        logs = evaluator.recent_logs(3)
        assert [l.action for l in logs] == ["action_2", "action_3", "action_4"]

    def test_log_action_never_raises_on_store_failure(self):
        store = AuditStore(":memory:")
        evaluator = PolicyEvaluator(SecurityPolicy(), store)
        store.close()

        assert evaluator.log_action("open", True) is None

    def test_concurrent_authorizations(self):
        evaluator = _make_evaluator(apps=["notepad.exe"])

        def worker(n: int) -> None:
            for _ in range(25):
                evaluator.authorize("open", "notepad.exe" if n % 2 else "malware.exe")

        threads = [threading.Thread(target=worker, args=(n,)) for n in range(8)]
        for t in threads:
            t.start()
        for t in threads:
            t.join()

        assert evaluator.audit_store.count() == 200
        assert len(evaluator.audit_store.query_by_approval(False)) == 100
        assert evaluator.audit_store.verify_chain_integrity() is True
