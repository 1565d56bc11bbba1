"""Tests for the shared data models and configuration loading."""

import json
from datetime import datetime

import pytest
from pydantic import ValidationError

from intent_kernel.models import (
    MULTI_STEP_ACTION,
    ActionStep,
    ActionVerb,
    ConfigError,
    ExecutionResult,
    IntentPlan,
    KernelConfig,
    PolicyDecision,
    PolicyVerdict,
    SecurityPolicy,
    StepResult,
    WorkflowState,
    load_config,
)
from intent_kernel.models.config import CONFIG_ENV_VAR


class TestActionVerb:
    @pytest.mark.parametrize("text,expected", [
        ("open_app", ActionVerb.OPEN_APP),
        ("OPEN_APP", ActionVerb.OPEN_APP),
        ("  Search_Web ", ActionVerb.SEARCH_WEB),
        ("move_mouse", ActionVerb.MOVE_MOUSE),
        ("fly", ActionVerb.UNKNOWN),
        ("", ActionVerb.UNKNOWN),
        (None, ActionVerb.UNKNOWN),
    ])
    def test_parse(self, text, expected):
        assert ActionVerb.parse(text) == expected

    def test_step_exposes_verb(self):
        assert ActionStep(action="Press_Key").verb == ActionVerb.PRESS_KEY


class TestIntentPlan:
    def test_steps_force_multi_step_marker(self):
        plan = IntentPlan(
            success=True,
            action="open_app",
            steps=[ActionStep(action="click", order=1)],
        )
        assert plan.action == MULTI_STEP_ACTION
        assert plan.is_multi_step is True

    def test_single_action_plan(self):
        plan = IntentPlan(success=True, action="open_app", target="notepad", message="Opening")
        step = plan.as_single_step()

        assert plan.is_multi_step is False
        assert step.action == "open_app"
        assert step.target == "notepad"
        assert step.order == 1
        assert step.description == "Opening"

    def test_confidence_is_bounded(self):
        with pytest.raises(ValidationError):
            IntentPlan(success=True, confidence=1.5)

    def test_negative_delay_rejected(self):
        with pytest.raises(ValidationError):
            ActionStep(action="wait", delay_ms=-1)

    def test_plan_is_frozen(self):
        plan = IntentPlan(success=True, action="click")
        with pytest.raises(ValidationError):
            plan.action = "open_app"

    def test_json_round_trip_keeps_marker(self):
        plan = IntentPlan(success=True, steps=[ActionStep(action="wait", order=1)])
        restored = IntentPlan.model_validate_json(plan.model_dump_json())
        assert restored == plan


class TestExecutionModels:
    def test_execution_result_defaults(self):
        result = ExecutionResult(success=False, message="nothing ran")
        assert result.step_results == []
        assert result.state == WorkflowState.PENDING
        assert result.cancelled is False

    def test_step_result_is_frozen(self):
        step = StepResult(step_number=1, action="click", success=True, message="ok")
        assert step.timestamp is not None
        with pytest.raises(ValidationError):
            step.success = False


class TestSecurityPolicy:
    def test_defaults_are_open(self):
        policy = SecurityPolicy()
        assert policy.allowed_apps == frozenset()
        assert policy.allowed_domains == frozenset()
        assert policy.require_approval is True

    def test_entries_are_lower_cased(self):
        policy = SecurityPolicy(
            allowed_apps=["Notepad.EXE"],
            allowed_domains=["WWW.Example.COM"],
        )
        assert policy.allowed_apps == frozenset({"notepad.exe"})
        assert policy.allowed_domains == frozenset({"www.example.com"})

    def test_decision_allowed_only_when_approved(self):
        now = datetime.utcnow()
        approved = PolicyDecision(
            verdict=PolicyVerdict.APPROVED, action="open", rule="r", reason="ok", evaluated_at=now
        )
        escalate = PolicyDecision(
            verdict=PolicyVerdict.ESCALATE, action="delete", rule="r", reason="no", evaluated_at=now
        )
        assert approved.allowed is True
        assert escalate.allowed is False


class TestLoadConfig:
    def test_no_path_gives_defaults(self, monkeypatch):
        monkeypatch.delenv(CONFIG_ENV_VAR, raising=False)
        config = load_config()

        assert config == KernelConfig()
        assert config.execution.default_wait_ms == 1000
        assert config.execution.app_aliases["notepad"] == "notepad.exe"
        assert config.ai.ollama_model == "llama3.2"

    def test_missing_file_gives_defaults(self, tmp_path):
        assert load_config(str(tmp_path / "absent.json")) == KernelConfig()

    def test_loads_file(self, tmp_path):
        path = tmp_path / "kernel.json"
        path.write_text(json.dumps({
            "security": {"allowed_apps": ["Notepad.exe"], "allowed_domains": ["www.google.com"]},
            "execution": {"default_wait_ms": 250},
            "audit_db_path": "audit.db",
        }))
        config = load_config(str(path))

        assert config.security.allowed_apps == frozenset({"notepad.exe"})
        assert config.execution.default_wait_ms == 250
        assert config.audit_db_path == "audit.db"

    def test_path_from_environment(self, tmp_path, monkeypatch):
        path = tmp_path / "kernel.json"
        path.write_text(json.dumps({"ai": {"ollama_model": "mistral"}}))
        monkeypatch.setenv(CONFIG_ENV_VAR, str(path))

        assert load_config().ai.ollama_model == "mistral"

    def test_malformed_json_raises(self, tmp_path):
        path = tmp_path / "kernel.json"
        path.write_text("{not json")
        with pytest.raises(ConfigError):
            load_config(str(path))

    def test_invalid_values_raise(self, tmp_path):
        path = tmp_path / "kernel.json"
        path.write_text(json.dumps({"execution": {"default_wait_ms": "soon"}}))
        with pytest.raises(ConfigError):
            load_config(str(path))
