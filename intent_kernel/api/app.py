"""
Intent Kernel API — FastAPI endpoints.

Exposes the kernel's functionality via a REST API for:
- Running commands end to end
- Parsing and executing model output
- Policy inspection and evaluation
- Audit trail queries
"""

from typing import Optional

from fastapi import FastAPI
from pydantic import BaseModel

from intent_kernel.audit.store import AuditStore
from intent_kernel.execution.capabilities import (
    MouseControl,
    Pause,
    ProcessLauncher,
    SubprocessLauncher,
    TextInput,
)
from intent_kernel.execution.dispatcher import ExecutionDispatcher
from intent_kernel.governance.guardrail import PolicyEvaluator
from intent_kernel.intent.source import IntentSource, OllamaIntentSource
from intent_kernel.models.config import KernelConfig, load_config
from intent_kernel.parsing.parser import PlanParser
from intent_kernel.pipeline.orchestrator import CommandPipeline
from intent_kernel.workflow.engine import WorkflowEngine


# --- Request/Response Models ---

class CommandRequest(BaseModel):
    command: str
    screen_context: Optional[str] = None


class RawTextRequest(BaseModel):
    raw_text: str


class PolicyEvaluateRequest(BaseModel):
    action: str
    target: Optional[str] = None


# --- Application Factory ---

def create_app(
    config: Optional[KernelConfig] = None,
    evaluator: Optional[PolicyEvaluator] = None,
    launcher: Optional[ProcessLauncher] = None,
    text_input: Optional[TextInput] = None,
    mouse: Optional[MouseControl] = None,
    intent_source: Optional[IntentSource] = None,
    pause: Optional[Pause] = None,
) -> FastAPI:
    """Create and configure the FastAPI application."""

    app = FastAPI(
        title="Intent Kernel API",
        description="Natural-language commands to guarded, ordered actions",
        version="0.1.0",
    )

    # Initialize components
    cfg = config or load_config()
    ev = evaluator or PolicyEvaluator(cfg.security, AuditStore(cfg.audit_db_path))
    dispatcher = ExecutionDispatcher(
        evaluator=ev,
        launcher=launcher or SubprocessLauncher(),
        text_input=text_input,
        mouse=mouse,
        pause=pause,
        config=cfg.execution,
    )
    engine = WorkflowEngine(dispatcher)
    parser = PlanParser()
    pipeline = CommandPipeline(
        engine=engine,
        intent_source=intent_source or OllamaIntentSource(cfg.ai),
        parser=parser,
    )

    # Store components on app state for access in endpoints
    app.state.config = cfg
    app.state.evaluator = ev
    app.state.dispatcher = dispatcher
    app.state.engine = engine
    app.state.pipeline = pipeline

    # === COMMANDS ===

    @app.post("/commands")
    def run_command(req: CommandRequest):
        """Interpret a command with the language model and execute it."""
        outcome = pipeline.handle(req.command, req.screen_context)
        return outcome.model_dump(mode="json")

    # === PLANS ===

    @app.post("/plans/parse")
    def parse_plan(req: RawTextRequest):
        """Parse model output without executing it."""
        return parser.parse(req.raw_text).model_dump(mode="json")

    @app.post("/plans/execute")
    def execute_plan(req: RawTextRequest):
        """Parse model output and execute the resulting plan."""
        outcome = pipeline.execute_text(req.raw_text)
        return outcome.model_dump(mode="json")

    # === POLICY ===

    @app.get("/policy")
    def get_policy():
        """The active security policy."""
        return ev.policy.model_dump(mode="json")

    @app.post("/policy/evaluate")
    def evaluate_action(req: PolicyEvaluateRequest):
        """Dry-run evaluation (not recorded in the audit trail)."""
        return ev.evaluate(req.action, req.target).model_dump(mode="json")

    # === AUDIT ===

    @app.get("/audit")
    def get_audit(limit: int = 50):
        """Most recent audit records, oldest first."""
        return [r.model_dump(mode="json") for r in ev.recent_logs(limit)]

    @app.get("/audit/denials")
    def get_denials():
        """All denied actions."""
        return [r.model_dump(mode="json") for r in ev.audit_store.query_by_approval(False)]

    @app.get("/audit/verify")
    def verify_audit():
        """Verify chain integrity."""
        store = ev.audit_store
        return {
            "integrity_valid": store.verify_chain_integrity(),
            "total_records": store.count(),
        }

    return app


# Default application instance
app = create_app()
