"""
Policy Evaluator — the guardrail in front of every side-effecting action.

Behavioral Contract:
- Accepts an action verb and an optional target
- Evaluates against an immutable SecurityPolicy snapshot
- Returns a PolicyDecision naming the rule that fired
- Never raises, never performs effects other than appending to the audit log
- Safe for concurrent use: the policy is read-only, the audit store is locked

Rules, first match wins:
  1. empty verb                        -> rejected
  2. safe verb (speak, listen, ...)    -> approved, whatever the target
  3. dangerous verb (delete, ...)      -> escalate (denied; needs out-of-band approval)
  4. executable target not allow-listed -> rejected
  5. URL whose host is not allow-listed -> rejected
  6. anything else                     -> approved
"""

import logging
from datetime import datetime
from typing import List, Optional
from urllib.parse import urlsplit

from intent_kernel.audit.store import AuditStore
from intent_kernel.models.policy import (
    ActionLog,
    PolicyDecision,
    PolicyVerdict,
    SecurityPolicy,
)

logger = logging.getLogger(__name__)


SAFE_ACTIONS = frozenset({"speak", "listen", "display", "notify"})
DANGEROUS_ACTIONS = frozenset({"delete", "shutdown", "restart", "install", "uninstall"})


def _extract_host(url: str) -> str:
    """Hostname of a URL; malformed URLs degrade to the raw string."""
    try:
        host = urlsplit(url).hostname
    except ValueError:
        return url.lower()
    return host if host else url.lower()


def _is_url(target_lower: str) -> bool:
    return target_lower.startswith("http://") or target_lower.startswith("https://")


class PolicyEvaluator:
    """
    Authorizes (action, target) pairs and keeps the audit trail.

    Immutable from below. Nothing it evaluates can change its policy.
    """

    def __init__(
        self,
        policy: Optional[SecurityPolicy] = None,
        audit_store: Optional[AuditStore] = None,
    ):
        self._policy = policy or SecurityPolicy()
        self._audit = audit_store or AuditStore()
        logger.info(
            "Policy evaluator initialized. Allowed apps: %d, allowed domains: %d, "
            "require approval: %s",
            len(self._policy.allowed_apps),
            len(self._policy.allowed_domains),
            self._policy.require_approval,
        )

    @property
    def policy(self) -> SecurityPolicy:
        return self._policy

    @property
    def audit_store(self) -> AuditStore:
        return self._audit

    def evaluate(
        self,
        action: Optional[str],
        target: Optional[str] = None,
        current_time: Optional[datetime] = None,
    ) -> PolicyDecision:
        """Evaluate one (action, target) pair. Does not touch the audit log."""
        if current_time is None:
            current_time = datetime.utcnow()

        def decide(verdict: PolicyVerdict, rule: str, reason: str) -> PolicyDecision:
            return PolicyDecision(
                verdict=verdict,
                action=action or "",
                target=target,
                rule=rule,
                reason=reason,
                evaluated_at=current_time,
            )

        if not action or not action.strip():
            logger.warning("Empty action requested")
            return decide(PolicyVerdict.REJECTED, "empty_action", "No action was specified.")

        verb = action.strip().lower()

        if verb in SAFE_ACTIONS:
            return decide(PolicyVerdict.APPROVED, "safe_action", f"'{verb}' is always allowed.")

        if verb in DANGEROUS_ACTIONS:
            logger.warning("Dangerous action '%s' requires explicit approval", verb)
            return decide(
                PolicyVerdict.ESCALATE,
                "dangerous_action",
                f"'{verb}' requires explicit out-of-band approval.",
            )

        if target and target.strip():
            target_lower = target.strip().lower()

            if target_lower.endswith(self._policy.executable_suffixes):
                apps = self._policy.allowed_apps
                if apps and target_lower not in apps:
                    logger.warning(
                        "Action '%s' denied - target '%s' not in allowed apps", action, target
                    )
                    return decide(
                        PolicyVerdict.REJECTED,
                        "app_not_allowed",
                        f"Application '{target}' is not in the allowed apps list.",
                    )

            if _is_url(target_lower):
                host = _extract_host(target.strip())
                domains = self._policy.allowed_domains
                if domains and host.lower() not in domains:
                    logger.warning(
                        "Action '%s' denied - domain '%s' not in allowed domains", action, host
                    )
                    return decide(
                        PolicyVerdict.REJECTED,
                        "domain_not_allowed",
                        f"Domain '{host}' is not in the allowed domains list.",
                    )

        return decide(PolicyVerdict.APPROVED, "default_allow", "No rule restricts this action.")

    def is_allowed(self, action: Optional[str], target: Optional[str] = None) -> bool:
        return self.evaluate(action, target).allowed

    def log_action(
        self,
        action: str,
        approved: bool,
        target: Optional[str] = None,
        reason: Optional[str] = None,
    ) -> Optional[ActionLog]:
        """
        Append an audit record. Never raises; a storage failure is logged
        and None is returned.
        """
        try:
            record = self._audit.append(
                action=action or "",
                approved=approved,
                target=target,
                reason=reason,
            )
        except Exception:
            logger.exception("Failed to write audit record for action '%s'", action)
            return None

        status = "APPROVED" if approved else "DENIED"
        logger.info("Action %s: %s at %s", status, action, record.timestamp.isoformat())
        return record

    def authorize(self, action: str, target: Optional[str] = None) -> PolicyDecision:
        """Evaluate and record the outcome in the audit trail."""
        decision = self.evaluate(action, target)
        self.log_action(action, decision.allowed, target=target, reason=decision.reason)
        return decision

    def recent_logs(self, count: int = 100) -> List[ActionLog]:
        """The most recent `count` audit records, oldest first."""
        return self._audit.recent(limit=count)
