"""Security policy, policy decisions and audit log entries."""

from datetime import datetime
from enum import Enum
from typing import FrozenSet, Optional, Tuple

from pydantic import BaseModel, ConfigDict, field_validator


class SecurityPolicy(BaseModel):
    """
    Immutable authorization configuration, shared read-only across evaluations.

    Empty allow-sets mean "no restriction on that dimension". Non-empty sets
    are strict allow-lists. Entries are lower-cased on construction.
    """

    model_config = ConfigDict(frozen=True)

    allowed_apps: FrozenSet[str] = frozenset()      # e.g. {"notepad.exe"}
    allowed_domains: FrozenSet[str] = frozenset()   # e.g. {"www.google.com"}
    require_approval: bool = True
    executable_suffixes: Tuple[str, ...] = (".exe",)

    @field_validator("allowed_apps", "allowed_domains", mode="before")
    @classmethod
    def _lower_entries(cls, value):
        if value is None:
            return frozenset()
        return frozenset(str(v).strip().lower() for v in value if str(v).strip())

    @field_validator("executable_suffixes", mode="before")
    @classmethod
    def _lower_suffixes(cls, value):
        return tuple(str(v).lower() for v in value)


class PolicyVerdict(str, Enum):
    APPROVED = "approved"
    REJECTED = "rejected"
    ESCALATE = "escalate"   # Needs out-of-band human approval; treated as denied


class PolicyDecision(BaseModel):
    """The Policy Evaluator's ruling on a single (action, target) pair."""

    verdict: PolicyVerdict
    action: str
    target: Optional[str] = None
    rule: str                               # Machine-readable rule that fired
    reason: str                             # Human-readable explanation
    evaluated_at: datetime

    @property
    def allowed(self) -> bool:
        return self.verdict == PolicyVerdict.APPROVED


class ActionLog(BaseModel):
    """One append-only audit trail entry."""

    model_config = ConfigDict(frozen=True)

    id: str
    timestamp: datetime
    action: str
    approved: bool
    target: Optional[str] = None
    reason: Optional[str] = None

    # INTEGRITY
    signature: str = ""
    prior_record_hash: Optional[str] = None
