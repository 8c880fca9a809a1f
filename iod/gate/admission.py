# iod/gate/admission.py
from __future__ import annotations
from dataclasses import dataclass
from enum import Enum
from typing import Any, Optional
import traceback

from .policy import AllowListPolicy
from ..errors import DecodeError, MalformedTypeIdentifier, PolicyUnavailable, TypeRejected
from ..validators import is_type_identifier
from ..logging.logger import log_decision, log_exception

MALFORMED = "malformed"
REJECTED = "rejected"
POLICY_UNAVAILABLE = "policy_unavailable"


class Verdict(str, Enum):
    ADMIT = "ADMIT"
    REJECT = "REJECT"


@dataclass(frozen=True)
class AdmissionDecision:
    verdict: Verdict
    candidate: Any
    reason: Optional[str] = None
    kind: Optional[str] = None  # set on REJECT only

    @property
    def admitted(self) -> bool:
        return self.verdict is Verdict.ADMIT

    def to_error(self) -> DecodeError:
        candidate = self.candidate if isinstance(self.candidate, str) else repr(self.candidate)
        if self.kind == MALFORMED:
            return MalformedTypeIdentifier(self.reason or "malformed type identifier", candidate)
        if self.kind == POLICY_UNAVAILABLE:
            return PolicyUnavailable(self.reason or "policy unavailable", candidate)
        return TypeRejected(self.reason or "type not in allow-list", candidate)


def _reject(candidate: Any, kind: str, reason: str) -> AdmissionDecision:
    return AdmissionDecision(Verdict.REJECT, candidate, reason, kind)


def _has_special_segment(candidate: str) -> bool:
    return any(seg.startswith("__") and seg.endswith("__") for seg in candidate.split("."))


def _matches(candidate: str, policy: AllowListPolicy) -> bool:
    if candidate in policy.types:
        return True
    # prefix must end on a namespace boundary: "a.b" admits "a.b.X", not "a.bc.X"
    return any(candidate.startswith(prefix + ".") for prefix in policy.prefixes)


def evaluate(candidate_type: Any, policy: Optional[AllowListPolicy]) -> AdmissionDecision:
    """
    Classify a type identifier against an allow-list. Pure: no I/O, no imports,
    nothing cached. Anything unexpected resolves to REJECT.
    """
    if policy is None:
        return _reject(candidate_type, POLICY_UNAVAILABLE, "policy unavailable")
    if not is_type_identifier(candidate_type):
        return _reject(candidate_type, MALFORMED, "malformed type identifier")
    if _has_special_segment(candidate_type):
        # __init__.__globals__ style paths reach objects defined anywhere
        return _reject(candidate_type, REJECTED, "special attribute in type path")
    try:
        admitted = _matches(candidate_type, policy)
    except Exception as e:
        log_exception("gate_error", {"candidate": candidate_type, "error": str(e), "trace": traceback.format_exc()})
        return _reject(candidate_type, REJECTED, f"internal gate error: {e}")
    if admitted:
        return AdmissionDecision(Verdict.ADMIT, candidate_type)
    return _reject(candidate_type, REJECTED, "type not in allow-list")


def enforce(candidate_type: Any, policy: Optional[AllowListPolicy]) -> AdmissionDecision:
    """evaluate() + log; raises the matching DecodeError on REJECT."""
    decision = evaluate(candidate_type, policy)
    log_decision(decision)
    if not decision.admitted:
        raise decision.to_error()
    return decision


class TypeAdmissionGate:
    """Object form of evaluate()/enforce() bound to one policy snapshot."""
    name = "TypeAdmissionGate"

    def __init__(self, policy: Optional[AllowListPolicy]):
        self.policy = policy

    def evaluate(self, candidate_type: Any) -> AdmissionDecision:
        return evaluate(candidate_type, self.policy)

    def enforce(self, candidate_type: Any) -> AdmissionDecision:
        return enforce(candidate_type, self.policy)
