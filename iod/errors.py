# iod/errors.py
from __future__ import annotations
from typing import Any, Dict, Optional


class DecodeError(Exception):
    """
    Base class for every failure of a decoder.
    Carries the candidate type (when one was extracted) and a reason string,
    plus the HTTP status the service maps it to.
    """
    kind = "decode_error"
    status_code = 400

    def __init__(self, reason: str, candidate: Optional[str] = None):
        super().__init__(reason if candidate is None else f"{reason}: {candidate!r}")
        self.reason = reason
        self.candidate = candidate

    def to_dict(self) -> Dict[str, Any]:
        return {"error": self.kind, "candidate": self.candidate, "reason": self.reason}


class MalformedTypeIdentifier(DecodeError):
    kind = "malformed_type_identifier"


class TypeRejected(DecodeError):
    kind = "type_rejected"
    status_code = 403


class PolicyUnavailable(DecodeError):
    kind = "policy_unavailable"
    status_code = 503


class UnresolvableType(DecodeError):
    kind = "unresolvable_type"


class PayloadError(DecodeError):
    kind = "payload_error"
