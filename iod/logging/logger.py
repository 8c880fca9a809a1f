# iod/logging/logger.py
from __future__ import annotations
from datetime import datetime, timezone

def _ts() -> str:
    return datetime.now(timezone.utc).replace(tzinfo=None).isoformat(timespec="seconds")

def _fmt(payload) -> str:
    try:
        import json
        return json.dumps(payload, ensure_ascii=False, separators=(",", ":"), default=str)
    except Exception:
        return str(payload)

def _ctx(context: dict) -> str:
    # decode context first: format=json secure=True ...
    return "".join(f"{k}={v} " for k, v in context.items())

def log_event(event: str, payload: dict | None = None, **context) -> None:
    p = _fmt(payload or {})
    print(f"[{_ts()}] {event} {_ctx(context)}{p}")

def log_exception(event: str, payload: dict | None = None, **context) -> None:
    p = _fmt(payload or {})
    print(f"[{_ts()}] EXCEPTION {event} {_ctx(context)}{p}")

def log_decision(decision, **context) -> None:
    # decision is gate.admission.AdmissionDecision
    reason = decision.reason or "-"
    print(f"[{_ts()}] IOD_GATE {_ctx(context)}verdict={decision.verdict.value} type={decision.candidate!r} kind={decision.kind} reason={reason}")
