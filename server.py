# server.py
from fastapi import FastAPI, Header, HTTPException, Request
from fastapi.responses import JSONResponse, PlainTextResponse
from pydantic import BaseModel
from typing import List, Optional
from iod.errors import DecodeError
from iod.gate.policy import DEFAULT_POLICY_PATH, PolicyStore
from iod.iod_core import DecodeOutcome, decode_payload
from iod.logging.logger import log_event, log_exception

import os
from datetime import datetime, timezone

API_KEY = os.getenv("API_KEY", "change-me")
POLICY_PATH = os.getenv("IOD_POLICY_PATH", str(DEFAULT_POLICY_PATH))

class ErrorResponse(BaseModel):
    error: str
    candidate: Optional[str] = None
    reason: str

class PolicyResponse(BaseModel):
    source: str
    patterns: List[str]
    type_property: str
    yaml_root_type: Optional[str] = None

def check_auth(authorization: Optional[str]):
    if not authorization or not authorization.startswith("Bearer "):
        raise HTTPException(status_code=401, detail="Missing bearer token")
    token = authorization.split(" ", 1)[1]
    if token != API_KEY:
        raise HTTPException(status_code=403, detail="Invalid token")

def check_media_type(request: Request, expected: str):
    content_type = request.headers.get("content-type", "").split(";", 1)[0].strip().lower()
    if content_type != expected:
        raise HTTPException(status_code=415, detail=f"Expected {expected}")

def load_store(path: str = POLICY_PATH) -> PolicyStore:
    """Store with the policy file loaded; left empty (fail-closed) if loading fails."""
    store = PolicyStore()
    try:
        store.reload(path)
    except (OSError, ValueError) as e:
        log_exception("policy_load_error", {"path": path, "error": str(e)})
    return store

def _policy_response(store: PolicyStore) -> PolicyResponse:
    cfg = store.snapshot()
    if cfg is None:
        raise HTTPException(status_code=503, detail="Policy unavailable")
    return PolicyResponse(
        source=cfg.policy.source,
        patterns=cfg.policy.patterns(),
        type_property=cfg.type_property,
        yaml_root_type=cfg.root_type,
    )

def create_app(store: Optional[PolicyStore] = None, policy_path: str = POLICY_PATH) -> FastAPI:
    app = FastAPI(title="IOD Lab API", version="0.1")
    app.state.store = store if store is not None else load_store(policy_path)

    @app.exception_handler(DecodeError)
    async def decode_error_handler(request: Request, exc: DecodeError):
        body = ErrorResponse(error=exc.kind, candidate=exc.candidate, reason=exc.reason)
        return JSONResponse(status_code=exc.status_code, content=body.model_dump())

    async def _run(request: Request, fmt: str, media_type: str, secure: bool) -> DecodeOutcome:
        check_media_type(request, media_type)
        raw = await request.body()
        # one snapshot per request, a reload mid-request does not affect it
        outcome = decode_payload(fmt, raw, app.state.store.snapshot(), secure=secure)
        return outcome

    @app.get("/health")
    def health():
        """Simple health check endpoint."""
        return {"status": "ok", "ts": datetime.now(timezone.utc).isoformat()}

    # Danger! the unchecked endpoints accept any payload, demo use only
    @app.post("/v1/deserialize", response_class=PlainTextResponse)
    async def deserialize(request: Request):
        out = await _run(request, "native", "application/octet-stream", secure=False)
        return f"Deserialized: {out.type_name}"

    @app.post("/v1/deserialize-secure", response_class=PlainTextResponse)
    async def deserialize_secure(request: Request):
        out = await _run(request, "native", "application/octet-stream", secure=True)
        return f"Deserialized: {out.type_name}"

    @app.post("/v1/deserialize-json", response_class=PlainTextResponse)
    async def deserialize_json(request: Request):
        out = await _run(request, "json", "application/json", secure=False)
        return f"Deserialized: {out.type_name}"

    @app.post("/v1/deserialize-json-secure", response_class=PlainTextResponse)
    async def deserialize_json_secure(request: Request):
        out = await _run(request, "json", "application/json", secure=True)
        return f"Deserialized: {out.type_name}"

    @app.post("/v1/deserialize-yaml", response_class=PlainTextResponse)
    async def deserialize_yaml(request: Request):
        out = await _run(request, "yaml", "application/x-yaml", secure=False)
        return f"Deserialized: {out.type_name}"

    @app.post("/v1/deserialize-yaml-secure", response_class=PlainTextResponse)
    async def deserialize_yaml_secure(request: Request):
        out = await _run(request, "yaml", "application/x-yaml", secure=True)
        return f"Deserialized: {out.obj}"

    @app.get("/v1/policy", response_model=PolicyResponse)
    def get_policy():
        return _policy_response(app.state.store)

    @app.post("/v1/policy/reload", response_model=PolicyResponse)
    def reload_policy(authorization: Optional[str] = Header(None)):
        check_auth(authorization)
        try:
            app.state.store.reload(policy_path)
        except (OSError, ValueError) as e:
            log_exception("policy_reload_error", {"path": policy_path, "error": str(e)})
            raise HTTPException(status_code=400, detail=f"Policy not reloaded: {e}")
        log_event("IOD_POLICY_RELOADED", {"path": policy_path})
        return _policy_response(app.state.store)

    return app

app = create_app()
