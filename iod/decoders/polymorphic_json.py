# iod/decoders/polymorphic_json.py
from __future__ import annotations
from typing import Any, Optional
import json

from .binding import admit_class, instantiate, resolve_type
from ..errors import PayloadError
from ..gate.policy import DEFAULT_TYPE_PROPERTY, AllowListPolicy, GateConfig

"""
JSON with polymorphic typing: an object that carries the type property
(default "@type") is turned into an instance of the named class, the other
properties becoming constructor keyword arguments.

    {"@type": "iod.safe.safe_class.SafeClass", "name": "a", "value": 1}

Objects without the property stay plain dicts. Parsing is done first into
plain data (json.loads never runs user code), binding then walks top-down so
an object's type is gated before any of its nested values are bound.
"""


def _text(raw: bytes) -> str:
    try:
        return raw.decode("utf-8")
    except UnicodeDecodeError as e:
        raise PayloadError(f"payload is not valid UTF-8: {e}") from e


def _parse(raw: bytes) -> Any:
    # json.loads already fails on trailing tokens ("Extra data")
    try:
        return json.loads(_text(raw))
    except json.JSONDecodeError as e:
        raise PayloadError(f"invalid JSON: {e}") from e


def _bind(node: Any, policy: Optional[AllowListPolicy], type_property: str) -> Any:
    if isinstance(node, list):
        return [_bind(v, policy, type_property) for v in node]
    if not isinstance(node, dict):
        return node
    if type_property not in node:
        return {k: _bind(v, policy, type_property) for k, v in node.items()}

    # decide before anything below this object is touched
    cls = admit_class(node[type_property], policy)
    values = {k: _bind(v, policy, type_property) for k, v in node.items() if k != type_property}
    return instantiate(cls, values, ignore_unknown=True)


def _bind_unchecked(node: Any, type_property: str) -> Any:
    if isinstance(node, list):
        return [_bind_unchecked(v, type_property) for v in node]
    if not isinstance(node, dict):
        return node
    values = {k: _bind_unchecked(v, type_property) for k, v in node.items() if k != type_property}
    if type_property not in node:
        return values
    # Vulnerable! whatever the payload names gets imported and called
    target = resolve_type(str(node[type_property]))
    try:
        return target(**values)
    except Exception as e:
        raise PayloadError(f"cannot bind fields: {e}", str(node[type_property])) from e


class PolymorphicJsonDecoder:
    name = "json"
    media_type = "application/json"

    def decode(self, raw: bytes, config: Optional[GateConfig]) -> Any:
        policy = config.policy if config else None
        type_property = config.type_property if config else DEFAULT_TYPE_PROPERTY
        return _bind(_parse(raw), policy, type_property)

    def decode_unchecked(self, raw: bytes, type_property: str = DEFAULT_TYPE_PROPERTY) -> Any:
        return _bind_unchecked(_parse(raw), type_property)
