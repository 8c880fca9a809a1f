# iod/iod_core.py
from __future__ import annotations
from dataclasses import dataclass
from typing import Any, Dict, Optional
import traceback

from .decoders.base import Decoder
from .decoders.binding import qualified_name
from .decoders.native import NativeDecoder
from .decoders.polymorphic_json import PolymorphicJsonDecoder
from .decoders.tagged_yaml import TaggedYamlDecoder
from .errors import DecodeError, PolicyUnavailable
from .gate.policy import GateConfig
from .logging.logger import log_event, log_exception

DECODERS: Dict[str, Decoder] = {
    "native": NativeDecoder(),
    "json":   PolymorphicJsonDecoder(),
    "yaml":   TaggedYamlDecoder(),
}


@dataclass
class DecodeOutcome:
    fmt: str
    secure: bool
    type_name: str
    obj: Any


def get_decoder(fmt: str) -> Decoder:
    try:
        return DECODERS[fmt]
    except KeyError:
        raise ValueError(f"unknown format {fmt!r}; expected one of {sorted(DECODERS)}") from None


def decode_payload(fmt: str, raw: bytes, config: Optional[GateConfig], secure: bool = True) -> DecodeOutcome:
    """
    Run one payload through the gated (secure=True) or unchecked path.
    The gated path needs a config snapshot; without one it fails closed.
    Raises DecodeError subclasses on failure.
    """
    decoder = get_decoder(fmt)
    ctx = {"format": fmt, "secure": secure}
    log_event("IOD_START", {"bytes": len(raw)}, **ctx)

    try:
        if secure:
            if config is None:
                raise PolicyUnavailable("policy unavailable")
            obj = decoder.decode(raw, config)
        else:
            obj = decoder.decode_unchecked(raw)
    except DecodeError as e:
        log_exception("decode_error", e.to_dict(), **ctx)
        raise
    except Exception as e:
        # decoders wrap their own failures; anything else is a bug worth the trace
        log_exception("decode_crash", {"error": str(e), "trace": traceback.format_exc()}, **ctx)
        raise

    outcome = DecodeOutcome(fmt=fmt, secure=secure, type_name=qualified_name(obj), obj=obj)
    log_event("IOD_END", {"type": outcome.type_name}, **ctx)
    return outcome
