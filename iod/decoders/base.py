from __future__ import annotations
from typing import Any, Optional, Protocol

from ..gate.policy import GateConfig

class Decoder(Protocol):
    name: str
    media_type: str
    def decode(self, raw: bytes, config: Optional[GateConfig]) -> Any: ...
    def decode_unchecked(self, raw: bytes) -> Any: ...
