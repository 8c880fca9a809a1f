# iod/decoders/native.py
from __future__ import annotations
from typing import Any, Optional
import io
import pickle

from .binding import check_canonical
from ..errors import DecodeError, PayloadError
from ..gate.admission import enforce
from ..gate.policy import AllowListPolicy, GateConfig


class GatedUnpickler(pickle.Unpickler):
    """
    Unpickler whose find_class asks the gate first. Every global a pickle can
    reach (classes, reduce callables, copyreg helpers) goes through find_class,
    so a rejected name is never imported and never called.
    """

    def __init__(self, file, policy: Optional[AllowListPolicy]):
        super().__init__(file)
        self.policy = policy

    def find_class(self, module: str, name: str) -> Any:
        type_id = f"{module}.{name}"
        enforce(type_id, self.policy)
        obj = super().find_class(module, name)
        return check_canonical(obj, type_id, self.policy)


class NativeDecoder:
    name = "native"
    media_type = "application/octet-stream"

    def decode(self, raw: bytes, config: Optional[GateConfig]) -> Any:
        policy = config.policy if config else None
        try:
            return GatedUnpickler(io.BytesIO(raw), policy).load()
        except DecodeError:
            raise
        except Exception as e:
            raise PayloadError(f"invalid pickle stream: {e}") from e

    def decode_unchecked(self, raw: bytes) -> Any:
        # Danger: any pickle may run arbitrary code here
        try:
            return pickle.loads(raw)
        except Exception as e:
            raise PayloadError(f"invalid pickle stream: {e}") from e
