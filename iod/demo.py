from __future__ import annotations
import json
import pickle
from fractions import Fraction

from .errors import DecodeError
from .gate.policy import load_config
from .iod_core import decode_payload
from .safe.safe_class import SafeClass


class Hostile:
    # harmless stand-in for a gadget: the unpickler ends up calling Fraction(1, 3)
    def __reduce__(self):
        return (Fraction, (1, 3))


PAYLOADS = {
    "native": [
        ("safe", pickle.dumps(SafeClass("demo", 1))),
        ("hostile", pickle.dumps(Hostile())),
    ],
    "json": [
        ("safe", json.dumps({"@type": "iod.safe.safe_class.SafeClass", "name": "demo", "value": 1}).encode()),
        ("hostile", json.dumps({"@type": "fractions.Fraction", "numerator": 1, "denominator": 3}).encode()),
    ],
    "yaml": [
        ("safe", b"name: demo\nvalue: 1\n"),
        ("hostile", b"!!python/object/apply:fractions.Fraction [1, 3]\n"),
    ],
}

if __name__ == "__main__":
    cfg = load_config()

    for fmt, samples in PAYLOADS.items():
        for label, raw in samples:
            for secure in (False, True):
                mode = "secure " if secure else "unchecked"
                try:
                    out = decode_payload(fmt, raw, cfg, secure=secure)
                    print(f"{fmt:<6} {label:<7} {mode} -> {out.type_name}: {out.obj}")
                except DecodeError as e:
                    print(f"{fmt:<6} {label:<7} {mode} -> {e.kind}: {e}")
