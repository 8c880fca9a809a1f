# iod/decoders/binding.py
from __future__ import annotations
from dataclasses import fields, is_dataclass
from typing import Any, Dict, Optional
import importlib

from ..errors import DecodeError, PayloadError, TypeRejected, UnresolvableType
from ..gate.admission import enforce
from ..gate.policy import AllowListPolicy


def qualified_name(obj: Any) -> str:
    """"module.qualname" of a class, or of obj's type for instances."""
    target = obj if isinstance(obj, type) else type(obj)
    module = getattr(target, "__module__", None) or "builtins"
    return f"{module}.{target.__qualname__}"


def resolve_type(type_id: str) -> Any:
    """
    Import the longest importable module prefix of type_id and walk the rest
    as attributes. Only call this for identifiers the gate already admitted.
    """
    parts = type_id.split(".")
    for cut in range(len(parts) - 1, 0, -1):
        modname = ".".join(parts[:cut])
        try:
            obj = importlib.import_module(modname)
        except ModuleNotFoundError:
            continue
        except Exception as e:
            raise UnresolvableType(f"import of {modname!r} failed: {e}", type_id) from e
        try:
            for attr in parts[cut:]:
                obj = getattr(obj, attr)
        except AttributeError as e:
            raise UnresolvableType("no such attribute", type_id) from e
        return obj
    raise UnresolvableType("no importable module", type_id)


def check_canonical(obj: Any, type_id: str, policy: Optional[AllowListPolicy]) -> Any:
    """
    An admitted name may be a re-export of something defined elsewhere
    (e.g. "iod.safe.safe_class.dataclass"); the object's own name must pass too.
    Objects without a str __module__/__qualname__ (modules, bound builtins,
    plain values) are rejected outright.
    """
    module = getattr(obj, "__module__", None)
    qualname = getattr(obj, "__qualname__", None)
    if not isinstance(module, str) or not isinstance(qualname, str):
        raise TypeRejected("resolved object has no canonical name", type_id)
    canonical = f"{module}.{qualname}"
    if canonical != type_id:
        enforce(canonical, policy)
    return obj


def admit_class(type_id: Any, policy: Optional[AllowListPolicy]) -> type:
    """Gate -> import -> canonical re-check. Returns the class or raises DecodeError."""
    enforce(type_id, policy)
    cls = resolve_type(type_id)
    if not isinstance(cls, type):
        raise UnresolvableType("not a class", type_id)
    return check_canonical(cls, type_id, policy)


def instantiate(cls: type, values: Dict[str, Any], ignore_unknown: bool = True) -> Any:
    """
    Build cls from a field mapping. For dataclasses unknown keys are dropped
    unless ignore_unknown is False.
    """
    if not isinstance(values, dict):
        raise PayloadError(f"expected a mapping of fields, got {type(values).__name__}", qualified_name(cls))
    kwargs = dict(values)
    if ignore_unknown and is_dataclass(cls):
        known = {f.name for f in fields(cls) if f.init}
        kwargs = {k: v for k, v in kwargs.items() if k in known}
    try:
        return cls(**kwargs)
    except DecodeError:
        raise
    except Exception as e:
        # ValueError from validating constructors, decimal errors and the like
        raise PayloadError(f"cannot bind fields: {e}", qualified_name(cls)) from e
