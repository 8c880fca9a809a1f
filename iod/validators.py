from __future__ import annotations
from typing import Any, Dict

# Light checks without external schema libraries.

_KNOWN_KEYS = {"version", "allow", "type_property", "yaml_root_type"}

def is_type_identifier(candidate: Any) -> bool:
    """
    True when candidate looks like "<module>.<qualname>": a non-empty str whose
    dot-separated segments are all Python identifiers.
    """
    if not isinstance(candidate, str) or not candidate:
        return False
    return all(seg.isidentifier() for seg in candidate.split("."))

def check_pattern(pattern: Any) -> None:
    """
    Allow-list pattern: an exact identifier, or a namespace followed by ".*" / ".".
    Raises ValueError otherwise.
    """
    if not isinstance(pattern, str):
        raise ValueError(f"policy: pattern must be a string, got {type(pattern).__name__}")
    name = pattern
    if name.endswith(".*"):
        name = name[:-2]
    elif name.endswith("."):
        name = name[:-1]
    if not is_type_identifier(name):
        raise ValueError(f"policy: malformed pattern {pattern!r}")

def check_policy_doc(doc: Dict[str, Any]) -> None:
    """
    Shape check for policy.yaml. Raises ValueError if something essential is off.
    """
    if not isinstance(doc, dict):
        raise ValueError("policy: document must be a mapping")
    unknown = sorted(set(doc) - _KNOWN_KEYS)
    if unknown:
        raise ValueError(f"policy: unknown keys {unknown}")
    if "allow" not in doc:
        raise ValueError("policy: missing key 'allow'")
    if not isinstance(doc["allow"], list):
        raise ValueError("policy: 'allow' must be a list")
    for p in doc["allow"]:
        check_pattern(p)
    tp = doc.get("type_property", "@type")
    if not isinstance(tp, str) or not tp:
        raise ValueError("policy: 'type_property' must be a non-empty string")
    root = doc.get("yaml_root_type")
    if root is not None and not is_type_identifier(root):
        raise ValueError("policy: 'yaml_root_type' must be a type identifier")
