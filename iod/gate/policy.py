# iod/gate/policy.py
from __future__ import annotations
from dataclasses import dataclass, field
from pathlib import Path
from typing import FrozenSet, Iterable, List, Optional
import threading
import yaml

from ..validators import check_pattern, check_policy_doc
from ..logging.logger import log_event

DEFAULT_POLICY_PATH = Path(__file__).resolve().parent.parent / "policy.yaml"
DEFAULT_TYPE_PROPERTY = "@type"
DEFAULT_ROOT_TYPE = "iod.safe.safe_class.SafeClass"


@dataclass(frozen=True)
class AllowListPolicy:
    types: FrozenSet[str] = frozenset()
    prefixes: FrozenSet[str] = frozenset()
    source: str = "<memory>"

    def __post_init__(self):
        # accept any iterable but always store frozensets
        object.__setattr__(self, "types", frozenset(self.types))
        object.__setattr__(self, "prefixes", frozenset(p.rstrip(".") for p in self.prefixes))

    @classmethod
    def from_patterns(cls, patterns: Iterable[str], source: str = "<memory>") -> "AllowListPolicy":
        """
        "ns.sub.*" or "ns.sub." -> namespace prefix, anything else -> exact type.
        Raises ValueError on a malformed pattern.
        """
        types: List[str] = []
        prefixes: List[str] = []
        for p in patterns:
            check_pattern(p)
            if p.endswith(".*"):
                prefixes.append(p[:-2])
            elif p.endswith("."):
                prefixes.append(p[:-1])
            else:
                types.append(p)
        return cls(types=frozenset(types), prefixes=frozenset(prefixes), source=source)

    def patterns(self) -> List[str]:
        return sorted(self.types) + sorted(f"{p}.*" for p in self.prefixes)


@dataclass(frozen=True)
class GateConfig:
    policy: AllowListPolicy
    type_property: str = DEFAULT_TYPE_PROPERTY
    root_type: Optional[str] = DEFAULT_ROOT_TYPE


def load_config(path: Path | str = DEFAULT_POLICY_PATH) -> GateConfig:
    path = Path(path)
    with open(path, "r", encoding="utf-8") as f:
        try:
            doc = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ValueError(f"policy: cannot parse {path}: {e}") from e
    check_policy_doc(doc)
    policy = AllowListPolicy.from_patterns(doc["allow"], source=str(path))
    return GateConfig(
        policy=policy,
        type_property=doc.get("type_property", DEFAULT_TYPE_PROPERTY),
        root_type=doc.get("yaml_root_type", DEFAULT_ROOT_TYPE),
    )


@dataclass
class PolicyStore:
    """
    Holds the current GateConfig snapshot.

    Readers call snapshot() once per request and never lock; the snapshot is
    immutable. Writers swap the whole reference under a lock, so a concurrent
    reader sees either the old or the new allow-list, never a mix.
    """
    _current: Optional[GateConfig] = None
    _write_lock: threading.Lock = field(default_factory=threading.Lock, repr=False)

    def snapshot(self) -> Optional[GateConfig]:
        return self._current

    def replace(self, config: GateConfig) -> Optional[GateConfig]:
        with self._write_lock:
            previous, self._current = self._current, config
        log_event("IOD_POLICY_SWAP", {"source": config.policy.source, "patterns": config.policy.patterns()})
        return previous

    def reload(self, path: Path | str = DEFAULT_POLICY_PATH) -> GateConfig:
        # parse fully before swapping; a broken file leaves the old snapshot in place
        config = load_config(path)
        self.replace(config)
        return config
