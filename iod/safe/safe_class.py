from __future__ import annotations
from dataclasses import dataclass

@dataclass
class SafeClass:
    """
    Plain data holder considered safe to deserialize: only a name and an int,
    no behaviour on construction or state restore.
    """
    name: str = ""
    value: int = 0

    def __str__(self) -> str:
        return f"SafeClass{{name='{self.name}', value={self.value}}}"
