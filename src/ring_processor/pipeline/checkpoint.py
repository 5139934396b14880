"""Checkpoint file recording the last key reached in the current range."""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Union

__all__ = ["Checkpoint", "ScriptProgress"]

_SEPARATOR = "\x03"


@dataclass
class Checkpoint:
    range_start_key: str = ""
    last_key: str = ""


class ScriptProgress:
    """Persists (range start key, last key) pairs for processors that opt in."""

    def __init__(self, path: Union[str, Path]):
        self.path = Path(path)

    def load(self) -> Checkpoint:
        """Return the saved checkpoint, or an empty one when none is readable."""
        if not self.path.exists():
            return Checkpoint()
        parts = self.path.read_text(encoding="utf-8").split(_SEPARATOR)
        if len(parts) != 2:
            return Checkpoint()
        return Checkpoint(range_start_key=parts[0], last_key=parts[1])

    def save(self, range_start_key: str, last_key: str) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        tmp_path = self.path.with_name(self.path.name + ".tmp")
        tmp_path.write_text(f"{range_start_key}{_SEPARATOR}{last_key}", encoding="utf-8")
        tmp_path.replace(self.path)

    def clear(self) -> None:
        if self.path.exists():
            self.path.unlink()
