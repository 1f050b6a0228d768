"""
Staged changes buffer.

Holds uncommitted file writes and deletions for the duration of an
execution. A deletion is an explicit marker, distinct from a path that was
never staged, so that commit time removes the file instead of ignoring it.
"""
from dataclasses import dataclass
from typing import Dict, Iterator, List, Optional


def normalize_path(path: str) -> str:
    """Repository-relative path without leading ``/`` or ``./``."""
    cleaned = path.strip()
    while cleaned.startswith("./"):
        cleaned = cleaned[2:]
    return cleaned.lstrip("/")


@dataclass(frozen=True)
class StagedChange:
    path: str
    content: Optional[str] = None

    @property
    def deleted(self) -> bool:
        return self.content is None


class StagedChanges:
    """Mapping of path -> StagedChange with unique keys, in staging order."""

    def __init__(self, entries: Optional[Dict[str, Optional[str]]] = None):
        self._changes: Dict[str, StagedChange] = {}
        for path, content in (entries or {}).items():
            self._changes[path] = StagedChange(path=path, content=content)

    def write(self, path: str, content: str) -> StagedChange:
        change = StagedChange(path=normalize_path(path), content=content)
        self._changes[change.path] = change
        return change

    def delete(self, path: str) -> StagedChange:
        change = StagedChange(path=normalize_path(path), content=None)
        self._changes[change.path] = change
        return change

    def discard(self, path: str) -> Optional[StagedChange]:
        """Drop a staged entry entirely, as if the path had never been staged."""
        return self._changes.pop(normalize_path(path), None)

    def get(self, path: str) -> Optional[StagedChange]:
        return self._changes.get(normalize_path(path))

    def paths(self) -> List[str]:
        return list(self._changes.keys())

    def to_dict(self) -> Dict[str, Optional[str]]:
        """Persisted form: content string, or None for a deletion."""
        return {path: change.content for path, change in self._changes.items()}

    def __contains__(self, path: str) -> bool:
        return normalize_path(path) in self._changes

    def __iter__(self) -> Iterator[StagedChange]:
        return iter(list(self._changes.values()))

    def __len__(self) -> int:
        return len(self._changes)

    def __repr__(self):
        return f"<StagedChanges {len(self)} paths>"
