from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any

from .errors import LockParseError
from .jsonio import read_json, utc_timestamp, write_json_atomic

LOCK_FILENAME = "skills.lock"
LOCKFILE_VERSION = 1


@dataclass(frozen=True)
class LockedSkill:
    source: str
    version: str
    resolved: str
    commit: str
    installed_at: str

    def to_json(self) -> dict[str, str]:
        return {
            "source": self.source,
            "version": self.version,
            "resolved": self.resolved,
            "commit": self.commit,
            "installedAt": self.installed_at,
        }

    @classmethod
    def from_json(cls, data: Any) -> "LockedSkill":
        if not isinstance(data, dict):
            raise ValueError("lock entry must be an object")
        return cls(
            source=str(data.get("source", "")),
            version=str(data.get("version", "")),
            resolved=str(data.get("resolved", "")),
            commit=str(data.get("commit") or ""),
            installed_at=str(data.get("installedAt", "")),
        )


def _empty_lock() -> dict[str, Any]:
    return {"lockfileVersion": LOCKFILE_VERSION, "skills": {}}


class LockStore:
    """
    skills.lock: the exact provenance of every installed skill.

    Every mutation reloads the document from disk, edits one entry and writes the
    whole document back.
    """

    def __init__(self, project_root: Path) -> None:
        self.project_root = Path(project_root)
        self.path = self.project_root / LOCK_FILENAME

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return _empty_lock()
        try:
            raw = read_json(self.path)
        except (OSError, ValueError) as e:
            raise LockParseError(f"Failed to parse {LOCK_FILENAME}: {e}") from e
        if raw is None:
            return _empty_lock()
        if not isinstance(raw, dict) or not isinstance(raw.get("skills", {}), dict):
            raise LockParseError(f"Failed to parse {LOCK_FILENAME}: expected an object with a 'skills' mapping")
        return {
            "lockfileVersion": raw.get("lockfileVersion", LOCKFILE_VERSION),
            "skills": dict(raw.get("skills", {})),
        }

    def save(self, document: dict[str, Any]) -> None:
        write_json_atomic(self.path, document)

    def all(self) -> dict[str, LockedSkill]:
        skills = self.load()["skills"]
        out: dict[str, LockedSkill] = {}
        for name, item in skills.items():
            try:
                out[name] = LockedSkill.from_json(item)
            except ValueError as e:
                raise LockParseError(f"Failed to parse {LOCK_FILENAME}: entry {name!r}: {e}") from e
        return out

    def get(self, name: str) -> LockedSkill | None:
        item = self.load()["skills"].get(name)
        if item is None:
            return None
        try:
            return LockedSkill.from_json(item)
        except ValueError as e:
            raise LockParseError(f"Failed to parse {LOCK_FILENAME}: entry {name!r}: {e}") from e

    def has(self, name: str) -> bool:
        return name in self.load()["skills"]

    def set(self, name: str, skill: LockedSkill) -> None:
        document = self.load()
        document["skills"][name] = skill.to_json()
        self.save(document)

    def remove(self, name: str) -> bool:
        document = self.load()
        if name not in document["skills"]:
            return False
        del document["skills"][name]
        self.save(document)
        return True

    def clear(self) -> None:
        self.save(_empty_lock())

    def is_version_match(self, name: str, version: str) -> bool:
        locked = self.get(name)
        return locked is not None and locked.version == version

    def lock_skill(self, name: str, *, source: str, version: str, resolved: str, commit: str) -> LockedSkill:
        skill = LockedSkill(
            source=source,
            version=version,
            resolved=resolved,
            commit=commit,
            installed_at=utc_timestamp(),
        )
        self.set(name, skill)
        return skill
