from __future__ import annotations

from pathlib import Path
from typing import Any

from .errors import ManifestParseError
from .jsonio import read_json, write_json_atomic
from .references import DEFAULT_REGISTRY

MANIFEST_FILENAME = "skills.json"
DEFAULT_INSTALL_DIR = ".skills"


def default_manifest(name: str | None = None) -> dict[str, Any]:
    doc: dict[str, Any] = {}
    if name:
        doc["name"] = name
    doc["skills"] = {}
    doc["defaults"] = {"registry": DEFAULT_REGISTRY, "installDir": DEFAULT_INSTALL_DIR}
    return doc


class ManifestStore:
    """skills.json: declared skills (name -> reference string) and project defaults."""

    def __init__(self, project_root: Path) -> None:
        self.project_root = Path(project_root)
        self.path = self.project_root / MANIFEST_FILENAME

    def exists(self) -> bool:
        return self.path.exists()

    def load(self) -> dict[str, Any]:
        if not self.path.exists():
            return default_manifest()
        try:
            raw = read_json(self.path)
        except (OSError, ValueError) as e:
            raise ManifestParseError(f"Failed to parse {MANIFEST_FILENAME}: {e}") from e
        if raw is None:
            return default_manifest()
        if not isinstance(raw, dict):
            raise ManifestParseError(f"Failed to parse {MANIFEST_FILENAME}: expected a JSON object")
        for key in ("skills", "defaults", "registries"):
            if key in raw and not isinstance(raw[key], dict):
                raise ManifestParseError(f"Failed to parse {MANIFEST_FILENAME}: '{key}' must be an object")
        raw.setdefault("skills", {})
        return raw

    def save(self, document: dict[str, Any]) -> None:
        write_json_atomic(self.path, document)

    def create(self, name: str | None = None) -> dict[str, Any]:
        document = default_manifest(name)
        self.save(document)
        return document

    def get_skills(self) -> dict[str, str]:
        skills = self.load()["skills"]
        return {k: v for k, v in skills.items() if isinstance(k, str) and isinstance(v, str)}

    def get_skill_ref(self, name: str) -> str | None:
        return self.get_skills().get(name)

    def add_skill(self, name: str, ref: str) -> None:
        document = self.load()
        document["skills"][name] = ref
        self.save(document)

    def remove_skill(self, name: str) -> bool:
        if not self.exists():
            return False
        document = self.load()
        if name not in document["skills"]:
            return False
        del document["skills"][name]
        self.save(document)
        return True

    def get_defaults(self) -> dict[str, Any]:
        defaults = dict(default_manifest()["defaults"])
        loaded = self.load().get("defaults") or {}
        defaults.update({k: v for k, v in loaded.items() if v is not None})
        return defaults

    def get_install_dir(self) -> Path:
        install_dir = Path(str(self.get_defaults()["installDir"])).expanduser()
        if not install_dir.is_absolute():
            install_dir = self.project_root / install_dir
        return install_dir

    def get_registries(self) -> dict[str, str]:
        registries = self.load().get("registries") or {}
        return {k: v for k, v in registries.items() if isinstance(k, str) and isinstance(v, str)}
