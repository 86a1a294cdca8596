from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .cache import CacheKey, CacheStore, remove_path
from .config import Config, cache_root, load_config
from .errors import LockError, ManifestError, SkillpmError
from .git import GitTransport, SubprocessGit
from .jsonio import read_json
from .lockfile import LockedSkill, LockStore
from .manifest import MANIFEST_FILENAME, ManifestStore
from .references import DEFAULT_REGISTRY
from .resolver import GitResolver
from .versions import Latest

logger = logging.getLogger(__name__)

SKILL_METADATA_FILENAME = "skill.json"
UNKNOWN_VERSION = "unknown"
LOCAL_VERSION = "local"


@dataclass(frozen=True)
class InstalledSkill:
    name: str
    path: Path
    version: str
    source: str
    is_linked: bool = False
    metadata: dict[str, Any] | None = None

    def to_json(self) -> dict[str, Any]:
        return {
            "name": self.name,
            "path": str(self.path),
            "version": self.version,
            "source": self.source,
            "isLinked": self.is_linked,
            "metadata": self.metadata,
        }


INSTALLED = "installed"
UP_TO_DATE = "up-to-date"
SKIPPED = "skipped"


@dataclass(frozen=True)
class InstallResult:
    skill: InstalledSkill
    requested: str
    status: str  # INSTALLED, UP_TO_DATE or SKIPPED


@dataclass(frozen=True)
class OutdatedSkill:
    name: str
    current: str
    latest: str
    update_available: bool


@dataclass(frozen=True)
class SkillInfo:
    installed: InstalledSkill | None
    locked: LockedSkill | None
    reference: str | None


@dataclass(frozen=True)
class BatchResult:
    installed: tuple[InstalledSkill, ...] = ()
    failures: dict[str, str] = field(default_factory=dict)


def _path_exists(path: Path) -> bool:
    return path.exists() or path.is_symlink()


def _read_skill_metadata(skill_dir: Path) -> dict[str, Any] | None:
    meta_path = skill_dir / SKILL_METADATA_FILENAME
    if not meta_path.is_file():
        return None
    try:
        data = read_json(meta_path)
    except (OSError, ValueError):
        return None
    if not isinstance(data, dict):
        return None
    return data


def _metadata_str(metadata: dict[str, Any] | None, key: str) -> str | None:
    if not metadata:
        return None
    value = metadata.get(key)
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


class SkillManager:
    """
    Install, update and remove skills for one project.

    Ties together the resolver (reference -> concrete ref), the shared cache, the
    project's install directory, skills.lock and skills.json.
    """

    def __init__(
        self,
        *,
        project_root: Path,
        cache: CacheStore,
        git: GitTransport,
        default_registry: str | None = None,
    ) -> None:
        self.project_root = Path(project_root).expanduser().resolve()
        self.manifest = ManifestStore(self.project_root)
        self.lock = LockStore(self.project_root)
        self.cache = cache

        declared = None
        if self.manifest.exists():
            declared = (self.manifest.load().get("defaults") or {}).get("registry")
        registry = declared or default_registry or DEFAULT_REGISTRY
        self.resolver = GitResolver(git=git, default_registry=registry, registries=self.manifest.get_registries())

    @classmethod
    def from_config(cls, project_root: Path, cfg: Config | None = None) -> "SkillManager":
        cfg = cfg or load_config()
        git = SubprocessGit(executable=cfg.git_executable)
        return cls(
            project_root=project_root,
            cache=CacheStore(cache_root(cfg), git=git),
            git=git,
            default_registry=cfg.default_registry,
        )

    @property
    def install_dir(self) -> Path:
        return self.manifest.get_install_dir()

    def skill_path(self, name: str) -> Path:
        if not name or name in (".", "..") or "/" in name or os.sep in name:
            raise SkillpmError(f"Invalid skill name: {name!r}")
        return self.install_dir / name

    def install(self, ref: str, *, force: bool = False, save: bool | None = None) -> InstalledSkill:
        """
        Install one skill reference.

        save=None records the reference in skills.json only when that file exists;
        True always records it (creating the file), False never does.
        """
        return self.install_result(ref, force=force, save=save).skill

    def install_result(self, ref: str, *, force: bool = False, save: bool | None = None) -> InstallResult:
        resolved = self.resolver.resolve(ref)
        parsed = resolved.parsed
        version = resolved.ref
        name = parsed.skill_name
        target = self.skill_path(name)

        if _path_exists(target) and not force:
            if self.lock.is_version_match(name, version):
                logger.info("%s@%s is already installed", name, version)
                return InstallResult(skill=self._require_installed(name), requested=version, status=UP_TO_DATE)
            logger.warning("%s is already installed. Use --force to reinstall.", name)
            return InstallResult(skill=self._require_installed(name), requested=version, status=SKIPPED)

        logger.info("Installing %s@%s", name, version)
        key = CacheKey.for_reference(parsed, version)
        entry = self.cache.lookup(key)
        if entry is None:
            logger.debug("Caching %s@%s from %s", name, version, resolved.repo_url)
            entry = self.cache.materialize(resolved.repo_url, key, version, parsed.subpath)
        else:
            logger.debug("Using cached %s@%s", name, version)

        self.install_dir.mkdir(parents=True, exist_ok=True)
        self.cache.copy_out(entry, target)

        self.lock.lock_skill(
            name,
            source=parsed.source,
            version=version,
            resolved=resolved.repo_url,
            commit=entry.commit or resolved.commit or "",
        )

        if save or (save is None and self.manifest.exists()):
            self.manifest.add_skill(name, ref)

        logger.info("Installed %s@%s to %s", name, version, target)
        return InstallResult(skill=self._require_installed(name), requested=version, status=INSTALLED)

    def _install_batch(self, entries: dict[str, str], *, force: bool, action: str) -> BatchResult:
        installed: list[InstalledSkill] = []
        failures: dict[str, str] = {}
        for name, ref in entries.items():
            try:
                installed.append(self.install(ref, force=force, save=False))
            except (LockError, ManifestError):
                raise
            except (SkillpmError, OSError) as e:
                logger.error("Failed to %s %s: %s", action, name, e)
                failures[name] = str(e)
        return BatchResult(installed=tuple(installed), failures=failures)

    def install_all(self, *, force: bool = False) -> BatchResult:
        return self._install_batch(self.manifest.get_skills(), force=force, action="install")

    def update(self, name: str | None = None) -> BatchResult:
        if name is None:
            return self._install_batch(self.manifest.get_skills(), force=True, action="update")

        ref = self.manifest.get_skill_ref(name)
        if ref is None:
            message = f"Skill {name} not found in {MANIFEST_FILENAME}"
            logger.error(message)
            return BatchResult(failures={name: message})
        return BatchResult(installed=(self.install(ref, force=True, save=False),))

    def check_outdated(self) -> list[OutdatedSkill]:
        results: list[OutdatedSkill] = []
        for name, ref in self.manifest.get_skills().items():
            locked = self.lock.get(name)
            current = locked.version if locked else UNKNOWN_VERSION
            try:
                parsed = self.resolver.parse(ref)
                latest = self.resolver.resolve_version(self.resolver.repo_url(parsed), Latest()).ref
            except SkillpmError as e:
                logger.debug("Failed to check %s: %s", name, e)
                results.append(
                    OutdatedSkill(name=name, current=UNKNOWN_VERSION, latest=UNKNOWN_VERSION, update_available=False)
                )
                continue
            results.append(
                OutdatedSkill(
                    name=name,
                    current=current,
                    latest=latest,
                    update_available=current != latest and current != UNKNOWN_VERSION,
                )
            )
        return results

    def uninstall(self, name: str) -> bool:
        target = self.skill_path(name)
        existed = _path_exists(target)
        if existed:
            remove_path(target)
        else:
            logger.warning("Skill %s is not installed", name)

        self.lock.remove(name)
        self.manifest.remove_skill(name)

        if existed:
            logger.info("Uninstalled %s", name)
        return existed

    def link(self, local_path: str | Path, name: str | None = None) -> InstalledSkill:
        source = Path(local_path).expanduser().resolve()
        if not source.exists():
            raise SkillpmError(f"Path {local_path} does not exist")
        if not source.is_dir():
            raise SkillpmError(f"Path {local_path} is not a directory")

        metadata = _read_skill_metadata(source)
        skill_name = name or _metadata_str(metadata, "name") or source.name
        link_path = self.skill_path(skill_name)

        if link_path.is_symlink():
            link_path.unlink()
        elif _path_exists(link_path):
            raise SkillpmError(f"{skill_name} is already installed at {link_path}. Uninstall it first.")

        self.install_dir.mkdir(parents=True, exist_ok=True)
        link_path.symlink_to(source, target_is_directory=True)
        logger.info("Linked %s -> %s", skill_name, source)

        return InstalledSkill(
            name=skill_name,
            path=link_path,
            version=LOCAL_VERSION,
            source=str(source),
            is_linked=True,
            metadata=metadata,
        )

    def unlink(self, name: str) -> bool:
        target = self.skill_path(name)
        if not _path_exists(target):
            logger.warning("Skill %s is not installed", name)
            return False
        if not target.is_symlink():
            logger.warning("Skill %s is not a linked skill", name)
            return False
        target.unlink()
        logger.info("Unlinked %s", name)
        return True

    def list(self) -> list[InstalledSkill]:
        install_dir = self.install_dir
        if not install_dir.is_dir():
            return []

        skills: list[InstalledSkill] = []
        for child in sorted(install_dir.iterdir(), key=lambda p: p.name):
            if not child.is_dir():
                continue
            skill = self.get_installed_skill(child.name)
            if skill is not None:
                skills.append(skill)
        return skills

    def get_installed_skill(self, name: str) -> InstalledSkill | None:
        path = self.skill_path(name)
        if not _path_exists(path):
            return None

        is_linked = path.is_symlink()
        metadata = _read_skill_metadata(path)
        if is_linked:
            return InstalledSkill(
                name=name,
                path=path,
                version=LOCAL_VERSION,
                source=str(path.resolve()),
                is_linked=True,
                metadata=metadata,
            )

        locked = self.lock.get(name)
        version = (locked.version if locked else None) or _metadata_str(metadata, "version") or UNKNOWN_VERSION
        return InstalledSkill(
            name=name,
            path=path,
            version=version,
            source=locked.source if locked else "",
            is_linked=False,
            metadata=metadata,
        )

    def _require_installed(self, name: str) -> InstalledSkill:
        skill = self.get_installed_skill(name)
        if skill is None:
            raise SkillpmError(f"Skill {name} is not installed at {self.skill_path(name)}")
        return skill

    def get_info(self, name: str) -> SkillInfo:
        return SkillInfo(
            installed=self.get_installed_skill(name),
            locked=self.lock.get(name),
            reference=self.manifest.get_skill_ref(name),
        )
