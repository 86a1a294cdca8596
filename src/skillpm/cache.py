from __future__ import annotations

import logging
import shutil
import tempfile
from dataclasses import dataclass
from pathlib import Path
from typing import Callable
from urllib.parse import quote

from .errors import CacheError, SubpathNotFoundError
from .git import GitTransport
from .references import ParsedReference

logger = logging.getLogger(__name__)

COMMIT_FILENAME = ".skillpm-commit"

# Version-control metadata never lands in the cache.
VCS_EXCLUDE_NAMES = {".git", ".hg", ".svn"}


@dataclass(frozen=True)
class CacheKey:
    registry: str
    owner: str
    repo: str
    version: str
    subpath: str | None = None

    @classmethod
    def for_reference(cls, parsed: ParsedReference, version: str) -> "CacheKey":
        return cls(
            registry=parsed.registry,
            owner=parsed.owner,
            repo=parsed.repo,
            version=version,
            subpath=parsed.subpath,
        )

    def __str__(self) -> str:
        path = f"/{self.subpath}" if self.subpath else ""
        return f"{self.registry}:{self.owner}/{self.repo}{path}@{self.version}"


@dataclass(frozen=True)
class CacheEntry:
    key: CacheKey
    path: Path
    commit: str


@dataclass(frozen=True)
class CacheStats:
    total_skills: int
    total_versions: int
    registries: tuple[str, ...]


def _ignore_everywhere(names: set[str]) -> Callable[[str, list[str]], set[str]]:
    def _ignore(_dir: str, entries: list[str]) -> set[str]:
        return {e for e in entries if e in names}

    return _ignore


def _ignore_at_root(root: Path, names: set[str]) -> Callable[[str, list[str]], set[str]]:
    def _ignore(directory: str, entries: list[str]) -> set[str]:
        if Path(directory) != root:
            return set()
        return {e for e in entries if e in names}

    return _ignore


def remove_path(path: Path) -> bool:
    if path.is_symlink() or path.is_file():
        path.unlink()
        return True
    if path.is_dir():
        shutil.rmtree(path)
        return True
    return False


def _read_commit(entry_dir: Path) -> str:
    commit_file = entry_dir / COMMIT_FILENAME
    try:
        return commit_file.read_text(encoding="utf-8").strip()
    except OSError:
        return ""


def _check_segment(value: str, what: str) -> str:
    if not value or value in (".", "..") or "\\" in value or "/" in value:
        raise CacheError(f"Invalid {what} for a cache key: {value!r}")
    return value


def _resolve_subpath(clone_dir: Path, subpath: str) -> Path:
    base = clone_dir.resolve()
    candidate = (base / subpath).resolve()
    if candidate != base and base not in candidate.parents:
        raise SubpathNotFoundError(f"Subpath {subpath} points outside the repository")
    if not candidate.is_dir():
        raise SubpathNotFoundError(f"Subpath {subpath} not found in repository")
    return candidate


class CacheStore:
    """
    Content-addressed skill cache.

    Layout: <root>/<registry>/<owner>/<repo>/<version>/..., one immutable directory
    per resolved version, with the source commit recorded in COMMIT_FILENAME.
    Nothing is evicted automatically; entries go away only through clear().
    """

    def __init__(self, root: Path, *, git: GitTransport) -> None:
        self.root = Path(root).expanduser()
        self.git = git

    def repo_dir(self, registry: str, owner: str, repo: str) -> Path:
        parts = [_check_segment(registry, "registry")]
        parts.extend(_check_segment(p, "owner") for p in owner.split("/"))
        parts.append(_check_segment(repo, "repo"))
        return self.root.joinpath(*parts)

    def path_for(self, key: CacheKey) -> Path:
        # Branch names may contain "/", keep one directory per version. Monorepo
        # subtrees get their own entry; "#" never survives quote(), so no clashes.
        if key.version in ("", ".", ".."):
            raise CacheError(f"Invalid version for a cache key: {key.version!r}")
        name = quote(key.version, safe="")
        if key.subpath:
            name += "#" + quote(key.subpath.strip("/"), safe="")
        return self.repo_dir(key.registry, key.owner, key.repo) / name

    def lookup(self, key: CacheKey) -> CacheEntry | None:
        path = self.path_for(key)
        if not path.is_dir():
            return None
        return CacheEntry(key=key, path=path, commit=_read_commit(path))

    def materialize(self, repo_url: str, key: CacheKey, git_ref: str, subpath: str | None = None) -> CacheEntry:
        if subpath is None:
            subpath = key.subpath
        final = self.path_for(key)
        if final.exists():
            logger.debug("Replacing cache entry %s", key)
            shutil.rmtree(final)
        final.parent.mkdir(parents=True, exist_ok=True)

        staging = Path(tempfile.mkdtemp(prefix=f".{final.name}.", suffix=".staging", dir=final.parent))
        try:
            clone_dir = staging / "clone"
            logger.debug("Cloning %s at %s into %s", repo_url, git_ref, clone_dir)
            self.git.shallow_clone(repo_url, git_ref, clone_dir, depth=1)
            commit = self.git.get_head_commit(clone_dir)

            source = _resolve_subpath(clone_dir, subpath) if subpath else clone_dir
            build = staging / "content"
            try:
                shutil.copytree(source, build, ignore=_ignore_everywhere(VCS_EXCLUDE_NAMES), symlinks=True)
                (build / COMMIT_FILENAME).write_text(commit, encoding="utf-8")
                if final.exists():
                    shutil.rmtree(final)
                build.rename(final)
            except OSError as e:
                raise CacheError(f"Could not write cache entry {key}: {e}") from e
        finally:
            shutil.rmtree(staging, ignore_errors=True)

        return CacheEntry(key=key, path=final, commit=commit)

    def copy_out(self, entry: CacheEntry, destination: Path) -> None:
        destination = Path(destination)
        remove_path(destination)
        destination.parent.mkdir(parents=True, exist_ok=True)
        shutil.copytree(
            entry.path,
            destination,
            ignore=_ignore_at_root(entry.path, {COMMIT_FILENAME}),
            symlinks=True,
        )

    def clear(self, key: CacheKey | None = None) -> bool:
        """Remove one cached version, or the whole cache when no key is given."""
        target = self.root if key is None else self.path_for(key)
        if not target.exists():
            return False
        shutil.rmtree(target)
        return True

    def clear_repo(self, registry: str, owner: str, repo: str) -> bool:
        target = self.repo_dir(registry, owner, repo)
        if not target.exists():
            return False
        shutil.rmtree(target)
        return True

    def stats(self) -> CacheStats:
        if not self.root.is_dir():
            return CacheStats(total_skills=0, total_versions=0, registries=())

        registries = sorted(p.name for p in self.root.iterdir() if p.is_dir())
        repos: set[Path] = set()
        versions = 0
        for marker in self.root.rglob(COMMIT_FILENAME):
            versions += 1
            repos.add(marker.parent.parent)
        return CacheStats(total_skills=len(repos), total_versions=versions, registries=tuple(registries))
