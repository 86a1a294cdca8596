from __future__ import annotations

import logging
import os
import re
import subprocess
from dataclasses import dataclass
from pathlib import Path
from typing import Protocol

from .errors import TransportError

logger = logging.getLogger(__name__)

DEFAULT_BRANCH = "main"

_COMMIT_RE = re.compile(r"^[0-9a-fA-F]{40}$")
_SYMREF_RE = re.compile(r"^ref:\s+refs/heads/(\S+)\s+HEAD$", re.MULTILINE)


@dataclass(frozen=True)
class GitTag:
    name: str
    commit: str


class GitTransport(Protocol):
    def list_remote_tags(self, url: str) -> list[GitTag]:
        ...

    def get_default_branch(self, url: str) -> str:
        ...

    def shallow_clone(self, url: str, ref: str, dest: Path, *, depth: int = 1) -> None:
        ...

    def get_head_commit(self, local_dir: Path) -> str:
        ...


def parse_ls_remote_tags(output: str) -> list[GitTag]:
    tags: list[GitTag] = []
    for line in output.splitlines():
        commit, sep, ref = line.strip().partition("\t")
        if not sep or not commit or not ref.startswith("refs/tags/"):
            continue
        tags.append(GitTag(name=ref[len("refs/tags/") :], commit=commit))
    return tags


def parse_symref_head(output: str) -> str | None:
    m = _SYMREF_RE.search(output)
    return m.group(1) if m else None


def looks_like_commit(ref: str) -> bool:
    return bool(_COMMIT_RE.match(ref))


class SubprocessGit:
    """GitTransport backed by the ``git`` executable."""

    def __init__(self, *, executable: str = "git") -> None:
        self.executable = executable

    def _run(self, args: list[str], *, cwd: Path | None = None) -> str:
        cmd = [self.executable, *args]
        logger.debug("Running %s", " ".join(cmd))
        try:
            result = subprocess.run(
                cmd,
                cwd=str(cwd) if cwd is not None else None,
                capture_output=True,
                text=True,
                check=False,
                env=_non_interactive_env(),
            )
        except OSError as e:
            raise TransportError(f"Could not run git: {e}", command=cmd) from e
        if result.returncode != 0:
            stderr = result.stderr.strip() or result.stdout.strip()
            raise TransportError(f"Git command failed: {' '.join(cmd)}\n{stderr}", command=cmd, stderr=stderr)
        return result.stdout

    def list_remote_tags(self, url: str) -> list[GitTag]:
        return parse_ls_remote_tags(self._run(["ls-remote", "--tags", "--refs", url]))

    def get_default_branch(self, url: str) -> str:
        branch = parse_symref_head(self._run(["ls-remote", "--symref", url, "HEAD"]))
        return branch or DEFAULT_BRANCH

    def shallow_clone(self, url: str, ref: str, dest: Path, *, depth: int = 1) -> None:
        dest.parent.mkdir(parents=True, exist_ok=True)
        if looks_like_commit(ref):
            # --branch only accepts branch and tag names.
            dest.mkdir(parents=True, exist_ok=True)
            self._run(["init", "--quiet"], cwd=dest)
            self._run(["remote", "add", "origin", url], cwd=dest)
            self._run(["fetch", "--quiet", "--depth", str(depth), "origin", ref], cwd=dest)
            self._run(["checkout", "--quiet", "FETCH_HEAD"], cwd=dest)
            return
        self._run(["clone", "--quiet", "--depth", str(depth), "--branch", ref, url, str(dest)])

    def get_head_commit(self, local_dir: Path) -> str:
        return self._run(["rev-parse", "HEAD"], cwd=local_dir).strip()


def _non_interactive_env() -> dict[str, str]:
    env = dict(os.environ)
    env.setdefault("GIT_TERMINAL_PROMPT", "0")
    return env
