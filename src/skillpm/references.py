from __future__ import annotations

import re
from dataclasses import dataclass
from pathlib import PurePosixPath
from typing import Mapping
from urllib.parse import urlsplit

from .errors import InvalidGitUrlError, InvalidReferenceError

DEFAULT_REGISTRY = "github"

KNOWN_REGISTRIES = {
    "github": "https://github.com",
    "gitlab": "https://gitlab.com",
}

GIT_URL_SCHEMES = ("http", "https", "git", "ssh", "git+ssh", "git+https", "file")

_SCHEME_RE = re.compile(r"^([A-Za-z][A-Za-z0-9+.-]*)://")
_SSH_RE = re.compile(r"^[A-Za-z0-9._-]+@[A-Za-z0-9.-]+:")
_REGISTRY_RE = re.compile(r"^([A-Za-z0-9.-]+):(.+)$")
_GIT_SUFFIX_RE = re.compile(r"\.git(?=$|[/@])")
_DOT_SEGMENTS = (".", "..")


@dataclass(frozen=True)
class ParsedReference:
    registry: str
    owner: str
    repo: str
    raw: str
    subpath: str | None = None
    version: str | None = None
    raw_url: str | None = None

    @property
    def source(self) -> str:
        """Normalized reference without the version part."""
        base = self.raw_url or f"{self.registry}:{self.owner}/{self.repo}"
        if self.subpath:
            return f"{base}/{self.subpath}"
        return base

    @property
    def skill_name(self) -> str:
        if self.subpath:
            return PurePosixPath(self.subpath).name or self.repo
        return self.repo


def is_git_url(value: str) -> bool:
    m = _SCHEME_RE.match(value)
    if m:
        return m.group(1).lower() in GIT_URL_SCHEMES
    return bool(_SSH_RE.match(value))


def _authority_end(value: str) -> int:
    m = _SCHEME_RE.match(value)
    if m:
        slash = value.find("/", m.end())
        return len(value) if slash < 0 else slash
    m = _SSH_RE.match(value)
    if m:
        return m.end() - 1
    return 0


def find_version_separator(value: str) -> int:
    """
    Return the index of the ``@`` that starts a version suffix, or -1.

    Only the last ``@`` is a candidate, and it must sit strictly after a floor:
    - shorthand references: index 0 (a leading ``@`` is never a separator);
    - Git URLs with a ``.git`` suffix: the end of that suffix;
    - other Git URLs: the end of the authority (``user@host:`` or ``scheme://host``),
      so the user part of an SSH address is never taken for a version.
    """
    if is_git_url(value):
        auth_end = _authority_end(value)
        m = _GIT_SUFFIX_RE.search(value, auth_end)
        floor = m.end() - 1 if m else auth_end
    else:
        floor = 0
    idx = value.rfind("@")
    return idx if idx > floor else -1


def _parse_git_url(raw: str) -> ParsedReference:
    value = raw.strip()
    at = find_version_separator(value)
    version: str | None = None
    if at >= 0:
        version = value[at + 1 :] or None
        value = value[:at]

    subpath: str | None = None
    m = _GIT_SUFFIX_RE.search(value, _authority_end(value))
    if m:
        subpath = value[m.end() :].strip("/") or None
        url = value[: m.end()]
    else:
        url = value.rstrip("/")

    if _SCHEME_RE.match(url):
        parts = urlsplit(url)
        host = parts.hostname or "local"
        path = parts.path
    else:
        authority, _, path = url.partition(":")
        host = authority.rsplit("@", 1)[-1]

    segments = [s for s in path.strip("/").split("/") if s]
    if any(s in _DOT_SEGMENTS for s in segments):
        raise InvalidGitUrlError(f"Invalid Git URL: {raw}. Path segments cannot be '.' or '..'.")
    if len(segments) < 2:
        raise InvalidGitUrlError(f"Invalid Git URL: {raw}. Expected <host>/<owner>/<repo>[.git].")
    repo = segments[-1]
    if repo.endswith(".git"):
        repo = repo[: -len(".git")]
    if not repo or repo in _DOT_SEGMENTS:
        raise InvalidGitUrlError(f"Invalid Git URL: {raw}. Repository name is {repo!r}.")

    return ParsedReference(
        registry=host,
        owner="/".join(segments[:-1]),
        repo=repo,
        raw=raw,
        subpath=subpath,
        version=version,
        raw_url=url,
    )


def _parse_shorthand(raw: str, default_registry: str) -> ParsedReference:
    remaining = raw.strip()
    registry = default_registry

    m = _REGISTRY_RE.match(remaining)
    if m:
        registry = m.group(1)
        remaining = m.group(2)

    version: str | None = None
    at = find_version_separator(remaining)
    if at >= 0:
        version = remaining[at + 1 :] or None
        remaining = remaining[:at]

    parts = remaining.split("/")
    if len(parts) < 2 or not parts[0].strip() or not parts[1].strip():
        raise InvalidReferenceError(f"Invalid skill reference: {raw}. Expected format: owner/repo[@version]")
    if parts[0].strip() in _DOT_SEGMENTS or parts[1].strip() in _DOT_SEGMENTS:
        raise InvalidReferenceError(f"Invalid skill reference: {raw}. Owner and repo cannot be '.' or '..'.")

    subpath = "/".join(p for p in parts[2:] if p) or None
    return ParsedReference(
        registry=registry,
        owner=parts[0].strip(),
        repo=parts[1].strip(),
        raw=raw,
        subpath=subpath,
        version=version,
    )


def parse_reference(raw: str, *, default_registry: str = DEFAULT_REGISTRY) -> ParsedReference:
    if not isinstance(raw, str) or not raw.strip():
        raise InvalidReferenceError(f"Invalid skill reference: {raw!r}. Expected format: owner/repo[@version]")
    if is_git_url(raw.strip()):
        return _parse_git_url(raw)
    return _parse_shorthand(raw, default_registry)


def registry_base_url(registry: str, registries: Mapping[str, str] | None = None) -> str:
    if registries and registry in registries:
        return registries[registry].rstrip("/")
    if registry in KNOWN_REGISTRIES:
        return KNOWN_REGISTRIES[registry]
    return f"https://{registry}"


def build_repo_url(parsed: ParsedReference, registries: Mapping[str, str] | None = None) -> str:
    if parsed.raw_url:
        return parsed.raw_url
    return f"{registry_base_url(parsed.registry, registries)}/{parsed.owner}/{parsed.repo}"
