from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Mapping

from .errors import NoMatchingVersionError, ResolveError
from .git import GitTransport
from .references import DEFAULT_REGISTRY, ParsedReference, build_repo_url, parse_reference
from .versions import (
    Branch,
    Commit,
    Exact,
    Latest,
    Range,
    VersionSpec,
    parse_version_spec,
    select_latest,
    strip_v,
    version_satisfies,
)

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class ResolvedVersion:
    ref: str
    commit: str | None = None


@dataclass(frozen=True)
class ResolvedReference:
    parsed: ParsedReference
    repo_url: str
    ref: str
    commit: str | None = None


class VersionResolver:
    """Turns a VersionSpec into one concrete Git ref, asking the remote only when needed."""

    def __init__(self, git: GitTransport) -> None:
        self.git = git

    def resolve(self, repo_url: str, spec: VersionSpec) -> ResolvedVersion:
        if isinstance(spec, Exact):
            return ResolvedVersion(ref=spec.tag)

        if isinstance(spec, Latest):
            best = select_latest(self.git.list_remote_tags(repo_url))
            if best is None:
                branch = self.git.get_default_branch(repo_url)
                logger.debug("No tags on %s, using default branch %s", repo_url, branch)
                return ResolvedVersion(ref=branch)
            return ResolvedVersion(ref=best.name, commit=best.commit)

        if isinstance(spec, Range):
            tags = self.git.list_remote_tags(repo_url)
            matching = [t for t in tags if version_satisfies(strip_v(t.name), spec.expr)]
            best = select_latest(matching)
            if best is None:
                raise NoMatchingVersionError(f"No version found matching {spec.expr} for {repo_url}")
            return ResolvedVersion(ref=best.name, commit=best.commit)

        if isinstance(spec, Branch):
            return ResolvedVersion(ref=spec.name)

        if isinstance(spec, Commit):
            return ResolvedVersion(ref=spec.sha, commit=spec.sha)

        raise ResolveError(f"Unknown version spec: {spec!r}")


class GitResolver:
    def __init__(
        self,
        *,
        git: GitTransport,
        default_registry: str = DEFAULT_REGISTRY,
        registries: Mapping[str, str] | None = None,
    ) -> None:
        self.default_registry = default_registry
        self.registries = dict(registries or {})
        self.versions = VersionResolver(git)

    def parse(self, raw: str) -> ParsedReference:
        return parse_reference(raw, default_registry=self.default_registry)

    def repo_url(self, parsed: ParsedReference) -> str:
        return build_repo_url(parsed, self.registries)

    def resolve_version(self, repo_url: str, spec: VersionSpec) -> ResolvedVersion:
        return self.versions.resolve(repo_url, spec)

    def resolve(self, raw: str) -> ResolvedReference:
        parsed = self.parse(raw)
        repo_url = self.repo_url(parsed)
        resolved = self.resolve_version(repo_url, parse_version_spec(parsed.version))
        logger.debug("Resolved %s to %s (%s)", raw, resolved.ref, resolved.commit or "commit unknown")
        return ResolvedReference(parsed=parsed, repo_url=repo_url, ref=resolved.ref, commit=resolved.commit)
