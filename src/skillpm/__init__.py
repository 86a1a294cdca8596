from ._version import __version__
from .cache import CacheEntry, CacheKey, CacheStore
from .errors import (
    CacheError,
    InvalidGitUrlError,
    InvalidReferenceError,
    LockError,
    ManifestError,
    NoMatchingVersionError,
    ParseError,
    ResolveError,
    SkillpmError,
    SubpathNotFoundError,
    TransportError,
)
from .git import GitTag, GitTransport, SubprocessGit
from .lockfile import LockedSkill, LockStore
from .manager import BatchResult, InstalledSkill, InstallResult, OutdatedSkill, SkillManager
from .manifest import ManifestStore
from .references import ParsedReference, build_repo_url, parse_reference
from .resolver import GitResolver, ResolvedReference, ResolvedVersion, VersionResolver
from .versions import Branch, Commit, Exact, Latest, Range, VersionSpec, parse_version_spec

__all__ = [
    "__version__",
    "BatchResult",
    "Branch",
    "CacheEntry",
    "CacheError",
    "CacheKey",
    "CacheStore",
    "Commit",
    "Exact",
    "GitResolver",
    "GitTag",
    "GitTransport",
    "InstallResult",
    "InstalledSkill",
    "InvalidGitUrlError",
    "InvalidReferenceError",
    "Latest",
    "LockError",
    "LockStore",
    "LockedSkill",
    "ManifestError",
    "ManifestStore",
    "NoMatchingVersionError",
    "OutdatedSkill",
    "ParseError",
    "ParsedReference",
    "Range",
    "ResolveError",
    "ResolvedReference",
    "ResolvedVersion",
    "SkillManager",
    "SkillpmError",
    "SubpathNotFoundError",
    "SubprocessGit",
    "TransportError",
    "VersionResolver",
    "VersionSpec",
    "build_repo_url",
    "parse_reference",
    "parse_version_spec",
]
