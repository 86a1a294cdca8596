from __future__ import annotations

import re
from dataclasses import dataclass
from functools import cmp_to_key
from typing import Iterable, Union

from .errors import ResolveError
from .git import DEFAULT_BRANCH, GitTag


@dataclass(frozen=True)
class Exact:
    tag: str


@dataclass(frozen=True)
class Latest:
    pass


@dataclass(frozen=True)
class Range:
    expr: str


@dataclass(frozen=True)
class Branch:
    name: str = DEFAULT_BRANCH


@dataclass(frozen=True)
class Commit:
    sha: str


VersionSpec = Union[Exact, Latest, Range, Branch, Commit]


def parse_version_spec(raw: str | None) -> VersionSpec:
    """
    Classify a raw version string. Never fails.

    - ``None`` / ``""``  -> Branch("main")
    - ``latest``         -> Latest
    - ``branch:<name>``  -> Branch
    - ``commit:<sha>``   -> Commit
    - ``^ ~ > <`` prefix -> Range
    - anything else      -> Exact (a tag name)
    """
    if not raw:
        return Branch(DEFAULT_BRANCH)
    if raw == "latest":
        return Latest()
    if raw.startswith("branch:"):
        return Branch(raw[len("branch:") :] or DEFAULT_BRANCH)
    if raw.startswith("commit:"):
        return Commit(raw[len("commit:") :])
    if raw[0] in "^~><":
        return Range(raw)
    return Exact(raw)


def strip_v(tag: str) -> str:
    return tag[1:] if tag.startswith("v") else tag


_LEADING_DIGITS_RE = re.compile(r"^\d+")


def coerce_version(tag: str) -> tuple[int, ...]:
    """Best-effort numeric key for any tag name; non-numeric segments count as 0."""
    nums: list[int] = []
    for seg in strip_v(tag).split("."):
        m = _LEADING_DIGITS_RE.match(seg.strip())
        nums.append(int(m.group(0)) if m else 0)
    while nums and nums[-1] == 0:
        nums.pop()
    return tuple(nums)


def _compare_tags(a: GitTag, b: GitTag) -> int:
    va, vb = strip_v(a.name), strip_v(b.name)
    if is_semver(va) and is_semver(vb):
        result = compare_versions(va, vb)
    else:
        ka, kb = coerce_version(a.name), coerce_version(b.name)
        result = (ka > kb) - (ka < kb)
    if result == 0:
        # v1.0 vs 1.0: same version, the greater tag name wins.
        result = (a.name > b.name) - (a.name < b.name)
    return result


def select_latest(tags: Iterable[GitTag]) -> GitTag | None:
    """Highest tag by semantic version; tags that are not semver fall back to coerce_version."""
    return max(tags, key=cmp_to_key(_compare_tags), default=None)


_SEMVER_RE = re.compile(r"^(\d+(?:\.\d+)*)(?:-([0-9A-Za-z.\-]+))?(?:\+[0-9A-Za-z.\-]+)?$")


def _split_version(version: str) -> tuple[tuple[int, ...], tuple[str, ...] | None]:
    m = _SEMVER_RE.match(version.strip()) if isinstance(version, str) else None
    if not m:
        raise ValueError(f"Unsupported version format: {version!r}")
    nums = [int(p) for p in m.group(1).split(".")]
    nums.extend([0] * (3 - len(nums)))
    prerelease = tuple(p for p in m.group(2).split(".") if p) if m.group(2) else None
    return tuple(nums), prerelease


def is_semver(version: str) -> bool:
    try:
        _split_version(version)
    except ValueError:
        return False
    return True


def _version_key(version: str) -> tuple:
    core, prerelease = _split_version(version)
    if prerelease is None:
        return core, (1,)
    # Numeric identifiers sort before alphanumeric ones; a shorter prefix sorts first.
    ids = tuple((0, int(p), "") if p.isdigit() else (1, 0, p) for p in prerelease)
    return core, (0, ids)


def compare_versions(a: str, b: str) -> int:
    try:
        ka, kb = _version_key(a), _version_key(b)
    except ValueError:
        return (a > b) - (a < b)
    return (ka > kb) - (ka < kb)


def _expand_caret(spec: str) -> list[str]:
    base = strip_v(spec[1:].strip())
    major, minor, patch = _split_version(base)[0][:3]
    lower = f">={major}.{minor}.{patch}"
    if major > 0:
        upper = f"<{major + 1}.0.0"
    elif minor > 0:
        upper = f"<0.{minor + 1}.0"
    else:
        upper = f"<0.0.{patch + 1}"
    return [lower, upper]


def _expand_tilde(spec: str) -> list[str]:
    base = strip_v(spec[1:].strip())
    major, minor, patch = _split_version(base)[0][:3]
    lower = f">={major}.{minor}.{patch}"
    upper = f"<{major}.{minor + 1}.0"
    return [lower, upper]


def _split_specifier(specifier: str) -> list[str]:
    s = specifier.strip()
    if not s:
        return ["*"]
    s = s.replace(",", " ")
    tokens = [t for t in s.split() if t]
    if not tokens:
        return ["*"]
    out: list[str] = []
    for token in tokens:
        if token.startswith("^"):
            try:
                out.extend(_expand_caret(token))
            except ValueError as e:
                raise ResolveError(f"Invalid version range: {token!r}") from e
            continue
        if token.startswith("~"):
            try:
                out.extend(_expand_tilde(token))
            except ValueError as e:
                raise ResolveError(f"Invalid version range: {token!r}") from e
            continue
        out.append(token)
    return out


_COMPARATOR_RE = re.compile(r"^(>=|<=|>|<|==|=)?\s*v?([0-9][0-9A-Za-z.\-+]*)$")


def _satisfies_group(version: str, group: str) -> bool:
    tokens = _split_specifier(group)
    has_prerelease_bound = False
    for token in tokens:
        t = token.strip()
        if t in ("*", "x", "X"):
            continue

        m = _COMPARATOR_RE.match(t)
        if not m:
            raise ResolveError(f"Invalid version range: {token!r}")

        op = m.group(1) or "="
        rhs = m.group(2)
        if "-" in rhs.split("+", 1)[0]:
            has_prerelease_bound = True
        cmp = compare_versions(version, rhs)

        if op in ("=", "=="):
            if cmp != 0:
                return False
            continue
        if op == ">":
            if cmp <= 0:
                return False
            continue
        if op == ">=":
            if cmp < 0:
                return False
            continue
        if op == "<":
            if cmp >= 0:
                return False
            continue
        if op == "<=":
            if cmp > 0:
                return False
            continue
        return False

    # Pre-releases only match ranges that name a pre-release themselves.
    if _split_version(version)[1] is not None and not has_prerelease_bound:
        return False
    return True


def version_satisfies(version: str, specifier: str) -> bool:
    if not is_semver(version):
        return False
    return any(_satisfies_group(version, group) for group in specifier.split("||"))
