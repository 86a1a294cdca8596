from __future__ import annotations


class SkillpmError(RuntimeError):
    pass


class ParseError(SkillpmError):
    pass


class InvalidReferenceError(ParseError):
    pass


class InvalidGitUrlError(ParseError):
    pass


class ResolveError(SkillpmError):
    pass


class NoMatchingVersionError(ResolveError):
    pass


class TransportError(SkillpmError):
    def __init__(self, message: str, *, command: list[str] | None = None, stderr: str = "") -> None:
        super().__init__(message)
        self.command = list(command or [])
        self.stderr = stderr


class CacheError(SkillpmError):
    pass


class SubpathNotFoundError(CacheError):
    pass


class LockError(SkillpmError):
    pass


class LockParseError(LockError):
    pass


class ManifestError(SkillpmError):
    pass


class ManifestParseError(ManifestError):
    pass
