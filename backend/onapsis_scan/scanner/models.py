from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
import re
import sys
from typing import List, Optional, Pattern, Sequence, Tuple

from pathspec.patterns import GitWildMatchPattern
from pydantic import BaseModel, ConfigDict, Field, field_validator

_DATACLASS_KWARGS = {"slots": True} if sys.version_info >= (3, 10) else {}

ARCHIVE_NAME = "workspace.zip"

_DESCENDANT_TAIL = re.compile(r"\(\?:\(\?P<\w+>/\)\.\*\)\?\$$")

DEFAULT_INCLUDE_PATTERNS: Tuple[str, ...] = (
    "**/*.js",
    "**/*.json",
)

DEFAULT_EXCLUDE_PATTERNS: Tuple[str, ...] = (
    "**/.git/**",
    "**/.pipeline/**",
    "**/.gitignore",
    "**/*.log",
    ARCHIVE_NAME,
)


def _compile(patterns: Sequence[str]) -> Tuple[Tuple[str, Pattern[str]], ...]:
    compiled = []
    for pattern in patterns:
        regex, _ = GitWildMatchPattern.pattern_to_regex(pattern)
        # gitwildmatch lets "*.js" match everything below a "lib.js/" directory;
        # globs here must match the entry's own path only.
        regex = _DESCENDANT_TAIL.sub("$", regex)
        compiled.append((pattern, re.compile(regex)))
    return tuple(compiled)


def _candidates(path: str, is_dir: bool) -> Tuple[str, ...]:
    # Directories are also tried with a trailing slash so "**/name/**" matches the directory itself.
    path = path.replace("\\", "/").strip("/")
    return (path, f"{path}/") if is_dir else (path,)


def _first_match(specs: Tuple[Tuple[str, Pattern[str]], ...], path: str, is_dir: bool) -> Optional[str]:
    candidates = _candidates(path, is_dir)
    for pattern, regex in specs:
        if any(regex.match(candidate) for candidate in candidates):
            return pattern
    return None


@dataclass(frozen=True, **_DATACLASS_KWARGS)
class ArchivePatterns:
    """
    Ordered inclusion and exclusion globs for building the workspace archive.

    Paths are matched relative to the parent of the archived root. Exclusion
    is checked first and always wins over inclusion.
    """

    include: Tuple[str, ...] = DEFAULT_INCLUDE_PATTERNS
    exclude: Tuple[str, ...] = DEFAULT_EXCLUDE_PATTERNS
    _include_specs: Tuple[Tuple[str, Pattern[str]], ...] = field(init=False, repr=False, compare=False)
    _exclude_specs: Tuple[Tuple[str, Pattern[str]], ...] = field(init=False, repr=False, compare=False)

    def __post_init__(self) -> None:
        object.__setattr__(self, "include", tuple(self.include))
        object.__setattr__(self, "exclude", tuple(self.exclude))
        object.__setattr__(self, "_include_specs", _compile(self.include))
        object.__setattr__(self, "_exclude_specs", _compile(self.exclude))

    def excluded_by(self, path: str, is_dir: bool = False) -> Optional[str]:
        """Return the first exclusion pattern matching ``path``, if any."""
        return _first_match(self._exclude_specs, path, is_dir)

    def is_included(self, path: str, is_dir: bool = False) -> bool:
        return _first_match(self._include_specs, path, is_dir) is not None

    def with_exclusions(self, *patterns: str) -> "ArchivePatterns":
        extra = tuple(pattern for pattern in patterns if pattern not in self.exclude)
        if not extra:
            return self
        return ArchivePatterns(include=self.include, exclude=self.exclude + extra)


DEFAULT_PATTERNS = ArchivePatterns()


@dataclass(**_DATACLASS_KWARGS)
class ArchiveSummary:
    path: Path
    files: int = 0
    directories: int = 0
    bytes: int = 0


class ScanInformation(BaseModel):
    model_config = ConfigDict(frozen=True)

    name: str = "scenario"
    description: str = "a scan with extracted source"


class ScanAsset(BaseModel):
    model_config = ConfigDict(frozen=True)

    file_format: str = "ZIP"
    # The service expects the recursive flag as a string.
    recursive: str = "true"
    language: str


class ScanConfig(BaseModel):
    """JSON envelope sent in the ``ScanConfig`` form field of a scan upload."""

    model_config = ConfigDict(frozen=True)

    engine_type: str = "FILE"
    scan_information: ScanInformation = Field(default_factory=ScanInformation)
    asset: ScanAsset
    configuration: dict = Field(default_factory=dict)
    scan_scope: dict = Field(default_factory=dict)

    @classmethod
    def for_language(
        cls,
        language: str,
        *,
        name: Optional[str] = None,
        description: Optional[str] = None,
    ) -> "ScanConfig":
        information = ScanInformation()
        if name or description:
            information = ScanInformation(
                name=name or information.name,
                description=description or information.description,
            )
        return cls(scan_information=information, asset=ScanAsset(language=language))


class ScanMessage(BaseModel):
    model_config = ConfigDict(frozen=True)

    sequence: int
    timestamp: Optional[str] = None
    level: str
    message_id: str
    param1: Optional[str] = None
    param2: Optional[str] = None
    param3: Optional[str] = None
    param4: Optional[str] = None

    @property
    def params(self) -> List[str]:
        return [p for p in (self.param1, self.param2, self.param3, self.param4) if p is not None]

    def describe(self) -> str:
        text = f"#{self.sequence} {self.level} {self.message_id}"
        if self.params:
            text += f" ({', '.join(self.params)})"
        return text


class ScanJobResult(BaseModel):
    model_config = ConfigDict(frozen=True)

    # job_id and timestamp are only present on success, result_code only on failure.
    job_id: Optional[str] = None
    result_code: Optional[int] = None
    timestamp: Optional[str] = None
    messages: List[ScanMessage] = Field(default_factory=list)

    @field_validator("messages", mode="before")
    @classmethod
    def _null_messages(cls, value):
        return [] if value is None else value


class ScanResponse(BaseModel):
    """Response body of ``POST /cca/v1.0/scan/file``."""

    model_config = ConfigDict(frozen=True)

    success: bool
    result: ScanJobResult = Field(default_factory=ScanJobResult)
