from enum import StrEnum
from typing import ClassVar

from pydantic import BaseModel, ConfigDict, Field


class Severity(StrEnum):
    ERROR = "error"
    WARNING = "warning"
    INFORMATION = "information"


class DiagnosticCode(StrEnum):
    SYNTAX = "syntax"
    UNKNOWN_QUALIFIER = "unknown-qualifier"
    INVALID_VALUE = "invalid-value"
    PR_ONLY = "pr-only"
    UNKNOWN_VARIABLE = "unknown-variable"
    CIRCULAR_REFERENCE = "circular-reference"
    INVALID_SORT = "invalid-sort"
    DUPLICATE_SORT = "duplicate-sort"


class SourceRange(BaseModel):
    """A half-open `[start, end)` range of character offsets into a document."""

    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    start: int = Field(description="The offset of the first character.")
    end: int = Field(description="The offset just past the last character.")

    def contains(self, offset: int) -> bool:
        return self.start <= offset <= self.end


class Diagnostic(BaseModel):
    model_config: ClassVar[ConfigDict] = ConfigDict(frozen=True)

    range: SourceRange = Field(description="The range of the document the diagnostic applies to.")
    severity: Severity = Field(default=Severity.ERROR, description="How serious the problem is.")
    message: str = Field(description="A human readable description of the problem.")
    code: DiagnosticCode = Field(description="A short machine readable identifier of the problem.")

    @classmethod
    def error(cls, start: int, end: int, message: str, code: DiagnosticCode) -> "Diagnostic":
        return cls(range=SourceRange(start=start, end=end), severity=Severity.ERROR, message=message, code=code)

    @classmethod
    def warning(cls, start: int, end: int, message: str, code: DiagnosticCode) -> "Diagnostic":
        return cls(range=SourceRange(start=start, end=end), severity=Severity.WARNING, message=message, code=code)
