"""Custom exceptions for zettel-rank.

Provides a structured exception hierarchy with error codes and
machine-readable error information. Only corpus-level failures,
invalid filter expressions and note-creation failures ever reach a
caller; per-file problems are recorded as diagnostics instead.
"""
from enum import Enum
from pathlib import Path
from typing import Any, Dict, Optional, Union


class ErrorCode(Enum):
    """Error codes for machine-readable error identification."""

    # Note errors (1xxx)
    NOTE_NOT_FOUND = 1001
    NOTE_PARSE_FAILED = 1002
    NOTE_ALREADY_EXISTS = 1003
    NOTE_UNREADABLE = 1004

    # Corpus errors (4xxx)
    CORPUS_MISSING = 4001
    CORPUS_NOT_A_DIRECTORY = 4002
    CORPUS_UNREADABLE = 4003
    STORAGE_WRITE_FAILED = 4004

    # Query errors (5xxx)
    QUERY_INVALID_SYNTAX = 5001

    # Template errors (6xxx)
    TEMPLATE_INVALID = 6001
    TEMPLATE_MISSING_VARIABLE = 6002

    # Validation errors (7xxx)
    VALIDATION_FAILED = 7001
    PATH_TRAVERSAL_DETECTED = 7005


class ZettelkastenError(Exception):
    """Base exception for all zettel-rank errors.

    Attributes:
        message: Human-readable error message
        code: Machine-readable error code
        details: Additional context about the error
    """

    def __init__(
        self,
        message: str,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED,
        details: Optional[Dict[str, Any]] = None
    ):
        self.message = message
        self.code = code
        self.details = details or {}
        super().__init__(message)

    def to_dict(self) -> Dict[str, Any]:
        """Convert exception to a dictionary for serialization."""
        return {
            "error": self.__class__.__name__,
            "code": self.code.value,
            "code_name": self.code.name,
            "message": self.message,
            "details": self.details
        }

    def __str__(self) -> str:
        if self.details:
            detail_str = ", ".join(f"{k}={v}" for k, v in self.details.items())
            return f"[{self.code.name}] {self.message} ({detail_str})"
        return f"[{self.code.name}] {self.message}"


class CorpusError(ZettelkastenError):
    """Raised when the notes directory cannot be used at all.

    This is the only fatal error of a run: nothing can be searched.
    """

    def __init__(
        self,
        message: str,
        directory: Optional[Union[str, Path]] = None,
        code: ErrorCode = ErrorCode.CORPUS_MISSING,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if directory is not None:
            details["directory"] = str(directory)
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.directory = Path(directory) if directory is not None else None
        self.original_error = original_error


class NoteParseError(ZettelkastenError):
    """Raised when a single note file cannot be parsed.

    The corpus loader catches this, excludes the file and records a
    diagnostic; one broken note never blocks the rest of the corpus.
    """

    def __init__(
        self,
        message: str,
        path: Optional[Union[str, Path]] = None,
        code: ErrorCode = ErrorCode.NOTE_PARSE_FAILED,
        original_error: Optional[Exception] = None
    ):
        details: Dict[str, Any] = {}
        if path is not None:
            details["path_hint"] = Path(path).name
        if original_error:
            details["original_error"] = str(original_error)[:200]

        super().__init__(message, code=code, details=details)
        self.path = Path(path) if path is not None else None
        self.original_error = original_error


class QueryError(ZettelkastenError):
    """Raised for syntactically invalid filter expressions."""

    def __init__(
        self,
        message: str,
        expression: Optional[str] = None,
        position: Optional[int] = None,
        code: ErrorCode = ErrorCode.QUERY_INVALID_SYNTAX
    ):
        details: Dict[str, Any] = {}
        if expression is not None:
            details["expression"] = expression[:100]  # Truncate for safety
        if position is not None:
            details["position"] = position

        super().__init__(message, code=code, details=details)
        self.expression = expression
        self.position = position


class NoteExistsError(ZettelkastenError):
    """Raised when note creation would overwrite an existing file."""

    def __init__(self, path: Union[str, Path], message: Optional[str] = None):
        super().__init__(
            message or f"Note '{Path(path).name}' already exists",
            code=ErrorCode.NOTE_ALREADY_EXISTS,
            details={"path_hint": Path(path).name}
        )
        self.path = Path(path)


class TemplateError(ZettelkastenError):
    """Raised when a note template cannot be rendered."""

    def __init__(
        self,
        message: str,
        variable: Optional[str] = None,
        code: ErrorCode = ErrorCode.TEMPLATE_INVALID
    ):
        details: Dict[str, Any] = {}
        if variable:
            details["variable"] = variable

        super().__init__(message, code=code, details=details)
        self.variable = variable


class ValidationError(ZettelkastenError):
    """Raised for general validation errors."""

    def __init__(
        self,
        message: str,
        field: Optional[str] = None,
        value: Optional[Any] = None,
        code: ErrorCode = ErrorCode.VALIDATION_FAILED
    ):
        details: Dict[str, Any] = {}
        if field:
            details["field"] = field
        if value is not None:
            details["value"] = str(value)[:100]

        super().__init__(message, code=code, details=details)
        self.field = field
        self.value = value
