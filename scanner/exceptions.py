"""Scanner exception classes."""

from typing import Optional


class ScannerError(Exception):
    """Base exception for all scanner errors."""


class ConfigurationError(ScannerError):
    """Raised when required settings are missing or invalid."""


class RecordValidationError(ScannerError, ValueError):
    """Raised when repository or permission data violates the record shape."""


class FetchError(ScannerError):
    """Raised when the GitHub API cannot deliver the requested data."""

    def __init__(self, message: str, status_code: Optional[int] = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class EvaluationError(ScannerError):
    """Raised when a policy cannot be evaluated against a record."""


class OracleCompileError(EvaluationError):
    """The policy document failed to parse or compile."""


class OracleRuntimeError(EvaluationError):
    """The policy engine failed while evaluating."""


class OracleTimeoutError(OracleRuntimeError):
    """The policy engine did not answer within the configured timeout."""


class MalformedResultError(EvaluationError):
    """The policy engine returned a result of an unexpected shape."""


class RemoteScanError(ScannerError):
    """Raised when the scan service cannot be reached or answers with an error."""
