"""Error types and centralized error handling for the deepcrawl system."""

import traceback
from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Union

from .logging import get_logger


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class ErrorCategory(str, Enum):
    """Categories of errors that can occur in the system."""
    VALIDATION = "validation"
    NETWORK = "network"
    TIMEOUT = "timeout"
    PARSING = "parsing"
    JOB = "job"
    RATE_LIMIT = "rate_limit"
    CONFIGURATION = "configuration"
    SYSTEM = "system"


class ErrorSeverity(str, Enum):
    """Severity levels for errors."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"
    CRITICAL = "critical"


@dataclass
class ErrorContext:
    """Context information for error handling."""
    operation: str
    url: Optional[str] = None
    job_id: Optional[str] = None
    metadata: Dict[str, Any] = field(default_factory=dict)
    timestamp: datetime = field(default_factory=_utcnow)

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary."""
        return {
            "operation": self.operation,
            "url": self.url,
            "job_id": self.job_id,
            "metadata": self.metadata,
            "timestamp": self.timestamp.isoformat() if self.timestamp else None,
        }


@dataclass
class ErrorInfo:
    """Detailed error information."""
    error_type: str
    message: str
    category: ErrorCategory
    severity: ErrorSeverity
    code: Optional[str] = None
    details: Dict[str, Any] = field(default_factory=dict)
    context: Optional[ErrorContext] = None
    traceback: Optional[str] = None
    timestamp: datetime = field(default_factory=_utcnow)


class CrawlerError(Exception):
    """Base exception class for all deepcrawl errors.

    ``http_status`` is the status code the HTTP front-end answers with
    when the error escapes a request handler.
    """

    http_status: int = 500

    def __init__(
        self,
        message: str,
        category: ErrorCategory = ErrorCategory.SYSTEM,
        severity: ErrorSeverity = ErrorSeverity.MEDIUM,
        error_code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
        context: Optional[ErrorContext] = None,
    ):
        super().__init__(message)
        self.message = message
        self.category = category
        self.severity = severity
        self.error_code = error_code
        self.details = details
        self.context = context
        self.timestamp = _utcnow()

    def _add_detail(self, key: str, value: Any) -> None:
        if value is None:
            return
        if self.details is None:
            self.details = {}
        self.details[key] = value

    def to_error_info(self) -> ErrorInfo:
        """Convert exception to ErrorInfo."""
        return ErrorInfo(
            error_type=self.__class__.__name__,
            message=self.message,
            category=self.category,
            severity=self.severity,
            code=self.error_code,
            details=self.details or {},
            context=self.context,
            traceback=traceback.format_exc(),
            timestamp=self.timestamp,
        )


class ValidationError(CrawlerError):
    """Error raised when input validation fails."""

    http_status = 400

    def __init__(self, message: str, field: Optional[str] = None, **kwargs):
        kwargs.setdefault("error_code", "VALIDATION_ERROR")
        super().__init__(
            message,
            category=ErrorCategory.VALIDATION,
            severity=ErrorSeverity.LOW,
            **kwargs
        )
        self.field = field
        self._add_detail("field", field)


class InvalidUrlError(ValidationError):
    """Error raised when a URL cannot be parsed or resolved."""

    def __init__(self, message: str, url: Optional[Any] = None, **kwargs):
        super().__init__(message, field="url", error_code="INVALID_URL", **kwargs)
        self.url = url
        self._add_detail("url", url if url is None else str(url))


class NetworkError(CrawlerError):
    """Error raised when network operations fail."""

    def __init__(
        self,
        message: str,
        status_code: Optional[int] = None,
        url: Optional[str] = None,
        **kwargs
    ):
        kwargs.setdefault("category", ErrorCategory.NETWORK)
        kwargs.setdefault("error_code", "NETWORK_ERROR")
        super().__init__(message, severity=ErrorSeverity.MEDIUM, **kwargs)
        self.status_code = status_code
        self.url = url
        self._add_detail("status_code", status_code)
        self._add_detail("url", url)


class FetchError(NetworkError):
    """Error raised when a page cannot be fetched.

    Covers connection failures, non-2xx responses, non-HTML content,
    oversized bodies and robots.txt blocks.
    """

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("error_code", "FETCH_ERROR")
        super().__init__(message, **kwargs)


class FetchTimeoutError(FetchError):
    """Error raised when a fetch exceeds its timeout."""

    def __init__(self, message: str, timeout: Optional[float] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.TIMEOUT,
            error_code="FETCH_TIMEOUT",
            **kwargs
        )
        self.timeout = timeout
        self._add_detail("timeout_ms", timeout)


class ParseError(CrawlerError):
    """Error raised when HTML cannot be parsed."""

    def __init__(self, message: str, url: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.PARSING,
            severity=ErrorSeverity.MEDIUM,
            error_code="PARSE_ERROR",
            **kwargs
        )
        self.url = url
        self._add_detail("url", url)


class JobNotFoundError(CrawlerError):
    """Error raised when a job id is unknown."""

    http_status = 404

    def __init__(self, job_id: str, **kwargs):
        super().__init__(
            f"Job not found: {job_id}",
            category=ErrorCategory.JOB,
            severity=ErrorSeverity.LOW,
            error_code="JOB_NOT_FOUND",
            **kwargs
        )
        self.job_id = job_id
        self._add_detail("job_id", job_id)


class JobNotReadyError(CrawlerError):
    """Error raised when a result is requested before the job completed."""

    http_status = 409

    def __init__(self, job_id: str, status: str, **kwargs):
        super().__init__(
            f"Job {job_id} is not completed (status: {status})",
            category=ErrorCategory.JOB,
            severity=ErrorSeverity.LOW,
            error_code="JOB_NOT_READY",
            **kwargs
        )
        self.job_id = job_id
        self.status = status
        self._add_detail("job_id", job_id)
        self._add_detail("status", status)


class EngineFatalError(CrawlerError):
    """Error raised when a crawl cannot start at all."""

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.SYSTEM,
            severity=ErrorSeverity.HIGH,
            error_code="ENGINE_FATAL",
            **kwargs
        )


class RateLimitError(CrawlerError):
    """Error raised when queued rate-limited work is dropped."""

    http_status = 429

    def __init__(self, message: str, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.RATE_LIMIT,
            severity=ErrorSeverity.MEDIUM,
            error_code="RATE_LIMIT_ERROR",
            **kwargs
        )


class ConfigurationError(CrawlerError):
    """Error raised when configuration is invalid."""

    def __init__(self, message: str, config_key: Optional[str] = None, **kwargs):
        super().__init__(
            message,
            category=ErrorCategory.CONFIGURATION,
            severity=ErrorSeverity.HIGH,
            error_code="CONFIGURATION_ERROR",
            **kwargs
        )
        self._add_detail("config_key", config_key)


class ErrorHandler:
    """Centralized error tracking and logging."""

    def __init__(self, max_recent_errors: int = 100):
        self.error_count: int = 0
        self.recent_errors: List[Dict[str, Any]] = []
        self.max_recent_errors = max_recent_errors
        self.error_counts: Dict[str, int] = {}
        self.last_errors: Dict[str, datetime] = {}

    def handle_error(
        self,
        error: Union[Exception, ErrorInfo],
        context: Optional[ErrorContext] = None
    ) -> ErrorInfo:
        """Handle and categorize an error.

        Args:
            error: Exception or ErrorInfo to handle
            context: Optional error context

        Returns:
            ErrorInfo with details
        """
        if isinstance(error, ErrorInfo):
            error_info = error
        elif isinstance(error, CrawlerError):
            error_info = error.to_error_info()
            if context and not error_info.context:
                error_info.context = context
        else:
            error_info = self._categorize_generic_error(error, context)

        self._track_error(error_info)
        self._log_error(error_info)

        return error_info

    def _categorize_generic_error(
        self,
        error: Exception,
        context: Optional[ErrorContext] = None
    ) -> ErrorInfo:
        error_type = error.__class__.__name__
        message = str(error) or error_type

        category = ErrorCategory.SYSTEM
        severity = ErrorSeverity.MEDIUM

        lowered = message.lower()
        if "timeout" in lowered or "Timeout" in error_type:
            category = ErrorCategory.TIMEOUT
        elif "connection" in lowered or "ConnectionError" in error_type:
            category = ErrorCategory.NETWORK
        elif isinstance(error, (ValueError, TypeError)):
            category = ErrorCategory.VALIDATION
            severity = ErrorSeverity.LOW
        elif isinstance(error, MemoryError):
            severity = ErrorSeverity.CRITICAL

        return ErrorInfo(
            error_type=error_type,
            message=message,
            category=category,
            severity=severity,
            context=context,
            traceback=traceback.format_exc(),
        )

    def _track_error(self, error_info: ErrorInfo) -> None:
        self.error_count += 1

        error_record = {
            "error_type": error_info.error_type,
            "message": error_info.message,
            "category": error_info.category.value,
            "severity": error_info.severity.value,
            "context": error_info.context.to_dict() if error_info.context else None,
            "timestamp": error_info.timestamp.isoformat(),
        }

        # Newest first
        self.recent_errors.insert(0, error_record)
        if len(self.recent_errors) > self.max_recent_errors:
            self.recent_errors = self.recent_errors[:self.max_recent_errors]

        error_key = f"{error_info.category.value}:{error_info.error_type}"
        self.error_counts[error_key] = self.error_counts.get(error_key, 0) + 1
        self.last_errors[error_key] = error_info.timestamp

    def _log_error(self, error_info: ErrorInfo) -> None:
        """Log error based on severity."""
        logger = get_logger(__name__)
        log_message = f"{error_info.error_type}: {error_info.message}"

        if error_info.context:
            context_info = f" (operation: {error_info.context.operation}"
            if error_info.context.url:
                context_info += f", url: {error_info.context.url}"
            if error_info.context.job_id:
                context_info += f", job: {error_info.context.job_id}"
            context_info += ")"
            log_message += context_info

        if error_info.severity == ErrorSeverity.CRITICAL:
            logger.critical(log_message)
        elif error_info.severity in (ErrorSeverity.HIGH, ErrorSeverity.MEDIUM):
            logger.error(log_message)
        else:
            logger.info(log_message)

        if error_info.traceback and error_info.severity in (ErrorSeverity.HIGH, ErrorSeverity.CRITICAL):
            logger.debug(f"Traceback for {error_info.error_type}:\n{error_info.traceback}")

    def get_error_statistics(self) -> Dict[str, Any]:
        """Get error statistics grouped by type and operation."""
        error_types: Dict[str, int] = {}
        operations: Dict[str, int] = {}

        for error_record in self.recent_errors:
            error_type = error_record["error_type"]
            error_types[error_type] = error_types.get(error_type, 0) + 1

            if error_record["context"] and error_record["context"]["operation"]:
                operation = error_record["context"]["operation"]
                operations[operation] = operations.get(operation, 0) + 1

        return {
            "total_errors": self.error_count,
            "error_counts": dict(self.error_counts),
            "error_types": error_types,
            "operations": operations,
        }

    def clear_errors(self) -> None:
        """Clear error history."""
        self.error_count = 0
        self.recent_errors.clear()
        self.error_counts.clear()
        self.last_errors.clear()


# Global error handler instance
_error_handler: Optional[ErrorHandler] = None


def get_error_handler() -> ErrorHandler:
    """Get the global error handler instance."""
    global _error_handler
    if _error_handler is None:
        _error_handler = ErrorHandler()
    return _error_handler


def handle_error(
    error: Union[Exception, ErrorInfo, str],
    context: Optional[ErrorContext] = None
) -> ErrorInfo:
    """Convenience function to handle an error."""
    if isinstance(error, str):
        error = CrawlerError(error)

    if context is None:
        context = ErrorContext(operation="unknown")

    return get_error_handler().handle_error(error, context)
