"""
Standardized exception hierarchy for tracker-agent
Provides rich context, consistent logging, and user-friendly error messages
"""

from datetime import datetime, timezone
from typing import Optional, Dict, Any
from uuid import uuid4
import logging

logger = logging.getLogger(__name__)


class TrackerAgentError(Exception):
    """
    Base exception for all tracker-agent errors

    Provides:
    - Automatic timestamping
    - Request ID for tracing
    - User-friendly messages
    - Structured context
    - Automatic logging

    Example:
        raise TrackerAgentError(
            message="Failed to save record",
            operation="add_record",
            context={"tracker": "nutrition"}
        )
    """

    def __init__(
        self,
        message: str,
        request_id: Optional[str] = None,
        operation: Optional[str] = None,
        context: Optional[Dict[str, Any]] = None,
        cause: Optional[Exception] = None,
        user_message: Optional[str] = None
    ):
        super().__init__(message)
        self.message = message
        self.request_id = request_id or str(uuid4())
        self.operation = operation
        self.context = context or {}
        self.cause = cause
        self.user_message = user_message or "Something went wrong while tracking that. Please try again."
        self.timestamp = datetime.now(timezone.utc)

        # Auto-log on creation
        self._log_error()

    def _log_error(self) -> None:
        """Log error with full context"""
        log_data = {
            "error_type": self.__class__.__name__,
            "error_message": self.message,  # Avoid conflict with logging's 'message' field
            "request_id": self.request_id,
            "operation": self.operation,
            "error_context": self.context,
            "timestamp": self.timestamp.isoformat()
        }

        if self.cause:
            log_data["cause"] = str(self.cause)
            logger.error(f"{self.__class__.__name__}: {self.message}", extra=log_data, exc_info=self.cause)
        else:
            logger.error(f"{self.__class__.__name__}: {self.message}", extra=log_data)

    def to_dict(self) -> Dict[str, Any]:
        """Serialize exception for front-end consumers"""
        return {
            "error": self.__class__.__name__,
            "message": self.message,
            "user_message": self.user_message,
            "request_id": self.request_id,
            "timestamp": self.timestamp.isoformat()
        }


# ==========================================
# Storage Errors
# ==========================================

class StorageError(TrackerAgentError):
    """Reading or writing a tracker document failed"""

    def __init__(
        self,
        message: str,
        path: Optional[str] = None,
        **kwargs
    ):
        self.path = path
        super().__init__(
            message=message,
            user_message="We couldn't save your tracker data. Please check the data directory and try again.",
            context={"path": path},
            **kwargs
        )


class TrackerNotFoundError(TrackerAgentError):
    """Requested tracker does not exist"""

    def __init__(
        self,
        message: str,
        tracker_name: Optional[str] = None,
        **kwargs
    ):
        self.tracker_name = tracker_name
        super().__init__(
            message=message,
            user_message=f"Tracker not found: {tracker_name}" if tracker_name else "Tracker not found.",
            context={"tracker_name": tracker_name},
            **kwargs
        )


# ==========================================
# External API Errors
# ==========================================

class ExternalAPIError(TrackerAgentError):
    """
    Base class for external API failures
    """

    def __init__(
        self,
        message: str,
        service: Optional[str] = None,
        status_code: Optional[int] = None,
        **kwargs
    ):
        self.service = service
        self.status_code = status_code
        super().__init__(
            message=message,
            user_message=f"We're having trouble connecting to {service or 'an external service'}. Please try again later.",
            context={"service": service, "status_code": status_code},
            **kwargs
        )


class CompletionError(ExternalAPIError):
    """Language-model completion call failed (OpenAI, Anthropic, local server)"""

    def __init__(self, message: str, provider: Optional[str] = None, **kwargs):
        super().__init__(
            message=message,
            service=f"the {provider} completion service" if provider else "the completion service",
            **kwargs
        )


# ==========================================
# Extraction Errors
# ==========================================

class ExtractionError(TrackerAgentError):
    """Neither the model nor the heuristics produced a usable record"""

    def __init__(
        self,
        message: str,
        tracker_type: Optional[str] = None,
        **kwargs
    ):
        self.tracker_type = tracker_type
        super().__init__(
            message=message,
            user_message="I couldn't understand that entry. Try rephrasing with more details.",
            context={"tracker_type": tracker_type},
            **kwargs
        )


# ==========================================
# Configuration Errors
# ==========================================

class ConfigurationError(TrackerAgentError):
    """System configuration is invalid or missing"""

    def __init__(
        self,
        message: str,
        config_key: Optional[str] = None,
        **kwargs
    ):
        self.config_key = config_key
        super().__init__(
            message=message,
            user_message=f"tracker-agent is not properly configured ({config_key or 'unknown setting'}).",
            context={"config_key": config_key},
            **kwargs
        )


# ==========================================
# Helper Functions
# ==========================================

def wrap_external_exception(
    error: Exception,
    operation: str,
    provider: Optional[str] = None,
    context: Optional[Dict[str, Any]] = None
) -> TrackerAgentError:
    """
    Wrap external exceptions (OSError, httpx, provider SDKs) into our exception hierarchy

    Args:
        error: Original exception
        operation: What operation was being performed
        provider: Completion provider name if applicable
        context: Additional context

    Returns:
        Appropriate TrackerAgentError subclass

    Example:
        try:
            path.write_text(payload)
        except OSError as e:
            raise wrap_external_exception(e, operation="save_records")
    """
    import httpx

    if isinstance(error, TrackerAgentError):
        return error

    # Filesystem errors
    if isinstance(error, OSError):
        return StorageError(
            message=f"{operation} failed: {str(error)}",
            path=getattr(error, "filename", None),
            operation=operation,
            cause=error
        )

    # HTTP errors
    if isinstance(error, httpx.TimeoutException):
        return CompletionError(
            message=f"Completion request timed out: {str(error)}",
            provider=provider,
            operation=operation,
            cause=error
        )
    if isinstance(error, httpx.HTTPStatusError):
        return CompletionError(
            message=f"Completion API returned error: {error.response.status_code}",
            provider=provider,
            status_code=error.response.status_code,
            operation=operation,
            cause=error
        )

    # Provider SDK errors are reported by class name to avoid importing both SDKs
    if provider and error.__class__.__module__.split(".")[0] in ("openai", "anthropic"):
        return CompletionError(
            message=f"{provider} completion failed: {type(error).__name__}: {str(error)}",
            provider=provider,
            operation=operation,
            cause=error
        )

    # Generic fallback
    return TrackerAgentError(
        message=f"{operation} failed: {str(error)}",
        operation=operation,
        context=context,
        cause=error
    )
