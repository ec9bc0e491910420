"""
Custom exceptions for unsubscribe processing with enhanced error context.

Exceptions carry context for logging; callers of the orchestrator never see
them, they are converted into error codes on the attempt record.
"""

from typing import Dict, Any, Optional


class UnsubscribeExtractionError(Exception):
    """Exception raised when unsubscribe link extraction fails."""

    def __init__(self, message: str, context: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.context = context

    def __str__(self) -> str:
        base_message = super().__str__()
        if self.context:
            context_info = ", ".join(f"{k}={v}" for k, v in self.context.items())
            return f"{base_message} (context: {context_info})"
        return base_message


class CapabilityUnavailableError(Exception):
    """Raised when an external capability (browser engine, planning service) cannot be used."""

    def __init__(self, message: str, capability: str, error_code: Optional[str] = None):
        super().__init__(message)
        self.capability = capability
        self.error_code = error_code

    def __str__(self) -> str:
        return f"{super().__str__()} (capability={self.capability})"


class ProcessingError(Exception):
    """Exception raised when the unsubscribe pipeline fails at a given stage."""

    def __init__(self, message: str, stage: Optional[str] = None, details: Optional[Dict[str, Any]] = None):
        super().__init__(message)
        self.stage = stage
        self.details = details or {}

    def __str__(self) -> str:
        base_message = super().__str__()
        context_parts = []

        if self.stage:
            context_parts.append(f"stage={self.stage}")

        if self.details:
            context_parts.extend(f"{k}={v}" for k, v in self.details.items())

        if context_parts:
            return f"{base_message} ({', '.join(context_parts)})"
        return base_message


class AttemptRecordImmutableError(Exception):
    """Raised when something tries to modify a stored unsubscribe attempt."""

    def __init__(self, message: str, attempt_id: Optional[int] = None):
        super().__init__(message)
        self.attempt_id = attempt_id

    def __str__(self) -> str:
        base_message = super().__str__()
        if self.attempt_id is not None:
            return f"{base_message} (attempt_id={self.attempt_id})"
        return base_message
