"""
Core Exceptions
================

Custom exceptions for the SLA engine.

Most failures in the engine are operational log events rather than errors a
caller must handle: these types exist so the monitor pass can tell an
expected race (a ticket deleted mid-pass) from a genuine store failure.
"""

from typing import Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ResourceNotFoundException(RepositoryException):
    """Raised when a requested resource does not exist (or no longer exists)."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[object] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id is not None:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class ConfigurationException(ApplicationException):
    """Exception for configuration errors (bad policy file, invalid settings)."""


class ExternalServiceException(ApplicationException):
    """Base exception for external service failures."""

    def __init__(
        self,
        service_name: str,
        message: str,
        details: Optional[dict] = None
    ):
        self.service_name = service_name
        super().__init__(f"{service_name}: {message}", details)


class NotificationException(ExternalServiceException):
    """Webhook delivery failure."""

    def __init__(self, message: str, details: Optional[dict] = None):
        super().__init__("Notification Webhook", message, details)
