"""
Core Exceptions
================

Custom exceptions for the application following clean architecture principles.

These exceptions define domain-specific errors that can be caught and handled
appropriately at the application boundaries.
"""

from typing import List, Optional


class ApplicationException(Exception):
    """Base exception for all application errors."""

    def __init__(self, message: str, details: Optional[dict] = None):
        self.message = message
        self.details = details or {}
        super().__init__(message)


class DomainException(ApplicationException):
    """Base exception for domain logic violations."""


class RepositoryException(ApplicationException):
    """Base exception for repository/data access errors."""


class ValidationException(ApplicationException):
    """Exception for validation errors."""


class ResourceNotFoundException(ApplicationException):
    """Exception when a requested ticket, user or assignee does not exist."""

    def __init__(
        self,
        resource_type: str,
        resource_id: Optional[str] = None,
        details: Optional[dict] = None
    ):
        self.resource_type = resource_type
        self.resource_id = resource_id
        message = f"{resource_type}"
        if resource_id:
            message += f" with id '{resource_id}'"
        message += " not found"
        super().__init__(message, details)


class InvalidTransitionException(DomainException):
    """Status change not permitted from the current state for the actor's role."""

    def __init__(
        self,
        from_status: str,
        to_status: str,
        actor_role: str,
        reason: Optional[str] = None
    ):
        self.from_status = from_status
        self.to_status = to_status
        self.actor_role = actor_role
        message = f"Cannot move ticket from '{from_status}' to '{to_status}' as {actor_role}"
        if reason:
            message += f": {reason}"
        super().__init__(
            message,
            {"from_status": from_status, "to_status": to_status, "actor_role": actor_role}
        )


class DependencyUnavailableException(RepositoryException):
    """The underlying store could not be reached."""


class PartialBatchFailureException(ApplicationException):
    """A bulk operation succeeded for some targets and failed for others."""

    def __init__(self, processed_count: int, errors: List[str]):
        self.processed_count = processed_count
        self.errors = list(errors)
        super().__init__(
            f"{processed_count} succeeded, {len(self.errors)} failed",
            {"processed_count": processed_count, "errors": self.errors}
        )


class ConfigurationException(ApplicationException):
    """Exception for configuration errors."""

