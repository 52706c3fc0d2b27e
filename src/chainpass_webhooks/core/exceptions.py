"""Common exceptions for domain and repository layers."""
from __future__ import annotations


class WebhookServiceError(Exception):
    """Base error for service layer."""


class RepositoryError(WebhookServiceError):
    """Raised when repository operations fail."""


class NotFoundError(RepositoryError):
    """Raised when requested entity is missing."""


class ConfigurationError(WebhookServiceError):
    """Raised when a partner cannot be signed for (empty secret, no callback URL, inactive).

    Fatal to the caller and never retried.
    """


class InvalidStateError(WebhookServiceError):
    """Raised when an operator action does not apply to the entry's current status."""


class PartnerScopeError(WebhookServiceError):
    """Raised when a caller acts on a business partner it does not belong to."""
