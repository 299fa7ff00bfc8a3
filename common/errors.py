"""
Standardized error handling for the digest pipeline.

Errors fall into four families:
- transient-source errors (FetchError): one feed or article failed
- generation failures (GenerationError and the APIError family)
- configuration errors (ConfigurationError): fatal, raised before work starts
- cancellation (BatchCancelledError): deadline or explicit cancel
"""

import logging
from typing import Any, Optional

logger = logging.getLogger(__name__)

# Base exception class
class ApplicationError(Exception):
    """Base exception for all application errors."""
    pass

# Specific error types
class APIError(ApplicationError):
    """Errors related to API communication."""
    pass

class RateLimitError(APIError):
    """API rate limit exceeded."""
    pass

class AuthenticationError(APIError):
    """API authentication failed."""
    pass

class ConnectionError(APIError):
    """Connection to external service failed."""
    pass

class FetchError(ApplicationError):
    """A single feed or article could not be retrieved or parsed."""

    def __init__(self, message: str, url: Optional[str] = None, status_code: Optional[int] = None):
        super().__init__(message)
        self.url = url
        self.status_code = status_code

class GenerationError(ApplicationError):
    """Text or embedding generation failed or returned unusable output."""
    pass

class ProcessingError(ApplicationError):
    """Error during data processing."""
    pass

class ConfigurationError(ApplicationError):
    """Error in configuration or setup."""
    pass

class BatchCancelledError(ApplicationError):
    """
    A batch was cancelled or ran past its deadline.

    The partial result accumulated before cancellation is attached so callers
    can still report what was done.
    """

    def __init__(self, reason: str = "cancelled", partial: Any = None):
        super().__init__(reason)
        self.reason = reason
        self.partial = partial
