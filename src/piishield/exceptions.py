"""Exceptions for pii-shield."""


class PIIShieldError(Exception):
    """Base exception."""


class PatternCompilationError(PIIShieldError):
    """A pattern's matcher could not be compiled."""


class ValidatorError(PIIShieldError):
    """A validator raised while checking a candidate."""


class RemoteServiceError(PIIShieldError):
    """The remote redaction service failed or returned malformed data."""


class RestorationMismatchError(PIIShieldError):
    """Restoring a redaction did not reproduce the original text."""


class ConfigError(PIIShieldError):
    """Configuration error."""


class RedactionCapacityError(PIIShieldError):
    """A single call produced more distinct values than placeholders can be tracked for."""
