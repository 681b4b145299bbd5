class ConversionServiceError(Exception):
    """Base class for failures reported to the caller as a 400 response."""


class ValidationError(ConversionServiceError):
    pass


class HashError(ConversionServiceError):
    pass


class CacheReadError(ConversionServiceError):
    pass


class CacheWriteError(ConversionServiceError):
    pass


class ConversionError(ConversionServiceError):
    pass


class ParseError(ConversionServiceError):
    pass


class InvalidDocumentError(ConversionServiceError):
    pass


class NotFoundError(ConversionServiceError):
    pass


class CleanupError(ConversionServiceError):
    """Local file removal failed. Logged only, never raised to the caller."""
