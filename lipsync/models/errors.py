"""Exception types shared across the lip-sync pipeline"""


class LipSyncError(Exception):
    """Base class for all lip-sync pipeline errors"""
    pass


class ConfigurationError(LipSyncError, ValueError):
    """Raised when a configuration value is out of range.

    Configuration is validated at construction time and by the explicit runtime
    setters; invalid values are rejected rather than clamped.
    """
    pass


class InvalidInputSizeError(LipSyncError, ValueError):
    """Raised when a sample block does not match the configured window size"""
    pass


class NotInitializedError(LipSyncError, RuntimeError):
    """Raised when a component is used before it was initialized or started"""
    pass


class DisposedError(LipSyncError, RuntimeError):
    """Raised when a component is used after dispose()"""
    pass


class AudioProcessingError(LipSyncError):
    """Exception raised for numerical errors during audio analysis"""
    pass
