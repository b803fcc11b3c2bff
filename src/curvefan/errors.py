"""
Error Taxonomy for Curvefan

Every failure the controller can observe is tagged by kind so that the
control loop can recover locally while still reporting what went wrong.
Only configuration errors are fatal.
"""


class CurvefanError(Exception):
    """Base exception for all curvefan errors"""
    pass


class ConfigurationError(CurvefanError):
    """Raised when control points or configuration values are malformed"""
    pass


class SamplingError(CurvefanError):
    """Raised when no usable temperature reading is available for a tick"""
    pass


class ActuationError(CurvefanError):
    """Raised when a fan bank rejects or fails a duty cycle command"""

    def __init__(self, message: str, bank: int = None):
        super().__init__(message)
        self.bank = bank


class TelemetryError(CurvefanError):
    """Raised when a duty cycle value cannot be published"""
    pass
