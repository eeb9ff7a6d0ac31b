"""
Error types raised while running the LiteRT-LM binary.

Extraction never raises; only process invocation does. The HTTP layer maps
these to status codes.
"""


class LiteRTError(Exception):
    """Base class for LiteRT-LM invocation failures."""

    error_type = "internal_error"


class StartupError(LiteRTError):
    """Exception raised when the binary cannot be launched."""

    error_type = "startup_error"


class FatalError(LiteRTError):
    """Exception raised when the binary hit an unrecoverable internal check."""

    error_type = "fatal_error"

    def __init__(self, line: str):
        self.line = line
        super().__init__(f"LiteRT fatal error: {line}")


class NonFatalError(LiteRTError):
    """Exception raised on a non-zero exit without a fatal signature."""

    def __init__(self, exit_code: int, stderr: str):
        self.exit_code = exit_code
        self.stderr = stderr
        super().__init__(f"LiteRT process exited with code {exit_code}: {stderr}")


class ProcessTimeoutError(LiteRTError):
    """Exception raised when the binary runs past its deadline."""

    error_type = "timeout_error"

    def __init__(self, timeout: float):
        self.timeout = timeout
        super().__init__(f"LiteRT process timed out after {timeout:g} seconds")
