"""
ChromeSec - Error taxonomy
"""


class ChromeSecError(Exception):
    """Base class for all scanner errors."""


class UnsupportedPlatformError(ChromeSecError):
    """No browser executable is known for the host platform."""

    def __init__(self, platform_tag: str):
        self.platform_tag = platform_tag
        super().__init__(f"Unsupported platform: {platform_tag}")


class LaunchError(ChromeSecError):
    """The browser process could not be started."""

    def __init__(self, cause: BaseException):
        self.cause = cause
        super().__init__(f"Browser launch failed: {cause}")


class SessionNotReadyError(ChromeSecError):
    """An operation was called outside its valid lifecycle window."""
