"""
Exception types shared by the session controller, the browser engine
and the OG pipeline. The HTTP layer maps each one to a status code.
"""


class CloudBrowserError(Exception):
    """Base class for every error raised by the service."""


class EngineUnavailableError(CloudBrowserError):
    """The headless browser process could not be launched."""


class SessionNotFoundError(CloudBrowserError):
    def __init__(self, session_id: str):
        super().__init__(f"Session not found: {session_id}")
        self.session_id = session_id


class SessionInitError(CloudBrowserError):
    """Browser process or page setup failed while creating a session."""


class NavigationTimeoutError(CloudBrowserError):
    pass


class NavigationError(CloudBrowserError):
    pass


class ScriptEvaluationError(CloudBrowserError):
    pass


class OgFetchError(CloudBrowserError):
    """
    Structured failure from the OG pipeline.
    reason is one of: engine_unavailable, timeout, navigation_failed.
    """

    def __init__(self, reason: str, message: str):
        super().__init__(message)
        self.reason = reason
        self.message = message


class EngineError(CloudBrowserError):
    """A page operation failed inside the browser (crashed page, closed browser)."""


class OperationTimeoutError(CloudBrowserError):
    """A page operation did not finish within operation_timeout."""
