"""etwstream error hierarchy.

All etwstream-specific errors inherit from EtwStreamError for easy catching.
"""


class EtwStreamError(Exception):
    """Base error for all etwstream operations."""


class ConfigError(EtwStreamError):
    """Invalid or missing configuration."""


class SessionError(EtwStreamError):
    """Error tied to a single tracing session.

    Attributes:
        session_name: Name of the session involved, if one was assigned.

    """

    def __init__(self, message: str, *, session_name: str | None = None) -> None:
        super().__init__(message)
        self.session_name = session_name


class SessionCreateFailed(SessionError):
    """The backend refused to create a session (duplicate name, privilege)."""


class ProviderEnableFailed(SessionError):
    """A provider could not be enabled (unknown identity, malformed GUID, conflict)."""


class ProcessingFailed(SessionError):
    """The session's processing pump raised while delivering events.

    Delivered to every current subscriber as the stream's error signal.
    The original exception is available as ``__cause__``.
    """


class UnknownParserError(EtwStreamError):
    """No parser is registered under the requested key."""


class UnknownBackendError(EtwStreamError):
    """No tracing backend is registered under the requested name."""
