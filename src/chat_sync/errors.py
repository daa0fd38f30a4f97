"""Exception hierarchy for chat_sync.

Malformed records and unresolvable paths are never raised; they are
absorbed by the sync core. These exceptions cover the remote backend and
the authentication flow.
"""


class ChatSyncError(Exception):
    """Base class for all chat_sync errors."""


class BackendError(ChatSyncError):
    """The remote backend could not be reached or rejected a request.

    Attributes:
        status_code: HTTP status code when the failure came from an HTTP
            response, otherwise ``None``.
    """

    def __init__(self, message: str, status_code: int | None = None):
        super().__init__(message)
        self.status_code = status_code


class AuthenticationError(BackendError):
    """Credentials were rejected or an account could not be created."""


class NotAuthenticatedError(ChatSyncError):
    """An operation needs a signed-in user and none is set."""
