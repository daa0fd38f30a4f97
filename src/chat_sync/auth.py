"""Sign-in, sign-up, resume, and sign-out driving the sync session.

The signed-in account's email is the chat user identifier: a successful
sign-in sets it as the session's current user, which installs the
conversation stream.
"""

from __future__ import annotations

import logging

from chat_sync.backend.base import RemoteBackend
from chat_sync.sync.models import AuthInfo
from chat_sync.sync.session import SyncSession
from chat_sync.validators import validate_credentials

logger = logging.getLogger(__name__)


class AuthFlow:
    """Authentication use cases on top of a backend and a session.

    Args:
        backend: Remote store providing the auth operations.
        session: Session whose current user follows the login.
    """

    def __init__(self, backend: RemoteBackend, session: SyncSession) -> None:
        self._backend = backend
        self._session = session

    def sign_in(self, email: str, password: str, activate: bool = True) -> AuthInfo:
        """Authenticate and make *email* the current user.

        Args:
            activate: When False, only authenticate; leave the session's
                current user unchanged.

        Raises:
            ValueError: If the credentials are malformed.
            AuthenticationError: If the backend rejects them.
        """
        _check_credentials(email, password)
        info = self._backend.authenticate(email, password)
        if activate:
            self._session.set_current_user(info.email)
        return info

    def sign_up(self, email: str, password: str, activate: bool = True) -> AuthInfo:
        """Create an account, list it in the users collection, then sign in.

        Raises:
            ValueError: If the credentials are malformed.
            AuthenticationError: If the account cannot be created, or the
                follow-up sign-in fails.
        """
        _check_credentials(email, password)
        self._backend.create_account(email, password)
        info = self.sign_in(email, password, activate=False)
        self._session.directory.add_user(email)
        if activate:
            self._session.set_current_user(info.email)
        return info

    def resume(self, activate: bool = True) -> AuthInfo | None:
        """Restore a previous login, if the backend still honours it."""
        info = self._backend.resume_session()
        if info is None:
            logger.info("No session to resume")
            return None
        if activate:
            self._session.set_current_user(info.email)
        return info

    def sign_out(self) -> None:
        """End the backend session and drop the session's identity."""
        self._backend.end_session()
        self._session.clear()


def _check_credentials(email: str, password: str) -> None:
    ok, error = validate_credentials(email, password)
    if not ok:
        raise ValueError(error)
