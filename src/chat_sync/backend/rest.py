"""HTTP implementation of the remote store.

Speaks the Firebase Realtime Database REST protocol:

* ``GET/PUT/POST {url}/{path}.json`` for reads and writes;
* ``GET`` with ``Accept: text/event-stream`` for streaming. The server
  sends ``put`` / ``patch`` events whose payload is
  ``{"path": ..., "data": ...}``; the first ``put`` at ``/`` carries the
  whole node (the backfill).

Password authentication uses an Identity Toolkit compatible endpoint;
the resulting id token is sent as the ``auth`` query parameter. The id
token is short-lived: it is exchanged for a new one through the
secure-token endpoint once its lifetime has passed, when a request is
answered with 401, and when a stream reports ``auth_revoked``.
"""

from __future__ import annotations

import itertools
import json
import logging
import threading
import time
from pathlib import Path
from typing import Any, Iterable, Iterator
from urllib.parse import quote

import requests

from chat_sync.backend.base import ChildCallback, normalize_path, split_path
from chat_sync.config import Config
from chat_sync.errors import AuthenticationError, BackendError
from chat_sync.session_store import SessionStore
from chat_sync.sync.models import AuthInfo

logger = logging.getLogger(__name__)

DEFAULT_AUTH_URL = "https://identitytoolkit.googleapis.com/v1"
DEFAULT_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"

# Seconds before the stated expiry at which the id token is renewed.
TOKEN_EXPIRY_MARGIN = 60


def iter_sse_events(lines: Iterable[str]) -> Iterator[tuple[str, str]]:
    """Parse ``text/event-stream`` lines into ``(event, data)`` pairs.

    Multiple ``data:`` lines of one event are joined with newlines.
    Comment lines (starting with ``:``) are skipped.
    """
    event = "message"
    data: list[str] = []
    for line in lines:
        if line is None:
            continue
        if line == "":
            if data:
                yield event, "\n".join(data)
            event, data = "message", []
            continue
        if line.startswith(":"):
            continue
        field, _, value = line.partition(":")
        value = value.removeprefix(" ")
        if field == "event":
            event = value
        elif field == "data":
            data.append(value)
    if data:
        yield event, "\n".join(data)


class ChildAddedStream:
    """Turn one path's event stream into child-added callbacks.

    Runs on its own daemon thread. Child keys already delivered are
    remembered, so a reconnect (which re-sends the whole node) does not
    deliver them twice.

    Args:
        backend: Owning backend (opens the HTTP stream).
        path: Normalized store path.
        callback: Receives each new child's value.
        retry_delay: Seconds to wait before reconnecting after a failure.
    """

    def __init__(
        self,
        backend: RestBackend,
        path: str,
        callback: ChildCallback,
        retry_delay: float = 3.0,
    ) -> None:
        self._backend = backend
        self.path = path
        self._callback = callback
        self._retry_delay = retry_delay
        self._seen: set[str] = set()
        self._stop = threading.Event()
        self._response: requests.Response | None = None
        self._token: str | None = None
        self._thread = threading.Thread(
            target=self._run, name=f"chat-sync-stream:{path}", daemon=True
        )

    @property
    def stopped(self) -> bool:
        return self._stop.is_set()

    def start(self) -> None:
        self._thread.start()

    def stop(self) -> None:
        """Ask the stream to end. Does not wait for the thread."""
        self._stop.set()
        response = self._response
        if response is not None:
            response.close()

    def handle_event(self, event: str, data: str) -> None:
        """Apply one server-sent event."""
        match event:
            case "keep-alive":
                return
            case "cancel":
                logger.warning("Server cancelled stream for %s: %s", self.path, data)
                self._stop.set()
                return
            case "auth_revoked":
                # the server closes the stream; reconnect with a new token
                self._backend.refresh_auth(self._token)
                raise BackendError(f"Credential expired for stream {self.path}")
            case "put" | "patch":
                pass
            case _:
                logger.debug("Ignoring stream event %r", event)
                return

        payload = json.loads(data)
        if not isinstance(payload, dict):
            return
        target = split_path(payload.get("path") or "/")
        value = payload.get("data")

        if not target:
            children = value if isinstance(value, dict) else {}
            if event == "put":
                # the node was replaced wholesale
                self._seen &= set(children)
            for key in sorted(children):
                if children[key] is None:
                    self._seen.discard(key)
                else:
                    self._emit(key, children[key])
            return

        key = target[0]
        if len(target) > 1:
            # change inside an existing child, not an addition
            return
        if value is None:
            self._seen.discard(key)
        elif event == "put":
            self._emit(key, value)

    def _emit(self, key: str, value: Any) -> None:
        if key in self._seen:
            return
        self._seen.add(key)
        self._callback(value)

    def _run(self) -> None:
        while not self._stop.is_set():
            try:
                self._consume()
            except (requests.RequestException, BackendError, ValueError) as exc:
                if self._stop.is_set():
                    break
                logger.warning(
                    "Stream for %s failed: %s; retrying in %.1fs",
                    self.path,
                    exc,
                    self._retry_delay,
                )
            except Exception:
                if self._stop.is_set():
                    break
                logger.exception("Unexpected error in stream for %s", self.path)
            if self._stop.wait(self._retry_delay):
                break
        logger.debug("Stream for %s stopped", self.path)

    def _consume(self) -> None:
        response = self._backend.open_stream(self.path)
        self._response = response
        auth = self._backend.auth
        self._token = auth.id_token if auth is not None else None
        try:
            lines = response.iter_lines(decode_unicode=True)
            for event, data in iter_sse_events(lines):
                if self._stop.is_set():
                    return
                self.handle_event(event, data)
        finally:
            self._response = None
            response.close()


class RestBackend:
    """Remote store over HTTP.

    Args:
        config: Connection settings (URL, API key, timeout).
        session_store: Where the refresh token is persisted; ``None``
            keeps the login in memory only.
        auth_url: Base URL of the password auth API.
        token_url: Token refresh endpoint.
        retry_delay: Reconnect delay for broken streams.
    """

    def __init__(
        self,
        config: Config,
        session_store: SessionStore | None = None,
        auth_url: str = DEFAULT_AUTH_URL,
        token_url: str = DEFAULT_TOKEN_URL,
        retry_delay: float = 3.0,
    ) -> None:
        self.config = config
        self.base_url = config.backend_url.rstrip("/")
        self.auth_url = auth_url.rstrip("/")
        self.token_url = token_url
        self.retry_delay = retry_delay
        self._session_store = session_store
        self._thread_local = threading.local()
        self._lock = threading.Lock()
        self._streams: dict[str, dict[int, ChildAddedStream]] = {}
        self._handle_ids = itertools.count(1)
        self._auth: AuthInfo | None = None
        self._auth_lock = threading.Lock()
        # monotonic time after which the id token is renewed
        self._expires_at: float | None = None

    @classmethod
    def from_config(cls, config: Config) -> RestBackend:
        return cls(config, SessionStore(Path(config.state_dir)))

    @property
    def session(self) -> requests.Session:
        """The current thread's HTTP session."""
        return self._get_session()

    @property
    def auth(self) -> AuthInfo | None:
        return self._auth

    def _get_session(self) -> requests.Session:
        if not hasattr(self._thread_local, "session"):
            self._thread_local.session = requests.Session()
        return self._thread_local.session

    def url_for(self, path: str) -> str:
        """Return the REST URL of *path*, URL-encoding each key."""
        return f"{self.base_url}/{quote(normalize_path(path), safe='/')}.json"

    def _params(self) -> dict[str, str]:
        auth = self._auth
        if auth is not None and self._token_expired() and auth.refresh_token:
            try:
                auth = self.refresh_auth(auth.id_token)
            except BackendError as exc:
                logger.warning("Could not refresh expired id token: %s", exc)
                auth = self._auth
        if auth is not None and auth.id_token:
            return {"auth": auth.id_token}
        return {}

    def _token_expired(self) -> bool:
        expires_at = self._expires_at
        return expires_at is not None and time.monotonic() >= expires_at

    # ------------------------------------------------------------------
    # Data
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs: Any) -> Any:
        params = self._params()
        try:
            return self._send(method, path, params, **kwargs)
        except BackendError as exc:
            if exc.status_code != 401 or "auth" not in params:
                raise
            logger.info("%s %s rejected the id token; refreshing", method, path)
            self.refresh_auth(params["auth"])
            return self._send(method, path, self._params(), **kwargs)

    def _send(
        self, method: str, path: str, params: dict[str, str], **kwargs: Any
    ) -> Any:
        url = self.url_for(path)
        try:
            response = self._get_session().request(
                method,
                url,
                params=params,
                timeout=self.config.timeout,
                **kwargs,
            )
            response.raise_for_status()
        except requests.HTTPError as exc:
            status = exc.response.status_code if exc.response is not None else None
            raise BackendError(
                f"{method} {path} failed: HTTP {status}", status_code=status
            ) from exc
        except requests.RequestException as exc:
            raise BackendError(f"{method} {path} failed: {exc}") from exc

        if not response.content:
            return None
        return response.json()

    def get(self, path: str) -> Any:
        return self._request("GET", path)

    def append(self, path: str, record: dict[str, Any]) -> str:
        data = self._request("POST", path, json=record)
        if not isinstance(data, dict) or "name" not in data:
            raise BackendError(f"Unexpected push response for {path}: {data!r}")
        return data["name"]

    def set(self, path: str, record: dict[str, Any]) -> None:
        if not split_path(path):
            raise BackendError("Cannot set the store root")
        self._request("PUT", path, json=record)

    # ------------------------------------------------------------------
    # Streaming
    # ------------------------------------------------------------------

    def open_stream(self, path: str) -> requests.Response:
        """Open the event stream for *path* (used by ``ChildAddedStream``).

        A 401 answer triggers one token refresh and a second attempt.
        """
        params = self._params()
        response = self._get_stream(path, params)
        if response.status_code == 401 and "auth" in params:
            response.close()
            logger.info("Stream for %s rejected the id token; refreshing", path)
            self.refresh_auth(params["auth"])
            response = self._get_stream(path, self._params())
        response.raise_for_status()
        # event streams are UTF-8; requests would assume ISO-8859-1
        response.encoding = "utf-8"
        return response

    def _get_stream(self, path: str, params: dict[str, str]) -> requests.Response:
        return self._get_session().get(
            self.url_for(path),
            params=params,
            headers={"Accept": "text/event-stream"},
            stream=True,
            timeout=(self.config.timeout, None),
        )

    def subscribe_child_added(self, path: str, callback: ChildCallback) -> int:
        path = normalize_path(path)
        stream = ChildAddedStream(self, path, callback, self.retry_delay)
        with self._lock:
            handle = next(self._handle_ids)
            self._streams.setdefault(path, {})[handle] = stream
        stream.start()
        logger.debug("Stream %d opened on %s", handle, path)
        return handle

    def unsubscribe_child_added(self, path: str, handle: Any = None) -> None:
        path = normalize_path(path)
        with self._lock:
            streams = self._streams.get(path)
            if streams is None:
                return
            if handle is None:
                removed = list(streams.values())
                del self._streams[path]
            else:
                removed = [streams.pop(handle)] if handle in streams else []
                if not streams:
                    del self._streams[path]
        for stream in removed:
            stream.stop()

    def close(self) -> None:
        """Stop every stream."""
        with self._lock:
            streams = [s for by_handle in self._streams.values() for s in by_handle.values()]
            self._streams.clear()
        for stream in streams:
            stream.stop()

    # ------------------------------------------------------------------
    # Auth
    # ------------------------------------------------------------------

    def _auth_request(self, url: str, **kwargs: Any) -> dict:
        if not self.config.api_key:
            raise AuthenticationError(
                "API key not configured. Set CHAT_SYNC_API_KEY or add "
                "'api_key' to config.yml."
            )
        try:
            response = self._get_session().post(
                url,
                params={"key": self.config.api_key},
                timeout=self.config.timeout,
                **kwargs,
            )
        except requests.RequestException as exc:
            raise BackendError(f"Auth request failed: {exc}") from exc

        if response.status_code >= 400:
            raise AuthenticationError(
                _auth_error_message(response), status_code=response.status_code
            )
        return response.json()

    def authenticate(self, email: str, password: str) -> AuthInfo:
        data = self._auth_request(
            f"{self.auth_url}/accounts:signInWithPassword",
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        info = _auth_info(data, email)
        self._set_auth(info)
        logger.info("Signed in as %s", info.email)
        return info

    def create_account(self, email: str, password: str) -> AuthInfo:
        data = self._auth_request(
            f"{self.auth_url}/accounts:signUp",
            json={"email": email, "password": password, "returnSecureToken": True},
        )
        logger.info("Created account %s", email)
        return _auth_info(data, email)

    def resume_session(self) -> AuthInfo | None:
        """Return the current login, refreshing a persisted one if needed.

        A current login whose id token has expired is refreshed first.
        Any failure (no stored session, rejected refresh token, network
        error) is logged and reported as ``None``.
        """
        current = self._auth
        if current is not None:
            if not (self._token_expired() and current.refresh_token):
                return current
            try:
                return self.refresh_auth(current.id_token)
            except BackendError as exc:
                logger.warning("Could not refresh session: %s", exc)
                return None

        stored = self._session_store.load() if self._session_store else None
        if not stored:
            return None

        try:
            info = self._exchange_refresh_token(
                stored["refresh_token"], stored.get("uid", ""), stored.get("email", "")
            )
        except AuthenticationError as exc:
            logger.warning("Stored session rejected: %s", exc)
            self._session_store.clear()
            return None
        except BackendError as exc:
            logger.warning("Could not resume session: %s", exc)
            return None

        self._set_auth(info)
        logger.info("Resumed session for %s", info.email)
        return info

    def refresh_auth(self, stale_token: str | None = None) -> AuthInfo:
        """Exchange the refresh token for a new id token.

        Args:
            stale_token: The id token the caller saw rejected. If another
                thread has already replaced it, the current login is
                returned without a second refresh.

        Raises:
            AuthenticationError: If nobody with a refresh token is signed
                in, or the refresh token is rejected (the session is then
                ended).
            BackendError: If the token endpoint cannot be reached.
        """
        with self._auth_lock:
            current = self._auth
            if current is None or not current.refresh_token:
                raise AuthenticationError("No session to refresh")
            if stale_token is not None and current.id_token != stale_token:
                return current
            try:
                info = self._exchange_refresh_token(
                    current.refresh_token, current.uid, current.email
                )
            except AuthenticationError as exc:
                logger.warning("Refresh token rejected, signing out: %s", exc)
                self.end_session()
                raise
            self._set_auth(info)
        logger.debug("Refreshed id token for %s", info.email)
        return info

    def _exchange_refresh_token(
        self, refresh_token: str, uid: str, email: str
    ) -> AuthInfo:
        data = self._auth_request(
            self.token_url,
            data={"grant_type": "refresh_token", "refresh_token": refresh_token},
        )
        return AuthInfo(
            uid=data.get("user_id") or uid,
            email=email,
            id_token=data.get("id_token"),
            refresh_token=data.get("refresh_token") or refresh_token,
            expires_in=_int_or_none(data.get("expires_in")),
        )

    def end_session(self) -> None:
        self._auth = None
        self._expires_at = None
        if self._session_store is not None:
            self._session_store.clear()

    def _set_auth(self, info: AuthInfo) -> None:
        if info.expires_in is not None:
            self._expires_at = time.monotonic() + info.expires_in - TOKEN_EXPIRY_MARGIN
        else:
            self._expires_at = None
        self._auth = info
        if self._session_store is not None:
            self._session_store.save(info)


def _int_or_none(value: Any) -> int | None:
    try:
        return int(value)
    except (TypeError, ValueError):
        return None


def _auth_info(data: dict, email: str) -> AuthInfo:
    return AuthInfo(
        uid=data.get("localId", ""),
        email=data.get("email") or email,
        id_token=data.get("idToken"),
        refresh_token=data.get("refreshToken"),
        expires_in=_int_or_none(data.get("expiresIn")),
    )


def _auth_error_message(response: requests.Response) -> str:
    """Extract ``error.message`` from an auth error body, if present."""
    try:
        body = response.json()
    except ValueError:
        return f"HTTP {response.status_code}"
    error = body.get("error") if isinstance(body, dict) else None
    if isinstance(error, dict) and error.get("message"):
        return str(error["message"])
    return f"HTTP {response.status_code}"
