"""OAuth token lifecycle for Baidu Pan.

The TokenAuthority makes sure an access token is available before any API
call: it loads the token file, refreshes tokens that are expired or close
to expiry, and falls back to the OAuth device-code flow when no usable
token exists.
"""

from __future__ import annotations

import logging
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from concurrent.futures import TimeoutError as FuturesTimeoutError
from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import Any, Callable

import httpx

from .credentials import CredentialStore
from .exceptions import (
    AuthCancelled,
    AuthFailed,
    BdfsAuthError,
    BdfsInvalidResponseError,
    BdfsNetworkError,
    CredentialStoreError,
    DeviceCodeExpired,
    TokenRefreshError,
)
from .models import DeviceAuthSession, TokenRecord
from .utils import DEFAULT_API_TIMEOUT, DEFAULT_POLL_INTERVAL, TOKEN_REFRESH_WINDOW

logger = logging.getLogger(__name__)

DEVICE_CODE_URL = "https://openapi.baidu.com/oauth/2.0/device/code"
TOKEN_URL = "https://openapi.baidu.com/oauth/2.0/token"
SCOPE = "basic,netdisk"

# Device codes without an advertised lifetime are assumed to live 30 minutes
DEFAULT_DEVICE_CODE_TTL = 1800

# Token endpoint error codes that mean "keep polling"
PENDING_ERRORS = frozenset({"authorization_pending", "slow_down"})

# Seconds added to the poll interval when the server asks us to slow down
SLOW_DOWN_INCREMENT = 5


class TokenState(Enum):
    """Lifecycle state of the access token."""

    NO_TOKEN = "no_token"
    VALID = "valid"
    EXPIRING_SOON = "expiring_soon"
    EXPIRED = "expired"
    AUTHORIZING = "authorizing"


def _wait_for_event(event: threading.Event, seconds: float) -> bool:
    """Sleep for ``seconds`` or until ``event`` is set.

    Returns:
        True if the event was set
    """
    return event.wait(seconds)


class TokenAuthority:
    """Owns the access/refresh token of one process."""

    def __init__(
        self,
        client_id: str,
        client_secret: str,
        store: CredentialStore,
        http_client: httpx.Client | None = None,
        timeout: float = DEFAULT_API_TIMEOUT,
        refresh_window: float = TOKEN_REFRESH_WINDOW,
        on_device_code: Callable[[DeviceAuthSession], None] | None = None,
        message_callback: Callable[[str], None] | None = None,
        clock: Callable[[], float] = time.monotonic,
        now: Callable[[], datetime] | None = None,
        wait: Callable[[threading.Event, float], bool] = _wait_for_event,
    ):
        """Initialize the token authority.

        Args:
            client_id: OAuth client ID (app key)
            client_secret: OAuth client secret
            store: Credential store holding the token file
            http_client: Optional httpx client for the OAuth endpoints
            timeout: Request timeout in seconds (default: 30.0)
            refresh_window: Tokens expiring within this many seconds are
                refreshed (default: 48 hours)
            on_device_code: Called with the device session so the user can be
                told where to authorize
            message_callback: Optional callback function(message) for user
                notifications about token status
            clock: Monotonic clock used for poll deadlines
            now: Wall clock used for token expiry (defaults to UTC now)
            wait: Interruptible sleep used between polls
        """
        self.client_id = client_id
        self.client_secret = client_secret
        self.store = store
        self.timeout = timeout
        self.refresh_window = refresh_window
        self.on_device_code = on_device_code
        self.message_callback = message_callback
        self._clock = clock
        self._now = now or (lambda: datetime.now(timezone.utc))
        self._wait = wait
        self._http = http_client
        self._record: TokenRecord | None = None
        self._loaded = False
        self._authorizing = False

    # =========================
    # Token state
    # =========================

    @property
    def record(self) -> TokenRecord | None:
        """The token record currently held in memory."""
        return self._record

    @property
    def access_token(self) -> str:
        """Current access token.

        Raises:
            BdfsAuthError: If no token has been obtained yet
        """
        if self._record is None or not self._record.access_token:
            raise BdfsAuthError("No access token, please authorize first")
        return self._record.access_token

    def has_refresh_token(self) -> bool:
        """Whether a refresh token is available."""
        return bool(self._record and self._record.refresh_token)

    def token_state(self, now: datetime | None = None) -> TokenState:
        """Derive the token state from the loaded record and the wall clock."""
        if self._authorizing:
            return TokenState.AUTHORIZING
        if self._record is None:
            return TokenState.NO_TOKEN

        now = now or self._now()
        expires_at = self._record.expires_at
        if expires_at is None or expires_at <= now:
            return TokenState.EXPIRED
        if expires_at < now + timedelta(seconds=self.refresh_window):
            return TokenState.EXPIRING_SOON
        return TokenState.VALID

    def is_expired(self, now: datetime | None = None) -> bool:
        """Check if the token is expired or expires within the refresh window.

        A record without creation time or lifetime counts as expired.
        """
        if self._record is None:
            return True
        now = now or self._now()
        expires_at = self._record.expires_at
        if expires_at is None:
            return True
        return expires_at < now + timedelta(seconds=self.refresh_window)

    def load(self) -> TokenRecord | None:
        """Load the token file into memory (only on the first call).

        Raises:
            CredentialStoreError: If the token file exists but is unreadable
        """
        if not self._loaded:
            self._loaded = True
            self._record = self.store.load()
        return self._record

    # =========================
    # Authorization
    # =========================

    def authorize(self, timeout: float | None = None) -> TokenRecord:
        """Make sure a valid access token is available.

        Uses the stored token when it is valid, refreshes it when it is
        expired or expiring soon, and runs the device-code flow otherwise.

        Args:
            timeout: Seconds to wait for the user to complete device
                authorization (None waits until the device code expires)

        Returns:
            The valid TokenRecord

        Raises:
            AuthFailed: If device authorization fails or the code expires
            AuthCancelled: If ``timeout`` elapses while polling
            CredentialStoreError: If the token file cannot be written
        """
        try:
            record = self.load()
        except CredentialStoreError as e:
            logger.warning(f"Could not load existing tokens, will re-authorize: {e}")
            self._notify(f"Could not load existing tokens, will re-authorize: {e}")
            record = None

        if record is not None:
            state = self.token_state()
            logger.debug(f"Stored token state: {state.value}")
            if state == TokenState.VALID:
                self._notify("Using existing tokens")
                return record

            self._notify(
                "Access token is expired or will expire soon, attempting to refresh..."
            )
            try:
                refreshed = self.refresh()
            except TokenRefreshError as e:
                logger.warning(f"Token refresh failed: {e}")
                self._notify(f"Token refresh failed: {e}")
                self._notify("Removing expired token file and starting new authorization...")
                self.store.delete()
                self._record = None
            else:
                self._notify("Token refreshed successfully!")
                return refreshed

        return self._authorize_with_device_code(timeout)

    def _authorize_with_device_code(self, timeout: float | None) -> TokenRecord:
        """Run the device-code flow and persist the resulting token."""
        self._authorizing = True
        try:
            session = self.request_device_code()
            if self.on_device_code:
                self.on_device_code(session)

            cancel = threading.Event()
            executor = ThreadPoolExecutor(
                max_workers=1, thread_name_prefix="bdfs-auth-poll"
            )
            try:
                future = executor.submit(self.poll_for_token, session, cancel)
                try:
                    record = future.result(timeout=timeout)
                except FuturesTimeoutError:
                    raise AuthCancelled(
                        f"Authorization not completed within {timeout:g} seconds"
                    ) from None
            finally:
                # Stops the poll thread however the wait ended
                cancel.set()
                executor.shutdown(wait=False)

            self.store.save(record)
            self._record = record
            self._loaded = True
        finally:
            self._authorizing = False

        self._notify(f"Authorization successful! Tokens saved to {self.store.token_path}")
        return record

    def request_device_code(self) -> DeviceAuthSession:
        """Start a device-code authorization.

        Raises:
            AuthFailed: If the device code request fails
        """
        params = {
            "client_id": self.client_id,
            "response_type": "device_code",
            "scope": SCOPE,
        }
        try:
            response = self._post_form(DEVICE_CODE_URL, params)
        except BdfsNetworkError as e:
            raise AuthFailed(f"Failed to get device code: {e}") from e

        if response.status_code != 200:
            raise AuthFailed(
                f"Device code request failed with status {response.status_code}: "
                f"{response.text}"
            )
        try:
            return DeviceAuthSession.from_api_response(
                response.json(), default_interval=DEFAULT_POLL_INTERVAL
            )
        except (ValueError, BdfsInvalidResponseError) as e:
            raise AuthFailed(f"Invalid device code response: {e}") from e

    def poll_for_token(
        self,
        session: DeviceAuthSession,
        cancel: threading.Event | None = None,
    ) -> TokenRecord:
        """Poll the token endpoint until the user completes authorization.

        ``authorization_pending`` and ``slow_down`` responses keep the loop
        going; network errors are retried at the poll cadence without
        extending the device code lifetime. The returned record is not
        persisted.

        Raises:
            DeviceCodeExpired: If the device code lifetime elapses
            AuthCancelled: If ``cancel`` is set
            AuthFailed: On any other token endpoint error
        """
        cancel = cancel or threading.Event()
        interval = session.interval or DEFAULT_POLL_INTERVAL
        lifetime = session.expires_in or DEFAULT_DEVICE_CODE_TTL
        deadline = self._clock() + lifetime
        attempt = 0

        while True:
            if cancel.is_set():
                raise AuthCancelled("Device authorization was cancelled")
            if self._clock() > deadline:
                raise DeviceCodeExpired("Device code has expired")

            attempt += 1
            logger.debug(f"Polling for device token (attempt {attempt})")
            try:
                payload = self._request_device_token(session.device_code)
            except BdfsNetworkError as e:
                logger.warning(f"Network error while polling for token: {e}")
                payload = None

            if payload is not None:
                error = payload.get("error")
                if not error:
                    try:
                        return TokenRecord.from_token_response(payload, self._now())
                    except (ValueError, BdfsInvalidResponseError) as e:
                        raise AuthFailed(f"Invalid token response: {e}") from e
                if error == "slow_down":
                    interval += SLOW_DOWN_INCREMENT
                    logger.debug(f"Server asked to slow down, interval now {interval}s")

            remaining = deadline - self._clock()
            if remaining <= 0:
                raise DeviceCodeExpired("Device code has expired")
            if self._wait(cancel, min(interval, remaining)):
                raise AuthCancelled("Device authorization was cancelled")

    def _request_device_token(self, device_code: str) -> dict[str, Any]:
        """Exchange the device code for a token.

        Returns:
            The token payload, or ``{"error": ...}`` while authorization is
            still pending

        Raises:
            AuthFailed: On a non-pending error response
            BdfsNetworkError: On transport failure
        """
        params = {
            "grant_type": "device_token",
            "code": device_code,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        response = self._post_form(TOKEN_URL, params)

        try:
            payload = response.json()
        except ValueError:
            payload = {}
        if not isinstance(payload, dict):
            payload = {}

        error = payload.get("error")
        if error in PENDING_ERRORS:
            logger.debug(f"Token endpoint returned {error}")
            return {"error": error}

        if response.status_code != 200 or error:
            raise AuthFailed(
                f"Token request failed with status {response.status_code}: "
                f"{response.text}"
            )
        return payload

    def refresh(self) -> TokenRecord:
        """Exchange the refresh token for a new access token.

        On success the in-memory and the stored record are replaced. On
        failure the in-memory record is left untouched.

        Raises:
            TokenRefreshError: If there is no refresh token or the exchange fails
            CredentialStoreError: If the new token cannot be saved
        """
        current = self._record
        if current is None or not current.refresh_token:
            raise TokenRefreshError("No refresh token available")

        params = {
            "grant_type": "refresh_token",
            "refresh_token": current.refresh_token,
            "client_id": self.client_id,
            "client_secret": self.client_secret,
        }
        try:
            response = self._post_form(TOKEN_URL, params)
        except BdfsNetworkError as e:
            raise TokenRefreshError(str(e)) from e

        if response.status_code != 200:
            raise TokenRefreshError(
                f"Token refresh failed with status {response.status_code}: "
                f"{response.text}"
            )
        try:
            payload = response.json()
            record = TokenRecord.from_token_response(payload, self._now())
        except (ValueError, AttributeError, BdfsInvalidResponseError) as e:
            raise TokenRefreshError(f"Refresh returned an invalid token: {e}") from e

        if not record.refresh_token:
            record.refresh_token = current.refresh_token
        if not record.account_id:
            record.account_id = current.account_id

        self.store.save(record)
        self._record = record
        logger.debug("Access token refreshed")
        return record

    # =========================
    # Helpers
    # =========================

    def _get_http(self) -> httpx.Client:
        """Get or create the httpx client for the OAuth endpoints."""
        if self._http is None or self._http.is_closed:
            self._http = httpx.Client(timeout=httpx.Timeout(self.timeout))
        return self._http

    def _post_form(self, url: str, params: dict[str, str]) -> httpx.Response:
        """POST form-encoded parameters.

        Raises:
            BdfsNetworkError: On transport failure
        """
        try:
            return self._get_http().post(
                url,
                data=params,
                headers={"Content-Type": "application/x-www-form-urlencoded"},
            )
        except httpx.RequestError as e:
            raise BdfsNetworkError(f"Network error: {e}") from e

    def _notify(self, message: str) -> None:
        if self.message_callback:
            self.message_callback(message)

    def close(self) -> None:
        """Close the OAuth http client."""
        if self._http is not None and not self._http.is_closed:
            self._http.close()
        self._http = None
