"""Centralized token management with in-memory caching for directory authentication.

The token is generated on first use and cached in memory until it is about to
expire. It is never read from or written to environment variables or files.
"""

import threading
from datetime import datetime
from datetime import timezone
from typing import Optional
from typing import Tuple

from loguru import logger

from scim_mirror.ias_auth.token_gen import get_auth_token


class TokenManager:
    """
    Thread-safe token manager that caches directory OAuth tokens in memory.

    The validity check and the refresh both happen under one lock, so at most one
    token request is outstanding at a time: callers arriving while a refresh is in
    flight block on the lock and then reuse the token it produced.

    Attributes
    ----------
    _token : Optional[str]
        The currently cached OAuth access token (in-memory only)
    _expires_at : Optional[datetime]
        The expiration time of the cached token (in-memory only)
    _lock : threading.Lock
        Lock serializing token checks and refreshes
    """

    def __init__(
        self,
        token_url: str,
        client_id: str,
        client_secret: str,
        refresh_margin_seconds: int = 30,
    ):
        """
        Initialize the token manager with credentials.

        The token is NOT generated at initialization. It will be generated
        on the first call to get_token(). This is lazy initialization.
        """
        self.token_url = token_url
        self.client_id = client_id
        self.client_secret = client_secret
        self.refresh_margin_seconds = refresh_margin_seconds

        self._token: Optional[str] = None
        self._expires_at: Optional[datetime] = None
        self._lock = threading.Lock()

        logger.info("TokenManager initialized (in-memory caching, no external storage)")

    def get_token(self) -> Tuple[str, datetime]:
        """
        Get a valid access token.

        Returns the cached token while it expires in more than refresh_margin_seconds,
        otherwise requests a new one.

        Returns
        -------
        Tuple[str, datetime]
            (access_token, expires_at_utc)
        """
        with self._lock:
            now_utc = datetime.now(timezone.utc)

            if self._token and self._expires_at:
                time_until_expiry = (self._expires_at - now_utc).total_seconds()

                if time_until_expiry > self.refresh_margin_seconds:
                    logger.debug(
                        "Reusing cached token",
                        expires_in_seconds=int(time_until_expiry),
                    )
                    return self._token, self._expires_at

                logger.info(
                    "Cached token expires soon, generating new token",
                    expires_in_seconds=int(time_until_expiry),
                )

            logger.info("Generating new directory access token")
            token, expires_at = get_auth_token(
                self.token_url,
                self.client_id,
                self.client_secret,
                now_utc,
            )

            self._token = token
            self._expires_at = expires_at

            logger.info(
                "New token cached successfully",
                expires_at=expires_at.isoformat(),
            )

            return token, expires_at

    @property
    def cached_token(self) -> Optional[str]:
        """Get the currently cached token (if any)."""
        return self._token

    @property
    def cached_expiry(self) -> Optional[datetime]:
        """Get the expiry time of the cached token (if any)."""
        return self._expires_at

    def is_token_valid(self) -> bool:
        """True if a token is cached and expires in more than refresh_margin_seconds."""
        if not self._token or not self._expires_at:
            return False

        now_utc = datetime.now(timezone.utc)
        time_until_expiry = (self._expires_at - now_utc).total_seconds()
        return time_until_expiry > self.refresh_margin_seconds

    def invalidate_token(self, token: Optional[str] = None) -> bool:
        """
        Invalidate the cached token.

        Forces a new token on the next get_token() call, e.g. after the directory
        answered 401 to a request made with the cached token.

        Parameters
        ----------
        token : Optional[str]
            The token the rejected request carried. When given, the cache is only
            cleared if it still holds that token, so a token refreshed by another
            caller in the meantime survives.

        Returns
        -------
        bool
            True if the cached token was dropped
        """
        with self._lock:
            if token is not None and token != self._token:
                logger.debug("Cached token already replaced, not invalidating")
                return False
            logger.info("Token invalidated")
            self._token = None
            self._expires_at = None
            return True
