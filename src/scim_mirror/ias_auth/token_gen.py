"""Module for generating identity directory access tokens.

NOTE: This module only handles token generation (OAuth2 Client Credentials flow).
Token caching is handled by the TokenManager class in token_manager.py.
"""

import base64
from datetime import datetime
from datetime import timedelta
from datetime import timezone
from typing import Tuple

import requests

from scim_mirror.exceptions import TokenError

# Used when the token response omits expires_in
DEFAULT_EXPIRES_IN_SECONDS = 300

TOKEN_REQUEST_TIMEOUT_SECONDS = 30


def get_auth_token(
    token_url: str,
    client_id: str,
    client_secret: str,
    exec_time_utc: datetime,
) -> Tuple[str, datetime]:
    """
    Generate an access token for the directory SCIM API.

    Parameters
    ----------
    token_url : str
        OAuth2 token endpoint
    client_id : str
        OAuth2 client ID
    client_secret : str
        OAuth2 client secret
    exec_time_utc : datetime
        Current execution time in UTC, used as the base for the expiry

    Returns
    -------
    Tuple[str, datetime]
        A tuple containing:
        - access_token: The OAuth access token
        - expires_at_utc: Expiration time as datetime object in UTC

    Raises
    ------
    TokenError
        If token generation fails for any reason
    """
    credentials = f"{client_id}:{client_secret}"
    encoded_credentials = base64.b64encode(credentials.encode("utf-8")).decode()

    headers = {
        "Authorization": f"Basic {encoded_credentials}",
        "Content-Type": "application/x-www-form-urlencoded",
        "Accept": "application/json",
    }

    try:
        response = requests.post(
            token_url,
            headers=headers,
            data={"grant_type": "client_credentials"},
            timeout=TOKEN_REQUEST_TIMEOUT_SECONDS,
        )
    except requests.exceptions.RequestException as e:
        raise TokenError(f"Network error during token request: {e}") from e

    if response.status_code // 100 != 2:
        raise TokenError(f"Token request failed with status {response.status_code}: {response.text}")

    try:
        token_data = response.json()
    except ValueError as e:
        raise TokenError(f"Failed to parse token response as JSON: {e}") from e

    access_token = token_data.get("access_token")
    if not access_token or not str(access_token).strip():
        raise TokenError("Access token not found in response")

    expires_in = token_data.get("expires_in") or DEFAULT_EXPIRES_IN_SECONDS
    expires_at_utc = exec_time_utc.astimezone(timezone.utc) + timedelta(seconds=int(expires_in))

    return access_token, expires_at_utc
