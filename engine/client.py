"""
Trifle HTTP Client

Handles all communication with the Trifle snake backend via HTTP.
Manages the bearer token, request headers and the error taxonomy the
autoplay daemon relies on.
"""

import json
import logging
import os
import time
from typing import Any, Dict, List, Optional

import requests

logger = logging.getLogger(__name__)

AUTH_MISSING = 'AUTH_MISSING'
AUTH_EXPIRED = 'AUTH_EXPIRED'
AUTH_ERRORS = (AUTH_MISSING, AUTH_EXPIRED)


class GameServerError(Exception):
    """Backend answered with an error status"""

    def __init__(self, message: str, status: Optional[int] = None, body: str = ""):
        super().__init__(message)
        self.status = status
        self.body = body


class AuthError(GameServerError):
    """No token, or the backend rejected it (401/403)"""

    def __init__(self, code: str, message: str = "", status: Optional[int] = None):
        super().__init__(message or code, status=status)
        self.code = code


class RateLimitedError(GameServerError):
    """HTTP 429; retry_after is how long the backend wants us to wait"""

    def __init__(self, message: str, retry_after: float, body: str = ""):
        super().__init__(message, status=429, body=body)
        self.retry_after = retry_after


class VoteConflictError(GameServerError):
    """The direction we voted for is already the active one"""


class TrifleClient:
    """HTTP client for the Trifle snake backend"""

    def __init__(self, server_url: str, auth_file: Optional[str] = None,
                 token: Optional[str] = None, timeout: int = 15,
                 token_cache_seconds: int = 60, origin: str = 'https://trifle.life',
                 rate_limit_backoff: float = 30.0):
        """
        Initialize Trifle client.

        Args:
            server_url: Base URL of the backend (e.g., https://bot.trifle.life)
            auth_file: JSON file holding {"token": "..."}
            token: Explicit token; wins over auth_file when set
            timeout: Seconds per request
            token_cache_seconds: How long a token read from auth_file is trusted
        """
        self.server_url = server_url.rstrip('/')
        self.auth_file = auth_file
        self.explicit_token = token or None
        self.timeout = timeout
        self.token_cache_seconds = token_cache_seconds
        self.rate_limit_backoff = rate_limit_backoff
        self.session = requests.Session()
        self.session.headers.update({
            'Content-Type': 'application/json',
            'Origin': origin,
            'Referer': origin.rstrip('/') + '/',
        })

        self._cached_token: Optional[str] = None
        self._token_loaded_at = 0.0

        logger.info(f"Trifle client initialized for {self.server_url}")

    # ------------------------------------------------------------------
    # Token handling
    # ------------------------------------------------------------------

    def load_token(self) -> Optional[str]:
        """Explicit token first, then auth_file (cached for token_cache_seconds)"""
        if self.explicit_token:
            return self.explicit_token

        now = time.time()
        if self._cached_token and (now - self._token_loaded_at) < self.token_cache_seconds:
            return self._cached_token

        if not self.auth_file or not os.path.exists(self.auth_file):
            return None

        try:
            with open(self.auth_file, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, ValueError) as e:
            logger.warning(f"Could not read auth file {self.auth_file}: {e}")
            return None

        self._cached_token = (data or {}).get('token') or None
        self._token_loaded_at = now
        return self._cached_token

    def clear_token_cache(self):
        self._cached_token = None
        self._token_loaded_at = 0.0

    def is_authenticated(self) -> bool:
        return bool(self.load_token())

    # ------------------------------------------------------------------
    # Requests
    # ------------------------------------------------------------------

    def _request(self, method: str, path: str, **kwargs) -> Any:
        """Plain request; raises GameServerError subclasses on error status"""
        url = f"{self.server_url}{path}"
        response = self.session.request(method, url, timeout=self.timeout, **kwargs)

        if response.status_code == 429:
            retry_after = self._retry_after(response)
            raise RateLimitedError(f"API 429: {response.text[:200]}", retry_after, body=response.text)

        if not response.ok:
            text = response.text
            if response.status_code == 409 or 'already active' in text.lower():
                raise VoteConflictError(f"API {response.status_code}: {text[:200]}",
                                        status=response.status_code, body=text)
            raise GameServerError(f"API {response.status_code}: {text[:200]}",
                                  status=response.status_code, body=text)

        try:
            return response.json()
        except ValueError:
            raise GameServerError(f"Invalid JSON from {path}", status=response.status_code,
                                  body=response.text)

    def _retry_after(self, response) -> float:
        try:
            return float(response.headers.get('Retry-After'))
        except (TypeError, ValueError):
            return self.rate_limit_backoff

    def _auth_request(self, method: str, path: str, **kwargs) -> Any:
        """Authenticated request; raises AuthError when signed out or rejected"""
        token = self.load_token()
        if not token:
            raise AuthError(AUTH_MISSING, "Not authenticated")

        headers = dict(kwargs.pop('headers', None) or {})
        headers['Authorization'] = f"Bearer {token}"
        try:
            return self._request(method, path, headers=headers, **kwargs)
        except GameServerError as e:
            if e.status in (401, 403):
                self.clear_token_cache()
                raise AuthError(AUTH_EXPIRED, "Token expired", status=e.status)
            raise

    # ------------------------------------------------------------------
    # API
    # ------------------------------------------------------------------

    def get_game_state(self) -> Dict[str, Any]:
        """
        Current raw game snapshot.

        Auth problems are returned, not raised:
        {'error': 'AUTH_MISSING'|'AUTH_EXPIRED', 'message': ...}
        """
        try:
            result = self._auth_request('GET', '/snake/state')
        except AuthError as e:
            logger.warning(f"Auth error fetching state: {e.code}")
            return {'error': e.code, 'message': str(e)}

        if isinstance(result, dict) and 'gameState' in result:
            return result['gameState'] or {}
        return result or {}

    def get_balance(self) -> float:
        """Ball balance; 0 when it can't be read"""
        try:
            result = self._auth_request('GET', '/balls')
        except (GameServerError, requests.RequestException) as e:
            logger.warning(f"Balance request failed: {e}")
            return 0

        if not isinstance(result, dict):
            return 0
        balance = result.get('balls')
        if balance is None:
            balance = result.get('totalBalls', 0)
        return balance or 0

    def submit_vote(self, direction: str, team: str, amount: float) -> Dict[str, Any]:
        """
        Submit a vote.

        Raises:
            VoteConflictError: direction already active (benign)
            RateLimitedError: backend wants us to slow down
            AuthError: token missing or rejected
            GameServerError: any other error status
            requests.RequestException: transport failure
        """
        logger.info(f"📤 Submitting vote: {direction} for {team} x{amount}")
        return self._auth_request(
            'POST', '/snake/vote',
            data=json.dumps({'direction': direction, 'team': team, 'amount': amount}),
        )

    def get_rodeos(self) -> List[Dict[str, Any]]:
        """Rodeo configurations (public endpoint)"""
        result = self._request('GET', '/snake/rodeos')
        if isinstance(result, list):
            return result
        return (result or {}).get('rodeos', [])

    def close(self):
        self.session.close()
