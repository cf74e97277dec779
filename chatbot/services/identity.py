"""Firebase Authentication sign-in (anonymous or custom token).

The process signs in once at startup through the Identity Toolkit REST API.
A failed sign-in leaves the session ready but without an identity, so the
service keeps running in a degraded state instead of hanging at startup.
"""

from __future__ import annotations

import logging
from typing import Optional

import requests
from google.auth import jwt

from ..exceptions import AuthError
from ..models import Session

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"


class SessionIdentityProvider:
    def __init__(
        self,
        api_key: str,
        initial_auth_token: Optional[str] = None,
        timeout: float = 10.0,
    ) -> None:
        self.api_key = api_key
        self.initial_auth_token = initial_auth_token
        self.timeout = timeout
        self._session = Session()

    @property
    def session(self) -> Session:
        return self._session

    def sign_in(self) -> Session:
        """Signs in once; later calls return the same session."""
        if self._session.ready:
            return self._session

        identity: Optional[str] = None
        try:
            if self.initial_auth_token:
                identity = self._sign_in_with_custom_token(self.initial_auth_token)
            else:
                identity = self._sign_in_anonymously()
            logger.info("Signed in as %s", identity)
        except AuthError as exc:
            logger.error(f"Error signing in: {exc}")

        self._session = Session(identity=identity, ready=True)
        return self._session

    # ------------------------------------------------------------------ #
    # Identity Toolkit calls
    # ------------------------------------------------------------------ #
    def _post(self, method: str, payload: dict) -> dict:
        if not self.api_key:
            raise AuthError("No Firebase apiKey configured")

        try:
            resp = requests.post(
                f"{IDENTITY_TOOLKIT_URL}/accounts:{method}",
                params={"key": self.api_key},
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as exc:
            raise AuthError(f"{method} request failed: {exc}") from exc

        if resp.status_code != 200:
            try:
                detail = resp.json().get("error", {}).get("message", resp.text)
            except ValueError:
                detail = resp.text
            raise AuthError(f"{method} rejected ({resp.status_code}): {detail}")

        try:
            data = resp.json()
        except ValueError as exc:
            raise AuthError(f"{method} returned a non-JSON body") from exc
        if not isinstance(data, dict):
            raise AuthError(f"{method} returned unexpected JSON: {data!r}")
        return data

    def _sign_in_anonymously(self) -> str:
        data = self._post("signUp", {"returnSecureToken": True})
        uid = data.get("localId")
        if not uid:
            raise AuthError("signUp response carried no localId")
        return uid

    def _sign_in_with_custom_token(self, token: str) -> str:
        data = self._post("signInWithCustomToken", {"token": token, "returnSecureToken": True})
        id_token = data.get("idToken")
        if not id_token:
            raise AuthError("signInWithCustomToken response carried no idToken")

        # Token was just issued to us by Google over TLS; only the uid claim is needed.
        try:
            claims = jwt.decode(id_token, verify=False)
        except ValueError as exc:
            raise AuthError(f"Could not decode idToken: {exc}") from exc

        uid = claims.get("user_id") or claims.get("sub")
        if not uid:
            raise AuthError("idToken carried no user id")
        return uid
