# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
"""
Firebase Auth access through the Identity Toolkit and Secure Token REST APIs.

The provider owns the live auth session. Principals handed out to callers are
snapshots; anything that needs the current user must ask the provider again.
"""

from __future__ import annotations

import json
import logging
import threading
import time
from dataclasses import asdict, dataclass, field, replace
from enum import Enum
from pathlib import Path
from typing import Any, Callable, Optional, Protocol, Sequence
from urllib.parse import urlencode

import requests

from wheel_backend.errors import AuthError, BestEffortStatus, TransportError

logger = logging.getLogger(__name__)

IDENTITY_TOOLKIT_URL = "https://identitytoolkit.googleapis.com/v1"
SECURE_TOKEN_URL = "https://securetoken.googleapis.com/v1/token"
# Matches the Firebase SDKs: refresh when less than five minutes remain.
TOKEN_REFRESH_MARGIN_SECONDS = 300
IDP_REQUEST_URI = "http://localhost"

SHEETS_SCOPES = ("https://www.googleapis.com/auth/spreadsheets.readonly",)


class SignInProvider(str, Enum):
    GOOGLE = "google.com"
    FACEBOOK = "facebook.com"
    TWITTER = "twitter.com"
    EMAIL = "password"


PROVIDERS = {
    "google": SignInProvider.GOOGLE,
    "facebook": SignInProvider.FACEBOOK,
    "twitter": SignInProvider.TWITTER,
    "email": SignInProvider.EMAIL,
}
DEFAULT_PROVIDER = SignInProvider.GOOGLE


def get_provider(provider_name: Optional[str]) -> SignInProvider:
    """Unknown provider names fall back to Google."""
    return PROVIDERS.get((provider_name or "").strip().lower(), DEFAULT_PROVIDER)


def login_locale(provider: SignInProvider, locale: Optional[str]) -> Optional[str]:
    """
    Returns the language code the provider's sign-in page understands.

    Twitter only takes a bare language ("pt"), Facebook expects "pt_BR" and the
    other providers take the app locale unchanged ("pt-BR").
    """
    if not locale:
        return None
    language, _, region = locale.replace("_", "-").partition("-")
    if provider is SignInProvider.TWITTER:
        return language.lower()
    if provider is SignInProvider.FACEBOOK:
        return f"{language.lower()}_{region.upper()}" if region else language.lower()
    return locale


@dataclass
class ProviderCredential:
    """Credential produced by an interactive sign-in with a provider."""

    provider: Optional[SignInProvider] = None
    id_token: Optional[str] = None
    access_token: Optional[str] = None
    # Twitter (OAuth 1.0) only.
    oauth_token_secret: Optional[str] = None
    email: Optional[str] = None
    password: Optional[str] = None


class CredentialPrompt(Protocol):
    """Interactive flow; returns None when the user cancels."""

    def __call__(
        self,
        provider: SignInProvider,
        language_code: Optional[str],
        scopes: Sequence[str],
    ) -> Optional[ProviderCredential]:
        ...


@dataclass
class SignInOption:
    provider: SignInProvider
    custom_parameters: dict = field(default_factory=dict)


@dataclass
class AuthUiConfig:
    sign_in_options: list[SignInOption]
    tos_url: str
    privacy_policy_url: str
    sign_in_flow: str = "popup"


def default_auth_ui_config(tos_url: str, privacy_policy_url: str) -> AuthUiConfig:
    return AuthUiConfig(
        sign_in_options=[
            SignInOption(
                SignInProvider.GOOGLE, custom_parameters={"prompt": "select_account"}
            ),
            SignInOption(SignInProvider.TWITTER),
            SignInOption(SignInProvider.EMAIL),
        ],
        tos_url=tos_url,
        privacy_policy_url=privacy_policy_url,
    )


class AuthWidget(Protocol):
    """Third-party sign-in widget mounted into a named container."""

    def start(
        self, container_id: str, config: AuthUiConfig
    ) -> Optional[ProviderCredential]:
        ...


@dataclass
class AuthSession:
    uid: str
    id_token: str
    refresh_token: str
    expires_at: float
    is_anonymous: bool = False
    email: Optional[str] = None
    display_name: Optional[str] = None
    provider_id: Optional[str] = None
    oauth_access_token: Optional[str] = None


class CallerKind(str, Enum):
    REGISTERED = "REGISTERED"
    ANONYMOUS = "ANONYMOUS"
    ABSENT = "ABSENT"


@dataclass(frozen=True)
class ResolvedCaller:
    """Who is calling, resolved once per backend operation."""

    kind: CallerKind
    uid: Optional[str] = None

    @property
    def present(self) -> bool:
        return self.kind is not CallerKind.ABSENT

    @classmethod
    def absent(cls) -> "ResolvedCaller":
        return cls(CallerKind.ABSENT)


@dataclass
class Principal:
    """Snapshot of the signed-in (or anonymous) user."""

    uid: str
    is_anonymous: bool
    email: Optional[str] = None
    display_name: Optional[str] = None
    provider_id: Optional[str] = None
    oauth_access_token: Optional[str] = field(default=None, repr=False)
    _provider: Optional["IdentityProvider"] = field(
        default=None, repr=False, compare=False
    )

    def get_id_token(self, force_refresh: bool = False) -> Optional[str]:
        """Fresh token for this user, or None once another user took over."""
        if self._provider is None:
            return None
        current = self._provider.resolve_caller()
        if current.uid != self.uid:
            return None
        return self._provider.get_token(force_refresh=force_refresh)


class IdentityProvider:
    """Firebase Auth session for the current process."""

    def __init__(
        self,
        api_key: Optional[str],
        *,
        session: Optional[requests.Session] = None,
        timeout: int = 30,
        session_path: Optional[str] = None,
        clock: Callable[[], float] = time.time,
    ):
        self.api_key = api_key
        self.timeout = timeout
        self.language_code: Optional[str] = None
        self._http = session or requests.Session()
        self._session_path = Path(session_path) if session_path else None
        self._clock = clock
        self._lock = threading.RLock()
        self._auth: Optional[AuthSession] = self._restore_session()

    # -- current user -------------------------------------------------------

    def is_logged_in(self) -> bool:
        return self.current_user() is not None

    def current_user(self) -> Optional[Principal]:
        with self._lock:
            auth = self._auth
        if auth is None:
            return None
        return Principal(
            uid=auth.uid,
            is_anonymous=auth.is_anonymous,
            email=auth.email,
            display_name=auth.display_name,
            provider_id=auth.provider_id,
            oauth_access_token=auth.oauth_access_token,
            _provider=self,
        )

    def resolve_caller(self) -> ResolvedCaller:
        with self._lock:
            auth = self._auth
        if auth is None:
            return ResolvedCaller.absent()
        kind = CallerKind.ANONYMOUS if auth.is_anonymous else CallerKind.REGISTERED
        return ResolvedCaller(kind, auth.uid)

    def get_token(self, force_refresh: bool = False) -> Optional[str]:
        with self._lock:
            auth = self._auth
        if auth is None:
            return None
        if force_refresh or auth.expires_at - self._clock() < TOKEN_REFRESH_MARGIN_SECONDS:
            auth = self._refresh(auth)
        return auth.id_token if auth else None

    # -- sign in / out ------------------------------------------------------

    def sign_in(
        self,
        provider_name: Optional[str],
        locale: Optional[str],
        credential_prompt: CredentialPrompt,
        scopes: Sequence[str] = (),
    ) -> Principal:
        provider = get_provider(provider_name)
        self.language_code = login_locale(provider, locale)
        try:
            credential = credential_prompt(provider, self.language_code, tuple(scopes))
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(f"Sign-in with {provider.value} failed: {e}") from e
        if credential is None:
            raise AuthError("Sign-in was cancelled")
        if credential.provider is None:
            credential.provider = provider
        return self.sign_in_with_credential(credential)

    def start_auth_ui(
        self, container_id: str, widget: AuthWidget, config: AuthUiConfig
    ) -> Principal:
        try:
            credential = widget.start(container_id, config)
        except AuthError:
            raise
        except Exception as e:
            raise AuthError(f"Sign-in widget failed: {e}") from e
        if credential is None:
            raise AuthError("Sign-in was cancelled")
        return self.sign_in_with_credential(credential)

    def sign_in_with_credential(self, credential: ProviderCredential) -> Principal:
        provider = credential.provider or DEFAULT_PROVIDER
        if provider is SignInProvider.EMAIL:
            if not credential.email or not credential.password:
                raise AuthError("Email sign-in requires an email and a password")
            payload = self._call_identity_toolkit(
                "accounts:signInWithPassword",
                {
                    "email": credential.email,
                    "password": credential.password,
                    "returnSecureToken": True,
                },
            )
        else:
            post_body = {"providerId": provider.value}
            if credential.id_token:
                post_body["id_token"] = credential.id_token
            if credential.access_token:
                post_body["access_token"] = credential.access_token
            if credential.oauth_token_secret:
                post_body["oauth_token_secret"] = credential.oauth_token_secret
            if len(post_body) == 1:
                raise AuthError(f"No credential returned by {provider.value}")
            payload = self._call_identity_toolkit(
                "accounts:signInWithIdp",
                {
                    "postBody": urlencode(post_body),
                    "requestUri": IDP_REQUEST_URI,
                    "returnSecureToken": True,
                    "returnIdpCredential": True,
                },
            )
        principal = self._start_session(payload, is_anonymous=False)
        logger.info("Signed in with %s", provider.value)
        return principal

    def sign_in_anonymously(self) -> Principal:
        payload = self._call_identity_toolkit(
            "accounts:signUp", {"returnSecureToken": True}
        )
        principal = self._start_session(payload, is_anonymous=True)
        logger.info("Signed in anonymously")
        return principal

    def sign_out(self) -> BestEffortStatus:
        with self._lock:
            was_signed_in = self._auth is not None
            self._auth = None
        if not self._clear_saved_session():
            return BestEffortStatus.FAILED
        return BestEffortStatus.SUCCEEDED if was_signed_in else BestEffortStatus.SKIPPED

    # -- internals ----------------------------------------------------------

    def _call_identity_toolkit(self, method: str, body: dict) -> dict:
        headers = {"Content-Type": "application/json"}
        if self.language_code:
            headers["X-Firebase-Locale"] = self.language_code
        try:
            response = self._http.post(
                f"{IDENTITY_TOOLKIT_URL}/{method}",
                params={"key": self.api_key},
                headers=headers,
                json=body,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"Auth request {method} failed: {e}") from e
        payload = _json_or_empty(response)
        if response.status_code >= 400 or "error" in payload:
            raise AuthError(_auth_error_message(payload, response.status_code))
        return payload

    def _start_session(self, payload: dict, *, is_anonymous: bool) -> Principal:
        auth = AuthSession(
            uid=payload["localId"],
            id_token=payload["idToken"],
            refresh_token=payload["refreshToken"],
            expires_at=self._clock() + int(payload.get("expiresIn", 3600)),
            is_anonymous=is_anonymous,
            email=payload.get("email"),
            display_name=payload.get("displayName"),
            provider_id=payload.get("providerId"),
            oauth_access_token=payload.get("oauthAccessToken"),
        )
        with self._lock:
            self._auth = auth
        self._save_session(auth)
        return self.current_user()

    def _refresh(self, auth: AuthSession) -> Optional[AuthSession]:
        """
        Exchanges the refresh token without holding the lock, then installs the
        result only if `auth` is still the live session. Otherwise the live
        session, if any, is returned.
        """
        try:
            response = self._http.post(
                SECURE_TOKEN_URL,
                params={"key": self.api_key},
                data={"grant_type": "refresh_token", "refresh_token": auth.refresh_token},
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"Token refresh failed: {e}") from e
        payload = _json_or_empty(response)
        if response.status_code >= 400 or "error" in payload:
            # Revoked or disabled accounts end the session.
            logger.warning(
                "Token refresh rejected, signing out: %s",
                _auth_error_message(payload, response.status_code),
            )
            with self._lock:
                if self._auth is not auth:
                    return self._auth
                self._auth = None
            self._clear_saved_session()
            return None
        refreshed = replace(
            auth,
            id_token=payload["id_token"],
            refresh_token=payload.get("refresh_token", auth.refresh_token),
            expires_at=self._clock() + int(payload.get("expires_in", 3600)),
        )
        with self._lock:
            if self._auth is not auth:
                # Replaced while the refresh was in flight; the live session wins.
                return self._auth
            self._auth = refreshed
        self._save_session(refreshed)
        return refreshed

    def _clear_saved_session(self) -> bool:
        if self._session_path is None:
            return True
        try:
            self._session_path.unlink(missing_ok=True)
        except OSError as e:
            logger.warning("Could not remove saved auth session: %s", e)
            return False
        return True

    def _save_session(self, auth: AuthSession) -> None:
        if self._session_path is None:
            return
        try:
            self._session_path.parent.mkdir(parents=True, exist_ok=True)
            self._session_path.write_text(json.dumps(asdict(auth)), encoding="utf-8")
        except OSError as e:
            logger.warning("Could not save auth session: %s", e)

    def _restore_session(self) -> Optional[AuthSession]:
        if self._session_path is None or not self._session_path.exists():
            return None
        try:
            data = json.loads(self._session_path.read_text(encoding="utf-8"))
            return AuthSession(**data)
        except (OSError, ValueError, TypeError) as e:
            logger.warning("Ignoring unreadable auth session: %s", e)
            return None


def _json_or_empty(response: requests.Response) -> dict:
    try:
        payload = response.json()
    except ValueError:
        return {}
    return payload if isinstance(payload, dict) else {}


def _auth_error_message(payload: dict, status_code: int) -> str:
    error: Any = payload.get("error")
    if isinstance(error, dict):
        return error.get("message") or f"HTTP {status_code}"
    if error:
        return str(error)
    return f"HTTP {status_code}"
