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
Single entry point the application uses to reach its cloud state.

Every public method passes the basic-mode gate first, then routes to the
Firestore store, the Cloud Functions gateway, or the identity provider.
"""

from __future__ import annotations

from typing import Any, Iterable, Optional

from wheel_backend.errors import AuthError, BestEffortStatus, TransportError
from wheel_backend.gateway import FunctionGateway
from wheel_backend.identity import (
    SHEETS_SCOPES,
    AuthUiConfig,
    AuthWidget,
    CallerKind,
    CredentialPrompt,
    IdentityProvider,
    Principal,
    ResolvedCaller,
)
from wheel_backend.loader import BackendLoader
from wheel_backend.mode import BackendMode, OperationKind, gated
from wheel_backend.store import WheelStore
from wheel_backend.types import Admin, SavedWheel, SharedWheelRecord

READ = OperationKind.READ
MUTATE = OperationKind.MUTATE

SIGN_IN = "Signing in"
SAVED_WHEELS = "Saving wheels"
SHARING = "Sharing wheels"
REVIEW = "Wheel review"
ADMINS = "Admin management"


class WheelBackend:
    def __init__(
        self,
        loader: BackendLoader,
        gateway: FunctionGateway,
        *,
        mode: BackendMode,
        auth_ui_config: Optional[AuthUiConfig] = None,
        auth_widget: Optional[AuthWidget] = None,
        credential_prompt: Optional[CredentialPrompt] = None,
    ):
        self._mode = mode
        self.loader = loader
        self.gateway = gateway
        self.auth_ui_config = auth_ui_config
        self.auth_widget = auth_widget
        self.credential_prompt = credential_prompt

    @property
    def mode(self) -> BackendMode:
        return self._mode

    @property
    def _store(self) -> WheelStore:
        return self.loader.handle.store

    @property
    def _identity(self) -> IdentityProvider:
        return self.loader.handle.identity

    def _caller(self) -> ResolvedCaller:
        return self._identity.resolve_caller()

    def _id_token(self) -> Optional[str]:
        return self._identity.get_token()

    def _require_owner(self, feature: str) -> str:
        """
        Owner-scoped mutations need a caller; without one they fail before
        touching the store instead of writing under a missing owner.
        """
        caller = self._caller()
        if not caller.present:
            raise AuthError(f"{feature} requires a signed-in user")
        return caller.uid

    # -- initialization -------------------------------------------------------

    @gated(READ, "Cloud backend")
    def load_libraries(self) -> None:
        """Initializes the cloud backend; safe to call any number of times."""

    # -- identity -------------------------------------------------------------

    @gated(READ, SIGN_IN, default=False)
    def user_is_logged_in(self) -> bool:
        return self._identity.is_logged_in()

    @gated(READ, SIGN_IN)
    def get_logged_in_user(self) -> Optional[Principal]:
        return self._identity.current_user()

    @gated(READ, SIGN_IN)
    def get_user_id_token(self) -> Optional[str]:
        return self._id_token()

    @gated(READ, SIGN_IN)
    def get_uid(self) -> Optional[str]:
        return self._caller().uid

    @gated(READ, SIGN_IN)
    def get_anonymous_token_id(self) -> Optional[str]:
        if self._caller().kind is not CallerKind.ANONYMOUS:
            return None
        return self._id_token()

    @gated(MUTATE, SIGN_IN)
    def load_auth_user_interface(
        self, container_id: str, widget: Optional[AuthWidget] = None
    ) -> Principal:
        """Mounts the sign-in widget into `container_id` and waits for the user."""
        widget = widget or self.auth_widget
        if widget is None:
            raise ValueError("No sign-in widget configured")
        return self._identity.start_auth_ui(container_id, widget, self.auth_ui_config)

    @gated(MUTATE, SIGN_IN)
    def log_in(
        self,
        provider_name: str,
        locale: Optional[str] = None,
        credential_prompt: Optional[CredentialPrompt] = None,
    ) -> Principal:
        return self._identity.sign_in(
            provider_name, locale, self._prompt(credential_prompt)
        )

    @gated(MUTATE, SIGN_IN)
    def log_in_anonymously(self) -> Principal:
        return self._identity.sign_in_anonymously()

    @gated(MUTATE, "Google Sheets import")
    def log_in_to_sheets(
        self,
        locale: Optional[str] = None,
        credential_prompt: Optional[CredentialPrompt] = None,
    ) -> Principal:
        return self._identity.sign_in(
            "google", locale, self._prompt(credential_prompt), scopes=SHEETS_SCOPES
        )

    @gated(READ, SIGN_IN, default=BestEffortStatus.SKIPPED)
    def log_out(self) -> BestEffortStatus:
        return self._identity.sign_out()

    def _prompt(self, credential_prompt: Optional[CredentialPrompt]) -> CredentialPrompt:
        prompt = credential_prompt or self.credential_prompt
        if prompt is None:
            raise ValueError("No credential prompt configured")
        return prompt

    # -- saved wheels ---------------------------------------------------------

    @gated(READ, "Activity logging")
    def log_user_activity(self) -> None:
        caller = self._caller()
        if caller.present:
            self._store.log_user_activity(caller.uid)

    @gated(READ, SAVED_WHEELS, default=list)
    def get_wheels(self) -> list[SavedWheel]:
        caller = self._caller()
        if not caller.present:
            return []
        return self._store.list_saved_wheels(caller.uid)

    @gated(MUTATE, SAVED_WHEELS)
    def save_wheel(self, config: dict) -> None:
        self._store.save_wheel(self._require_owner(SAVED_WHEELS), config)

    @gated(MUTATE, SAVED_WHEELS)
    def delete_saved_wheel(self, title: str) -> None:
        self._store.delete_saved_wheel(self._require_owner(SAVED_WHEELS), title)

    @gated(READ, "Activity logging")
    def log_wheel_read(self, title: str) -> None:
        caller = self._caller()
        if caller.present:
            self._store.log_wheel_read(caller.uid, title)

    # -- moderation and admin -------------------------------------------------

    @gated(READ, "Word filtering", default=list)
    def get_dirty_words(self) -> list[str]:
        return self._store.get_dirty_words()

    @gated(MUTATE, "Word filtering")
    def set_dirty_words(self, words: Iterable[str]) -> None:
        self._store.set_dirty_words(words)

    @gated(READ, ADMINS, default=list)
    def get_admins(self) -> list[Admin]:
        return self._store.get_admins()

    @gated(MUTATE, ADMINS)
    def add_admin(self, uid: str, name: str) -> None:
        self._store.add_admin(uid, name)

    @gated(MUTATE, ADMINS)
    def delete_admin(self, uid: str) -> None:
        self._store.delete_admin(uid)

    @gated(READ, REVIEW, default=0)
    def get_earnings_per_review(self) -> float:
        return self._store.get_earnings_per_review()

    @gated(MUTATE, REVIEW)
    def set_admins_wheels_to_zero(self, admin_uid: str) -> None:
        self._store.set_admins_wheels_to_zero(admin_uid)

    @gated(MUTATE, REVIEW)
    def reset_session_reviews(self, admin_uid: str) -> None:
        self._store.reset_session_reviews(admin_uid)

    @gated(MUTATE, "Carousels")
    def save_carousel(self, carousel: dict) -> str:
        return self._store.save_carousel(carousel)

    @gated(READ, "Database access")
    def get_db(self) -> Any:
        return self.loader.handle.db

    # -- review queue ---------------------------------------------------------

    @gated(READ, REVIEW)
    def get_shared_wheel(self, path: str) -> Optional[SharedWheelRecord]:
        return self._store.get_shared_wheel(path)

    @gated(MUTATE, REVIEW)
    def approve_shared_wheel(self, path: str) -> None:
        self._store.approve_shared_wheel(path, self._require_owner(REVIEW))

    @gated(MUTATE, REVIEW)
    def delete_shared_wheel(self, path: str, count_as_review: bool) -> None:
        """Removes a wheel from the review queue, counting it for the reviewer if asked."""
        uid = self._require_owner(REVIEW)
        self._store.delete_shared_wheel(path, uid, count_as_review)

    @gated(READ, REVIEW)
    def get_next_shared_wheel_for_review(self) -> Optional[SharedWheelRecord]:
        return self._store.get_next_shared_wheel_for_review()

    # -- cloud functions ------------------------------------------------------

    @gated(MUTATE, SHARING)
    def create_shared_wheel(self, copyable: bool, wheel_config: dict) -> str:
        return self.gateway.create_shared_wheel(copyable, wheel_config, self._id_token())

    @gated(READ, SHARING)
    def log_shared_wheel_read(self, path: str) -> None:
        self.gateway.log_shared_wheel_read(path)

    @gated(READ, SHARING)
    def fetch_shared_wheel(self, path: str) -> Optional[dict]:
        return self.gateway.get_shared_wheel(path)

    @gated(READ, SHARING, default=list)
    def get_shared_wheels(self) -> list:
        try:
            id_token = self._id_token()
        except TransportError as e:
            self.gateway.tracker.track_exception(e)
            return []
        return self.gateway.get_shared_wheels(id_token)

    @gated(MUTATE, SHARING)
    def delete_my_shared_wheel(self, path: str) -> list:
        return self.gateway.delete_shared_wheel(self._id_token(), path)

    @gated(READ, "Twitter import", default=list)
    def fetch_social_media_users(self, search_term: str) -> Any:
        return self.gateway.fetch_social_media_users(search_term)

    @gated(MUTATE, "Account conversion")
    def convert_account(self, old_id_token: Optional[str]) -> BestEffortStatus:
        """Moves the data of a previous (anonymous) account to the current one."""
        return self.gateway.convert_account(old_id_token, self._id_token())

    @gated(MUTATE, "Account deletion")
    def delete_account(self) -> BestEffortStatus:
        return self.gateway.delete_account(self._id_token())

    @gated(READ, "Carousels", default=list)
    def get_carousels(self) -> list:
        return self.gateway.get_carousels()

    @gated(READ, REVIEW, default=0)
    def get_number_of_wheels_in_review_queue(self) -> int:
        return self.gateway.get_number_of_wheels_in_review_queue(self._id_token())

    @gated(MUTATE, "Translate")
    def translate(self, entries: list) -> list:
        return self.gateway.translate(self._id_token(), entries)

    @gated(READ, ADMINS, default=False)
    def user_is_admin(self) -> bool:
        return self.gateway.user_is_admin(self._id_token())

    @gated(READ, "Spin statistics", default=dict)
    def get_spin_stats(self) -> dict:
        return self.gateway.get_spin_stats()
