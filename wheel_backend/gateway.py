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
HTTP client for the server-side Cloud Functions.
"""

from __future__ import annotations

import logging
from typing import Any, Optional
from urllib.parse import quote

import requests

from wheel_backend.errors import (
    ADMIN_REQUIRED_MESSAGE,
    BestEffortStatus,
    DomainError,
    TransportError,
)
from wheel_backend.tracking import ExceptionTracker, LoggingExceptionTracker

logger = logging.getLogger(__name__)

REQUEST_TIMEOUT = 30  # seconds


class FunctionGateway:
    """
    Calls Cloud Functions endpoints under `base_url`.

    Reads use GET, actions POST a JSON body. The bearer token, when there is
    one, goes in the `authorization` header.
    """

    def __init__(
        self,
        base_url: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: int = REQUEST_TIMEOUT,
        tracker: Optional[ExceptionTracker] = None,
    ):
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.session = session or requests.Session()
        self.tracker = tracker or LoggingExceptionTracker()

    def _call(
        self,
        method: str,
        suffix: str,
        *,
        id_token: Optional[str] = None,
        payload: Optional[dict] = None,
    ) -> Any:
        """
        Sends one request and returns the decoded JSON body.

        Raises:
            DomainError: On HTTP 403, or when the body carries an `error` field.
            TransportError: If the request fails or the body is not JSON.
        """
        headers = {"Content-Type": "application/json"}
        if id_token:
            headers["authorization"] = id_token
        try:
            response = self.session.request(
                method,
                self.base_url + suffix,
                headers=headers,
                json=payload,
                timeout=self.timeout,
            )
        except requests.RequestException as e:
            raise TransportError(f"{method} {suffix} failed: {e}") from e

        # Admin-gated endpoints only use 403 for authorization failures.
        if response.status_code == 403:
            raise DomainError(ADMIN_REQUIRED_MESSAGE)
        try:
            body = response.json()
        except ValueError as e:
            raise TransportError(
                f"{method} {suffix} returned a non-JSON body (HTTP {response.status_code})"
            ) from e
        if isinstance(body, dict) and "error" in body:
            raise DomainError(body["error"])
        return body

    def _call_for_object(self, method: str, suffix: str, **kwargs) -> dict:
        """Like `_call`, for endpoints that answer with a JSON object."""
        body = self._call(method, suffix, **kwargs)
        if not isinstance(body, dict):
            raise TransportError(
                f"{method} {suffix} returned {type(body).__name__}, expected an object"
            )
        return body

    def _listing(self, suffix: str, default: Any, **kwargs) -> Any:
        try:
            return self._call("GET", suffix, **kwargs)
        except (TransportError, DomainError) as e:
            self.tracker.track_exception(e)
            return default

    def _best_effort(self, suffix: str, **kwargs) -> BestEffortStatus:
        try:
            self._call("POST", suffix, **kwargs)
        except (TransportError, DomainError) as e:
            self.tracker.track_exception(e)
            return BestEffortStatus.FAILED
        return BestEffortStatus.SUCCEEDED

    # -- shared wheels --------------------------------------------------------

    def create_shared_wheel(
        self, copyable: bool, wheel_config: dict, id_token: Optional[str] = None
    ) -> str:
        body = self._call_for_object(
            "POST",
            "/createSharedWheel3",
            id_token=id_token,
            payload={"copyable": copyable, "wheelConfig": wheel_config},
        )
        if not body.get("path"):
            raise TransportError("POST /createSharedWheel3 returned no path")
        return body["path"]

    def log_shared_wheel_read(self, path: str) -> None:
        if not path:
            return
        try:
            self._call("POST", "/logSharedWheelRead", payload={"path": path})
        except (TransportError, DomainError) as e:
            logger.debug("Ignoring failed shared wheel read log: %s", e)

    def get_shared_wheel(self, path: str) -> Optional[dict]:
        body = self._call_for_object("GET", f"/getSharedWheel2/{path}")
        return body.get("wheelConfig")

    def get_shared_wheels(self, id_token: Optional[str]) -> list:
        body = self._listing("/getSharedWheels", {}, id_token=id_token)
        return body.get("wheels", []) if isinstance(body, dict) else []

    def delete_shared_wheel(self, id_token: Optional[str], path: str) -> list:
        body = self._call_for_object(
            "POST", "/deleteSharedWheel", id_token=id_token, payload={"path": path}
        )
        return body.get("wheels", [])

    # -- accounts -------------------------------------------------------------

    def fetch_social_media_users(self, search_term: str) -> Any:
        return self._call("GET", f"/getTwitterUserNames2/{quote(search_term, safe='')}")

    def convert_account(
        self, old_id_token: Optional[str], new_id_token: Optional[str]
    ) -> BestEffortStatus:
        return self._best_effort(
            "/convertAccount",
            id_token=new_id_token,
            payload={"oldIdToken": old_id_token},
        )

    def delete_account(self, id_token: Optional[str]) -> BestEffortStatus:
        return self._best_effort("/deleteAccount", id_token=id_token)

    # -- admin and stats ------------------------------------------------------

    def get_carousels(self) -> list:
        body = self._listing("/getCarousels", [])
        return body if isinstance(body, list) else []

    def get_number_of_wheels_in_review_queue(self, id_token: Optional[str]) -> int:
        body = self._call_for_object(
            "GET", "/getNumberOfWheelsInReviewQueue", id_token=id_token
        )
        if "wheelsInReviewQueue" not in body:
            raise TransportError("GET /getNumberOfWheelsInReviewQueue returned no count")
        return body["wheelsInReviewQueue"]

    def translate(self, id_token: Optional[str], entries: list) -> list:
        body = self._call_for_object(
            "POST", "/translate", id_token=id_token, payload={"text": entries}
        )
        return body.get("translations", [])

    def user_is_admin(self, id_token: Optional[str]) -> bool:
        body = self._call_for_object("GET", "/userIsAdmin", id_token=id_token)
        return bool(body.get("userIsAdmin", False))

    def get_spin_stats(self) -> dict:
        body = self._listing("/getSpinStats", {})
        return body if isinstance(body, dict) else {}
