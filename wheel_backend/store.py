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
Record store abstraction for Firestore and an in-memory test implementation.
"""

from __future__ import annotations

import logging
import time
import uuid
from typing import Any, Iterable, Optional, Protocol

from google.api_core import exceptions
from google.cloud.firestore_v1 import SERVER_TIMESTAMP, Increment
from google.cloud.firestore_v1.base_query import FieldFilter

from wheel_backend.types import (
    REVIEW_APPROVED,
    REVIEW_PENDING,
    Admin,
    SavedWheel,
    SharedWheelRecord,
    record_from_doc,
)

logger = logging.getLogger(__name__)

USERS_COLLECTION = "users"
WHEELS_COLLECTION = "wheels"
ADMINS_COLLECTION = "admins"
SETTINGS_COLLECTION = "settings"
CAROUSELS_COLLECTION = "carousels"
SHARED_WHEELS_COLLECTION = "shared-wheels"
DIRTY_WORDS_DOC = "dirtyWords"
EARNINGS_DOC = "earnings"


class WheelStore(Protocol):
    """Interface for record access through the persistent database client."""

    def log_user_activity(self, uid: str) -> None:
        ...

    def list_saved_wheels(self, uid: str) -> list[SavedWheel]:
        ...

    def save_wheel(self, uid: str, config: dict) -> None:
        ...

    def delete_saved_wheel(self, uid: str, title: str) -> None:
        ...

    def log_wheel_read(self, uid: str, title: str) -> None:
        ...

    def get_dirty_words(self) -> list[str]:
        ...

    def set_dirty_words(self, words: Iterable[str]) -> None:
        ...

    def get_admins(self) -> list[Admin]:
        ...

    def add_admin(self, uid: str, name: str) -> None:
        ...

    def delete_admin(self, uid: str) -> None:
        ...

    def get_earnings_per_review(self) -> float:
        ...

    def set_admins_wheels_to_zero(self, uid: str) -> None:
        ...

    def reset_session_reviews(self, uid: str) -> None:
        ...

    def save_carousel(self, carousel: dict) -> str:
        ...

    def get_shared_wheel(self, path: str) -> Optional[SharedWheelRecord]:
        ...

    def approve_shared_wheel(self, path: str, uid: str) -> None:
        ...

    def delete_shared_wheel(self, path: str, uid: str, count_as_review: bool) -> None:
        ...

    def get_next_shared_wheel_for_review(self) -> Optional[SharedWheelRecord]:
        ...


def wheel_title(config: dict) -> str:
    title = (config or {}).get("title")
    if not title:
        raise ValueError("Wheel config must have a title")
    return title


def wheel_doc_id(title: str) -> str:
    """
    Document id for a saved wheel: the title itself, except where Firestore
    forbids it. "/" splits paths, "." and ".." are invalid, and "__*__" is
    reserved; those characters are percent-escaped ("%" too, so ids stay unique).
    """
    doc_id = title.replace("%", "%25").replace("/", "%2F")
    if doc_id in (".", ".."):
        return doc_id.replace(".", "%2E")
    if doc_id.startswith("__") and doc_id.endswith("__"):
        return "%5F" + doc_id[1:]
    return doc_id


class InMemoryStore:
    """Simple in-memory store for development and tests."""

    def __init__(self):
        self.activity: dict[str, float] = {}
        self.wheels: dict[str, dict[str, SavedWheel]] = {}
        self.admins: dict[str, Admin] = {}
        self.dirty_words: list[str] = []
        self.earnings_per_review: float = 0
        self.carousels: dict[str, dict] = {}
        self.shared_wheels: dict[str, SharedWheelRecord] = {}

    def reset(self) -> None:
        """Clear all stored data (useful in tests)."""
        self.__init__()

    def log_user_activity(self, uid: str) -> None:
        self.activity[uid] = time.time()

    def list_saved_wheels(self, uid: str) -> list[SavedWheel]:
        wheels = self.wheels.get(uid, {})
        return [wheels[title] for title in sorted(wheels)]

    def save_wheel(self, uid: str, config: dict) -> None:
        title = wheel_title(config)
        self.wheels.setdefault(uid, {})[title] = SavedWheel(
            title=title, config=dict(config), created=time.time()
        )

    def delete_saved_wheel(self, uid: str, title: str) -> None:
        self.wheels.get(uid, {}).pop(title, None)

    def log_wheel_read(self, uid: str, title: str) -> None:
        wheel = self.wheels.get(uid, {}).get(title)
        if wheel:
            wheel.last_read = time.time()
            wheel.read_count += 1

    def get_dirty_words(self) -> list[str]:
        return list(self.dirty_words)

    def set_dirty_words(self, words: Iterable[str]) -> None:
        self.dirty_words = list(words)

    def get_admins(self) -> list[Admin]:
        return list(self.admins.values())

    def add_admin(self, uid: str, name: str) -> None:
        existing = self.admins.get(uid)
        if existing:
            existing.name = name
        else:
            self.admins[uid] = Admin(uid=uid, name=name)

    def delete_admin(self, uid: str) -> None:
        self.admins.pop(uid, None)

    def get_earnings_per_review(self) -> float:
        return self.earnings_per_review

    def set_admins_wheels_to_zero(self, uid: str) -> None:
        admin = self._admin(uid)
        admin.approved_wheels = 0
        admin.deleted_wheels = 0

    def reset_session_reviews(self, uid: str) -> None:
        self._admin(uid).session_reviews = 0

    def save_carousel(self, carousel: dict) -> str:
        carousel_id = carousel.get("id") or uuid.uuid4().hex
        self.carousels[carousel_id] = dict(carousel)
        return carousel_id

    def get_shared_wheel(self, path: str) -> Optional[SharedWheelRecord]:
        return self.shared_wheels.get(path)

    def approve_shared_wheel(self, path: str, uid: str) -> None:
        record = self.shared_wheels.get(path)
        if record is None:
            raise KeyError(path)
        record.review_status = REVIEW_APPROVED
        record.reviewed_by = uid
        admin = self._admin(uid)
        admin.approved_wheels += 1
        admin.session_reviews += 1

    def delete_shared_wheel(self, path: str, uid: str, count_as_review: bool) -> None:
        self.shared_wheels.pop(path, None)
        increment = 1 if count_as_review else 0
        admin = self._admin(uid)
        admin.deleted_wheels += increment
        admin.session_reviews += increment

    def get_next_shared_wheel_for_review(self) -> Optional[SharedWheelRecord]:
        for record in self.shared_wheels.values():
            if record.review_status == REVIEW_PENDING:
                return record
        return None

    def _admin(self, uid: str) -> Admin:
        if uid not in self.admins:
            self.admins[uid] = Admin(uid=uid, name="")
        return self.admins[uid]


class FirestoreStore:
    """
    Firestore-backed implementation.

    Writes carry SERVER_TIMESTAMP and counters are updated with atomic
    increments, so concurrent reviewers never lose counts.
    """

    def __init__(self, db: Any):
        self.db = db

    def _user(self, uid: str):
        return self.db.collection(USERS_COLLECTION).document(uid)

    def _wheel(self, uid: str, title: str):
        return self._user(uid).collection(WHEELS_COLLECTION).document(wheel_doc_id(title))

    def _admin(self, uid: str):
        return self.db.collection(ADMINS_COLLECTION).document(uid)

    def _setting(self, name: str):
        return self.db.collection(SETTINGS_COLLECTION).document(name)

    def _shared(self, path: str):
        return self.db.collection(SHARED_WHEELS_COLLECTION).document(path)

    def log_user_activity(self, uid: str) -> None:
        self._user(uid).set({"lastActive": SERVER_TIMESTAMP}, merge=True)

    def list_saved_wheels(self, uid: str) -> list[SavedWheel]:
        docs = self._user(uid).collection(WHEELS_COLLECTION).stream()
        wheels = [record_from_doc(SavedWheel, doc.to_dict()) for doc in docs]
        return sorted(wheels, key=lambda wheel: wheel.title)

    def save_wheel(self, uid: str, config: dict) -> None:
        title = wheel_title(config)
        # No merge: an existing wheel with the same title is replaced.
        self._wheel(uid, title).set(
            {"title": title, "config": config, "created": SERVER_TIMESTAMP}
        )

    def delete_saved_wheel(self, uid: str, title: str) -> None:
        self._wheel(uid, title).delete()

    def log_wheel_read(self, uid: str, title: str) -> None:
        try:
            self._wheel(uid, title).update(
                {"lastRead": SERVER_TIMESTAMP, "readCount": Increment(1)}
            )
        except exceptions.NotFound:
            logger.debug("Read logged for unsaved wheel %r", title)

    def get_dirty_words(self) -> list[str]:
        snapshot = self._setting(DIRTY_WORDS_DOC).get()
        if not snapshot.exists:
            return []
        return list(snapshot.to_dict().get("words", []))

    def set_dirty_words(self, words: Iterable[str]) -> None:
        self._setting(DIRTY_WORDS_DOC).set(
            {"words": list(words), "updated": SERVER_TIMESTAMP}
        )

    def get_admins(self) -> list[Admin]:
        docs = self.db.collection(ADMINS_COLLECTION).stream()
        return [record_from_doc(Admin, doc.to_dict(), uid=doc.id) for doc in docs]

    def add_admin(self, uid: str, name: str) -> None:
        self._admin(uid).set({"name": name, "added": SERVER_TIMESTAMP}, merge=True)

    def delete_admin(self, uid: str) -> None:
        self._admin(uid).delete()

    def get_earnings_per_review(self) -> float:
        snapshot = self._setting(EARNINGS_DOC).get()
        if not snapshot.exists:
            return 0
        return snapshot.to_dict().get("earningsPerReview", 0)

    def set_admins_wheels_to_zero(self, uid: str) -> None:
        self._admin(uid).set({"approvedWheels": 0, "deletedWheels": 0}, merge=True)

    def reset_session_reviews(self, uid: str) -> None:
        self._admin(uid).set({"sessionReviews": 0}, merge=True)

    def save_carousel(self, carousel: dict) -> str:
        collection = self.db.collection(CAROUSELS_COLLECTION)
        doc_ref = (
            collection.document(carousel["id"]) if carousel.get("id") else collection.document()
        )
        doc_ref.set({**carousel, "updated": SERVER_TIMESTAMP})
        return doc_ref.id

    def get_shared_wheel(self, path: str) -> Optional[SharedWheelRecord]:
        snapshot = self._shared(path).get()
        if not snapshot.exists:
            return None
        return record_from_doc(SharedWheelRecord, snapshot.to_dict(), path=path)

    def approve_shared_wheel(self, path: str, uid: str) -> None:
        batch = self.db.batch()
        batch.update(
            self._shared(path),
            {
                "reviewStatus": REVIEW_APPROVED,
                "reviewedBy": uid,
                "reviewed": SERVER_TIMESTAMP,
            },
        )
        batch.set(
            self._admin(uid),
            {"approvedWheels": Increment(1), "sessionReviews": Increment(1)},
            merge=True,
        )
        batch.commit()

    def delete_shared_wheel(self, path: str, uid: str, count_as_review: bool) -> None:
        increment = Increment(1 if count_as_review else 0)
        batch = self.db.batch()
        batch.delete(self._shared(path))
        batch.set(
            self._admin(uid),
            {"deletedWheels": increment, "sessionReviews": increment},
            merge=True,
        )
        batch.commit()

    def get_next_shared_wheel_for_review(self) -> Optional[SharedWheelRecord]:
        query = (
            self.db.collection(SHARED_WHEELS_COLLECTION)
            .where(filter=FieldFilter("reviewStatus", "==", REVIEW_PENDING))
            .limit(1)
        )
        for doc in query.stream():
            return record_from_doc(SharedWheelRecord, doc.to_dict(), path=doc.id)
        return None
