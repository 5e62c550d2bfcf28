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
Lazy, one-shot initialization of the Firebase client.

The Firebase SDK is only imported and initialized the first time an operation
needs it. Concurrent first callers wait for the same initialization.
"""

from __future__ import annotations

import importlib
import logging
import threading
from dataclasses import dataclass
from types import ModuleType
from typing import Any, Optional

from wheel_backend.config import Settings
from wheel_backend.errors import BestEffortStatus
from wheel_backend.identity import IdentityProvider
from wheel_backend.store import FirestoreStore, WheelStore

logger = logging.getLogger(__name__)


@dataclass
class FirebaseLibs:
    admin: ModuleType
    credentials: ModuleType
    firestore: ModuleType


@dataclass
class BackendHandle:
    """Everything the backend operations need once Firebase is up."""

    app: Any
    db: Any
    store: WheelStore
    identity: IdentityProvider
    persistence: BestEffortStatus = BestEffortStatus.SKIPPED


def import_firebase_libs() -> FirebaseLibs:
    return FirebaseLibs(
        admin=importlib.import_module("firebase_admin"),
        credentials=importlib.import_module("firebase_admin.credentials"),
        firestore=importlib.import_module("firebase_admin.firestore"),
    )


def enable_offline_persistence(db: Any, enabled: bool = True) -> BestEffortStatus:
    """
    Turns on the client's local cache where the client supports one.

    Never raises: a client without local persistence, or one that refuses to
    enable it, leaves the backend fully usable online.
    """
    if not enabled:
        return BestEffortStatus.SKIPPED
    enable = getattr(db, "enable_persistence", None)
    if not callable(enable):
        return BestEffortStatus.SKIPPED
    try:
        enable(synchronize_tabs=True)
    except Exception as e:
        logger.warning("Offline persistence unavailable: %s", e)
        return BestEffortStatus.FAILED
    return BestEffortStatus.SUCCEEDED


class BackendLoader:
    """Holds the single BackendHandle for the process."""

    def __init__(self, settings: Settings):
        self.settings = settings
        self._lock = threading.Lock()
        self._handle: Optional[BackendHandle] = None
        # Firebase apps are registered by name, so one that was created before
        # a failed initialization is reused on the next attempt.
        self._app: Any = None

    @property
    def is_loaded(self) -> bool:
        return self._handle is not None

    @property
    def handle(self) -> BackendHandle:
        if self._handle is None:
            raise RuntimeError("Backend is not loaded; call ensure_loaded() first")
        return self._handle

    def ensure_loaded(self) -> BackendHandle:
        """
        Initializes the backend on first use and returns the handle.

        Failures propagate and leave the loader unloaded; the next call starts
        over, reusing the Firebase app if it was already created.
        """
        if self._handle is not None:
            return self._handle
        with self._lock:
            if self._handle is None:
                self._handle = self._initialize()
            return self._handle

    def _initialize(self) -> BackendHandle:
        settings = self.settings
        libs = import_firebase_libs()

        if self._app is None:
            self._app = self._initialize_app(libs)
        app = self._app

        db = libs.firestore.client(app)
        identity = IdentityProvider(
            settings.firebase_api_key,
            timeout=settings.request_timeout,
            session_path=settings.auth_session_path,
        )
        persistence = enable_offline_persistence(db, settings.enable_offline_persistence)
        logger.info(
            "Firebase backend initialized (project=%s, persistence=%s)",
            settings.firebase_project_id,
            persistence.value,
        )
        return BackendHandle(
            app=app,
            db=db,
            store=FirestoreStore(db),
            identity=identity,
            persistence=persistence,
        )

    def _initialize_app(self, libs: FirebaseLibs) -> Any:
        settings = self.settings
        if settings.firebase_credentials_path:
            credential = libs.credentials.Certificate(settings.firebase_credentials_path)
        else:
            credential = libs.credentials.ApplicationDefault()
        options = {}
        if settings.firebase_project_id:
            options["projectId"] = settings.firebase_project_id
        if settings.firebase_database_url:
            options["databaseURL"] = settings.firebase_database_url
        return libs.admin.initialize_app(
            credential, options=options, name=settings.firebase_app_name
        )
