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
Error types raised by the backend access layer.
"""

from __future__ import annotations

from enum import Enum
from typing import Any

ADMIN_REQUIRED_MESSAGE = "Please log in as an admin user"


class BestEffortStatus(str, Enum):
    """Outcome of an operation whose failure has no caller-visible recovery."""

    SUCCEEDED = "SUCCEEDED"
    SKIPPED = "SKIPPED"
    FAILED = "FAILED"


class WheelBackendError(Exception):
    pass


class ModeDisabledError(WheelBackendError):
    """Raised by mutating operations while the backend runs in basic mode."""

    def __init__(self, feature: str):
        self.feature = feature
        super().__init__(
            f"{feature} requires the cloud backend and is disabled in basic mode."
        )


class AuthError(WheelBackendError):
    """Sign-in was cancelled, rejected by the provider, or needs a signed-in user."""


class TransportError(WheelBackendError):
    """Network-level failure reaching the cloud backend or a function endpoint."""


class DomainError(WheelBackendError):
    """
    An error reported by a function endpoint inside a successful response.

    `error` holds whatever the server sent, unmodified.
    """

    def __init__(self, error: Any):
        self.error = error
        super().__init__(error if isinstance(error, str) else repr(error))
