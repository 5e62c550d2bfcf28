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
Exception tracking for failures that are absorbed instead of surfaced.
"""

from __future__ import annotations

import logging
from typing import Protocol

logger = logging.getLogger(__name__)


class ExceptionTracker(Protocol):
    def track_exception(self, exc: BaseException) -> None:
        ...


class LoggingExceptionTracker:
    """Reports absorbed exceptions through the logging system."""

    def track_exception(self, exc: BaseException) -> None:
        logger.error(
            "Tracked exception: %s", exc, exc_info=(type(exc), exc, exc.__traceback__)
        )
