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

import re
from dataclasses import dataclass, field
from typing import Any, Optional, Type, TypeVar

from dacite import Config, from_dict

T = TypeVar("T")

REVIEW_PENDING = "pending"
REVIEW_APPROVED = "approved"


@dataclass
class SavedWheel:
    """A wheel configuration saved by its owner, keyed by title."""

    title: str
    config: dict
    created: Any = None  # Firestore timestamp (written as SERVER_TIMESTAMP)
    last_read: Any = None
    read_count: int = 0


@dataclass
class Admin:
    uid: str
    name: str
    approved_wheels: int = 0
    deleted_wheels: int = 0
    session_reviews: int = 0


@dataclass
class SharedWheelRecord:
    """A wheel shared by a user and waiting for (or past) admin review."""

    path: str
    wheel_config: dict = field(default_factory=dict)
    review_status: str = REVIEW_PENDING
    copyable: bool = False
    reviewed_by: Optional[str] = None
    created: Any = None


def camel_to_snake(name: str) -> str:
    return re.sub(r"(?<!^)(?=[A-Z])", "_", name).lower()


def record_from_doc(data_class: Type[T], data: dict, **extra: Any) -> T:
    """
    Builds a record from a stored document.

    Only top-level keys are converted from camelCase; nested wheel configs are
    kept exactly as stored.
    """
    converted = {camel_to_snake(key): value for key, value in data.items()}
    converted.update(extra)
    return from_dict(data_class=data_class, data=converted, config=Config(check_types=False))
