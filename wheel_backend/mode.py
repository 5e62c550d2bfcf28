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
Backend mode flag and the gate every public backend operation passes through.

In basic mode the cloud backend is unreachable: reads degrade to a neutral
default and mutations raise ModeDisabledError. In cloud mode the gate makes sure
the backend client is initialized before the operation runs.
"""

from __future__ import annotations

import functools
from enum import Enum
from functools import lru_cache
from typing import Any, Callable, TypeVar

from wheel_backend.config import Settings, get_settings
from wheel_backend.errors import ModeDisabledError

F = TypeVar("F", bound=Callable[..., Any])


class BackendMode(str, Enum):
    CLOUD = "CLOUD"
    BASIC = "BASIC"


class OperationKind(str, Enum):
    READ = "READ"
    MUTATE = "MUTATE"


def mode_from_settings(settings: Settings) -> BackendMode:
    return BackendMode.BASIC if settings.basic_mode else BackendMode.CLOUD


@lru_cache(maxsize=1)
def get_mode() -> BackendMode:
    """Process-wide mode, fixed the first time it is read."""
    return mode_from_settings(get_settings())


def neutral_default(default: Any) -> Any:
    # Factories such as list/dict give every caller a fresh container.
    return default() if callable(default) else default


def gated(kind: OperationKind, feature: str, default: Any = None) -> Callable[[F], F]:
    """
    Decorates a backend method with the basic-mode policy.

    The decorated method's owner must expose `mode` and `loader`.

    Args:
        kind: READ operations return `default` in basic mode, MUTATE operations
            raise ModeDisabledError.
        feature: Human-readable feature name used in the error message.
        default: Value (or zero-argument factory) returned by READ operations in
            basic mode.
    """

    def decorator(func: F) -> F:
        @functools.wraps(func)
        def wrapper(self, *args, **kwargs):
            if self.mode is BackendMode.BASIC:
                if kind is OperationKind.MUTATE:
                    raise ModeDisabledError(feature)
                return neutral_default(default)
            self.loader.ensure_loaded()
            return func(self, *args, **kwargs)

        wrapper.operation_kind = kind
        wrapper.feature = feature
        return wrapper

    return decorator
