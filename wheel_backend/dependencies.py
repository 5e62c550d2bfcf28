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
Wiring for the process-wide backend facade.
"""

from __future__ import annotations

from wheel_backend.config import get_settings
from wheel_backend.facade import WheelBackend
from wheel_backend.gateway import FunctionGateway
from wheel_backend.identity import default_auth_ui_config
from wheel_backend.loader import BackendLoader
from wheel_backend.mode import get_mode

_backend: WheelBackend | None = None


def get_backend() -> WheelBackend:
    """
    Return a singleton backend so the Firebase client is initialized once.
    """
    global _backend
    if _backend:
        return _backend

    settings = get_settings()
    _backend = WheelBackend(
        BackendLoader(settings),
        FunctionGateway(settings.function_prefix, timeout=settings.request_timeout),
        mode=get_mode(),
        auth_ui_config=default_auth_ui_config(
            settings.tos_url, settings.privacy_policy_url
        ),
    )
    return _backend
