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
Configuration and settings for the backend access layer.
"""

from __future__ import annotations

from functools import lru_cache
from typing import Optional

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class Settings(BaseSettings):
    """Environment-backed settings, read once at startup."""

    model_config = SettingsConfigDict(
        env_file=".env", env_file_encoding="utf-8", extra="ignore"
    )

    # Disables every cloud-dependent feature.
    basic_mode: bool = Field(default=False)

    # Firebase project
    firebase_api_key: Optional[str] = Field(default=None)
    firebase_auth_domain: Optional[str] = Field(default=None)
    firebase_database_url: Optional[str] = Field(default=None)
    firebase_project_id: Optional[str] = Field(default=None)
    # Service account JSON; application default credentials when unset.
    firebase_credentials_path: Optional[str] = Field(default=None)
    firebase_app_name: str = Field(default="[DEFAULT]")

    # Cloud Functions base URL, e.g. https://us-central1-<project>.cloudfunctions.net
    function_prefix: str = Field(default="")
    request_timeout: int = Field(default=30)

    enable_offline_persistence: bool = Field(default=True)
    auth_session_path: Optional[str] = Field(default=None)

    tos_url: str = Field(default="/faq/terms")
    privacy_policy_url: str = Field(default="/privacy-policy.html")


@lru_cache(maxsize=1)
def get_settings() -> Settings:
    """Return cached settings instance."""
    return Settings()
