# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from typing import Dict, Optional

from ..config.defaults import DEFAULT_APP_URL
from ..config.settings import FallbackSettings
from ..types import Candidate
from .openai_compatible_provider import OpenAICompatibleProvider


class OpenRouterProvider(OpenAICompatibleProvider):
    """
    Provider implementation for the OpenRouter API.

    OpenRouter attributes traffic by the HTTP-Referer header.
    """

    provider_name = "openrouter"

    def __init__(self, app_url: Optional[str] = None):
        self.app_url = app_url or DEFAULT_APP_URL

    @classmethod
    def from_settings(cls, settings: FallbackSettings) -> "OpenRouterProvider":
        return cls(app_url=settings.app_url)

    def build_headers(self, candidate: Candidate) -> Dict[str, str]:
        headers = super().build_headers(candidate)
        headers["HTTP-Referer"] = self.app_url
        return headers
