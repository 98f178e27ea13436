# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import logging
from typing import Any

import httpx

from ..types import Candidate
from .provider_interface import ProviderInterface

lib_logger = logging.getLogger("ai_fallback")


class GeminiProvider(ProviderInterface):
    """
    Provider implementation for the Google Gemini API (generateContent).
    """

    provider_name = "gemini"

    async def invoke(
        self, prompt: str, candidate: Candidate, client: httpx.AsyncClient
    ) -> str:
        model = candidate.model
        if model.startswith("models/"):
            model = model[len("models/") :]
        url = f"{self.base_url(candidate)}/models/{model}:generateContent"

        data = await self._post_json(
            client,
            candidate,
            url,
            {"contents": [{"role": "user", "parts": [{"text": prompt}]}]},
            {
                "x-goog-api-key": candidate.credential or "",
                "Content-Type": "application/json",
            },
        )
        return self.parse_response(data, candidate)

    def parse_response(self, data: Any, candidate: Candidate) -> str:
        try:
            first = data["candidates"][0]
        except (KeyError, IndexError, TypeError) as e:
            # A prompt blocked by safety filters comes back without candidates
            feedback = data.get("promptFeedback") if isinstance(data, dict) else None
            raise self._error(
                candidate,
                "gemini response has no candidates"
                + (f": {feedback}" if feedback else ""),
            ) from e

        parts = (first.get("content") or {}).get("parts") or []
        text = "".join(part.get("text", "") for part in parts if isinstance(part, dict))
        lib_logger.debug(f"gemini/{candidate.model} returned {len(text)} chars")
        return text
