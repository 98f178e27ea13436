# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import logging
from typing import Any, Dict, List

import httpx

from ..types import Candidate
from .provider_interface import ProviderInterface

lib_logger = logging.getLogger("ai_fallback")


class OpenAICompatibleProvider(ProviderInterface):
    """
    Base for vendors exposing an OpenAI-style /chat/completions endpoint.

    Subclasses adjust message framing, sampling parameters or headers.
    """

    temperature: float = 0.7
    max_tokens: int = 0  # 0 = let the vendor decide

    def build_messages(self, prompt: str) -> List[Dict[str, str]]:
        return [{"role": "user", "content": prompt}]

    def build_headers(self, candidate: Candidate) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {candidate.credential}",
            "Content-Type": "application/json",
        }

    def build_payload(self, prompt: str, candidate: Candidate) -> Dict[str, Any]:
        payload: Dict[str, Any] = {
            "model": candidate.model,
            "messages": self.build_messages(prompt),
            "temperature": self.temperature,
        }
        if self.max_tokens:
            payload["max_tokens"] = self.max_tokens
        return payload

    def parse_response(self, data: Any, candidate: Candidate) -> str:
        try:
            choices = data["choices"]
        except (KeyError, TypeError) as e:
            raise self._error(
                candidate, f"{self.provider_name} response has no choices: {str(data)[:200]}"
            ) from e
        if not choices:
            return ""
        message = choices[0].get("message") or {}
        return message.get("content") or ""

    async def invoke(
        self, prompt: str, candidate: Candidate, client: httpx.AsyncClient
    ) -> str:
        url = f"{self.base_url(candidate)}/chat/completions"
        data = await self._post_json(
            client,
            candidate,
            url,
            self.build_payload(prompt, candidate),
            self.build_headers(candidate),
        )
        text = self.parse_response(data, candidate)
        lib_logger.debug(
            f"{self.provider_name}/{candidate.model} returned {len(text)} chars"
        )
        return text
