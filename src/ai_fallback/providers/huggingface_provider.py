# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

import json
from typing import Any

import httpx

from ..types import Candidate
from .provider_interface import ProviderInterface


class HuggingFaceProvider(ProviderInterface):
    """
    Provider implementation for the Hugging Face inference router.

    The router answers with either [{"generated_text": ...}], a bare
    {"generated_text": ...} object, or a plain string depending on the model.
    """

    provider_name = "huggingface"
    max_new_tokens = 1000
    temperature = 0.7

    async def invoke(
        self, prompt: str, candidate: Candidate, client: httpx.AsyncClient
    ) -> str:
        data = await self._post_json(
            client,
            candidate,
            f"{self.base_url(candidate)}/{candidate.model}",
            {
                "inputs": prompt,
                "parameters": {
                    "max_new_tokens": self.max_new_tokens,
                    "temperature": self.temperature,
                },
            },
            {
                "Authorization": f"Bearer {candidate.credential}",
                "Content-Type": "application/json",
            },
        )
        return self.parse_response(data)

    @staticmethod
    def parse_response(data: Any) -> str:
        if isinstance(data, list) and data and isinstance(data[0], dict):
            if data[0].get("generated_text"):
                return data[0]["generated_text"]
        if isinstance(data, dict) and data.get("generated_text"):
            return data["generated_text"]
        if isinstance(data, str):
            return data
        return json.dumps(data)
