# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from typing import Dict, List

from .openai_compatible_provider import OpenAICompatibleProvider

SYSTEM_PROMPT = (
    "You are an expert resume writer and career coach. Your task is to extract "
    "and optimize information from resumes. Follow the instructions carefully "
    "and return ONLY valid JSON as requested."
)


class GroqProvider(OpenAICompatibleProvider):
    """
    Provider implementation for the Groq API.

    Groq answers more consistently with an explicit system message, so the
    prompt goes in as the user turn after a fixed instruction.
    """

    provider_name = "groq"
    temperature = 0.3
    max_tokens = 4000

    def build_messages(self, prompt: str) -> List[Dict[str, str]]:
        return [
            {"role": "system", "content": SYSTEM_PROMPT},
            {"role": "user", "content": prompt},
        ]
