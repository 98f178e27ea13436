# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .openai_compatible_provider import OpenAICompatibleProvider


class TogetherProvider(OpenAICompatibleProvider):
    """
    Provider implementation for the Together AI API.
    """

    provider_name = "together"
