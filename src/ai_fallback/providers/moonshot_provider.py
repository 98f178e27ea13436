# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from .openai_compatible_provider import OpenAICompatibleProvider


class MoonshotProvider(OpenAICompatibleProvider):
    """
    Provider implementation for Moonshot AI (official Kimi-k2 host).

    The endpoint can be pointed elsewhere with MOONSHOT_BASE_URL.
    """

    provider_name = "moonshot"
