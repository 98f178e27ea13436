# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from typing import Dict, Type

from .gemini_provider import GeminiProvider
from .groq_provider import GroqProvider
from .huggingface_provider import HuggingFaceProvider
from .moonshot_provider import MoonshotProvider
from .openrouter_provider import OpenRouterProvider
from .provider_interface import ProviderInterface
from .together_provider import TogetherProvider

# --- Provider Plugin System ---

# Dictionary mapping provider name to adapter class
PROVIDER_PLUGINS: Dict[str, Type[ProviderInterface]] = {
    plugin.provider_name: plugin
    for plugin in (
        GroqProvider,
        GeminiProvider,
        HuggingFaceProvider,
        TogetherProvider,
        OpenRouterProvider,
        MoonshotProvider,
    )
}


__all__ = [
    "PROVIDER_PLUGINS",
    "ProviderInterface",
]
