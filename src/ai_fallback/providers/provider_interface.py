# SPDX-License-Identifier: LGPL-3.0-only
# Copyright (c) 2026 Mirrowel

from abc import ABC, abstractmethod
from typing import Any, Dict, Optional

import httpx

from ..config.defaults import DEFAULT_BASE_URLS
from ..config.settings import FallbackSettings
from ..error_handler import ProviderError
from ..types import Candidate


def _parse_retry_after_header(response: httpx.Response) -> Optional[float]:
    value = response.headers.get("retry-after")
    if not value:
        return None
    try:
        return float(value)
    except ValueError:
        return None


class ProviderInterface(ABC):
    """
    An interface for vendor-specific completion calls.

    Adapters translate a prompt into the vendor's request shape and its
    response back into plain text. They do not retry and know nothing about
    rate limits; any failure is raised as a ProviderError.
    """

    # Registry name, also the key used in the rate limiter and catalog
    provider_name: str = ""

    @classmethod
    def from_settings(cls, settings: FallbackSettings) -> "ProviderInterface":
        """Build an adapter instance. Adapters needing settings override this."""
        return cls()

    def base_url(self, candidate: Candidate) -> str:
        return (candidate.base_url or DEFAULT_BASE_URLS[self.provider_name]).rstrip("/")

    @abstractmethod
    async def invoke(
        self, prompt: str, candidate: Candidate, client: httpx.AsyncClient
    ) -> str:
        """
        Sends the prompt to the vendor and returns the completion text.

        Args:
            prompt: The full prompt text.
            candidate: The model, credential and endpoint to use.
            client: An httpx.AsyncClient instance for making requests.

        Raises:
            ProviderError: on any transport, HTTP or parse failure.
        """
        pass

    def _error(self, candidate: Candidate, message: str, **kwargs) -> ProviderError:
        return ProviderError(self.provider_name, candidate.model, message, **kwargs)

    async def _post_json(
        self,
        client: httpx.AsyncClient,
        candidate: Candidate,
        url: str,
        payload: Dict[str, Any],
        headers: Dict[str, str],
    ) -> Any:
        """POST a JSON body and return the decoded JSON response."""
        if not candidate.credential:
            raise self._error(candidate, f"{self.provider_name} API key not provided")

        try:
            response = await client.post(url, json=payload, headers=headers)
        except httpx.HTTPError as e:
            raise self._error(
                candidate, f"{self.provider_name} request failed: {type(e).__name__}: {e}"
            ) from e

        if response.status_code >= 400:
            body = response.text
            raise self._error(
                candidate,
                f"{self.provider_name} API error ({response.status_code}): {body}",
                status_code=response.status_code,
                body=body,
                retry_after=_parse_retry_after_header(response),
            )

        try:
            return response.json()
        except ValueError as e:
            raise self._error(
                candidate,
                f"{self.provider_name} returned a non-JSON response: {response.text[:200]}",
                status_code=response.status_code,
            ) from e
