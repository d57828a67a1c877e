"""Outbound model client.

The orchestrator talks to the model provider through one operation,
``complete(system_prompt, user_message) -> str``. Provider failures are
mapped onto the service taxonomy here so nothing above this layer sees
SDK exception types or upstream error bodies.

Antagon Inc. | CAGE: 17E75 | UEI: KBSGT7CZ4AH3
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod

import anthropic

from prompt_optimiser.errors import UpstreamAuthError, UpstreamFailure

logger = logging.getLogger(__name__)

DEFAULT_MODEL = "claude-sonnet-4-20250514"
DEFAULT_MAX_TOKENS = 4096


class ModelClient(ABC):
    """Abstract text-completion client."""

    @abstractmethod
    async def complete(self, system_prompt: str, user_message: str) -> str:
        """Run one completion.

        Raises:
            UpstreamAuthError: Provider rejected the credentials.
            UpstreamFailure: Rate limiting, provider error, transport failure
                or timeout.
        """

    async def aclose(self) -> None:
        """Release network resources."""


class AnthropicModelClient(ModelClient):
    """Completion client backed by the Anthropic Messages API.

    Args:
        api_key: Provider API key.
        model: Model id used for every call.
        max_tokens: Completion budget.
        timeout: Seconds before the call is abandoned.
        client: Pre-built ``AsyncAnthropic`` (tests).
    """

    def __init__(
        self,
        api_key: str | None = None,
        model: str = DEFAULT_MODEL,
        max_tokens: int = DEFAULT_MAX_TOKENS,
        timeout: float = 60.0,
        client: anthropic.AsyncAnthropic | None = None,
    ):
        self.model = model
        self.max_tokens = max_tokens
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
        )

    async def complete(self, system_prompt: str, user_message: str) -> str:
        try:
            response = await self._client.messages.create(
                model=self.model,
                max_tokens=self.max_tokens,
                system=system_prompt,
                messages=[{"role": "user", "content": user_message}],
            )
        except anthropic.AuthenticationError as e:
            # SECURITY: status only, never the upstream body
            logger.error(f"Anthropic API error: status {e.status_code}")
            raise UpstreamAuthError() from None
        except anthropic.APIStatusError as e:
            logger.error(f"Anthropic API error: status {e.status_code}")
            raise UpstreamFailure(status=e.status_code) from None
        except anthropic.APITimeoutError:
            logger.error("Anthropic API error: timeout")
            raise UpstreamFailure() from None
        except anthropic.APIConnectionError:
            logger.error("Anthropic API error: connection failed")
            raise UpstreamFailure() from None

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        if not text:
            logger.error("Anthropic API returned no text content")
            raise UpstreamFailure(message="Empty response from API")
        return text

    async def aclose(self) -> None:
        await self._client.close()


__all__ = ["ModelClient", "AnthropicModelClient"]
