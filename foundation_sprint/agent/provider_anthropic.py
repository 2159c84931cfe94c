"""AnthropicProvider: production TextCompletionProvider over the Messages API.

- Direct anthropic.AsyncAnthropic call (no framework in between)
- Single attempt: client-level retries are disabled
- Request timeout, model and temperature come from Settings
"""

import anthropic
import structlog

from foundation_sprint.agent.provider import DEFAULT_MAX_OUTPUT_TOKENS
from foundation_sprint.core.config import Settings
from foundation_sprint.core.exceptions import ProviderError

logger = structlog.get_logger(__name__)


class AnthropicProvider:
    """TextCompletionProvider backed by Claude."""

    def __init__(
        self,
        api_key: str,
        model: str = "claude-sonnet-4-20250514",
        temperature: float = 0.7,
        timeout: float = 120.0,
        client: anthropic.AsyncAnthropic | None = None,
    ) -> None:
        self._model = model
        self._temperature = temperature
        self._client = client or anthropic.AsyncAnthropic(
            api_key=api_key,
            timeout=timeout,
            max_retries=0,
        )

    @classmethod
    def from_settings(cls, settings: Settings) -> "AnthropicProvider":
        return cls(
            api_key=settings.anthropic_api_key,
            model=settings.sprint_model,
            temperature=settings.llm_temperature,
            timeout=settings.llm_timeout_seconds,
        )

    @property
    def model(self) -> str:
        return self._model

    async def generate(
        self,
        prompt: str,
        system_instructions: str | None = None,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    ) -> str:
        kwargs = {
            "model": self._model,
            "max_tokens": max_output_tokens,
            "temperature": self._temperature,
            "messages": [{"role": "user", "content": prompt}],
        }
        if system_instructions:
            kwargs["system"] = system_instructions

        try:
            response = await self._client.messages.create(**kwargs)
        except anthropic.APIError as exc:
            logger.warning(
                "llm_call_failed",
                model=self._model,
                error=str(exc),
                error_type=type(exc).__name__,
            )
            raise ProviderError(f"Failed to generate response: {exc}") from exc

        text = "".join(
            block.text for block in response.content if getattr(block, "type", None) == "text"
        )
        logger.debug(
            "llm_usage",
            model=self._model,
            input_tokens=response.usage.input_tokens,
            output_tokens=response.usage.output_tokens,
            stop_reason=response.stop_reason,
        )

        if not text.strip():
            raise ProviderError(
                f"Failed to generate response: empty completion (stop_reason={response.stop_reason})"
            )
        return text

    async def aclose(self) -> None:
        await self._client.close()
