"""TextCompletionProvider Protocol: the testable seam for all model calls.

Implementations:
- AnthropicProvider: Anthropic Messages API (production)
- ProviderFake: scenario-based deterministic test double
"""

from typing import Protocol, runtime_checkable

DEFAULT_MAX_OUTPUT_TOKENS = 1000


@runtime_checkable
class TextCompletionProvider(Protocol):
    """Turns a prompt into raw model text.

    A single attempt per call. Implementations raise ProviderError when the
    upstream call fails or returns no usable text.
    """

    async def generate(
        self,
        prompt: str,
        system_instructions: str | None = None,
        max_output_tokens: int = DEFAULT_MAX_OUTPUT_TOKENS,
    ) -> str:
        """Generate a completion for prompt.

        Args:
            prompt: User-turn text
            system_instructions: Optional system prompt
            max_output_tokens: Upper bound on generated tokens

        Returns:
            Raw completion text

        Raises:
            ProviderError: Upstream failure or empty completion
        """
        ...
