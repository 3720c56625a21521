from __future__ import annotations

from prmark_core.providers.base import BaseReviewer


class AnthropicReviewer(BaseReviewer):
    """Claude-backed reviewer. ``model`` overrides the default model id."""

    MODEL = "claude-sonnet-4-20250514"
    TEMPERATURE = 0.3

    def __init__(self, api_key: str, model: str | None = None):
        try:
            from anthropic import Anthropic
        except ImportError:
            raise ImportError(
                "The 'anthropic' package is required for this provider. "
                "Install it with: pip install 'prmark[anthropic]'"
            )
        self.client = Anthropic(api_key=api_key)
        self.model = model or self.MODEL

    def _call_api(self, system_prompt: str, user_prompt: str) -> str:
        from anthropic.types import TextBlock

        response = self.client.messages.create(
            model=self.model,
            system=system_prompt,
            messages=[{"role": "user", "content": user_prompt}],
            temperature=self.TEMPERATURE,
            max_tokens=self.MAX_TOKENS,
        )
        # Tool-use and thinking blocks carry no review text.
        return "".join(block.text for block in response.content if isinstance(block, TextBlock)).strip()
