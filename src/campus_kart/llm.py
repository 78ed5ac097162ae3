"""
Shared LLM helpers.

This module centralizes the OpenAI-compatible chat completion call so every
feature that talks to a hosted model goes through the same seam, which is
also the seam tests patch.
"""

import openai


class OpenAIChatMixin:
    """
    Mixin providing a single OpenAI-compatible chat completion call.

    The call is not retried: callers own their failure policy. The timeout is
    passed per request by the caller.
    """

    def _create_completion(self, **kwargs):
        """Call the OpenAI-compatible chat completion API once."""
        return openai.chat.completions.create(**kwargs)


def supports_temperature(model: str) -> bool:
    """Return False for model families that reject a custom temperature."""
    name = model.lower()
    return not name.startswith(("gpt-5", "o1", "o3", "o4"))
