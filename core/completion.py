"""AI completion collaborator used by the conversational fallback."""
import logging
import os
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

import litellm
import trio

logger = logging.getLogger(__name__)


class CompletionError(Exception):
    """Raised when the model call fails or returns nothing usable."""


@dataclass
class CompletionClient:
    """Chat completion via litellm, run in a worker thread.

    Attributes:
        model: litellm model name
        temperature: Sampling temperature
        max_tokens: Response length cap
        api_key: Provider API key; litellm falls back to its env vars if None
    """
    model: str
    temperature: float = 0.7
    max_tokens: int = 500
    api_key: Optional[str] = None

    @classmethod
    def from_config(cls, cfg: Dict[str, Any]) -> "CompletionClient":
        return cls(
            model=cfg.get("model", "gpt-4o-mini"),
            temperature=float(cfg.get("temperature", 0.7)),
            max_tokens=int(cfg.get("max_tokens", 500)),
            api_key=os.environ.get(cfg.get("api_key_env", "OPENAI_API_KEY")),
        )

    async def complete(
        self,
        system_prompt: str,
        history: List[Dict[str, str]],
        user_message: str,
    ) -> str:
        """Return the assistant's reply to user_message given prior turns.

        Raises:
            CompletionError: On any provider failure or an empty reply
        """
        messages = [{"role": "system", "content": system_prompt}]
        messages.extend(history)
        messages.append({"role": "user", "content": user_message})

        request: Dict[str, Any] = {
            "model": self.model,
            "messages": messages,
            "temperature": self.temperature,
            "max_tokens": self.max_tokens,
        }
        if self.api_key:
            request["api_key"] = self.api_key

        try:
            response = await trio.to_thread.run_sync(
                lambda: litellm.completion(**request)
            )
            content = response.choices[0].message.content
        except Exception as e:
            raise CompletionError(f"Completion with {self.model} failed: {e}") from e

        if not content:
            raise CompletionError(f"Completion with {self.model} returned no content")
        return content.strip()
