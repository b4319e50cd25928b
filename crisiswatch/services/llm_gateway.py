"""
LLM Gateway — OpenAI-compatible chat completions.

One HTTP shape for every reasoning model: a system + user message pair in,
free text out. Failures raise ModelCallError; deciding what a failure means
is the orchestrator's job.
"""

from typing import Optional, Protocol

import httpx
import structlog

from crisiswatch.config import ModelSpec
from crisiswatch.exceptions import ModelCallError

logger = structlog.get_logger(__name__)


class ReasoningGateway(Protocol):
    async def complete(self, spec: ModelSpec, system: str, user: str) -> str:
        ...


class ChatCompletionGateway:
    """Gateway for a chat-completions endpoint (Hugging Face router by default)."""

    def __init__(
        self,
        client: httpx.AsyncClient,
        base_url: str,
        api_key: Optional[str] = None,
    ):
        self.client = client
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key or ""
        if not self.api_key:
            logger.warning("llm_api_key_missing", msg="Model calls will fail; fallback analyses only")

    async def complete(self, spec: ModelSpec, system: str, user: str) -> str:
        """
        Non-streaming completion.

        Returns the first choice's message content. The caller bounds the
        call with its own timeout; cancellation aborts the request.
        """
        if not self.api_key:
            raise ModelCallError(spec.name, "no API key configured")

        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        payload = {
            "model": spec.model,
            "messages": [
                {"role": "system", "content": system},
                {"role": "user", "content": user},
            ],
            "max_tokens": spec.max_tokens,
            "temperature": spec.temperature,
        }

        try:
            response = await self.client.post(
                f"{self.base_url}/chat/completions",
                json=payload,
                headers=headers,
                timeout=spec.timeout_seconds,
            )
        except httpx.HTTPError as e:
            raise ModelCallError(spec.name, f"{type(e).__name__}: {e}") from e

        if response.status_code != 200:
            logger.error(
                "llm_api_error",
                model=spec.name,
                status=response.status_code,
                body=response.text[:500],
            )
            raise ModelCallError(
                spec.name,
                f"HTTP {response.status_code}",
                details={"status": response.status_code},
            )

        try:
            data = response.json()
            content = data["choices"][0]["message"]["content"]
        except (ValueError, KeyError, IndexError, TypeError) as e:
            raise ModelCallError(spec.name, "unexpected completion body") from e
        if not isinstance(content, str):
            raise ModelCallError(spec.name, "completion content is not text")
        return content
