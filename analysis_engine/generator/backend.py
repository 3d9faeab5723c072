"""
Stock Analysis — Generative Backend
─────────────────────────────────────
complete(prompt, max_tokens) -> text

Thin wrapper over the Anthropic Messages API. SDK-level retries are off;
AnalysisGenerator owns the retry policy. Every SDK failure is mapped to
BackendError(transient, reason) so the generator never sees SDK types.
"""

import asyncio
import logging

import anthropic
from anthropic import Anthropic

from analysis_engine.errors import BackendError

log = logging.getLogger("fintrack.generator.backend")


def _classify(e: Exception) -> BackendError:
    # APITimeoutError subclasses APIConnectionError, so check it first
    if isinstance(e, anthropic.APITimeoutError):
        return BackendError(f"timeout: {e}", transient=True, reason="timeout")
    if isinstance(e, anthropic.APIConnectionError):
        return BackendError(f"connection error: {e}", transient=True, reason="network")
    if isinstance(e, anthropic.APIStatusError):
        status = e.status_code
        if status == 429 or status >= 500:
            return BackendError(f"HTTP {status}: {e.message}", transient=True, reason="upstream")
        return BackendError(f"HTTP {status}: {e.message}", transient=False, reason="rejected")
    return BackendError(f"{type(e).__name__}: {e}", transient=True, reason="upstream")


class AnthropicBackend:
    def __init__(self, api_key: str, model: str, timeout_s: float = 30.0):
        self.model = model
        self._client = Anthropic(
            api_key=api_key,
            timeout=timeout_s,
            max_retries=0,
        )

    async def complete(self, prompt: str, max_tokens: int) -> str:
        loop = asyncio.get_event_loop()
        try:
            response = await loop.run_in_executor(None, lambda: self._client.messages.create(
                model=self.model,
                max_tokens=max_tokens,
                messages=[{"role": "user", "content": prompt}],
            ))
        except anthropic.AnthropicError as e:
            log.debug(f"Anthropic call failed: {type(e).__name__}: {e}")
            raise _classify(e) from e

        for block in response.content:
            if getattr(block, "type", None) == "text":
                return block.text
        raise BackendError("no text content in AI response", transient=True, reason="empty")
