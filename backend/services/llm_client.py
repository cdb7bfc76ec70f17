"""
Generation service client, wraps the OpenAI SDK to talk to llama-server
(or any OpenAI-compatible chat completions endpoint).

The server runs one forward pass at a time, so every call goes through a
single asyncio.Lock. A stream keeps the lock until it is exhausted, closed
by the caller, or cancelled through its cancel event; closing the stream
also closes the underlying HTTP response so the server stops generating.

Usage:
    from services.llm_client import get_generation_service
    llm = get_generation_service()
    text = await llm.invoke([{"role": "user", "content": "hi"}])
    async with aclosing(llm.stream(messages, cancel_event=ev)) as tokens:
        async for token in tokens:
            ...
"""

import asyncio
import logging
import time
from typing import Any, AsyncIterator, Dict, List, Optional

import httpx
import openai
from openai import AsyncOpenAI

from config import runtime_config
from errors import GenerationFailure
from logging_config import log_llm

logger = logging.getLogger(__name__)


def _wrap_openai_error(e: Exception, model: str) -> GenerationFailure:
    """Translate an OpenAI SDK exception into a GenerationFailure."""
    if isinstance(e, openai.APITimeoutError):
        return GenerationFailure(
            "Generation service timed out",
            details=str(e),
            model=model,
            error_type="timeout",
        )
    if isinstance(e, openai.APIConnectionError):
        return GenerationFailure(
            "Generation service unreachable",
            details=str(e),
            model=model,
            error_type="unavailable",
        )
    status = getattr(e, "status_code", None)
    return GenerationFailure(
        "Generation service call failed",
        details=str(e),
        model=model,
        status_code=status,
    )


class GenerationService:
    """Single-flight access to the chat model."""

    def __init__(
        self,
        base_url: Optional[str] = None,
        model: Optional[str] = None,
        timeout: Optional[float] = None,
        client: Optional[AsyncOpenAI] = None,
    ):
        """
        Args:
            base_url: llama-server URL (e.g., "http://localhost:8081"); defaults to config
            model: Model name sent with each request; defaults to config
            timeout: Transport timeout in seconds; defaults to config
            client: Pre-built AsyncOpenAI client (skips lazy construction)
        """
        self.base_url = (base_url or runtime_config.llm_base_url).rstrip("/")
        self._model = model
        self._timeout = timeout if timeout is not None else runtime_config.llm_timeout
        self._client = client
        self._lock = asyncio.Lock()

    @property
    def model(self) -> str:
        return self._model or runtime_config.model_chat

    @property
    def busy(self) -> bool:
        """True while a call holds the generation slot."""
        return self._lock.locked()

    def _get_client(self) -> AsyncOpenAI:
        if self._client is None:
            self._client = AsyncOpenAI(
                base_url=f"{self.base_url}/v1",
                api_key="not-needed",  # llama-server doesn't require auth
                timeout=self._timeout,
                max_retries=0,
            )
            logger.info(f"Generation client ready: {self.base_url} (model={self.model})")
        return self._client

    def _request_params(self, overrides: Dict[str, Any]) -> Dict[str, Any]:
        params = runtime_config.get_llm_params()
        params.update({k: v for k, v in overrides.items() if v is not None})
        return params

    async def is_healthy(self, timeout: float = 3.0) -> bool:
        """Health check against llama-server /health endpoint."""
        try:
            async with httpx.AsyncClient(timeout=timeout) as client:
                resp = await client.get(f"{self.base_url}/health")
            return resp.status_code == 200
        except httpx.HTTPError:
            return False

    async def invoke(
        self,
        messages: List[Dict[str, str]],
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> str:
        """Single-shot completion.

        Returns:
            The assistant message text ("" if the model returned nothing)

        Raises:
            GenerationFailure: transport or server error
        """
        params = self._request_params({"max_tokens": max_tokens, "temperature": temperature})
        model = self.model

        async with self._lock:
            start_time = time.time()
            log_llm(logger, "start", model=model)
            try:
                response = await self._get_client().chat.completions.create(
                    model=model,
                    messages=messages,
                    stream=False,
                    **params,
                )
            except openai.OpenAIError as e:
                raise _wrap_openai_error(e, model) from e
            log_llm(logger, "end", model=model, duration=time.time() - start_time)

        if not response.choices:
            return ""
        return response.choices[0].message.content or ""

    async def stream(
        self,
        messages: List[Dict[str, str]],
        cancel_event: Optional[asyncio.Event] = None,
        max_tokens: Optional[int] = None,
        temperature: Optional[float] = None,
    ) -> AsyncIterator[str]:
        """Stream completion tokens in generation order.

        Stops pulling tokens (and closes the HTTP response) as soon as
        cancel_event is set.

        Raises:
            GenerationFailure: transport or server error, before or mid-stream
        """
        params = self._request_params({"max_tokens": max_tokens, "temperature": temperature})
        model = self.model

        async with self._lock:
            start_time = time.time()
            log_llm(logger, "start", model=model)
            try:
                response = await self._get_client().chat.completions.create(
                    model=model,
                    messages=messages,
                    stream=True,
                    **params,
                )
            except openai.OpenAIError as e:
                raise _wrap_openai_error(e, model) from e

            tokens = 0
            try:
                async for chunk in response:
                    if cancel_event is not None and cancel_event.is_set():
                        logger.info(f"Generation cancelled after {tokens} tokens")
                        break
                    delta = chunk.choices[0].delta if chunk.choices else None
                    if not delta or not delta.content:
                        continue
                    tokens += 1
                    yield delta.content
            except openai.OpenAIError as e:
                raise _wrap_openai_error(e, model) from e
            except httpx.HTTPError as e:
                raise GenerationFailure(
                    "Generation stream interrupted",
                    details=str(e),
                    model=model,
                ) from e
            finally:
                await response.close()
                log_llm(logger, "end", model=model, duration=time.time() - start_time)

    async def close(self) -> None:
        if self._client is not None:
            await self._client.close()
            self._client = None


_service: Optional[GenerationService] = None


def get_generation_service() -> GenerationService:
    """Get or create the process-wide generation service."""
    global _service
    if _service is None:
        _service = GenerationService()
    return _service


def set_generation_service(service: Optional[GenerationService]) -> None:
    """Replace the process-wide generation service (startup wiring, tests)."""
    global _service
    _service = service
