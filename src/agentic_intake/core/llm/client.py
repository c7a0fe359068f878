import os
import time
from typing import List, Dict, Any, Optional, Iterator

import httpx
import openai
from openai import AzureOpenAI, OpenAI

from agentic_intake.core.errors import ConfigurationError, ModelCallError, TransportError
from agentic_intake.core.logging import get_logger

_log = get_logger("llm.client")
_clock = time.monotonic

def build_client(timeout: float) -> Any:
    """Azure OpenAI when AZURE_OPENAI_* is set, plain OpenAI otherwise."""
    endpoint = os.getenv("AZURE_OPENAI_ENDPOINT")
    if endpoint:
        api_key = os.getenv("AZURE_OPENAI_API_KEY")
        if not api_key:
            raise ConfigurationError("Missing Azure OpenAI env vars")
        api_version = os.getenv("AZURE_OPENAI_API_VERSION", "2024-08-01-preview")
        return AzureOpenAI(azure_endpoint=endpoint, api_key=api_key, api_version=api_version,
                           timeout=timeout, max_retries=0)
    api_key = os.getenv("OPENAI_API_KEY")
    if not api_key:
        raise ConfigurationError("Set OPENAI_API_KEY or the AZURE_OPENAI_* variables")
    # retries are owned by the caller's backoff, not by the SDK
    return OpenAI(api_key=api_key, timeout=timeout, max_retries=0)

class ChatLLM:
    def __init__(self, model: Optional[str] = None, *, temperature: float = 0.7,
                 timeout: float = 45.0, client: Any = None):
        self.model = os.getenv("AZURE_OPENAI_DEPLOYMENT") or model or os.getenv("INTAKE_MODEL", "gpt-4o-mini")
        self.temperature = temperature
        self.timeout = timeout
        self.client = client if client is not None else build_client(timeout)

    def _messages(self, messages: List[Dict[str, str]], system: Optional[str]) -> List[Dict[str, Any]]:
        msgs: List[Dict[str, Any]] = []
        if system:
            msgs.append({"role": "system", "content": system})
        msgs.extend(messages)
        return msgs

    def chat(self, messages: List[Dict[str, str]], system: Optional[str] = None, json_mode: bool = False,
             temperature: Optional[float] = None, max_tokens: Optional[int] = None) -> str:
        kwargs: Dict[str, Any] = {}
        if json_mode:
            kwargs["response_format"] = {"type": "json_object"}
        if max_tokens:
            kwargs["max_tokens"] = max_tokens
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=self._messages(messages, system),
                temperature=self.temperature if temperature is None else temperature,
                timeout=self.timeout,
                **kwargs
            )
        except (openai.OpenAIError, httpx.HTTPError) as e:
            _log.error(f"chat call failed: {e}", extra={"stage": "llm.error"})
            raise ModelCallError(f"model call failed: {e}", original_error=e) from e
        _log.debug("assistant text", extra={"stage": "llm.reply"})
        return resp.choices[0].message.content or ""

    def stream(self, messages: List[Dict[str, str]], system: Optional[str] = None,
               tools: Optional[List[Dict[str, Any]]] = None) -> Iterator[Any]:
        """Open a streamed completion. Failing to open raises ModelCallError;
        failures while iterating raise TransportError."""
        kwargs: Dict[str, Any] = {}
        if tools:
            kwargs["tools"] = tools
            kwargs["tool_choice"] = "auto"
        try:
            raw = self.client.chat.completions.create(
                model=self.model,
                messages=self._messages(messages, system),
                temperature=self.temperature,
                timeout=self.timeout,
                stream=True,
                **kwargs
            )
        except (openai.OpenAIError, httpx.HTTPError) as e:
            _log.error(f"stream open failed: {e}", extra={"stage": "llm.error"})
            raise ModelCallError(f"model stream failed to open: {e}", original_error=e) from e
        return _guarded(raw, self.timeout)

def _guarded(raw: Any, deadline: float) -> Iterator[Any]:
    """The SDK timeout bounds each read; `deadline` bounds the whole stream."""
    started = _clock()
    try:
        for chunk in raw:
            if _clock() - started > deadline:
                _log.error(f"stream exceeded {deadline}s", extra={"stage": "llm.stream.deadline"})
                raise TransportError(f"model stream took longer than {deadline}s")
            yield chunk
    except (openai.OpenAIError, httpx.HTTPError) as e:
        _log.error(f"stream broke: {e}", extra={"stage": "llm.stream.error"})
        raise TransportError(f"model stream interrupted: {e}") from e
    finally:
        close = getattr(raw, "close", None)
        if close is not None:
            close()
