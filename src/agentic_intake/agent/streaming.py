"""
Token streaming between the model and the HTTP client.

Content deltas are forwarded the moment they arrive; tool-call fragments are
buffered per call index and only surface once the model stream has ended.
"""
from typing import Any, Callable, Dict, Iterable, List, Literal, Optional, Tuple

from pydantic import BaseModel

from agentic_intake.core.logging import get_logger

_log = get_logger("agent.streaming")

SSE_HEADERS: Dict[str, str] = {
    "Content-Type": "text/event-stream",
    "Cache-Control": "no-cache, no-transform",
    "Connection": "keep-alive",
    "X-Accel-Buffering": "no",
}

class ToolCallPayload(BaseModel):
    name: str
    arguments: str

class StreamChunk(BaseModel):
    type: Literal["token", "tool_call", "state_update", "done", "error"]
    content: Optional[str] = None
    toolCall: Optional[ToolCallPayload] = None
    state: Optional[Dict[str, Any]] = None
    reply: Optional[str] = None
    service_mismatch: Optional[bool] = None
    simulation: Optional[Dict[str, Any]] = None
    error: Optional[str] = None

    @classmethod
    def token(cls, text: str) -> "StreamChunk":
        return cls(type="token", content=text)

    @classmethod
    def done(cls) -> "StreamChunk":
        return cls(type="done")

    @classmethod
    def failure(cls, message: str) -> "StreamChunk":
        return cls(type="error", error=message)

class _ToolBuffer:
    def __init__(self):
        self.name = ""
        self.parts: List[str] = []

class StreamAccumulator:
    """Turn raw completion chunks into StreamChunks while rebuilding the full turn."""

    def __init__(self):
        self._content: List[str] = []
        self._tools: Dict[int, _ToolBuffer] = {}
        self._finished: Optional[List[ToolCallPayload]] = None

    @property
    def full_message(self) -> str:
        return "".join(self._content)

    @property
    def tool_calls(self) -> List[ToolCallPayload]:
        if self._finished is not None:
            return list(self._finished)
        return self._flush()

    def feed(self, chunk: Any) -> List[StreamChunk]:
        out: List[StreamChunk] = []
        for choice in getattr(chunk, "choices", None) or []:
            delta = getattr(choice, "delta", None)
            if delta is None:
                continue
            text = getattr(delta, "content", None)
            if text:
                self._content.append(text)
                out.append(StreamChunk.token(text))
            for tc in getattr(delta, "tool_calls", None) or []:
                idx = getattr(tc, "index", None) or 0
                buf = self._tools.setdefault(idx, _ToolBuffer())
                fn = getattr(tc, "function", None)
                if fn is None:
                    continue
                name = getattr(fn, "name", None)
                if name:
                    buf.name = name
                args = getattr(fn, "arguments", None)
                if args:
                    buf.parts.append(args)
        return out

    def _flush(self) -> List[ToolCallPayload]:
        calls = []
        for idx in sorted(self._tools):
            buf = self._tools[idx]
            if not buf.name:
                _log.warning(f"dropping nameless tool call at index {idx}", extra={"stage": "stream.tool.unnamed"})
                continue
            calls.append(ToolCallPayload(name=buf.name, arguments="".join(buf.parts)))
        return calls

    def finish(self) -> List[StreamChunk]:
        self._finished = self._flush()
        for call in self._finished:
            _log.info("tool call assembled", extra={"stage": "stream.tool", "tool": call.name})
        return [StreamChunk(type="tool_call", toolCall=call) for call in self._finished]

def process_openai_stream(
    stream: Iterable[Any],
    on_token: Optional[Callable[[str], None]] = None,
    on_tool_call: Optional[Callable[[ToolCallPayload], None]] = None,
) -> Tuple[str, List[ToolCallPayload]]:
    acc = StreamAccumulator()
    for raw in stream:
        for chunk in acc.feed(raw):
            if on_token is not None:
                on_token(chunk.content or "")
    for chunk in acc.finish():
        if on_tool_call is not None and chunk.toolCall is not None:
            on_tool_call(chunk.toolCall)
    return acc.full_message, acc.tool_calls

def encode_sse(chunk: StreamChunk) -> str:
    return f"data: {chunk.model_dump_json(exclude_none=True)}\n\n"

def wants_event_stream(accept: Optional[str]) -> bool:
    if not accept:
        return False
    return any(part.split(";")[0].strip().lower() == "text/event-stream" for part in accept.split(","))
