"""
Compress long transcripts: older turns become a model-written summary, the
most recent ones stay verbatim in the prompt window.
"""
import math
from pathlib import Path
from typing import Any, Dict, Optional, Sequence

from agentic_intake.core.cache import make_key
from agentic_intake.core.errors import ModelCallError
from agentic_intake.core.logging import get_logger
from agentic_intake.core.promptkit import PromptBuilder
from agentic_intake.core.schema import Message

_log = get_logger("agent.summary")

_prompts = PromptBuilder(Path(__file__).resolve().parent / "prompts")

def estimate_token_count(messages: Sequence[Message]) -> int:
    # roughly 4 characters per token
    return math.ceil(sum(len(m.content) for m in messages) / 4)

def summarize_conversation(
    llm: Any,
    messages: Sequence[Message],
    gathered: Dict[str, str],
    *,
    threshold: int = 20,
    keep_recent: int = 10,
    cache: Any = None,
    ttl: int = 3600,
) -> Optional[str]:
    """Summary of everything but the last `keep_recent` messages, or None.

    None when the transcript is below `threshold` or the model call fails; the
    prompt then simply goes without a summary.
    """
    if len(messages) < threshold:
        return None
    older = list(messages)[:-keep_recent] if keep_recent else list(messages)
    if not older:
        return None

    key = make_key("intake:summary", {
        "messages": [m.model_dump() for m in older],
        "gathered": gathered,
    })
    if cache is not None:
        cached = cache.get(key)
        if cached:
            return cached["text"]

    prompt = _prompts.render("summary.md", messages=older, gathered=sorted(gathered.items()))
    try:
        text = llm.chat([{"role": "user", "content": prompt}], temperature=0.3, max_tokens=500).strip()
    except ModelCallError as e:
        _log.warning(f"summarization failed, continuing without summary: {e}", extra={"stage": "summary.error"})
        return None
    if not text:
        return None

    _log.info(f"summarized {len(older)} messages (~{estimate_token_count(older)} tokens) into {len(text)} chars",
              extra={"stage": "summary.done"})
    if cache is not None:
        cache.set(key, {"text": text}, ttl=ttl)
    return text
