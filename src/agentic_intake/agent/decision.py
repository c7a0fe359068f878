import json
import re
from typing import Any, Dict, Iterator, Optional, Sequence, Union

from agentic_intake.agent.streaming import ToolCallPayload
from agentic_intake.core.config import AgentConfig
from agentic_intake.core.errors import DecisionParseError
from agentic_intake.core.llm.client import ChatLLM
from agentic_intake.core.logging import get_logger
from agentic_intake.core.schema import Decision, Message, PHASES

_log = get_logger("agent.decision")

UPDATE_STATE_TOOL_NAME = "update_conversation_state"

UPDATE_STATE_TOOL: Dict[str, Any] = {
    "type": "function",
    "function": {
        "name": UPDATE_STATE_TOOL_NAME,
        "description": "Record what was learned this turn and the proposed conversation phase. Call it once, after the reply.",
        "parameters": {
            "type": "object",
            "properties": {
                "extracted_information": {
                    "type": "object",
                    "description": "Values the user gave this turn, keyed by the allowed field keys only.",
                    "additionalProperties": {"type": "string"},
                },
                "updated_phase": {
                    "type": "string",
                    "enum": list(PHASES),
                },
                "current_topic": {
                    "type": "string",
                    "description": "The field currently being discussed.",
                },
                "reasoning": {"type": "string"},
                "service_mismatch": {
                    "type": "boolean",
                    "description": "True when the business cannot serve this request at all.",
                },
            },
            "required": ["extracted_information", "updated_phase"],
        },
    },
}

_FENCE = re.compile(r"^```(?:json)?\s*|\s*```$", re.I)

def _loads(raw: str) -> Any:
    text = _FENCE.sub("", raw.strip())
    try:
        return json.loads(text)
    except json.JSONDecodeError as e:
        raise DecisionParseError(f"decision is not valid JSON: {e}", raw=raw) from e

def _stringify(value: Any) -> str:
    if isinstance(value, str):
        return value.strip()
    if isinstance(value, (list, tuple)):
        return ", ".join(_stringify(v) for v in value if v is not None)
    if isinstance(value, bool):
        return "yes" if value else "no"
    return str(value).strip()

def _extracted(value: Any) -> Dict[str, str]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        _log.warning("extracted_information is not an object, ignoring it", extra={"stage": "decision.extracted"})
        return {}
    out: Dict[str, str] = {}
    for k, v in value.items():
        if v is None:
            continue
        s = _stringify(v)
        if s:
            out[str(k)] = s
    return out

def _phase(value: Any) -> Optional[str]:
    if value in PHASES:
        return value
    if value is not None:
        _log.warning(f"unknown phase proposed: {value!r}", extra={"stage": "decision.phase"})
    return None

def _optional_str(value: Any) -> Optional[str]:
    if value is None:
        return None
    s = _stringify(value)
    return s or None

def _build(reply: Any, fields: Dict[str, Any], raw: str) -> Decision:
    if not isinstance(reply, str) or not reply.strip():
        raise DecisionParseError("decision has no reply", raw=raw)
    return Decision(
        reply=reply.strip(),
        extracted_information=_extracted(fields.get("extracted_information")),
        updated_phase=_phase(fields.get("updated_phase")),
        current_topic=_optional_str(fields.get("current_topic")),
        reasoning=_optional_str(fields.get("reasoning")),
        service_mismatch=fields.get("service_mismatch") is True,
    )

def parse_decision(raw: Union[str, Dict[str, Any]]) -> Decision:
    """Parse the model's JSON-mode output. No default decision is ever made up."""
    if isinstance(raw, dict):
        data, text = raw, json.dumps(raw, ensure_ascii=False)
    else:
        if not raw or not raw.strip():
            raise DecisionParseError("empty model output", raw=raw)
        data, text = _loads(raw), raw
    if not isinstance(data, dict):
        raise DecisionParseError("decision must be a JSON object", raw=text)
    return _build(data.get("reply"), data, text)

def decision_from_stream(full_message: str, tool_calls: Sequence[ToolCallPayload]) -> Decision:
    """Rebuild a Decision from streamed text plus the state tool's arguments."""
    content = (full_message or "").strip()
    call = next((c for c in tool_calls if c.name == UPDATE_STATE_TOOL_NAME), None)
    if call is None:
        if content.startswith("{") or content.startswith("```"):
            return parse_decision(content)
        if not content:
            raise DecisionParseError("stream ended without a reply", raw=full_message)
        return Decision(reply=content)

    args = _loads(call.arguments or "{}")
    if not isinstance(args, dict):
        raise DecisionParseError("tool arguments must be a JSON object", raw=call.arguments)
    return _build(content or args.get("reply"), args, call.arguments)

def _instruction(messages: Sequence[Message]) -> str:
    latest = next((m.content for m in reversed(messages) if m.role == "user"), None)
    if latest is None:
        return "Start the conversation now with your opening message."
    return f'The user just said: "{latest}"\n\nReply to them and update the conversation state.'

class DecisionParser:
    """One model round-trip per turn, JSON mode or streamed with the state tool."""

    def __init__(self, llm: ChatLLM, config: Optional[AgentConfig] = None):
        self.llm = llm
        self.config = config or AgentConfig()

    def decide(self, system_prompt: str, messages: Sequence[Message]) -> Decision:
        raw = self.llm.chat(
            [{"role": "user", "content": _instruction(messages)}],
            system=system_prompt,
            json_mode=True,
            temperature=self.config.temperature,
        )
        decision = parse_decision(raw)
        _log.info(f"decision proposes {decision.updated_phase or 'stay'}",
                  extra={"stage": "decision.parsed", "phase": decision.updated_phase})
        return decision

    def open_stream(self, system_prompt: str, messages: Sequence[Message]) -> Iterator[Any]:
        return self.llm.stream(
            [{"role": "user", "content": _instruction(messages)}],
            system=system_prompt,
            tools=[UPDATE_STATE_TOOL],
        )
