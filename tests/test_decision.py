import json

import pytest

from agentic_intake.agent.decision import DecisionParser, UPDATE_STATE_TOOL, decision_from_stream, parse_decision
from agentic_intake.agent.streaming import ToolCallPayload
from agentic_intake.core.config import AgentConfig
from agentic_intake.core.errors import DecisionParseError
from agentic_intake.core.llm.client import ChatLLM

from fakes import FakeOpenAIClient, b, u

def test_parse_full_decision():
    raw = json.dumps({
        "reply": "Thanks Jane!",
        "extracted_information": {"full_name": "Jane Doe", "budget": 25000, "notes": None},
        "updated_phase": "collecting",
        "current_topic": "email",
        "reasoning": "got the name",
    })
    d = parse_decision(raw)
    assert d.reply == "Thanks Jane!"
    assert d.extracted_information == {"full_name": "Jane Doe", "budget": "25000"}
    assert d.updated_phase == "collecting"
    assert d.current_topic == "email"
    assert d.service_mismatch is False

def test_parse_tolerates_code_fence():
    d = parse_decision('```json\n{"reply": "Hi!"}\n```')
    assert d.reply == "Hi!"

@pytest.mark.parametrize("raw", ["", "not json", "[1, 2]", '{"reply": ""}', '{"updated_phase": "collecting"}', '{"reply": 42}'])
def test_parse_rejects_bad_output(raw):
    with pytest.raises(DecisionParseError):
        parse_decision(raw)

def test_unknown_phase_dropped():
    d = parse_decision({"reply": "ok", "updated_phase": "celebrating"})
    assert d.updated_phase is None

def test_non_object_extraction_dropped():
    d = parse_decision({"reply": "ok", "extracted_information": ["email"]})
    assert d.extracted_information == {}

def test_stream_decision_from_tool_call():
    call = ToolCallPayload(
        name="update_conversation_state",
        arguments='{"extracted_information": {"email": "jane@example.com"}, "updated_phase": "collecting"}',
    )
    d = decision_from_stream("Got it, thanks!", [call])
    assert d.reply == "Got it, thanks!"
    assert d.extracted_information == {"email": "jane@example.com"}
    assert d.updated_phase == "collecting"

def test_stream_decision_plain_text_without_tool():
    d = decision_from_stream("Hello there!", [])
    assert d.reply == "Hello there!"
    assert d.updated_phase is None and d.extracted_information == {}

def test_stream_decision_errors():
    with pytest.raises(DecisionParseError):
        decision_from_stream("", [])
    with pytest.raises(DecisionParseError):
        decision_from_stream("Hi", [ToolCallPayload(name="update_conversation_state", arguments='{"extracted')])

def test_parser_sends_latest_user_message_in_json_mode():
    client = FakeOpenAIClient('{"reply": "Great, a remodel!", "updated_phase": "collecting"}')
    parser = DecisionParser(ChatLLM("gpt-test", client=client), AgentConfig())
    d = parser.decide("SYSTEM", [b("Hi!"), u("A kitchen remodel")])
    assert d.reply == "Great, a remodel!"
    req = client.completions.requests[0]
    assert req["response_format"] == {"type": "json_object"}
    assert req["messages"][0] == {"role": "system", "content": "SYSTEM"}
    assert "A kitchen remodel" in req["messages"][1]["content"]

def test_parser_opens_stream_with_state_tool():
    client = FakeOpenAIClient(iter([]))
    parser = DecisionParser(ChatLLM("gpt-test", client=client))
    list(parser.open_stream("SYSTEM", []))
    req = client.completions.requests[0]
    assert req["stream"] is True
    assert req["tools"] == [UPDATE_STATE_TOOL]
