from agentic_intake.agent.prompt_builder import RECENT_WINDOW, build_system_prompt, get_dynamic_strategy
from agentic_intake.core.schema import ConversationState, UploadedDocument

from fakes import b, u

def _build(bot, schema, state, messages=None, **kwargs):
    missing = [k for k in schema.required_keys if k not in state.gathered_information]
    return build_system_prompt(
        bot.business_name, schema, bot.business_profile, state, state.uploaded_documents,
        schema.required_keys, missing, messages=messages, **kwargs,
    )

def test_deterministic(bot, schema):
    state = ConversationState.initial(schema)
    msgs = [b("Hi! What are you planning?"), u("A kitchen remodel")]
    assert _build(bot, schema, state, msgs) == _build(bot, schema, state, msgs)

def test_blocks_in_order(bot, schema):
    state = ConversationState.initial(schema).model_copy(update={"gathered_information": {"full_name": "Jane Doe"}})
    prompt = _build(bot, schema, state, [b("Hi!"), u("Hello")])
    order = [
        "IDENTITY:", "ALREADY GATHERED", "STILL MISSING", "RECENT CONVERSATION",
        "NEXT STEP", "EXTRACTION RULES", "PHASES:", "VALIDATION", "RESPONSE FORMAT",
    ]
    positions = [prompt.index(marker) for marker in order]
    assert positions == sorted(positions)
    assert "- full_name: Jane Doe" in prompt
    assert "- email: Email address [CRITICAL]" in prompt
    assert "[project_type, budget, full_name, email]" in prompt
    assert schema.system_prompt in prompt

def test_recent_window_only(bot, schema):
    msgs = [u(f"message {i}") for i in range(10)]
    prompt = _build(bot, schema, ConversationState.initial(schema), msgs)
    assert "message 3" not in prompt
    for i in range(10 - RECENT_WINDOW, 10):
        assert f"user: message {i}" in prompt

def test_opening_turn_strategy(bot, schema):
    prompt = _build(bot, schema, ConversationState.initial(schema), [])
    assert "NEXT STEP - OPENING" in prompt
    assert "no messages yet" in prompt

def test_documents_and_image_only_when_present(bot, schema):
    state = ConversationState.initial(schema)
    bare = _build(bot, schema, state, [u("hi")])
    assert "IMAGE CONTEXT" not in bare and "DOCUMENTS" not in bare

    doc = UploadedDocument(url="https://files/x.pdf", filename="plan.pdf", uploaded_at="2025-01-01T10:00:00Z",
                           extracted_text="Island 3m wide")
    rich = _build(bot, schema, state.model_copy(update={"uploaded_documents": [doc]}), [u("see attached")],
                  image_analysis="A small galley kitchen")
    assert "IMAGE CONTEXT" in rich and "A small galley kitchen" in rich
    assert "[plan.pdf, uploaded 2025-01-01T10:00:00Z]" in rich
    assert "Island 3m wide" in rich

def test_summary_rendered_before_window(bot, schema):
    prompt = _build(bot, schema, ConversationState.initial(schema), [u("hi")], conversation_summary="Jane wants a remodel.")
    assert prompt.index("Jane wants a remodel.") < prompt.index("RECENT CONVERSATION")

def test_stream_mode_mentions_tool(bot, schema):
    prompt = _build(bot, schema, ConversationState.initial(schema), [u("hi")], response_mode="stream")
    assert "update_conversation_state" in prompt
    assert '"reply":' not in prompt

def test_strategy_targets_core_fields_before_contact(schema):
    text = get_dynamic_strategy(["full_name", "budget", "email"], schema.required_info)
    assert '"Budget"' in text.split("\n")[1]
    assert "Full name" in text
    contact = get_dynamic_strategy(["email"], schema.required_info)
    assert "Email address" in contact and "contact info" in contact
    done = get_dynamic_strategy([], schema.required_info)
    assert "CONFIRMATION REQUIRED" in done

def test_optional_fields_can_be_declined(bot, schema):
    prompt = _build(bot, schema, ConversationState.initial(schema), [u("hi")])
    assert 'extract "Not provided"' in prompt
    assert "Optional fields: [budget]" in prompt
