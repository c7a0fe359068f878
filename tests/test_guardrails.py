from agentic_intake.agent.guardrails import (
    CONFIRMATION_FOOTER,
    CONFIRMATION_HEADER,
    build_confirmation_message,
    enforce_guardrails,
    list_threshold,
)
from agentic_intake.core.schema import AgenticBotSchema, ConversationState

from fakes import ALL_GATHERED, b, decision, u

LIST_REPLY = (
    "Perfect! Let me confirm everything:\n\n"
    "- Type of project: Full kitchen remodel\n"
    "- Budget: 25000\n"
    "- Full name: Jane Doe\n"
    "- Email address: jane@example.com\n\n"
    "Does everything look correct?"
)

def _state(schema, phase, gathered=None):
    return ConversationState.initial(schema).model_copy(
        update={"phase": phase, "gathered_information": dict(gathered or {})}
    )

def _run(schema, dec, phase, messages, gathered):
    return enforce_guardrails(dec, _state(schema, phase, gathered), messages, schema, dict(gathered), schema.required_keys)

def test_completion_blocked_without_prior_confirmation(schema):
    msgs = [b("Great, and your email?"), u("jane@example.com, that's everything")]
    for phase in ("introduction", "collecting", "answering_questions"):
        result = _run(schema, decision("All done, thanks!", "completed"), phase, msgs, ALL_GATHERED)
        assert result.final_phase != "completed"

def test_premature_completion_synthesizes_confirmation_list(schema):
    msgs = [b("And your email?"), u("jane@example.com")]
    result = _run(schema, decision("Thanks, you're all set!", "completed"), "collecting", msgs, ALL_GATHERED)
    assert result.final_phase == "confirmation"
    assert "confirmation_gate" in result.rules_applied
    assert result.reply_rewritten
    assert result.reply.startswith(CONFIRMATION_HEADER)
    assert result.reply.endswith(CONFIRMATION_FOOTER)
    assert "- Email address: jane@example.com" in result.reply

def test_completion_needs_list_on_screen(schema):
    # in confirmation, but the last bot message never showed the list
    msgs = [b("Sounds good, shall we wrap up?"), u("yes")]
    result = _run(schema, decision("Done!", "completed"), "confirmation", msgs, ALL_GATHERED)
    assert result.final_phase == "confirmation"
    assert result.reply.startswith(CONFIRMATION_HEADER)

def test_yes_after_synthesized_list_completes(schema):
    synthesized = build_confirmation_message(ALL_GATHERED, schema)
    msgs = [b(synthesized), u("yes")]
    result = _run(schema, decision("Wonderful, we'll be in touch!", "completed"), "confirmation", msgs, ALL_GATHERED)
    assert result.final_phase == "completed"
    assert not result.enforcement_applied
    assert result.reply == "Wonderful, we'll be in touch!"

def test_critical_field_veto(schema):
    gathered = {k: v for k, v in ALL_GATHERED.items() if k != "email"}
    msgs = [b("What's your name?"), u("Jane Doe")]
    result = _run(schema, decision(LIST_REPLY, "confirmation", full_name="Jane Doe"), "collecting", msgs, gathered)
    assert result.final_phase == "collecting"
    assert result.rules_applied == ["critical_veto"]

def test_critical_veto_rewrites_synthesized_list(schema):
    gathered = {k: v for k, v in ALL_GATHERED.items() if k != "email"}
    msgs = [b("What's your name?"), u("Jane Doe")]
    result = _run(schema, decision("All set!", "completed"), "collecting", msgs, gathered)
    assert result.final_phase == "collecting"
    assert "critical_veto_reply" in result.rules_applied
    assert "email address" in result.reply
    assert CONFIRMATION_HEADER not in result.reply

def test_yes_man_after_validation_question(schema):
    msgs = [b("Did you mean jane@gmail.com?"), u("yes")]
    result = _run(schema, decision(LIST_REPLY, "confirmation", email="jane@gmail.com"), "collecting", msgs, ALL_GATHERED)
    assert result.final_phase == "collecting"
    assert result.rules_applied == ["yes_man"]

def test_yes_man_blocks_completion_after_spelling_check(schema):
    gathered = {**ALL_GATHERED, "email": "john@gmail.com"}
    msgs = [b("Did you mean john@gmail.com?"), u("yes")]
    result = _run(schema, decision("Thanks, you're all set!", "completed", email="john@gmail.com"),
                  "collecting", msgs, gathered)
    assert result.final_phase != "completed"
    assert result.final_phase == "collecting"
    assert result.rules_applied == ["yes_man"]

def test_confirmation_accepted_from_list(schema):
    msgs = [b("And your email?"), u("jane@example.com")]
    result = _run(schema, decision(LIST_REPLY, "confirmation"), "collecting", msgs, ALL_GATHERED)
    assert result.final_phase == "confirmation"
    assert not result.enforcement_applied
    assert result.reply == LIST_REPLY

def test_confirmation_without_list_falls_back(schema):
    msgs = [b("And your email?"), u("jane@example.com")]
    result = _run(schema, decision("Great, almost done!", "confirmation"), "collecting", msgs, ALL_GATHERED)
    assert result.final_phase == "collecting"
    assert result.rules_applied == ["confirmation_list"]

def test_closing_language_completes_confirmed_list(schema):
    msgs = [b(LIST_REPLY), u("yep looks good")]
    result = _run(schema, decision("Thanks Jane! We'll be in touch within a day. Have a great day!"),
                  "confirmation", msgs, ALL_GATHERED)
    assert result.final_phase == "completed"
    assert result.rules_applied == ["closing_alignment"]

def test_closing_question_does_not_complete(schema):
    msgs = [b(LIST_REPLY), u("hmm wait")]
    result = _run(schema, decision("No problem! Before we say goodbye, what should I change?"),
                  "confirmation", msgs, ALL_GATHERED)
    assert result.final_phase == "confirmation"

def test_completion_requires_every_field(schema):
    gathered = {k: v for k, v in ALL_GATHERED.items() if k != "budget"}
    msgs = [b(LIST_REPLY), u("yes")]
    result = _run(schema, decision("Submitted!", "completed"), "confirmation", msgs, gathered)
    assert result.final_phase == "collecting"
    assert "all_fields" in result.rules_applied

def test_service_mismatch_never_skips_confirmation(schema):
    msgs = [b("How can we help?"), u("Can you fix my car?")]
    result = _run(schema, decision("Sorry, we only do kitchens.", "completed", mismatch=True), "collecting", msgs, {})
    assert result.final_phase == "collecting"
    assert "confirmation_gate" not in result.rules_applied
    assert result.reply == "Sorry, we only do kitchens."

def test_unknown_phase_means_stay(schema):
    msgs = [b("And your budget?"), u("about 20k")]
    result = _run(schema, decision("Thanks!", None), "collecting", msgs, {"budget": "20k"})
    assert result.final_phase == "collecting"
    assert not result.enforcement_applied

def test_inputs_not_mutated(schema):
    dec = decision("Thanks, all done!", "completed")
    state = _state(schema, "collecting", ALL_GATHERED)
    msgs = [b("And your email?"), u("jane@example.com")]
    before = (dec.model_dump(), state.model_dump(), [m.model_dump() for m in msgs])
    enforce_guardrails(dec, state, msgs, schema, dict(ALL_GATHERED), schema.required_keys)
    assert before == (dec.model_dump(), state.model_dump(), [m.model_dump() for m in msgs])

def test_single_field_bot_can_confirm():
    schema = AgenticBotSchema.model_validate({
        "goal": "Newsletter signups",
        "system_prompt": "Collect an email.",
        "schema_version": "agentic_v1",
        "required_info": {"email": {"description": "Email address", "critical": True, "type": "email"}},
    })
    assert list_threshold(schema.required_keys) == 1
    gathered = {"email": "jane@example.com"}
    listed = build_confirmation_message(gathered, schema)
    result = enforce_guardrails(
        decision("Thanks, you're subscribed!", "completed"),
        _state(schema, "confirmation", gathered),
        [b(listed), u("yes")],
        schema, gathered, schema.required_keys,
    )
    assert result.final_phase == "completed"
