from agentic_intake.agent.state import merge_extracted
from agentic_intake.core.schema import ConversationState

def test_last_write_wins_and_input_untouched(schema):
    state = ConversationState.initial(schema).model_copy(update={"gathered_information": {"email": "old@example.com"}})
    result = merge_extracted(state, {"email": "new@example.com"}, schema)
    assert result.gathered["email"] == "new@example.com"
    assert state.gathered_information == {"email": "old@example.com"}

def test_unknown_keys_dropped_as_violations(schema):
    state = ConversationState.initial(schema)
    result = merge_extracted(state, {"favourite_colour": "blue", "full_name": "Jane"}, schema)
    assert set(result.gathered) == {"full_name"}
    assert set(result.gathered) <= set(schema.required_keys)
    assert [v.key for v in result.violations] == ["favourite_colour"]

def test_invalid_values_rejected_with_prompt(schema):
    state = ConversationState.initial(schema)
    result = merge_extracted(state, {"email": "jane@gmial.com", "budget": "25000"}, schema)
    assert "email" not in result.gathered
    assert result.gathered["budget"] == "25000"
    assert result.correction_prompt == "Did you mean jane@gmail.com?"

def test_missing_recomputed(schema):
    state = ConversationState.initial(schema)
    result = merge_extracted(state, {"project_type": "Remodel", "full_name": "Jane"}, schema)
    assert result.missing == ["budget", "email"]
    assert result.critical_missing == ["email"]

def test_empty_extraction(schema):
    result = merge_extracted(ConversationState.initial(schema), None, schema)
    assert result.gathered == {}
    assert result.violations == [] and result.rejections == []

def test_declined_optional_field_stored_as_not_provided(schema):
    result = merge_extracted(ConversationState.initial(schema), {"budget": "prefers not to say"}, schema)
    assert result.gathered["budget"] == "Not provided"
    assert "budget" not in result.missing
    assert result.rejections == []

def test_declined_critical_field_rejected(schema):
    result = merge_extracted(ConversationState.initial(schema), {"email": "Not provided"}, schema)
    assert "email" not in result.gathered
    assert result.correction_prompt
