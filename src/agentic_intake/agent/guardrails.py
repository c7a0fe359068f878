"""
Phase authority for a conversation turn.

The model's proposed phase is only a hint. `enforce_guardrails` runs an ordered
list of correction rules over it; a later rule may override an earlier one.
Every rule either keeps the phase or moves it backwards, except the
closing-language alignment which can only complete a conversation that is
already in confirmation with a list on screen. The function is total: it does
no I/O, does not mutate its inputs and never raises.
"""
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

from agentic_intake.core.logging import get_logger
from agentic_intake.core.schema import AgenticBotSchema, ConversationState, Decision, Message, PHASES
from agentic_intake.core.submission import field_label
from agentic_intake.core.utterance import (
    has_closing_language,
    has_confirmation_list,
    is_affirmation,
    is_validation_question,
)

_log = get_logger("agent.guardrails")

CONFIRMATION_HEADER = "Perfect! Let me confirm everything we've discussed:"
CONFIRMATION_FOOTER = "Does everything look correct before we finalize this?"

@dataclass
class GuardrailResult:
    final_phase: str
    enforcement_applied: bool
    reply: str
    rules_applied: List[str] = field(default_factory=list)

    @property
    def reply_rewritten(self) -> bool:
        return "confirmation_gate" in self.rules_applied or "critical_veto_reply" in self.rules_applied

def list_threshold(required_keys: Sequence[str]) -> int:
    """Bullets needed for a confirmation list; a one-field bot can only show one."""
    return min(2, max(1, len(required_keys)))

def build_confirmation_message(gathered: Dict[str, str], schema: AgenticBotSchema) -> str:
    lines = []
    for key in (k for k in schema.required_info if k in gathered):
        lines.append(f"- {field_label(key, schema)}: {gathered[key]}")
    return f"{CONFIRMATION_HEADER}\n\n" + "\n".join(lines) + f"\n\n{CONFIRMATION_FOOTER}"

def build_missing_message(missing: Sequence[str], schema: AgenticBotSchema) -> str:
    label = field_label(missing[0], schema)
    return f"Before we finalize this, I still need one more detail: {label[:1].lower() + label[1:]}. Could you share that?"

def _last_user_and_prior_bot(messages: Sequence[Message]) -> Tuple[str, str]:
    user_idx = None
    for i in range(len(messages) - 1, -1, -1):
        if messages[i].role == "user":
            user_idx = i
            break
    if user_idx is None:
        return "", ""
    for j in range(user_idx - 1, -1, -1):
        if messages[j].role == "bot":
            return messages[user_idx].content, messages[j].content
    return messages[user_idx].content, ""

def _last_bot(messages: Sequence[Message]) -> str:
    for m in reversed(messages):
        if m.role == "bot":
            return m.content
    return ""

def enforce_guardrails(
    decision: Decision,
    current_state: ConversationState,
    messages: Sequence[Message],
    schema: AgenticBotSchema,
    gathered: Dict[str, str],
    required_keys: Sequence[str],
) -> GuardrailResult:
    """Correct the model's proposed phase for this turn.

    `messages` is the full transcript including the latest user message; bot
    entries are the replies actually sent, after earlier guardrail rewrites.
    `gathered` is current gathered information merged with this turn's
    (already allow-listed) extraction.
    """
    current = current_state.phase
    proposed = decision.updated_phase if decision.updated_phase in PHASES else None
    phase: str = proposed or current
    reply = decision.reply or ""
    rules: List[str] = []
    min_items = list_threshold(required_keys)

    def move(to: str, rule: str, why: str):
        nonlocal phase
        if to != phase:
            _log.info(f"{rule}: {phase} -> {to} ({why})", extra={"stage": f"guardrail.{rule}", "rule": rule, "phase": to})
            rules.append(rule)
            phase = to

    user_msg, prior_bot = _last_user_and_prior_bot(messages)
    last_bot = _last_bot(messages)
    list_shown = has_confirmation_list(last_bot, min_items)

    # 1. a "yes" to a spell-check question is not a sign-off
    if proposed in ("confirmation", "completed") and is_affirmation(user_msg) and is_validation_question(prior_bot, min_items):
        move("collecting", "yes_man", "affirmation answered a validation question")

    # 2. confirmation has to put the list on screen
    if proposed == "confirmation" and phase == "confirmation" and not has_confirmation_list(reply, min_items):
        move("collecting", "confirmation_list", "reply has no bulleted confirmation list")

    # 3. hard gate: completion only from confirmation with a list already shown
    if proposed == "completed" and phase == "completed" and not decision.service_mismatch:
        if current != "confirmation" or not list_shown:
            move("confirmation", "confirmation_gate", f"prior phase {current}, list shown {list_shown}")
            reply = build_confirmation_message(gathered, schema)
    elif proposed == "completed" and phase == "completed":
        _log.info("service mismatch bypasses the confirmation gate", extra={"stage": "guardrail.service_mismatch", "rule": "service_mismatch"})

    # 4. critical fields veto confirmation unconditionally
    crit_missing = [k for k in schema.critical_keys if k not in gathered]
    if phase == "confirmation" and crit_missing:
        move("collecting", "critical_veto", f"missing critical {', '.join(crit_missing)}")
        if "confirmation_gate" in rules:
            reply = build_missing_message(crit_missing, schema)
            rules.append("critical_veto_reply")

    # 5. completion needs the pre-turn phase to be confirmation
    if phase == "completed" and current != "confirmation":
        move(current, "prior_confirmation", "pre-turn phase was not confirmation")

    # 6. a goodbye after a confirmed list means the conversation is over
    if (current == "confirmation" and list_shown and has_closing_language(reply)
            and not reply.rstrip().endswith("?") and not has_confirmation_list(reply, min_items)):
        move("completed", "closing_alignment", "reply closes the conversation")

    # 7. every required field must be present before closing
    if phase == "completed":
        still_missing = [k for k in schema.required_info if k not in gathered]
        if still_missing:
            move("collecting", "all_fields", f"missing {', '.join(still_missing)}")

    enforcement_applied = bool(rules)
    if enforcement_applied:
        _log.info(f"enforcement applied, final phase {phase}", extra={"stage": "guardrail.final", "phase": phase})
    return GuardrailResult(final_phase=phase, enforcement_applied=enforcement_applied, reply=reply, rules_applied=rules)
