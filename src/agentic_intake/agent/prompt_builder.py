from pathlib import Path
from typing import Dict, Optional, Sequence, Literal

from agentic_intake.core.profile import BusinessProfile
from agentic_intake.core.promptkit import PromptBuilder
from agentic_intake.core.schema import (
    AgenticBotSchema,
    ConversationState,
    Message,
    RequiredInfoItem,
    UploadedDocument,
)

PROMPTS_DIR = Path(__file__).resolve().parent / "prompts"
RECENT_WINDOW = 6

_CONTACT_KEYWORDS = ("email", "phone", "name", "contact", "full_name")

_prompts = PromptBuilder(PROMPTS_DIR)

def _label(key: str, schema: Dict[str, RequiredInfoItem], fallback: Optional[str] = None) -> str:
    item = schema.get(key)
    if item and item.description:
        return item.description
    return fallback or key.replace("_", " ")

def get_dynamic_strategy(missing_info: Sequence[str], required_info: Dict[str, RequiredInfoItem]) -> str:
    """Tell the model what to ask now and what to chain to next.

    Business ("core") fields come first; contact details are secured last.
    """
    core = [k for k in missing_info if not any(c in k.lower() for c in _CONTACT_KEYWORDS)]
    contact = [k for k in missing_info if any(c in k.lower() for c in _CONTACT_KEYWORDS)]

    if core:
        current = core[0]
        nxt = core[1] if len(core) > 1 else (contact[0] if contact else None)
        next_desc = _label(nxt, required_info) if nxt else "finalize the request"
        return (
            "NEXT STEP:\n"
            f"1. CURRENT TARGET: you need \"{_label(current, required_info)}\".\n"
            f"2. CHAIN: as soon as the user answers, acknowledge briefly and ask for \"{next_desc}\".\n"
            "3. Do not ask \"Is there anything else?\". Ask the next specific question instead."
        )
    if contact:
        return (
            "NEXT STEP:\n"
            "1. STATUS: you have the project details. Now secure the contact info.\n"
            f"2. ACTION: ask for \"{_label(contact[0], required_info)}\".\n"
            "3. TONE: confident and closing. Ask for this specific item, not \"anything else\"."
        )
    return (
        "NEXT STEP - CONFIRMATION REQUIRED:\n"
        "- Every required field is gathered.\n"
        "- Show a bulleted confirmation list of everything gathered (\"- Field: value\", one per line).\n"
        "- Ask \"Does everything look correct?\" and do NOT complete until the user confirms."
    )

def build_system_prompt(
    business_name: str,
    schema: AgenticBotSchema,
    business_profile: Optional[BusinessProfile],
    state: ConversationState,
    uploaded_documents: Sequence[UploadedDocument],
    required_keys: Sequence[str],
    missing_keys: Sequence[str],
    image_analysis: Optional[str] = None,
    messages: Optional[Sequence[Message]] = None,
    *,
    conversation_summary: Optional[str] = None,
    response_mode: Literal["json", "stream"] = "json",
) -> str:
    """Render the instruction text for one decision call. Pure: same input, same prompt."""
    history = list(messages or [])
    if not history:
        strategy = (
            "NEXT STEP - OPENING:\n"
            "- Start with a warm, high-energy greeting.\n"
            "- Ask ONE open-ended question to get the ball rolling.\n"
            "- Do NOT ask for contact info yet."
        )
    else:
        strategy = get_dynamic_strategy(missing_keys, schema.required_info)

    display_name = (business_profile.display_name if business_profile else None) or business_name
    required = list(required_keys)
    return _prompts.render(
        "system.md",
        business_name=business_name,
        display_name=display_name,
        profile=business_profile,
        goal=schema.goal,
        system_prompt=schema.system_prompt,
        gathered=[(k, v) for k, v in state.gathered_information.items()],
        missing=[(k, schema.required_info[k]) for k in missing_keys if k in schema.required_info],
        window=RECENT_WINDOW,
        recent=history[-RECENT_WINDOW:],
        conversation_summary=conversation_summary,
        image_analysis=image_analysis,
        documents=list(uploaded_documents),
        strategy=strategy,
        required_keys=required,
        optional_keys=[k for k in required if k in schema.required_info and not schema.required_info[k].critical],
        typed=[(k, schema.required_info[k]) for k in required if k in schema.required_info and schema.required_info[k].type],
        response_mode=response_mode,
    ).strip() + "\n"
