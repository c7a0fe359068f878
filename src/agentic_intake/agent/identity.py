import re
from typing import List

from agentic_intake.core.logging import get_logger
from agentic_intake.core.schema import AgenticBotSchema

_log = get_logger("agent.identity")

MAX_PASSES = 10

def _internal_names(effective_name: str, schema: AgenticBotSchema, bot_slug: str) -> List[str]:
    goal = (schema.goal or "").strip()
    slug = (bot_slug or "").strip()
    candidates = [
        "product inquiries",
        "product inquiry",
        f"assistant for {goal}" if goal else "",
        f"assistant for {slug}" if slug else "",
        f"helping with {goal}" if goal else "",
        f"helping with {slug}" if slug else "",
        f"I'm {goal}" if goal else "",
        f"I am {goal}" if goal else "",
        goal,
        slug,
    ]
    target = effective_name.lower()
    names: List[str] = []
    for name in candidates:
        # a name contained in the replacement would be re-matched forever
        if len(name) <= 2 or name.lower() in target or name.lower() in (n.lower() for n in names):
            continue
        names.append(name)
    return names

def fix_bot_identity(reply: str, effective_name: str, schema: AgenticBotSchema, bot_slug: str) -> str:
    """Replace internal bot names (goal, slug, generic labels) with the business name."""
    if not reply or not effective_name:
        return reply
    patterns = [(n, re.compile(r"(?<!\w)" + re.escape(n) + r"(?!\w)", re.I))
                for n in _internal_names(effective_name, schema, bot_slug)]
    out = reply
    for i in range(1, MAX_PASSES + 1):
        changed = False
        for name, pat in patterns:
            out, n = pat.subn(effective_name, out)
            if n:
                changed = True
                _log.info(f"replaced internal name {name!r} x{n}", extra={"stage": "identity.fix", "attempt": i})
        if not changed:
            break
    return out
