import re
from typing import Final

_AFFIRMATION_PATTERNS: Final[list[re.Pattern]] = [
    re.compile(r"^\s*(yes|yep|yeah|yup|ya|sure|correct|right|ok|okay|perfect|exactly)[.!]*\s*$", re.I),
    re.compile(r"^\s*(yes|yep|yeah),?\s+(please|that'?s (right|correct)|correct|it is|looks good)[.!]*\s*$", re.I),
    re.compile(r"^\s*(looks|sounds|all) (good|great|right|correct)[.!]*\s*$", re.I),
    re.compile(r"^\s*that'?s (right|correct|it)[.!]*\s*$", re.I),
]

_BULLET_LINE = re.compile(r"^\s*[-•*]\s+\S", re.M)

_CONFIRMATION_LANGUAGE = re.compile(
    r"\bconfirm\b|let me confirm|confirm everything|does (everything|that|this|it all|all of this) look"
    r"|is (everything|all of this|that all) correct|let me make sure|before we finali[sz]e",
    re.I,
)

_VALIDATION_QUESTION = re.compile(r"did you mean|is that (correct|right)|just to (double[- ])?check", re.I)
_ENDS_WITH_RIGHT = re.compile(r"\bright\?\s*$", re.I)

_CLOSING_PHRASES: Final[tuple[str, ...]] = (
    "have a great day", "have an amazing day", "have a wonderful day", "best of luck",
    "talk to you soon", "talk soon", "speak soon", "get back to you within",
    "we'll be in touch", "we will be in touch", "we'll reach out", "we will reach out",
    "goodbye", "good bye", "bye", "take care", "all the best",
)
_CLOSING = re.compile(r"\b(" + "|".join(re.escape(p) for p in _CLOSING_PHRASES) + r")\b", re.I)

def _normalize(text: str) -> str:
    return (text or "").replace("’", "'")

def is_affirmation(text: str) -> bool:
    """A bare 'yes'-style answer with nothing else in it."""
    if not text:
        return False
    t = _normalize(text)
    return any(p.match(t) for p in _AFFIRMATION_PATTERNS)

def count_bullets(text: str) -> int:
    return len(_BULLET_LINE.findall(text or ""))

def has_confirmation_language(text: str) -> bool:
    return bool(_CONFIRMATION_LANGUAGE.search(_normalize(text)))

def has_confirmation_list(text: str, min_items: int = 2) -> bool:
    """Bulleted summary plus a request to confirm it."""
    return count_bullets(text) >= min_items and has_confirmation_language(text)

def is_validation_question(text: str, min_items: int = 2) -> bool:
    """A spell-check style question ('did you mean ...?'), never a confirmation summary."""
    if not text or has_confirmation_list(text, min_items):
        return False
    t = _normalize(text).strip()
    return bool(_VALIDATION_QUESTION.search(t) or _ENDS_WITH_RIGHT.search(t))

def has_closing_language(text: str) -> bool:
    return bool(_CLOSING.search(_normalize(text)))
