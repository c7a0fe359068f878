"""
Permissive-but-real format checks per field type. A check returns None when the
value is acceptable, otherwise the question to put back to the user.
"""
import re
from typing import Optional, Dict, Callable

_EMAIL = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]{2,}$")
_EMAIL_TYPOS: Dict[str, str] = {
    "gmial.com": "gmail.com",
    "gmai.com": "gmail.com",
    "gmail.co": "gmail.com",
    "gamil.com": "gmail.com",
    "yahooo.com": "yahoo.com",
    "yaho.com": "yahoo.com",
    "hotmial.com": "hotmail.com",
    "hotmai.com": "hotmail.com",
    "outlok.com": "outlook.com",
}
_PHONE_CHARS = re.compile(r"^[\d\s+().\-/]+(\s*(x|ext\.?)\s*\d+)?$", re.I)
_URL = re.compile(
    r"^(https?://)?(www\.)?[a-z0-9](?:[a-z0-9\-]*[a-z0-9])?(\.[a-z0-9](?:[a-z0-9\-]*[a-z0-9])?)*\.[a-z]{2,}(:\d+)?([/?#]\S*)?$",
    re.I,
)
_MONTHS = r"jan(uary)?|feb(ruary)?|mar(ch)?|apr(il)?|may|june?|july?|aug(ust)?|sep(t(ember)?)?|oct(ober)?|nov(ember)?|dec(ember)?"
_WEEKDAYS = r"mon(day)?|tue(s(day)?)?|wed(nesday)?|thu(r(s(day)?)?)?|fri(day)?|sat(urday)?|sun(day)?"
_RELATIVE = r"today|tomorrow|tonight|yesterday|next (week|month|year)|this (week|weekend|month)|asap|weekend"
_DATE = re.compile(rf"\d|\b({_MONTHS}|{_WEEKDAYS}|{_RELATIVE})\b", re.I)
_NUMBER = re.compile(r"\d|\b(one|two|three|four|five|six|seven|eight|nine|ten|eleven|twelve|twenty|thirty|forty|fifty|hundred|thousand|million|dozen)\b", re.I)

SKIPPED = "Not provided"
_DECLINED = re.compile(
    r"^(not provided|n/?a|skip(ped)?|declined?|(i'd )?rather not (say|share)|prefers? not to (say|share))[.!]?$", re.I
)

def _email(value: str) -> Optional[str]:
    if not _EMAIL.match(value):
        return "That email address doesn't look quite right. Could you double-check it for me?"
    local, _, domain = value.rpartition("@")
    fix = _EMAIL_TYPOS.get(domain.lower())
    if fix:
        return f"Did you mean {local}@{fix}?"
    return None

def _phone(value: str) -> Optional[str]:
    digits = re.sub(r"\D", "", re.split(r"(?i)\s*(?:x|ext\.?)\s*\d+$", value)[0])
    if not _PHONE_CHARS.match(value) or not 7 <= len(digits) <= 15:
        return "Hmm, that phone number doesn't look complete. Could you share it again, including the area or country code?"
    return None

def _url(value: str) -> Optional[str]:
    if not _URL.match(value):
        return "That link doesn't look like a web address. Could you paste the full URL?"
    return None

def _date(value: str) -> Optional[str]:
    if not _DATE.search(value):
        return "I couldn't tell which date you meant. Could you give me the day and month?"
    return None

def _number(value: str) -> Optional[str]:
    if not _NUMBER.search(value):
        return "Could you give me that as a number?"
    return None

_CHECKS: Dict[str, Callable[[str], Optional[str]]] = {
    "email": _email,
    "phone": _phone,
    "url": _url,
    "date": _date,
    "number": _number,
}

def is_declined(value: str) -> bool:
    return bool(_DECLINED.match((value or "").strip()))

def validate_value(field_type: Optional[str], value: str, critical: bool = False) -> Optional[str]:
    v = (value or "").strip()
    if not v:
        return "I didn't catch that. Could you share it again?"
    if is_declined(v):
        # only optional fields may be skipped
        return "I do need that one to move forward. Could you share it?" if critical else None
    check = _CHECKS.get(field_type or "text")
    return check(v) if check else None
