from dataclasses import dataclass, field
from typing import Dict, List, Optional

from agentic_intake.core.errors import ExtractionViolation, ValidationRejection
from agentic_intake.core.logging import get_logger
from agentic_intake.core.schema import AgenticBotSchema, ConversationState, missing_keys, critical_missing
from agentic_intake.agent.validation import SKIPPED, is_declined, validate_value

_log = get_logger("agent.state")

@dataclass
class MergeResult:
    gathered: Dict[str, str]
    missing: List[str]
    critical_missing: List[str]
    violations: List[ExtractionViolation] = field(default_factory=list)
    rejections: List[ValidationRejection] = field(default_factory=list)

    @property
    def correction_prompt(self) -> Optional[str]:
        return self.rejections[0].prompt if self.rejections else None

def merge_extracted(
    state: ConversationState,
    extracted: Optional[Dict[str, str]],
    schema: AgenticBotSchema,
) -> MergeResult:
    """Merge a turn's extraction into a copy of gathered_information.

    Later values overwrite earlier ones for the same key, so a user correction
    always wins. Keys outside required_info and values failing their type
    check are dropped and reported. An optional field the user declined
    is stored as "Not provided" so it no longer counts as missing.
    """
    gathered = dict(state.gathered_information)
    violations: List[ExtractionViolation] = []
    rejections: List[ValidationRejection] = []

    for key, value in (extracted or {}).items():
        item = schema.required_info.get(key)
        if item is None:
            violations.append(ExtractionViolation(key, value))
            _log.warning(f"dropping extracted key outside schema: {key}", extra={"stage": "extract.violation"})
            continue
        problem = validate_value(item.type, value, critical=item.critical)
        if problem:
            rejections.append(ValidationRejection(key, value, problem))
            _log.info(f"rejected value for {key} ({item.type or 'text'})", extra={"stage": "extract.rejected"})
            continue
        if is_declined(value):
            _log.info(f"optional field {key} skipped by the user", extra={"stage": "extract.skipped"})
            gathered[key] = SKIPPED
            continue
        gathered[key] = value.strip()

    return MergeResult(
        gathered=gathered,
        missing=missing_keys(gathered, schema.required_keys),
        critical_missing=critical_missing(gathered, schema),
        violations=violations,
        rejections=rejections,
    )
