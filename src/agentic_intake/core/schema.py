"""
Shape of a bot's information-gathering goal and of the live conversation state.
Pure data: behaviour lives in agentic_intake.agent.
"""
from typing import List, Optional, Dict, Any, Literal, Tuple
from pydantic import BaseModel, ConfigDict, Field, ValidationError

from agentic_intake.core.errors import ConfigurationError

SCHEMA_VERSION = "agentic_v1"

FieldType = Literal["text", "email", "phone", "date", "number", "url"]
Phase = Literal["introduction", "collecting", "answering_questions", "confirmation", "completed"]
PHASES: Tuple[str, ...] = ("introduction", "collecting", "answering_questions", "confirmation", "completed")
Role = Literal["user", "bot"]

class RequiredInfoItem(BaseModel):
    model_config = ConfigDict(frozen=True)

    description: str
    critical: bool = False
    example: str = ""
    type: Optional[FieldType] = None

class AgenticBotSchema(BaseModel):
    model_config = ConfigDict(frozen=True)

    goal: str
    system_prompt: str
    required_info: Dict[str, RequiredInfoItem]
    schema_version: Literal["agentic_v1"] = SCHEMA_VERSION

    @property
    def required_keys(self) -> List[str]:
        return list(self.required_info.keys())

    @property
    def critical_keys(self) -> List[str]:
        return [k for k, item in self.required_info.items() if item.critical]

class LegacyFieldSchema(BaseModel):
    id: str
    type: str
    label: str
    required: bool = False
    placeholder: Optional[str] = None
    options: Optional[List[str]] = None

class UploadedFile(BaseModel):
    url: str
    filename: str
    type: str = ""
    uploaded_at: str

class UploadedDocument(UploadedFile):
    extracted_text: str = ""
    uploaded_at_turn: int = 0

class Message(BaseModel):
    role: Role
    content: str

class ConversationState(BaseModel):
    gathered_information: Dict[str, str] = Field(default_factory=dict)
    missing_info: List[str] = Field(default_factory=list)
    phase: Phase = "introduction"
    current_topic: Optional[str] = None
    last_user_message: Optional[str] = None
    uploaded_files: List[UploadedFile] = Field(default_factory=list)
    uploaded_documents: List[UploadedDocument] = Field(default_factory=list)
    # post-hoc analytics, written by enrichment after completion
    summary: Optional[str] = None
    sentiment: Optional[str] = None
    urgency: Optional[str] = None

    @classmethod
    def initial(cls, schema: AgenticBotSchema) -> "ConversationState":
        return cls(missing_info=schema.required_keys)

class Decision(BaseModel):
    """One turn's raw proposal from the model. Never persisted."""
    reply: str
    extracted_information: Dict[str, str] = Field(default_factory=dict)
    updated_phase: Optional[Phase] = None
    current_topic: Optional[str] = None
    reasoning: Optional[str] = None
    service_mismatch: bool = False

_AGENTIC_KEYS = ("goal", "system_prompt", "required_info", "schema_version")

def is_agentic_schema(schema: Any) -> bool:
    if isinstance(schema, AgenticBotSchema):
        return True
    if not isinstance(schema, dict):
        return False
    return all(k in schema for k in _AGENTIC_KEYS) and schema.get("schema_version") == SCHEMA_VERSION

def is_legacy_schema(schema: Any) -> bool:
    # any list counts, including an empty one: callers must not infer "no schema" from it
    return isinstance(schema, list)

def load_agentic_schema(schema: Any) -> AgenticBotSchema:
    if isinstance(schema, AgenticBotSchema):
        return schema
    if is_legacy_schema(schema):
        raise ConfigurationError("bot uses a legacy field schema; the agentic engine cannot drive it")
    if not is_agentic_schema(schema):
        raise ConfigurationError("bot schema is neither agentic_v1 nor legacy")
    try:
        return AgenticBotSchema.model_validate(schema)
    except ValidationError as e:
        raise ConfigurationError(f"invalid agentic schema: {e}") from e

def missing_keys(gathered: Dict[str, str], required_keys: List[str]) -> List[str]:
    return [k for k in required_keys if k not in gathered]

def critical_missing(gathered: Dict[str, str], schema: AgenticBotSchema) -> List[str]:
    return [k for k in schema.critical_keys if k not in gathered]
