from pydantic import BaseModel, Field
from typing import Optional, Dict, Any, List
import json, re
from pathlib import Path

from agentic_intake.core.schema import AgenticBotSchema, load_agentic_schema

_BOT_ID = re.compile(r"^[A-Za-z0-9_-]{1,128}$")

class BusinessProfile(BaseModel):
    name: Optional[str] = None
    business_name: Optional[str] = None
    industry: Optional[str] = None
    description: Optional[str] = None
    services: List[str] = Field(default_factory=list)

    @property
    def display_name(self) -> Optional[str]:
        return self.name or self.business_name

class BotConfig(BaseModel):
    id: str
    name: str
    user_id: str
    schema_: Any = Field(alias="schema")   # raw; agentic or legacy
    business_profile: Optional[BusinessProfile] = None

    model_config = {"populate_by_name": True}

    def agentic_schema(self) -> AgenticBotSchema:
        return load_agentic_schema(self.schema_)

    @property
    def business_name(self) -> str:
        if self.business_profile and self.business_profile.display_name:
            return self.business_profile.display_name
        return self.name

class BotStore:
    """Read-only bot configuration store. Defaults to JSON files under data/bots/."""
    def __init__(self, base: Path):
        self.base = base
        self.base.mkdir(parents=True, exist_ok=True)
        self._extra: Dict[str, BotConfig] = {}

    def register(self, bot: BotConfig):
        self._extra[bot.id] = bot

    def load(self, bot_id: str) -> Optional[BotConfig]:
        if bot_id in self._extra:
            return self._extra[bot_id]
        if not _BOT_ID.match(bot_id):
            return None
        p = self.base / f"{bot_id}.json"
        if not p.exists():
            return None
        return BotConfig.model_validate(json.loads(p.read_text(encoding="utf-8")))
