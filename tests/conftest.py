import pytest

from agentic_intake.core.profile import BotConfig, BusinessProfile
from agentic_intake.core.schema import AgenticBotSchema

from fakes import SCHEMA

@pytest.fixture
def schema() -> AgenticBotSchema:
    return AgenticBotSchema.model_validate(SCHEMA)

@pytest.fixture
def bot() -> BotConfig:
    return BotConfig(
        id="demo",
        name="kitchen-remodel-requests",
        user_id="owner-1",
        schema=SCHEMA,
        business_profile=BusinessProfile(
            name="Acme Remodeling",
            industry="home services",
            description="Kitchen and bath remodels.",
            services=["Kitchen remodels", "Bathroom remodels"],
        ),
    )
