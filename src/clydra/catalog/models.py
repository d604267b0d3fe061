from enum import Enum

from pydantic import BaseModel, ConfigDict, Field


class Plan(str, Enum):
    """Subscription tiers, each a superset of the one before."""

    FREE = "free"
    PRO = "pro"
    MAX = "max"


class ModelInfo(BaseModel):
    """Display and capability record for one model."""

    model_config = ConfigDict(frozen=True)

    id: str = Field(description="Provider model identifier")
    alias: str = Field(description="Human readable name")
    min_plan: Plan | None = Field(
        default=None,
        description="Lowest plan offering the model (None for legacy models)"
    )
    web_search: bool = False
    vision: bool = False
    wiki_grounding: bool = False
