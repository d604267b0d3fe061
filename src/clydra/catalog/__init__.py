"""Model registry: aliases, plan tiers and capability lookups."""

from .models import ModelInfo, Plan
from .registry import (
    DEFAULT_ALIAS,
    MODEL_ALIASES,
    get_model_alias,
    get_model_info,
    get_models_by_plan,
    is_model_available,
    model_supports_vision,
    model_supports_web_search,
    model_supports_wiki_grounding,
    resolve_plan,
)

__all__ = [
    "DEFAULT_ALIAS",
    "MODEL_ALIASES",
    "ModelInfo",
    "Plan",
    "get_model_alias",
    "get_model_info",
    "get_models_by_plan",
    "is_model_available",
    "model_supports_vision",
    "model_supports_web_search",
    "model_supports_wiki_grounding",
    "resolve_plan",
]
