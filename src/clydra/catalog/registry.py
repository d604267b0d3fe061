"""Static model tables and pure lookup functions.

Nothing here performs I/O; every function is a lookup over the tables below.
"""

from .models import ModelInfo, Plan

DEFAULT_ALIAS = "AI Assistant"

MODEL_ALIASES: dict[str, str] = {
    # Free plan
    "google/gemini-2.0-flash-001": "Gemini Flash 2.0",
    # Pro plan
    "openai/gpt-4o": "GPT-4o",
    "anthropic/claude-3-5-sonnet-20241022": "Claude 4 Sonnet",
    "x-ai/grok-beta": "Grok Beta",
    "google/gemini-2.5-pro-exp-03-25": "Gemini 2.5 Pro",
    "mistralai/Magistral-Small-2506": "Mistral Small",
    "klusterai/Meta-Llama-3.3-70B-Instruct-Turbo": "Llama 3.3 70B",
    "sarvam-m": "Sarvam M",
    # Legacy, kept so old threads still render a name
    "openai/gpt-4o-mini": "GPT-4o Mini",
    "deepseek/deepseek-r1": "DeepSeek R1",
    "google/gemini-2.5-flash-preview": "Gemini 2.5 Flash Preview",
    "anthropic/claude-3-opus-20240229": "Claude 3 Opus",
    "anthropic/claude-3-sonnet-20240229": "Claude 3 Sonnet",
    "google/gemini-1.5-pro": "Gemini 1.5 Pro",
    "meta-llama/llama-3-70b-instruct": "Llama-3-70B",
}

FREE_PLAN_MODELS: tuple[str, ...] = (
    "google/gemini-2.0-flash-001",
)

PRO_PLAN_MODELS: tuple[str, ...] = (
    "openai/gpt-4o",
    "anthropic/claude-3-5-sonnet-20241022",
    "x-ai/grok-beta",
    "google/gemini-2.5-pro-exp-03-25",
    "mistralai/Magistral-Small-2506",
    "klusterai/Meta-Llama-3.3-70B-Instruct-Turbo",
    "sarvam-m",
)

# Models not offered below the max plan
MAX_PLAN_MODELS: tuple[str, ...] = ()

MODELS_WITH_WEB_SEARCH = frozenset({
    "anthropic/claude-3-5-sonnet-20241022",
})

MODELS_WITH_VISION = frozenset({
    "mistralai/Magistral-Small-2506",
    "openai/gpt-4o",
    "anthropic/claude-3-5-sonnet-20241022",
    "google/gemini-2.5-pro-exp-03-25",
})

MODELS_WITH_WIKI_GROUNDING = frozenset({
    "sarvam-m",
})

_PLAN_MODELS: dict[Plan, tuple[str, ...]] = {
    Plan.FREE: FREE_PLAN_MODELS,
    Plan.PRO: FREE_PLAN_MODELS + PRO_PLAN_MODELS,
    Plan.MAX: FREE_PLAN_MODELS + PRO_PLAN_MODELS + MAX_PLAN_MODELS,
}


def resolve_plan(plan: Plan | str) -> Plan:
    """Convert a plan name to a Plan, treating unknown names as free."""
    if isinstance(plan, Plan):
        return plan
    try:
        return Plan(plan.lower())
    except ValueError:
        return Plan.FREE


def get_model_alias(model: str | None) -> str:
    """Return the display name for a model, or a generic label if unknown."""
    if model is None:
        return DEFAULT_ALIAS
    return MODEL_ALIASES.get(model, DEFAULT_ALIAS)


def get_models_by_plan(plan: Plan | str) -> list[str]:
    """Return the ordered model ids available on a plan."""
    return list(_PLAN_MODELS[resolve_plan(plan)])


def is_model_available(model: str, plan: Plan | str) -> bool:
    return model in _PLAN_MODELS[resolve_plan(plan)]


def model_supports_web_search(model: str) -> bool:
    return model in MODELS_WITH_WEB_SEARCH


def model_supports_vision(model: str) -> bool:
    return model in MODELS_WITH_VISION


def model_supports_wiki_grounding(model: str) -> bool:
    return model in MODELS_WITH_WIKI_GROUNDING


def get_model_info(model: str) -> ModelInfo:
    """Collect alias, minimum plan and capability flags for a model."""
    min_plan = next(
        (plan for plan in Plan if model in _PLAN_MODELS[plan]),
        None
    )
    return ModelInfo(
        id=model,
        alias=get_model_alias(model),
        min_plan=min_plan,
        web_search=model_supports_web_search(model),
        vision=model_supports_vision(model),
        wiki_grounding=model_supports_wiki_grounding(model),
    )
