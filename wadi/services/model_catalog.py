"""Model catalog: friendly-name aliases, validation and credit pricing."""

from typing import Dict, Optional, Tuple

from wadi.config import settings

# Bump when an alias target changes so run history can be interpreted later.
MODEL_ALIASES_VERSION = "2024-11-01"

# Friendly name -> concrete model, per backend family
MODEL_ALIASES: Dict[str, Dict[str, str]] = {
    "groq": {
        "gpt-3.5-turbo": "llama-3.1-8b-instant",
        "gpt-4o-mini": "llama-3.1-8b-instant",
        "gpt-4": "llama-3.3-70b-versatile",
        "gpt-4-turbo": "llama-3.3-70b-versatile",
        "gpt-4o": "llama-3.3-70b-versatile",
    },
    "openai": {},
}

# Model names native to each backend family pass through untouched
NATIVE_MODEL_PREFIXES: Dict[str, Tuple[str, ...]] = {
    "groq": ("llama-", "llama3-", "mixtral-", "gemma-", "gemma2-"),
    "openai": ("gpt-3.5-", "gpt-4", "o1", "o3"),
}

# Credit pricing (external contract)
PREMIUM_MODEL_MARKER = "gpt-4"
PREMIUM_MODEL_COST = 10
STANDARD_MODEL_COST = 1


def is_valid_model(model: str, backend: Optional[str] = None) -> bool:
    """Return True if the model is an alias or native to the active backend."""
    backend = backend or settings.LLM_BACKEND
    if not model or not isinstance(model, str):
        return False
    if model in MODEL_ALIASES.get(backend, {}):
        return True
    return model.startswith(NATIVE_MODEL_PREFIXES.get(backend, ()))


def resolve_model(model: str, backend: Optional[str] = None) -> str:
    """Translate a friendly model name into the backend's concrete identifier."""
    backend = backend or settings.LLM_BACKEND
    return MODEL_ALIASES.get(backend, {}).get(model, model)


def credit_cost(model: str) -> int:
    """Credits charged for one generation with the given (friendly) model name."""
    if PREMIUM_MODEL_MARKER in model:
        return PREMIUM_MODEL_COST
    return STANDARD_MODEL_COST
