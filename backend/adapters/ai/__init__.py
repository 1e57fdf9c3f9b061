# AI Adapters
# Anthropic integration

from .anthropic_adapter import (
    AnthropicRecipeSEOService,
    RecipeSEOAPIError,
    RecipeSEONotConfiguredError,
    RecipeSEOResponseError,
    RecipeSEOResult,
    RecipeSEOServiceError,
    recipe_seo_service,
)

__all__ = [
    "AnthropicRecipeSEOService",
    "recipe_seo_service",
    "RecipeSEOResult",
    "RecipeSEOServiceError",
    "RecipeSEONotConfiguredError",
    "RecipeSEOAPIError",
    "RecipeSEOResponseError",
]
