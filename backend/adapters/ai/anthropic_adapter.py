"""
Anthropic Claude adapter for recipe SEO analysis.
"""

import asyncio
import json
import logging
import random
import re
from typing import Any, Dict, List, Optional

import anthropic
from pydantic import BaseModel, ConfigDict, Field, ValidationError, field_validator

from infrastructure.config.settings import settings

logger = logging.getLogger(__name__)

MAX_TITLE_LENGTH = 60
MAX_DESCRIPTION_LENGTH = 155


async def _retry_with_backoff(coro_factory, max_retries=3, base_delay=1.0):
    """Retry an async operation with exponential backoff + jitter."""
    for attempt in range(max_retries + 1):
        try:
            return await coro_factory()
        except Exception as e:
            error_str = str(e).lower()
            is_transient = isinstance(
                e, (anthropic.RateLimitError, anthropic.APIConnectionError, anthropic.InternalServerError)
            ) or any(k in error_str for k in ["rate_limit", "429", "502", "503", "504", "overloaded"])
            if not is_transient or attempt == max_retries:
                raise
            delay = base_delay * (2 ** attempt) + random.uniform(0, 1)
            logger.warning("Transient API error (attempt %d/%d), retrying in %.1fs: %s", attempt + 1, max_retries, delay, str(e))
            await asyncio.sleep(delay)


class RecipeSEOServiceError(Exception):
    """Base exception for the recipe SEO text-generation collaborator."""


class RecipeSEONotConfiguredError(RecipeSEOServiceError):
    """No Anthropic API key configured."""


class RecipeSEOAPIError(RecipeSEOServiceError):
    """The Anthropic API call failed."""


class RecipeSEOResponseError(RecipeSEOServiceError):
    """The model answered with something that is not the expected JSON object."""


class RecipeSEOResult(BaseModel):
    """Validated analysis returned by the model."""

    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    optimized_title: str = Field(alias="optimizedTitle", min_length=1)
    optimized_description: str = Field(alias="optimizedDescription", min_length=1)
    seo_score: int = Field(alias="seoScore", ge=0, le=100)
    target_keywords: List[str] = Field(default_factory=list, alias="targetKeywords")
    suggested_keywords: List[str] = Field(default_factory=list, alias="suggestedKeywords")
    optimization_suggestions: List[str] = Field(default_factory=list, alias="optimizationSuggestions")
    schema_markup: Optional[Any] = Field(default=None, alias="schemaMarkup")
    competitor_analysis: Optional[Dict[str, Any]] = Field(default=None, alias="competitorAnalysis")

    @field_validator("seo_score", mode="before")
    @classmethod
    def round_score(cls, v):
        if isinstance(v, float):
            return int(round(v))
        return v

    @field_validator("optimized_title")
    @classmethod
    def cap_title(cls, v: str) -> str:
        return v.strip()[:MAX_TITLE_LENGTH]

    @field_validator("optimized_description")
    @classmethod
    def cap_description(cls, v: str) -> str:
        return v.strip()[:MAX_DESCRIPTION_LENGTH]

    @field_validator("target_keywords", "suggested_keywords", "optimization_suggestions")
    @classmethod
    def drop_blank_items(cls, v: List[str]) -> List[str]:
        return [item.strip() for item in v if item and item.strip()]


def parse_model_json(response_text: str) -> dict:
    """Extract the JSON object from a model reply, tolerating markdown fences."""
    if "```json" in response_text:
        response_text = response_text.split("```json")[1].split("```")[0]
    elif "```" in response_text:
        response_text = response_text.split("```")[1].split("```")[0]
    try:
        data = json.loads(response_text.strip())
    except json.JSONDecodeError as e:
        raise RecipeSEOResponseError(f"Model reply is not valid JSON: {e}") from e
    if not isinstance(data, dict):
        raise RecipeSEOResponseError("Model reply is not a JSON object")
    return data


class AnthropicRecipeSEOService:
    """Recipe SEO analysis using Anthropic Claude."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        api_key = api_key if api_key is not None else settings.anthropic_api_key
        if api_key:
            self._client = anthropic.AsyncAnthropic(
                api_key=api_key,
                timeout=float(settings.anthropic_timeout),
            )
        else:
            self._client = None
        self._model = model or settings.anthropic_model
        self._max_tokens = settings.anthropic_max_tokens
        self._temperature = settings.anthropic_temperature

    @property
    def is_configured(self) -> bool:
        return self._client is not None

    @property
    def model(self) -> str:
        return self._model

    @staticmethod
    def _sanitize_prompt_input(text: Optional[str], max_length: int) -> str:
        """Strip control characters and limit length to prevent prompt injection."""
        if not text:
            return ""
        text = re.sub(r"[\r\n\t\x00-\x1f\x7f]", " ", text)
        text = re.sub(r" +", " ", text).strip()
        return text[:max_length]

    def build_prompt(
        self,
        recipe_url: str,
        target_keyword: Optional[str],
        current_title: Optional[str] = None,
        current_description: Optional[str] = None,
    ) -> str:
        url = self._sanitize_prompt_input(recipe_url, 2048)
        keyword = self._sanitize_prompt_input(target_keyword, 100) or "Not provided"
        title = self._sanitize_prompt_input(current_title, 300) or "Not provided"
        description = self._sanitize_prompt_input(current_description, 1000) or "Not provided"

        return f"""You are an expert SEO specialist for food blogs. Analyze this recipe page and return optimization recommendations.

Recipe URL: {url}
Current Title: {title}
Current Description: {description}
Target Keyword: {keyword}

Respond with a single JSON object with exactly these fields:
- "optimizedTitle": SEO-optimized title including the target keyword (max {MAX_TITLE_LENGTH} characters)
- "optimizedDescription": compelling meta description including the target keyword (max {MAX_DESCRIPTION_LENGTH} characters)
- "seoScore": integer 0-100 rating the current page's SEO
- "targetKeywords": array of primary keywords to target
- "suggestedKeywords": array of 5 related long-tail keywords
- "optimizationSuggestions": array of 3-5 concrete improvements
- "schemaMarkup": schema.org Recipe JSON-LD object for the page
- "competitorAnalysis": object with "avgContentLength" (integer), "topKeywords" (array) and "avgSeoScore" (integer) describing top-ranking competitor recipes

Focus on food blog SEO best practices: recipe rich snippets, cooking times, ingredient keywords and featured snippet optimization.
Return only valid JSON without any markdown formatting."""

    async def analyze_recipe(
        self,
        recipe_url: str,
        target_keyword: Optional[str] = None,
        current_title: Optional[str] = None,
        current_description: Optional[str] = None,
    ) -> RecipeSEOResult:
        """
        Ask Claude for an SEO analysis of a recipe page.

        The URL is passed as a text hint only; the page is never fetched.

        Raises:
            RecipeSEONotConfiguredError: No API key configured
            RecipeSEOAPIError: The API call failed after retries
            RecipeSEOResponseError: The reply could not be parsed or validated
        """
        if not self._client:
            raise RecipeSEONotConfiguredError("ANTHROPIC_API_KEY is not configured")

        prompt = self.build_prompt(recipe_url, target_keyword, current_title, current_description)

        try:
            message = await _retry_with_backoff(lambda: self._client.messages.create(
                model=self._model,
                max_tokens=self._max_tokens,
                temperature=self._temperature,
                messages=[{"role": "user", "content": prompt}],
            ))
        except anthropic.APIError as e:
            raise RecipeSEOAPIError(f"Anthropic request failed: {e}") from e

        if not message.content:
            raise RecipeSEOResponseError("Empty reply from model")
        response_text = message.content[0].text
        data = parse_model_json(response_text)

        try:
            result = RecipeSEOResult.model_validate(data)
        except ValidationError as e:
            raise RecipeSEOResponseError(f"Model reply failed validation: {e.error_count()} errors") from e

        logger.info("Recipe analysis generated for %s (score %d)", recipe_url, result.seo_score)
        return result


# Singleton instance
recipe_seo_service = AnthropicRecipeSEOService()
