"""
Analysis payload construction: deterministic fallback, schema.org markup, score labels.

Everything here is pure and synchronous so the same inputs always produce the
same payload.
"""

import json
from dataclasses import dataclass
from typing import Any, Dict, List, Optional
from urllib.parse import urlparse

from adapters.ai.anthropic_adapter import (
    MAX_DESCRIPTION_LENGTH,
    MAX_TITLE_LENGTH,
    RecipeSEOResult,
)
from infrastructure.database.models.analysis import AnalysisSource

SCHEMA_CONTEXT = "https://schema.org"

GENERIC_KEYWORD = "recipe"

FALLBACK_SUGGESTIONS = (
    "Include the target keyword in the recipe title",
    "Add recipe schema markup for rich snippets",
    "Optimize images with descriptive alt text",
    "Include prep time, cook time, and total time",
    "Add nutritional information if available",
)

GENERIC_SUGGESTED_KEYWORDS = (
    "easy recipe",
    "homemade recipe",
    "quick dinner ideas",
    "family friendly recipes",
    "recipe ingredients",
)


@dataclass
class AnalysisPayload:
    """Everything an analysis record stores besides ownership and timestamps."""

    original_title: str
    optimized_title: str
    original_description: Optional[str]
    optimized_description: str
    seo_score: int
    target_keywords: List[str]
    suggested_keywords: List[str]
    competitor_analysis: Dict[str, Any]
    schema_markup: str
    optimization_suggestions: List[str]
    source: str = AnalysisSource.FALLBACK
    ai_model: Optional[str] = None


def truncate(text: str, length: int) -> str:
    if len(text) <= length:
        return text
    return text[: length - 3].rstrip() + "..."


def extract_domain(url: str) -> str:
    host = urlparse(url).hostname or ""
    return host[4:] if host.startswith("www.") else host


def score_label(score: int) -> str:
    if score >= 80:
        return "Excellent"
    if score >= 60:
        return "Good"
    if score >= 40:
        return "Needs Work"
    return "Poor"


def _slug(text: str) -> str:
    return "-".join(text.lower().split())


def heuristic_seo_score(
    url: str,
    keyword: Optional[str],
    current_title: Optional[str],
    current_description: Optional[str],
) -> int:
    """Rough on-page score from the few signals available without fetching the page."""
    score = 40
    parsed = urlparse(url)
    if parsed.scheme == "https":
        score += 5
    if current_title:
        score += 10
        if len(current_title) <= MAX_TITLE_LENGTH:
            score += 5
    if current_description:
        score += 10
        if 50 <= len(current_description) <= MAX_DESCRIPTION_LENGTH + 5:
            score += 5
    if keyword:
        kw = keyword.lower()
        if _slug(kw) in parsed.path.lower():
            score += 10
        if current_title and kw in current_title.lower():
            score += 10
        if current_description and kw in current_description.lower():
            score += 5
    return max(0, min(100, score))


def build_competitor_insight(keyword: Optional[str]) -> Dict[str, Any]:
    kw = keyword or GENERIC_KEYWORD
    top = [kw, f"{kw} recipe", "cooking"] if keyword else ["easy recipe", "homemade", "cooking"]
    return {
        "avg_content_length": 1200,
        "top_keywords": top,
        "avg_seo_score": 75,
    }


def build_recipe_schema_markup(
    title: str,
    description: Optional[str] = None,
    url: Optional[str] = None,
    keywords: Optional[List[str]] = None,
) -> str:
    """Minimal Recipe JSON-LD whose ``name`` is exactly ``title``."""
    schema: Dict[str, Any] = {
        "@context": SCHEMA_CONTEXT,
        "@type": "Recipe",
        "name": title,
    }
    if description:
        schema["description"] = description
    if url:
        schema["url"] = url
        schema["author"] = {"@type": "Organization", "name": extract_domain(url)}
    if keywords:
        schema["keywords"] = ", ".join(keywords)
    return json.dumps(schema, indent=2)


def _drop_empty(value: Any) -> Any:
    if isinstance(value, dict):
        cleaned = {k: _drop_empty(v) for k, v in value.items()}
        return {k: v for k, v in cleaned.items() if v not in (None, "", [], {})}
    if isinstance(value, list):
        return [_drop_empty(v) for v in value if v not in (None, "")]
    return value


def build_full_recipe_schema(recipe: Dict[str, Any]) -> str:
    """
    Complete Recipe JSON-LD from structured recipe data.

    Expects snake_case keys (title, description, images, author, publish_date,
    prep_time, cook_time, total_time, servings, category, cuisine, ingredients,
    instructions, nutrition, rating, review_count, url). Missing values are
    omitted from the output.
    """
    url = recipe.get("url") or ""
    instructions = recipe.get("instructions") or []
    nutrition = recipe.get("nutrition") or None
    rating = recipe.get("rating")

    schema = {
        "@context": SCHEMA_CONTEXT,
        "@type": "Recipe",
        "name": recipe.get("title"),
        "description": recipe.get("description"),
        "image": recipe.get("images") or [],
        "author": {"@type": "Person", "name": recipe.get("author")} if recipe.get("author") else None,
        "datePublished": recipe.get("publish_date"),
        "prepTime": recipe.get("prep_time"),
        "cookTime": recipe.get("cook_time"),
        "totalTime": recipe.get("total_time"),
        "recipeYield": recipe.get("servings"),
        "recipeCategory": recipe.get("category"),
        "recipeCuisine": recipe.get("cuisine"),
        "recipeIngredient": recipe.get("ingredients") or [],
        "recipeInstructions": [
            {
                "@type": "HowToStep",
                "name": f"Step {index}",
                "text": step,
                "url": f"{url}#step{index}" if url else None,
            }
            for index, step in enumerate(instructions, start=1)
        ],
        "nutrition": {
            "@type": "NutritionInformation",
            "calories": nutrition.get("calories"),
            "proteinContent": nutrition.get("protein"),
            "carbohydrateContent": nutrition.get("carbs"),
            "fatContent": nutrition.get("fat"),
        } if nutrition else None,
        "aggregateRating": {
            "@type": "AggregateRating",
            "ratingValue": rating,
            "reviewCount": recipe.get("review_count") or 1,
        } if rating else None,
    }
    return json.dumps(_drop_empty(schema), indent=2)


def normalize_schema_markup(
    raw: Any,
    title: str,
    description: Optional[str] = None,
    url: Optional[str] = None,
    keywords: Optional[List[str]] = None,
) -> str:
    """
    Coerce model-produced markup into Recipe JSON-LD named after ``title``.

    Accepts a dict or a JSON string. Anything else is replaced by the
    generated minimal markup.
    """
    data = raw
    if isinstance(raw, str):
        try:
            data = json.loads(raw)
        except json.JSONDecodeError:
            data = None
    if not isinstance(data, dict):
        return build_recipe_schema_markup(title, description, url, keywords)

    data = dict(data)
    data.setdefault("@context", SCHEMA_CONTEXT)
    data["@type"] = "Recipe"
    data["name"] = title
    if description and not data.get("description"):
        data["description"] = description
    return json.dumps(data, indent=2)


def build_fallback_analysis(
    url: str,
    keyword: Optional[str] = None,
    current_title: Optional[str] = None,
    current_description: Optional[str] = None,
) -> AnalysisPayload:
    """Deterministic analysis used when the text-generation collaborator is off or failing."""
    domain = extract_domain(url)
    original_title = current_title or f"Recipe from {domain}"

    if keyword:
        optimized_title = truncate(f"{keyword.title()} - Perfect Recipe for Food Lovers", MAX_TITLE_LENGTH)
        optimized_description = truncate(
            f"Learn how to make the perfect {keyword} with this easy, step-by-step recipe. "
            "Quick, delicious, and family-friendly!",
            MAX_DESCRIPTION_LENGTH,
        )
        target_keywords = [keyword]
        suggested_keywords = [
            f"easy {keyword}",
            f"best {keyword}",
            f"homemade {keyword}",
            f"quick {keyword} recipe",
            f"{keyword} ingredients",
        ]
        suggestions = [f'Include "{keyword}" in the recipe title', *FALLBACK_SUGGESTIONS[1:]]
    else:
        optimized_title = truncate(f"{original_title} - Easy Step-by-Step Recipe", MAX_TITLE_LENGTH)
        optimized_description = truncate(
            "Learn how to make this recipe with easy, step-by-step instructions. "
            "Quick, delicious, and family-friendly!",
            MAX_DESCRIPTION_LENGTH,
        )
        target_keywords = [GENERIC_KEYWORD]
        suggested_keywords = list(GENERIC_SUGGESTED_KEYWORDS)
        suggestions = list(FALLBACK_SUGGESTIONS)

    return AnalysisPayload(
        original_title=original_title,
        optimized_title=optimized_title,
        original_description=current_description or "A delicious recipe that needs SEO optimization",
        optimized_description=optimized_description,
        seo_score=heuristic_seo_score(url, keyword, current_title, current_description),
        target_keywords=target_keywords,
        suggested_keywords=suggested_keywords,
        competitor_analysis=build_competitor_insight(keyword),
        schema_markup=build_recipe_schema_markup(
            optimized_title, optimized_description, url, target_keywords
        ),
        optimization_suggestions=suggestions,
        source=AnalysisSource.FALLBACK,
    )


def payload_from_ai_result(
    result: RecipeSEOResult,
    url: str,
    keyword: Optional[str],
    current_title: Optional[str],
    current_description: Optional[str],
    model: Optional[str] = None,
) -> AnalysisPayload:
    """Merge a validated model reply with deterministic defaults for anything it left out."""
    fallback = build_fallback_analysis(url, keyword, current_title, current_description)

    target_keywords = list(result.target_keywords) or list(fallback.target_keywords)
    if keyword and keyword.lower() not in (k.lower() for k in target_keywords):
        target_keywords.insert(0, keyword)

    competitor = result.competitor_analysis or fallback.competitor_analysis

    return AnalysisPayload(
        original_title=fallback.original_title,
        optimized_title=result.optimized_title,
        original_description=current_description,
        optimized_description=result.optimized_description,
        seo_score=result.seo_score,
        target_keywords=target_keywords,
        suggested_keywords=list(result.suggested_keywords) or fallback.suggested_keywords,
        competitor_analysis=competitor,
        schema_markup=normalize_schema_markup(
            result.schema_markup,
            result.optimized_title,
            result.optimized_description,
            url,
            target_keywords,
        ),
        optimization_suggestions=list(result.optimization_suggestions) or fallback.optimization_suggestions,
        source=AnalysisSource.AI,
        ai_model=model,
    )
