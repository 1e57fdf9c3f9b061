"""
Recipe analysis request and response schemas.
"""

import json
from datetime import datetime
from typing import Any, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, computed_field

from services.recipe_payload import score_label


class AnalysisCreateRequest(BaseModel):
    """Submit a recipe page for analysis.

    The URL is checked by the analysis service so that malformed values are
    reported with the service's own message.
    """

    recipe_url: str = Field(..., min_length=1, max_length=2048)
    target_keyword: Optional[str] = Field(default=None, max_length=100)
    current_title: Optional[str] = Field(default=None, max_length=500)
    current_description: Optional[str] = Field(default=None, max_length=2000)


class AnalysisResponse(BaseModel):
    """A stored recipe analysis."""

    id: str
    recipe_url: str
    original_title: Optional[str] = None
    optimized_title: Optional[str] = None
    original_description: Optional[str] = None
    optimized_description: Optional[str] = None
    seo_score: int
    target_keywords: List[str] = []
    suggested_keywords: List[str] = []
    competitor_analysis: Optional[dict] = None
    schema_markup: Optional[str] = None
    optimization_suggestions: List[str] = []
    source: str
    ai_model: Optional[str] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)

    @computed_field
    @property
    def score_label(self) -> str:
        return score_label(self.seo_score)


class AnalysisCreateResponse(BaseModel):
    """Result of a successful submission."""

    analysis: AnalysisResponse
    usage_remaining: Union[int, str]


class AnalysisSummary(BaseModel):
    """List item for the analysis history."""

    id: str
    recipe_url: str
    original_title: Optional[str] = None
    optimized_title: Optional[str] = None
    seo_score: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class Pagination(BaseModel):
    page: int
    limit: int
    total: int
    pages: int


class AnalysisListResponse(BaseModel):
    analyses: List[AnalysisSummary]
    pagination: Pagination


class NutritionInput(BaseModel):
    calories: Optional[str] = None
    protein: Optional[str] = None
    carbs: Optional[str] = None
    fat: Optional[str] = None


class SchemaMarkupRequest(BaseModel):
    """Structured recipe data for the schema generator."""

    title: str = Field(..., min_length=1, max_length=500)
    description: Optional[str] = Field(default=None, max_length=2000)
    url: Optional[str] = Field(default=None, max_length=2048)
    images: List[str] = []
    author: Optional[str] = None
    publish_date: Optional[str] = None
    prep_time: Optional[str] = None
    cook_time: Optional[str] = None
    total_time: Optional[str] = None
    servings: Optional[str] = None
    category: Optional[str] = None
    cuisine: Optional[str] = None
    ingredients: List[str] = []
    instructions: List[str] = []
    nutrition: Optional[NutritionInput] = None
    rating: Optional[float] = Field(default=None, ge=0, le=5)
    review_count: Optional[int] = Field(default=None, ge=0)


class SchemaMarkupResponse(BaseModel):
    schema_markup: str

    @computed_field
    @property
    def schema_json(self) -> Any:
        return json.loads(self.schema_markup)
