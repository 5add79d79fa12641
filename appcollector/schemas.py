"""Pydantic schemas for structured page extraction."""

from typing import Literal

from pydantic import BaseModel, Field, field_validator

AppCategoryName = Literal["Coding", "Marketing", "Personal Assistant", "Roleplay", "Translation", "Others"]


class AppListing(BaseModel):
    """One app card on a model's apps page."""

    name: str
    url: str
    tokens_used: str = Field(description="Tokens used value as displayed, e.g. 1.2M")

    @field_validator("name", "url", "tokens_used", mode="before")
    @classmethod
    def _strip(cls, v: object) -> object:
        if isinstance(v, (int, float)):
            return str(v)
        return v.strip() if isinstance(v, str) else v


class AppListingPage(BaseModel):
    apps: list[AppListing]


class AppDetails(BaseModel):
    """Name and description shown on an app's aggregator page."""

    name: str
    description: str


class AppCategory(BaseModel):
    category: AppCategoryName
