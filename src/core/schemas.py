"""
Pydantic schemas for validating summarization service output
"""
from typing import Dict, List

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

from core.entities import CATEGORIES

# Phrases the service falls back to when it could not work out what an item is.
GENERIC_PHRASES = (
    "shared link",
    "shared article",
    "unknown content",
    "this tweet shares a url without context",
    "the value is unclear",
)


def _is_generic(text: str) -> bool:
    lowered = text.strip().lower().rstrip(".")
    return any(lowered == phrase or lowered.startswith(phrase) for phrase in GENERIC_PHRASES)


def _category_key(value: str) -> str:
    return "-".join(value.strip().lower().replace("_", " ").replace("-", " ").split())


_CATEGORY_BY_KEY: Dict[str, str] = {_category_key(c): c for c in CATEGORIES}


def normalize_category(value) -> str:
    if not isinstance(value, str):
        raise ValueError("category must be a string")
    category = _CATEGORY_BY_KEY.get(_category_key(value))
    if category is None:
        raise ValueError(f"unknown category: {value!r}")
    return category


class BookmarkAnalysisSchema(BaseModel):
    """
    One analyzed bookmark as returned by the service.

    Accepts either an ``actions`` list or a single ``action`` string, and
    matches the category case-insensitively ("Content Ideas" is "content-ideas").
    """
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    category: str
    is_actionable: bool = Field(..., alias="isActionable")
    summary: str = Field(..., min_length=1)
    key_takeaway: str = Field(..., alias="keyTakeaway", min_length=1)
    actions: List[str] = Field(default_factory=list, validate_default=True)

    @model_validator(mode="before")
    @classmethod
    def _merge_single_action(cls, data):
        if not isinstance(data, dict):
            return data
        if not data.get("actions") and data.get("action"):
            data = {**data, "actions": data["action"]}
        if isinstance(data.get("actions"), str):
            data = {**data, "actions": [data["actions"]]}
        return data

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value):
        return normalize_category(value)

    @field_validator("summary", "key_takeaway")
    @classmethod
    def _reject_placeholders(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("empty text")
        if _is_generic(value):
            raise ValueError(f"generic placeholder text: {value!r}")
        return value

    @field_validator("actions")
    @classmethod
    def _clean_actions(cls, value: List[str]) -> List[str]:
        cleaned = [str(a).strip() for a in value if str(a).strip()]
        if not cleaned:
            raise ValueError("at least one action is required")
        return cleaned


class ActionableAnalysisSchema(BaseModel):
    """Deep analysis of one bookmark: what it is and what to do with it."""
    model_config = ConfigDict(populate_by_name=True, extra="ignore")

    category: str
    summary: str = Field(..., min_length=1)
    action_ideas: List[str] = Field(..., alias="actionIdeas")

    @field_validator("category", mode="before")
    @classmethod
    def _normalize_category(cls, value):
        return normalize_category(value)

    @field_validator("action_ideas", mode="before")
    @classmethod
    def _wrap_single_idea(cls, value):
        return [value] if isinstance(value, str) else value

    @field_validator("summary")
    @classmethod
    def _reject_placeholder_summary(cls, value: str) -> str:
        value = value.strip()
        if not value or _is_generic(value):
            raise ValueError(f"unusable summary: {value!r}")
        return value

    @field_validator("action_ideas")
    @classmethod
    def _clean_ideas(cls, value: List[str]) -> List[str]:
        cleaned = [str(a).strip() for a in value if str(a).strip()]
        if not cleaned:
            raise ValueError("at least one action idea is required")
        return cleaned
