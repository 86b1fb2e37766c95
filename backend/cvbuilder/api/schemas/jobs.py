"""Job intake API Pydantic schemas."""

import uuid

from pydantic import BaseModel, ConfigDict, Field


class ScrapeRequest(BaseModel):
    url: str = Field(..., pattern=r"^https?://", max_length=2000)


class ParseRequest(BaseModel):
    content: str = Field(..., min_length=50, max_length=50_000)


class JobAnalysisResponse(BaseModel):
    title: str
    company: str
    location: str | None
    description: str
    requirements: list[str]
    responsibilities: list[str] = []
    keywords: list[str] = []
    salary: str | None = None
    url: str = ""


class TemplateResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    slug: str | None
    name: str
    type: str
    description: str
    thumbnail: str | None
    is_premium: bool
    default_sections: list
    styles: dict
