"""Document and generation API Pydantic schemas."""

import uuid
from datetime import datetime
from decimal import Decimal
from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class TemplateBrief(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    name: str
    type: str
    is_premium: bool


class DocumentResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    type: str
    name: str
    template_id: uuid.UUID | None
    template: TemplateBrief | None = None
    content: dict
    job_description: str | None
    job_url: str | None
    job_title: str | None
    company_name: str | None
    ats_score: int | None
    created_at: datetime
    updated_at: datetime


class DocumentVersionResponse(BaseModel):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    version: int
    content: dict
    created_at: datetime


class DocumentDetailResponse(DocumentResponse):
    versions: list[DocumentVersionResponse] = []


class _JobContext(BaseModel):
    template_id: uuid.UUID
    job_description: str = Field(..., min_length=10, max_length=50_000)
    job_title: str | None = Field(None, max_length=200)
    company_name: str | None = Field(None, max_length=200)
    job_url: str | None = Field(None, max_length=1000)
    customizations: dict | None = None


class GenerateCVRequest(_JobContext):
    tone: Literal["professional", "creative", "technical", "executive", "formal", "casual"] = "professional"


class GenerateCoverLetterRequest(_JobContext):
    tone: Literal["formal", "friendly", "enthusiastic", "professional"] = "professional"


class GenerationResponse(BaseModel):
    document: DocumentResponse
    ats_score: int
    keywords: list[str]
    suggestions: list[str]
    credits_used: Decimal
    credits_remaining: Decimal


class ATSResponse(BaseModel):
    document_id: uuid.UUID
    ats_score: int
    feedback: list[str]
    credits_used: Decimal
    credits_remaining: Decimal


class DocumentCreate(BaseModel):
    type: Literal["CV", "COVER_LETTER"]
    name: str = Field(..., min_length=1, max_length=200)
    template_id: uuid.UUID
    content: dict | None = None
    job_description: str | None = None
    job_title: str | None = Field(None, max_length=200)
    company_name: str | None = Field(None, max_length=200)
    job_url: str | None = Field(None, max_length=1000)


class DocumentUpdate(BaseModel):
    name: str | None = Field(None, min_length=1, max_length=200)
    template_id: uuid.UUID | None = None
    content: dict | None = None
    job_description: str | None = None
    job_title: str | None = Field(None, max_length=200)
    company_name: str | None = Field(None, max_length=200)
    job_url: str | None = Field(None, max_length=1000)
