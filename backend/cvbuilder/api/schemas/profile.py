"""Profile API Pydantic schemas."""

import uuid
from datetime import date

from pydantic import BaseModel, ConfigDict, Field, field_validator


class ProfileUpdate(BaseModel):
    headline: str | None = Field(None, max_length=200)
    summary: str | None = Field(None, max_length=2000)
    phone: str | None = Field(None, max_length=20)
    location: str | None = Field(None, max_length=100)
    website: str | None = Field(None, max_length=500)
    linkedin_url: str | None = Field(None, max_length=500)
    github_url: str | None = Field(None, max_length=500)


class ExperienceIn(BaseModel):
    company: str = Field(..., min_length=1, max_length=100)
    title: str = Field(..., min_length=1, max_length=100)
    location: str | None = Field(None, max_length=100)
    start_date: date
    end_date: date | None = None
    current: bool = False
    description: str | None = Field(None, max_length=2000)
    achievements: list[str] = []


class EducationIn(BaseModel):
    institution: str = Field(..., min_length=1, max_length=100)
    degree: str = Field(..., min_length=1, max_length=100)
    field: str = Field(..., min_length=1, max_length=100)
    start_date: date
    end_date: date | None = None
    gpa: str | None = Field(None, max_length=10)
    description: str | None = Field(None, max_length=1000)


class SkillIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    level: str = "INTERMEDIATE"
    category: str | None = Field(None, max_length=50)

    @field_validator("level")
    @classmethod
    def _level(cls, v: str) -> str:
        v = v.upper()
        if v not in ("BEGINNER", "INTERMEDIATE", "ADVANCED", "EXPERT"):
            raise ValueError("level must be beginner, intermediate, advanced or expert")
        return v


class ProjectIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    description: str | None = Field(None, max_length=2000)
    technologies: list[str] = []
    url: str | None = Field(None, max_length=500)
    start_date: date | None = None
    end_date: date | None = None


class CertificationIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=100)
    issuer: str = Field(..., min_length=1, max_length=100)
    issue_date: date
    expiry_date: date | None = None
    credential_id: str | None = Field(None, max_length=100)
    url: str | None = Field(None, max_length=500)


class LanguageIn(BaseModel):
    name: str = Field(..., min_length=1, max_length=50)
    proficiency: str = Field("PROFESSIONAL", max_length=20)


# Responses reuse the input shape plus an id


class ExperienceOut(ExperienceIn):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID


class EducationOut(EducationIn):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID


class SkillOut(BaseModel):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID
    name: str
    level: str
    category: str | None


class ProjectOut(ProjectIn):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID


class CertificationOut(CertificationIn):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID


class LanguageOut(LanguageIn):
    model_config = ConfigDict(from_attributes=True)
    id: uuid.UUID


class ProfileResponse(ProfileUpdate):
    model_config = ConfigDict(from_attributes=True)

    id: uuid.UUID
    experiences: list[ExperienceOut] = []
    educations: list[EducationOut] = []
    skills: list[SkillOut] = []
    projects: list[ProjectOut] = []
    certifications: list[CertificationOut] = []
    languages: list[LanguageOut] = []


# URL segment -> (input schema, output schema)
SECTION_SCHEMAS = {
    "experiences": (ExperienceIn, ExperienceOut),
    "educations": (EducationIn, EducationOut),
    "skills": (SkillIn, SkillOut),
    "projects": (ProjectIn, ProjectOut),
    "certifications": (CertificationIn, CertificationOut),
    "languages": (LanguageIn, LanguageOut),
}
