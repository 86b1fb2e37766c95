"""Profile model and its repeatable sections (experience, education, ...)."""

import uuid

from sqlalchemy import JSON, Boolean, Column, Date, ForeignKey, String, Text, Uuid
from sqlalchemy.orm import relationship

from cvbuilder.db.base import Base


class Profile(Base):
    __tablename__ = "profiles"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    user_id = Column(Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False)

    headline = Column(String(200), nullable=True)
    summary = Column(Text, nullable=True)
    phone = Column(String(20), nullable=True)
    location = Column(String(100), nullable=True)
    website = Column(String(500), nullable=True)
    linkedin_url = Column(String(500), nullable=True)
    github_url = Column(String(500), nullable=True)

    user = relationship("User", back_populates="profile")
    experiences = relationship(
        "Experience", cascade="all, delete-orphan", order_by="Experience.start_date.desc()", lazy="selectin"
    )
    educations = relationship(
        "Education", cascade="all, delete-orphan", order_by="Education.start_date.desc()", lazy="selectin"
    )
    skills = relationship("Skill", cascade="all, delete-orphan", lazy="selectin")
    projects = relationship("ProfileProject", cascade="all, delete-orphan", lazy="selectin")
    certifications = relationship("Certification", cascade="all, delete-orphan", lazy="selectin")
    languages = relationship("Language", cascade="all, delete-orphan", lazy="selectin")


class Experience(Base):
    __tablename__ = "experiences"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    company = Column(String(100), nullable=False)
    title = Column(String(100), nullable=False)
    location = Column(String(100), nullable=True)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    current = Column(Boolean, nullable=False, default=False)
    description = Column(Text, nullable=True)
    achievements = Column(JSON, nullable=False, default=list)


class Education(Base):
    __tablename__ = "educations"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    institution = Column(String(100), nullable=False)
    degree = Column(String(100), nullable=False)
    field = Column(String(100), nullable=False)
    start_date = Column(Date, nullable=False)
    end_date = Column(Date, nullable=True)
    gpa = Column(String(10), nullable=True)
    description = Column(Text, nullable=True)


class Skill(Base):
    __tablename__ = "skills"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(50), nullable=False)
    level = Column(String(20), nullable=False, default="INTERMEDIATE")
    category = Column(String(50), nullable=True)


class ProfileProject(Base):
    __tablename__ = "projects"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    technologies = Column(JSON, nullable=False, default=list)
    url = Column(String(500), nullable=True)
    start_date = Column(Date, nullable=True)
    end_date = Column(Date, nullable=True)


class Certification(Base):
    __tablename__ = "certifications"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(100), nullable=False)
    issuer = Column(String(100), nullable=False)
    issue_date = Column(Date, nullable=False)
    expiry_date = Column(Date, nullable=True)
    credential_id = Column(String(100), nullable=True)
    url = Column(String(500), nullable=True)


class Language(Base):
    __tablename__ = "languages"

    id = Column(Uuid, primary_key=True, default=uuid.uuid4)
    profile_id = Column(Uuid, ForeignKey("profiles.id", ondelete="CASCADE"), nullable=False, index=True)

    name = Column(String(50), nullable=False)
    proficiency = Column(String(20), nullable=False, default="PROFESSIONAL")
