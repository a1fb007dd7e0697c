"""
models.py — SQLAlchemy ORM models for users, resumes, analyses, usage logs and team workspaces.
"""

import uuid
from datetime import timedelta

from sqlalchemy import (
    Boolean,
    Column,
    DateTime,
    ForeignKey,
    Integer,
    JSON,
    String,
    Text,
    UniqueConstraint,
)
from sqlalchemy.orm import relationship

from config import INVITATION_TTL_DAYS
from database import Base
from utils import utcnow


class User(Base):
    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    username = Column(String(100), unique=True, nullable=False, index=True)
    email = Column(String(255), unique=True, nullable=False, index=True)
    hashed_password = Column(String(255), nullable=False)
    full_name = Column(String(100), nullable=True)
    subscription_plan = Column(String(20), nullable=False, default="free")
    monthly_analysis_count = Column(Integer, nullable=False, default=0)
    monthly_analysis_limit = Column(Integer, nullable=True, default=5)  # NULL = unlimited
    usage_period_start = Column(DateTime, default=utcnow)
    high_risk_alerts = Column(Boolean, nullable=False, default=True)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    resumes = relationship("Resume", back_populates="owner", cascade="all, delete-orphan")
    analyses = relationship("AnalysisResult", back_populates="owner", cascade="all, delete-orphan")
    usage_logs = relationship("UsageLog", back_populates="owner", cascade="all, delete-orphan")
    roles = relationship("UserRole", back_populates="user", cascade="all, delete-orphan")


class UserRole(Base):
    __tablename__ = "user_roles"
    __table_args__ = (UniqueConstraint("user_id", "role"),)

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(20), nullable=False, default="user")  # admin | moderator | user
    created_at = Column(DateTime, default=utcnow)

    user = relationship("User", back_populates="roles")


class Resume(Base):
    __tablename__ = "resumes"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    file_name = Column(String(255), nullable=False)
    extracted_text = Column(Text, nullable=True)
    file_size = Column(Integer, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    owner = relationship("User", back_populates="resumes")
    analysis = relationship(
        "AnalysisResult", back_populates="resume", uselist=False, cascade="all, delete-orphan"
    )


class AnalysisResult(Base):
    __tablename__ = "analysis_results"

    id = Column(Integer, primary_key=True, index=True)
    resume_id = Column(
        Integer, ForeignKey("resumes.id", ondelete="CASCADE"), nullable=False, unique=True
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    credibility_score = Column(Integer, nullable=False)
    risk_level = Column(String(10), nullable=False)
    flags = Column(JSON, nullable=False, default=list)
    summary = Column(Text, nullable=True)
    detailed_analysis = Column(JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow, index=True)

    resume = relationship("Resume", back_populates="analysis")
    owner = relationship("User", back_populates="analyses")
    shares = relationship("SharedAnalysis", back_populates="analysis", cascade="all, delete-orphan")

    @property
    def file_name(self) -> str:
        return self.resume.file_name if self.resume else "Unknown file"

    @property
    def user_email(self):
        return self.owner.email if self.owner else None


class UsageLog(Base):
    __tablename__ = "usage_logs"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False, index=True)
    action = Column(String(50), nullable=False, index=True)
    details = Column("metadata", JSON, nullable=True)
    created_at = Column(DateTime, default=utcnow)

    owner = relationship("User", back_populates="usage_logs")


# ── Team workspaces ───────────────────────────────────

class Workspace(Base):
    __tablename__ = "team_workspaces"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    description = Column(Text, nullable=True)
    owner_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    created_at = Column(DateTime, default=utcnow)
    updated_at = Column(DateTime, default=utcnow, onupdate=utcnow)

    members = relationship("WorkspaceMember", back_populates="workspace", cascade="all, delete-orphan")
    invitations = relationship(
        "PendingInvitation", back_populates="workspace", cascade="all, delete-orphan"
    )
    shared_analyses = relationship(
        "SharedAnalysis", back_populates="workspace", cascade="all, delete-orphan"
    )


class WorkspaceMember(Base):
    __tablename__ = "workspace_members"
    __table_args__ = (UniqueConstraint("workspace_id", "user_id"),)

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(
        Integer, ForeignKey("team_workspaces.id", ondelete="CASCADE"), nullable=False
    )
    user_id = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    role = Column(String(10), nullable=False, default="member")  # admin | member | viewer
    invited_at = Column(DateTime, default=utcnow)
    joined_at = Column(DateTime, nullable=True)

    workspace = relationship("Workspace", back_populates="members")
    user = relationship("User")


def _invitation_expiry():
    return utcnow() + timedelta(days=INVITATION_TTL_DAYS)


class PendingInvitation(Base):
    __tablename__ = "pending_invitations"
    __table_args__ = (UniqueConstraint("workspace_id", "email"),)

    id = Column(Integer, primary_key=True, index=True)
    workspace_id = Column(
        Integer, ForeignKey("team_workspaces.id", ondelete="CASCADE"), nullable=False
    )
    email = Column(String(255), nullable=False)
    role = Column(String(10), nullable=False, default="member")
    invited_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    token = Column(String(32), nullable=False, unique=True, default=lambda: uuid.uuid4().hex)
    expires_at = Column(DateTime, nullable=False, default=_invitation_expiry)
    created_at = Column(DateTime, default=utcnow)
    accepted_at = Column(DateTime, nullable=True)

    workspace = relationship("Workspace", back_populates="invitations")


class SharedAnalysis(Base):
    __tablename__ = "shared_analyses"
    __table_args__ = (UniqueConstraint("analysis_id", "workspace_id"),)

    id = Column(Integer, primary_key=True, index=True)
    analysis_id = Column(
        Integer, ForeignKey("analysis_results.id", ondelete="CASCADE"), nullable=False
    )
    workspace_id = Column(
        Integer, ForeignKey("team_workspaces.id", ondelete="CASCADE"), nullable=False
    )
    shared_by = Column(Integer, ForeignKey("users.id", ondelete="CASCADE"), nullable=False)
    shared_at = Column(DateTime, default=utcnow)

    analysis = relationship("AnalysisResult", back_populates="shares")
    workspace = relationship("Workspace", back_populates="shared_analyses")
