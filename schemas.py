"""
schemas.py — Pydantic models for request/response validation and for the scoring model's reply.
"""

import math
from datetime import datetime
from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator

RISK_LEVELS = ("low", "medium", "high")
WORKSPACE_ROLES = ("admin", "member", "viewer")
PLANS = ("free", "pro", "enterprise")


def risk_level_for_score(score: int) -> str:
    """Fixed bands: 80 and above is low risk, 50–79 medium, below 50 high."""
    if score >= 80:
        return "low"
    if score >= 50:
        return "medium"
    return "high"


# ── Auth ──────────────────────────────────────────────

class UserCreate(BaseModel):
    username: str = Field(min_length=3, max_length=100)
    email: str = Field(min_length=3, max_length=255)
    password: str = Field(min_length=6)
    full_name: Optional[str] = None


class UserOut(BaseModel):
    id: int
    username: str
    email: str
    full_name: Optional[str] = None
    subscription_plan: str
    monthly_analysis_count: int
    monthly_analysis_limit: Optional[int] = None
    high_risk_alerts: bool
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class ProfileUpdate(BaseModel):
    full_name: Optional[str] = Field(default=None, max_length=100)
    high_risk_alerts: Optional[bool] = None

    @field_validator("full_name")
    @classmethod
    def _trim_name(cls, value):
        return value.strip() if value is not None else value


class Token(BaseModel):
    access_token: str
    token_type: str = "bearer"


# ── Scoring model reply ───────────────────────────────

class Flag(BaseModel):
    category: str
    severity: str
    description: str

    @field_validator("severity")
    @classmethod
    def _lower_severity(cls, value: str) -> str:
        return value.strip().lower()


class DetailedAnalysis(BaseModel):
    experience_consistency: str = "Unable to assess"
    skills_alignment: str = "Unable to assess"
    achievements_credibility: str = "Unable to assess"
    overall_authenticity: str = "Unable to assess"


class AnalysisPayload(BaseModel):
    """The structured verdict returned by the scoring model."""

    credibility_score: int
    risk_level: str = "medium"
    summary: str = ""
    flags: List[Flag] = Field(default_factory=list)
    detailed_analysis: DetailedAnalysis = Field(default_factory=DetailedAnalysis)

    @field_validator("credibility_score", mode="before")
    @classmethod
    def _coerce_score(cls, value):
        if isinstance(value, bool):
            raise ValueError("credibility_score must be a number")
        score = float(value)
        if not math.isfinite(score):
            raise ValueError("credibility_score must be finite")
        score = round(score)
        return max(0, min(100, score))

    @model_validator(mode="after")
    def _band_from_score(self):
        self.risk_level = risk_level_for_score(self.credibility_score)
        return self


# ── Analyses ──────────────────────────────────────────

class AnalysisOut(BaseModel):
    id: int
    resume_id: int
    file_name: str
    credibility_score: int
    risk_level: str
    summary: Optional[str] = None
    flags: List[Flag] = Field(default_factory=list)
    detailed_analysis: Optional[DetailedAnalysis] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class FileStatusOut(BaseModel):
    file_name: str
    file_size: int
    status: str
    result: Optional[AnalysisOut] = None
    error: Optional[str] = None


class BatchCounts(BaseModel):
    total: int
    pending: int
    analyzing: int
    complete: int
    error: int
    progress_percent: float


class SkippedFile(BaseModel):
    file_name: str
    reason: str


class BatchOut(BaseModel):
    files: List[FileStatusOut]
    counts: BatchCounts
    skipped: List[SkippedFile] = Field(default_factory=list)


class ComparisonOut(BaseModel):
    analysis_a: AnalysisOut
    analysis_b: AnalysisOut
    score_difference: int
    higher: str
    flag_count_a: int
    flag_count_b: int
    shared_categories: List[str]
    only_in_a: List[str]
    only_in_b: List[str]


# ── Usage ─────────────────────────────────────────────

class UsageEventIn(BaseModel):
    action: str
    metadata: Optional[Dict[str, Any]] = None


class UsageLogOut(BaseModel):
    id: int
    user_id: int
    action: str
    details: Optional[Dict[str, Any]] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PlanOut(BaseModel):
    id: str
    name: str
    price: str
    monthly_limit: Optional[int] = None
    features: List[str]


# ── Workspaces ────────────────────────────────────────

class WorkspaceCreate(BaseModel):
    name: str = Field(min_length=1, max_length=100)
    description: Optional[str] = None


class WorkspaceOut(BaseModel):
    id: int
    name: str
    description: Optional[str] = None
    owner_id: int
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class InvitationCreate(BaseModel):
    email: str
    role: str = "member"

    @field_validator("role")
    @classmethod
    def _known_role(cls, value: str) -> str:
        if value not in WORKSPACE_ROLES:
            raise ValueError(f"role must be one of {', '.join(WORKSPACE_ROLES)}")
        return value


class InvitationResult(BaseModel):
    type: str  # existing_user | new_user
    workspace_id: int
    email: str
    role: str
    token: Optional[str] = None
    expires_at: Optional[datetime] = None


class MemberOut(BaseModel):
    id: int
    workspace_id: int
    user_id: int
    role: str
    joined_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


class ShareRequest(BaseModel):
    analysis_id: int


class SharedAnalysisOut(BaseModel):
    id: int
    workspace_id: int
    shared_by: int
    shared_at: datetime
    analysis: AnalysisOut

    model_config = ConfigDict(from_attributes=True)


# ── Admin ─────────────────────────────────────────────

class AdminStats(BaseModel):
    total_analyses: int
    total_users: int
    high_risk: int
    medium_risk: int
    low_risk: int
    average_score: float


class AdminAnalysisOut(AnalysisOut):
    user_email: Optional[str] = None


class PlanChange(BaseModel):
    plan: str

    @field_validator("plan")
    @classmethod
    def _known_plan(cls, value: str) -> str:
        if value not in PLANS:
            raise ValueError(f"plan must be one of {', '.join(PLANS)}")
        return value
