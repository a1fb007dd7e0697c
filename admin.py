"""
admin.py — Aggregates and listings for the admin dashboard.
"""

from collections import Counter
from typing import Dict, List, Optional

from sqlalchemy import func
from sqlalchemy.orm import Session, joinedload

from config import ADMIN_ANALYSES_LIMIT, ADMIN_USAGE_LOG_LIMIT
from models import AnalysisResult, UsageLog, User, UserRole


def has_role(db: Session, user_id: int, role: str) -> bool:
    return (
        db.query(UserRole).filter(UserRole.user_id == user_id, UserRole.role == role).first()
        is not None
    )


def grant_role(db: Session, user: User, role: str) -> UserRole:
    existing = db.query(UserRole).filter(UserRole.user_id == user.id, UserRole.role == role).first()
    if existing is not None:
        return existing
    user_role = UserRole(user_id=user.id, role=role)
    db.add(user_role)
    db.commit()
    db.refresh(user_role)
    return user_role


def dashboard_stats(db: Session) -> Dict[str, float]:
    risk_counts = dict(
        db.query(AnalysisResult.risk_level, func.count(AnalysisResult.id))
        .group_by(AnalysisResult.risk_level)
        .all()
    )
    average = db.query(func.avg(AnalysisResult.credibility_score)).scalar()
    return {
        "total_analyses": db.query(func.count(AnalysisResult.id)).scalar() or 0,
        "total_users": db.query(func.count(User.id)).scalar() or 0,
        "high_risk": risk_counts.get("high", 0),
        "medium_risk": risk_counts.get("medium", 0),
        "low_risk": risk_counts.get("low", 0),
        "average_score": round(float(average), 1) if average is not None else 0.0,
    }


def recent_analyses(
    db: Session, risk_level: Optional[str] = None, search: Optional[str] = None
) -> List[AnalysisResult]:
    """Latest analyses across all users, filtered by risk band and file name or owner e-mail."""
    analyses = (
        db.query(AnalysisResult)
        .options(joinedload(AnalysisResult.resume), joinedload(AnalysisResult.owner))
        .order_by(AnalysisResult.created_at.desc(), AnalysisResult.id.desc())
        .limit(ADMIN_ANALYSES_LIMIT)
        .all()
    )
    needle = (search or "").lower()
    return [
        a
        for a in analyses
        if (not risk_level or risk_level == "all" or a.risk_level == risk_level)
        and (
            not needle
            or needle in a.file_name.lower()
            or (a.owner is not None and needle in a.owner.email.lower())
        )
    ]


def search_users(db: Session, search: Optional[str] = None) -> List[User]:
    users = db.query(User).order_by(User.created_at.desc()).all()
    if not search:
        return users
    needle = search.lower()
    return [
        u for u in users if needle in u.email.lower() or needle in (u.full_name or "").lower()
    ]


def action_counts(db: Session) -> Dict[str, int]:
    actions = (
        db.query(UsageLog.action)
        .order_by(UsageLog.created_at.desc())
        .limit(ADMIN_USAGE_LOG_LIMIT)
        .all()
    )
    return dict(Counter(action for (action,) in actions).most_common())
