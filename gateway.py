"""
gateway.py — Owner-scoped writes of resumes, analyses and usage logs.

The gateway is bound to the authenticated user when it is built; no method
accepts an owner id, so every row it writes belongs to that user. Database
errors surface as PersistenceFailure after the session is rolled back.
"""

from typing import Any, Dict, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from billing import roll_usage_period
from config import STORED_TEXT_LIMIT
from errors import PersistenceFailure, Unauthorized
from models import AnalysisResult, Resume, UsageLog, User
from schemas import AnalysisPayload
from utils import logger


class PersistenceGateway:
    def __init__(self, db: Session, user: Optional[User]):
        if user is None:
            raise Unauthorized()
        self.db = db
        self.user = user

    def _commit(self, what: str) -> None:
        try:
            self.db.commit()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to store %s for user %s: %s", what, self.user.username, e)
            raise PersistenceFailure() from e

    def _flush(self, what: str) -> None:
        try:
            self.db.flush()
        except SQLAlchemyError as e:
            self.db.rollback()
            logger.error("Failed to store %s for user %s: %s", what, self.user.username, e)
            raise PersistenceFailure() from e

    def save_resume(self, file_name: str, extracted_text: str, file_size: int) -> Resume:
        """Stage the resume row; it is committed together with its analysis."""
        resume = Resume(
            user_id=self.user.id,
            file_name=file_name,
            extracted_text=extracted_text[:STORED_TEXT_LIMIT],
            file_size=file_size,
        )
        self.db.add(resume)
        self._flush("resume")
        logger.info("Resume staged (id=%d): %s", resume.id, file_name)
        return resume

    def save_analysis(self, resume: Resume, payload: AnalysisPayload) -> AnalysisResult:
        """Store the verdict with its resume and count it against the monthly allowance in one transaction."""
        if resume.user_id != self.user.id:
            self.db.rollback()
            raise PersistenceFailure()

        result = AnalysisResult(
            resume_id=resume.id,
            user_id=self.user.id,
            credibility_score=payload.credibility_score,
            risk_level=payload.risk_level,
            flags=[flag.model_dump() for flag in payload.flags],
            summary=payload.summary,
            detailed_analysis=payload.detailed_analysis.model_dump(),
        )
        self.db.add(result)
        roll_usage_period(self.user)
        self.user.monthly_analysis_count += 1
        self._commit("analysis")
        self.db.refresh(result)
        logger.info(
            "Analysis stored (id=%d): score=%d, risk=%s",
            result.id,
            result.credibility_score,
            result.risk_level,
        )
        return result

    def log_usage(self, action: str, metadata: Optional[Dict[str, Any]] = None) -> None:
        self.db.add(UsageLog(user_id=self.user.id, action=action, details=metadata))
        self._commit("usage log")
        logger.debug("Usage logged for %s: %s %s", self.user.username, action, metadata)
