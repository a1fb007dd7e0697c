"""
main.py — FastAPI application: auth, resume credibility analysis, history, workspaces and admin routes.
"""

import mimetypes
import time
from contextlib import asynccontextmanager
from datetime import date, timedelta
from typing import Callable, List, Optional

from fastapi import Depends, FastAPI, File, HTTPException, Query, Request, UploadFile, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse, Response
from fastapi.security import OAuth2PasswordRequestForm
from sqlalchemy.orm import Session

import admin
import workspaces
from analyzer import AnalysisRequester
from auth import (
    create_access_token,
    get_admin_user,
    get_current_user,
    hash_password,
    verify_password,
)
from batch import AnalysisPipeline, BatchOrchestrator, build_queue, summarize
from billing import change_plan, list_plans, remaining_quota
from config import (
    ACCESS_TOKEN_EXPIRE_MINUTES,
    ADMIN_EMAILS,
    ALLOWED_CONTENT_TYPES,
    BATCH_DELAY_SECONDS,
    HISTORY_PAGE_SIZE,
    MAX_UPLOAD_BYTES,
)
from database import Base, engine, get_db
from errors import AnalysisError, QuotaExceeded, Unauthorized
from extractor import ResumeFile
from gateway import PersistenceGateway
from models import (
    AnalysisResult,
    PendingInvitation,
    Resume,
    SharedAnalysis,
    UsageLog,
    User,
    UserRole,
    Workspace,
    WorkspaceMember,
)
from notifications import NotificationDispatcher
from schemas import (
    AdminAnalysisOut,
    AdminStats,
    AnalysisOut,
    BatchCounts,
    BatchOut,
    ComparisonOut,
    FileStatusOut,
    InvitationCreate,
    InvitationResult,
    MemberOut,
    PlanChange,
    PlanOut,
    ProfileUpdate,
    ShareRequest,
    SharedAnalysisOut,
    SkippedFile,
    Token,
    UsageEventIn,
    UsageLogOut,
    UserCreate,
    UserOut,
    WorkspaceCreate,
    WorkspaceOut,
)
from utils import logger
from views import compare_analyses, export_csv, filter_analyses

TRACKED_ACTIONS = {
    "resume_upload",
    "bulk_upload",
    "view_history",
    "view_analysis",
    "compare_resumes",
    "export_csv",
    "create_workspace",
    "invite_member",
    "share_analysis",
    "profile_update",
    "page_view",
    "resume_analysis",
}


# ── App setup ─────────────────────────────────────────

@asynccontextmanager
async def lifespan(app: FastAPI):
    """Create database tables on startup."""
    Base.metadata.create_all(bind=engine)
    logger.info("Application started — tables created")
    yield
    logger.info("Application shutting down")


app = FastAPI(
    title="Resume Screening API",
    description="Upload resumes and score their credibility with an AI reviewer.",
    version="1.0.0",
    lifespan=lifespan,
)

# CORS — allow all origins for development
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(AnalysisError)
async def analysis_error_handler(request: Request, exc: AnalysisError):
    headers = {"WWW-Authenticate": "Bearer"} if isinstance(exc, Unauthorized) else None
    return JSONResponse(status_code=exc.status_code, content={"error": exc.message}, headers=headers)


# ── Injectable collaborators ─────────────────────────

def get_requester() -> AnalysisRequester:
    return AnalysisRequester()


def get_dispatcher() -> NotificationDispatcher:
    return NotificationDispatcher()


def get_sleeper() -> Callable[[float], None]:
    return time.sleep


def _to_resume_file(upload: UploadFile) -> ResumeFile:
    content_type = upload.content_type
    if not content_type or content_type == "application/octet-stream":
        content_type = mimetypes.guess_type(upload.filename or "")[0] or "application/octet-stream"
    return ResumeFile(
        file_name=upload.filename or "resume",
        content_type=content_type,
        data=upload.file.read(),
    )


def _build_pipeline(db, user, requester, dispatcher) -> AnalysisPipeline:
    return AnalysisPipeline(PersistenceGateway(db, user), requester, dispatcher)


def _owned_analysis(db: Session, user: User, analysis_id: int) -> AnalysisResult:
    analysis = (
        db.query(AnalysisResult)
        .filter(AnalysisResult.id == analysis_id, AnalysisResult.user_id == user.id)
        .first()
    )
    if analysis is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analysis not found")
    return analysis


@app.get("/")
def root():
    return {"message": "Resume Screening API running"}


# ── Auth routes ───────────────────────────────────────

@app.post("/signup", response_model=UserOut, status_code=status.HTTP_201_CREATED)
def signup(user_data: UserCreate, db: Session = Depends(get_db)):
    """Register a new user account on the free plan."""
    logger.info("Signup attempt for username: %s", user_data.username)
    email = user_data.email.strip().lower()

    if db.query(User).filter(User.username == user_data.username).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Username already registered",
        )
    if db.query(User).filter(User.email == email).first():
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Email already registered",
        )

    new_user = User(
        username=user_data.username,
        email=email,
        full_name=(user_data.full_name or "").strip() or None,
        hashed_password=hash_password(user_data.password),
    )
    db.add(new_user)
    db.flush()
    db.add(UserRole(user_id=new_user.id, role="user"))
    if email in ADMIN_EMAILS:
        db.add(UserRole(user_id=new_user.id, role="admin"))
        logger.info("Granting admin role to %s", email)
    db.commit()
    db.refresh(new_user)
    logger.info("User created: %s (id=%d)", new_user.username, new_user.id)
    return new_user


@app.post("/login", response_model=Token)
def login(
    form_data: OAuth2PasswordRequestForm = Depends(),
    db: Session = Depends(get_db),
):
    """Authenticate and return a JWT access token."""
    logger.info("Login attempt for username: %s", form_data.username)

    user = db.query(User).filter(User.username == form_data.username).first()
    if not user or not verify_password(form_data.password, user.hashed_password):
        logger.warning("Failed login for username: %s", form_data.username)
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Invalid username or password",
            headers={"WWW-Authenticate": "Bearer"},
        )

    access_token = create_access_token(
        data={"sub": user.username},
        expires_delta=timedelta(minutes=ACCESS_TOKEN_EXPIRE_MINUTES),
    )
    logger.info("Token issued for user: %s", user.username)
    return {"access_token": access_token, "token_type": "bearer"}


# ── Account routes ────────────────────────────────────

@app.get("/me", response_model=UserOut)
def read_profile(current_user: User = Depends(get_current_user), db: Session = Depends(get_db)):
    remaining_quota(current_user)
    db.commit()
    return current_user


@app.patch("/me", response_model=UserOut)
def update_profile(
    update: ProfileUpdate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    changed = update.model_dump(exclude_unset=True)
    if "full_name" in changed:
        current_user.full_name = changed["full_name"] or None
    if changed.get("high_risk_alerts") is not None:
        current_user.high_risk_alerts = changed["high_risk_alerts"]
    PersistenceGateway(db, current_user).log_usage(
        "profile_update", {"updated_fields": ",".join(sorted(changed))}
    )
    db.refresh(current_user)
    return current_user


@app.delete("/me", status_code=status.HTTP_204_NO_CONTENT)
def delete_account(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    """Remove the account and everything it owns."""
    user_id = current_user.id
    logger.info("Deleting account for user %s (id=%d)", current_user.username, user_id)

    db.query(SharedAnalysis).filter(SharedAnalysis.shared_by == user_id).delete()
    db.query(PendingInvitation).filter(PendingInvitation.invited_by == user_id).delete()
    db.query(WorkspaceMember).filter(WorkspaceMember.user_id == user_id).delete()
    for workspace in db.query(Workspace).filter(Workspace.owner_id == user_id).all():
        db.delete(workspace)
    db.query(AnalysisResult).filter(AnalysisResult.user_id == user_id).delete()
    db.query(Resume).filter(Resume.user_id == user_id).delete()
    db.query(UsageLog).filter(UsageLog.user_id == user_id).delete()
    db.query(UserRole).filter(UserRole.user_id == user_id).delete()
    db.delete(current_user)
    db.commit()
    logger.info("Account %d deleted", user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.get("/plans", response_model=List[PlanOut])
def plans():
    return list_plans()


@app.get("/me/quota")
def read_quota(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    remaining = remaining_quota(current_user)
    db.commit()
    return {
        "plan": current_user.subscription_plan,
        "used": current_user.monthly_analysis_count,
        "limit": current_user.monthly_analysis_limit,
        "remaining": remaining,
    }


# ── Analysis routes ──────────────────────────────────

@app.post("/analyze", response_model=AnalysisOut)
def analyze_resume(
    file: UploadFile = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    requester: AnalysisRequester = Depends(get_requester),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    """Extract, score and store a single resume."""
    logger.info("Resume upload by user '%s': %s", current_user.username, file.filename)
    resume_file = _to_resume_file(file)

    if resume_file.content_type not in ALLOWED_CONTENT_TYPES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail="Unsupported file type. Only PDF, DOCX, and TXT files are accepted.",
        )
    if resume_file.size > MAX_UPLOAD_BYTES:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST,
            detail=f"{resume_file.file_name} exceeds 10MB limit.",
        )

    remaining = remaining_quota(current_user)
    if remaining is not None and remaining < 1:
        raise QuotaExceeded(remaining, 1)

    result = _build_pipeline(db, current_user, requester, dispatcher).process(resume_file)
    return result


@app.post("/analyze/batch", response_model=BatchOut)
def analyze_batch(
    files: List[UploadFile] = File(...),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    requester: AnalysisRequester = Depends(get_requester),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
    sleep: Callable[[float], None] = Depends(get_sleeper),
):
    """Analyze several resumes one after another; each file reports its own outcome."""
    logger.info("Batch upload by user '%s': %d file(s)", current_user.username, len(files))
    queue = build_queue([_to_resume_file(upload) for upload in files])

    orchestrator = BatchOrchestrator(
        _build_pipeline(db, current_user, requester, dispatcher),
        delay=BATCH_DELAY_SECONDS,
        sleep=sleep,
    )
    orchestrator.run_batch(queue.statuses, remaining_quota(current_user))
    PersistenceGateway(db, current_user).log_usage(
        "bulk_upload", {"file_count": len(queue.statuses)}
    )

    summary = summarize(queue.statuses)
    return BatchOut(
        files=[
            FileStatusOut(
                file_name=s.file.file_name,
                file_size=s.file.size,
                status=s.state.value,
                result=AnalysisOut.model_validate(s.result) if s.result is not None else None,
                error=s.error,
            )
            for s in queue.statuses
        ],
        counts=BatchCounts(
            total=summary.total,
            pending=summary.pending,
            analyzing=summary.analyzing,
            complete=summary.complete,
            error=summary.error,
            progress_percent=summary.progress_percent,
        ),
        skipped=[SkippedFile(file_name=name, reason=reason) for name, reason in queue.skipped],
    )


def _history(
    db: Session,
    user: User,
    risk_level: Optional[str],
    search: Optional[str],
    min_score: Optional[int],
    max_score: Optional[int],
    limit: Optional[int],
) -> List[AnalysisResult]:
    query = (
        db.query(AnalysisResult)
        .filter(AnalysisResult.user_id == user.id)
        .order_by(AnalysisResult.created_at.desc(), AnalysisResult.id.desc())
    )
    analyses = filter_analyses(query.all(), risk_level, search, min_score, max_score)
    return analyses[:limit] if limit else analyses


@app.get("/analyses", response_model=List[AnalysisOut])
def list_analyses(
    risk_level: Optional[str] = None,
    search: Optional[str] = None,
    min_score: Optional[int] = Query(default=None, ge=0, le=100),
    max_score: Optional[int] = Query(default=None, ge=0, le=100),
    limit: int = Query(default=HISTORY_PAGE_SIZE, ge=1, le=500),
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    """Return the caller's analyses, newest first."""
    logger.info("Fetching analyses for user: %s", current_user.username)
    return _history(db, current_user, risk_level, search, min_score, max_score, limit)


@app.get("/analyses/compare", response_model=ComparisonOut)
def compare(
    a: int,
    b: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    analysis_a = _owned_analysis(db, current_user, a)
    analysis_b = _owned_analysis(db, current_user, b)
    PersistenceGateway(db, current_user).log_usage("compare_resumes", {"a": a, "b": b})
    return compare_analyses(analysis_a, analysis_b)


@app.get("/analyses/export")
def export_analyses(
    risk_level: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    analyses = _history(db, current_user, risk_level, search, None, None, None)
    content = export_csv(analyses)
    PersistenceGateway(db, current_user).log_usage("export_csv", {"export_count": len(analyses)})
    file_name = f"resume-analyses-{date.today().isoformat()}.csv"
    return Response(
        content=content,
        media_type="text/csv; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="{file_name}"'},
    )


@app.get("/analyses/{analysis_id}", response_model=AnalysisOut)
def get_analysis(
    analysis_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return _owned_analysis(db, current_user, analysis_id)


@app.delete("/resumes/{resume_id}", status_code=status.HTTP_204_NO_CONTENT)
def delete_resume(
    resume_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    resume = (
        db.query(Resume).filter(Resume.id == resume_id, Resume.user_id == current_user.id).first()
    )
    if resume is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Resume not found")
    db.delete(resume)
    db.commit()
    logger.info("Resume %d deleted by %s", resume_id, current_user.username)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Usage tracking ────────────────────────────────────

@app.post("/usage", status_code=status.HTTP_204_NO_CONTENT)
def track_usage(
    event: UsageEventIn,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    if event.action not in TRACKED_ACTIONS:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail=f"Unknown action '{event.action}'"
        )
    PersistenceGateway(db, current_user).log_usage(event.action, event.metadata)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Workspace routes ──────────────────────────────────

@app.post("/workspaces", response_model=WorkspaceOut, status_code=status.HTTP_201_CREATED)
def create_workspace(
    data: WorkspaceCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    workspace = workspaces.create_workspace(db, current_user, data.name, data.description)
    PersistenceGateway(db, current_user).log_usage(
        "create_workspace", {"workspace_name": workspace.name}
    )
    return workspace


@app.get("/workspaces", response_model=List[WorkspaceOut])
def list_workspaces(db: Session = Depends(get_db), current_user: User = Depends(get_current_user)):
    return workspaces.list_workspaces(db, current_user)


@app.get("/workspaces/{workspace_id}/members", response_model=List[MemberOut])
def list_members(
    workspace_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return workspaces.get_workspace(db, workspace_id, current_user).members


@app.post("/workspaces/{workspace_id}/invitations", response_model=InvitationResult)
def invite_member(
    workspace_id: int,
    data: InvitationCreate,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
    dispatcher: NotificationDispatcher = Depends(get_dispatcher),
):
    workspace = workspaces.get_workspace(db, workspace_id, current_user)
    result = workspaces.invite_member(db, workspace, current_user, data.email, data.role, dispatcher)
    PersistenceGateway(db, current_user).log_usage("invite_member", {"workspace_id": workspace_id})
    return result


@app.post("/invitations/{token}/accept", response_model=MemberOut)
def accept_invitation(
    token: str,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    return workspaces.accept_invitation(db, current_user, token)


@app.delete("/workspaces/{workspace_id}/members/{user_id}", status_code=status.HTTP_204_NO_CONTENT)
def remove_member(
    workspace_id: int,
    user_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    workspace = workspaces.get_workspace(db, workspace_id, current_user)
    workspaces.remove_member(db, workspace, current_user, user_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


@app.post(
    "/workspaces/{workspace_id}/shared",
    response_model=SharedAnalysisOut,
    status_code=status.HTTP_201_CREATED,
)
def share_analysis(
    workspace_id: int,
    data: ShareRequest,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    workspace = workspaces.get_workspace(db, workspace_id, current_user)
    shared = workspaces.share_analysis(db, workspace, current_user, data.analysis_id)
    PersistenceGateway(db, current_user).log_usage(
        "share_analysis", {"analysis_id": data.analysis_id, "workspace_id": workspace_id}
    )
    return shared


@app.get("/workspaces/{workspace_id}/shared", response_model=List[SharedAnalysisOut])
def list_shared(
    workspace_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    workspace = workspaces.get_workspace(db, workspace_id, current_user)
    return sorted(workspace.shared_analyses, key=lambda s: s.shared_at, reverse=True)


@app.delete(
    "/workspaces/{workspace_id}/shared/{shared_id}", status_code=status.HTTP_204_NO_CONTENT
)
def unshare_analysis(
    workspace_id: int,
    shared_id: int,
    db: Session = Depends(get_db),
    current_user: User = Depends(get_current_user),
):
    workspace = workspaces.get_workspace(db, workspace_id, current_user)
    workspaces.unshare_analysis(db, workspace, current_user, shared_id)
    return Response(status_code=status.HTTP_204_NO_CONTENT)


# ── Admin routes ──────────────────────────────────────

@app.get("/admin/stats", response_model=AdminStats)
def admin_stats(db: Session = Depends(get_db), _: User = Depends(get_admin_user)):
    return admin.dashboard_stats(db)


@app.get("/admin/analyses", response_model=List[AdminAnalysisOut])
def admin_analyses(
    risk_level: Optional[str] = None,
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    _: User = Depends(get_admin_user),
):
    return admin.recent_analyses(db, risk_level, search)


@app.get("/admin/users", response_model=List[UserOut])
def admin_users(
    search: Optional[str] = None,
    db: Session = Depends(get_db),
    _: User = Depends(get_admin_user),
):
    return admin.search_users(db, search)


@app.get("/admin/usage")
def admin_usage(db: Session = Depends(get_db), _: User = Depends(get_admin_user)):
    return admin.action_counts(db)


@app.get("/admin/usage/logs", response_model=List[UsageLogOut])
def admin_usage_logs(
    limit: int = Query(default=100, ge=1, le=500),
    db: Session = Depends(get_db),
    _: User = Depends(get_admin_user),
):
    return db.query(UsageLog).order_by(UsageLog.created_at.desc()).limit(limit).all()


@app.put("/admin/users/{user_id}/plan", response_model=UserOut)
def admin_change_plan(
    user_id: int,
    data: PlanChange,
    db: Session = Depends(get_db),
    _: User = Depends(get_admin_user),
):
    user = db.get(User, user_id)
    if user is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="User not found")
    change_plan(user, data.plan)
    db.commit()
    db.refresh(user)
    return user
