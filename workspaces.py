"""
workspaces.py — Team workspaces: membership, invitations and shared analyses.

A workspace admin is the owner or any member holding the "admin" role.
Invitations to unknown e-mail addresses wait as PendingInvitation rows that
expire after seven days and can be accepted once.
"""

from typing import List, Optional

from fastapi import HTTPException, status
from sqlalchemy import or_, select
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from models import AnalysisResult, PendingInvitation, SharedAnalysis, User, Workspace, WorkspaceMember
from notifications import NotificationDispatcher
from utils import as_utc, logger, utcnow


def _membership(db: Session, workspace_id: int, user_id: int) -> Optional[WorkspaceMember]:
    return (
        db.query(WorkspaceMember)
        .filter(WorkspaceMember.workspace_id == workspace_id, WorkspaceMember.user_id == user_id)
        .first()
    )


def is_workspace_admin(db: Session, workspace: Workspace, user_id: int) -> bool:
    if workspace.owner_id == user_id:
        return True
    member = _membership(db, workspace.id, user_id)
    return member is not None and member.role == "admin"


def get_workspace(db: Session, workspace_id: int, user: User) -> Workspace:
    """Return the workspace if the user owns it or belongs to it, else 404."""
    workspace = db.get(Workspace, workspace_id)
    if workspace is None or (
        workspace.owner_id != user.id and _membership(db, workspace_id, user.id) is None
    ):
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Workspace not found")
    return workspace


def require_admin(db: Session, workspace: Workspace, user: User) -> None:
    if not is_workspace_admin(db, workspace, user.id):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only workspace admins can do this",
        )


def create_workspace(db: Session, owner: User, name: str, description: Optional[str]) -> Workspace:
    workspace = Workspace(name=name.strip(), description=description, owner_id=owner.id)
    db.add(workspace)
    db.flush()
    db.add(
        WorkspaceMember(
            workspace_id=workspace.id, user_id=owner.id, role="admin", joined_at=utcnow()
        )
    )
    db.commit()
    db.refresh(workspace)
    logger.info("Workspace created (id=%d) by %s: %s", workspace.id, owner.username, workspace.name)
    return workspace


def list_workspaces(db: Session, user: User) -> List[Workspace]:
    member_of = select(WorkspaceMember.workspace_id).where(WorkspaceMember.user_id == user.id)
    return (
        db.query(Workspace)
        .filter(or_(Workspace.owner_id == user.id, Workspace.id.in_(member_of)))
        .order_by(Workspace.created_at.desc())
        .all()
    )


def invite_member(
    db: Session,
    workspace: Workspace,
    inviter: User,
    email: str,
    role: str,
    dispatcher: NotificationDispatcher,
) -> dict:
    require_admin(db, workspace, inviter)
    email = email.strip().lower()
    inviter_name = inviter.full_name or inviter.username

    existing = db.query(User).filter(User.email == email).first()
    if existing is not None:
        if _membership(db, workspace.id, existing.id) is None:
            db.add(
                WorkspaceMember(
                    workspace_id=workspace.id, user_id=existing.id, role=role, joined_at=utcnow()
                )
            )
            db.commit()
            logger.info("User %s added to workspace %d as %s", existing.username, workspace.id, role)
        dispatcher.notify_invitation(email, inviter_name, workspace.name, role)
        return {"type": "existing_user", "workspace_id": workspace.id, "email": email, "role": role}

    invitation = PendingInvitation(
        workspace_id=workspace.id, email=email, role=role, invited_by=inviter.id
    )
    db.add(invitation)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="This email has already been invited to this workspace",
        )
    db.refresh(invitation)
    logger.info("Pending invitation created for %s to workspace %d", email, workspace.id)

    dispatcher.notify_invitation(email, inviter_name, workspace.name, role, token=invitation.token)
    return {
        "type": "new_user",
        "workspace_id": workspace.id,
        "email": email,
        "role": role,
        "token": invitation.token,
        "expires_at": invitation.expires_at,
    }


def accept_invitation(db: Session, user: User, token: str) -> WorkspaceMember:
    invitation = db.query(PendingInvitation).filter(PendingInvitation.token == token).first()
    if invitation is None or invitation.email != user.email.lower():
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Invitation not found")
    if invitation.accepted_at is not None:
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT, detail="Invitation has already been used"
        )
    if as_utc(invitation.expires_at) < utcnow():
        raise HTTPException(status_code=status.HTTP_410_GONE, detail="Invitation has expired")

    invitation.accepted_at = utcnow()
    member = _membership(db, invitation.workspace_id, user.id)
    if member is None:
        member = WorkspaceMember(
            workspace_id=invitation.workspace_id,
            user_id=user.id,
            role=invitation.role,
            joined_at=utcnow(),
        )
        db.add(member)
    db.commit()
    db.refresh(member)
    logger.info("User %s accepted invitation to workspace %d", user.username, invitation.workspace_id)
    return member


def remove_member(db: Session, workspace: Workspace, actor: User, user_id: int) -> None:
    require_admin(db, workspace, actor)
    if user_id == workspace.owner_id:
        raise HTTPException(
            status_code=status.HTTP_400_BAD_REQUEST, detail="The owner cannot be removed"
        )
    member = _membership(db, workspace.id, user_id)
    if member is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Member not found")
    db.delete(member)
    db.commit()


def share_analysis(db: Session, workspace: Workspace, user: User, analysis_id: int) -> SharedAnalysis:
    analysis = (
        db.query(AnalysisResult)
        .filter(AnalysisResult.id == analysis_id, AnalysisResult.user_id == user.id)
        .first()
    )
    if analysis is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Analysis not found")

    member = _membership(db, workspace.id, user.id)
    if not is_workspace_admin(db, workspace, user.id) and (member is None or member.role == "viewer"):
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN, detail="Viewers cannot share analyses"
        )

    shared = SharedAnalysis(analysis_id=analysis.id, workspace_id=workspace.id, shared_by=user.id)
    db.add(shared)
    try:
        db.commit()
    except IntegrityError:
        db.rollback()
        raise HTTPException(
            status_code=status.HTTP_409_CONFLICT,
            detail="Analysis is already shared with this workspace",
        )
    db.refresh(shared)
    logger.info("Analysis %d shared with workspace %d", analysis.id, workspace.id)
    return shared


def unshare_analysis(db: Session, workspace: Workspace, actor: User, shared_id: int) -> None:
    require_admin(db, workspace, actor)
    shared = (
        db.query(SharedAnalysis)
        .filter(SharedAnalysis.id == shared_id, SharedAnalysis.workspace_id == workspace.id)
        .first()
    )
    if shared is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="Shared analysis not found")
    db.delete(shared)
    db.commit()
