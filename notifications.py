"""
notifications.py — Outbound e-mail for high-risk alerts and workspace invitations.

Sending is fire-and-forget: failures are logged and swallowed so they never
change the outcome of the request that triggered them.
"""

from html import escape
from typing import Optional

import requests

from config import APP_BASE_URL, EMAIL_FROM, RESEND_API_KEY, RESEND_API_URL
from errors import NotificationFailure
from models import AnalysisResult, User
from utils import logger


class EmailSender:
    """Posts messages to the Resend HTTP API."""

    def __init__(
        self,
        api_key: Optional[str] = RESEND_API_KEY,
        sender: str = EMAIL_FROM,
        url: str = RESEND_API_URL,
        timeout: float = 15.0,
    ):
        self.api_key = api_key
        self.sender = sender
        self.url = url
        self.timeout = timeout

    def send(self, to: str, subject: str, html: str) -> None:
        if not self.api_key:
            raise NotificationFailure("E-mail delivery is not configured")
        try:
            response = requests.post(
                self.url,
                headers={
                    "Authorization": f"Bearer {self.api_key}",
                    "Content-Type": "application/json",
                },
                json={"from": self.sender, "to": [to], "subject": subject, "html": html},
                timeout=self.timeout,
            )
            response.raise_for_status()
        except requests.RequestException as e:
            raise NotificationFailure(str(e)) from e


def render_high_risk_email(user_name: Optional[str], file_name: str, result: AnalysisResult) -> str:
    flag_count = len(result.flags or [])
    return (
        f"<p>Hello {escape(user_name or 'there')},</p>"
        f"<p>A resume you recently analyzed has been flagged with a "
        f"<strong>{escape(result.risk_level.upper())} RISK</strong> level:</p>"
        f"<ul>"
        f"<li>File Name: {escape(file_name)}</li>"
        f"<li>Credibility Score: {result.credibility_score}/100</li>"
        f"<li>Red Flags Found: {flag_count}</li>"
        f"</ul>"
        f"<p><strong>Summary:</strong> {escape(result.summary or '')}</p>"
        f"<p>We recommend conducting additional verification checks "
        f"before proceeding with this candidate.</p>"
    )


def render_invitation_email(
    inviter_name: str, workspace_name: str, role: str, token: Optional[str]
) -> str:
    if token:
        link = f"{APP_BASE_URL}/auth?mode=signup&invitation={token}"
        action = "invited you to join"
        footer = "<p>This invitation expires in 7 days.</p>"
    else:
        link = f"{APP_BASE_URL}/dashboard"
        action = "added you to"
        footer = ""
    return (
        f"<p>{escape(inviter_name)} has {action} the <strong>{escape(workspace_name)}</strong> "
        f"workspace as a <strong>{escape(role)}</strong>.</p>"
        f'<p><a href="{link}">Open workspace</a></p>'
        f"{footer}"
    )


class NotificationDispatcher:
    def __init__(self, sender: Optional[EmailSender] = None):
        self.sender = sender or EmailSender()

    def notify_high_risk(self, profile: User, file_name: str, result: AnalysisResult) -> None:
        logger.info("Sending high-risk notification to %s for resume: %s", profile.email, file_name)
        try:
            self.sender.send(
                profile.email,
                f"High Risk Resume Alert: {file_name}",
                render_high_risk_email(profile.full_name, file_name, result),
            )
        except NotificationFailure as e:
            logger.warning("High-risk notification for %s not sent: %s", file_name, e)

    def notify_invitation(
        self,
        email: str,
        inviter_name: str,
        workspace_name: str,
        role: str,
        token: Optional[str] = None,
    ) -> None:
        if token:
            subject = f"You're invited to join {workspace_name}"
        else:
            subject = f"You've been added to {workspace_name}"
        logger.info("Sending workspace invitation to %s for %s", email, workspace_name)
        try:
            self.sender.send(
                email, subject, render_invitation_email(inviter_name, workspace_name, role, token)
            )
        except NotificationFailure as e:
            logger.warning("Invitation e-mail to %s not sent: %s", email, e)
