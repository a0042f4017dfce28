"""Transactional email content.

Messages are built here as ``SendEmail`` effects; delivery happens in the
``send_email`` Celery task so a slow or missing SMTP server never blocks a
request.
"""
from __future__ import annotations

from html import escape

from eventhub.core.config import settings
from eventhub.services.effects import SendEmail

_FOOTER = (
    '<hr style="margin: 20px 0; border: none; border-top: 1px solid #eee;">'
    '<p style="color: #999; font-size: 12px;">EventHub Team<br>'
    "This is an automated email, please do not reply.</p>"
)


def _button(url: str, label: str, color: str = "#007bff") -> str:
    return (
        f'<a href="{escape(url)}" style="background-color: {color}; color: white; '
        'padding: 12px 24px; text-decoration: none; border-radius: 4px; display: inline-block;">'
        f"{escape(label)}</a>"
    )


def _wrap(body: str) -> str:
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f"{body}{_FOOTER}</div>"
    )


def welcome_email(to: str, name: str, verification_token: str | None = None) -> SendEmail:
    body = f"<h2>Welcome to EventHub, {escape(name)}!</h2><p>Your account is ready.</p>"
    if verification_token:
        url = f"{settings.frontend_url}/verify-email?token={verification_token}"
        body += "<p>Please confirm your email address:</p>" + _button(url, "Verify email")
    return SendEmail(to=to, subject="Welcome to EventHub!", html=_wrap(body))


def password_reset_email(to: str, token: str) -> SendEmail:
    url = f"{settings.frontend_url}/reset-password?token={token}"
    body = (
        "<h2>Reset your EventHub password</h2>"
        "<p>You asked to reset your password. Use the link below to choose a new one:</p>"
        + _button(url, "Reset password")
        + '<p style="margin-top: 20px; color: #666;">If you did not ask for this, ignore this email.'
        "<br>The link expires in 1 hour.</p>"
    )
    return SendEmail(to=to, subject="EventHub - Reset Password", html=_wrap(body))


def event_approved_email(to: str, event_title: str) -> SendEmail:
    body = (
        '<h2 style="color: #28a745;">Event approved!</h2>'
        f"<p>Your event &quot;<strong>{escape(event_title)}</strong>&quot; has been approved "
        "and is now public.</p><p>Users can now view it and join.</p>"
        + _button(f"{settings.frontend_url}/dashboard", "Go to dashboard", "#28a745")
    )
    return SendEmail(to=to, subject="EventHub - Event Approved", html=_wrap(body))


def event_rejected_email(to: str, event_title: str, reason: str | None) -> SendEmail:
    body = (
        '<h2 style="color: #dc3545;">Event rejected</h2>'
        f"<p>Your event &quot;<strong>{escape(event_title)}</strong>&quot; has been rejected.</p>"
    )
    if reason:
        body += f"<p><strong>Reason:</strong> {escape(reason)}</p>"
    body += (
        "<p>You can edit the event and try again, or contact support for more details.</p>"
        + _button(f"{settings.frontend_url}/dashboard", "Go to dashboard")
    )
    return SendEmail(to=to, subject="EventHub - Event Rejected", html=_wrap(body))
