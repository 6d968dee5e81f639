"""Email service using the Resend API"""
import requests
from typing import Optional
from app.config import settings
import logging

logger = logging.getLogger(__name__)

class EmailService:
    """Email service for sending emails via Resend"""

    def __init__(self):
        self.api_key = settings.RESEND_API_KEY
        self.api_url = "https://api.resend.com/emails"
        self.sender_email = settings.RESEND_FROM_EMAIL
        self.sender_name = "Product Label Checker"

    def send_email(self, to_email: str, subject: str, html_body: str, text_body: Optional[str] = None) -> bool:
        """
        Send an email using the Resend API

        Args:
            to_email: Recipient email address
            subject: Email subject
            html_body: HTML email body
            text_body: Plain text email body (optional)

        Returns:
            bool: True if email sent successfully, False otherwise
        """
        if not self.api_key:
            logger.warning("RESEND_API_KEY not configured. Email not sent.")
            return False

        payload = {
            "from": f"{self.sender_name} <{self.sender_email}>",
            "to": [to_email],
            "subject": subject,
            "html": html_body,
        }

        if text_body:
            payload["text"] = text_body

        try:
            response = requests.post(
                self.api_url,
                json=payload,
                headers={"Authorization": f"Bearer {self.api_key}"},
                timeout=10,
            )
            response.raise_for_status()

            result = response.json()

            if result.get("id"):
                logger.info(f"Email sent successfully to {to_email}")
                return True
            else:
                logger.error(f"Failed to send email to {to_email}: {result}")
                return False

        except requests.exceptions.RequestException as e:
            logger.error(f"Error sending email via Resend: {e}")
            return False

    def send_password_reset_email(self, to_email: str, reset_url: str, name: Optional[str] = None) -> bool:
        """
        Send password reset email

        Args:
            to_email: User's email address
            reset_url: Password reset URL with token
            name: User's display name

        Returns:
            bool: True if email sent successfully
        """
        subject = "Reset your Product Label Checker password"
        greeting = name or "there"

        html_body = self._wrap_html(
            title="Password Reset Request",
            greeting=greeting,
            paragraphs=[
                "We received a request to reset the password for your Product Label Checker account. "
                "Click the button below to choose a new password.",
            ],
            cta_label="RESET PASSWORD",
            cta_url=reset_url,
            notice="This link will expire in 1 hour. If you didn't request a password reset, you can ignore this email.",
        )
        text_body = f"""
Product Label Checker - Password Reset Request

Hello {greeting},

We received a request to reset the password for your Product Label Checker account.

To reset your password, open the link below:

{reset_url}

This link will expire in 1 hour. If you didn't request a password reset, you can ignore this email.
"""
        return self.send_email(to_email, subject, html_body, text_body)

    def send_invitation_email(
        self,
        to_email: str,
        invite_url: str,
        account_name: str,
        inviter_name: Optional[str],
        role: str,
    ) -> bool:
        """Send a team invitation"""
        inviter = inviter_name or "A teammate"
        subject = f"{inviter} invited you to join {account_name} on Product Label Checker"

        html_body = self._wrap_html(
            title="You're invited",
            greeting="there",
            paragraphs=[
                f"<strong>{inviter}</strong> has invited you to join <strong>{account_name}</strong> "
                f"as a <strong>{role.title()}</strong>.",
                "Accept the invitation to create your login and start reviewing label compliance reports.",
            ],
            cta_label="ACCEPT INVITATION",
            cta_url=invite_url,
            notice="This invitation expires in 7 days.",
        )
        text_body = f"""
Product Label Checker - Team Invitation

{inviter} has invited you to join {account_name} as a {role.title()}.

Accept the invitation here:

{invite_url}

This invitation expires in 7 days.
"""
        return self.send_email(to_email, subject, html_body, text_body)

    def _wrap_html(self, title: str, greeting: str, paragraphs: list, cta_label: str, cta_url: str, notice: str) -> str:
        """Shared HTML layout for transactional emails"""
        body = "".join(
            f'<p style="margin: 0 0 20px; font-size: 15px; line-height: 1.6; color: #374151;">{p}</p>'
            for p in paragraphs
        )
        return f"""
<!DOCTYPE html>
<html lang="en">
<head>
    <meta charset="UTF-8">
    <meta name="viewport" content="width=device-width, initial-scale=1.0">
    <title>{title} - Product Label Checker</title>
</head>
<body style="margin: 0; padding: 0; font-family: -apple-system, BlinkMacSystemFont, 'Segoe UI', sans-serif; background-color: #F3F4F6;">
    <table width="100%" cellpadding="0" cellspacing="0" style="padding: 40px 20px;">
        <tr>
            <td align="center">
                <table width="600" cellpadding="0" cellspacing="0" style="background-color: #FFFFFF; border-radius: 12px; overflow: hidden;">
                    <tr>
                        <td style="padding: 32px 40px; background-color: #111827; text-align: center;">
                            <h1 style="margin: 0; font-size: 24px; color: #FFFFFF;">Product Label Checker</h1>
                        </td>
                    </tr>
                    <tr>
                        <td style="padding: 40px;">
                            <h2 style="margin: 0 0 20px; font-size: 20px; color: #111827;">{title}</h2>
                            <p style="margin: 0 0 20px; font-size: 15px; color: #374151;">Hello {greeting},</p>
                            {body}
                            <table width="100%" cellpadding="0" cellspacing="0" style="margin: 30px 0;">
                                <tr>
                                    <td align="center">
                                        <a href="{cta_url}" style="display: inline-block; padding: 14px 36px; background-color: #2563EB; color: #FFFFFF; text-decoration: none; font-weight: 700; font-size: 14px; border-radius: 6px;">
                                            {cta_label}
                                        </a>
                                    </td>
                                </tr>
                            </table>
                            <p style="margin: 0 0 10px; font-size: 13px; color: #6B7280;">Or copy and paste this link into your browser:</p>
                            <p style="margin: 0 0 20px; font-size: 12px; word-break: break-all;"><a href="{cta_url}" style="color: #2563EB;">{cta_url}</a></p>
                            <p style="margin: 20px 0 0; font-size: 13px; color: #6B7280;">{notice}</p>
                        </td>
                    </tr>
                    <tr>
                        <td style="padding: 24px 40px; border-top: 1px solid #E5E7EB; text-align: center;">
                            <p style="margin: 0; font-size: 11px; color: #9CA3AF;">This is an automated message. Please do not reply to this email.</p>
                        </td>
                    </tr>
                </table>
            </td>
        </tr>
    </table>
</body>
</html>
"""

# Singleton instance
email_service = EmailService()
