import html as html_lib
import logging
from typing import Optional
import resend
from app.core.config import settings

logger = logging.getLogger(__name__)

TEMPLATES = {
    "admitted": (
        "You're in! Welcome to the beta",
        "<h2>Welcome aboard, {name}</h2>"
        "<p>Your application was approved and your beta access is active.</p>"
        "<p>You can invite friends with your personal referral code <strong>{referral_code}</strong>.</p>",
    ),
    "waitlisted": (
        "You're on the waitlist",
        "<h2>Thanks for applying, {name}</h2>"
        "<p>The beta is full right now. You're on the waitlist and we'll email you as soon as a spot opens.</p>",
    ),
    "rejected": (
        "About your beta application",
        "<h2>Hi {name}</h2><p>We weren't able to offer you a beta spot this time.</p>",
    ),
    "referral_reward": (
        "You earned a bonus invite",
        "<h2>Nice work, {name}</h2><p>Your referrals earned you an extra invite. Share it from your invites page.</p>",
    ),
    "invite_redeemed": (
        "Someone used your invite",
        "<h2>Hi {name}</h2><p>One of your invite codes was just redeemed.</p>",
    ),
}


class EmailService:
    def __init__(self):
        resend.api_key = settings.RESEND_API_KEY
        self.sender = getattr(settings, "EMAIL_FROM", "Beta Team <noreply@example.com>")

    @property
    def enabled(self) -> bool:
        return bool(settings.EMAIL_ENABLED and settings.RESEND_API_KEY)

    def send_event(self, to: str, event_type: str, name: str, referral_code: Optional[str] = None) -> bool:
        template = TEMPLATES.get(event_type)
        if template is None:
            logger.warning(f"No email template for event {event_type}")
            return False
        subject, body = template
        html = (
            "<div style='font-family: Inter, Arial, sans-serif; line-height:1.6;'>"
            + body.format(name=html_lib.escape(name or ""), referral_code=html_lib.escape(referral_code or ""))
            + "</div>"
        )
        if not self.enabled:
            logger.info(f"Email disabled, skipping '{event_type}' email")
            return False
        try:
            resend.Emails.send({
                "from": self.sender,
                "to": [to],
                "subject": subject,
                "html": html,
            })
            return True
        except Exception as e:
            logger.error(f"Email send failed for event {event_type}: {e}")
            return False
