"""
Email Utilities
===============

Email sending for lifecycle notifications.
Supports both SMTP and mock mode for development.
"""

import os
import smtplib
import logging
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Dict, List, Optional, Sequence, Tuple

logger = logging.getLogger(__name__)


def get_email_config():
    """Get email configuration from environment variables."""
    return {
        "smtp_host": os.environ.get("SMTP_HOST", ""),
        "smtp_port": int(os.environ.get("SMTP_PORT", "587")),
        "smtp_user": os.environ.get("SMTP_USER", ""),
        "smtp_password": os.environ.get("SMTP_PASSWORD", ""),
        "smtp_from": os.environ.get("SMTP_FROM", "noreply@lexify.online"),
        "smtp_use_tls": os.environ.get("SMTP_USE_TLS", "true").lower() == "true",
        "app_url": os.environ.get("APP_URL", "http://localhost:3000"),
    }


def is_email_configured() -> bool:
    """Check if SMTP is properly configured."""
    config = get_email_config()
    return bool(config["smtp_host"] and config["smtp_user"] and config["smtp_password"])


def send_email(
    to: Sequence[str],
    subject: str,
    html_body: str,
    text_body: Optional[str] = None,
    bcc: Sequence[str] = (),
) -> bool:
    """
    Send an email to one or more recipients.

    Returns True if sent successfully, False otherwise.
    In development mode (SMTP not configured), logs the email instead.
    """
    config = get_email_config()
    recipients = [addr for addr in to if addr]
    if not recipients:
        logger.warning(f"No recipients for email: {subject}")
        return False

    if not is_email_configured():
        logger.info(f"[DEV MODE] Email would be sent to {', '.join(recipients)}: {subject}")
        logger.debug(f"[DEV MODE] Email body: {text_body or html_body[:200]}")
        return True  # Return True in dev mode to not block flow

    try:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = config["smtp_from"]
        msg["To"] = ", ".join(recipients)

        if text_body:
            msg.attach(MIMEText(text_body, "plain", "utf-8"))
        msg.attach(MIMEText(html_body, "html", "utf-8"))

        envelope = recipients + [addr for addr in bcc if addr and addr not in recipients]

        with smtplib.SMTP(config["smtp_host"], config["smtp_port"]) as server:
            if config["smtp_use_tls"]:
                server.starttls()
            server.login(config["smtp_user"], config["smtp_password"])
            server.sendmail(config["smtp_from"], envelope, msg.as_string())

        logger.info(f"Email sent successfully to {', '.join(recipients)}")
        return True

    except Exception as e:
        logger.error(f"Failed to send email to {', '.join(recipients)}: {e}")
        return False


# =============================================================================
# TEMPLATES
# =============================================================================

# kind -> (subject, paragraphs); both formatted with the notification data
TEMPLATES: Dict[str, Tuple[str, List[str]]] = {
    "purchaser_no_offers": (
        "LEXIFY - No offers received for {request_title}",
        [
            "Unfortunately your LEXIFY request \"{request_title}\" did not receive any offers "
            "before the offer deadline.",
            "The request has been closed. You are welcome to post a new request at any time.",
        ],
    ),
    "purchaser_offers_await_selection": (
        "LEXIFY - Offers await your selection for {request_title}",
        [
            "The offer deadline for your LEXIFY request \"{request_title}\" has passed and "
            "offers are waiting for your review.",
            "Please select the winning offer by {accept_deadline}. If no offer is selected by then "
            "the request will expire without a contract.",
        ],
    ),
    "purchaser_all_offers_over_max": (
        "LEXIFY - All offers exceed your maximum price for {request_title}",
        [
            "All offers received for your LEXIFY request \"{request_title}\" exceed the maximum "
            "price you set.",
            "You may still approve one of the offers by {accept_deadline}. Otherwise the request "
            "will expire without a contract.",
        ],
    ),
    "purchaser_contract_formed": (
        "LEXIFY - Contract formed for {request_title}",
        [
            "A LEXIFY contract has been formed for your request \"{request_title}\".",
            "The contract documents will be sent to you separately.",
        ],
    ),
    "winner_contract_formed": (
        "LEXIFY - Your offer won: {offer_title}",
        [
            "Congratulations! Your offer \"{offer_title}\" has been selected and a LEXIFY contract "
            "has been formed.",
            "The contract documents will be sent to you separately.",
        ],
    ),
    "loser_not_selected": (
        "LEXIFY - Offer not selected: {offer_title}",
        [
            "Thank you for your offer \"{offer_title}\". Another offer was selected this time.",
        ],
    ),
    "provider_conflict_check": (
        "LEXIFY - Conflict check required: {offer_title}",
        [
            "Your offer \"{offer_title}\" has been selected, subject to a conflict of interest check.",
            "The LEXIFY team will confirm the outcome of the check before the contract is formed.",
        ],
    ),
    "purchaser_conflict_denied_remaining": (
        "LEXIFY - Please select another offer for {request_title}",
        [
            "The provider you selected for \"{request_title}\" could not pass the conflict of "
            "interest check.",
            "Please select another offer by {accept_deadline}.",
        ],
    ),
    "purchaser_conflict_denied_none": (
        "LEXIFY - No offers remaining for {request_title}",
        [
            "The provider you selected for \"{request_title}\" could not pass the conflict of "
            "interest check, and no other offers remain.",
            "The request will expire without a contract.",
        ],
    ),
    "contract_package": (
        "LEXIFY Contract - {request_title}",
        [
            "Please find below the details of your new LEXIFY contract.",
            "Contract date: {contract_date}",
            "Contract price: {contract_price} {currency} ({payment_rate})",
            "Provider: {provider_company} - {provider_contact} <{provider_email}>",
            "Purchaser: {purchaser_company} - {purchaser_contact} <{purchaser_email}>",
        ],
    ),
}

TEAM_REQUEST_PARAGRAPHS = [
    "Team Composition Request",
    "The client has requested that the following legal professional(s) be included in the "
    "project team: {team_request}",
    "Please confirm team availability when discussing engagement details with the client.",
]


class _SafeDict(dict):
    def __missing__(self, key):
        return ""


def render_email(kind: str, data: Dict[str, object]) -> Tuple[str, str, str]:
    """
    Render (subject, html_body, text_body) for a notification kind.

    Missing placeholders render as empty strings.
    """
    if kind not in TEMPLATES:
        raise KeyError(f"Unknown email template: {kind}")

    subject_tpl, paragraph_tpls = TEMPLATES[kind]
    if kind == "winner_contract_formed" and data.get("team_request"):
        paragraph_tpls = paragraph_tpls + TEAM_REQUEST_PARAGRAPHS

    values = _SafeDict({k: "" if v is None else v for k, v in data.items()})
    subject = subject_tpl.format_map(values).strip()
    paragraphs = [p.format_map(values) for p in paragraph_tpls]

    html_body = (
        '<div style="font-family:Arial,Helvetica,sans-serif">'
        + "".join(f"<p>{escape(p)}</p>" for p in paragraphs)
        + "<p>LEXIFY</p></div>"
    )
    text_body = "\n\n".join(paragraphs) + "\n\nLEXIFY\n"
    return subject, html_body, text_body
