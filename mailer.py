from __future__ import annotations

import logging
import smtplib
from email.message import EmailMessage
from pathlib import Path
from typing import TYPE_CHECKING, Optional, Protocol

from jinja2 import Environment, FileSystemLoader, select_autoescape

from config import get_settings

if TYPE_CHECKING:  # pragma: no cover
    from services import ReportSummary

logger = logging.getLogger(__name__)

TEMPLATES_DIR = Path(__file__).resolve().parent / "templates"


class Mailer(Protocol):
    def send(self, to: str, subject: str, text_body: str, html_body: str) -> bool: ...


def format_currency(cents: int) -> str:
    return f"{cents / 100:,.2f}"


def _environment() -> Environment:
    env = Environment(
        loader=FileSystemLoader(str(TEMPLATES_DIR)),
        autoescape=select_autoescape(enabled_extensions=("html",)),
        trim_blocks=True,
        lstrip_blocks=True,
    )
    env.filters["currency"] = format_currency
    return env


templates = _environment()


def render_report_email(
    username: str, summary: "ReportSummary", frequency: str
) -> tuple[str, str, str]:
    frequency_label = frequency.replace("_", " ").title()
    context = {
        "username": username,
        "summary": summary,
        "frequency_label": frequency_label,
    }
    subject = f"{frequency_label} Financial Report - {summary.period}"
    text_body = templates.get_template("report_email.txt").render(context)
    html_body = templates.get_template("report_email.html").render(context)
    return subject, text_body, html_body


class SmtpMailer:
    def __init__(
        self,
        host: Optional[str] = None,
        port: Optional[int] = None,
        *,
        username: Optional[str] = None,
        password: Optional[str] = None,
        use_tls: Optional[bool] = None,
        timeout_secs: Optional[float] = None,
        sender: Optional[str] = None,
    ) -> None:
        settings = get_settings()
        self.host = host or settings.smtp_host
        self.port = port or settings.smtp_port
        self.username = username or settings.smtp_username
        self.password = password or settings.smtp_password
        self.use_tls = settings.smtp_use_tls if use_tls is None else use_tls
        self.timeout_secs = timeout_secs or settings.smtp_timeout_secs
        self.sender = sender or settings.mail_from

    def _build_message(
        self, to: str, subject: str, text_body: str, html_body: str
    ) -> EmailMessage:
        message = EmailMessage()
        message["From"] = self.sender
        message["To"] = to
        message["Subject"] = subject
        message.set_content(text_body)
        message.add_alternative(html_body, subtype="html")
        return message

    def send(self, to: str, subject: str, text_body: str, html_body: str) -> bool:
        message = self._build_message(to, subject, text_body, html_body)
        try:
            with smtplib.SMTP(self.host, self.port, timeout=self.timeout_secs) as smtp:
                if self.use_tls:
                    smtp.starttls()
                if self.username and self.password:
                    smtp.login(self.username, self.password)
                smtp.send_message(message)
        except (smtplib.SMTPException, OSError) as exc:
            logger.warning(f"mailer: send failed to={to} error={exc}")
            return False
        logger.info(f"mailer: sent to={to} subject={subject!r}")
        return True
