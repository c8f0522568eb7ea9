import logging
import smtplib
import ssl
from email.mime.text import MIMEText
from email.mime.multipart import MIMEMultipart
from html import escape
from typing import Any, Dict, Mapping, Protocol

from dosewatch.core.config import settings

logger = logging.getLogger(__name__)


class NotificationGateway(Protocol):
    """Anything able to deliver a reminder notification.

    ``send`` returns True only when the message was handed to the transport.
    Implementations may also raise; callers treat both as a delivery failure.
    """

    def send(self, recipient: str, subject: str, payload: Mapping[str, Any]) -> bool:
        ...


class EmailService:
    def __init__(self):
        # Validate required email configuration
        if not settings.SMTP_SERVER:
            raise ValueError("SMTP_SERVER is required but not configured")
        if not settings.SMTP_PORT:
            raise ValueError("SMTP_PORT is required but not configured")
        if not settings.FROM_EMAIL:
            raise ValueError("FROM_EMAIL is required but not configured")

        self.smtp_server = settings.SMTP_SERVER
        self.smtp_port = int(settings.SMTP_PORT)
        self.smtp_username = settings.SMTP_USERNAME
        self.smtp_password = settings.SMTP_PASSWORD
        self.from_email = settings.FROM_EMAIL
        self.timeout = settings.SMTP_TIMEOUT_SECONDS

    def send(self, recipient: str, subject: str, payload: Mapping[str, Any]) -> bool:
        """
        Send a reminder email. Returns False on any transport error.
        """
        msg = self.build_message(recipient, subject, payload)
        return self._send_email(msg, recipient)

    def build_message(self, recipient: str, subject: str, payload: Mapping[str, Any]) -> MIMEMultipart:
        msg = MIMEMultipart("alternative")
        msg["Subject"] = subject
        msg["From"] = self.from_email
        msg["To"] = recipient

        msg.attach(MIMEText(_render_reminder_text(payload), "plain", "utf-8"))
        msg.attach(MIMEText(_render_reminder_html(payload), "html", "utf-8"))
        return msg

    def _send_email(self, msg: MIMEMultipart, to_email: str) -> bool:
        """Send email using SMTP"""
        try:
            # Zoho requires the From header to match the authenticated user
            if self.smtp_username and "zoho" in self.smtp_server.lower() and self.from_email != self.smtp_username:
                logger.warning(
                    "⚠️ [Email] FROM_EMAIL (%s) does not match SMTP_USERNAME; using the SMTP user as sender",
                    self.from_email,
                )
                msg.replace_header("From", self.smtp_username)

            context = ssl.create_default_context()
            if self.smtp_port == 465:
                # SSL connection for port 465
                with smtplib.SMTP_SSL(self.smtp_server, self.smtp_port, context=context, timeout=self.timeout) as server:
                    if self.smtp_username and self.smtp_password:
                        server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)
            else:
                # STARTTLS for port 587
                with smtplib.SMTP(self.smtp_server, self.smtp_port, timeout=self.timeout) as server:
                    server.starttls(context=context)
                    if self.smtp_username and self.smtp_password:
                        server.login(self.smtp_username, self.smtp_password)
                    server.send_message(msg)

            logger.info("✅ [Email] Sent '%s' to %s", msg["Subject"], to_email)
            return True

        except smtplib.SMTPException as e:
            logger.error("❌ [Email] SMTP error sending to %s: %s", to_email, e)
            if "553" in str(e) or "relay" in str(e).lower():
                logger.error("💡 [Email] Set FROM_EMAIL = SMTP_USERNAME for relaying SMTP providers")
            return False
        except OSError as e:
            logger.error("❌ [Email] Could not reach %s:%s: %s", self.smtp_server, self.smtp_port, e)
            return False


def _reminder_rows(payload: Mapping[str, Any]) -> Dict[str, str]:
    rows: Dict[str, str] = {}
    if payload.get("descripcion"):
        rows["Descripción"] = str(payload["descripcion"])
    horarios = payload.get("horarios") or []
    if horarios:
        rows["Fecha y hora"] = ", ".join(str(h) for h in horarios)
    if payload.get("dosis"):
        rows["Dosis"] = f"{payload['dosis']} {payload.get('unidad') or ''}".strip()
    if payload.get("cantidadDisponible") is not None:
        rows["Dosis restantes"] = str(payload["cantidadDisponible"])
    return rows


def _render_reminder_text(payload: Mapping[str, Any]) -> str:
    lines = [
        f"Hola {payload.get('nombrePersona') or 'Paciente'},",
        "",
        f"Recordatorio: {payload.get('titulo') or 'Recordatorio'}",
    ]
    lines.extend(f"{label}: {value}" for label, value in _reminder_rows(payload).items())
    lines.extend(["", "DoseWatch"])
    return "\n".join(lines)


def _render_reminder_html(payload: Mapping[str, Any]) -> str:
    rows = "".join(
        f"<tr><td><strong>{escape(label)}</strong></td><td>{escape(value)}</td></tr>"
        for label, value in _reminder_rows(payload).items()
    )
    return f"""
        <!DOCTYPE html>
        <html>
        <head>
            <meta charset="utf-8">
            <style>
                body {{ font-family: Arial, sans-serif; line-height: 1.6; color: #333; }}
                .container {{ max-width: 600px; margin: 0 auto; padding: 20px; }}
                .header {{ background-color: #2e86c1; color: white; padding: 20px; text-align: center; }}
                .content {{ padding: 30px; background-color: #f9f9f9; }}
            </style>
        </head>
        <body>
            <div class="container">
                <div class="header"><h1>DoseWatch</h1></div>
                <div class="content">
                    <p>Hola {escape(str(payload.get('nombrePersona') or 'Paciente'))},</p>
                    <h2>{escape(str(payload.get('titulo') or 'Recordatorio'))}</h2>
                    <table>{rows}</table>
                </div>
            </div>
        </body>
        </html>
        """
