# Copyright (C) 2025 Global Digital Labs (gdlabs.io)
# SPDX-License-Identifier: LGPL-3.0-or-later
"""Email invitation channel using async SMTP.

This channel sends account invitations using aiosmtplib for async SMTP
communication, with plain text and HTML alternatives. Content is
available in French (default) and English.

Configuration comes from SMTPSettings (SMTP_* environment variables).
"""

import html
from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
from email.utils import make_msgid

import aiosmtplib

from src.core.config.settings import SMTPSettings
from src.infrastructure.notifications.channels.base import (
    BaseChannel,
    ChannelResult,
    ChannelType,
    InvitationPayload,
)

DEFAULT_LOCALE = "fr"

ROLE_LABELS: dict[str, dict[str, str]] = {
    "fr": {"student": "élève", "guardian": "parent", "teacher": "professeur", "staff": "personnel"},
    "en": {"student": "student", "guardian": "parent", "teacher": "teacher", "staff": "staff"},
}

TEMPLATES: dict[str, dict[str, str]] = {
    "fr": {
        "subject": "Activez votre compte {role} - {establishment}",
        "intro": "Un compte {role} a été créé pour vous sur l'espace de {establishment}.",
        "login": "Identifiant de connexion : {login}",
        "action": "Choisir mon mot de passe",
        "footer": "Ce lien est personnel et à usage unique.",
    },
    "en": {
        "subject": "Activate your {role} account - {establishment}",
        "intro": "A {role} account has been created for you at {establishment}.",
        "login": "Login: {login}",
        "action": "Choose my password",
        "footer": "This link is personal and can only be used once.",
    },
}


class EmailInvitationChannel(BaseChannel):
    """Invitation channel delivering through an SMTP server.

    Sends invitations via SMTP. The channel skips delivery when the SMTP
    settings are incomplete.
    """

    def __init__(self, settings: SMTPSettings) -> None:
        """Initialize the email channel.

        Args:
            settings: SMTP server configuration.
        """
        super().__init__()
        self._settings = settings

    @property
    def channel_type(self) -> ChannelType:
        """Return the channel type."""
        return ChannelType.EMAIL

    async def send(self, payload: InvitationPayload) -> ChannelResult:
        """Send an invitation email via SMTP.

        Args:
            payload: The invitation payload.

        Returns:
            ChannelResult with delivery status.
        """
        if not self._settings.is_configured:
            return self.create_skipped_result("SMTP configuration incomplete")

        if not payload.recipient_address:
            return self.create_skipped_result("No recipient email address")

        message = self.build_message(payload)

        try:
            await aiosmtplib.send(
                message,
                hostname=self._settings.host,
                port=self._settings.port,
                username=self._settings.username,
                password=self._settings.password.get_secret_value(),
                start_tls=self._settings.use_tls,
            )
        except (aiosmtplib.SMTPException, OSError) as e:
            self.logger.error(
                "Failed to send invitation to %s: %s",
                payload.recipient_address,
                str(e),
                exc_info=True,
            )
            return self.create_failure_result(
                f"SMTP error: {str(e)}",
                metadata={"recipient": payload.recipient_address},
            )

        self.logger.info(
            "Invitation sent to %s for %s",
            payload.recipient_address,
            payload.login_identifier,
        )
        return self.create_success_result(
            message_id=message["Message-ID"],
            metadata={"recipient": payload.recipient_address},
        )

    def build_message(self, payload: InvitationPayload) -> MIMEMultipart:
        """Build the MIME invitation message.

        Args:
            payload: Invitation payload.

        Returns:
            MIMEMultipart message ready to send.
        """
        locale = payload.locale if payload.locale in TEMPLATES else DEFAULT_LOCALE
        template = TEMPLATES[locale]
        role = ROLE_LABELS[locale].get(payload.role, payload.role)
        values = {
            "role": role,
            "establishment": payload.establishment_display_name,
            "login": payload.login_identifier,
        }

        message = MIMEMultipart("alternative")
        message["From"] = f"{self._settings.from_name} <{self._settings.from_email}>"
        message["To"] = payload.recipient_address
        message["Subject"] = template["subject"].format(**values)
        message["Message-ID"] = make_msgid()

        text_lines = [
            template["intro"].format(**values),
            "",
            template["login"].format(**values),
            "",
            f"{template['action']}: {payload.activation_link}",
            "",
            "---",
            template["footer"],
        ]
        message.attach(MIMEText("\n".join(text_lines), "plain", "utf-8"))

        escaped = {key: html.escape(value) for key, value in values.items()}
        intro = template["intro"].format(**escaped)
        login = template["login"].format(**escaped)
        action = html.escape(template["action"])
        footer = html.escape(template["footer"])
        link = html.escape(payload.activation_link, quote=True)
        html_content = f"""
<!DOCTYPE html>
<html>
<head><meta charset="utf-8"></head>
<body style="font-family: Arial, sans-serif; color: #1F2937;">
    <p>{intro}</p>
    <p><strong>{login}</strong></p>
    <div style="margin: 24px 0;">
        <a href="{link}"
           style="background-color: #4F46E5; color: white; padding: 12px 24px;
                  text-decoration: none; border-radius: 6px;">
            {action}
        </a>
    </div>
    <p style="font-size: 12px; color: #9CA3AF;">{footer}</p>
</body>
</html>
        """
        message.attach(MIMEText(html_content.strip(), "html", "utf-8"))

        return message
