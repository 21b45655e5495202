"""
邮件投递：SMTP 发送器、开发环境日志发送器与后台调度
"""
import asyncio
import html
from dataclasses import dataclass
from email.message import EmailMessage
from typing import Protocol
from urllib.parse import quote

import aiosmtplib

from ..config import Settings
from ..exceptions import ConfigurationError, ExternalServiceError
from ..logging.config import get_structured_logger
from ..monitoring import metrics_collector

logger = get_structured_logger(__name__)


@dataclass(frozen=True)
class OutgoingEmail:
    to: str
    subject: str
    html: str
    text: str


class EmailSender(Protocol):
    async def send(self, message: OutgoingEmail) -> None: ...


class SMTPEmailSender:
    """通过 aiosmtplib 发送 multipart 邮件"""

    def __init__(self, settings: Settings):
        self.settings = settings
        self.from_address = settings.email_from or f'"Feest App" <{settings.email_user or "no-reply@feest.app"}>'

    async def send(self, message: OutgoingEmail) -> None:
        msg = EmailMessage()
        msg["From"] = self.from_address
        msg["To"] = message.to
        msg["Subject"] = message.subject
        msg.set_content(message.text, charset="utf-8")
        msg.add_alternative(message.html, subtype="html", charset="utf-8")

        async with aiosmtplib.SMTP(
            hostname=self.settings.email_host,
            port=self.settings.email_port,
            start_tls=self.settings.email_use_tls,
            timeout=self.settings.email_timeout,
        ) as smtp:
            if self.settings.email_user and self.settings.email_pass:
                await smtp.login(self.settings.email_user, self.settings.email_pass)
            errors, response = await smtp.send_message(msg)
            if errors:
                raise aiosmtplib.SMTPRecipientsRefused(
                    [aiosmtplib.SMTPRecipientRefused(code, text, addr) for addr, (code, text) in errors.items()]
                )
        logger.debug("SMTP 响应", extra={"smtp_response": response})


class LoggingEmailSender:
    """开发环境使用：只记录日志，不实际发送"""

    async def send(self, message: OutgoingEmail) -> None:
        logger.info(
            "邮件（未发送，仅记录）",
            extra={"to": message.to, "subject": message.subject, "body": message.text},
        )


def build_email_sender(settings: Settings) -> EmailSender:
    """生产环境必须配置 SMTP；其余环境缺省时退回日志发送器"""
    if settings.email_host:
        return SMTPEmailSender(settings)
    if settings.is_production:
        raise ConfigurationError("EMAIL_HOST must be configured in production", "EMAIL_NOT_CONFIGURED")
    logger.warning("未配置 EMAIL_HOST，邮件仅写入日志")
    return LoggingEmailSender()


_BUTTON_STYLE = (
    "color: white; padding: 12px 24px; text-decoration: none; "
    "border-radius: 5px; display: inline-block;"
)


def _render(title: str, color: str, paragraphs: list[str], button: str, url: str, footer: str) -> str:
    body = "".join(f"<p>{p}</p>" for p in paragraphs)
    link = html.escape(url, quote=True)
    return (
        '<div style="font-family: Arial, sans-serif; max-width: 600px; margin: 0 auto;">'
        f'<h2 style="color: {color};">{title}</h2>'
        f"{body}"
        '<div style="text-align: center; margin: 30px 0;">'
        f'<a href="{link}" style="background-color: {color}; {_BUTTON_STYLE}">{button}</a>'
        "</div>"
        "<p>If the button doesn't work, copy and paste this link into your browser:</p>"
        f'<p style="word-break: break-all; color: #666;">{link}</p>'
        '<hr style="margin: 30px 0; border: none; border-top: 1px solid #eee;">'
        f'<p style="color: #666; font-size: 14px;">{footer}</p>'
        "</div>"
    )


class EmailDispatcher:
    """渲染认证邮件并交给发送器；后台任务失败只记录日志"""

    def __init__(self, sender: EmailSender, settings: Settings):
        self.sender = sender
        self.frontend_url = settings.frontend_url.rstrip("/")
        self._pending: set[asyncio.Task] = set()

    def verification_message(self, email: str, first_name: str, token: str) -> OutgoingEmail:
        url = f"{self.frontend_url}/verify-email?token={quote(token)}"
        name = html.escape(first_name)
        return OutgoingEmail(
            to=email,
            subject="Welcome to Feest - Verify Your Email",
            html=_render(
                f"Welcome to Feest, {name}!",
                "#4CAF50",
                [
                    "Thank you for joining our food sharing community. "
                    "To get started, please verify your email address.",
                    "This link will expire in 24 hours.",
                ],
                "Verify Email Address",
                url,
                "If you didn't create an account with Feest, please ignore this email.",
            ),
            text=(
                f"Welcome to Feest, {first_name}!\n\n"
                f"Verify your email address: {url}\n\n"
                "This link will expire in 24 hours."
            ),
        )

    def reset_password_message(self, email: str, first_name: str, token: str) -> OutgoingEmail:
        url = f"{self.frontend_url}/reset-password?token={quote(token)}"
        name = html.escape(first_name)
        return OutgoingEmail(
            to=email,
            subject="Feest - Reset Your Password",
            html=_render(
                "Reset Your Password",
                "#FF6B6B",
                [
                    f"Hi {name},",
                    "We received a request to reset your password for your Feest account.",
                    "This link will expire in 1 hour.",
                    "If you didn't request a password reset, please ignore this email. "
                    "Your password will remain unchanged.",
                ],
                "Reset Password",
                url,
                "For security reasons, this link can only be used once.",
            ),
            text=(
                f"Hi {first_name},\n\n"
                f"Reset your Feest password: {url}\n\n"
                "This link will expire in 1 hour."
            ),
        )

    async def _deliver(self, kind: str, message: OutgoingEmail) -> None:
        try:
            await self.sender.send(message)
        except Exception as e:
            metrics_collector.record_email(kind, "failure")
            logger.error("邮件发送失败", extra={"kind": kind, "error": str(e)})
            raise ExternalServiceError("Failed to send email", "EMAIL_DELIVERY_FAILED") from e
        metrics_collector.record_email(kind, "success")
        logger.info("邮件已发送", extra={"kind": kind})

    async def send_verification_email(self, email: str, first_name: str, token: str) -> None:
        """同步发送验证邮件，失败抛出 ExternalServiceError"""
        await self._deliver("verification", self.verification_message(email, first_name, token))

    async def send_reset_password_email(self, email: str, first_name: str, token: str) -> None:
        await self._deliver("password_reset", self.reset_password_message(email, first_name, token))

    def dispatch_verification_email(self, email: str, first_name: str, token: str) -> asyncio.Task:
        return self._spawn(self.send_verification_email(email, first_name, token))

    def dispatch_reset_password_email(self, email: str, first_name: str, token: str) -> asyncio.Task:
        return self._spawn(self.send_reset_password_email(email, first_name, token))

    def _spawn(self, coro) -> asyncio.Task:
        task = asyncio.create_task(self._background(coro))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @staticmethod
    async def _background(coro) -> None:
        try:
            await coro
        except ExternalServiceError:
            # 已在 _deliver 中记录
            pass

    @property
    def pending(self) -> int:
        return len(self._pending)

    async def drain(self) -> None:
        """等待所有后台发送完成"""
        while self._pending:
            await asyncio.gather(*list(self._pending))
