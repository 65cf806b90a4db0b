"""
Envio de e-mails transacionais (reset de senha, senha alterada).
"""

from email.mime.multipart import MIMEMultipart
from email.mime.text import MIMEText
import smtplib
import ssl
import asyncio
import logging

from storefront.core.config import settings


logger = logging.getLogger(__name__)


def _build_password_reset_email(reset_url: str) -> tuple[str, str, str]:
    subject = f"[{settings.EMAIL_FROM_NAME}] Redefinição de senha"
    minutes = settings.PASSWORD_RESET_EXPIRE_MINUTES
    text = (
        "Olá!\n\n"
        "Recebemos um pedido para redefinir a sua senha. Use o link abaixo:\n"
        f"{reset_url}\n\n"
        f"O link vale por {minutes} minutos e só pode ser usado uma vez.\n"
        "Se você não pediu a redefinição, ignore este e-mail."
    )
    html = f"""
    <div style="font-family: system-ui, -apple-system, Segoe UI, Roboto, sans-serif; color:#111;">
      <h2>Redefinição de senha</h2>
      <p>Recebemos um pedido para redefinir a sua senha.</p>
      <p>
        <a href="{reset_url}" style="display:inline-block;padding:12px 16px;background:#15803d;color:#fff;text-decoration:none;border-radius:8px;">Redefinir senha</a>
      </p>
      <p>O link vale por {minutes} minutos e só pode ser usado uma vez.</p>
      <p><a href="{reset_url}">{reset_url}</a></p>
      <hr style="margin:20px 0;border:none;border-top:1px solid #e5e7eb;" />
      <p style="font-size:12px;color:#6b7280;">Se você não pediu a redefinição, ignore este e-mail.</p>
    </div>
    """
    return subject, text, html


def _build_password_changed_email(full_name: str) -> tuple[str, str, str]:
    subject = f"[{settings.EMAIL_FROM_NAME}] Sua senha foi alterada"
    text = (
        f"Olá, {full_name}!\n\n"
        "A senha da sua conta acabou de ser alterada.\n"
        "Se não foi você, entre em contato com o suporte imediatamente."
    )
    html = f"""
    <div style="font-family: system-ui, -apple-system, Segoe UI, Roboto, sans-serif; color:#111;">
      <h2>Senha alterada</h2>
      <p>Olá, {full_name}!</p>
      <p>A senha da sua conta acabou de ser alterada.</p>
      <p>Se não foi você, entre em contato com o suporte imediatamente.</p>
    </div>
    """
    return subject, text, html


def _send_email_sync(to_email: str, subject: str, text: str, html: str) -> None:
    """Envio SMTP síncrono (roda no thread pool)."""
    if not settings.SMTP_HOST:
        # dev: sem SMTP configurado, só loga
        logger.info("[DEV] e-mail não enviado (SMTP não configurado) -> assunto: %s", subject)
        return

    msg = MIMEMultipart("alternative")
    msg["Subject"] = subject
    msg["From"] = f"{settings.EMAIL_FROM_NAME} <{settings.EMAIL_FROM_ADDRESS}>"
    msg["To"] = to_email
    msg.attach(MIMEText(text, "plain", "utf-8"))
    msg.attach(MIMEText(html, "html", "utf-8"))

    context = ssl.create_default_context()
    if settings.SMTP_USE_SSL:
        with smtplib.SMTP_SSL(settings.SMTP_HOST, settings.SMTP_PORT, context=context) as server:
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.sendmail(settings.EMAIL_FROM_ADDRESS, [to_email], msg.as_string())
    else:
        with smtplib.SMTP(settings.SMTP_HOST, settings.SMTP_PORT) as server:
            if settings.SMTP_USE_TLS:
                server.starttls(context=context)
            if settings.SMTP_USERNAME and settings.SMTP_PASSWORD:
                server.login(settings.SMTP_USERNAME, settings.SMTP_PASSWORD)
            server.sendmail(settings.EMAIL_FROM_ADDRESS, [to_email], msg.as_string())


async def _send(to_email: str, subject: str, text: str, html: str) -> None:
    # fire-and-forget: falha de envio é logada e nunca derruba a operação principal
    loop = asyncio.get_running_loop()
    try:
        await loop.run_in_executor(None, _send_email_sync, to_email, subject, text, html)
    except (smtplib.SMTPException, OSError):
        logger.exception("Falha ao enviar e-mail '%s'", subject)


async def send_password_reset_email(to_email: str, token: str) -> None:
    reset_url = f"{settings.FRONTEND_BASE_URL.rstrip('/')}/reset-password?token={token}"
    await _send(to_email, *_build_password_reset_email(reset_url))


async def send_password_changed_email(to_email: str, full_name: str) -> None:
    await _send(to_email, *_build_password_changed_email(full_name))
