import logging
import smtplib
import ssl
from dataclasses import dataclass
from datetime import date, datetime, timezone
from decimal import Decimal
from email.message import EmailMessage
from email.utils import formataddr
from pathlib import Path
from typing import Iterable, List, Optional, Tuple

import httpx

from ..config import settings

logger = logging.getLogger(__name__)

MAX_SUBJECT_PREVIEW = 24
ORGANISATION = "JMB Idaman Kota Puteri"


@dataclass
class SendResult:
    backend: str
    status_code: Optional[int]
    message_id: Optional[str]
    error: Optional[str]

    @property
    def ok(self) -> bool:
        return self.error is None


def _mask_email(value: str) -> str:
    if "@" not in value:
        return "***"
    name, domain = value.split("@", 1)
    if len(name) <= 2:
        masked = f"{name[:1]}***"
    else:
        masked = f"{name[0]}***{name[-1]}"
    return f"{masked}@{domain}"


def _mask_subject(subject: str) -> str:
    if len(subject) <= MAX_SUBJECT_PREVIEW:
        return subject
    return f"{subject[:MAX_SUBJECT_PREVIEW]}... (len={len(subject)})"


def _normalize_recipients(recipients: Iterable[str]) -> List[str]:
    normalized: List[str] = []
    seen = set()
    for email in recipients:
        cleaned = (email or "").strip()
        if not cleaned or cleaned.lower() in seen:
            continue
        seen.add(cleaned.lower())
        normalized.append(cleaned)
    return normalized


def _resolve_sender() -> Tuple[str, str]:
    from_address = settings.email_from_address or "noreply@idamankotaputeri.my"
    display_name = settings.email_from_name or ORGANISATION
    return str(from_address), display_name


def _backend_name() -> str:
    return (settings.email_backend or "local").strip().strip("'\"").lower()


def _write_local_email(subject: str, html: str, recipients: List[str]) -> SendResult:
    timestamp = datetime.now(timezone.utc).strftime("%Y%m%d%H%M%S%f")
    safe_subject = "".join(ch for ch in subject if ch.isalnum() or ch in (" ", "_", "-")).strip() or "email"
    output_dir = Path(settings.email_output_dir)
    output_dir.mkdir(parents=True, exist_ok=True)
    path = output_dir / f"{timestamp}_{safe_subject.replace(' ', '_')[:60]}.html"
    path.write_text(f"<!-- Subject: {subject} -->\n<!-- To: {', '.join(recipients)} -->\n{html}", encoding="utf-8")
    logger.info("[LOCAL EMAIL] %s", path)
    return SendResult(backend="local", status_code=200, message_id=path.name, error=None)


def _resend_key_configured() -> bool:
    key = settings.resend_api_key or ""
    return bool(key) and not key.startswith("re_123")


def _send_via_resend(subject: str, html: str, recipients: List[str]) -> SendResult:
    if not _resend_key_configured():
        logger.info("Resend API key missing or placeholder; skipping email (subject=%s).", _mask_subject(subject))
        return SendResult(backend="resend", status_code=None, message_id=None, error="Resend API key not configured.")

    from_address, display_name = _resolve_sender()
    payload = {
        "from": formataddr((display_name, from_address)),
        "to": recipients,
        "subject": subject,
        "html": html,
    }
    response = httpx.post(
        settings.resend_api_url,
        json=payload,
        headers={"Authorization": f"Bearer {settings.resend_api_key}"},
        timeout=10.0,
    )
    if response.status_code >= 400:
        logger.error("Resend rejected email (status=%s body=%s).", response.status_code, response.text[:200])
        return SendResult(backend="resend", status_code=response.status_code, message_id=None, error=response.text)
    message_id = response.json().get("id")
    logger.info("Sent email via Resend to %d recipients (id=%s).", len(recipients), message_id)
    return SendResult(backend="resend", status_code=response.status_code, message_id=message_id, error=None)


def _send_via_smtp(subject: str, html: str, recipients: List[str]) -> SendResult:
    if not settings.email_host:
        raise RuntimeError("SMTP backend requires EMAIL_HOST.")
    from_address, display_name = _resolve_sender()

    message = EmailMessage()
    message["Subject"] = subject
    message["From"] = formataddr((display_name, from_address))
    message["To"] = ", ".join(recipients)
    message.set_content("Sila lihat versi HTML e-mel ini.")
    message.add_alternative(html, subtype="html")

    context = ssl.create_default_context()
    with smtplib.SMTP(settings.email_host, settings.email_port) as connection:
        connection.ehlo()
        if settings.email_use_tls:
            connection.starttls(context=context)
            connection.ehlo()
        if settings.email_host_user and settings.email_host_password:
            connection.login(settings.email_host_user, settings.email_host_password)
        connection.send_message(message)
    logger.info("Sent email via SMTP to %d recipients.", len(recipients))
    return SendResult(backend="smtp", status_code=250, message_id=None, error=None)


def send_email(to: Iterable[str] | str, subject: str, html: str) -> SendResult:
    """Send an email through the configured backend.

    Never raises: delivery problems are logged and reported in the result, so a
    mail outage cannot block the billing or payment action that triggered it.
    """
    recipients = _normalize_recipients([to] if isinstance(to, str) else to)
    backend = _backend_name()
    if not recipients:
        logger.info("Email dispatch skipped: no recipients (subject=%s).", _mask_subject(subject))
        return SendResult(backend=backend, status_code=None, message_id=None, error="No recipients provided.")

    logger.info(
        "Dispatching email backend=%s to=%s subject=%s",
        backend,
        [_mask_email(addr) for addr in recipients[:3]],
        _mask_subject(subject),
    )
    try:
        if backend == "resend":
            return _send_via_resend(subject, html, recipients)
        if backend == "smtp":
            return _send_via_smtp(subject, html, recipients)
        if backend != "local":
            logger.warning("Unknown EMAIL_BACKEND '%s'. Defaulting to local stub.", backend)
        return _write_local_email(subject, html, recipients)
    except Exception as exc:
        logger.exception("Email dispatch failed for backend=%s.", backend)
        return SendResult(backend=backend, status_code=None, message_id=None, error=str(exc))


def _money(amount) -> str:
    return f"{Decimal(str(amount)):.2f}"


def _wrap(heading: str, *paragraphs: str) -> str:
    body = "\n".join(paragraphs)
    return (
        f"<h1>{heading}</h1>\n<p>Salam Sejahtera,</p>\n{body}\n"
        f"<p>Terima kasih.</p>\n<p><strong>{ORGANISATION}</strong></p>"
    )


def bill_created_email(unit_number: str, amount, month: int, year: int) -> Tuple[str, str]:
    subject = f"Invois Baharu - Unit {unit_number} ({month}/{year})"
    html = _wrap(
        "Invois Baharu Dicipta",
        f"<p>Invois baharu telah dijana untuk unit <strong>{unit_number}</strong>.</p>",
        f"<ul><li>Bulan: {month}/{year}</li><li>Jumlah: RM {_money(amount)}</li></ul>",
        "<p>Sila log masuk ke portal penduduk untuk membuat pembayaran.</p>",
    )
    return subject, html


def payment_reminder_email(unit_number: str, amount, month: int, year: int) -> Tuple[str, str]:
    subject = f"Peringatan Pembayaran - Unit {unit_number}"
    html = _wrap(
        "Peringatan Pembayaran",
        f"<p>Bil unit <strong>{unit_number}</strong> bagi bulan {month}/{year} masih belum dijelaskan.</p>",
        f"<p>Baki tertunggak: <strong>RM {_money(amount)}</strong></p>",
        "<p>Sila jelaskan bayaran sebelum akhir bulan ini.</p>",
    )
    return subject, html


def complaint_status_email(complaint_id: int, title: str, status: str, remarks: Optional[str] = None) -> Tuple[str, str]:
    subject = f"Kemaskini Status Aduan - {title}"
    paragraphs = [
        f"<p>Status aduan anda (ID: <strong>{complaint_id}</strong>) telah dikemaskini kepada <strong>{status}</strong>.</p>"
    ]
    if remarks:
        paragraphs.append(f"<p>Catatan: {remarks}</p>")
    paragraphs.append("<p>Sila log masuk ke portal untuk maklumat lanjut.</p>")
    return subject, _wrap("Status Aduan Dikemaskini", *paragraphs)


def activity_approved_email(title: str, activity_date: date, location: Optional[str]) -> Tuple[str, str]:
    html = _wrap(
        "Permohonan Aktiviti Diluluskan",
        "<p>Permohonan aktiviti/majlis anda telah <strong>DILULUSKAN</strong>.</p>",
        f"<ul><li>Aktiviti: <strong>{title}</strong></li>"
        f"<li>Tarikh: {activity_date.strftime('%d/%m/%Y')}</li>"
        f"<li>Lokasi: {location or '-'}</li></ul>",
        f"<p>Sila pastikan pematuhan kepada peraturan {ORGANISATION} dan menjaga kebersihan kawasan.</p>",
    )
    return "Permohonan Aktiviti Diluluskan", html
