"""WhatsApp delivery stub.

No provider is wired in yet; messages are validated and logged so the call
sites and templates are ready when one is.
"""

import logging
from datetime import date
from decimal import Decimal
from typing import Optional

from ..config import settings
from .email import ORGANISATION

logger = logging.getLogger(__name__)

MIN_PHONE_LENGTH = 10


def send_whatsapp(phone: Optional[str], message: str) -> bool:
    if not phone or len(phone.strip()) < MIN_PHONE_LENGTH:
        logger.warning("[WhatsApp] Invalid phone number: %r", phone)
        return False
    if not settings.whatsapp_enabled:
        logger.info("[WhatsApp] Disabled; message to %s not sent.", phone[-4:])
        return False
    logger.info("[WhatsApp] Sending to ***%s: %s", phone.strip()[-4:], message.splitlines()[0])
    return True


def _money(amount) -> str:
    return f"{Decimal(str(amount)):.2f}"


def bill_created_message(unit_number: str, amount, month: int, year: int) -> str:
    return (
        f"*Invois Baharu - {ORGANISATION}*\n\nUnit: {unit_number}\nJumlah: RM {_money(amount)}\n"
        f"Bulan: {month}/{year}\n\nSila buat pembayaran segera. Terima kasih.\n\n{ORGANISATION}"
    )


def payment_received_message(unit_number: str, amount, receipt_id) -> str:
    return (
        f"*Terima Kasih - {ORGANISATION}*\n\nPembayaran RM {_money(amount)} untuk Unit {unit_number} "
        f"telah diterima. (Resit: {receipt_id})\n\n{ORGANISATION}"
    )


def payment_reminder_message(unit_number: str, amount, month: int, year: int) -> str:
    return (
        f"*Peringatan Pembayaran - {ORGANISATION}*\n\nUnit: {unit_number}\nBulan: {month}/{year}\n"
        f"Baki Tertunggak: RM {_money(amount)}\n\nSila jelaskan bayaran sebelum akhir bulan ini "
        f"untuk mengelakkan denda. Terima kasih.\n\n{ORGANISATION}"
    )


def activity_approved_message(title: str, activity_date: date, location: Optional[str]) -> str:
    return (
        f"*Aktiviti Diluluskan - {ORGANISATION}*\n\nAktiviti: {title}\n"
        f"Tarikh: {activity_date.strftime('%d/%m/%Y')}\nLokasi: {location or '-'}\n\n"
        f"Sila patuhi peraturan {ORGANISATION} dan jaga kebersihan kawasan.\n\n{ORGANISATION}"
    )
