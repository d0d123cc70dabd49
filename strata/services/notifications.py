from __future__ import annotations

import logging
import threading
from concurrent.futures import Future, ThreadPoolExecutor, wait
from datetime import date, datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Set

from sqlalchemy import or_
from sqlalchemy.orm import Session, joinedload

from ..config import settings
from ..models.models import ActivityRequest, Bill, Complaint, Notice, Unit, User
from . import email as email_service
from . import whatsapp

logger = logging.getLogger(__name__)

FEED_LIMIT = 10


class NotificationDispatcher:
    """Fire-and-forget delivery of emails and WhatsApp messages.

    Jobs run on a small worker pool so a slow or failing provider never holds
    up the request or loop that queued them. With ``workers=0`` jobs run inline,
    which keeps tests deterministic.
    """

    def __init__(self, workers: int = 2) -> None:
        self.workers = workers
        self._executor: Optional[ThreadPoolExecutor] = None
        self._pending: Set[Future] = set()
        self._lock = threading.Lock()

    def _ensure_executor(self) -> ThreadPoolExecutor:
        with self._lock:
            if self._executor is None:
                self._executor = ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix="notify")
            return self._executor

    def _run(self, name: str, fn: Callable[..., Any], args: tuple) -> None:
        try:
            fn(*args)
        except Exception:
            logger.exception("Notification job %s failed.", name)

    def submit(self, name: str, fn: Callable[..., Any], *args: Any) -> None:
        if self.workers <= 0:
            self._run(name, fn, args)
            return
        future = self._ensure_executor().submit(self._run, name, fn, args)
        with self._lock:
            self._pending.add(future)
        future.add_done_callback(self._forget)

    def _forget(self, future: Future) -> None:
        with self._lock:
            self._pending.discard(future)

    def flush(self, timeout: Optional[float] = None) -> None:
        with self._lock:
            pending = list(self._pending)
        if pending:
            wait(pending, timeout=timeout)

    def shutdown(self) -> None:
        with self._lock:
            executor, self._executor = self._executor, None
        if executor is not None:
            executor.shutdown(wait=True)


dispatcher = NotificationDispatcher(workers=settings.notification_workers)


def notify_bill_created(owner: Optional[User], unit_number: str, amount, month: int, year: int) -> None:
    if owner is None:
        return
    if owner.email:
        subject, html = email_service.bill_created_email(unit_number, amount, month, year)
        dispatcher.submit("bill_created_email", email_service.send_email, owner.email, subject, html)
    if owner.phone:
        message = whatsapp.bill_created_message(unit_number, amount, month, year)
        dispatcher.submit("bill_created_whatsapp", whatsapp.send_whatsapp, owner.phone, message)


def notify_payment_received(owner: Optional[User], unit_number: str, amount, receipt_id) -> None:
    if owner is None or not owner.phone:
        return
    message = whatsapp.payment_received_message(unit_number, amount, receipt_id)
    dispatcher.submit("payment_received_whatsapp", whatsapp.send_whatsapp, owner.phone, message)


def notify_payment_reminder(owner: Optional[User], unit_number: str, amount, month: int, year: int) -> bool:
    """Queue a reminder; returns True when at least one channel was addressable."""
    if owner is None:
        return False
    queued = False
    if owner.phone:
        message = whatsapp.payment_reminder_message(unit_number, amount, month, year)
        dispatcher.submit("payment_reminder_whatsapp", whatsapp.send_whatsapp, owner.phone, message)
        queued = True
    if owner.email:
        subject, html = email_service.payment_reminder_email(unit_number, amount, month, year)
        dispatcher.submit("payment_reminder_email", email_service.send_email, owner.email, subject, html)
        queued = True
    return queued


def notify_complaint_status(reporter: Optional[User], complaint_id: int, title: str, status: str) -> None:
    if reporter is None or not reporter.email:
        return
    subject, html = email_service.complaint_status_email(complaint_id, title, status)
    dispatcher.submit("complaint_status_email", email_service.send_email, reporter.email, subject, html)


def notify_activity_approved(requester: Optional[User], title: str, activity_date: date, location: Optional[str]) -> None:
    if requester is None:
        return
    if requester.email:
        subject, html = email_service.activity_approved_email(title, activity_date, location)
        dispatcher.submit("activity_approved_email", email_service.send_email, requester.email, subject, html)
    if requester.phone:
        message = whatsapp.activity_approved_message(title, activity_date, location)
        dispatcher.submit("activity_approved_whatsapp", whatsapp.send_whatsapp, requester.phone, message)


def _as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def _feed_item(item_id: str, title: str, message: str, kind: str, created_at: datetime, link: str) -> Dict[str, Any]:
    return {
        "id": item_id,
        "title": title,
        "message": message,
        "type": kind,
        "is_read": False,
        "created_at": _as_utc(created_at),
        "link": link,
    }


def build_notification_feed(session: Session, user: User) -> List[Dict[str, Any]]:
    """Derive the bell feed from notices, bills, complaints and activity requests.

    Nothing is persisted per user, so every item is reported unread.
    """
    items: List[Dict[str, Any]] = []
    audience = "MANAGEMENT" if user.is_management else "RESIDENTS"
    notices = (
        session.query(Notice)
        .filter(Notice.target.in_(["ALL", audience]))
        .order_by(Notice.created_at.desc())
        .limit(5)
        .all()
    )
    for notice in notices:
        items.append(
            _feed_item(f"notice-{notice.id}", notice.title, notice.content[:100], "notice", notice.created_at, "/notices")
        )

    if user.is_management:
        activities = (
            session.query(ActivityRequest)
            .options(joinedload(ActivityRequest.created_by))
            .filter(ActivityRequest.status == "PENDING")
            .order_by(ActivityRequest.created_at.desc())
            .limit(3)
            .all()
        )
        for activity in activities:
            items.append(
                _feed_item(
                    f"activity-{activity.id}",
                    "Permohonan Aktiviti Baharu",
                    f"{activity.created_by.name} telah memohon: {activity.title}",
                    "activity",
                    activity.created_at,
                    "/activities",
                )
            )
        complaints = (
            session.query(Complaint)
            .options(joinedload(Complaint.user))
            .filter(Complaint.status == "OPEN")
            .order_by(Complaint.created_at.desc())
            .limit(3)
            .all()
        )
        for complaint in complaints:
            items.append(
                _feed_item(
                    f"complaint-{complaint.id}",
                    "Aduan Baharu",
                    f"{complaint.user.name}: {complaint.description[:50]}...",
                    "complaint",
                    complaint.created_at,
                    "/complaints",
                )
            )
    else:
        bills = (
            session.query(Bill)
            .join(Unit, Unit.id == Bill.unit_id)
            .options(joinedload(Bill.unit))
            .filter(or_(Unit.owner_id == user.id, Unit.tenant_id == user.id))
            .filter(Bill.status == "PENDING")
            .order_by(Bill.created_at.desc())
            .limit(3)
            .all()
        )
        for bill in bills:
            items.append(
                _feed_item(
                    f"bill-{bill.id}",
                    "Invois Tertunggak",
                    f"Unit {bill.unit.unit_number}: RM{bill.amount:.2f} - {bill.month}/{bill.year}",
                    "bill",
                    bill.created_at,
                    "/billing",
                )
            )
        decided = (
            session.query(ActivityRequest)
            .filter(ActivityRequest.created_by_id == user.id)
            .filter(ActivityRequest.status.in_(["APPROVED", "REJECTED"]))
            .order_by(ActivityRequest.updated_at.desc())
            .limit(3)
            .all()
        )
        for activity in decided:
            approved = activity.status == "APPROVED"
            items.append(
                _feed_item(
                    f"activity-{activity.id}",
                    f"Permohonan {'Diluluskan' if approved else 'Ditolak'}",
                    f'Permohonan aktiviti "{activity.title}" telah {"diluluskan" if approved else "ditolak"}',
                    "activity",
                    activity.updated_at,
                    "/activities",
                )
            )

    items.sort(key=lambda item: item["created_at"], reverse=True)
    return items[:FEED_LIMIT]
