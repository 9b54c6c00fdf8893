"""Service report lifecycle.

Status flow:

    open --assign--> progress --update_progress(done)--> done
                      ^   |                               |
                      +---+ update_progress(progress) <---+

Assigning an already assigned report only swaps the technician (the log row
records from == to). Every transition writes one StatusLog row in the same
transaction as the status change.
"""
from __future__ import annotations
import logging
import secrets
from dataclasses import dataclass
from datetime import datetime
from typing import Any, List, Optional

from sqlalchemy import select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session, selectinload

from service_report.errors import NotFoundError, ValidationError
from service_report.models.base import utcnow
from service_report.models.report import ServiceReport, StatusLog
from service_report.services.audit import add_status_log
from service_report.services.media import MediaExtractor, load_json_value
from service_report.services.policy import Actor, assert_assigned, assert_report_access
from service_report.utils.fsm import TransitionValidator
from service_report.utils.validation import validate_status

logger = logging.getLogger(__name__)

DEFAULT_LIST_LIMIT = 200
DISPATCH_ATTEMPTS = 3
NOTE_ASSIGNED = 'Assigned technician'
PROGRESS_STATUSES = (ServiceReport.STATUS_PROGRESS, ServiceReport.STATUS_DONE)

REPORT_FSM = TransitionValidator({
    ServiceReport.STATUS_OPEN: {ServiceReport.STATUS_PROGRESS},
    ServiceReport.STATUS_PROGRESS: {ServiceReport.STATUS_PROGRESS, ServiceReport.STATUS_DONE},
    ServiceReport.STATUS_DONE: {ServiceReport.STATUS_DONE, ServiceReport.STATUS_PROGRESS},
})


@dataclass(frozen=True)
class CustomerInfo:
    name: str
    address: str
    contact: str


@dataclass(frozen=True)
class DeviceInfo:
    name: str
    serial: str
    location: str


@dataclass
class ReportFilter:
    status: Optional[str] = None
    admin_id: Optional[int] = None


def generate_dispatch_no(now: Optional[datetime] = None) -> str:
    """Human readable dispatch number: YYYYMMDD-HHMMSS-NNN (NNN in 100..999)."""
    now = now or datetime.now()
    return f"{now.strftime('%Y%m%d-%H%M%S')}-{100 + secrets.randbelow(900):03d}"


class ReportService:
    def __init__(self, session: Session, upload_dir: str, list_limit: int = DEFAULT_LIST_LIMIT, extractor: Optional[MediaExtractor] = None):
        self.session = session
        self.upload_dir = upload_dir
        self.list_limit = list_limit
        self.extractor = extractor or MediaExtractor(upload_dir)

    # ---------- queries ---------- #

    def _load(self, *criteria) -> Optional[ServiceReport]:
        stmt = (
            select(ServiceReport)
            .options(selectinload(ServiceReport.attachments), selectinload(ServiceReport.photos))
            .where(*criteria)
            .execution_options(populate_existing=True)
        )
        return self.session.execute(stmt).scalar_one_or_none()

    def get_by_id(self, report_id: int) -> ServiceReport:
        report = self._load(ServiceReport.id == report_id)
        if report is None:
            raise NotFoundError()
        return report

    def get_for_technician(self, report_id: int, teknisi_id: int) -> ServiceReport:
        report = self.get_by_id(report_id)
        assert_assigned(report, teknisi_id)
        return report

    def get_for_actor(self, report_id: int, actor: Actor) -> ServiceReport:
        report = self.get_by_id(report_id)
        assert_report_access(actor, report)
        return report

    def list(self, report_filter: Optional[ReportFilter] = None, limit: Optional[int] = None) -> List[ServiceReport]:
        report_filter = report_filter or ReportFilter()
        stmt = select(ServiceReport)
        if report_filter.status:
            stmt = stmt.where(ServiceReport.status == validate_status(report_filter.status, ServiceReport.ALL_STATUSES))
        if report_filter.admin_id is not None:
            stmt = stmt.where(ServiceReport.admin_id == report_filter.admin_id)
        bound = self.list_limit if limit is None else max(1, min(limit, self.list_limit))
        stmt = stmt.order_by(ServiceReport.opened_at.desc(), ServiceReport.id.desc()).limit(bound)
        return list(self.session.execute(stmt).scalars())

    def list_assigned(self, teknisi_id: int) -> List[ServiceReport]:
        stmt = (
            select(ServiceReport)
            .where(ServiceReport.teknisi_id == teknisi_id)
            .order_by(ServiceReport.opened_at.desc(), ServiceReport.id.desc())
        )
        return list(self.session.execute(stmt).scalars())

    def status_logs(self, report_id: int) -> List[StatusLog]:
        self.get_by_id(report_id)
        stmt = select(StatusLog).where(StatusLog.report_id == report_id).order_by(StatusLog.id.asc())
        return list(self.session.execute(stmt).scalars())

    # ---------- mutations ---------- #

    def _commit(self):
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise

    def create(self, admin_id: int, customer: CustomerInfo, device: DeviceInfo, complaint: str, form_payload: Any) -> ServiceReport:
        report = None
        for attempt in range(1, DISPATCH_ATTEMPTS + 1):
            report = ServiceReport(
                dispatch_no=generate_dispatch_no(),
                admin_id=admin_id,
                customer_name=customer.name,
                customer_address=customer.address,
                customer_contact=customer.contact,
                device_name=device.name,
                serial_number=device.serial,
                device_location=device.location,
                complaint=complaint,
                status=ServiceReport.STATUS_OPEN,
                form_payload=load_json_value(form_payload),
            )
            self.session.add(report)
            try:
                self.session.commit()
                break
            except IntegrityError:
                # dispatch number collision within the same second
                self.session.rollback()
                if attempt == DISPATCH_ATTEMPTS:
                    raise
                logger.warning('dispatch number %s taken, retrying', report.dispatch_no)

        logger.info('report %s created by admin %s (%s)', report.id, admin_id, report.dispatch_no)
        result = self.extractor.extract(report.id, report.status, form_payload)
        if result.changed:
            report.form_payload = load_json_value(result.payload)
            try:
                self._commit()
            except SQLAlchemyError:
                logger.exception('report %s: storing extracted form payload failed', report.id)
        return report

    def save_technician_payload(self, report_id: int, teknisi_id: int, payload: Any) -> ServiceReport:
        report = self.get_for_technician(report_id, teknisi_id)
        result = self.extractor.extract(report.id, report.status, payload)
        report.teknisi_payload = load_json_value(result.payload)
        report.updated_at = utcnow()
        self._commit()
        return report

    def assign(self, report_id: int, teknisi_id: int, admin_id: int) -> ServiceReport:
        if teknisi_id is None or teknisi_id <= 0:
            raise ValidationError('teknisi_id invalid')
        report = self.get_by_id(report_id)
        from_status = report.status
        to_status = ServiceReport.STATUS_PROGRESS if from_status == ServiceReport.STATUS_OPEN else from_status
        REPORT_FSM.assert_can_transition(from_status, to_status)
        report.teknisi_id = teknisi_id
        report.status = to_status
        report.updated_at = utcnow()
        add_status_log(self.session, report.id, admin_id, from_status, to_status, NOTE_ASSIGNED)
        self._commit()
        return report

    def update_progress(self, report_id: int, teknisi_id: int, status: str, job_summary: str, action_taken: str) -> ServiceReport:
        validate_status(status, PROGRESS_STATUSES)
        report = self.get_for_technician(report_id, teknisi_id)
        from_status = report.status
        REPORT_FSM.assert_can_transition(from_status, status)
        report.action_taken = action_taken
        report.status = status
        report.completed_at = utcnow() if status == ServiceReport.STATUS_DONE else None
        report.updated_at = utcnow()
        add_status_log(self.session, report.id, teknisi_id, from_status, status, f"Summary: {job_summary}")
        self._commit()
        return report


__all__ = [
    'REPORT_FSM', 'CustomerInfo', 'DeviceInfo', 'ReportFilter', 'ReportService', 'generate_dispatch_no',
    'DEFAULT_LIST_LIMIT', 'NOTE_ASSIGNED',
]
