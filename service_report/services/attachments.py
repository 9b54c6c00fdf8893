from __future__ import annotations
import logging
import os
import shutil
from dataclasses import dataclass
from typing import BinaryIO, Optional

from sqlalchemy import select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from service_report.errors import ForbiddenError, NotFoundError
from service_report.models.report import ReportAttachment, ServiceReport
from service_report.services.policy import Actor
from service_report.services.reports import ReportService
from service_report.utils.files import sanitize_filename, random_suffix, remove_quietly, resolve_under

logger = logging.getLogger(__name__)

DEFAULT_CONTENT_TYPE = 'application/octet-stream'


@dataclass(frozen=True)
class AttachmentDownload:
    attachment: ReportAttachment
    path: str
    download_name: str


def stored_name_for(original_name: str) -> tuple[str, str]:
    """Return (sanitized original name, collision resistant stored name)."""
    safe_name = sanitize_filename(original_name)
    base, ext = os.path.splitext(safe_name)
    if not base:
        base = 'attachment'
    return safe_name, f"{base}-{random_suffix()}{ext}"


class AttachmentStore:
    """Files uploaded by the assigned technician, kept under
    ``<upload_dir>/attachments/<report_id>/``.

    The file is written before its metadata row; if the insert fails the file
    is removed again. Deleting removes the row first and the file afterwards,
    so a failed unlink leaves an unreferenced file rather than a row pointing
    at nothing.
    """

    def __init__(self, session: Session, upload_dir: str, reports: Optional[ReportService] = None):
        self.session = session
        self.upload_dir = upload_dir
        self.reports = reports or ReportService(session, upload_dir)

    def _assert_editable(self, report: ServiceReport):
        if report.status == ServiceReport.STATUS_DONE:
            raise ForbiddenError('report already finalized')

    def save_attachment(self, report_id: int, teknisi_id: int, original_name: str, content_type: Optional[str], size: Optional[int], stream: BinaryIO) -> ReportAttachment:
        report = self.reports.get_for_technician(report_id, teknisi_id)
        self._assert_editable(report)

        safe_name, stored_name = stored_name_for(original_name)
        relative_path = os.path.join('attachments', str(report_id), stored_name)
        stored_path = resolve_under(self.upload_dir, relative_path)
        os.makedirs(os.path.dirname(stored_path), exist_ok=True)

        try:
            with open(stored_path, 'wb') as fh:
                shutil.copyfileobj(stream, fh)
                written = fh.tell()
        except Exception:
            # disk errors and aborted uploads alike leave no partial file
            remove_quietly(stored_path, logger)
            raise

        att = ReportAttachment(
            report_id=report_id,
            file_path=relative_path.replace(os.sep, '/'),
            file_name=safe_name,
            content_type=content_type or DEFAULT_CONTENT_TYPE,
            size=size if size is not None and size >= 0 else written,
        )
        self.session.add(att)
        try:
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            if not remove_quietly(stored_path, logger):
                logger.error('orphaned attachment file left at %s', stored_path)
            raise
        logger.info('report %s: attachment %s stored as %s', report_id, att.id, att.file_path)
        return att

    def get_attachment(self, report_id: int, attachment_id: int) -> ReportAttachment:
        stmt = select(ReportAttachment).where(
            ReportAttachment.id == attachment_id,
            ReportAttachment.report_id == report_id,
        )
        att = self.session.execute(stmt).scalar_one_or_none()
        if att is None:
            raise NotFoundError('attachment not found')
        return att

    def delete_attachment(self, report_id: int, teknisi_id: int, attachment_id: int) -> None:
        report = self.reports.get_for_technician(report_id, teknisi_id)
        self._assert_editable(report)
        att = self.get_attachment(report_id, attachment_id)
        stored_path = self.absolute_path(att)

        try:
            self.session.delete(att)
            self.session.commit()
        except SQLAlchemyError:
            self.session.rollback()
            raise
        if stored_path and not remove_quietly(stored_path, logger):
            logger.error('unreferenced attachment file left at %s', stored_path)
        logger.info('report %s: attachment %s deleted', report_id, attachment_id)

    def open_attachment(self, report_id: int, attachment_id: int, actor: Actor) -> AttachmentDownload:
        """Access-checked lookup for downloads; the caller streams the file."""
        self.reports.get_for_actor(report_id, actor)
        att = self.get_attachment(report_id, attachment_id)
        path = self.absolute_path(att)
        if not path or not os.path.isfile(path):
            raise NotFoundError('attachment file missing')
        return AttachmentDownload(attachment=att, path=path, download_name=att.file_name)

    def absolute_path(self, att: ReportAttachment) -> Optional[str]:
        if not att.file_path:
            return None
        return resolve_under(self.upload_dir, att.file_path)


__all__ = ['AttachmentStore', 'AttachmentDownload', 'stored_name_for']
