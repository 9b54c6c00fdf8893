from __future__ import annotations
from datetime import datetime
from typing import Any, List, Optional
from sqlalchemy.orm import Mapped, mapped_column, relationship
from sqlalchemy import Integer, String, Text, JSON, DateTime, ForeignKey, BigInteger, Index
from .base import Base, utcnow, isoformat, public_upload_url


class ServiceReport(Base):
    __tablename__ = 'service_reports'
    # Status constants
    STATUS_OPEN = 'open'
    STATUS_PROGRESS = 'progress'
    STATUS_DONE = 'done'
    ALL_STATUSES = (STATUS_OPEN, STATUS_PROGRESS, STATUS_DONE)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    dispatch_no: Mapped[str] = mapped_column(String(32), unique=True, nullable=False, index=True)
    admin_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    teknisi_id: Mapped[Optional[int]] = mapped_column(Integer, nullable=True, index=True)
    customer_name: Mapped[str] = mapped_column(String(120), nullable=False, default='')
    customer_address: Mapped[str] = mapped_column(String(255), nullable=False, default='')
    customer_contact: Mapped[str] = mapped_column(String(120), nullable=False, default='')
    device_name: Mapped[str] = mapped_column(String(100), nullable=False, default='')
    serial_number: Mapped[str] = mapped_column(String(100), nullable=False, default='')
    device_location: Mapped[str] = mapped_column(String(120), nullable=False, default='')
    complaint: Mapped[str] = mapped_column(Text, nullable=False, default='')
    action_taken: Mapped[str] = mapped_column(Text, nullable=False, default='')
    status: Mapped[str] = mapped_column(String(16), nullable=False, default=STATUS_OPEN)
    opened_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)
    updated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow, onupdate=utcnow)
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True), nullable=True)
    form_payload: Mapped[Any] = mapped_column(JSON, nullable=True)
    teknisi_payload: Mapped[Any] = mapped_column(JSON, nullable=True)

    photos: Mapped[List['ReportPhoto']] = relationship(back_populates='report', cascade='all, delete-orphan', order_by='ReportPhoto.id')
    attachments: Mapped[List['ReportAttachment']] = relationship(back_populates='report', cascade='all, delete-orphan', order_by='ReportAttachment.id')
    status_logs: Mapped[List['StatusLog']] = relationship(back_populates='report', cascade='all, delete-orphan', order_by='StatusLog.id')

    __table_args__ = (
        Index('idx_status_opened_at', 'status', 'opened_at'),
        Index('idx_teknisi_opened_at', 'teknisi_id', 'opened_at'),
    )

    def to_dict(self, include_children: bool = False):
        data = {
            'id': self.id,
            'dispatch_no': self.dispatch_no,
            'admin_id': self.admin_id,
            'teknisi_id': self.teknisi_id,
            'customer_name': self.customer_name,
            'customer_address': self.customer_address,
            'customer_contact': self.customer_contact,
            'device_name': self.device_name,
            'serial_number': self.serial_number,
            'device_location': self.device_location,
            'complaint': self.complaint,
            'action_taken': self.action_taken,
            'status': self.status,
            'opened_at': isoformat(self.opened_at),
            'updated_at': isoformat(self.updated_at),
            'completed_at': isoformat(self.completed_at),
            'form_payload': self.form_payload,
            'teknisi_payload': self.teknisi_payload,
        }
        if include_children:
            data['photos'] = [p.to_dict() for p in self.photos]
            data['attachments'] = [a.to_dict() for a in self.attachments]
        return data

# Status flow: open -> progress -> done; done -> progress only via a technician progress update.


class ReportPhoto(Base):
    __tablename__ = 'report_photos'
    TYPE_BEFORE = 'before'
    TYPE_AFTER = 'after'
    TYPE_OTHER = 'other'
    ALL_TYPES = (TYPE_BEFORE, TYPE_AFTER, TYPE_OTHER)
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    report_id: Mapped[int] = mapped_column(ForeignKey('service_reports.id', ondelete='CASCADE'), nullable=False, index=True)
    type: Mapped[str] = mapped_column(String(16), nullable=False, default=TYPE_OTHER)
    file_path: Mapped[str] = mapped_column(String(255), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    report: Mapped['ServiceReport'] = relationship(back_populates='photos')

    def to_dict(self):
        return {
            'id': self.id,
            'report_id': self.report_id,
            'type': self.type,
            'file_path': public_upload_url(self.file_path),
            'created_at': isoformat(self.created_at),
        }


class ReportAttachment(Base):
    __tablename__ = 'report_attachments'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    report_id: Mapped[int] = mapped_column(ForeignKey('service_reports.id', ondelete='CASCADE'), nullable=False, index=True)
    # relative to the upload root, e.g. attachments/12/manual-ab12cd34ef.pdf
    file_path: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)
    file_name: Mapped[str] = mapped_column(String(255), nullable=False)
    content_type: Mapped[str] = mapped_column(String(120), nullable=False, default='application/octet-stream')
    size: Mapped[int] = mapped_column(BigInteger, nullable=False, default=0)
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    report: Mapped['ServiceReport'] = relationship(back_populates='attachments')

    def to_dict(self):
        return {
            'id': self.id,
            'report_id': self.report_id,
            'file_path': public_upload_url(self.file_path),
            'file_name': self.file_name,
            'content_type': self.content_type,
            'size': self.size,
            'created_at': isoformat(self.created_at),
        }


class StatusLog(Base):
    __tablename__ = 'status_logs'
    id: Mapped[int] = mapped_column(Integer, primary_key=True)
    report_id: Mapped[int] = mapped_column(ForeignKey('service_reports.id', ondelete='CASCADE'), nullable=False, index=True)
    changed_by: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    from_status: Mapped[str] = mapped_column(String(32), nullable=False)
    to_status: Mapped[str] = mapped_column(String(32), nullable=False)
    note: Mapped[str] = mapped_column(Text, nullable=False, default='')
    created_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False, default=utcnow)

    report: Mapped['ServiceReport'] = relationship(back_populates='status_logs')

    def to_dict(self):
        return {
            'id': self.id,
            'report_id': self.report_id,
            'changed_by': self.changed_by,
            'from': self.from_status,
            'to': self.to_status,
            'note': self.note,
            'created_at': isoformat(self.created_at),
        }
