from __future__ import annotations
from flask import Blueprint, request, current_app, send_file
from service_report.decorators.auth import require_roles
from service_report.services.policy import ALL_ROLES, current_actor
from service_report.services.reports import ReportService
from service_report.services.attachments import AttachmentStore
from service_report.utils.validation import require_fields, require_mapping
from service_report.errors import ValidationError
from service_report import get_db

teknisi_bp = Blueprint('teknisi', __name__)


def report_service() -> ReportService:
    return ReportService(get_db(), current_app.config['UPLOAD_DIR'], current_app.config['REPORT_LIST_LIMIT'])


def attachment_store() -> AttachmentStore:
    return AttachmentStore(get_db(), current_app.config['UPLOAD_DIR'], report_service())


@teknisi_bp.get('/reports')
@require_roles(*ALL_ROLES)
def list_assigned():
    rows = report_service().list_assigned(current_actor().id)
    return {'data': [r.to_dict() for r in rows]}


@teknisi_bp.get('/reports/<int:report_id>')
@require_roles(*ALL_ROLES)
def technician_detail(report_id: int):
    report = report_service().get_for_actor(report_id, current_actor())
    return {'data': report.to_dict(include_children=True)}


@teknisi_bp.patch('/reports/<int:report_id>/form')
@require_roles(*ALL_ROLES)
def save_technician_form(report_id: int):
    data = require_mapping(request.get_json(silent=True), 'body')
    require_fields(data, 'payload')
    report = report_service().save_technician_payload(report_id, current_actor().id, data['payload'])
    return {'data': report.to_dict(include_children=True)}


@teknisi_bp.patch('/reports/<int:report_id>/progress')
@require_roles(*ALL_ROLES)
def update_progress(report_id: int):
    data = require_mapping(request.get_json(silent=True), 'body')
    require_fields(data, 'status', 'job_summary', 'action_taken')
    report = report_service().update_progress(
        report_id,
        current_actor().id,
        data['status'],
        data['job_summary'],
        data['action_taken'],
    )
    return {'data': report.to_dict()}


@teknisi_bp.post('/reports/<int:report_id>/attachments')
@require_roles(*ALL_ROLES)
def upload_attachment(report_id: int):
    upload = request.files.get('file')
    if upload is None or not upload.filename:
        raise ValidationError('file required')
    att = attachment_store().save_attachment(
        report_id,
        current_actor().id,
        upload.filename,
        upload.mimetype,
        upload.content_length or None,
        upload.stream,
    )
    return {'data': att.to_dict()}, 201


@teknisi_bp.get('/reports/<int:report_id>/attachments/<int:attachment_id>/download')
@require_roles(*ALL_ROLES)
def download_attachment(report_id: int, attachment_id: int):
    download = attachment_store().open_attachment(report_id, attachment_id, current_actor())
    return send_file(
        download.path,
        mimetype=download.attachment.content_type,
        as_attachment=True,
        download_name=download.download_name,
    )


@teknisi_bp.delete('/reports/<int:report_id>/attachments/<int:attachment_id>')
@require_roles(*ALL_ROLES)
def delete_attachment(report_id: int, attachment_id: int):
    attachment_store().delete_attachment(report_id, current_actor().id, attachment_id)
    return '', 204
