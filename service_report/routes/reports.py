from __future__ import annotations
from flask import Blueprint, request, current_app
from service_report.decorators.auth import require_roles
from service_report.config.pagination import normalize_limit
from service_report.services.policy import ROLE_ADMIN, ROLE_MASTER_ADMIN, current_actor
from service_report.services.reports import ReportService, ReportFilter, CustomerInfo, DeviceInfo
from service_report.utils.validation import require_fields, require_mapping, coerce_int
from service_report.errors import ValidationError
from service_report import get_db

reports_bp = Blueprint('reports', __name__)


def report_service() -> ReportService:
    return ReportService(get_db(), current_app.config['UPLOAD_DIR'], current_app.config['REPORT_LIST_LIMIT'])


@reports_bp.post('')
@require_roles(ROLE_ADMIN, ROLE_MASTER_ADMIN)
def create_report():
    data = require_mapping(request.get_json(silent=True), 'body')
    require_fields(data, 'customer', 'device', 'complaint', 'form_payload')
    customer = require_mapping(data['customer'], 'customer')
    device = require_mapping(data['device'], 'device')
    require_fields(customer, 'name', 'address', 'contact', prefix='customer.')
    require_fields(device, 'name', 'serial', 'location', prefix='device.')
    actor = current_actor()
    report = report_service().create(
        actor.id,
        CustomerInfo(customer['name'], customer['address'], customer['contact']),
        DeviceInfo(device['name'], device['serial'], device['location']),
        data['complaint'],
        data['form_payload'],
    )
    return {'data': report.to_dict()}, 201


@reports_bp.get('')
@require_roles(ROLE_ADMIN, ROLE_MASTER_ADMIN)
def list_reports():
    svc = report_service()
    try:
        limit = normalize_limit(request.args.get('limit'), svc.list_limit)
    except ValueError as e:
        raise ValidationError(str(e))
    admin_id = request.args.get('admin_id')
    report_filter = ReportFilter(
        status=request.args.get('status') or None,
        admin_id=coerce_int(admin_id, 'admin_id') if admin_id else None,
    )
    rows = [r.to_dict() for r in svc.list(report_filter, limit)]
    return {'data': rows, 'pagination': {'limit': limit, 'returned': len(rows)}}


@reports_bp.patch('/<int:report_id>/assign')
@require_roles(ROLE_ADMIN, ROLE_MASTER_ADMIN)
def assign_report(report_id: int):
    data = require_mapping(request.get_json(silent=True), 'body')
    require_fields(data, 'teknisi_id')
    teknisi_id = coerce_int(data['teknisi_id'], 'teknisi_id')
    report = report_service().assign(report_id, teknisi_id, current_actor().id)
    return {'data': report.to_dict()}


@reports_bp.get('/<int:report_id>/status-logs')
@require_roles(ROLE_ADMIN, ROLE_MASTER_ADMIN)
def report_status_logs(report_id: int):
    logs = report_service().status_logs(report_id)
    return {'data': [log.to_dict() for log in logs]}
