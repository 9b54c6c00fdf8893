from __future__ import annotations
import logging
from sqlalchemy.orm import Session
from service_report.models.report import StatusLog

logger = logging.getLogger(__name__)


def add_status_log(session: Session, report_id: int, changed_by: int, from_status: str, to_status: str, note: str = '') -> StatusLog:
    """Append a status transition to the report's audit trail.

    Parameters:
      report_id: report whose status changed (or was re-affirmed, from == to)
      changed_by: actor id responsible for the transition
      from_status / to_status: status strings before and after
      note: free text, e.g. "Assigned technician" or "Summary: ..."
    """
    log = StatusLog(
        report_id=report_id,
        changed_by=changed_by,
        from_status=from_status,
        to_status=to_status,
        note=note or '',
    )
    session.add(log)
    logger.info('report %s status %s -> %s by %s', report_id, from_status, to_status, changed_by)
    # No commit here; caller's transaction boundary controls durability.
    return log
