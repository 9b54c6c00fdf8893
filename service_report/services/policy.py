from __future__ import annotations
from dataclasses import dataclass
from typing import Optional
from flask_jwt_extended import get_jwt, get_jwt_identity
from service_report.errors import ForbiddenError
from service_report.models.report import ServiceReport

ROLE_MASTER_ADMIN = 'MASTER_ADMIN'
ROLE_ADMIN = 'ADMIN'
ROLE_TEKNISI = 'TEKNISI'
ALL_ROLES = (ROLE_MASTER_ADMIN, ROLE_ADMIN, ROLE_TEKNISI)
ADMIN_ROLES = frozenset({ROLE_MASTER_ADMIN, ROLE_ADMIN})


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as handed over by the auth layer."""
    id: int
    role: str

    @property
    def is_admin(self) -> bool:
        return self.role in ADMIN_ROLES


def current_actor() -> Actor:
    """Build the Actor from the verified JWT (identity = user id, 'role' claim)."""
    claims = get_jwt()
    ident = get_jwt_identity()
    return Actor(id=int(ident), role=str(claims.get('role', '')))


def current_role() -> Optional[str]:
    return get_jwt().get('role')


def has_role(*roles: str) -> bool:
    return current_role() in roles


def can_access_report(actor: Actor, report: ServiceReport) -> bool:
    if actor.is_admin:
        return True
    return report.teknisi_id is not None and report.teknisi_id == actor.id


def assert_assigned(report: ServiceReport, teknisi_id: int):
    """Technician-scoped access: the report must be assigned to teknisi_id."""
    if report.teknisi_id is None or report.teknisi_id != teknisi_id:
        raise ForbiddenError('report not assigned to this technician')


def assert_report_access(actor: Actor, report: ServiceReport):
    if not can_access_report(actor, report):
        raise ForbiddenError('report not assigned to this technician')


__all__ = [
    'ROLE_MASTER_ADMIN', 'ROLE_ADMIN', 'ROLE_TEKNISI', 'ALL_ROLES', 'ADMIN_ROLES',
    'Actor', 'current_actor', 'current_role', 'has_role',
    'can_access_report', 'assert_assigned', 'assert_report_access',
]
