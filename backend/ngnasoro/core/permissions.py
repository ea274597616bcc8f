from __future__ import annotations

import enum
import uuid
from dataclasses import dataclass, field
from typing import FrozenSet, Optional


class Role(str, enum.Enum):
    ADMIN = "admin"          # MEREF super-admin
    SFD_ADMIN = "sfd_admin"
    CASHIER = "cashier"
    CLIENT = "client"
    USER = "user"


STAFF_ROLES = frozenset({Role.ADMIN, Role.SFD_ADMIN, Role.CASHIER})


class Capability(str, enum.Enum):
    CREATE_SFD = "create_sfd"
    APPROVE_CREDIT = "approve_credit"
    SUBMIT_CREDIT = "submit_credit"
    VIEW_BALANCES = "view_balances"
    PERFORM_TRANSACTIONS = "perform_transactions"
    ADJUST_BALANCES = "adjust_balances"
    EXPORT_REPORTS = "export_reports"
    MANAGE_USERS = "manage_users"
    MANAGE_CLIENTS = "manage_clients"
    MANAGE_SUBSIDIES = "manage_subsidies"
    REQUEST_SUBSIDY = "request_subsidy"
    VIEW_AUDIT_LOGS = "view_audit_logs"
    VIEW_OWN_ACCOUNT = "view_own_account"
    REQUEST_LOAN = "request_loan"


_ROLE_CAPABILITIES: dict[Role, FrozenSet[Capability]] = {
    Role.ADMIN: frozenset({
        Capability.CREATE_SFD,
        Capability.APPROVE_CREDIT,
        Capability.SUBMIT_CREDIT,
        Capability.VIEW_BALANCES,
        Capability.ADJUST_BALANCES,
        Capability.EXPORT_REPORTS,
        Capability.MANAGE_USERS,
        Capability.MANAGE_CLIENTS,
        Capability.MANAGE_SUBSIDIES,
        Capability.VIEW_AUDIT_LOGS,
        Capability.VIEW_OWN_ACCOUNT,
    }),
    Role.SFD_ADMIN: frozenset({
        Capability.SUBMIT_CREDIT,
        Capability.VIEW_BALANCES,
        Capability.PERFORM_TRANSACTIONS,
        Capability.ADJUST_BALANCES,
        Capability.EXPORT_REPORTS,
        Capability.MANAGE_CLIENTS,
        Capability.REQUEST_SUBSIDY,
        Capability.VIEW_OWN_ACCOUNT,
    }),
    Role.CASHIER: frozenset({
        Capability.VIEW_BALANCES,
        Capability.PERFORM_TRANSACTIONS,
        Capability.MANAGE_CLIENTS,
        Capability.VIEW_OWN_ACCOUNT,
    }),
    Role.CLIENT: frozenset({
        Capability.VIEW_OWN_ACCOUNT,
        Capability.REQUEST_LOAN,
    }),
    Role.USER: frozenset({
        Capability.VIEW_OWN_ACCOUNT,
    }),
}


def parse_role(value: str | Role | None) -> Optional[Role]:
    if value is None:
        return None
    try:
        return Role(value)
    except ValueError:
        return None


def capabilities_for(role: str | Role | None) -> FrozenSet[Capability]:
    parsed = parse_role(role)
    if parsed is None:
        return frozenset()
    return _ROLE_CAPABILITIES[parsed]


@dataclass(frozen=True)
class AuthContext:
    """Who is calling, resolved once per request from the bearer token."""

    user_id: uuid.UUID
    email: Optional[str]
    role: Role
    sfd_id: Optional[uuid.UUID] = None
    capabilities: FrozenSet[Capability] = field(default_factory=frozenset)

    @classmethod
    def for_user(cls, user) -> "AuthContext":
        role = parse_role(user.role) or Role.USER
        return cls(
            user_id=user.id,
            email=user.email,
            role=role,
            sfd_id=user.sfd_id,
            capabilities=capabilities_for(role),
        )

    @property
    def is_admin(self) -> bool:
        return self.role == Role.ADMIN

    def can(self, capability: Capability) -> bool:
        return capability in self.capabilities

    def can_access_sfd(self, sfd_id: Optional[uuid.UUID]) -> bool:
        if self.is_admin:
            return True
        return sfd_id is not None and self.sfd_id == sfd_id
