"""Request auth context passed explicitly to every repository call."""
from dataclasses import dataclass, field
from typing import FrozenSet, Iterable, Optional

from fastapi import HTTPException

from spac_os.services.vocabulary import TeamRole, parse_vocabulary

ADMIN_ROLES = frozenset({TeamRole.owner, TeamRole.admin})


class PermissionDeniedError(PermissionError):
    pass


@dataclass(frozen=True)
class AuthContext:
    user_id: str
    org_id: str
    roles: FrozenSet[TeamRole] = field(default_factory=frozenset)

    @classmethod
    def build(cls, user_id: str, org_id: str, roles: Iterable[str] = ()) -> "AuthContext":
        return cls(
            user_id=user_id,
            org_id=org_id,
            roles=frozenset(parse_vocabulary(TeamRole, role) for role in roles),
        )

    def has_any_role(self, roles: Iterable[TeamRole]) -> bool:
        return bool(self.roles & frozenset(roles))

    def require_role(self, roles: Iterable[TeamRole] = ADMIN_ROLES, action: str = "perform this action") -> None:
        wanted = frozenset(roles)
        if not self.has_any_role(wanted):
            names = ", ".join(sorted(role.value for role in wanted))
            raise PermissionDeniedError(f"Role {names} required to {action}")


def context_from_headers(
    x_user_id: Optional[str],
    x_org_id: Optional[str],
    x_roles: Optional[str],
) -> AuthContext:
    """Build the context from X-User-Id / X-Org-Id / X-Roles; bad values are a 401."""
    if not x_user_id or not x_org_id:
        raise HTTPException(status_code=401, detail="Missing X-User-Id or X-Org-Id header")
    roles = [role.strip() for role in (x_roles or "").split(",") if role.strip()]
    try:
        return AuthContext.build(x_user_id.strip(), x_org_id.strip(), roles)
    except ValueError as exc:
        raise HTTPException(status_code=401, detail=str(exc)) from exc
