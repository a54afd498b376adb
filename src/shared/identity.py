"""Caller identity as asserted by the upstream identity provider.

Authentication happens before requests reach this service; the provider
forwards who the caller is in ``X-User-*`` headers.
"""

from dataclasses import dataclass

from fastapi import Depends, Header

from shared.errors import AuthenticationError, OwnershipError

STAFF_ROLES = frozenset({"staff", "admin"})


@dataclass(frozen=True)
class Caller:
    user_id: str
    email: str | None = None
    role: str = "customer"

    @property
    def is_staff(self) -> bool:
        return self.role in STAFF_ROLES


def current_caller(
    x_user_id: str | None = Header(default=None),
    x_user_email: str | None = Header(default=None),
    x_user_role: str | None = Header(default=None),
) -> Caller | None:
    if not x_user_id:
        return None
    return Caller(
        user_id=x_user_id,
        email=x_user_email,
        role=(x_user_role or "customer").strip().lower(),
    )


def require_caller(caller: Caller | None = Depends(current_caller)) -> Caller:
    if caller is None:
        raise AuthenticationError()
    return caller


def require_staff(caller: Caller = Depends(require_caller)) -> Caller:
    if not caller.is_staff:
        raise OwnershipError("Staff access required")
    return caller
