"""Role checks for escrow operations.

Each mutating operation declares the roles it accepts. The check runs before
any state is read for mutation and raises UnauthorizedError on mismatch.
Identity always comes from the authenticated caller, never from the request.
"""

from __future__ import annotations

from dataclasses import dataclass

from title_escrow.domain.enums import APPROVING_ROLES, FinalizerPolicy, Role
from title_escrow.domain.exceptions import UnauthorizedError

ANY_IDENTITY: tuple[Role, ...] = ()


@dataclass(frozen=True)
class Parties:
    """The four identities bound to one escrow record."""

    buyer: str
    seller: str
    inspector: str
    lender: str

    def roles_of(self, identity: str) -> list[Role]:
        """Return every role the identity holds on this record."""
        return [role for role in Role if getattr(self, role.value) == identity]


# Required roles per operation. An empty tuple means any identity may call.
OPERATION_ROLES: dict[str, tuple[Role, ...]] = {
    "deposit": ANY_IDENTITY,
    "update_inspection_status": (Role.INSPECTOR,),
    "approve_sale": APPROVING_ROLES,
}


def finalizer_roles(policy: FinalizerPolicy) -> tuple[Role, ...]:
    if policy == FinalizerPolicy.ANY_PARTY:
        return APPROVING_ROLES
    return (Role.SELLER,)


def authorize(
    parties: Parties,
    caller: str,
    operation: str,
    allowed: tuple[Role, ...] | None = None,
) -> Role | None:
    """Check that the caller holds one of the roles the operation accepts.

    Args:
        parties: Identities bound to the record.
        caller: Authenticated caller identity.
        operation: Operation name, looked up in OPERATION_ROLES unless
            ``allowed`` is given.
        allowed: Explicit role set overriding the table.

    Returns:
        The first matching role, or None when the operation is open to anyone.

    Raises:
        UnauthorizedError: If the caller holds none of the allowed roles.
    """
    required = OPERATION_ROLES[operation] if allowed is None else allowed
    if not required:
        return None

    held = parties.roles_of(caller)
    for role in required:
        if role in held:
            return role

    raise UnauthorizedError(caller, operation, [r.value for r in required])
