"""
treasury_services.authority -- Authorization gate for treasury actions.

Responsibility:
    Decide whether an actor may perform a treasury action.  Identity and
    role assignment live outside the treasury; a caller-supplied role
    provider maps an actor id to role names, and the configured role ->
    action table does the rest.

Architecture position:
    Services layer.  Consumes ``TreasuryConfig.role_permissions``.  Called by
    TreasuryOrchestrator before any read or write.

Invariants:
    - Kernel remains actor-agnostic; this module does not resolve identity.
    - An actor with no known role is denied (fail-closed).
"""

from __future__ import annotations

from collections.abc import Callable, Iterable, Mapping
from enum import Enum
from typing import Protocol
from uuid import UUID

from treasury_config.schema import DEFAULT_ROLE_PERMISSIONS


class TreasuryAction(str, Enum):
    """Actions gated by the authority."""

    RECORD_TRANSACTION = "record_transaction"
    VIEW_TRANSACTIONS = "view_transactions"
    REVERSE_TRANSACTION = "reverse_transaction"
    VIEW_REVERSALS = "view_reversals"
    OPEN_DAY = "open_day"
    CLOSE_DAY = "close_day"
    TRANSFER_SAFE_REGISTRY = "transfer_safe_registry"
    TRANSFER_BANK = "transfer_bank"
    VERIFY_SAFE = "verify_safe"
    ADJUST_BALANCE = "adjust_balance"
    VIEW_REPORTS = "view_reports"
    APPROVE_DISCREPANCY = "approve_discrepancy"


class TreasuryAuthority(Protocol):
    """Protocol for the authorization gate."""

    def is_authorized(self, actor_id: UUID, action: TreasuryAction) -> bool: ...


RoleProvider = Callable[[UUID], Iterable[str]]


class RoleBasedAuthority:
    """
    Grants an action when any of the actor's roles lists it.

    Usage:
        roles = {director_id: ["director"], clerk_id: ["secretary"]}
        authority = RoleBasedAuthority(lambda actor: roles.get(actor, ()))
    """

    def __init__(
        self,
        role_provider: RoleProvider,
        role_permissions: Mapping[str, Iterable[str]] | None = None,
    ) -> None:
        self._role_provider = role_provider
        table = DEFAULT_ROLE_PERMISSIONS if role_permissions is None else role_permissions
        self._permissions: dict[str, frozenset[TreasuryAction]] = {
            role: frozenset(TreasuryAction(action) for action in actions)
            for role, actions in table.items()
        }

    def actions_for(self, actor_id: UUID) -> frozenset[TreasuryAction]:
        granted: set[TreasuryAction] = set()
        for role in self._role_provider(actor_id) or ():
            granted |= self._permissions.get(role, frozenset())
        return frozenset(granted)

    def is_authorized(self, actor_id: UUID, action: TreasuryAction) -> bool:
        return TreasuryAction(action) in self.actions_for(actor_id)


class AllowAllAuthority:
    """Default: every actor may do everything (single-user installs, tests)."""

    def is_authorized(self, actor_id: UUID, action: TreasuryAction) -> bool:
        return True
