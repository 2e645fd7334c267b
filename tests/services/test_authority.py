"""Tests for the role-based authorization gate."""

from uuid import uuid4

import pytest

from treasury_services import AllowAllAuthority, RoleBasedAuthority, TreasuryAction

DIRECTOR = uuid4()
ACCOUNTANT = uuid4()
SECRETARY = uuid4()
BOTH = uuid4()

ROLES = {
    DIRECTOR: ["director"],
    ACCOUNTANT: ["accountant"],
    SECRETARY: ["secretary"],
    BOTH: ["secretary", "auditor"],
}


@pytest.fixture
def authority():
    return RoleBasedAuthority(lambda actor: ROLES.get(actor, ()))


class TestRoleBasedAuthority:

    def test_director_has_everything(self, authority):
        assert authority.actions_for(DIRECTOR) == frozenset(TreasuryAction)

    @pytest.mark.parametrize(
        "action, allowed",
        [
            (TreasuryAction.REVERSE_TRANSACTION, True),
            (TreasuryAction.TRANSFER_BANK, True),
            (TreasuryAction.APPROVE_DISCREPANCY, True),
            (TreasuryAction.TRANSFER_SAFE_REGISTRY, False),
            (TreasuryAction.ADJUST_BALANCE, False),
        ],
    )
    def test_accountant(self, authority, action, allowed):
        assert authority.is_authorized(ACCOUNTANT, action) is allowed

    def test_secretary(self, authority):
        assert authority.actions_for(SECRETARY) == {
            TreasuryAction.RECORD_TRANSACTION,
            TreasuryAction.VIEW_TRANSACTIONS,
        }

    def test_unknown_actor_gets_nothing(self, authority):
        assert not authority.is_authorized(uuid4(), TreasuryAction.VIEW_REPORTS)

    def test_unknown_role_grants_nothing(self, authority):
        assert authority.actions_for(BOTH) == authority.actions_for(SECRETARY)

    def test_roles_are_combined(self):
        authority = RoleBasedAuthority(
            lambda actor: ["reader", "closer"],
            {"reader": ["view_reports"], "closer": ["close_day"]},
        )
        assert authority.actions_for(uuid4()) == {
            TreasuryAction.VIEW_REPORTS,
            TreasuryAction.CLOSE_DAY,
        }

    def test_string_action(self, authority):
        assert authority.is_authorized(SECRETARY, "record_transaction")


class TestAllowAllAuthority:

    def test_allows(self):
        assert AllowAllAuthority().is_authorized(uuid4(), TreasuryAction.ADJUST_BALANCE)
