from __future__ import annotations
from dataclasses import dataclass, field
from functools import cached_property
from enum import Enum
from typing import FrozenSet, Iterable, List, Tuple

from consent_engine.domain.errors import (
    InvalidPermission,
    InvalidPermissionCombination,
    PersonalBusinessConflict,
)


class Permission(str, Enum):
    ACCOUNTS_BALANCES_READ = "ACCOUNTS_BALANCES_READ"
    ACCOUNTS_OVERDRAFT_LIMITS_READ = "ACCOUNTS_OVERDRAFT_LIMITS_READ"
    ACCOUNTS_READ = "ACCOUNTS_READ"
    ACCOUNTS_TRANSACTIONS_READ = "ACCOUNTS_TRANSACTIONS_READ"
    BANK_FIXED_INCOMES_READ = "BANK_FIXED_INCOMES_READ"
    CREDIT_CARDS_ACCOUNTS_BILLS_READ = "CREDIT_CARDS_ACCOUNTS_BILLS_READ"
    CREDIT_CARDS_ACCOUNTS_BILLS_TRANSACTIONS_READ = "CREDIT_CARDS_ACCOUNTS_BILLS_TRANSACTIONS_READ"
    CREDIT_CARDS_ACCOUNTS_LIMITS_READ = "CREDIT_CARDS_ACCOUNTS_LIMITS_READ"
    CREDIT_CARDS_ACCOUNTS_READ = "CREDIT_CARDS_ACCOUNTS_READ"
    CREDIT_CARDS_ACCOUNTS_TRANSACTIONS_READ = "CREDIT_CARDS_ACCOUNTS_TRANSACTIONS_READ"
    CREDIT_FIXED_INCOMES_READ = "CREDIT_FIXED_INCOMES_READ"
    CUSTOMERS_BUSINESS_ADITTIONALINFO_READ = "CUSTOMERS_BUSINESS_ADITTIONALINFO_READ"
    CUSTOMERS_BUSINESS_IDENTIFICATIONS_READ = "CUSTOMERS_BUSINESS_IDENTIFICATIONS_READ"
    CUSTOMERS_PERSONAL_ADITTIONALINFO_READ = "CUSTOMERS_PERSONAL_ADITTIONALINFO_READ"
    CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ = "CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ"
    EXCHANGES_READ = "EXCHANGES_READ"
    FINANCINGS_PAYMENTS_READ = "FINANCINGS_PAYMENTS_READ"
    FINANCINGS_READ = "FINANCINGS_READ"
    FINANCINGS_SCHEDULED_INSTALMENTS_READ = "FINANCINGS_SCHEDULED_INSTALMENTS_READ"
    FINANCINGS_WARRANTIES_READ = "FINANCINGS_WARRANTIES_READ"
    FUNDS_READ = "FUNDS_READ"
    INVOICE_FINANCINGS_PAYMENTS_READ = "INVOICE_FINANCINGS_PAYMENTS_READ"
    INVOICE_FINANCINGS_READ = "INVOICE_FINANCINGS_READ"
    INVOICE_FINANCINGS_SCHEDULED_INSTALMENTS_READ = "INVOICE_FINANCINGS_SCHEDULED_INSTALMENTS_READ"
    INVOICE_FINANCINGS_WARRANTIES_READ = "INVOICE_FINANCINGS_WARRANTIES_READ"
    LOANS_PAYMENTS_READ = "LOANS_PAYMENTS_READ"
    LOANS_READ = "LOANS_READ"
    LOANS_SCHEDULED_INSTALMENTS_READ = "LOANS_SCHEDULED_INSTALMENTS_READ"
    LOANS_WARRANTIES_READ = "LOANS_WARRANTIES_READ"
    RESOURCES_READ = "RESOURCES_READ"
    TREASURE_TITLES_READ = "TREASURE_TITLES_READ"
    UNARRANGED_ACCOUNTS_OVERDRAFT_PAYMENTS_READ = "UNARRANGED_ACCOUNTS_OVERDRAFT_PAYMENTS_READ"
    UNARRANGED_ACCOUNTS_OVERDRAFT_READ = "UNARRANGED_ACCOUNTS_OVERDRAFT_READ"
    UNARRANGED_ACCOUNTS_OVERDRAFT_SCHEDULED_INSTALMENTS_READ = "UNARRANGED_ACCOUNTS_OVERDRAFT_SCHEDULED_INSTALMENTS_READ"
    UNARRANGED_ACCOUNTS_OVERDRAFT_WARRANTIES_READ = "UNARRANGED_ACCOUNTS_OVERDRAFT_WARRANTIES_READ"
    VARIABLE_INCOMES_READ = "VARIABLE_INCOMES_READ"


@dataclass(frozen=True)
class PermissionGroup:
    name: str
    permissions: FrozenSet[Permission]

    def __contains__(self, permission: object) -> bool:
        return permission in self.permissions


@dataclass(frozen=True)
class PermissionCatalog:
    """Immutable registry of the valid permissions and the groups they form.

    Built once at start-up and handed to the engine; nothing mutates it.
    """

    groups: Tuple[PermissionGroup, ...]
    personal: FrozenSet[Permission] = field(default_factory=frozenset)
    business: FrozenSet[Permission] = field(default_factory=frozenset)

    @cached_property
    def permissions(self) -> FrozenSet[Permission]:
        return frozenset(p for g in self.groups for p in g.permissions)

    def resolve(self, code: str | Permission) -> Permission:
        try:
            permission = Permission(code)
        except ValueError:
            raise InvalidPermission(f"unknown permission {code!r}") from None
        if permission not in self.permissions:
            raise InvalidPermission(f"permission {permission.value} is not offered")
        return permission

    def resolve_all(self, codes: Iterable[str | Permission]) -> List[Permission]:
        resolved: List[Permission] = []
        for code in codes:
            permission = self.resolve(code)
            if permission not in resolved:
                resolved.append(permission)
        return resolved


def validate_permissions(requested: Iterable[Permission], catalog: PermissionCatalog) -> None:
    """Check the complete requested set against the catalog rules.

    A permission may only be requested together with at least one whole group
    that contains it. Personal and business identity permissions are mutually
    exclusive.
    """
    requested_set = frozenset(requested)
    if not requested_set:
        raise InvalidPermissionCombination("at least one permission must be requested")

    for permission in requested_set:
        if permission not in catalog.permissions:
            raise InvalidPermission(f"permission {permission.value} is not offered")
        if not any(permission in g and g.permissions <= requested_set for g in catalog.groups):
            raise InvalidPermissionCombination(
                f"permission {permission.value} was requested without a complete group"
            )

    if requested_set & catalog.personal and requested_set & catalog.business:
        raise PersonalBusinessConflict()


def _group(name: str, *permissions: Permission) -> PermissionGroup:
    return PermissionGroup(name=name, permissions=frozenset(permissions) | {Permission.RESOURCES_READ})


def default_catalog() -> PermissionCatalog:
    P = Permission
    groups = (
        _group("personal_registration_data", P.CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ),
        _group("personal_additional_info", P.CUSTOMERS_PERSONAL_ADITTIONALINFO_READ),
        _group("business_registration_data", P.CUSTOMERS_BUSINESS_IDENTIFICATIONS_READ),
        _group("business_additional_info", P.CUSTOMERS_BUSINESS_ADITTIONALINFO_READ),
        _group("balances", P.ACCOUNTS_READ, P.ACCOUNTS_BALANCES_READ),
        _group("limits", P.ACCOUNTS_READ, P.ACCOUNTS_OVERDRAFT_LIMITS_READ),
        _group("statements", P.ACCOUNTS_READ, P.ACCOUNTS_TRANSACTIONS_READ),
        _group("credit_card_limits", P.CREDIT_CARDS_ACCOUNTS_READ, P.CREDIT_CARDS_ACCOUNTS_LIMITS_READ),
        _group(
            "credit_card_transactions",
            P.CREDIT_CARDS_ACCOUNTS_READ,
            P.CREDIT_CARDS_ACCOUNTS_TRANSACTIONS_READ,
        ),
        _group(
            "credit_card_bills",
            P.CREDIT_CARDS_ACCOUNTS_READ,
            P.CREDIT_CARDS_ACCOUNTS_BILLS_READ,
            P.CREDIT_CARDS_ACCOUNTS_BILLS_TRANSACTIONS_READ,
        ),
        _group(
            "contract_data",
            P.LOANS_READ,
            P.LOANS_WARRANTIES_READ,
            P.LOANS_SCHEDULED_INSTALMENTS_READ,
            P.LOANS_PAYMENTS_READ,
            P.FINANCINGS_READ,
            P.FINANCINGS_WARRANTIES_READ,
            P.FINANCINGS_SCHEDULED_INSTALMENTS_READ,
            P.FINANCINGS_PAYMENTS_READ,
            P.UNARRANGED_ACCOUNTS_OVERDRAFT_READ,
            P.UNARRANGED_ACCOUNTS_OVERDRAFT_WARRANTIES_READ,
            P.UNARRANGED_ACCOUNTS_OVERDRAFT_SCHEDULED_INSTALMENTS_READ,
            P.UNARRANGED_ACCOUNTS_OVERDRAFT_PAYMENTS_READ,
            P.INVOICE_FINANCINGS_READ,
            P.INVOICE_FINANCINGS_WARRANTIES_READ,
            P.INVOICE_FINANCINGS_SCHEDULED_INSTALMENTS_READ,
            P.INVOICE_FINANCINGS_PAYMENTS_READ,
        ),
        _group(
            "investments_operational_data",
            P.BANK_FIXED_INCOMES_READ,
            P.CREDIT_FIXED_INCOMES_READ,
            P.FUNDS_READ,
            P.VARIABLE_INCOMES_READ,
            P.TREASURE_TITLES_READ,
        ),
        _group("exchanges_operational_data", P.EXCHANGES_READ),
    )
    return PermissionCatalog(
        groups=groups,
        personal=frozenset({P.CUSTOMERS_PERSONAL_IDENTIFICATIONS_READ, P.CUSTOMERS_PERSONAL_ADITTIONALINFO_READ}),
        business=frozenset({P.CUSTOMERS_BUSINESS_IDENTIFICATIONS_READ, P.CUSTOMERS_BUSINESS_ADITTIONALINFO_READ}),
    )
