"""
Group membership resolution.

Flattens nested group references into the concrete accounts and service
accounts a group should list. Most directories do not understand recursive
membership, so the flattening is computed here.
"""

import logging
from dataclasses import dataclass
from typing import Dict, List, Mapping, Set, Tuple

from ldap_enforcer.model import (
    Account,
    EntityKind,
    Group,
    Locations,
    Member,
    ServiceAccount,
)

logger = logging.getLogger(__name__)

CYCLE_TRUNCATE = 'truncate'
CYCLE_ERROR = 'error'
CYCLE_POLICIES = (CYCLE_TRUNCATE, CYCLE_ERROR)


class MembershipCycleError(Exception):
    """Raised for a nested group cycle when the cycle policy is 'error'."""

    def __init__(self, path: List[str]):
        self.path = path
        super().__init__("Nested group cycle: " + " -> ".join(path))


@dataclass(frozen=True)
class ReferenceWarning:
    """A group references an account, service account or group that is not configured."""

    group: str
    kind: EntityKind
    reference: str

    def __str__(self):
        return f"Group {self.group} references unknown {self.kind.value} {self.reference}"


def resolve_members(
    group_name: str,
    groups: Mapping[str, Group],
    accounts: Mapping[str, Account],
    service_accounts: Mapping[str, ServiceAccount],
    locations: Locations,
    cycle_policy: str = CYCLE_TRUNCATE,
) -> Tuple[List[Member], List[ReferenceWarning]]:
    """
    Resolve every concrete member of a group.

    Args:
        group_name: Group to resolve
        groups: All configured groups
        accounts: All configured accounts
        service_accounts: All configured service accounts
        locations: Managed containers used to build member DNs
        cycle_policy: 'truncate' stops a branch that re-enters a group still
            being expanded; 'error' raises MembershipCycleError instead

    Returns:
        Tuple of (members sorted by DN, reference warnings)
    """
    if cycle_policy not in CYCLE_POLICIES:
        raise ValueError(f"Unknown cycle policy: {cycle_policy}")

    members: Dict[str, Member] = {}
    warnings: List[ReferenceWarning] = []
    if group_name not in groups:
        return [], warnings

    _collect(group_name, groups, accounts, service_accounts, locations,
             cycle_policy, [], set(), members, warnings)
    return [members[dn] for dn in sorted(members)], warnings


def _collect(
    group_name: str,
    groups: Mapping[str, Group],
    accounts: Mapping[str, Account],
    service_accounts: Mapping[str, ServiceAccount],
    locations: Locations,
    cycle_policy: str,
    stack: List[str],
    visited: Set[str],
    members: Dict[str, Member],
    warnings: List[ReferenceWarning],
):
    group = groups[group_name]
    stack.append(group_name)
    visited.add(group_name)

    for username in group.accounts:
        account = accounts.get(username)
        if account is None:
            warnings.append(ReferenceWarning(group_name, EntityKind.ACCOUNT, username))
            continue
        dn = locations.account_dn(username)
        members.setdefault(dn, Member(dn, EntityKind.ACCOUNT, username, account.is_posix))

    for username in group.service_accounts:
        service_account = service_accounts.get(username)
        if service_account is None:
            warnings.append(ReferenceWarning(group_name, EntityKind.SERVICE_ACCOUNT, username))
            continue
        dn = locations.service_account_dn(username)
        members.setdefault(dn, Member(dn, EntityKind.SERVICE_ACCOUNT, username,
                                      service_account.is_posix))

    for nested in group.groups:
        if nested not in groups:
            warnings.append(ReferenceWarning(group_name, EntityKind.GROUP, nested))
            continue
        if nested in stack:
            if cycle_policy == CYCLE_ERROR:
                raise MembershipCycleError(stack[stack.index(nested):] + [nested])
            logger.debug(f"Nested group cycle at {group_name} -> {nested}, truncating branch")
            continue
        if nested in visited:
            continue
        _collect(nested, groups, accounts, service_accounts, locations,
                 cycle_policy, stack, visited, members, warnings)

    stack.pop()
