"""
State diffing.

Compares the desired entities from configuration with the managed entries
observed in the directory and sorts every key into create, modify or delete.
Only direct children of the managed containers are ever considered; anything
else in the directory is invisible here.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Mapping

from ldap_enforcer.model import (
    Action,
    EntityKind,
    Locations,
    Operation,
    is_child_of,
    normalize_dn,
    rdn_value,
)

logger = logging.getLogger(__name__)


@dataclass
class KindDiff:
    """Create/modify/delete sets for one entity kind."""

    kind: EntityKind
    to_create: List[str] = field(default_factory=list)
    to_modify: List[str] = field(default_factory=list)
    to_delete: List[str] = field(default_factory=list)

    def operations(self, desired: Mapping[str, str]) -> List[Operation]:
        ops = [Operation(Action.CREATE, self.kind, key, desired[key]) for key in self.to_create]
        ops += [Operation(Action.MODIFY, self.kind, key, desired[key]) for key in self.to_modify]
        ops += [Operation(Action.DELETE, self.kind, rdn_value(dn), dn) for dn in self.to_delete]
        return ops


@dataclass
class StateDiff:
    """Per-kind diffs for one reconciliation pass."""

    diffs: Dict[EntityKind, KindDiff]
    desired: Dict[EntityKind, Dict[str, str]]

    def __getitem__(self, kind: EntityKind) -> KindDiff:
        return self.diffs[kind]

    def operations(self) -> List[Operation]:
        ops = []
        for kind in EntityKind:
            ops.extend(self.diffs[kind].operations(self.desired[kind]))
        return ops


def diff_kind(kind: EntityKind, desired: Mapping[str, str],
              observed: Iterable[str], container: str) -> KindDiff:
    """
    Diff one kind.

    Args:
        kind: Entity kind being compared
        desired: Configured key -> DN
        observed: DNs found in the directory
        container: Managed container for this kind

    Returns:
        KindDiff with sorted keys to create/modify and sorted DNs to delete
    """
    observed_by_norm = {}
    for dn in observed:
        if not is_child_of(dn, container):
            logger.debug(f"Ignoring {dn}: not a direct child of managed container {container}")
            continue
        observed_by_norm[normalize_dn(dn)] = dn

    result = KindDiff(kind)
    for key in sorted(desired):
        if normalize_dn(desired[key]) in observed_by_norm:
            result.to_modify.append(key)
        else:
            result.to_create.append(key)

    wanted = {normalize_dn(dn) for dn in desired.values()}
    result.to_delete = sorted(dn for norm, dn in observed_by_norm.items() if norm not in wanted)
    return result


def desired_dns(config, locations: Locations) -> Dict[EntityKind, Dict[str, str]]:
    """Key -> DN maps for every configured entity."""
    return {
        EntityKind.ACCOUNT: {key: locations.account_dn(key) for key in config.accounts},
        EntityKind.SERVICE_ACCOUNT: {key: locations.service_account_dn(key)
                                     for key in config.service_accounts},
        EntityKind.GROUP: {key: locations.group_dn(key) for key in config.groups},
    }


def diff_state(config, observed: Mapping[EntityKind, Iterable[str]]) -> StateDiff:
    """
    Diff every kind of a configuration against observed managed DNs.

    Args:
        config: Loaded configuration (accounts, service_accounts, groups, locations)
        observed: Observed DNs per kind, taken from that kind's managed container

    Returns:
        StateDiff with one KindDiff per entity kind
    """
    locations = config.locations
    desired = desired_dns(config, locations)
    diffs = {
        kind: diff_kind(kind, desired[kind], observed.get(kind, ()), locations.container_for(kind))
        for kind in EntityKind
    }
    for kind, kind_diff in diffs.items():
        logger.debug(f"{kind.value}: {len(kind_diff.to_create)} to create, "
                     f"{len(kind_diff.to_modify)} to modify, {len(kind_diff.to_delete)} to delete")
    return StateDiff(diffs, desired)
