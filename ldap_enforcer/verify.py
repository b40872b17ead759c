"""
Read-only verification of the directory against the configuration.

Reports, entity by entity, whether the directory already matches what a
reconciliation pass would write. Nothing is modified.
"""

import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional, Tuple

from ldap_enforcer.attributes import (
    account_attributes,
    attribute_differences,
    group_attributes,
    replacement_attributes,
    service_account_attributes,
    with_unmanaged_members,
)
from ldap_enforcer.differ import desired_dns, diff_kind
from ldap_enforcer.gateway import LEVEL, DirectoryGateway, Entry
from ldap_enforcer.membership import ReferenceWarning, resolve_members
from ldap_enforcer.model import EntityKind, normalize_dn

logger = logging.getLogger(__name__)

STATUS_OK = 'ok'
STATUS_MISSING = 'missing'
STATUS_DIFFERS = 'differs'
STATUS_UNEXPECTED = 'unexpected'


@dataclass(frozen=True)
class Finding:
    """Verification status of one directory entry."""

    status: str
    kind: str
    dn: str
    details: Tuple[str, ...] = ()

    @property
    def ok(self) -> bool:
        return self.status == STATUS_OK

    def __str__(self):
        mark = '✓' if self.ok else '✗'
        text = f"{mark} {self.kind} {self.dn}: {self.status}"
        for detail in self.details:
            text += f"\n    {detail}"
        return text


@dataclass
class VerificationReport:
    findings: List[Finding] = field(default_factory=list)
    warnings: List[ReferenceWarning] = field(default_factory=list)

    @property
    def in_sync(self) -> bool:
        return all(finding.ok for finding in self.findings)

    def problems(self) -> List[Finding]:
        return [finding for finding in self.findings if not finding.ok]

    def counts(self) -> Dict[str, int]:
        counts = {STATUS_OK: 0, STATUS_MISSING: 0, STATUS_DIFFERS: 0, STATUS_UNEXPECTED: 0}
        for finding in self.findings:
            counts[finding.status] += 1
        return counts

    def lines(self) -> List[str]:
        return [str(finding) for finding in self.findings]


def _describe_differences(differences: Dict[str, tuple]) -> Tuple[str, ...]:
    details = []
    for name in sorted(differences, key=str.lower):
        expected, actual = differences[name]
        details.append(f"{name}: {actual or 'not set'} (expected {expected or 'not set'})")
    return tuple(details)


def _compare(kind: EntityKind, dn: str, attrs: Dict[str, List[str]], current: Optional[Entry]) -> Finding:
    if current is None:
        return Finding(STATUS_MISSING, kind.value, dn)
    differences = attribute_differences(replacement_attributes(kind, attrs), current.attributes)
    if differences:
        return Finding(STATUS_DIFFERS, kind.value, dn, _describe_differences(differences))
    return Finding(STATUS_OK, kind.value, dn)


def verify(gateway: DirectoryGateway, config,
           only: Optional[Tuple[EntityKind, str]] = None) -> VerificationReport:
    """
    Compare the directory with the configuration.

    Args:
        gateway: Connected directory gateway
        config: Loaded configuration
        only: Restrict the report to one (kind, key)

    Returns:
        VerificationReport with one finding per container and entity
    """
    report = VerificationReport()
    locations = config.locations
    desired = desired_dns(config, locations)

    observed: Dict[EntityKind, Dict[str, Entry]] = {}
    for kind, container in locations.containers():
        if not gateway.exists(container):
            report.findings.append(Finding(STATUS_MISSING, 'container', container))
            observed[kind] = {}
            continue
        if only is None:
            report.findings.append(Finding(STATUS_OK, 'container', container))
        observed[kind] = {normalize_dn(entry.dn): entry
                          for entry in gateway.search(container, scope=LEVEL)}

    builders = {
        EntityKind.ACCOUNT: lambda key: account_attributes(config.accounts[key]),
        EntityKind.SERVICE_ACCOUNT: lambda key: service_account_attributes(config.service_accounts[key]),
    }

    seen_warnings = set()
    for kind in EntityKind:
        for key in sorted(desired[kind]):
            if only is not None and only != (kind, key):
                continue
            dn = desired[kind][key]
            current = observed[kind].get(normalize_dn(dn))

            if kind is not EntityKind.GROUP:
                report.findings.append(_compare(kind, dn, builders[kind](key), current))
                continue

            members, warnings = resolve_members(key, config.groups, config.accounts,
                                                config.service_accounts, locations,
                                                config.membership_cycles)
            for warning in warnings:
                if warning not in seen_warnings:
                    seen_warnings.add(warning)
                    report.warnings.append(warning)

            if not members:
                if current is None:
                    report.findings.append(Finding(STATUS_OK, kind.value, dn, ("no members, not created",)))
                else:
                    report.findings.append(Finding(STATUS_DIFFERS, kind.value, dn,
                                                   ("no members, should be deleted",)))
                continue

            attrs = group_attributes(config.groups[key], members)
            if current is not None:
                attrs = with_unmanaged_members(attrs, current.attributes, locations.is_managed)
            report.findings.append(_compare(kind, dn, attrs, current))

    if only is None:
        for kind, container in locations.containers():
            stale = diff_kind(kind, desired[kind], [entry.dn for entry in observed[kind].values()],
                              container).to_delete
            for dn in stale:
                report.findings.append(Finding(STATUS_UNEXPECTED, kind.value, dn, ("not in configuration",)))

    counts = report.counts()
    logger.info(f"Verification complete: {counts[STATUS_OK]} ok, {counts[STATUS_MISSING]} missing, "
                f"{counts[STATUS_DIFFERS]} differ, {counts[STATUS_UNEXPECTED]} unexpected")
    return report
