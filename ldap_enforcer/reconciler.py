"""
Reconciliation of the directory against the desired configuration.

One pass runs these stages in order, stopping at the first stage that fails:

1. ensure_containers: create any missing managed container
2. observe: read every entry directly below each container
3. apply_accounts: create, then update, accounts and service accounts
4. apply_groups: write groups in dependency order with flattened members
5. delete_stale: delete groups, then accounts, then service accounts that are
   no longer configured

Every group write finishes before any account is deleted, so swapping one
member for another in a single edit never leaves a group empty. Nothing is
rolled back when a stage fails; the next pass converges from wherever the
directory was left.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime
from typing import Callable, Dict, List, Optional

from ldap_enforcer.attributes import (
    account_attributes,
    attribute_differences,
    container_attributes,
    creation_attributes,
    group_attributes,
    replacement_attributes,
    service_account_attributes,
    with_unmanaged_members,
)
from ldap_enforcer.differ import StateDiff, diff_state
from ldap_enforcer.gateway import (
    LEVEL,
    DirectoryError,
    DirectoryGateway,
    Entry,
    EntryExistsError,
    NotFoundError,
    SchemaViolationError,
    TransportError,
)
from ldap_enforcer.graph import order_groups
from ldap_enforcer.logging_setup import audit_logger
from ldap_enforcer.membership import MembershipCycleError, ReferenceWarning, resolve_members
from ldap_enforcer.model import EntityKind, is_child_of, normalize_dn

logger = logging.getLogger(__name__)

CONTAINER = 'container'

STAGE_ENSURE_CONTAINERS = 'ensure_containers'
STAGE_OBSERVE = 'observe'
STAGE_APPLY_ACCOUNTS = 'apply_accounts'
STAGE_APPLY_GROUPS = 'apply_groups'
STAGE_DELETE_STALE = 'delete_stale'


class ReconcileError(Exception):
    """A stage of a reconciliation pass failed; the remaining stages were skipped."""

    def __init__(self, stage: str, errors: List[Exception]):
        self.stage = stage
        self.errors = list(errors)
        self.result: Optional['PassResult'] = None
        super().__init__(f"Stage {stage} failed with {len(self.errors)} error(s): {self.errors[0]}")


@dataclass(frozen=True)
class AppliedChange:
    """A mutation issued during a pass (or, in a dry run, one that would be)."""

    action: str
    kind: str
    dn: str
    attributes: Dict[str, List[str]] = field(default_factory=dict)

    def describe(self) -> str:
        lines = [f"{self.action} {self.kind} {self.dn}"]
        for name in sorted(self.attributes, key=str.lower):
            values = self.attributes[name]
            if not values:
                lines.append(f"    {name}: (removed)")
            for value in values:
                lines.append(f"    {name}: {value}")
        return "\n".join(lines)


@dataclass
class PassResult:
    """Outcome of one reconciliation pass."""

    dry_run: bool = False
    started_at: datetime = field(default_factory=datetime.now)
    finished_at: Optional[datetime] = None
    changes: List[AppliedChange] = field(default_factory=list)
    warnings: List[ReferenceWarning] = field(default_factory=list)
    stats: Dict[str, int] = field(default_factory=lambda: {
        'containers_created': 0,
        'accounts_created': 0,
        'accounts_modified': 0,
        'accounts_unchanged': 0,
        'accounts_deleted': 0,
        'service_accounts_created': 0,
        'service_accounts_modified': 0,
        'service_accounts_unchanged': 0,
        'service_accounts_deleted': 0,
        'groups_created': 0,
        'groups_modified': 0,
        'groups_unchanged': 0,
        'groups_deleted': 0,
        'groups_skipped': 0,
    })
    error: Optional[Exception] = None

    @property
    def success(self) -> bool:
        return self.error is None

    @property
    def runtime_seconds(self) -> float:
        if self.finished_at is None:
            return 0.0
        return (self.finished_at - self.started_at).total_seconds()

    def changes_for(self, action: str) -> List[AppliedChange]:
        return [change for change in self.changes if change.action == action]

    def log_summary(self):
        """Log final pass statistics."""
        runtime = self.runtime_seconds
        runtime_str = f"{runtime:.2f} seconds"
        if runtime > 60:
            minutes = int(runtime // 60)
            seconds = runtime % 60
            runtime_str = f"{minutes}m {seconds:.1f}s"

        title = "Dry Run Summary" if self.dry_run else "Reconciliation Summary"
        logger.info(f"=== {title} ===")
        logger.info(f"Total runtime: {runtime_str}")
        logger.info(f"Changes {'planned' if self.dry_run else 'applied'}: {len(self.changes)}")
        logger.info(f"Containers created: {self.stats['containers_created']}")
        for kind in EntityKind:
            prefix = f"{kind.value}s"
            label = prefix.replace('_', ' ').capitalize()
            logger.info(f"{label}: {self.stats[prefix + '_created']} created, "
                        f"{self.stats[prefix + '_modified']} modified, "
                        f"{self.stats[prefix + '_unchanged']} unchanged, "
                        f"{self.stats[prefix + '_deleted']} deleted")
        logger.info(f"Groups skipped: {self.stats['groups_skipped']}")
        logger.info(f"Reference warnings: {len(self.warnings)}")
        if self.error is not None:
            logger.error(f"Pass failed: {self.error}")


class Reconciler:
    """
    Drives one reconciliation pass per call to reconcile().

    Args:
        gateway_factory: Builds a fresh, unconnected gateway for a configuration
        dry_run: Label results and audit records as planned rather than applied
    """

    def __init__(self, gateway_factory: Callable[..., DirectoryGateway], dry_run: bool = False):
        self.gateway_factory = gateway_factory
        self.dry_run = dry_run

    def reconcile(self, config) -> PassResult:
        """
        Run one pass. The gateway is connected at the start and closed on every path.

        Returns:
            PassResult for a successful pass

        Raises:
            ReconcileError: If a stage failed (the partial result is attached)
            TransportError: If the directory is unreachable or the connection broke
            ConfigurationError: If the bind password cannot be resolved
        """
        result = PassResult(dry_run=self.dry_run)
        logger.info(f"Starting {'dry run' if self.dry_run else 'reconciliation'} pass")

        try:
            with self.gateway_factory(config) as gateway:
                self._run_stages(gateway, config, result)
        except ReconcileError as e:
            e.result = result
            result.error = e
            raise
        except DirectoryError as e:
            result.error = e
            raise
        finally:
            result.finished_at = datetime.now()
            result.log_summary()

        return result

    def _run_stages(self, gateway: DirectoryGateway, config, result: PassResult):
        self._ensure_containers(gateway, config, result)
        observed = self._observe(gateway, config)
        diff = diff_state(config, {kind: [entry.dn for entry in entries.values()]
                                   for kind, entries in observed.items()})
        for operation in diff.operations():
            logger.debug(f"Planned: {operation}")
        self._apply_accounts(gateway, config, diff, observed, result)
        self._apply_groups(gateway, config, diff, observed, result)
        self._delete_stale(gateway, diff, result)

    def _record(self, result: PassResult, action: str, kind: str, dn: str,
                attributes: Optional[Dict[str, List[str]]] = None):
        result.changes.append(AppliedChange(action, kind, dn, dict(attributes or {})))
        audit_logger.log_change(action, kind, dn, True, self.dry_run)
        logger.info(f"{'Would ' + action if self.dry_run else action.capitalize()} {kind} {dn}")

    def _attempt(self, errors: List[Exception], description: str, func, *args):
        """Run one item of a stage, collecting its failure instead of stopping the stage."""
        try:
            func(*args)
        except TransportError:
            raise
        except (DirectoryError, MembershipCycleError) as e:
            logger.error(f"Failed to {description}: {e}")
            errors.append(e)

    def _finish_stage(self, stage: str, errors: List[Exception]):
        if errors:
            raise ReconcileError(stage, errors) from errors[0]
        logger.debug(f"Stage {stage} completed")

    def _ensure_containers(self, gateway: DirectoryGateway, config, result: PassResult):
        for kind, container in config.locations.containers():
            try:
                if gateway.exists(container):
                    continue
                attrs = container_attributes(container)
                gateway.create(container, attrs)
            except EntryExistsError:
                continue
            except TransportError:
                raise
            except DirectoryError as e:
                logger.error(f"Failed to create {kind.value} container {container}: {e}")
                raise ReconcileError(STAGE_ENSURE_CONTAINERS, [e]) from e
            result.stats['containers_created'] += 1
            self._record(result, 'create', CONTAINER, container, attrs)

    def _observe(self, gateway: DirectoryGateway, config) -> Dict[EntityKind, Dict[str, Entry]]:
        """Read the direct children of every managed container, keyed by normalized DN."""
        observed = {}
        for kind, container in config.locations.containers():
            try:
                entries = gateway.search(container, scope=LEVEL)
            except TransportError:
                raise
            except DirectoryError as e:
                raise ReconcileError(STAGE_OBSERVE, [e]) from e
            observed[kind] = {normalize_dn(entry.dn): entry
                              for entry in entries if is_child_of(entry.dn, container)}
            logger.debug(f"Observed {len(observed[kind])} entries in {container}")
        return observed

    def _write(self, gateway: DirectoryGateway, result: PassResult, kind: EntityKind, key: str,
               dn: str, attrs: Dict[str, List[str]], observed: Optional[Entry]):
        """
        Create or replace one entry.

        A create that finds the entry already there becomes a replace, and a
        replace that finds it gone becomes a create.
        """
        prefix = f"{kind.value}s"
        replacement = replacement_attributes(kind, attrs)

        if observed is not None:
            differences = attribute_differences(replacement, observed.attributes)
            if not differences:
                result.stats[prefix + '_unchanged'] += 1
                return
            logger.debug(f"{dn} differs in: {', '.join(sorted(differences))}")
            try:
                gateway.replace(dn, replacement)
            except NotFoundError:
                logger.info(f"{dn} disappeared since it was observed, creating it")
            else:
                result.stats[prefix + '_modified'] += 1
                self._record(result, 'replace', kind.value, dn, replacement)
                return

        created = creation_attributes(kind, key, attrs)
        try:
            gateway.create(dn, created)
        except EntryExistsError:
            logger.info(f"{dn} appeared since it was observed, replacing it")
            gateway.replace(dn, replacement)
            result.stats[prefix + '_modified'] += 1
            self._record(result, 'replace', kind.value, dn, replacement)
            return
        result.stats[prefix + '_created'] += 1
        self._record(result, 'create', kind.value, dn, created)

    def _apply_accounts(self, gateway: DirectoryGateway, config, diff: StateDiff,
                        observed: Dict[EntityKind, Dict[str, Entry]], result: PassResult):
        errors: List[Exception] = []
        sources = (
            (EntityKind.ACCOUNT, config.accounts, account_attributes),
            (EntityKind.SERVICE_ACCOUNT, config.service_accounts, service_account_attributes),
        )
        for kind, entities, build in sources:
            kind_diff = diff[kind]
            desired = diff.desired[kind]
            for key in kind_diff.to_create + kind_diff.to_modify:
                dn = desired[key]
                self._attempt(errors, f"apply {kind.value} {key}", self._write, gateway, result,
                              kind, key, dn, build(entities[key]), observed[kind].get(normalize_dn(dn)))
        self._finish_stage(STAGE_APPLY_ACCOUNTS, errors)

    def _apply_groups(self, gateway: DirectoryGateway, config, diff: StateDiff,
                      observed: Dict[EntityKind, Dict[str, Entry]], result: PassResult):
        errors: List[Exception] = []
        seen_warnings = set(result.warnings)
        for name in order_groups(config.groups):
            self._attempt(errors, f"apply group {name}", self._apply_group, gateway, config,
                          name, observed[EntityKind.GROUP], result, seen_warnings)
        self._finish_stage(STAGE_APPLY_GROUPS, errors)

    def _apply_group(self, gateway: DirectoryGateway, config, name: str,
                     observed_groups: Dict[str, Entry], result: PassResult, seen_warnings: set):
        locations = config.locations
        dn = locations.group_dn(name)
        members, warnings = resolve_members(name, config.groups, config.accounts,
                                            config.service_accounts, locations,
                                            config.membership_cycles)
        for warning in warnings:
            if warning not in seen_warnings:
                seen_warnings.add(warning)
                result.warnings.append(warning)
                logger.warning(str(warning))

        current = observed_groups.get(normalize_dn(dn))

        if not members:
            if current is None:
                logger.info(f"Group {name} has no members, not creating it")
                result.stats['groups_skipped'] += 1
                return
            logger.info(f"Group {name} has no members, deleting it")
            try:
                gateway.delete(dn)
            except NotFoundError:
                logger.debug(f"Group {dn} already gone")
                return
            result.stats['groups_deleted'] += 1
            self._record(result, 'delete', EntityKind.GROUP.value, dn)
            return

        attrs = group_attributes(config.groups[name], members)
        if current is not None:
            attrs = with_unmanaged_members(attrs, current.attributes, locations.is_managed)

        try:
            self._write(gateway, result, EntityKind.GROUP, name, dn, attrs, current)
        except SchemaViolationError as e:
            logger.warning(f"Directory rejected group {name}, skipping it: {e}")
            result.stats['groups_skipped'] += 1

    def _delete_stale(self, gateway: DirectoryGateway, diff: StateDiff, result: PassResult):
        errors: List[Exception] = []
        for kind in (EntityKind.GROUP, EntityKind.ACCOUNT, EntityKind.SERVICE_ACCOUNT):
            for dn in diff[kind].to_delete:
                self._attempt(errors, f"delete {kind.value} {dn}", self._delete, gateway, kind, dn, result)
        self._finish_stage(STAGE_DELETE_STALE, errors)

    def _delete(self, gateway: DirectoryGateway, kind: EntityKind, dn: str, result: PassResult):
        try:
            gateway.delete(dn)
        except NotFoundError:
            logger.debug(f"{dn} already gone")
            return
        result.stats[f"{kind.value}s_deleted"] += 1
        self._record(result, 'delete', kind.value, dn)
