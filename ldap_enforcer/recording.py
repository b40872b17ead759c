"""
In-memory recording directory gateway.

Keeps entries in a dictionary and records every mutation instead of touching a
real directory. Given a backing gateway it first snapshots the managed
containers from it, which is how dry-run mode sees the live state without ever
writing to it.
"""

import logging
import re
from dataclasses import dataclass, field
from typing import Dict, Iterable, List, Optional

from ldap_enforcer.gateway import (
    BASE,
    LEVEL,
    SUBTREE,
    DirectoryGateway,
    Entry,
    EntryExistsError,
    NotFoundError,
    SchemaViolationError,
)
from ldap_enforcer.model import is_child_of, is_within, normalize_dn

logger = logging.getLogger(__name__)

_SIMPLE_FILTER = re.compile(r'^\(\s*([A-Za-z][\w-]*)\s*=\s*([^()]*)\)$')


@dataclass(frozen=True)
class RecordedOperation:
    """A mutation the recording gateway received."""

    action: str
    dn: str
    attributes: Dict[str, List[str]] = field(default_factory=dict)


def _copy_attributes(attributes: Dict[str, Iterable]) -> Dict[str, List[str]]:
    return {name: [str(value) for value in values] for name, values in attributes.items()}


def _values(attributes: Dict[str, List[str]], name: str) -> List[str]:
    for candidate, values in attributes.items():
        if candidate.lower() == name.lower():
            return values
    return []


def _matches(entry: Entry, search_filter: str) -> bool:
    """Evaluate a single presence or equality filter."""
    match = _SIMPLE_FILTER.match(search_filter.strip())
    if not match:
        raise ValueError(f"Unsupported filter for in-memory search: {search_filter}")
    name, value = match.group(1), match.group(2).strip()
    values = _values(entry.attributes, name)
    if value == '*':
        return bool(values)
    return value.lower() in {str(v).lower() for v in values}


class RecordingGateway(DirectoryGateway):
    """
    Directory gateway backed by a dictionary.

    Args:
        entries: Initial directory content
        backing: Optional gateway to snapshot on connect
        snapshot_bases: DNs to copy from the backing gateway (each base entry
            and its direct children)
    """

    def __init__(self, entries: Optional[Iterable[Entry]] = None,
                 backing: Optional[DirectoryGateway] = None,
                 snapshot_bases: Iterable[str] = ()):
        self.entries: Dict[str, Entry] = {}
        self.operations: List[RecordedOperation] = []
        self.backing = backing
        self.snapshot_bases = list(snapshot_bases)
        self.connected = False
        self.connect_count = 0
        self.close_count = 0
        for entry in entries or ():
            self.add_entry(entry.dn, entry.attributes)

    def add_entry(self, dn: str, attributes: Optional[Dict[str, Iterable]] = None):
        """Seed an entry without recording an operation."""
        self.entries[normalize_dn(dn)] = Entry(dn, _copy_attributes(attributes or {}))

    def connect(self) -> None:
        self.connect_count += 1
        if self.backing is not None:
            self._snapshot()
        self.connected = True

    def _snapshot(self):
        with self.backing:
            for base in self.snapshot_bases:
                base_entry = self.backing.get(base)
                if base_entry is None:
                    logger.debug(f"Snapshot base {base} does not exist")
                    continue
                self.add_entry(base_entry.dn, base_entry.attributes)
                for entry in self.backing.search(base, scope=LEVEL):
                    self.add_entry(entry.dn, entry.attributes)
        logger.info(f"Snapshot taken of {len(self.entries)} entries for dry run")

    def close(self) -> None:
        if self.connected:
            self.close_count += 1
        self.connected = False

    def exists(self, dn: str) -> bool:
        return normalize_dn(dn) in self.entries

    def search(self, base: str, search_filter: str = '(objectClass=*)',
               scope: str = LEVEL, attributes: Optional[List[str]] = None) -> List[Entry]:
        if not self.exists(base):
            raise NotFoundError(f"No such object: {base}", dn=base)

        if scope == BASE:
            candidates = [self.entries[normalize_dn(base)]]
        elif scope == LEVEL:
            candidates = [e for e in self.entries.values() if is_child_of(e.dn, base)]
        elif scope == SUBTREE:
            candidates = [e for e in self.entries.values() if is_within(e.dn, base)]
        else:
            raise ValueError(f"Unknown search scope: {scope}")

        results = []
        for entry in sorted(candidates, key=lambda e: normalize_dn(e.dn)):
            if not _matches(entry, search_filter):
                continue
            if attributes:
                wanted = {name.lower() for name in attributes}
                entry = Entry(entry.dn, {name: list(values)
                                         for name, values in entry.attributes.items()
                                         if name.lower() in wanted})
            results.append(entry)
        return results

    def create(self, dn: str, attributes: Dict[str, List[str]]) -> None:
        if self.exists(dn):
            raise EntryExistsError(f"Entry already exists: {dn}", dn=dn)
        stored = {name: values for name, values in _copy_attributes(attributes).items() if values}
        object_classes = {value.lower() for value in _values(stored, 'objectClass')}
        if 'groupofnames' in object_classes and not _values(stored, 'member'):
            raise SchemaViolationError(f"groupOfNames requires at least one member: {dn}", dn=dn)
        self.operations.append(RecordedOperation('create', dn, _copy_attributes(attributes)))
        self.entries[normalize_dn(dn)] = Entry(dn, stored)

    def replace(self, dn: str, attributes: Dict[str, List[str]]) -> None:
        key = normalize_dn(dn)
        if key not in self.entries:
            raise NotFoundError(f"No such object: {dn}", dn=dn)
        current = self.entries[key]
        merged = {name: list(values) for name, values in current.attributes.items()}
        for name, values in _copy_attributes(attributes).items():
            for existing in [n for n in merged if n.lower() == name.lower()]:
                del merged[existing]
            if values:
                merged[name] = values
        object_classes = {value.lower() for value in _values(merged, 'objectClass')}
        if 'groupofnames' in object_classes and not _values(merged, 'member'):
            raise SchemaViolationError(f"groupOfNames requires at least one member: {dn}", dn=dn)
        self.operations.append(RecordedOperation('replace', dn, _copy_attributes(attributes)))
        self.entries[key] = Entry(current.dn, merged)

    def delete(self, dn: str) -> None:
        key = normalize_dn(dn)
        if key not in self.entries:
            raise NotFoundError(f"No such object: {dn}", dn=dn)
        self.operations.append(RecordedOperation('delete', dn))
        del self.entries[key]

    def operations_for(self, action: str) -> List[RecordedOperation]:
        return [op for op in self.operations if op.action == action]

    def clear_operations(self):
        self.operations = []
