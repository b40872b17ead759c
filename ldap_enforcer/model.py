"""
Entity model for LDAP Enforcer.

Accounts, service accounts and groups are immutable values produced by the
configuration loader. This module also holds the managed container locations
and the small derivation rules (surname, home directory, POSIX-ness) that the
attribute layer builds on.
"""

import logging
from dataclasses import dataclass
from enum import Enum
from typing import List, Optional, Tuple

from ldap3.core.exceptions import LDAPInvalidDnError
from ldap3.utils.dn import escape_rdn, parse_dn

logger = logging.getLogger(__name__)

NO_HOME_DIRECTORY = '/nonexistent'


class EntityKind(str, Enum):
    """Kinds of managed directory objects."""

    ACCOUNT = 'account'
    SERVICE_ACCOUNT = 'service_account'
    GROUP = 'group'


class Action(str, Enum):
    """Directory mutations produced by the differ."""

    CREATE = 'create'
    MODIFY = 'modify'
    DELETE = 'delete'


def surname_from_display_name(display_name: str) -> str:
    """Return the last whitespace-delimited token of a display name."""
    words = display_name.split()
    return words[-1] if words else ''


def home_directory(username: str) -> str:
    """POSIX home directory for a username."""
    if not username:
        return NO_HOME_DIRECTORY
    return f"/home/{username}"


@dataclass(frozen=True)
class Account:
    """A person account."""

    username: str
    display_name: str
    given_name: Optional[str] = None
    surname: Optional[str] = None
    mail: Optional[str] = None
    posix: Optional[Tuple[int, int]] = None

    @property
    def is_posix(self) -> bool:
        return self.posix is not None

    @property
    def uid_number(self) -> Optional[int]:
        return self.posix[0] if self.posix else None

    @property
    def gid_number(self) -> Optional[int]:
        return self.posix[1] if self.posix else None

    @property
    def effective_surname(self) -> str:
        if self.surname:
            return self.surname
        return surname_from_display_name(self.display_name)


@dataclass(frozen=True)
class ServiceAccount:
    """A non-human account. Its surname is always its username."""

    username: str
    display_name: str
    given_name: Optional[str] = None
    description: Optional[str] = None
    mail: Optional[str] = None
    posix: Optional[Tuple[int, int]] = None

    @property
    def is_posix(self) -> bool:
        return self.posix is not None

    @property
    def uid_number(self) -> Optional[int]:
        return self.posix[0] if self.posix else None

    @property
    def gid_number(self) -> Optional[int]:
        return self.posix[1] if self.posix else None

    @property
    def effective_surname(self) -> str:
        return self.username


@dataclass(frozen=True)
class Group:
    """
    A group with direct account, service account and nested group references.

    Nested groups contribute their members, never themselves.
    """

    name: str
    description: str
    posix_gid: Optional[int] = None
    accounts: Tuple[str, ...] = ()
    service_accounts: Tuple[str, ...] = ()
    groups: Tuple[str, ...] = ()

    @property
    def is_posix(self) -> bool:
        return self.posix_gid is not None


@dataclass(frozen=True)
class Member:
    """A concrete group member produced by the membership resolver."""

    dn: str
    kind: EntityKind
    username: str
    posix: bool


@dataclass(frozen=True)
class Operation:
    """One planned directory mutation."""

    action: Action
    kind: EntityKind
    key: str
    dn: str

    def __str__(self):
        return f"{self.action.value} {self.kind.value} {self.key} ({self.dn})"


def normalize_dn(dn: str) -> str:
    """
    Normalize a DN for comparison.

    Attribute types and values are lower-cased and whitespace around RDN
    components is dropped, so that 'UID=Alice, OU=People' and 'uid=alice,ou=people'
    compare equal.
    """
    try:
        components = parse_dn(dn, strip=True)
    except LDAPInvalidDnError:
        logger.debug(f"Could not parse DN {dn!r}, comparing it verbatim")
        return dn.strip().lower()
    return ','.join(f"{attr.strip().lower()}={value.strip().lower()}"
                    for attr, value, _ in components)


def parent_dn(dn: str) -> str:
    """Return the DN of the entry directly above ``dn``."""
    try:
        components = parse_dn(dn, strip=True)
    except LDAPInvalidDnError:
        return ''
    return ','.join(f"{attr}={value}" for attr, value, _ in components[1:])


def rdn_value(dn: str) -> str:
    """Return the value of the first RDN of ``dn``."""
    try:
        components = parse_dn(dn, strip=True)
    except LDAPInvalidDnError:
        return ''
    return components[0][1] if components else ''


def is_child_of(dn: str, container: str) -> bool:
    """True if ``dn`` sits directly below ``container``."""
    parent = parent_dn(dn)
    return bool(parent) and normalize_dn(parent) == normalize_dn(container)


def is_within(dn: str, container: str) -> bool:
    """True if ``dn`` is ``container`` or anywhere below it."""
    normalized = normalize_dn(dn)
    base = normalize_dn(container)
    return normalized == base or normalized.endswith(',' + base)


@dataclass(frozen=True)
class Locations:
    """The three managed containers. Everything below them is owned by this tool."""

    people: str
    service_accounts: str
    groups: str

    def container_for(self, kind: EntityKind) -> str:
        return {
            EntityKind.ACCOUNT: self.people,
            EntityKind.SERVICE_ACCOUNT: self.service_accounts,
            EntityKind.GROUP: self.groups,
        }[kind]

    def containers(self) -> List[Tuple[EntityKind, str]]:
        return [(kind, self.container_for(kind)) for kind in EntityKind]

    def account_dn(self, username: str) -> str:
        return f"uid={escape_rdn(username)},{self.people}"

    def service_account_dn(self, username: str) -> str:
        return f"uid={escape_rdn(username)},{self.service_accounts}"

    def group_dn(self, name: str) -> str:
        return f"cn={escape_rdn(name)},{self.groups}"

    def dn_for(self, kind: EntityKind, key: str) -> str:
        if kind is EntityKind.ACCOUNT:
            return self.account_dn(key)
        if kind is EntityKind.SERVICE_ACCOUNT:
            return self.service_account_dn(key)
        return self.group_dn(key)

    def is_managed(self, dn: str) -> bool:
        """True if ``dn`` lives inside any managed container."""
        return any(is_within(dn, container) for _, container in self.containers())
