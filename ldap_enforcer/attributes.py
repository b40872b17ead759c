"""
Directory attribute derivation.

Maps accounts, service accounts and groups to the full attribute sets written
to the directory, and compares desired attribute sets against what a directory
entry currently holds.
"""

from typing import Dict, Iterable, List, Optional, Sequence, Union

from ldap_enforcer.model import (
    Account,
    EntityKind,
    Group,
    Member,
    ServiceAccount,
    home_directory,
    normalize_dn,
    rdn_value,
)

Attributes = Dict[str, List[str]]

PERSON_OBJECT_CLASSES = ['top', 'person', 'organizationalPerson', 'inetOrgPerson']
POSIX_ACCOUNT_CLASS = 'posixAccount'
GROUP_OBJECT_CLASSES = ['top', 'groupOfNames']
POSIX_GROUP_CLASS = 'posixGroup'
CONTAINER_OBJECT_CLASSES = ['top', 'organizationalUnit']

ACCOUNT_SHELL = '/bin/bash'
SERVICE_ACCOUNT_SHELL = '/usr/sbin/nologin'

# Every attribute owned per kind. A modify replaces all of them; anything the
# entity does not carry is sent empty so the directory drops it.
MANAGED_ATTRIBUTES = {
    EntityKind.ACCOUNT: (
        'objectClass', 'cn', 'sn', 'givenName', 'mail',
        'uidNumber', 'gidNumber', 'homeDirectory', 'loginShell',
    ),
    EntityKind.SERVICE_ACCOUNT: (
        'objectClass', 'cn', 'sn', 'givenName', 'mail', 'description',
        'uidNumber', 'gidNumber', 'homeDirectory', 'loginShell',
    ),
    EntityKind.GROUP: (
        'objectClass', 'cn', 'description', 'member', 'gidNumber',
    ),
}

CASE_INSENSITIVE_ATTRIBUTES = {'objectclass'}
DN_VALUED_ATTRIBUTES = {'member'}


def _posix_account_attributes(entity: Union[Account, ServiceAccount], shell: str) -> Attributes:
    return {
        'uidNumber': [str(entity.uid_number)],
        'gidNumber': [str(entity.gid_number)],
        'homeDirectory': [home_directory(entity.username)],
        'loginShell': [shell],
    }


def account_attributes(account: Account) -> Attributes:
    """Attribute set for a person account. POSIX and plain object classes never mix."""
    object_classes = list(PERSON_OBJECT_CLASSES)
    if account.is_posix:
        object_classes.append(POSIX_ACCOUNT_CLASS)

    attrs = {
        'objectClass': object_classes,
        'cn': [account.display_name],
        'sn': [account.effective_surname],
    }
    if account.given_name:
        attrs['givenName'] = [account.given_name]
    if account.mail:
        attrs['mail'] = [account.mail]
    if account.is_posix:
        attrs.update(_posix_account_attributes(account, ACCOUNT_SHELL))
    return attrs


def service_account_attributes(service_account: ServiceAccount) -> Attributes:
    """Attribute set for a service account. The username doubles as surname."""
    object_classes = list(PERSON_OBJECT_CLASSES)
    if service_account.is_posix:
        object_classes.append(POSIX_ACCOUNT_CLASS)

    attrs = {
        'objectClass': object_classes,
        'cn': [service_account.display_name],
        'sn': [service_account.effective_surname],
    }
    if service_account.given_name:
        attrs['givenName'] = [service_account.given_name]
    if service_account.description:
        attrs['description'] = [service_account.description]
    if service_account.mail:
        attrs['mail'] = [service_account.mail]
    if service_account.is_posix:
        attrs.update(_posix_account_attributes(service_account, SERVICE_ACCOUNT_SHELL))
    return attrs


def group_attributes(group: Group, members: Sequence[Member]) -> Attributes:
    """Attribute set for a group with already-resolved members."""
    object_classes = list(GROUP_OBJECT_CLASSES)
    if group.is_posix:
        object_classes.append(POSIX_GROUP_CLASS)

    attrs = {
        'objectClass': object_classes,
        'cn': [group.name],
        'description': [group.description],
        'member': sorted(member.dn for member in members),
    }
    if group.is_posix:
        attrs['gidNumber'] = [str(group.posix_gid)]
    return attrs


def container_attributes(dn: str) -> Attributes:
    """Attribute set for a managed container (organizational unit)."""
    return {
        'objectClass': list(CONTAINER_OBJECT_CLASSES),
        'ou': [rdn_value(dn)],
    }


def creation_attributes(kind: EntityKind, key: str, attrs: Attributes) -> Attributes:
    """Add the naming attribute needed only when an entry is first created."""
    created = dict(attrs)
    if kind in (EntityKind.ACCOUNT, EntityKind.SERVICE_ACCOUNT):
        created['uid'] = [key]
    return created


def replacement_attributes(kind: EntityKind, attrs: Attributes) -> Attributes:
    """
    Full replacement set for a modify.

    Managed attributes missing from ``attrs`` are included with no values, so
    a POSIX flip or a removed mail address leaves nothing stale behind.
    """
    replacement = {name: [] for name in MANAGED_ATTRIBUTES[kind]}
    replacement.update(attrs)
    return replacement


def _comparable(name: str, values: Iterable) -> set:
    lowered = name.lower()
    if lowered in CASE_INSENSITIVE_ATTRIBUTES:
        return {str(value).lower() for value in values}
    if lowered in DN_VALUED_ATTRIBUTES:
        return {normalize_dn(str(value)) for value in values}
    return {str(value) for value in values}


def _lookup(attrs: Dict[str, list], name: str) -> list:
    lowered = name.lower()
    for candidate, values in attrs.items():
        if candidate.lower() == lowered:
            if values is None:
                return []
            if isinstance(values, (list, tuple, set)):
                return list(values)
            return [values]
    return []


def attribute_differences(desired: Attributes, observed: Optional[Dict[str, list]]) -> Dict[str, tuple]:
    """
    Compare a desired attribute set against an entry's current attributes.

    Returns:
        Mapping of attribute name to (desired values, observed values) for every
        attribute that differs. Value order is ignored.
    """
    observed = observed or {}
    differences = {}
    for name, values in desired.items():
        current = _lookup(observed, name)
        if _comparable(name, values) != _comparable(name, current):
            differences[name] = (list(values), current)
    return differences


def needs_replace(desired: Attributes, observed: Optional[Dict[str, list]]) -> bool:
    """True if writing ``desired`` would change the entry."""
    return bool(attribute_differences(desired, observed))


def unmanaged_members(observed: Optional[Dict[str, list]], is_managed) -> List[str]:
    """Current member DNs that point outside every managed container."""
    return [dn for dn in _lookup(observed or {}, 'member') if not is_managed(str(dn))]


def with_unmanaged_members(attrs: Attributes, observed: Optional[Dict[str, list]], is_managed) -> Attributes:
    """Carry the observed members outside every managed container into a group's attribute set."""
    managed = {normalize_dn(dn) for dn in attrs.get('member', [])}
    extra = [str(dn) for dn in unmanaged_members(observed, is_managed) if normalize_dn(str(dn)) not in managed]
    if not extra:
        return attrs
    merged = dict(attrs)
    merged['member'] = sorted(list(attrs.get('member', [])) + extra)
    return merged
