#!/usr/bin/env python3
"""
Unit tests for the entity model and DN helpers.
"""

import os
import sys
import unittest

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ldap_enforcer.model import (
    Account,
    Action,
    EntityKind,
    Group,
    Locations,
    Operation,
    ServiceAccount,
    home_directory,
    is_child_of,
    is_within,
    normalize_dn,
    parent_dn,
    rdn_value,
    surname_from_display_name,
)

LOCATIONS = Locations(
    people='ou=people,dc=example,dc=com',
    service_accounts='ou=services,dc=example,dc=com',
    groups='ou=groups,dc=example,dc=com',
)


class TestDerivations(unittest.TestCase):
    """Surname and home directory rules."""

    def test_surname_is_last_token_of_display_name(self):
        self.assertEqual(surname_from_display_name('Alice B. Liddell'), 'Liddell')
        self.assertEqual(surname_from_display_name('Cher'), 'Cher')
        self.assertEqual(surname_from_display_name('  Spaced   Out  '), 'Out')

    def test_surname_of_empty_display_name(self):
        self.assertEqual(surname_from_display_name(''), '')

    def test_explicit_surname_wins(self):
        account = Account('alice', 'Alice Liddell', surname='Pleasance')
        self.assertEqual(account.effective_surname, 'Pleasance')

    def test_derived_surname(self):
        account = Account('alice', 'Alice Liddell')
        self.assertEqual(account.effective_surname, 'Liddell')

    def test_service_account_surname_is_username(self):
        service_account = ServiceAccount('backup', 'Backup Robot')
        self.assertEqual(service_account.effective_surname, 'backup')

    def test_home_directory(self):
        self.assertEqual(home_directory('alice'), '/home/alice')
        self.assertEqual(home_directory(''), '/nonexistent')


class TestEntities(unittest.TestCase):
    """Entity value behaviour."""

    def test_posix_is_all_or_nothing(self):
        posix = Account('alice', 'Alice Liddell', posix=(1001, 100))
        plain = Account('bob', 'Bob Builder')

        self.assertTrue(posix.is_posix)
        self.assertEqual(posix.uid_number, 1001)
        self.assertEqual(posix.gid_number, 100)
        self.assertFalse(plain.is_posix)
        self.assertIsNone(plain.uid_number)
        self.assertIsNone(plain.gid_number)

    def test_group_posix(self):
        self.assertTrue(Group('admins', 'Admins', posix_gid=500).is_posix)
        self.assertFalse(Group('admins', 'Admins').is_posix)

    def test_entities_are_immutable(self):
        account = Account('alice', 'Alice Liddell')
        with self.assertRaises(AttributeError):
            account.display_name = 'Someone Else'

    def test_operation_str(self):
        operation = Operation(Action.CREATE, EntityKind.ACCOUNT, 'alice',
                              'uid=alice,ou=people,dc=example,dc=com')
        self.assertEqual(str(operation), 'create account alice (uid=alice,ou=people,dc=example,dc=com)')


class TestDnHelpers(unittest.TestCase):
    """DN parsing and comparison."""

    def test_normalize_dn_is_case_insensitive(self):
        self.assertEqual(normalize_dn('UID=Alice,OU=People,DC=Example,DC=com'),
                         normalize_dn('uid=alice,ou=people,dc=example,dc=com'))

    def test_normalize_dn_ignores_spaces_between_components(self):
        self.assertEqual(normalize_dn('uid=alice, ou=people, dc=example, dc=com'),
                         'uid=alice,ou=people,dc=example,dc=com')

    def test_parent_and_rdn(self):
        dn = 'uid=alice,ou=people,dc=example,dc=com'
        self.assertEqual(parent_dn(dn), 'ou=people,dc=example,dc=com')
        self.assertEqual(rdn_value(dn), 'alice')

    def test_is_child_of(self):
        container = 'ou=people,dc=example,dc=com'
        self.assertTrue(is_child_of('uid=alice,ou=people,dc=example,dc=com', container))
        self.assertTrue(is_child_of('UID=alice,OU=People,dc=example,dc=com', container))
        self.assertFalse(is_child_of('uid=alice,ou=sub,ou=people,dc=example,dc=com', container))
        self.assertFalse(is_child_of('uid=alice,ou=other,dc=example,dc=com', container))
        self.assertFalse(is_child_of(container, container))

    def test_is_within(self):
        container = 'ou=people,dc=example,dc=com'
        self.assertTrue(is_within(container, container))
        self.assertTrue(is_within('uid=alice,ou=sub,ou=people,dc=example,dc=com', container))
        self.assertFalse(is_within('uid=alice,ou=otherpeople,dc=example,dc=com', container))


class TestLocations(unittest.TestCase):
    """Managed container locations."""

    def test_entity_dns(self):
        self.assertEqual(LOCATIONS.account_dn('alice'), 'uid=alice,ou=people,dc=example,dc=com')
        self.assertEqual(LOCATIONS.service_account_dn('backup'), 'uid=backup,ou=services,dc=example,dc=com')
        self.assertEqual(LOCATIONS.group_dn('admins'), 'cn=admins,ou=groups,dc=example,dc=com')

    def test_dn_for_matches_kind(self):
        self.assertEqual(LOCATIONS.dn_for(EntityKind.ACCOUNT, 'x'), LOCATIONS.account_dn('x'))
        self.assertEqual(LOCATIONS.dn_for(EntityKind.SERVICE_ACCOUNT, 'x'), LOCATIONS.service_account_dn('x'))
        self.assertEqual(LOCATIONS.dn_for(EntityKind.GROUP, 'x'), LOCATIONS.group_dn('x'))

    def test_rdn_values_are_escaped(self):
        dn = LOCATIONS.group_dn('a,b')
        self.assertTrue(dn.startswith('cn=a\\,b,'))
        self.assertTrue(is_child_of(dn, LOCATIONS.groups))

    def test_containers_in_kind_order(self):
        self.assertEqual(LOCATIONS.containers(), [
            (EntityKind.ACCOUNT, LOCATIONS.people),
            (EntityKind.SERVICE_ACCOUNT, LOCATIONS.service_accounts),
            (EntityKind.GROUP, LOCATIONS.groups),
        ])

    def test_is_managed(self):
        self.assertTrue(LOCATIONS.is_managed('uid=alice,ou=people,dc=example,dc=com'))
        self.assertTrue(LOCATIONS.is_managed('cn=admins,ou=groups,dc=example,dc=com'))
        self.assertFalse(LOCATIONS.is_managed('uid=alice,ou=legacy,dc=example,dc=com'))


if __name__ == '__main__':
    unittest.main()
