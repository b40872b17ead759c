#!/usr/bin/env python3
"""
Unit tests for the in-memory recording gateway.
"""

import os
import sys
import unittest

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ldap_enforcer.gateway import (
    BASE,
    LEVEL,
    SUBTREE,
    Entry,
    EntryExistsError,
    NotFoundError,
    SchemaViolationError,
)
from ldap_enforcer.recording import RecordedOperation, RecordingGateway

PEOPLE = 'ou=people,dc=example,dc=com'
ALICE = 'uid=alice,ou=people,dc=example,dc=com'


class TestRecordingGateway(unittest.TestCase):
    """Test cases for RecordingGateway."""

    def setUp(self):
        self.gateway = RecordingGateway()
        self.gateway.add_entry('dc=example,dc=com', {'objectClass': ['top', 'domain']})
        self.gateway.add_entry(PEOPLE, {'objectClass': ['top', 'organizationalUnit'], 'ou': ['people']})

    def test_seeding_records_nothing(self):
        self.assertEqual(self.gateway.operations, [])
        self.assertTrue(self.gateway.exists(PEOPLE))
        self.assertTrue(self.gateway.exists('OU=People,DC=example,DC=com'))

    def test_create_and_get(self):
        self.gateway.create(ALICE, {'objectClass': ['inetOrgPerson'], 'cn': ['Alice'], 'mail': []})

        entry = self.gateway.get(ALICE)
        self.assertEqual(entry.dn, ALICE)
        self.assertEqual(entry.attributes['cn'], ['Alice'])
        self.assertNotIn('mail', entry.attributes)
        self.assertEqual(self.gateway.operations, [
            RecordedOperation('create', ALICE, {'objectClass': ['inetOrgPerson'], 'cn': ['Alice'], 'mail': []})
        ])

    def test_create_existing_raises(self):
        with self.assertRaises(EntryExistsError):
            self.gateway.create(PEOPLE, {'objectClass': ['organizationalUnit']})

    def test_empty_group_of_names_rejected(self):
        with self.assertRaises(SchemaViolationError):
            self.gateway.create('cn=empty,' + PEOPLE, {'objectClass': ['top', 'groupOfNames'], 'cn': ['empty']})
        self.assertEqual(self.gateway.operations, [])

    def test_replace_merges_and_removes(self):
        self.gateway.add_entry(ALICE, {'objectClass': ['inetOrgPerson'], 'cn': ['Alice'], 'mail': ['a@example.com'],
                                       'sn': ['L']})

        self.gateway.replace(ALICE, {'cn': ['Alice L'], 'mail': []})

        attributes = self.gateway.get(ALICE).attributes
        self.assertEqual(attributes['cn'], ['Alice L'])
        self.assertEqual(attributes['sn'], ['L'])
        self.assertNotIn('mail', attributes)
        self.assertEqual(self.gateway.operations_for('replace')[0].dn, ALICE)

    def test_replace_missing_raises(self):
        with self.assertRaises(NotFoundError):
            self.gateway.replace(ALICE, {'cn': ['Alice']})

    def test_delete(self):
        self.gateway.add_entry(ALICE, {'cn': ['Alice']})
        self.gateway.delete(ALICE)

        self.assertFalse(self.gateway.exists(ALICE))
        with self.assertRaises(NotFoundError):
            self.gateway.delete(ALICE)
        self.assertEqual([op.action for op in self.gateway.operations], ['delete'])

    def test_search_scopes(self):
        self.gateway.add_entry(ALICE, {'objectClass': ['inetOrgPerson'], 'cn': ['Alice']})
        self.gateway.add_entry('uid=x,ou=sub,' + PEOPLE, {'objectClass': ['inetOrgPerson']})

        base = self.gateway.search(PEOPLE, scope=BASE)
        level = self.gateway.search(PEOPLE, scope=LEVEL)
        subtree = self.gateway.search(PEOPLE, scope=SUBTREE)

        self.assertEqual([e.dn for e in base], [PEOPLE])
        self.assertEqual([e.dn for e in level], [ALICE])
        self.assertEqual(len(subtree), 3)

    def test_search_filter_and_attributes(self):
        self.gateway.add_entry(ALICE, {'objectClass': ['inetOrgPerson'], 'cn': ['Alice'], 'mail': ['a@x']})
        self.gateway.add_entry('uid=bob,' + PEOPLE, {'objectClass': ['inetOrgPerson'], 'cn': ['Bob']})

        with_mail = self.gateway.search(PEOPLE, search_filter='(mail=*)', attributes=['cn'])
        by_name = self.gateway.search(PEOPLE, search_filter='(cn=bob)')

        self.assertEqual(with_mail, [Entry(ALICE, {'cn': ['Alice']})])
        self.assertEqual([e.dn for e in by_name], ['uid=bob,' + PEOPLE])

    def test_search_missing_base_raises(self):
        with self.assertRaises(NotFoundError):
            self.gateway.search('ou=missing,dc=example,dc=com')
        self.assertIsNone(self.gateway.get('ou=missing,dc=example,dc=com'))

    def test_context_manager(self):
        with self.gateway as gateway:
            self.assertTrue(gateway.connected)
        self.assertFalse(self.gateway.connected)
        self.assertEqual(self.gateway.connect_count, 1)
        self.assertEqual(self.gateway.close_count, 1)


class TestSnapshot(unittest.TestCase):
    """A recording gateway seeded from a backing gateway."""

    def test_snapshot_copies_containers_and_never_writes_back(self):
        backing = RecordingGateway()
        backing.add_entry(PEOPLE, {'objectClass': ['organizationalUnit']})
        backing.add_entry(ALICE, {'objectClass': ['inetOrgPerson'], 'cn': ['Alice']})
        backing.add_entry('uid=deep,ou=sub,' + PEOPLE, {'objectClass': ['inetOrgPerson'], 'cn': ['Deep']})

        gateway = RecordingGateway(backing=backing,
                                   snapshot_bases=[PEOPLE, 'ou=groups,dc=example,dc=com'])
        with gateway:
            self.assertTrue(gateway.exists(ALICE))
            self.assertFalse(gateway.exists('uid=deep,ou=sub,' + PEOPLE))
            gateway.delete(ALICE)

        self.assertTrue(backing.exists(ALICE))
        self.assertEqual(backing.operations, [])
        self.assertEqual(backing.connect_count, 1)
        self.assertEqual(backing.close_count, 1)


if __name__ == '__main__':
    unittest.main()
