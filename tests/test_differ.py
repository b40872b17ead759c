#!/usr/bin/env python3
"""
Unit tests for the state differ.
"""

import os
import sys
import unittest
from types import SimpleNamespace

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ldap_enforcer.differ import diff_kind, diff_state
from ldap_enforcer.model import Account, Action, EntityKind, Group, Locations, ServiceAccount

LOCATIONS = Locations(
    people='ou=people,dc=example,dc=com',
    service_accounts='ou=services,dc=example,dc=com',
    groups='ou=groups,dc=example,dc=com',
)


class TestDiffKind(unittest.TestCase):
    """Test cases for diff_kind."""

    def test_create_modify_delete(self):
        desired = {
            'alice': LOCATIONS.account_dn('alice'),
            'bob': LOCATIONS.account_dn('bob'),
        }
        observed = [LOCATIONS.account_dn('bob'), LOCATIONS.account_dn('carol')]

        result = diff_kind(EntityKind.ACCOUNT, desired, observed, LOCATIONS.people)

        self.assertEqual(result.to_create, ['alice'])
        self.assertEqual(result.to_modify, ['bob'])
        self.assertEqual(result.to_delete, [LOCATIONS.account_dn('carol')])

    def test_dn_comparison_is_case_insensitive(self):
        desired = {'bob': LOCATIONS.account_dn('bob')}
        observed = ['UID=Bob,OU=People,DC=example,DC=com']

        result = diff_kind(EntityKind.ACCOUNT, desired, observed, LOCATIONS.people)

        self.assertEqual(result.to_modify, ['bob'])
        self.assertEqual(result.to_delete, [])

    def test_entries_outside_container_are_invisible(self):
        desired = {'alice': LOCATIONS.account_dn('alice')}
        observed = [
            'uid=alice,ou=legacy,dc=example,dc=com',
            'uid=eve,ou=nested,ou=people,dc=example,dc=com',
            LOCATIONS.people,
        ]

        result = diff_kind(EntityKind.ACCOUNT, desired, observed, LOCATIONS.people)

        self.assertEqual(result.to_create, ['alice'])
        self.assertEqual(result.to_modify, [])
        self.assertEqual(result.to_delete, [])

    def test_results_are_sorted(self):
        desired = {name: LOCATIONS.group_dn(name) for name in ('zeta', 'alpha', 'mid')}
        observed = [LOCATIONS.group_dn(name) for name in ('zz', 'aa')]

        result = diff_kind(EntityKind.GROUP, desired, observed, LOCATIONS.groups)

        self.assertEqual(result.to_create, ['alpha', 'mid', 'zeta'])
        self.assertEqual(result.to_delete, sorted(result.to_delete))


class TestDiffState(unittest.TestCase):
    """Test cases for diff_state."""

    def setUp(self):
        self.config = SimpleNamespace(
            locations=LOCATIONS,
            accounts={'alice': Account('alice', 'Alice Liddell')},
            service_accounts={'robot': ServiceAccount('robot', 'Robot')},
            groups={'admins': Group('admins', 'Admins', accounts=('alice',))},
        )

    def test_empty_directory(self):
        diff = diff_state(self.config, {})

        self.assertEqual(diff[EntityKind.ACCOUNT].to_create, ['alice'])
        self.assertEqual(diff[EntityKind.SERVICE_ACCOUNT].to_create, ['robot'])
        self.assertEqual(diff[EntityKind.GROUP].to_create, ['admins'])

        actions = [(op.action, op.kind, op.key) for op in diff.operations()]
        self.assertEqual(actions, [
            (Action.CREATE, EntityKind.ACCOUNT, 'alice'),
            (Action.CREATE, EntityKind.SERVICE_ACCOUNT, 'robot'),
            (Action.CREATE, EntityKind.GROUP, 'admins'),
        ])

    def test_same_name_in_other_kind_is_not_confused(self):
        observed = {
            EntityKind.ACCOUNT: [],
            EntityKind.SERVICE_ACCOUNT: [LOCATIONS.service_account_dn('alice')],
            EntityKind.GROUP: [],
        }
        diff = diff_state(self.config, observed)

        self.assertEqual(diff[EntityKind.ACCOUNT].to_create, ['alice'])
        self.assertEqual(diff[EntityKind.SERVICE_ACCOUNT].to_delete,
                         [LOCATIONS.service_account_dn('alice')])

    def test_delete_operations_carry_rdn_value(self):
        observed = {EntityKind.ACCOUNT: [LOCATIONS.account_dn('alice'), LOCATIONS.account_dn('mallory')]}
        diff = diff_state(self.config, observed)

        deletes = [op for op in diff.operations() if op.action is Action.DELETE]
        self.assertEqual(len(deletes), 1)
        self.assertEqual(deletes[0].key, 'mallory')
        self.assertEqual(deletes[0].dn, LOCATIONS.account_dn('mallory'))


if __name__ == '__main__':
    unittest.main()
