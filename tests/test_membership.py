#!/usr/bin/env python3
"""
Unit tests for nested group membership resolution.
"""

import os
import sys
import unittest

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ldap_enforcer.membership import (
    CYCLE_ERROR,
    MembershipCycleError,
    ReferenceWarning,
    resolve_members,
)
from ldap_enforcer.model import Account, EntityKind, Group, Locations, ServiceAccount

LOCATIONS = Locations(
    people='ou=people,dc=example,dc=com',
    service_accounts='ou=services,dc=example,dc=com',
    groups='ou=groups,dc=example,dc=com',
)

ACCOUNTS = {name: Account(name, f"{name.capitalize()} Example") for name in ('a', 'b', 'c', 'd')}
SERVICE_ACCOUNTS = {'robot': ServiceAccount('robot', 'Robot', posix=(3000, 3000))}


def usernames(members):
    return [member.username for member in members]


class TestResolveMembers(unittest.TestCase):
    """Test cases for resolve_members."""

    def resolve(self, name, groups, **kwargs):
        return resolve_members(name, groups, ACCOUNTS, SERVICE_ACCOUNTS, LOCATIONS, **kwargs)

    def test_direct_members(self):
        groups = {'g': Group('g', 'G', accounts=('b', 'a'), service_accounts=('robot',))}
        members, warnings = self.resolve('g', groups)

        self.assertEqual(warnings, [])
        self.assertEqual(sorted(usernames(members)), ['a', 'b', 'robot'])
        robot = [m for m in members if m.username == 'robot'][0]
        self.assertEqual(robot.kind, EntityKind.SERVICE_ACCOUNT)
        self.assertTrue(robot.posix)
        self.assertEqual(robot.dn, LOCATIONS.service_account_dn('robot'))

    def test_flattening(self):
        groups = {
            'g': Group('g', 'G', groups=('h1', 'h2')),
            'h1': Group('h1', 'H1', accounts=('a', 'b')),
            'h2': Group('h2', 'H2', accounts=('c',)),
        }
        members, warnings = self.resolve('g', groups)

        self.assertEqual(warnings, [])
        self.assertEqual(sorted(usernames(members)), ['a', 'b', 'c'])
        dns = [member.dn for member in members]
        self.assertNotIn(LOCATIONS.group_dn('h1'), dns)
        self.assertNotIn(LOCATIONS.group_dn('h2'), dns)

    def test_members_are_deduplicated_and_sorted_by_dn(self):
        groups = {
            'g': Group('g', 'G', accounts=('c', 'a'), groups=('h',)),
            'h': Group('h', 'H', accounts=('a', 'b')),
        }
        members, _ = self.resolve('g', groups)
        dns = [member.dn for member in members]

        self.assertEqual(dns, sorted(dns))
        self.assertEqual(len(dns), len(set(dns)))
        self.assertEqual(len(dns), 3)

    def test_mutual_nesting_truncates(self):
        groups = {
            'a_grp': Group('a_grp', 'A', accounts=('a',), groups=('b_grp',)),
            'b_grp': Group('b_grp', 'B', accounts=('b',), groups=('a_grp',)),
        }
        members_a, _ = self.resolve('a_grp', groups)
        members_b, _ = self.resolve('b_grp', groups)

        self.assertEqual(sorted(usernames(members_a)), ['a', 'b'])
        self.assertEqual(sorted(usernames(members_b)), ['a', 'b'])

    def test_self_reference(self):
        groups = {'g': Group('g', 'G', accounts=('a',), groups=('g',))}
        members, _ = self.resolve('g', groups)
        self.assertEqual(usernames(members), ['a'])

    def test_diamond_is_not_a_cycle(self):
        groups = {
            'top': Group('top', 'Top', groups=('left', 'right')),
            'left': Group('left', 'Left', groups=('bottom',)),
            'right': Group('right', 'Right', groups=('bottom',)),
            'bottom': Group('bottom', 'Bottom', accounts=('d',)),
        }
        members, _ = self.resolve('top', groups, cycle_policy=CYCLE_ERROR)
        self.assertEqual(usernames(members), ['d'])

    def test_cycle_error_policy(self):
        groups = {
            'x': Group('x', 'X', accounts=('a',), groups=('y',)),
            'y': Group('y', 'Y', groups=('x',)),
        }
        with self.assertRaises(MembershipCycleError) as context:
            self.resolve('x', groups, cycle_policy=CYCLE_ERROR)
        self.assertEqual(context.exception.path, ['x', 'y', 'x'])

    def test_unknown_references_become_warnings(self):
        groups = {'g': Group('g', 'G', accounts=('a', 'ghost'), service_accounts=('nobody',),
                             groups=('missing',))}
        members, warnings = self.resolve('g', groups)

        self.assertEqual(usernames(members), ['a'])
        self.assertEqual(warnings, [
            ReferenceWarning('g', EntityKind.ACCOUNT, 'ghost'),
            ReferenceWarning('g', EntityKind.SERVICE_ACCOUNT, 'nobody'),
            ReferenceWarning('g', EntityKind.GROUP, 'missing'),
        ])
        self.assertEqual(str(warnings[0]), 'Group g references unknown account ghost')

    def test_unknown_group(self):
        self.assertEqual(self.resolve('nope', {}), ([], []))

    def test_group_with_no_members(self):
        groups = {'g': Group('g', 'G', groups=('h',)), 'h': Group('h', 'H')}
        members, warnings = self.resolve('g', groups)
        self.assertEqual(members, [])
        self.assertEqual(warnings, [])

    def test_unknown_policy_rejected(self):
        with self.assertRaises(ValueError):
            self.resolve('g', {'g': Group('g', 'G')}, cycle_policy='ignore')


if __name__ == '__main__':
    unittest.main()
