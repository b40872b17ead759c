#!/usr/bin/env python3
"""
Unit tests for the polling control loop.

The loop is driven by a fake clock whose stop event advances time on every
wait, so whole schedules run instantly.
"""

import os
import sys
import tempfile
import unittest
from unittest.mock import Mock, patch

import yaml

# Add the project directory to the path so we can import our modules
sys.path.insert(0, os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from ldap_enforcer.config import Config, ConfigLoader, ConfigurationError, ConnectionSettings, PollSettings
from ldap_enforcer.gateway import TransportError
from ldap_enforcer.loop import LoopState, ReconciliationLoop
from ldap_enforcer.model import Locations
from ldap_enforcer.reconciler import PassResult, ReconcileError

CONFIG_FILE = '/etc/ldapenforcer/ldapenforcer.yaml'


def make_config(config_interval=10, drift_interval=100, **logging):
    return Config(
        connection=ConnectionSettings(uri='ldap://localhost', bind_dn='cn=admin,dc=example,dc=com',
                                      password='secret'),
        locations=Locations('ou=people,dc=example,dc=com', 'ou=services,dc=example,dc=com',
                            'ou=groups,dc=example,dc=com'),
        polling=PollSettings(config_interval=config_interval, drift_interval=drift_interval),
        logging=logging,
    )


class FakeClock:
    """Monotonic clock plus a stop event whose waits advance the clock."""

    def __init__(self, stop_at=None):
        self.now = 0
        self.stop_at = stop_at
        self.stopped = False
        self.waits = []

    def __call__(self):
        return self.now

    def is_set(self):
        return self.stopped

    def set(self):
        self.stopped = True

    def wait(self, timeout):
        self.waits.append(timeout)
        self.now += timeout
        if self.stop_at is not None and self.now >= self.stop_at:
            self.stopped = True
        return self.stopped


class LoopTestCase(unittest.TestCase):

    def setUp(self):
        self.clock = FakeClock(stop_at=250)
        self.pass_times = []
        self.reconciler = Mock()
        self.reconciler.reconcile.side_effect = self.record_pass
        self.loader = Mock()
        self.file_times = {CONFIG_FILE: 1}
        self.loader.file_modification_timestamps.side_effect = lambda: dict(self.file_times)

        patcher = patch('ldap_enforcer.loop.file_modification_timestamps',
                        side_effect=lambda paths: {path: self.file_times.get(path) for path in paths})
        patcher.start()
        self.addCleanup(patcher.stop)
        levels = patch('ldap_enforcer.loop.update_log_levels')
        self.update_log_levels = levels.start()
        self.addCleanup(levels.stop)

    def record_pass(self, config):
        self.pass_times.append(self.clock.now)
        return PassResult()

    def make_loop(self, config=None):
        return ReconciliationLoop(config or make_config(), self.reconciler, self.loader,
                                  stop_event=self.clock, clock=self.clock)


class TestSchedule(LoopTestCase):
    """Timer behaviour."""

    def test_drift_passes(self):
        loop = self.make_loop()
        loop.run()

        self.assertEqual(self.pass_times, [0, 100, 200])
        self.assertEqual(loop.state, LoopState.STOPPED)
        self.assertEqual(loop.pass_count, 3)
        self.loader.load.assert_not_called()

    def test_config_change_triggers_pass(self):
        new_config = make_config(level='DEBUG')
        self.loader.load.return_value = new_config

        def touch_then_wait(timeout):
            if self.clock.now + timeout >= 30:
                self.file_times[CONFIG_FILE] = 2
            return FakeClock.wait(self.clock, timeout)

        self.clock.wait = touch_then_wait
        loop = self.make_loop()
        loop.run()

        self.assertEqual(self.pass_times, [0, 30, 100, 200])
        self.assertIs(loop.config, new_config)
        self.assertEqual(loop.reload_count, 1)
        self.loader.load.assert_called_once()
        self.update_log_levels.assert_called_once_with({'level': 'DEBUG'})
        self.reconciler.reconcile.assert_called_with(new_config)

    def test_failed_reload_keeps_config(self):
        original = make_config()
        self.loader.load.side_effect = ConfigurationError("bad yaml")
        loop = self.make_loop(original)
        self.file_times[CONFIG_FILE] = 2
        loop.run()

        self.assertIs(loop.config, original)
        self.loader.load.assert_called_once()
        self.assertEqual(self.pass_times, [0, 100, 200])
        self.assertEqual(loop.reload_count, 0)

    def test_reload_cannot_disable_config_checks(self):
        self.loader.load.return_value = make_config(config_interval=0)

        def touch_then_wait(timeout):
            if self.clock.now + timeout >= 30:
                self.file_times[CONFIG_FILE] = 2
            return FakeClock.wait(self.clock, timeout)

        self.clock.wait = touch_then_wait
        loop = self.make_loop()
        with self.assertLogs('ldap_enforcer.loop', level='WARNING') as logs:
            loop.run()

        self.assertEqual(loop.reload_count, 1)
        self.assertEqual(loop.config_interval, 10)
        self.assertTrue(all(wait > 0 for wait in self.clock.waits))
        self.assertEqual(self.pass_times, [0, 30, 100, 200])
        self.assertIn('Ignoring polling.config_interval=0', logs.output[0])

    def test_config_interval_has_a_floor(self):
        loop = self.make_loop(make_config(config_interval=0))
        self.assertEqual(loop.config_interval, 1)

    def test_drift_only_waits_for_nearest_deadline(self):
        self.clock.stop_at = 30
        loop = self.make_loop(make_config(config_interval=10, drift_interval=25))
        loop.run()

        self.assertEqual(self.clock.waits, [10, 10, 5, 5])
        self.assertEqual(self.pass_times, [0, 25])


class TestStartup(LoopTestCase):
    """First pass retries."""

    def test_initial_failures_retry_every_config_interval(self):
        outcomes = [TransportError("connection refused"), TransportError("connection refused")]

        def flaky(config):
            self.pass_times.append(self.clock.now)
            if outcomes:
                raise outcomes.pop(0)
            return PassResult()

        self.reconciler.reconcile.side_effect = flaky
        self.clock.stop_at = 50
        loop = self.make_loop()
        loop.run()

        self.assertEqual(self.pass_times, [0, 10, 20])
        self.assertEqual(loop.failed_passes, 2)
        self.assertIsNone(loop.last_error)

    def test_stop_while_retrying(self):
        self.reconciler.reconcile.side_effect = ReconcileError('apply_accounts', [ValueError("boom")])
        self.clock.stop_at = 5

        loop = self.make_loop()
        loop.run()

        self.assertEqual(loop.pass_count, 1)
        self.assertEqual(loop.state, LoopState.STOPPED)
        self.assertIsInstance(loop.last_error, ReconcileError)

    def test_stop_before_run(self):
        loop = self.make_loop()
        loop.stop()
        loop.run()

        self.assertEqual(loop.pass_count, 0)
        self.assertEqual(loop.state, LoopState.STOPPED)


class TestRunPass(LoopTestCase):
    """Single passes."""

    def test_success_records_result(self):
        loop = self.make_loop()
        self.assertTrue(loop.run_pass())
        self.assertIsInstance(loop.last_result, PassResult)
        self.assertEqual(loop.state, LoopState.IDLE)

    def test_failure_is_contained(self):
        self.reconciler.reconcile.side_effect = ConfigurationError("password command failed")
        loop = self.make_loop()

        self.assertFalse(loop.run_pass())
        self.assertEqual(loop.failed_passes, 1)
        self.assertIsInstance(loop.last_error, ConfigurationError)

    def test_check_config_without_changes(self):
        loop = self.make_loop()
        self.assertFalse(loop.check_config())
        self.loader.load.assert_not_called()


class TestReloadFromDisk(unittest.TestCase):
    """Reloads against real files and the real loader."""

    def setUp(self):
        self.temp_dir = tempfile.TemporaryDirectory()
        self.addCleanup(self.temp_dir.cleanup)
        self.path = os.path.join(self.temp_dir.name, 'ldapenforcer.yaml')
        self.data = {
            'ldap': {'uri': 'ldap://localhost', 'bind_dn': 'cn=admin,dc=example,dc=com', 'password': 'secret'},
            'locations': {
                'people': 'ou=people,dc=example,dc=com',
                'service_accounts': 'ou=services,dc=example,dc=com',
                'groups': 'ou=groups,dc=example,dc=com',
            },
            'polling': {'config_interval': 10, 'drift_interval': 100},
            'accounts': {'alice': {'display_name': 'Alice Liddell'}},
        }
        self.write(self.data)
        self.loader = ConfigLoader(self.path, environ={})
        self.loop = ReconciliationLoop(self.loader.load(), Mock(), self.loader, stop_event=FakeClock())

    def write(self, data):
        with open(self.path, 'w') as f:
            yaml.safe_dump(data, f)
        # Force a visible change even on filesystems with coarse timestamps
        mtime = os.stat(self.path).st_mtime_ns + 10 ** 9
        os.utime(self.path, ns=(mtime, mtime))

    def test_malformed_include_keeps_last_good_config(self):
        original = self.loop.config
        self.write(dict(self.data, includes=[None]))

        with self.assertLogs('ldap_enforcer.loop', level='ERROR'):
            self.assertFalse(self.loop.check_config())

        self.assertIs(self.loop.config, original)
        self.assertEqual(self.loop.reload_count, 0)
        self.assertFalse(self.loop.check_config())

    @patch('ldap_enforcer.loop.update_log_levels')
    def test_fixed_file_is_picked_up(self, update_log_levels):
        self.write(dict(self.data, includes=[42]))
        self.assertFalse(self.loop.check_config())

        self.write(dict(self.data, accounts={'bob': {'display_name': 'Bob Builder'}}))

        self.assertTrue(self.loop.check_config())
        self.assertEqual(list(self.loop.config.accounts), ['bob'])
        update_log_levels.assert_called_once()


if __name__ == '__main__':
    unittest.main()
