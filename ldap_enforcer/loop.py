"""
Polling control loop.

Runs reconciliation passes on two independent timers: a short one that
watches the configuration files for changes and a long one that corrects
drift unconditionally. Passes run synchronously on the loop's own thread,
so at most one pass is ever in flight and timer expiries during a pass
coalesce into a single follow-up pass.
"""

import logging
import threading
import time
from enum import Enum
from typing import Callable, Dict, Optional

from ldap_enforcer.config import Config, ConfigLoader, ConfigurationError, file_modification_timestamps
from ldap_enforcer.gateway import DirectoryError
from ldap_enforcer.logging_setup import update_log_levels
from ldap_enforcer.reconciler import PassResult, ReconcileError, Reconciler

logger = logging.getLogger(__name__)

MIN_CONFIG_INTERVAL = 1.0


class LoopState(str, Enum):
    IDLE = 'idle'
    RECONCILING = 'reconciling'
    RETRYING = 'retrying'
    STOPPED = 'stopped'


class ReconciliationLoop:
    """
    Drives the reconciler until stopped.

    Args:
        config: Configuration from the initial load
        reconciler: Reconciler used for every pass
        loader: Loader that produced config, reused for reloads
        stop_event: Cancellation signal checked at every wait
        clock: Monotonic clock in seconds
    """

    def __init__(self, config: Config, reconciler: Reconciler, loader: ConfigLoader,
                 stop_event: Optional[threading.Event] = None,
                 clock: Callable[[], float] = time.monotonic):
        self.config = config
        self.reconciler = reconciler
        self.loader = loader
        self.stop_event = stop_event or threading.Event()
        self.clock = clock

        self.state = LoopState.IDLE
        self.pass_count = 0
        self.failed_passes = 0
        self.reload_count = 0
        self.last_result: Optional[PassResult] = None
        self.last_error: Optional[Exception] = None
        self._timestamps: Dict[str, Optional[int]] = loader.file_modification_timestamps()
        self._config_interval = max(config.polling.config_interval, MIN_CONFIG_INTERVAL)

    @property
    def config_interval(self) -> float:
        return self._config_interval

    @property
    def drift_interval(self) -> float:
        return self.config.polling.drift_interval

    def stop(self):
        """Request the loop to stop at its next wait."""
        self.stop_event.set()

    def run(self):
        """Run until stopped. Returns after the stop event is set."""
        logger.info(f"Starting reconciliation loop: config check every {self.config_interval}s, "
                    f"drift correction every {self.drift_interval}s")

        if not self._startup():
            self.state = LoopState.STOPPED
            logger.info("Reconciliation loop stopped before the first successful pass")
            return

        now = self.clock()
        next_config_check = now + self.config_interval
        next_drift = now + self.drift_interval

        while not self.stop_event.is_set():
            wait = min(next_config_check, next_drift) - self.clock()
            if wait > 0 and self.stop_event.wait(wait):
                break

            now = self.clock()
            reconcile = False
            if now >= next_config_check:
                next_config_check = now + self.config_interval
                if self.check_config():
                    logger.info("Configuration changed, reconciling")
                    reconcile = True
            if now >= next_drift:
                next_drift = now + self.drift_interval
                logger.info("Drift interval elapsed, reconciling")
                reconcile = True

            if reconcile:
                self.run_pass()

        self.state = LoopState.STOPPED
        logger.info("Reconciliation loop stopped")

    def _startup(self) -> bool:
        """Retry the first pass every config interval until it succeeds or the loop is stopped."""
        while not self.stop_event.is_set():
            if self.run_pass():
                return True
            self.state = LoopState.RETRYING
            logger.warning(f"Initial reconciliation failed, retrying in {self.config_interval} seconds")
            if self.stop_event.wait(self.config_interval):
                return False
            if self.check_config():
                logger.info("Configuration changed while retrying")
        return False

    def run_pass(self) -> bool:
        """
        Run one pass with the current configuration.

        Returns:
            True if the pass succeeded
        """
        self.state = LoopState.RECONCILING
        self.pass_count += 1
        try:
            self.last_result = self.reconciler.reconcile(self.config)
        except (ReconcileError, DirectoryError, ConfigurationError) as e:
            self.failed_passes += 1
            self.last_error = e
            self.state = LoopState.IDLE
            logger.error(f"Reconciliation pass failed: {e}")
            return False
        self.last_error = None
        self.state = LoopState.IDLE
        return True

    def check_config(self) -> bool:
        """
        Reload the configuration if any of its files changed.

        A failed reload keeps the last good configuration and remembers the
        new timestamps, so the same broken edit is not re-read every tick.

        Returns:
            True if a new configuration was loaded
        """
        current = file_modification_timestamps(list(self._timestamps))
        if current == self._timestamps:
            return False

        changed = sorted(path for path in current if current[path] != self._timestamps.get(path))
        logger.info(f"Configuration files changed: {', '.join(changed)}")

        try:
            config = self.loader.load()
        except ConfigurationError as e:
            logger.error(f"Failed to reload configuration, keeping the last good configuration: {e}")
            current.update(self.loader.file_modification_timestamps())
            self._timestamps = current
            return False

        self.config = config
        self._timestamps = self.loader.file_modification_timestamps()
        self._apply_config_interval(config.polling.config_interval)
        self.reload_count += 1
        update_log_levels(config.logging)
        logger.info("Configuration reloaded")
        return True

    def _apply_config_interval(self, interval: float):
        # 0 means one pass and exit, which a running loop cannot honour
        if interval <= 0:
            logger.warning(f"Ignoring polling.config_interval={interval} from the reloaded configuration, "
                           f"still checking every {self._config_interval}s")
            return
        self._config_interval = max(interval, MIN_CONFIG_INTERVAL)
