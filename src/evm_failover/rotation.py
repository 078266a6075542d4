# -*- encoding: utf-8 -*-
"""
EVM Failover
evm_failover.rotation module

Host rotation for the failover provider.

RotationState is shared by every dispatch of one provider and remembers
which host to prefer for the next call. HostRotator is created per
dispatch: it moves the shared pointer and counts how many hosts this
dispatch has tried, so concurrent dispatches never share a retry bound.
"""

import logging
import threading

logger = logging.getLogger(__name__)


class RotationState:
    """Current-host pointer shared across dispatches of one provider.

    Concurrent dispatches may interleave their steps; the last writer
    wins. The lock only guards each read-modify-write.
    """

    def __init__(self, current_index=0):
        self._lock = threading.Lock()
        self._current_index = current_index
        self._last_selected_host = None

    @property
    def current_index(self):
        with self._lock:
            return self._current_index

    @property
    def last_selected_host(self):
        with self._lock:
            return self._last_selected_host

    def select(self, host):
        """Record the host whose response was most recently accepted."""
        with self._lock:
            self._last_selected_host = host

    def step(self, delta, count):
        """Move the pointer by delta, wrapping into [0, count).

        Returns:
            The new index.
        """
        with self._lock:
            self._current_index = (self._current_index + delta) % count
            return self._current_index


class HostRotator:
    """Chooses which host one dispatch tries next.

    Usage:
        rotator = HostRotator(hosts, state)
        host = rotator.current()
        host = rotator.advance()      # after a failure
        if rotator.exhausted():
            ...                       # every host tried once, stop
    """

    def __init__(self, hosts, state):
        if not hosts:
            raise ValueError("At least one RPC host is required")
        self._hosts = tuple(hosts)
        self._state = state
        self._tried = 0

    @property
    def tried(self):
        """Number of rotation steps taken by this dispatch."""
        return self._tried

    @property
    def host_count(self):
        return len(self._hosts)

    def current(self):
        """Return the host at the shared current index."""
        return self._hosts[self._state.current_index % len(self._hosts)]

    def advance(self):
        """Rotate to the next host.

        Returns:
            The new current host.
        """
        failed = self.current()
        index = self._state.step(1, len(self._hosts))
        self._tried += 1
        host = self._hosts[index]
        if not self.exhausted():
            logger.warning("RPC endpoint %s failed, switching to %s", failed, host)
        return host

    def rewind(self):
        """Undo one rotation step.

        Returns:
            The new current host.
        """
        index = self._state.step(-1, len(self._hosts))
        self._tried -= 1
        host = self._hosts[index]
        logger.info("Repeated RPC error, rewound to endpoint %s", host)
        return host

    def exhausted(self):
        """True once every host has been tried by this dispatch."""
        return self._tried >= len(self._hosts)
