# -*- encoding: utf-8 -*-
"""
EVM Failover
evm_failover.provider module

HTTP JSON-RPC provider with automatic host failover.

FailoverHTTPProvider is what the RPC layer talks to. send() delivers a
payload asynchronously through a callback; make_request() does the same
synchronously so the provider can be handed straight to web3.py:

    provider = FailoverHTTPProvider(["http://rpc1:8545", "http://rpc2:8545"])
    w3 = Web3(provider)
    w3.eth.block_number
"""

import concurrent.futures
import itertools
import logging

from web3.providers import JSONBaseProvider

from evm_failover.config import ProviderConfig
from evm_failover.dispatcher import DispatchResult, RequestDispatcher
from evm_failover.errors import ProviderError
from evm_failover.rotation import RotationState
from evm_failover.transport import make_agent

logger = logging.getLogger(__name__)


class FailoverHTTPProvider(JSONBaseProvider):
    """Sends JSON-RPC requests over HTTP, rotating across candidate hosts.

    Either pass a ready ProviderConfig as config, or the hosts plus any
    ProviderConfig keyword arguments.
    """

    def __init__(self, hosts=None, config=None, transport=None, **options):
        super().__init__()
        if config is None:
            config = ProviderConfig(hosts, **options)
        elif hosts is not None or options:
            raise ValueError("Pass either config or hosts/options, not both")
        self.config = config

        # Agents live as long as the provider; override agents belong to the caller.
        self._owned_agents = []
        if config.agent:
            agents = config.agent
        else:
            agents = {
                "http": make_agent(config.keep_alive),
                "https": make_agent(config.keep_alive),
            }
            self._owned_agents = list(agents.values())

        self._state = RotationState()
        self.dispatcher = RequestDispatcher(
            config, transport=transport, agents=agents, state=self._state
        )
        self._executor = concurrent.futures.ThreadPoolExecutor(
            max_workers=config.max_workers,
            thread_name_prefix="evm-failover",
        )
        self._ids = itertools.count()

    @property
    def hosts(self):
        return self.config.hosts

    @property
    def host(self):
        """The host that most recently produced a response."""
        return self._state.last_selected_host or self.config.hosts[0]

    def send(self, payload, callback):
        """Deliver payload and call callback(error, result) exactly once.

        The callback runs on a worker thread. error is a ProviderError
        when no host could produce a response; otherwise result is the
        parsed response body, which may carry a JSON-RPC "error" member.

        Returns:
            The concurrent.futures.Future of the dispatch.
        """
        return self._executor.submit(self._deliver, payload, callback)

    def _deliver(self, payload, callback):
        try:
            result = self.dispatcher.dispatch(payload)
        except Exception as exc:
            logger.exception("Dispatch failed unexpectedly")
            result = DispatchResult.failure(
                ProviderError(f"Unexpected provider failure: {exc}", host=self.host)
            )
        try:
            if result.is_ok:
                callback(None, result.body)
            else:
                callback(result.error, None)
        except Exception:
            logger.exception("RPC callback raised for response from %s", result.host)
        return result

    def make_request(self, method, params):
        """Synchronous JSON-RPC call for web3.py.

        Raises:
            ProviderError: no host produced a response.
        """
        payload = {
            "jsonrpc": "2.0",
            "method": method,
            "params": params if params is not None else [],
            "id": next(self._ids),
        }
        result = self.dispatcher.dispatch(payload)
        if not result.is_ok:
            raise result.error
        return result.body

    def supports_subscriptions(self):
        return False

    def disconnect(self):
        # HTTP keeps no connection state to tear down.
        pass

    def close(self):
        """Stop the worker pool and close agents created by this provider."""
        self._executor.shutdown(wait=True)
        for agent in self._owned_agents:
            agent.close()
        self._owned_agents = []

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def __repr__(self):
        return f"<FailoverHTTPProvider {list(self.config.hosts)!r}>"
