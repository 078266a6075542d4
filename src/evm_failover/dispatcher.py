# -*- encoding: utf-8 -*-
"""
EVM Failover
evm_failover.dispatcher module

One logical send: try the current host, classify what came back and
either deliver it or rotate to the next host.

Classification, in order:
  1. transport failure           -> rotate; when exhausted, deliver
                                    ConnectionTimeout or InvalidConnection
  2. body without "error"        -> deliver the body
  3. error without an "id"       -> rotate; when exhausted, deliver the body
  4. error code 5xx/401/403/429  -> rotate; when exhausted, deliver the body
  5. same message as last error  -> rewind one step and deliver the body
  6. first coded error           -> remember message, rotate
  7. anything else               -> deliver the body

Application errors travel back as ok results: the caller inspects the
body for "error" itself.
"""

import json
import logging
import re
import threading

from evm_failover.errors import (
    ConnectionTimeout,
    InvalidConnection,
    InvalidRequest,
    TransportAborted,
    TransportError,
)
from evm_failover.rotation import HostRotator, RotationState
from evm_failover.transport import (
    AbortController,
    HTTPTransport,
    RequestOptions,
    agent_for,
    make_agent,
)

logger = logging.getLogger(__name__)

RETRYABLE_CODE = re.compile(r"^5\d{2}$|401|403|429")

DELIVER = "deliver"
RETRY = "retry"
REWIND = "rewind"


def is_retryable_code(code):
    """True for server-error, auth and rate-limit error codes."""
    return bool(RETRYABLE_CODE.search(str(code)))


class DispatchResult:
    """Tagged outcome of one dispatch.

    kind is "ok" (body holds the parsed response, which may itself carry an
    "error" envelope) or "transport_error" (error holds a ProviderError).
    """

    __slots__ = ("kind", "body", "error", "host")

    OK = "ok"
    TRANSPORT_ERROR = "transport_error"

    def __init__(self, kind, body=None, error=None, host=None):
        self.kind = kind
        self.body = body
        self.error = error
        self.host = host

    @classmethod
    def ok(cls, body, host):
        return cls(cls.OK, body=body, host=host)

    @classmethod
    def failure(cls, error, host=None):
        return cls(cls.TRANSPORT_ERROR, error=error, host=host)

    @property
    def is_ok(self):
        return self.kind == self.OK

    def __repr__(self):
        if self.is_ok:
            return f"DispatchResult(ok, host={self.host!r}, body={self.body!r})"
        return f"DispatchResult(transport_error, host={self.host!r}, error={self.error!r})"


class DispatchAttempt:
    """Per-dispatch request state, retargeted on every rotation step."""

    def __init__(self, config, body, host):
        self.config = config
        self.body = body
        self.previous_error = ""
        self.host = None
        self.headers = []
        self.retarget(host)

    def retarget(self, host):
        """Point the attempt at host and rebuild its headers."""
        self.host = host
        headers = dict(self.config.headers)
        if not any(name.lower() == "content-type" for name in headers):
            headers["Content-Type"] = "application/json"
        name, value = self.config.partner_header
        if self.config.is_partner_host(host):
            headers[name] = value
        else:
            headers.pop(name, None)
        self.headers = list(headers.items())

    def options(self, signal, agent):
        timeout = self.config.timeout / 1000.0 if self.config.timeout > 0 else None
        return RequestOptions(
            body=self.body,
            headers=self.headers,
            credentials=self.config.credentials_mode,
            signal=signal,
            agent=agent,
            timeout=timeout,
        )


class RequestDispatcher:
    """Delivers JSON-RPC payloads with host failover.

    Args:
        config: ProviderConfig.
        transport: object with invoke(url, options); HTTPTransport by default.
        agents: {"http": session, "https": session}; built from config when
            omitted.
        state: RotationState shared with other dispatchers of the same
            provider; a fresh one when omitted.
    """

    def __init__(self, config, transport=None, agents=None, state=None):
        self.config = config
        self.transport = transport or HTTPTransport()
        if agents is None:
            agents = config.agent or {
                "http": make_agent(config.keep_alive),
                "https": make_agent(config.keep_alive),
            }
        self.agents = agents
        self.state = state or RotationState()

    def dispatch(self, payload):
        """Send payload, rotating hosts as needed.

        Returns:
            DispatchResult. Never raises for network or JSON-RPC failures.
        """
        try:
            body = json.dumps(payload)
        except (TypeError, ValueError) as exc:
            return DispatchResult.failure(InvalidRequest(payload, exc))

        rotator = HostRotator(self.config.hosts, self.state)
        attempt = DispatchAttempt(self.config, body, rotator.current())

        while True:
            try:
                data = self._send_attempt(attempt)
            except TransportError as exc:
                logger.debug("Attempt against %s failed: %s", attempt.host, exc)
                last_host = attempt.host
                host = rotator.advance()
                if rotator.exhausted():
                    logger.warning("All %d RPC endpoints failed, last tried %s",
                                   rotator.host_count, last_host)
                    return DispatchResult.failure(
                        self._transport_error(exc, last_host), host=last_host
                    )
                attempt.retarget(host)
                continue

            responder = attempt.host
            self.state.select(responder)
            action = self._classify(data, attempt)

            if action == RETRY:
                host = rotator.advance()
                if rotator.exhausted():
                    logger.info("All %d RPC endpoints tried, delivering last response",
                                rotator.host_count)
                    return DispatchResult.ok(data, responder)
                attempt.retarget(host)
                continue

            if action == REWIND:
                attempt.retarget(rotator.rewind())
                attempt.previous_error = ""

            return DispatchResult.ok(data, responder)

    def _send_attempt(self, attempt):
        controller = AbortController()
        timer = None
        if self.config.timeout > 0:
            timer = threading.Timer(self.config.timeout / 1000.0, controller.abort)
            timer.daemon = True
            timer.start()
        try:
            agent = agent_for(attempt.host, self.agents)
            response = self.transport.invoke(
                attempt.host, attempt.options(controller.signal, agent)
            )
            return response.json()
        finally:
            if timer is not None:
                timer.cancel()

    def _classify(self, data, attempt):
        """Decide what to do with a parsed response body."""
        if not isinstance(data, dict) or not data.get("error"):
            return DELIVER

        if data.get("id") is None:
            return RETRY

        error = data["error"]
        if not isinstance(error, dict) or not error.get("code"):
            return DELIVER

        if is_retryable_code(error["code"]):
            return RETRY

        message = str(error.get("message", ""))
        if attempt.previous_error and attempt.previous_error == message:
            return REWIND

        if not attempt.previous_error:
            attempt.previous_error = message
            return RETRY

        # A different error than last time: report it.
        attempt.previous_error = ""
        return DELIVER

    def _transport_error(self, exc, host):
        if isinstance(exc, TransportAborted):
            return ConnectionTimeout(self.config.timeout, host=host)
        return InvalidConnection(host, cause=exc)
