# -*- encoding: utf-8 -*-
"""
EVM Failover
evm_failover.transport module

HTTP transport used by the dispatcher for one attempt against one host.

Agents are requests.Session objects, one per URL scheme, created once per
provider and reused for every call. Each attempt carries an AbortSignal;
when the per-attempt timer fires the attempt is reported as
TransportAborted, whether it was still connecting or reading the body.

The timer only sets a flag. While session.send() waits for the status line
and headers, the cutoff comes from requests' socket timeout, which is set
to the same budget but applies per read: a host that trickles header
bytes can hold an attempt past its budget. Such an attempt is still
reported as TransportAborted once the headers arrive. The body is read in chunks and
checked against the flag, so it never overruns by more than one read.
"""

import json
import logging
import threading
from urllib.parse import urlparse

import requests
from requests.adapters import HTTPAdapter

from evm_failover.errors import InvalidResponse, TransportAborted, TransportError

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192
DEFAULT_POOL_SIZE = 10


class AbortSignal:
    """Read side of an AbortController."""

    def __init__(self):
        self._event = threading.Event()

    @property
    def aborted(self):
        return self._event.is_set()


class AbortController:
    """Single-shot abort flag for one attempt. Safe to fire from a timer thread."""

    def __init__(self):
        self.signal = AbortSignal()

    def abort(self):
        self.signal._event.set()


def make_agent(keep_alive=True, pool_size=DEFAULT_POOL_SIZE):
    """Create a pooled requests.Session.

    Args:
        keep_alive: when False every request asks the server to close
            the connection.
        pool_size: connections kept per host.

    Returns:
        A requests.Session with an HTTPAdapter mounted for both schemes.
    """
    session = requests.Session()
    adapter = HTTPAdapter(pool_connections=pool_size, pool_maxsize=pool_size)
    session.mount("http://", adapter)
    session.mount("https://", adapter)
    if not keep_alive:
        session.headers["Connection"] = "close"
    return session


def agent_for(url, agents):
    """Pick the agent matching the URL's scheme."""
    if urlparse(url).scheme == "https":
        return agents["https"]
    return agents["http"]


class RequestOptions:
    """Everything the transport needs for one attempt."""

    __slots__ = ("method", "body", "headers", "credentials", "signal", "agent", "timeout")

    def __init__(self, body, headers, credentials, signal, agent, timeout=None, method="POST"):
        self.method = method
        self.body = body
        self.headers = headers  # ordered list of (name, value)
        self.credentials = credentials  # "include" or "omit"
        self.signal = signal
        self.agent = agent
        self.timeout = timeout  # seconds, None for no limit


class TransportResponse:
    """A response whose body has not been read yet."""

    def __init__(self, url, response, signal):
        self.url = url
        self._response = response
        self._signal = signal

    @property
    def status(self):
        return self._response.status_code

    def json(self):
        """Read the whole body and decode it.

        Raises:
            TransportAborted: the attempt timer fired while reading.
            TransportError: the connection broke while reading.
            InvalidResponse: the body is not JSON.
        """
        chunks = []
        try:
            for chunk in self._response.iter_content(CHUNK_SIZE):
                if self._signal.aborted:
                    raise TransportAborted(f"Reading response from {self.url} aborted")
                chunks.append(chunk)
        except requests.RequestException as exc:
            if self._signal.aborted:
                raise TransportAborted(f"Reading response from {self.url} aborted") from exc
            raise TransportError(f"Reading response from {self.url} failed: {exc}") from exc
        finally:
            self._response.close()

        if self._signal.aborted:
            raise TransportAborted(f"Reading response from {self.url} aborted")

        raw = b"".join(chunks)
        try:
            return json.loads(raw)
        except ValueError as exc:
            raise InvalidResponse(raw, host=self.url) from exc


class HTTPTransport:
    """Sends one prepared JSON-RPC request with requests."""

    def invoke(self, url, options):
        """POST options.body to url.

        Args:
            url: target host.
            options: RequestOptions for this attempt.

        Returns:
            TransportResponse with the body still unread.

        Raises:
            TransportAborted: timed out or aborted before a response arrived.
            TransportError: any other network failure.
        """
        session = options.agent
        request = requests.Request(
            options.method, url, data=options.body, headers=dict(options.headers)
        )
        try:
            prepared = session.prepare_request(request)
        except (requests.RequestException, ValueError) as exc:
            raise TransportError(f"Request to {url} could not be prepared: {exc}") from exc
        if options.credentials == "omit":
            prepared.headers.pop("Cookie", None)

        if options.signal.aborted:
            raise TransportAborted(f"Request to {url} aborted before sending")

        logger.debug("POST %s (%d bytes)", url, len(options.body))
        try:
            response = session.send(prepared, timeout=options.timeout, stream=True)
        except requests.Timeout as exc:
            raise TransportAborted(f"Request to {url} timed out") from exc
        except (requests.RequestException, ValueError) as exc:
            if options.signal.aborted:
                raise TransportAborted(f"Request to {url} aborted") from exc
            raise TransportError(f"Request to {url} failed: {exc}") from exc

        if options.signal.aborted:
            response.close()
            raise TransportAborted(f"Headers from {url} arrived after the attempt was aborted")

        return TransportResponse(url, response, options.signal)
