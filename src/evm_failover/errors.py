# -*- encoding: utf-8 -*-
"""
EVM Failover
evm_failover.errors module

Error catalog for the failover HTTP provider.

Two families live here:
  - ProviderError and its subclasses are what callers see, either through
    the send() callback or raised from make_request().
  - TransportError and TransportAborted describe a single failed attempt
    against one host. The dispatcher catches these and rotates.
"""

import json


class TransportError(Exception):
    """A single attempt failed below the JSON-RPC layer."""


class TransportAborted(TransportError):
    """A single attempt was aborted because its timer fired."""


class ProviderError(Exception):
    """Structured error delivered to the RPC layer.

    Carries a human-readable message, an optional numeric code and the
    host that produced it.
    """

    def __init__(self, message, code=None, host=None):
        super().__init__(message)
        self.message = message
        self.code = code
        self.host = host

    def to_dict(self):
        return {"message": self.message, "code": self.code, "host": self.host}


class ConnectionTimeout(ProviderError):
    """The last host tried did not answer within the configured timeout."""

    def __init__(self, timeout, host=None):
        super().__init__(
            f"CONNECTION TIMEOUT: timeout of {timeout} ms achieved",
            host=host,
        )
        self.timeout = timeout


class InvalidConnection(ProviderError):
    """The last host tried could not be reached."""

    def __init__(self, host, cause=None):
        super().__init__(
            f"CONNECTION ERROR: Couldn't connect to node {host}.",
            code=getattr(cause, "code", None),
            host=host,
        )
        self.cause = cause


class InvalidResponse(ProviderError, TransportError):
    """The host answered with a body that is not a usable JSON-RPC response."""

    def __init__(self, raw, host=None):
        super().__init__(_describe_response(raw), host=host)
        self.raw = raw


class InvalidRequest(ProviderError):
    """The payload could not be serialized to JSON."""

    def __init__(self, payload, cause=None):
        super().__init__(f"Invalid JSON RPC request: {payload!r} ({cause})")
        self.payload = payload


def _describe_response(raw):
    if isinstance(raw, bytes):
        raw = raw.decode("utf-8", errors="replace")
    try:
        decoded = json.loads(raw) if isinstance(raw, str) else raw
    except ValueError:
        decoded = None
    if isinstance(decoded, dict) and isinstance(decoded.get("error"), dict):
        message = decoded["error"].get("message")
        if message:
            return message
    return f"Invalid JSON RPC response: {raw!r}"
