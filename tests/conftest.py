# -*- encoding: utf-8 -*-
"""
EVM Failover Test Configuration

Shared pytest fixtures for the failover provider test suite.

Every fixture uses real infrastructure:
- nodes: real JSON-RPC servers (falcon WSGI apps served by wsgiref on
  ephemeral ports), each playing back a scripted list of replies
- dead_url: a local port with nothing listening on it
- web3.py: real Web3 objects on top of FailoverHTTPProvider

No mocks, no stubs, no monkeypatching.
"""

import json
import os
import socket
import threading
import time
from socketserver import ThreadingMixIn
from wsgiref.simple_server import WSGIRequestHandler, WSGIServer, make_server

import falcon
import pytest

# ---------------------------------------------------------------------------
# Scripted replies
# ---------------------------------------------------------------------------


def rpc_result(value):
    """Reply with a successful JSON-RPC response echoing the request id."""
    return {"body": lambda payload: {
        "jsonrpc": "2.0", "id": payload.get("id"), "result": value,
    }}


def rpc_error(code, message, with_id=True):
    """Reply with a JSON-RPC error envelope."""
    def body(payload):
        envelope = {"jsonrpc": "2.0", "error": {"code": code, "message": message}}
        if with_id:
            envelope["id"] = payload.get("id")
        return envelope
    return {"body": body}


def raw_reply(text):
    """Reply with a non-JSON body."""
    return {"raw": text}


def slow(reply, delay):
    """Delay a reply by delay seconds."""
    return dict(reply, delay=delay)


# ---------------------------------------------------------------------------
# JSON-RPC node
# ---------------------------------------------------------------------------


class ScriptedNode:
    """Falcon resource that acts as a JSON-RPC node.

    Replies are consumed in order; once the script runs out the node
    answers with result "0x1". Every request is recorded with its headers
    (lower-cased names) and decoded payload.
    """

    def __init__(self):
        self.url = None
        self._replies = []
        self.requests = []
        self._lock = threading.Lock()

    def script(self, *replies):
        with self._lock:
            self._replies.extend(replies)
        return self

    @property
    def hits(self):
        with self._lock:
            return len(self.requests)

    def on_post(self, req, resp):
        payload = json.loads(req.bounded_stream.read() or b"null")
        with self._lock:
            headers = {k.lower(): v for k, v in req.headers.items()}
            self.requests.append({"headers": headers, "payload": payload})
            reply = self._replies.pop(0) if self._replies else rpc_result("0x1")

        if reply.get("delay"):
            time.sleep(reply["delay"])

        resp.status = falcon.HTTP_200
        if "raw" in reply:
            resp.content_type = falcon.MEDIA_TEXT
            resp.text = reply["raw"]
        else:
            resp.content_type = falcon.MEDIA_JSON
            resp.text = json.dumps(reply["body"](payload or {}))


class _ThreadingWSGIServer(ThreadingMixIn, WSGIServer):
    daemon_threads = True
    block_on_close = False


class _QuietHandler(WSGIRequestHandler):
    def log_request(self, code="-", size="-"):
        pass  # Suppress per-request logging

    def log_message(self, format, *args):
        pass


@pytest.fixture
def nodes():
    """Factory that starts scripted JSON-RPC nodes.

    Usage:
        a, b = nodes(2)
        a.script(rpc_error(503, "busy"))
    """
    servers = []

    def start(count=1):
        started = []
        for _ in range(count):
            node = ScriptedNode()
            app = falcon.App()
            app.add_route("/", node)
            httpd = make_server(
                "127.0.0.1", 0, app,
                server_class=_ThreadingWSGIServer,
                handler_class=_QuietHandler,
            )
            node.url = f"http://127.0.0.1:{httpd.server_port}/"
            thread = threading.Thread(target=httpd.serve_forever, daemon=True)
            thread.start()
            servers.append(httpd)
            started.append(node)
        return started

    yield start

    for httpd in servers:
        httpd.shutdown()
        httpd.server_close()


@pytest.fixture
def dead_url():
    """A local URL with nothing listening on it."""
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    sock.bind(("127.0.0.1", 0))
    port = sock.getsockname()[1]
    sock.close()
    return f"http://127.0.0.1:{port}/"


@pytest.fixture
def clean_env():
    """Remove EVM_RPC_* variables for the test and restore them afterwards."""
    saved = {k: v for k, v in os.environ.items() if k.startswith("EVM_RPC_")}
    for key in saved:
        del os.environ[key]
    yield os.environ
    for key in [k for k in os.environ if k.startswith("EVM_RPC_")]:
        del os.environ[key]
    os.environ.update(saved)
