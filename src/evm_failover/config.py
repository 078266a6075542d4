# -*- encoding: utf-8 -*-
"""
EVM Failover
evm_failover.config module

Provider configuration.

ProviderConfig is built once per provider and never mutated afterwards.
load_config() reads the same settings from environment variables with
sensible defaults.
"""

import os
from urllib.parse import urlparse

DEFAULT_HOST = "http://localhost:8545"
DEFAULT_PARTNER_HEADER = ("X-Client-Type", "web")
DEFAULT_MAX_WORKERS = 4

# Default configuration values
DEFAULTS = {
    "EVM_RPC_HOSTS": DEFAULT_HOST,
    "EVM_RPC_TIMEOUT": "0",
    "EVM_RPC_HEADERS": "",
    "EVM_RPC_WITH_CREDENTIALS": "false",
    "EVM_RPC_KEEP_ALIVE": "true",
    "EVM_RPC_PARTNER_DOMAINS": "",
    "EVM_RPC_MAX_WORKERS": str(DEFAULT_MAX_WORKERS),
}

_TRUE = ("1", "true", "yes", "on")
_FALSE = ("0", "false", "no", "off")


def domain_allowlist(domains):
    """Build a partner-host predicate from a list of domains.

    A URL matches when its hostname is one of the domains or a subdomain
    of one of them.

    Args:
        domains: iterable of bare domain names, e.g. ["example.app"].

    Returns:
        A callable url -> bool.
    """
    allowed = tuple(d.strip().lower().lstrip(".") for d in domains if d.strip())

    def is_partner_host(url):
        hostname = (urlparse(url).hostname or "").lower()
        return any(
            hostname == domain or hostname.endswith("." + domain)
            for domain in allowed
        )

    return is_partner_host


def normalize_headers(headers):
    """Return headers as an ordered list of (name, value) tuples.

    Accepts a mapping, a list of {"name": ..., "value": ...} dicts or a
    list of (name, value) pairs.
    """
    if not headers:
        return ()
    if hasattr(headers, "items"):
        return tuple((str(k), str(v)) for k, v in headers.items())
    pairs = []
    for header in headers:
        if isinstance(header, dict):
            pairs.append((str(header["name"]), str(header["value"])))
        else:
            name, value = header
            pairs.append((str(name), str(value)))
    return tuple(pairs)


class ProviderConfig:
    """Immutable settings for one FailoverHTTPProvider.

    Args:
        hosts: ordered candidate host URLs. Falls back to DEFAULT_HOST.
        timeout: per-attempt timeout in milliseconds, 0 disables it.
        headers: static headers, see normalize_headers().
        with_credentials: send cookies held by the agent when True.
        agent: optional {"http": session, "https": session} override.
        keep_alive: keep connections open on agents the provider creates.
        partner_host: predicate url -> bool selecting hosts that receive
            partner_header.
        partner_header: (name, value) set only for partner hosts.
        max_workers: size of the thread pool backing send().
    """

    __slots__ = (
        "_hosts", "_timeout", "_headers", "_with_credentials", "_agent",
        "_keep_alive", "_partner_host", "_partner_header", "_max_workers",
    )

    def __init__(
        self,
        hosts=None,
        timeout=0,
        headers=None,
        with_credentials=False,
        agent=None,
        keep_alive=True,
        partner_host=None,
        partner_header=DEFAULT_PARTNER_HEADER,
        max_workers=DEFAULT_MAX_WORKERS,
    ):
        if isinstance(hosts, str):
            hosts = [hosts]
        hosts = [h.strip() for h in (hosts or []) if h and h.strip()]
        if timeout is None or timeout < 0:
            raise ValueError("timeout must be a non-negative number of milliseconds")
        if max_workers < 1:
            raise ValueError("max_workers must be at least 1")

        self._hosts = tuple(hosts) or (DEFAULT_HOST,)
        self._timeout = timeout
        self._headers = normalize_headers(headers)
        self._with_credentials = bool(with_credentials)
        self._agent = dict(agent) if agent else None
        self._keep_alive = keep_alive is not False
        self._partner_host = partner_host
        self._partner_header = tuple(partner_header)
        self._max_workers = max_workers

    @property
    def hosts(self):
        return self._hosts

    @property
    def timeout(self):
        return self._timeout

    @property
    def headers(self):
        return self._headers

    @property
    def with_credentials(self):
        return self._with_credentials

    @property
    def credentials_mode(self):
        return "include" if self._with_credentials else "omit"

    @property
    def agent(self):
        return self._agent

    @property
    def keep_alive(self):
        return self._keep_alive

    @property
    def partner_header(self):
        return self._partner_header

    @property
    def max_workers(self):
        return self._max_workers

    def is_partner_host(self, url):
        """True if the partner header must be sent to this host."""
        if self._partner_host is None or not url:
            return False
        return bool(self._partner_host(url))

    def __repr__(self):
        return (
            f"ProviderConfig(hosts={list(self._hosts)!r}, "
            f"timeout={self._timeout!r}, keep_alive={self._keep_alive!r})"
        )


def _parse_bool(key, raw):
    value = raw.strip().lower()
    if value in _TRUE:
        return True
    if value in _FALSE:
        return False
    raise ValueError(f"{key} must be a boolean, got {raw!r}")


def _parse_int(key, raw):
    try:
        return int(raw)
    except ValueError:
        raise ValueError(f"{key} must be an integer, got {raw!r}") from None


def parse_header_list(raw):
    """Parse "Name: value; Name2: value2" into (name, value) pairs."""
    pairs = []
    for item in raw.split(";"):
        if not item.strip():
            continue
        name, sep, value = item.partition(":")
        if not sep or not name.strip():
            raise ValueError(f"EVM_RPC_HEADERS entry {item.strip()!r} is not 'Name: value'")
        pairs.append((name.strip(), value.strip()))
    return pairs


def load_config():
    """Load provider configuration from environment variables.

    Returns:
        dict with all configuration values, parsed.
    """
    config = {}
    for key, default in DEFAULTS.items():
        config[key] = os.environ.get(key, default)
    config["EVM_RPC_HOSTS"] = [
        u.strip() for u in config["EVM_RPC_HOSTS"].split(",") if u.strip()
    ]
    config["EVM_RPC_TIMEOUT"] = _parse_int("EVM_RPC_TIMEOUT", config["EVM_RPC_TIMEOUT"])
    config["EVM_RPC_HEADERS"] = parse_header_list(config["EVM_RPC_HEADERS"])
    config["EVM_RPC_WITH_CREDENTIALS"] = _parse_bool(
        "EVM_RPC_WITH_CREDENTIALS", config["EVM_RPC_WITH_CREDENTIALS"]
    )
    config["EVM_RPC_KEEP_ALIVE"] = _parse_bool(
        "EVM_RPC_KEEP_ALIVE", config["EVM_RPC_KEEP_ALIVE"]
    )
    config["EVM_RPC_PARTNER_DOMAINS"] = [
        d.strip() for d in config["EVM_RPC_PARTNER_DOMAINS"].split(",") if d.strip()
    ]
    config["EVM_RPC_MAX_WORKERS"] = _parse_int(
        "EVM_RPC_MAX_WORKERS", config["EVM_RPC_MAX_WORKERS"]
    )
    return config


def provider_config_from(config):
    """Build a ProviderConfig from the dict returned by load_config()."""
    domains = config["EVM_RPC_PARTNER_DOMAINS"]
    return ProviderConfig(
        hosts=config["EVM_RPC_HOSTS"],
        timeout=config["EVM_RPC_TIMEOUT"],
        headers=config["EVM_RPC_HEADERS"],
        with_credentials=config["EVM_RPC_WITH_CREDENTIALS"],
        keep_alive=config["EVM_RPC_KEEP_ALIVE"],
        partner_host=domain_allowlist(domains) if domains else None,
        max_workers=config["EVM_RPC_MAX_WORKERS"],
    )
