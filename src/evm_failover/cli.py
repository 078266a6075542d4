# -*- encoding: utf-8 -*-
"""
EVM Failover
evm_failover.cli module

Command-line interface for the failover provider.

Commands:
  evm-failover call  Send one JSON-RPC call and print the response
  evm-failover info  Show the effective provider configuration
"""

import argparse
import json
import logging
import sys

from evm_failover.config import load_config, provider_config_from
from evm_failover.errors import ProviderError
from evm_failover.provider import FailoverHTTPProvider


def _build_config(args):
    config = load_config()
    if args.hosts:
        config["EVM_RPC_HOSTS"] = [u.strip() for u in args.hosts.split(",") if u.strip()]
    if args.timeout is not None:
        config["EVM_RPC_TIMEOUT"] = args.timeout
    return provider_config_from(config)


def cmd_call(args):
    """Send one JSON-RPC call through the provider."""
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.INFO,
        format="%(asctime)s %(name)s %(levelname)s %(message)s",
    )
    try:
        params = json.loads(args.params)
    except ValueError:
        print(f"Error: --params is not valid JSON: {args.params}", file=sys.stderr)
        sys.exit(2)

    with FailoverHTTPProvider(config=_build_config(args)) as provider:
        try:
            response = provider.make_request(args.method, params)
        except ProviderError as exc:
            print(f"Error: {exc.message} (host: {exc.host})", file=sys.stderr)
            sys.exit(1)
        served_by = provider.host

    print(json.dumps(response, indent=2))
    print(f"Served by: {served_by}", file=sys.stderr)


def cmd_info(args):
    """Show hosts, timeout and header settings."""
    config = _build_config(args)

    print(f"Hosts:             {', '.join(config.hosts)}")
    print(f"Timeout:           {config.timeout or 'disabled'}"
          f"{' ms' if config.timeout else ''}")
    print(f"Credentials:       {config.credentials_mode}")
    print(f"Keep-alive:        {config.keep_alive}")
    print(f"Static headers:    {len(config.headers)}")
    for name, value in config.headers:
        print(f"  {name}: {value}")
    partner = [h for h in config.hosts if config.is_partner_host(h)]
    print(f"Partner hosts:     {', '.join(partner) or '(none)'}")


def main(argv=None):
    """Entry point for the evm-failover CLI."""
    parser = argparse.ArgumentParser(
        prog="evm-failover",
        description="JSON-RPC over HTTP with automatic host failover",
    )
    parser.add_argument(
        "--hosts", help="Comma-separated RPC URLs (overrides EVM_RPC_HOSTS)"
    )
    parser.add_argument(
        "--timeout", type=int, help="Per-attempt timeout in ms (overrides EVM_RPC_TIMEOUT)"
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    # evm-failover call
    call_parser = subparsers.add_parser(
        "call", help="Send a JSON-RPC call"
    )
    call_parser.add_argument("method", help="JSON-RPC method, e.g. eth_blockNumber")
    call_parser.add_argument(
        "--params", default="[]", help="JSON-encoded params (default: [])"
    )
    call_parser.add_argument(
        "-v", "--verbose", action="store_true", help="Log every attempt"
    )
    call_parser.set_defaults(func=cmd_call)

    # evm-failover info
    info_parser = subparsers.add_parser(
        "info", help="Show provider configuration"
    )
    info_parser.set_defaults(func=cmd_info)

    args = parser.parse_args(argv)
    args.func(args)


if __name__ == "__main__":
    main()
