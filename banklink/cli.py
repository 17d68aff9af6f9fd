#!/usr/bin/env python3
"""
Banklink Command Line Interface

Usage:
    banklink keygen [--algorithm ed25519|hmac]
    banklink canonical -f fields.json [--canonicalizer query_string|length_prefixed]
    banklink sign -f fields.json -k KEY [--algorithm ...] [--format json|html|mac]
    banklink verify -f fields.json -k KEY [--algorithm ...] [--chain]

fields.json is a flat JSON object; its key order is the parameter order.
"""

import argparse
import json
import sys
from typing import List, Optional

from . import config
from .algorithms import (
    Ed25519Algorithm,
    HmacSha256Algorithm,
    SigningAlgorithm,
    generate_ed25519_keypair,
    generate_hmac_secret,
)
from .canonicalization import CANONICALIZERS
from .exceptions import BanklinkError
from .logging_config import configure_logging
from .packet import Packet
from .parameters import ParameterStore
from .verifiers import NonceVerifier


def load_json(path: str) -> dict:
    """Load JSON from file ('-' reads stdin)."""
    if path == "-":
        return json.load(sys.stdin)
    with open(path, 'r', encoding='utf-8') as f:
        return json.load(f)


def build_algorithm(args, signing: bool) -> SigningAlgorithm:
    canonicalizer = CANONICALIZERS[args.canonicalizer]
    if args.algorithm == "hmac":
        return HmacSha256Algorithm(args.key, canonicalizer=canonicalizer)
    if signing:
        return Ed25519Algorithm(signing_key=args.key, canonicalizer=canonicalizer)
    return Ed25519Algorithm(verify_key=args.key, canonicalizer=canonicalizer)


def build_packet(args, signing: bool) -> Packet:
    packet = Packet(
        args.packet_id,
        build_algorithm(args, signing),
        mac_name=args.mac_field,
    )
    packet.load(load_json(args.file).items())
    return packet


def cmd_keygen(args) -> int:
    """Generate a key pair (ed25519) or shared secret (hmac)."""
    if args.algorithm == "hmac":
        print(json.dumps({"algorithm": "HMAC-SHA256", "secret_b64": generate_hmac_secret()}, indent=2))
    else:
        signing_key, verify_key = generate_ed25519_keypair()
        print(json.dumps({
            "algorithm": "Ed25519",
            "signing_key_b64": signing_key,
            "verify_key_b64": verify_key,
        }, indent=2))
    return 0


def cmd_canonical(args) -> int:
    """Print the canonical string of a field file."""
    store = ParameterStore()
    store.load(load_json(args.file).items())
    canonicalizer = CANONICALIZERS[args.canonicalizer]
    print(canonicalizer([p for p in store.values() if p.name != args.mac_field]))
    return 0


def cmd_sign(args) -> int:
    packet = build_packet(args, signing=True)
    mac = packet.sign()
    if args.format == "mac":
        print(mac)
    elif args.format == "html":
        print(packet.html(), end="")
    else:
        print(packet.json())
    return 0


def offline_chain():
    """Default chain minus nonce checks: the CLI holds no issued nonces."""
    return tuple(v for v in config.default_verifiers() if not isinstance(v, NonceVerifier))


def cmd_verify(args) -> int:
    packet = build_packet(args, signing=False)
    outcome = packet.evaluate(offline_chain() if args.chain else ())
    print(json.dumps(outcome.to_dict(), indent=2))
    if outcome.verified:
        print("\n✓ VERIFIED", file=sys.stderr)
        return 0
    print("\n✗ NOT VERIFIED", file=sys.stderr)
    return 1


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="Banklink packet CLI",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  banklink keygen --algorithm ed25519
  banklink canonical -f fields.json --canonicalizer length_prefixed
  banklink sign -f fields.json -a hmac -k <secret_b64> --format html
  banklink verify -f signed.json -a ed25519 -k <verify_key_b64>
        """
    )
    parser.add_argument("--log-level", default=config.LOG_LEVEL, help="Log level")

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    keygen_parser = subparsers.add_parser("keygen", help="Generate key material")
    keygen_parser.add_argument("-a", "--algorithm", choices=["ed25519", "hmac"], default="ed25519")

    def add_field_args(p):
        p.add_argument("-f", "--file", required=True, help="Fields JSON file ('-' for stdin)")
        p.add_argument("-c", "--canonicalizer", choices=sorted(CANONICALIZERS), default="query_string")
        p.add_argument("-m", "--mac-field", default=config.MAC_FIELD, help="MAC parameter name")

    canonical_parser = subparsers.add_parser("canonical", help="Print canonical string")
    add_field_args(canonical_parser)

    for name, help_text in (("sign", "Sign a packet"), ("verify", "Verify a packet")):
        p = subparsers.add_parser(name, help=help_text)
        add_field_args(p)
        p.add_argument("-a", "--algorithm", choices=["ed25519", "hmac"], default="ed25519")
        p.add_argument("-k", "--key", required=True, help="Base64 key or secret")
        p.add_argument("-p", "--packet-id", default="cli", help="Packet id for audit logs")
        if name == "sign":
            p.add_argument("--format", choices=["json", "html", "mac"], default="json")
        else:
            p.add_argument("--chain", action="store_true", help="Also check timestamp freshness and date consistency")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    configure_logging(args.log_level, json_format=config.LOG_JSON, stream=sys.stderr)

    commands = {
        "keygen": cmd_keygen,
        "canonical": cmd_canonical,
        "sign": cmd_sign,
        "verify": cmd_verify,
    }
    if args.command not in commands:
        parser.print_help()
        return 2

    try:
        return commands[args.command](args)
    except BanklinkError as e:
        print(json.dumps(e.to_dict(), indent=2), file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
