#!/usr/bin/env python3
"""
Scriptorium CLI

Command-line front end for a manuscript registry kept on disk.

Usage:
  scriptorium --store-dir <dir> register <hash> --caller <id> [--title T] [--metadata M]
  scriptorium --store-dir <dir> register-file <path> --caller <id>
  scriptorium --store-dir <dir> show <hash>
  scriptorium --store-dir <dir> list [--owner <id>] [--category C] [--tag T]
  scriptorium --store-dir <dir> transfer <hash> <new-owner> --caller <id>
  scriptorium --store-dir <dir> add-version <hash> <version-hash> --caller <id> [--number N] [--notes N]
  scriptorium --store-dir <dir> add-category <hash> <category> --caller <id> [--tag T ...]
  scriptorium --store-dir <dir> add-collaborator <hash> <who> --caller <id> -p <perm> [-p <perm> ...]
  scriptorium --store-dir <dir> has-permission <hash> <who> <perm>
  scriptorium --store-dir <dir> set-share <hash> <account> <percentage> --caller <id>
  scriptorium --store-dir <dir> verify-owner <hash> <account>
  scriptorium --store-dir <dir> history <hash>
  scriptorium keygen <path>
"""

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import List, Optional

from .config import RegistryConfig, build_registry
from .provenance import RegistryKey
from .result import Result


def load_config(args) -> RegistryConfig:
    """Config file first, then command-line overrides."""
    config = RegistryConfig.from_file(args.config) if args.config else RegistryConfig()

    if args.store_dir:
        config.store_type = "json"
        config.store_path = Path(args.store_dir)
        if not config.provenance_path:
            config.provenance_path = config.store_path / "provenance"
        config.provenance_enabled = True
    if args.log_level:
        config.log_level = args.log_level.upper()
    return config


def emit(result: Result) -> int:
    """Print a result as JSON and return the exit status."""
    print(json.dumps(result.to_dict(), indent=2))
    return 0 if result.success else 1


def cmd_register(registry, args) -> Result:
    return registry.register(args.caller, args.hash, args.title, args.metadata)


def cmd_register_file(registry, args) -> Result:
    return registry.register_file(args.caller, args.path, args.title, args.metadata)


def cmd_show(registry, args) -> Result:
    return registry.get_details(args.hash)


def cmd_list(registry, args) -> Result:
    if args.owner:
        manuscripts = registry.find_by_owner(args.owner)
    elif args.category:
        manuscripts = registry.find_by_category(args.category)
    elif args.tag:
        manuscripts = registry.find_by_tag(args.tag)
    else:
        manuscripts = registry.list_manuscripts()
    return Result.ok(manuscripts)


def cmd_transfer(registry, args) -> Result:
    return registry.transfer_ownership(args.caller, args.hash, args.new_owner)


def cmd_add_version(registry, args) -> Result:
    return registry.add_version(args.caller, args.hash, args.version_hash, args.number, args.notes)


def cmd_add_category(registry, args) -> Result:
    return registry.add_category(args.caller, args.hash, args.category, args.tag or [])


def cmd_add_collaborator(registry, args) -> Result:
    return registry.add_collaborator(args.caller, args.hash, args.collaborator, args.permission or [])


def cmd_has_permission(registry, args) -> Result:
    return registry.has_permission(args.hash, args.collaborator, args.permission)


def cmd_set_share(registry, args) -> Result:
    return registry.set_revenue_share(args.caller, args.hash, args.account, args.percentage)


def cmd_verify_owner(registry, args) -> Result:
    return registry.verify_ownership(args.hash, args.account)


def cmd_history(registry, args) -> Result:
    return registry.history(args.hash)


def cmd_keygen(args) -> int:
    path = Path(args.path)
    if path.exists() and not args.force:
        print(f"Error: {path} already exists (use --force to overwrite)", file=sys.stderr)
        return 1
    key = RegistryKey.generate()
    key.save(path)
    print(key.public_key.decode("utf-8"), end="")
    return 0


COMMANDS = {
    "register": cmd_register,
    "register-file": cmd_register_file,
    "show": cmd_show,
    "list": cmd_list,
    "transfer": cmd_transfer,
    "add-version": cmd_add_version,
    "add-category": cmd_add_category,
    "add-collaborator": cmd_add_collaborator,
    "has-permission": cmd_has_permission,
    "set-share": cmd_set_share,
    "verify-owner": cmd_verify_owner,
    "history": cmd_history,
}

# Commands that change state and so need a persistent store
MUTATING_COMMANDS = {
    "register",
    "register-file",
    "transfer",
    "add-version",
    "add-category",
    "add-collaborator",
    "set-share",
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="scriptorium",
        description="Scriptorium - manuscript ownership and rights registry",
    )
    parser.add_argument("--config", help="Registry config YAML file")
    parser.add_argument("--store-dir", help="Directory of the JSON manuscript store")
    parser.add_argument("--log-level", help="Logging level (DEBUG, INFO, WARNING, ...)")
    subparsers = parser.add_subparsers(dest="command", help="Commands")

    def with_caller(sub):
        sub.add_argument("--caller", required=True, help="Authenticated caller identity")
        return sub

    register_parser = with_caller(subparsers.add_parser("register", help="Register a manuscript"))
    register_parser.add_argument("hash", help="Content hash")
    register_parser.add_argument("--title", default="", help="Title")
    register_parser.add_argument("--metadata", default="", help="Metadata string")

    register_file_parser = with_caller(subparsers.add_parser("register-file", help="Register a file by its hash"))
    register_file_parser.add_argument("path", help="File to hash and register")
    register_file_parser.add_argument("--title", default="", help="Title (default: file name)")
    register_file_parser.add_argument("--metadata", default="", help="Metadata string")

    show_parser = subparsers.add_parser("show", help="Show manuscript details")
    show_parser.add_argument("hash", help="Content hash")

    list_parser = subparsers.add_parser("list", help="List manuscripts")
    list_parser.add_argument("--owner", help="Only manuscripts owned by this identity")
    list_parser.add_argument("--category", help="Only manuscripts in this category")
    list_parser.add_argument("--tag", help="Only manuscripts with this tag")

    transfer_parser = with_caller(subparsers.add_parser("transfer", help="Transfer ownership"))
    transfer_parser.add_argument("hash", help="Content hash")
    transfer_parser.add_argument("new_owner", help="New owner identity")

    version_parser = with_caller(subparsers.add_parser("add-version", help="Append a revision"))
    version_parser.add_argument("hash", help="Content hash")
    version_parser.add_argument("version_hash", help="Hash of the new revision")
    version_parser.add_argument("--number", type=int, help="Version number")
    version_parser.add_argument("--notes", default="", help="Revision notes")

    category_parser = with_caller(subparsers.add_parser("add-category", help="Add a category and tags"))
    category_parser.add_argument("hash", help="Content hash")
    category_parser.add_argument("category", help="Category label")
    category_parser.add_argument("-t", "--tag", action="append", help="Tag (repeatable)")

    collab_parser = with_caller(subparsers.add_parser("add-collaborator", help="Grant permissions"))
    collab_parser.add_argument("hash", help="Content hash")
    collab_parser.add_argument("collaborator", help="Collaborator identity")
    collab_parser.add_argument("-p", "--permission", action="append", help="Permission (repeatable)")

    perm_parser = subparsers.add_parser("has-permission", help="Check a collaborator permission")
    perm_parser.add_argument("hash", help="Content hash")
    perm_parser.add_argument("collaborator", help="Collaborator identity")
    perm_parser.add_argument("permission", help="Permission label")

    share_parser = with_caller(subparsers.add_parser("set-share", help="Set a revenue share"))
    share_parser.add_argument("hash", help="Content hash")
    share_parser.add_argument("account", help="Account identity")
    share_parser.add_argument("percentage", type=float, help="Share percentage (0-100)")

    verify_parser = subparsers.add_parser("verify-owner", help="Check current ownership")
    verify_parser.add_argument("hash", help="Content hash")
    verify_parser.add_argument("account", help="Claimed owner")

    history_parser = subparsers.add_parser("history", help="Show provenance events")
    history_parser.add_argument("hash", help="Content hash")

    keygen_parser = subparsers.add_parser("keygen", help="Generate a registry signing key")
    keygen_parser.add_argument("path", help="Where to write the private key (PEM)")
    keygen_parser.add_argument("--force", action="store_true", help="Overwrite an existing key")

    return parser


def main(argv: Optional[List[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        return 1

    if args.command == "keygen":
        return cmd_keygen(args)

    config = load_config(args)
    if args.command in MUTATING_COMMANDS and config.store_type == "memory":
        print(f"Error: {args.command} needs a persistent store (use --store-dir or --config)", file=sys.stderr)
        return 1

    logging.basicConfig(level=config.log_level, format="%(levelname)s %(name)s: %(message)s")
    registry = build_registry(config)
    try:
        return emit(COMMANDS[args.command](registry, args))
    except FileNotFoundError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
