"""Command-line entry point for bind9-dash."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path
from typing import Any

from pydantic import ValidationError

from .config import load_config
from .exporter import to_json, to_yaml, write_output
from .models import AccessControl, Bind9DashError, InvalidInputError, RecordKey, ResourceRecord
from .operations import ZoneCreateSpec, ZoneOperations, configure_logging
from .pipeline import CommitResult
from .rpz import RpzSpec
from .settings import AccessControlSpec


def _build_parser() -> argparse.ArgumentParser:
    """Create the CLI parser."""
    parser = argparse.ArgumentParser(description="Administer BIND9 views, zones, ACLs and records.")
    parser.add_argument("--log-level", help="Override log level (default from config).")

    subparsers = parser.add_subparsers(dest="command", required=True)

    zones = subparsers.add_parser("zones", help="Zone management.").add_subparsers(dest="action", required=True)
    zone_list = zones.add_parser("list", help="List configured zones.")
    _register_output_arguments(zone_list)
    zone_show = zones.add_parser("show", help="Show one zone.")
    zone_show.add_argument("name")
    _register_output_arguments(zone_show)

    zone_create = zones.add_parser("create", help="Create a zone.")
    zone_create.add_argument("name")
    zone_create.add_argument("--type", default="master", help="master or slave.")
    zone_create.add_argument("--view", help="View to place the zone in (default top level).")
    _register_acl_arguments(zone_create)
    zone_create.add_argument("--file", help="Zone file path (default <zones_dir>/db.<name>).")
    zone_create.add_argument("--ttl", type=int, help="Default TTL of the new zone file.")
    zone_create.add_argument("--nameserver", help="Primary name server (default ns1.<zone>.).")
    zone_create.add_argument("--email", help="SOA contact (default admin.<zone>.).")
    zone_create.add_argument("--address", default="127.0.0.1", help="Address of the apex A record.")
    zone_create.add_argument("--ns-address", help="Glue address of a reverse zone's name server.")
    zone_create.add_argument("--domain", default="example.com.", help="Domain used for generated PTR names.")
    zone_create.add_argument("--master", action="append", default=[], help="Master server (slave zones).")
    zone_create.add_argument("--allow-transfer", action="append", default=[], help="allow-transfer entry.")

    zone_delete = zones.add_parser("delete", help="Delete a zone and its file.")
    zone_delete.add_argument("name")

    zone_move = zones.add_parser("reassign", help="Move a zone to another view.")
    zone_move.add_argument("name")
    zone_move.add_argument("--view", default="", help="Target view (empty for the top level).")
    _register_acl_arguments(zone_move)
    zone_move.add_argument("--dry-run", action="store_true", help="Print the diff without writing.")

    to_slave = zones.add_parser("to-slave", help="Convert a zone to a slave zone.")
    to_slave.add_argument("name")
    to_slave.add_argument("--master", action="append", required=True, help="Master server address.")
    to_slave.add_argument("--allow-transfer", action="append", default=[], help="allow-transfer entry.")

    to_master = zones.add_parser("to-master", help="Convert a zone to a master zone.")
    to_master.add_argument("name")
    to_master.add_argument("--file", help="Zone file to serve (generated if missing).")

    set_masters = zones.add_parser("set-masters", help="Change the masters of a slave zone.")
    set_masters.add_argument("name")
    set_masters.add_argument("--master", action="append", required=True, help="Master server address.")

    set_transfer = zones.add_parser("set-transfer", help="Replace a zone's allow-transfer list.")
    set_transfer.add_argument("name")
    set_transfer.add_argument("entries", nargs="+")

    records = subparsers.add_parser("records", help="Record management.").add_subparsers(dest="action", required=True)
    record_list = records.add_parser("list", help="List records of a zone.")
    record_list.add_argument("zone")
    _register_output_arguments(record_list)
    record_add = records.add_parser("add", help="Add a record.")
    record_add.add_argument("zone")
    _register_record_arguments(record_add)
    record_update = records.add_parser("update", help="Replace the first record matching NAME and TYPE.")
    record_update.add_argument("zone")
    record_update.add_argument("old_name")
    record_update.add_argument("old_type")
    record_update.add_argument("--old-value", help="Only match a record with this value.")
    _register_record_arguments(record_update)
    record_delete = records.add_parser("delete", help="Delete the first record matching NAME and TYPE.")
    record_delete.add_argument("zone")
    record_delete.add_argument("name")
    record_delete.add_argument("type")
    record_delete.add_argument("--value", help="Only match a record with this value.")

    views = subparsers.add_parser("views", help="View management.").add_subparsers(dest="action", required=True)
    _register_output_arguments(views.add_parser("list", help="List views."))
    view_create = views.add_parser("create", help="Create a view.")
    view_create.add_argument("name")
    _register_acl_arguments(view_create)
    view_acl = views.add_parser("set-acl", help="Replace a view's match-clients list.")
    view_acl.add_argument("name")
    _register_acl_arguments(view_acl)
    views.add_parser("delete", help="Delete an empty view.").add_argument("name")

    acls = subparsers.add_parser("acls", help="Named ACL management.").add_subparsers(dest="action", required=True)
    _register_output_arguments(acls.add_parser("list", help="List named ACLs."))
    acl_create = acls.add_parser("create", help="Create a named ACL.")
    acl_create.add_argument("name")
    acl_create.add_argument("entries", nargs="+")
    acls.add_parser("delete", help="Delete a named ACL.").add_argument("name")

    rpz = subparsers.add_parser("rpz", help="Response policy zone (ad blocking).").add_subparsers(
        dest="action", required=True
    )
    rpz_setup = rpz.add_parser("setup", help="Write the policy zone and declare it in every view.")
    rpz_setup.add_argument("--domain", action="append", default=[], help="Domain to block. Can be repeated.")
    rpz_setup.add_argument("--wildcard", action="append", default=[], help="Domain blocked with all subdomains.")
    rpz_setup.add_argument("--enable-wildcards", action="store_true", help="Write the --wildcard entries.")
    rpz_setup.add_argument("--redirect-to", default="0.0.0.0", help="Address, host, '.' (NXDOMAIN) or '*.' (NODATA).")
    rpz_setup.add_argument(
        "--blocklist",
        action="append",
        default=[],
        help="Local blocklist file (hosts, AdBlock Plus or BIND format). Can be repeated.",
    )
    rpz_setup.add_argument("--ttl", type=int, default=86400)
    rpz.add_parser("remove", help="Remove the policy zone and its file.")

    subparsers.add_parser("reload", help="Reload the name server.")
    return parser


def _register_output_arguments(subparser: argparse.ArgumentParser) -> None:
    """Register arguments shared by listing commands."""
    subparser.add_argument("--output", help="Path to write the listing (default stdout).")
    subparser.add_argument(
        "--format",
        choices=["yaml", "json"],
        default="yaml",
        help="Serialization format for the listing.",
    )


def _register_acl_arguments(subparser: argparse.ArgumentParser) -> None:
    """Register --allow/--deny, each repeatable."""
    subparser.add_argument("--allow", action="append", help="match-clients entry to allow. Can be repeated.")
    subparser.add_argument("--deny", action="append", help="match-clients entry to deny. Can be repeated.")


def _register_record_arguments(subparser: argparse.ArgumentParser) -> None:
    """Register the fields of a resource record."""
    subparser.add_argument("name")
    subparser.add_argument("type")
    subparser.add_argument("value")
    subparser.add_argument("--ttl", type=int)
    subparser.add_argument("--priority", type=int, help="MX/SRV priority.")
    subparser.add_argument("--weight", type=int, help="SRV weight.")
    subparser.add_argument("--port", type=int, help="SRV port.")


def _acl_from_args(args: argparse.Namespace) -> AccessControl | None:
    """Return an AccessControl when --allow or --deny was given."""
    if not args.allow and not args.deny:
        return None
    return AccessControl.from_lists(args.allow, args.deny)


def _record_from_args(args: argparse.Namespace) -> ResourceRecord:
    return ResourceRecord(
        name=args.name,
        type=args.type.upper(),
        value=args.value,
        ttl=args.ttl,
        priority=args.priority,
        weight=args.weight,
        port=args.port,
    )


def _emit(data: Any, args: argparse.Namespace) -> None:
    """Print or write a listing in the requested format."""
    content = to_json(data) if args.format == "json" else to_yaml(data)
    if args.output:
        write_output(Path(args.output), content)
        print(f"Wrote {args.format} to {args.output}")
    else:
        print(content)


def _report(result: CommitResult) -> None:
    """Print the outcome of a commit."""
    if not result.changed:
        print("No changes detected.")
        return
    print(f"Committed {result.target} ({result.stage.value})")
    if result.backup_path:
        print(f"Backup: {result.backup_path}")


def _run_zones(ops: ZoneOperations, args: argparse.Namespace) -> None:
    """Execute a zones subcommand."""
    if args.action == "list":
        _emit(ops.list_zones(), args)
    elif args.action == "show":
        _emit(ops.get_zone(args.name), args)
    elif args.action == "create":
        acl = _acl_from_args(args)
        spec = ZoneCreateSpec(
            name=args.name,
            type=args.type,
            view=args.view,
            acl=AccessControlSpec.from_access_control(acl) if acl else None,
            file=args.file,
            ttl=args.ttl,
            nameserver=args.nameserver,
            email=args.email,
            address=args.address,
            ns_address=args.ns_address,
            domain=args.domain,
            masters=args.master,
            allow_transfer=args.allow_transfer,
        )
        info = ops.create_zone(spec)
        print(f"Created zone {info.zone.name} ({info.zone.type}) with file {info.path}")
    elif args.action == "delete":
        _report(ops.delete_zone(args.name))
    elif args.action == "reassign":
        if args.dry_run:
            diff = ops.plan_reassign(args.name, args.view, _acl_from_args(args))
            print(diff.text() if diff.has_changes() else "No changes detected.")
        else:
            _report(ops.reassign_zone(args.name, args.view, _acl_from_args(args)))
    elif args.action == "to-slave":
        _report(ops.convert_to_slave(args.name, args.master, args.allow_transfer))
    elif args.action == "to-master":
        _report(ops.convert_to_master(args.name, args.file))
    elif args.action == "set-masters":
        _report(ops.update_slave_masters(args.name, args.master))
    elif args.action == "set-transfer":
        _report(ops.set_allow_transfer(args.name, args.entries))


def _run_records(ops: ZoneOperations, args: argparse.Namespace) -> None:
    """Execute a records subcommand."""
    if args.action == "list":
        _emit(ops.list_records(args.zone), args)
    elif args.action == "add":
        _report(ops.add_record(args.zone, _record_from_args(args)))
    elif args.action == "update":
        key = RecordKey(args.old_name, args.old_type, args.old_value)
        _report(ops.update_record(args.zone, key, _record_from_args(args)))
    elif args.action == "delete":
        _report(ops.delete_record(args.zone, RecordKey(args.name, args.type, args.value)))


def _run_views(ops: ZoneOperations, args: argparse.Namespace) -> None:
    """Execute a views subcommand."""
    if args.action == "list":
        _emit(ops.list_views(), args)
    elif args.action == "create":
        _report(ops.create_view(args.name, _acl_from_args(args)))
    elif args.action == "set-acl":
        _report(ops.update_view_acl(args.name, _acl_from_args(args) or AccessControl()))
    elif args.action == "delete":
        _report(ops.delete_view(args.name))


def _run_acls(ops: ZoneOperations, args: argparse.Namespace) -> None:
    """Execute an acls subcommand."""
    if args.action == "list":
        _emit(ops.list_acls(), args)
    elif args.action == "create":
        _report(ops.create_acl(args.name, args.entries))
    elif args.action == "delete":
        _report(ops.delete_acl(args.name))


def _read_blocklists(paths: list[str]) -> list[str]:
    texts = []
    for path in paths:
        try:
            texts.append(Path(path).read_text(encoding="utf-8", errors="replace"))
        except OSError as exc:
            raise InvalidInputError(f"Cannot read blocklist {path}: {exc}") from exc
    return texts


def _run_rpz(ops: ZoneOperations, args: argparse.Namespace) -> None:
    """Execute an rpz subcommand."""
    if args.action == "setup":
        spec = RpzSpec(
            custom_domains=args.domain,
            wildcard_domains=args.wildcard,
            wildcard_enabled=args.enable_wildcards,
            redirect_to=args.redirect_to,
            blocklists=_read_blocklists(args.blocklist),
            ttl=args.ttl,
        )
        _report(ops.setup_rpz(spec))
    elif args.action == "remove":
        _report(ops.remove_rpz())


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)
    try:
        config = load_config()
        configure_logging(args.log_level or config.log_level)
        ops = ZoneOperations(config)
        if args.command == "zones":
            _run_zones(ops, args)
        elif args.command == "records":
            _run_records(ops, args)
        elif args.command == "views":
            _run_views(ops, args)
        elif args.command == "acls":
            _run_acls(ops, args)
        elif args.command == "rpz":
            _run_rpz(ops, args)
        elif args.command == "reload":
            result = ops.reload()
            print(result.output or "Reloaded.")
        else:  # pragma: no cover - argparse ensures we never reach here
            parser.error(f"Unsupported command {args.command}")
    except (Bind9DashError, ValidationError) as exc:
        print(f"Error: {exc}", file=sys.stderr)
        sys.exit(2)
    except Exception as exc:  # noqa: BLE001
        print(f"Unexpected error: {exc}", file=sys.stderr)
        sys.exit(3)


if __name__ == "__main__":
    main()
