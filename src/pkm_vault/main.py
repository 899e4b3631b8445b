#!/usr/bin/env python
"""Command-line entry point for the vault engine."""
import argparse
import base64
import json
import logging
import os
import sys
from pathlib import Path
from typing import Any, List, Optional

from pkm_vault import __version__
from pkm_vault.config import PkmVaultConfig, config
from pkm_vault.observability import configure_logging
from pkm_vault.services.vault_service import VaultService


def parse_args(argv: Optional[List[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="pkm-vault", description="Vault persistence and backup engine"
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument(
        "--app-data-dir",
        help="Application data directory (the vault lives in <dir>/vault)",
        type=str,
        default=os.environ.get("PKM_VAULT_APP_DATA_DIR"),
    )
    parser.add_argument(
        "--log-level",
        help="Logging level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
        default=os.environ.get("PKM_VAULT_LOG_LEVEL", "WARNING"),
    )

    commands = parser.add_subparsers(dest="command", required=True)
    commands.add_parser("load", help="Print all notes as JSON")

    save = commands.add_parser("save", help="Save a JSON list of notes")
    save.add_argument("file", help="JSON file with the note list, or - for stdin")

    attach = commands.add_parser("attach", help="Store a file as a note attachment")
    attach.add_argument("note_path", help="Vault-relative path of the note")
    attach.add_argument("file", help="File to attach")

    clone = commands.add_parser(
        "clone", help="Copy the attachments a note links to for its duplicate"
    )
    clone.add_argument("source", help="Path of the original note")
    clone.add_argument("target", help="Path of the duplicate")
    clone.add_argument("markdown_file", help="Markdown of the duplicate, or - for stdin")

    commands.add_parser("backup-status", help="Print the backup state")
    commands.add_parser("backup-now", help="Run a backup immediately")
    enable = commands.add_parser("backup-enable", help="Turn scheduled backups on or off")
    enable.add_argument("state", choices=["on", "off"])

    return parser.parse_args(argv)


def build_config(args: argparse.Namespace) -> PkmVaultConfig:
    """Config for this run, honoring command line overrides."""
    if args.app_data_dir:
        return PkmVaultConfig(app_data_dir=Path(args.app_data_dir))
    return config


def _read_text(source: str) -> str:
    if source == "-":
        return sys.stdin.read()
    return Path(source).read_text(encoding="utf-8")


def _dump(value: Any) -> None:
    if hasattr(value, "model_dump"):
        value = value.model_dump(mode="json", by_alias=True)
    elif isinstance(value, list):
        value = [item.model_dump(mode="json", by_alias=True) for item in value]
    json.dump(value, sys.stdout, indent=2, ensure_ascii=False)
    sys.stdout.write("\n")


def run_command(service: VaultService, args: argparse.Namespace) -> int:
    """Execute one subcommand; returns the process exit code."""
    if args.command == "load":
        _dump(service.load())
        return 0

    if args.command == "save":
        notes = json.loads(_read_text(args.file))
        ok = service.save(notes)
        _dump({"saved": ok})
        return 0 if ok else 1

    if args.command == "attach":
        data = base64.b64encode(Path(args.file).read_bytes()).decode("ascii")
        result = service.store_attachment(args.note_path, Path(args.file).name, data)
        _dump(result)
        return 0 if result is not None else 1

    if args.command == "clone":
        _dump(service.clone_attachment_links(
            args.source, args.target, _read_text(args.markdown_file)
        ))
        return 0

    if args.command == "backup-status":
        _dump(service.get_backup_status())
        return 0

    if args.command == "backup-now":
        state = service.run_backup_now()
        _dump(state)
        return 0 if state.last_error is None else 1

    if args.command == "backup-enable":
        _dump(service.set_backup_enabled(args.state == "on"))
        return 0

    raise ValueError(f"Unknown command: {args.command}")


def main(argv: Optional[List[str]] = None) -> int:
    """Run the vault command line."""
    args = parse_args(argv)
    settings = build_config(args)

    log_level = getattr(logging, args.log_level.upper(), logging.WARNING)
    try:
        configure_logging(settings.get_log_dir(), level=log_level, console=True)
    except Exception as e:
        # Fall back to basic console logging if file logging fails
        logging.basicConfig(level=log_level)
        logging.getLogger(__name__).warning(f"Failed to configure file logging: {e}")

    logger = logging.getLogger(__name__)
    service = VaultService(settings)
    try:
        code = run_command(service, args)
    except (OSError, ValueError) as e:
        logger.error(f"{args.command} failed: {e}")
        code = 2
    finally:
        service.shutdown()

    for issue in service.diagnostics.drain():
        print(json.dumps(issue.to_dict()), file=sys.stderr)
    return code


if __name__ == "__main__":
    sys.exit(main())
