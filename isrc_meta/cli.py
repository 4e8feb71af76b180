from __future__ import annotations

import argparse
import asyncio
import logging
from pathlib import Path
from typing import Optional

from .app import IsrcApp
from .commands import embed as cmd_embed
from .commands import export as cmd_export
from .commands import extract as cmd_extract
from .commands import generate as cmd_generate
from .commands import mark_used as cmd_mark_used
from .commands import summary as cmd_summary
from .commands import validate as cmd_validate
from .config import Settings, find_config
from .models import IsrcMetaError, PersistenceError, RangeExhausted
from .registry import Registry

LOG_FORMAT = "%(levelname).1s | %(name)s | %(message)s"

C_RESET = "\033[0m"
LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",  # Cyan
    logging.INFO: "\033[37m",  # Light gray
    logging.WARNING: "\033[33m",  # Yellow
    logging.ERROR: "\033[31m",  # Red
    logging.CRITICAL: "\033[35m",  # Magenta
}

logger = logging.getLogger(__name__)

REGISTRY_COMMANDS = {"generate", "mark-used", "summary", "export"}


class ShortPathFormatter(logging.Formatter):
    def __init__(self, fmt: str, roots: list[Path]) -> None:
        super().__init__(fmt)
        self.roots = [str(root) for root in roots if root]

    def _shorten(self, message: str) -> str:
        for root in self.roots:
            if not message:
                break
            message = message.replace(f"{root}/", "")
        return message

    def format(self, record: logging.LogRecord) -> str:
        return self._shorten(super().format(record))


class ColorFormatter(ShortPathFormatter):
    def format(self, record: logging.LogRecord) -> str:
        message = super().format(record)
        color = LEVEL_COLORS.get(record.levelno)
        if not color:
            return message
        return f"{color}{message}{C_RESET}"


class WarningBufferHandler(logging.Handler):
    def __init__(self) -> None:
        super().__init__(level=logging.WARNING)
        self.records: list[str] = []

    def emit(self, record: logging.LogRecord) -> None:
        try:
            msg = self.format(record)
        except Exception:  # pragma: no cover
            msg = record.getMessage()
        self.records.append(msg)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="ISRC allocation and container tagging")
    parser.add_argument("--config", type=Path, help="Path to config.yaml")
    parser.add_argument("--log-level", default="INFO", help="Python logging level")

    subparsers = parser.add_subparsers(dest="command", required=True)
    generate_parser = subparsers.add_parser("generate", help="Issue the next code for a track")
    generate_parser.add_argument("title", help="Track title recorded with the code")
    generate_parser.add_argument("--owner", default="", help="Artist or owner name")
    generate_parser.add_argument(
        "--flush", action="store_true", help="Wait until the registry is saved before printing"
    )
    generate_parser.add_argument(
        "--reuse",
        action="store_true",
        help="Return an unused code already issued for the same title and owner",
    )
    used_parser = subparsers.add_parser("mark-used", help="Mark an issued code as used")
    used_parser.add_argument("code")
    used_parser.add_argument(
        "--context",
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Context recorded with the code (repeatable)",
    )
    summary_parser = subparsers.add_parser("summary", help="Show registry counters")
    summary_parser.add_argument("--json", action="store_true", help="Emit JSON to stdout")
    export_parser = subparsers.add_parser("export", help="Export the registry as CSV")
    export_parser.add_argument("--out", type=Path, default=None, help="CSV file (default: stdout)")
    embed_parser = subparsers.add_parser("embed", help="Write a code into an MP3/WAV/JPEG/PNG file")
    embed_parser.add_argument("file", type=Path)
    embed_parser.add_argument("code")
    embed_parser.add_argument("--title", default=None, help="MP3 only: TIT2")
    embed_parser.add_argument("--artist", default=None, help="MP3 only: TPE1")
    embed_parser.add_argument("--genre", default=None, help="MP3 only: TCON")
    embed_parser.add_argument(
        "--output", type=Path, default=None, help="Write a tagged copy instead of editing in place"
    )
    extract_parser = subparsers.add_parser("extract", help="Read embedded codes from files")
    extract_parser.add_argument("files", type=Path, nargs="+")
    validate_parser = subparsers.add_parser("validate", help="Check code syntax")
    validate_parser.add_argument("codes", nargs="+")
    return parser


def configure_logging(level_name: str) -> WarningBufferHandler:
    log_level = getattr(logging, level_name.upper(), logging.INFO)
    root_logger = logging.getLogger()
    root_logger.handlers.clear()
    root_logger.setLevel(log_level)

    display_roots = [Path.cwd()]
    color_handler = logging.StreamHandler()
    color_handler.setFormatter(ColorFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(color_handler)

    warn_buffer = WarningBufferHandler()
    warn_buffer.setFormatter(ShortPathFormatter(LOG_FORMAT, display_roots))
    root_logger.addHandler(warn_buffer)
    return warn_buffer


async def run_registry_command(app: IsrcApp, args: argparse.Namespace) -> bool:
    registry = await app.open_registry()
    try:
        ok = await _dispatch_registry_command(registry, args)
    except BaseException:
        # Keep the original failure; a save error here is only reported.
        try:
            await registry.flush()
        except PersistenceError as exc:
            logger.error("Registry could not be saved: %s", exc)
        raise
    await registry.flush()
    return ok


async def _dispatch_registry_command(registry: Registry, args: argparse.Namespace) -> bool:
    match args.command:
        case "generate":
            await cmd_generate.run(
                registry, args.title, args.owner, flush=args.flush, reuse=args.reuse
            )
            return True
        case "mark-used":
            return await cmd_mark_used.run(registry, args.code, args.context)
        case "summary":
            cmd_summary.run(registry, json_output=args.json)
            return True
        case "export":
            cmd_export.run(registry, args.out)
            return True
    raise ValueError(f"Not a registry command: {args.command}")


def main(argv: Optional[list[str]] = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    config_path = find_config(args.config)
    settings = Settings.load(config_path) if config_path else Settings()
    warn_buffer = configure_logging(args.log_level)

    app = IsrcApp.create(settings) if args.command in REGISTRY_COMMANDS else IsrcApp.in_memory(settings)
    success = True
    try:
        match args.command:
            case "generate" | "mark-used" | "summary" | "export":
                success = asyncio.run(run_registry_command(app, args))
            case "embed":
                extra = {"title": args.title, "artist": args.artist, "genre": args.genre}
                success = cmd_embed.run(app.writer, args.file, args.code, extra=extra, output=args.output)
            case "extract":
                report = cmd_extract.run(app.writer, args.files)
                for line in report.lines:
                    print(line)
                success = report.found > 0
            case "validate":
                report = cmd_validate.run(args.codes)
                for line in report.lines:
                    print(line)
                success = report.ok
            case _:
                parser.error("Unknown command")
    except RangeExhausted as exc:
        logger.error("%s", exc)
        raise SystemExit(2)
    except PersistenceError as exc:
        logger.error("Registry could not be saved: %s", exc)
        success = False
    except (IsrcMetaError, OSError, ValueError) as exc:
        logger.error("%s", exc)
        success = False
    finally:
        app.close()
        if warn_buffer.records:
            print("\n\033[33mWarnings/Errors summary:\033[0m")
            for line in warn_buffer.records:
                print(f" - {line}")
    if not success:
        raise SystemExit(1)


if __name__ == "__main__":
    main()
