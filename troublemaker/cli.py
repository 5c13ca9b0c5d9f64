"""
Troublemaker entry point.

Usage:
    troublemaker [flags] [subcommand args...]
    python -m troublemaker -exit.after=30s -exit.after.jitter=10s -exit.percent=50

Startup order:
    parse flags -> log -> ignore signals -> resolve settings -> subcommand
    -> exit arrangement -> HTTP listener -> CPU load workers -> idle forever

Flags use Go-style names with one or two dashes ("-web.delay=5s",
"--web.delay 5s"). Boolean flags take no separate value: "-web.enable" or
"-web.enable=false". Flag parsing stops at the first non-flag argument.
"""

import argparse
import multiprocessing
import sys
import threading
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Any, Callable, Dict, List, Optional, Sequence, Tuple

import structlog

from troublemaker.api.app import create_app
from troublemaker.api.server import start_http_server
from troublemaker.config import Settings, load_settings
from troublemaker.durations import format_duration, parse_duration, to_seconds
from troublemaker.engine.effective import EffectiveSettings, resolve
from troublemaker.engine.jitter import SeedProvider, new_jitter_generator, random_seed
from troublemaker.engine.lifecycle import LifecycleController, Terminate, terminate_process
from troublemaker.engine.load import start_load_workers
from troublemaker.exceptions import (
    ConfigurationError,
    DurationParseError,
    SubcommandError,
)
from troublemaker.logging_setup import configure_logging, get_logger, new_instance_id
from troublemaker.services.signals import SignalIgnorer, restore_default_interrupt


# ============================================================================
# FLAGS
# ============================================================================


def field_to_flag(field_name: str) -> str:
    return field_name.replace("_", ".")


BOOL_FIELDS = frozenset(
    name for name, info in Settings.model_fields.items() if info.annotation is bool
)


class FlagParser(argparse.ArgumentParser):
    """ArgumentParser that raises instead of exiting on bad flags."""

    def error(self, message):
        raise ConfigurationError(message)


def build_parser() -> argparse.ArgumentParser:
    """One flag per settings field; only flags actually given are set."""
    parser = FlagParser(
        prog="troublemaker",
        description="Crash, stall, burn CPU and ignore signals on purpose.",
        allow_abbrev=False,
    )
    for name, info in Settings.model_fields.items():
        flag = field_to_flag(name)
        parser.add_argument(
            f"-{flag}",
            f"--{flag}",
            dest=name,
            default=argparse.SUPPRESS,
            metavar="BOOL" if name in BOOL_FIELDS else "VALUE",
            help=info.description,
        )
    parser.add_argument("args", nargs=argparse.REMAINDER, help="subcommand and its arguments")
    return parser


def normalize_flags(argv: Sequence[str]) -> List[str]:
    """
    Give bare boolean flags an explicit "=true".

    Stops at "--" or the first argument that is neither a flag nor a flag
    value, so subcommand arguments pass through untouched.
    """
    bool_flags = set()
    value_flags = set()
    for name in Settings.model_fields:
        target = bool_flags if name in BOOL_FIELDS else value_flags
        target.update({f"-{field_to_flag(name)}", f"--{field_to_flag(name)}"})

    out: List[str] = []
    tokens = list(argv)
    i = 0
    while i < len(tokens):
        token = tokens[i]
        if token == "--" or not token.startswith("-") or token == "-":
            out.extend(tokens[i:])
            break
        if token in bool_flags:
            out.append(f"{token}=true")
        elif token in value_flags:
            out.extend(tokens[i:i + 2])
            i += 1
        else:
            out.append(token)
        i += 1
    return out


def parse_flags(argv: Sequence[str]) -> Tuple[Dict[str, Any], List[str]]:
    """
    Split argv into explicitly given flag values and positional arguments.

    Raises:
        ConfigurationError: unknown flag or missing flag value.
    """
    namespace = build_parser().parse_args(normalize_flags(argv))
    values = vars(namespace)
    args = values.pop("args", [])
    if args and args[0] == "--":
        args = args[1:]
    return values, args


# ============================================================================
# SUBCOMMANDS
# ============================================================================


def sleep_command(
    args: Sequence[str],
    settings: Settings,
    logger: structlog.stdlib.BoundLogger,
    terminate: Terminate,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """sleep <duration>: block, then exit with the configured exit code."""
    try:
        if not args:
            raise SubcommandError("sleep requires duration", subcommand="sleep")
        duration = parse_duration(args[0])
    except (SubcommandError, DurationParseError) as exc:
        logger.critical("sleep_requires_duration", **exc.to_dict())
        terminate(1)
        return

    logger.info("sleep", duration=format_duration(duration))
    sleep(max(0.0, to_seconds(duration)))
    terminate(settings.exit_code)


SUBCOMMANDS: Dict[str, Callable[..., None]] = {
    "sleep": sleep_command,
}


def run_subcommand(
    args: Sequence[str],
    settings: Settings,
    logger: structlog.stdlib.BoundLogger,
    terminate: Terminate,
    sleep: Callable[[float], None] = time.sleep,
) -> None:
    """Dispatch ``args[0]``. Every subcommand ends the process."""
    name = args[0]
    command = SUBCOMMANDS.get(name)
    if command is None:
        print("unknown subcommand:", name)
        terminate(1)
        return
    command(list(args[1:]), settings, logger, terminate, sleep=sleep)


# ============================================================================
# STARTUP
# ============================================================================


@dataclass
class Runtime:
    """Everything startup brought up, for inspection; nothing here is joined."""
    settings: Settings
    decision: EffectiveSettings
    logger: structlog.stdlib.BoundLogger
    lifecycle: LifecycleController
    http_thread: Optional[threading.Thread] = None
    workers: List[multiprocessing.Process] = field(default_factory=list)


def startup(
    argv: Sequence[str],
    terminate: Terminate = terminate_process,
    seed_provider: SeedProvider = random_seed,
    instance_id: Optional[str] = None,
) -> Optional[Runtime]:
    """
    Bring up every unit and return without blocking.

    Returns None when the run ended during startup (bad flags, subcommand,
    immediate exit) and ``terminate`` returned, which only happens when a
    test substitutes it.
    """
    started = time.monotonic()
    t0 = datetime.now(timezone.utc)
    instance_id = instance_id or new_instance_id()

    try:
        flags, args = parse_flags(argv)
        settings = load_settings(**flags)
    except ConfigurationError as exc:
        configure_logging(started=started)
        logger = get_logger(instance_id)
        logger.error("could_not_parse_flags", **exc.to_dict())
        terminate(1)
        return None

    configure_logging(settings.log_level, settings.log_format, started=started)
    logger = get_logger(instance_id)
    logger.info("started", t0=t0.isoformat())
    logger.info("command_line_args", args=args)

    if settings.signals_ignore:
        SignalIgnorer(logger, started=started).install()
    elif threading.current_thread() is threading.main_thread():
        restore_default_interrupt()

    settings = settings.with_seeds(seed_provider)
    decision = resolve(settings, new_jitter_generator(settings.rand_seed1, settings.rand_seed2))

    logger.info("flags", data=settings.log_dict())
    logger.info("effective_settings", data=decision.log_dict())

    if args:
        run_subcommand(args, settings, logger, terminate)
        return None

    lifecycle = LifecycleController(decision, settings.exit_code, logger, terminate=terminate)
    lifecycle.arrange_exit()
    if decision.exit_immediately:
        return None

    runtime = Runtime(settings=settings, decision=decision, logger=logger, lifecycle=lifecycle)

    if settings.web_enable:
        runtime.http_thread = start_http_server(
            create_app(logger, terminate),
            settings.web_listen,
            decision.web_delay,
            logger,
            terminate=terminate,
            log_level=settings.log_level.lower(),
        )

    if settings.cpuload_enable:
        runtime.workers = start_load_workers(settings, logger, instance_id)

    return runtime


def idle_forever() -> None:
    """Park the main thread; signal handlers run here between sleeps."""
    while True:
        time.sleep(1)


def main(argv: Optional[Sequence[str]] = None) -> None:
    """Console script entry point."""
    startup(sys.argv[1:] if argv is None else argv)
    idle_forever()
