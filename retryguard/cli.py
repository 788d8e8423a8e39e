"""
retryguard command line.

    retryguard run --attempts 5 --delay 1 -- curl -fsS https://example.com/health
    retryguard settings --env-file .env
"""

import argparse
import asyncio
import json
import logging
import shlex
import signal
import sys
from typing import List, Optional, Sequence

from retryguard.config import SupervisorSettings, load_settings
from retryguard.errors.types import (
    Cancelled,
    CommandFailedError,
    ConfigurationError,
    PermanentError,
    RetryExhausted,
)
from retryguard.executor import CancellationToken
from retryguard.logging_config import CorrelationContext, setup_logging
from retryguard.policy import RetryPolicy
from retryguard.supervisor import RetrySupervisor
from retryguard.timing import Stopwatch

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_EXHAUSTED = 1
EXIT_USAGE = 2
EXIT_NOT_EXECUTABLE = 126
EXIT_NOT_FOUND = 127
EXIT_INTERRUPTED = 130


async def run_command(command: Sequence[str]) -> int:
    """Run a command once; raise CommandFailedError on a non-zero exit."""
    display = shlex.join(command)
    try:
        proc = await asyncio.create_subprocess_exec(*command)
    except FileNotFoundError as e:
        raise PermanentError(
            f"Command not found: {command[0]}", command=display, exit_code=EXIT_NOT_FOUND
        ) from e
    except PermissionError as e:
        raise PermanentError(
            f"Command not executable: {command[0]}", command=display, exit_code=EXIT_NOT_EXECUTABLE
        ) from e

    try:
        returncode = await proc.wait()
    except asyncio.CancelledError:
        if proc.returncode is None:
            proc.kill()
            await proc.wait()
        raise

    if returncode != 0:
        raise CommandFailedError(display, returncode)
    return returncode


async def _supervise_command(
    command: List[str],
    policy: RetryPolicy,
    token: CancellationToken,
) -> int:
    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, token.cancel)
    except (NotImplementedError, RuntimeError):
        pass  # no signal handlers on this platform/thread

    supervisor = RetrySupervisor(policy=policy)
    try:
        return await supervisor.retry(
            lambda: run_command(command),
            cancel_token=token,
            name=command[0],
        )
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def cmd_run(args: argparse.Namespace, settings: SupervisorSettings) -> int:
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]
    if not command:
        logger.error("No command given; usage: retryguard run [options] -- CMD [ARGS...]")
        return EXIT_USAGE

    policy = RetryPolicy.from_settings(settings).with_overrides(
        max_attempts=args.attempts, delay=args.delay
    )
    token = CancellationToken()

    with CorrelationContext(operation=command[0]), Stopwatch() as sw:
        try:
            asyncio.run(_supervise_command(command, policy, token))
        except RetryExhausted as e:
            logger.error(f"Giving up after {e.attempts} attempts: {e.last_error}")
            return EXIT_EXHAUSTED
        except PermanentError as e:
            logger.error(str(e))
            return e.context.get("exit_code", EXIT_NOT_FOUND)
        except (Cancelled, KeyboardInterrupt):
            logger.warning("Interrupted")
            return EXIT_INTERRUPTED

    logger.info(f"Command succeeded in {sw.elapsed:.2f}s")
    return EXIT_OK


def cmd_settings(args: argparse.Namespace, settings: SupervisorSettings) -> int:
    print(json.dumps(settings.model_dump(), indent=2, sort_keys=True))
    return EXIT_OK


def _add_env_file(parser: argparse.ArgumentParser) -> None:
    # Also accepted after the subcommand; when absent the global flag's value stands.
    parser.add_argument(
        "--env-file",
        default=argparse.SUPPRESS,
        help="Load RETRYGUARD_* settings from this .env file",
    )


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="retryguard",
        description="Run work with bounded retries and supervised failure reporting.",
    )
    parser.add_argument("--env-file", help="Load RETRYGUARD_* settings from this .env file")
    parser.add_argument("-v", "--verbose", action="store_true", help="Debug logging")
    sub = parser.add_subparsers(dest="cmd", required=True)

    p_run = sub.add_parser("run", help="Run a command, retrying on non-zero exit")
    _add_env_file(p_run)
    p_run.add_argument("--attempts", type=int, default=None, help="Maximum attempts (>= 1)")
    p_run.add_argument("--delay", type=float, default=None, help="Seconds between attempts")
    p_run.add_argument("command", nargs=argparse.REMAINDER, help="Command to run, after --")
    p_run.set_defaults(func=cmd_run)

    p_settings = sub.add_parser("settings", help="Print effective settings as JSON")
    _add_env_file(p_settings)
    p_settings.set_defaults(func=cmd_settings)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    try:
        settings = load_settings(env_file=args.env_file)
    except ConfigurationError as e:
        print(f"retryguard: {e}", file=sys.stderr)
        return EXIT_USAGE

    setup_logging(
        level="DEBUG" if args.verbose else settings.log_level,
        json_format=settings.log_json,
        log_dir=settings.log_dir,
    )

    try:
        return args.func(args, settings)
    except ValueError as e:
        # InvalidPolicyError from --attempts/--delay
        logger.error(str(e))
        return EXIT_USAGE


if __name__ == "__main__":
    sys.exit(main())
