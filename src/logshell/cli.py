"""logshell 命令行。

用法:
    logshell run [--http URL] [--http-only] [-H KEY:VALUE]... [--kv KEY=VALUE]...
                 [-C DIR] [-e KEY=VALUE]... [--exec] [--timeout S] -- CMD [ARGS...]
    logshell serve [--host HOST] [--port PORT]

run 的退出码与子进程一致；无法启动时为 127，配置错误时为 2。
"""

from __future__ import annotations

import argparse
import logging
import sys
from collections.abc import Sequence

import anyio

from .collector import CollectorConfig, CollectorServer
from .config import Config, parse_header, parse_key_value
from .errors import ProcessExitError, ProcessStartError, ShellConfigError
from .shell import Shell

__all__ = ["build_parser", "build_shell", "run_cli"]

logger = logging.getLogger(__name__)

EXIT_CONFIG_ERROR = 2
EXIT_START_FAILED = 127


def _header_arg(value: str) -> tuple[str, str]:
    try:
        return parse_header(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def _pair_arg(value: str) -> tuple[str, str]:
    try:
        return parse_key_value(value)
    except ValueError as e:
        raise argparse.ArgumentTypeError(str(e)) from e


def build_parser(config: Config) -> argparse.ArgumentParser:
    """构建参数解析器，默认值取自环境变量配置。"""
    parser = argparse.ArgumentParser(
        prog="logshell",
        description="Run a command and emit its output as structured JSON log records",
    )
    subparsers = parser.add_subparsers(dest="action", required=True)

    run = subparsers.add_parser("run", help="Run a command and log its output")
    run.add_argument("--http", default=None, metavar="URL",
                     help="Forward each record to this collector URL (default: LSH_HTTP_URL)")
    run.add_argument("--http-only", action="store_true", default=config.http_only,
                     help="Send records only to the collector, not to stdout")
    run.add_argument("-H", "--header", action="append", type=_header_arg, default=[],
                     metavar="KEY:VALUE", help="Extra HTTP header (repeatable)")
    run.add_argument("--kv", action="append", type=_pair_arg, default=[],
                     metavar="KEY=VALUE", help="Static attribute added to every record")
    run.add_argument("-C", "--dir", default=None, help="Working directory")
    run.add_argument("-e", "--env", action="append", type=_pair_arg, default=[],
                     metavar="KEY=VALUE", help="Extra environment variable")
    run.add_argument("--exec", dest="exec_mode", action="store_true",
                     help="Log whole stdout/stderr once after exit instead of per line")
    run.add_argument("--timeout", type=float, default=config.http_timeout,
                     help="Per-record delivery timeout in seconds")
    run.add_argument("command", nargs=argparse.REMAINDER, help="Command and arguments")

    serve = subparsers.add_parser("serve", help="Run the reference log collector")
    serve.add_argument("--host", default="127.0.0.1")
    serve.add_argument("--port", type=int, default=8080)

    return parser


def build_shell(args: argparse.Namespace, config: Config) -> Shell:
    """把解析后的参数转换为 Shell。"""
    command = list(args.command)
    if command and command[0] == "--":
        command = command[1:]

    shell = Shell().args(*command).timeout(args.timeout)
    if args.dir:
        shell = shell.dir(args.dir)
    for key, value in args.env:
        shell = shell.env(key, value)
    for key, value in args.kv:
        shell = shell.log_kv(key, value)
    for key, value in [*config.http_headers.items(), *args.header]:
        shell = shell.http_header(key, value)
    url = args.http or (config.http_url if config.http_enabled else None)
    if url:
        shell = shell.with_http_stream_only(url) if args.http_only else shell.with_http_stream(url)
    return shell


async def _run(shell: Shell, exec_mode: bool) -> int:
    try:
        if exec_mode:
            await shell.exec()
        else:
            await shell.stream()
    except ShellConfigError as e:
        print(f"logshell: {e}", file=sys.stderr)
        return EXIT_CONFIG_ERROR
    except ProcessStartError as e:
        print(f"logshell: {e}", file=sys.stderr)
        return EXIT_START_FAILED
    except ProcessExitError as e:
        logger.debug(f"Command failed: {e}")
        return e.returncode if e.returncode > 0 else 128 - e.returncode
    return 0


def run_cli(argv: Sequence[str] | None, config: Config) -> int:
    """解析参数并执行，返回进程退出码。"""
    parser = build_parser(config)
    args = parser.parse_args(argv)

    if args.action == "serve":
        server = CollectorServer(CollectorConfig(host=args.host, port=args.port))
        print(f"Log collector listening on {args.host}:{args.port}", file=sys.stderr)
        server.serve_forever()
        return 0

    shell = build_shell(args, config)
    return anyio.run(_run, shell, args.exec_mode)
