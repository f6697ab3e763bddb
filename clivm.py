#!/usr/bin/env python3
"""
clivm - Install, switch, compare and benchmark versions of a CLI binary.

Usage:
    clivm.py use [version|alias|latest]          # Activate a version
    clivm.py install <version>                   # Download a version
    clivm.py compare <v1> <v2> -- <args...>      # Diff output of two versions
    clivm.py benchmark <v1,v2> -- <args...>      # Time several versions
    clivm.py history [!<id>]                     # Show or replay usage history
"""

import argparse
import json
import os
import sys
from dataclasses import dataclass

# Add current directory to path
sys.path.insert(0, os.path.dirname(os.path.abspath(__file__)))

from cli_vm import __version__
from cli_vm import benchmark as benchmark_report
from cli_vm import history as history_report
from cli_vm.activation import ActivationManager
from cli_vm.aliases import AliasStore
from cli_vm.blocklist import BlockList
from cli_vm.compare import render_comparison
from cli_vm.config import Config, Paths, load_config
from cli_vm.errors import ClivmError, UserInputError
from cli_vm.execution import ExecutionEngine
from cli_vm.health import HealthChecker, render_json as render_health_json, render_report
from cli_vm.history import HistoryStore, compute_stats, replay
from cli_vm.installer import Installer
from cli_vm.logging_config import get_logger, setup_logging
from cli_vm.render import BLUE, BOLD_GREEN, DIM, colorize, format_size, pad, set_color
from cli_vm.resolver import Resolver
from cli_vm.versions import VersionStore

# Subcommands that take a '-- <command...>' tail
COMMAND_TAIL_SUBCOMMANDS = ("compare", "benchmark")
# Subcommand options that consume the following token
VALUE_OPTIONS = ("--timeout", "--iterations", "--format")
GLOBAL_VALUE_OPTIONS = ("--config", "--log-file")


@dataclass
class App:
    """Components wired from one configuration."""
    config: Config
    paths: Paths
    versions: VersionStore
    aliases: AliasStore
    blocklist: BlockList
    installer: Installer
    resolver: Resolver
    activation: ActivationManager
    engine: ExecutionEngine
    history: HistoryStore


def build_app(config: Config, verbose: bool = False) -> App:
    paths = Paths.from_config(config)
    preferences = config.preferences
    versions = VersionStore(paths, verbose=verbose)
    aliases = AliasStore(paths)
    blocklist = BlockList(paths)
    installer = Installer(config, paths, verbose=verbose)
    resolver = Resolver(versions, aliases, blocklist, installer=installer)
    activation = ActivationManager(
        paths,
        versions,
        resolver,
        history_capture_bytes=preferences.history_output_bytes,
        verbose=verbose,
    )
    engine = ExecutionEngine(versions, max_workers=preferences.max_workers, verbose=verbose)
    history = HistoryStore(
        paths,
        limit=preferences.history_limit,
        output_bytes=preferences.history_output_bytes,
        verbose=verbose,
    )
    return App(config, paths, versions, aliases, blocklist, installer, resolver, activation, engine, history)


def split_command_tail(argv: list[str]) -> tuple[list[str], list[str] | None]:
    """
    Split '<options> -- <command...>' for compare and benchmark.

    Returns:
        (arguments before '--', command after it or None when absent)
    """
    if find_subcommand(argv) not in COMMAND_TAIL_SUBCOMMANDS or "--" not in argv:
        return argv, None
    index = argv.index("--")
    return argv[:index], argv[index + 1:]


def find_subcommand(argv: list[str]) -> str | None:
    """First token that is neither a global option nor a global option's value."""
    skip_next = False
    for token in argv:
        if skip_next:
            skip_next = False
        elif token in GLOBAL_VALUE_OPTIONS:
            skip_next = True
        elif not token.startswith("-"):
            return token
    return None


def check_flag_order(head: list[str], subcommand: str) -> None:
    """
    Reject options placed after the version arguments.

    Raises:
        UserInputError: If an option follows a version argument
    """
    position = next(i for i, token in enumerate(head) if token == subcommand)
    tokens = head[position + 1:]
    seen_version = False
    skip_next = False
    for token in tokens:
        if skip_next:
            skip_next = False
            continue
        if token.startswith("-"):
            if seen_version:
                raise UserInputError(
                    f"option {token} must come before the version arguments",
                    remediation=f"Use: clivm {subcommand} [options] <versions...> -- <command...>",
                )
            skip_next = token in VALUE_OPTIONS
        else:
            seen_version = True


def require_command(command: list[str] | None, subcommand: str) -> list[str]:
    if not command:
        raise UserInputError(
            "missing '--' separator followed by the command to run",
            remediation=f"Use: clivm {subcommand} [options] <versions...> -- <command...>",
        )
    return command


def cmd_use(app: App, args: argparse.Namespace) -> int:
    result = app.activation.activate(args.version)
    if result.installed:
        print(f"📦 Installed {app.paths.binary_name} {result.version}")
    print(f"✅ Now using {app.paths.binary_name} version {colorize(result.version, BOLD_GREEN)}")
    if result.warnings:
        print("   Restart your terminal or source your shell profile to pick up PATH changes.")
    return 0


def cmd_install(app: App, args: argparse.Namespace) -> int:
    version = args.version
    if version.lower() == "latest":
        version = app.installer.latest_version()
    if app.versions.is_installed(version) and not args.force:
        print(f"Version {version} is already installed")
        return 0
    app.installer.install(version)
    print(f"✅ Installed {app.paths.binary_name} {version}")
    return 0


def cmd_list(app: App, args: argparse.Namespace) -> int:
    installed = app.versions.list_installed()
    if args.simple:
        for version in installed:
            print(version)
        return 0

    if not installed:
        print("No versions installed. Run 'clivm install <version>' to add one.")
        return 0

    active = app.activation.active_version()
    aliases_by_version: dict[str, list[str]] = {}
    for alias in app.aliases.list():
        aliases_by_version.setdefault(alias.version, []).append(alias.name)
    blocked = app.blocklist.load()

    print(f"{pad('', 2)}{pad('VERSION', 16)}{pad('SIZE', 12)}{pad('MODIFIED', 22)}NOTES")
    for version in installed:
        info = app.versions.version_info(version)
        marker = "*" if version == active else ""
        name = colorize(version, BOLD_GREEN) if version == active else version
        notes = []
        if version in aliases_by_version:
            notes.append("aliases: " + ", ".join(aliases_by_version[version]))
        if info.linked:
            notes.append("linked")
        if version in blocked:
            notes.append("blocked")
        print(
            f"{pad(marker, 2)}{pad(name, 16)}{pad(format_size(info.size_bytes), 12)}"
            f"{pad(info.modified.strftime('%Y-%m-%d %H:%M'), 22)}{colorize('; '.join(notes), DIM)}"
        )
    return 0


def cmd_remove(app: App, args: argparse.Namespace) -> int:
    if app.activation.active_version() == args.version:
        get_logger().warning(f"Removing the active version {args.version}; run 'clivm use' to pick another")
    app.versions.remove(args.version)
    print(f"🗑️  Removed version {args.version}")
    return 0


def cmd_clear(app: App, args: argparse.Namespace) -> int:
    removed = app.versions.clear()
    print(f"🗑️  Removed {removed} version(s)")
    return 0


def cmd_alias(app: App, args: argparse.Namespace) -> int:
    if args.alias_command == "set":
        alias = app.aliases.set(args.name, args.version, args.description or "")
        print(f"✅ Alias '{alias.name}' set to {alias.version}")
    elif args.alias_command == "get":
        print(app.aliases.get(args.name).version)
    elif args.alias_command == "remove":
        app.aliases.remove(args.name)
        print(f"🗑️  Alias '{args.name}' removed")
    else:
        aliases = app.aliases.list()
        if not aliases:
            print("No aliases defined.")
        for alias in aliases:
            line = f"{pad(alias.name, 16)} → {colorize(alias.version, BLUE)}"
            if alias.description:
                line += f"  {colorize(alias.description, DIM)}"
            print(line)
    return 0


def cmd_link(app: App, args: argparse.Namespace) -> int:
    target = app.versions.link(args.name, args.source, force=args.force)
    print(f"🔗 Linked {args.source} as version {args.name} ({target})")
    return 0


def cmd_compare(app: App, args: argparse.Namespace) -> int:
    command = require_command(args.command_tail, "compare")
    version1 = app.resolver.resolve_for_execution(args.version1)
    version2 = app.resolver.resolve_for_execution(args.version2)
    timeout = args.timeout if args.timeout is not None else app.config.preferences.timeout_seconds

    print(f"🔄 Comparing {app.paths.binary_name} versions: {version1} vs {version2}")
    print(f"📝 Command: {app.paths.binary_name} {' '.join(command)}")
    print()

    fan_out = app.engine.invoke_many([version1, version2], command, timeout=timeout)
    for outcome in fan_out.outcomes:
        if outcome.result is None:
            raise ClivmError(f"execution for {outcome.target} failed: {outcome.error}")

    result1, result2 = fan_out.results
    print(render_comparison(
        result1,
        result2,
        unified=args.unified,
        show_timing=not args.no_timing,
        context=app.config.preferences.context_lines,
    ))
    return 0


def cmd_benchmark(app: App, args: argparse.Namespace) -> int:
    command = require_command(args.command_tail, "benchmark")
    tokens = [token for value in args.versions for token in value.split(",") if token.strip()]
    if not tokens:
        raise UserInputError("at least one version is required")

    versions = []
    for token in tokens:
        version = app.resolver.resolve_for_execution(token)
        if version not in versions:
            versions.append(version)

    iterations = args.iterations or app.config.preferences.benchmark_iterations
    if iterations < 1:
        raise UserInputError(f"iterations must be positive, got {iterations}")
    timeout = args.timeout if args.timeout is not None else app.config.preferences.timeout_seconds

    if args.format == "table":
        print(f"🏁 Benchmarking {app.paths.binary_name} {' '.join(command)}")
        print(f"📊 Versions: {', '.join(versions)} • Iterations: {iterations}")
        print()

    fan_out = app.engine.benchmark(versions, command, iterations, timeout=timeout)
    results = []
    for outcome in fan_out.outcomes:
        if outcome.result is None:
            raise ClivmError(f"benchmark for {outcome.target} failed: {outcome.error}")
        results.append(benchmark_report.aggregate(outcome.target, outcome.result))

    print(benchmark_report.render(results, args.format, args.detailed))
    return 0


def cmd_history(app: App, args: argparse.Namespace) -> int:
    if args.replay:
        if not args.replay.startswith("!"):
            raise UserInputError(
                f"unexpected argument: {args.replay}",
                remediation="Replay an entry with: clivm history !<id>",
            )
        return replay(args.replay, app.history, app.activation, app.engine, app.paths.binary_name)

    if args.clear:
        if app.history.clear():
            print("🗑️  History cleared successfully.")
        else:
            print("📭 No history file found.")
        return 0

    if args.stats:
        entries = history_report.filter_entries(
            app.history.load(), args.filter_version, args.filter_command, args.failures_only
        )
        stats = compute_stats(entries)
        if args.format == "json":
            print(json.dumps(stats.to_dict(), indent=2))
        else:
            print(history_report.render_stats(stats))
        return 0

    entries = app.history.query(
        version=args.filter_version,
        command=args.filter_command,
        failures_only=args.failures_only,
        limit=args.limit,
    )
    if args.format == "json":
        print(history_report.render_json(entries))
    else:
        print(history_report.render_table(entries, show_output=args.show_output))
    return 0


def cmd_add_history_entry(app: App, args: argparse.Namespace) -> int:
    stdout, stderr = args.stdout, args.stderr
    # The Windows shim hands over its capture files instead of the text
    if args.stdout_file:
        stdout = history_report.read_capture(args.stdout_file, app.history.output_bytes)
    if args.stderr_file:
        stderr = history_report.read_capture(args.stderr_file, app.history.output_bytes)
    try:
        duration_ms = int(args.duration_ms)
        exit_code = int(args.exit_code)
    except ValueError:
        raise UserInputError("duration_ms and exit_code must be integers") from None
    app.history.append(args.version, args.command, duration_ms, exit_code, stdout, stderr)
    return 0


def cmd_block(app: App, args: argparse.Namespace) -> int:
    if app.blocklist.block(args.version):
        print(f"🚫 Version {args.version} is now blocked")
    else:
        print(f"Version {args.version} is already blocked")
    if app.activation.active_version() == args.version.strip():
        get_logger().warning(f"Version {args.version} is currently active; switch with 'clivm use <version>'")
    return 0


def cmd_unblock(app: App, args: argparse.Namespace) -> int:
    app.blocklist.unblock(args.version)
    print(f"✅ Version {args.version} is no longer blocked")
    return 0


def cmd_list_blocked(app: App, args: argparse.Namespace) -> int:
    blocked = app.blocklist.list()
    if not blocked:
        print("No versions are blocked.")
    for version in blocked:
        print(version)
    return 0


def cmd_health_check(app: App, args: argparse.Namespace) -> int:
    checker = HealthChecker(
        app.paths,
        app.versions,
        app.activation,
        app.engine,
        history_capture_bytes=app.config.preferences.history_output_bytes,
    )
    report = checker.run(fix=args.fix)
    print(render_health_json(report) if args.json else render_report(report))
    return 1 if report.overall == "FAILED" else 0


def cmd_version(app: App, args: argparse.Namespace) -> int:
    print(f"clivm {__version__}")
    active = app.activation.active_version()
    print(f"Active {app.paths.binary_name} version: {active or 'none'}")
    return 0


COMMANDS = {
    "use": cmd_use,
    "install": cmd_install,
    "list": cmd_list,
    "remove": cmd_remove,
    "clear": cmd_clear,
    "alias": cmd_alias,
    "link": cmd_link,
    "compare": cmd_compare,
    "benchmark": cmd_benchmark,
    "history": cmd_history,
    "add-history-entry": cmd_add_history_entry,
    "block": cmd_block,
    "unblock": cmd_unblock,
    "list-blocked": cmd_list_blocked,
    "health-check": cmd_health_check,
    "version": cmd_version,
}


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="clivm",
        description="clivm - Version manager for a command-line binary",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument("--verbose", "-v", action="store_true", help="Verbose output")
    parser.add_argument("--quiet", "-q", action="store_true", help="Only show warnings and errors")
    parser.add_argument("--no-color", action="store_true", help="Disable colored output")
    parser.add_argument("--config", metavar="PATH", help="Configuration file to load first")
    parser.add_argument("--log-file", metavar="PATH", help="Also write a debug log to this file")

    subparsers = parser.add_subparsers(
        dest="subcommand",
        metavar="{use,install,list,remove,clear,alias,link,compare,benchmark,history,"
                "block,unblock,list-blocked,health-check,version}",
    )

    use = subparsers.add_parser("use", help="Activate a version (default: project version file)")
    use.add_argument("version", nargs="?", help="Version, alias or 'latest'")

    install = subparsers.add_parser("install", help="Download a version")
    install.add_argument("version", help="Version (major.minor.patch) or 'latest'")
    install.add_argument("--force", action="store_true", help="Re-download an installed version")

    listing = subparsers.add_parser("list", help="List installed versions")
    listing.add_argument("--simple", action="store_true", help="Print version names only")

    remove = subparsers.add_parser("remove", help="Remove an installed version")
    remove.add_argument("version")

    subparsers.add_parser("clear", help="Remove all installed versions")

    alias = subparsers.add_parser("alias", help="Manage version aliases")
    alias_commands = alias.add_subparsers(dest="alias_command", required=True)
    alias_set = alias_commands.add_parser("set", help="Create or update an alias")
    alias_set.add_argument("name")
    alias_set.add_argument("version")
    alias_set.add_argument("--description", "-d", help="Description stored with the alias")
    alias_get = alias_commands.add_parser("get", help="Print the version an alias points to")
    alias_get.add_argument("name")
    alias_remove = alias_commands.add_parser("remove", help="Delete an alias")
    alias_remove.add_argument("name")
    alias_commands.add_parser("list", help="List aliases")

    link = subparsers.add_parser("link", help="Register a local binary as a version")
    link.add_argument("--from", dest="source", required=True, metavar="PATH", help="Binary to link")
    link.add_argument("--name", required=True, help="Version name to register it under")
    link.add_argument("--force", action="store_true", help="Replace an existing version of that name")

    compare = subparsers.add_parser("compare", help="Compare output of two versions")
    compare.add_argument("--unified", action="store_true", help="Unified diff instead of a side-by-side table")
    compare.add_argument("--timeout", type=int, help="Timeout in seconds (default: 30)")
    compare.add_argument("--no-timing", action="store_true", help="Hide execution timing")
    compare.add_argument("version1")
    compare.add_argument("version2")

    benchmark = subparsers.add_parser("benchmark", help="Benchmark versions")
    benchmark.add_argument("--iterations", type=int, help="Runs per version (default: 5)")
    benchmark.add_argument("--timeout", type=int, help="Timeout per run in seconds (default: 30)")
    benchmark.add_argument("--format", choices=benchmark_report.FORMATS, default="table")
    benchmark.add_argument("--detailed", action="store_true", help="Show every iteration")
    benchmark.add_argument("versions", nargs="+", help="Versions, comma or space separated")

    history = subparsers.add_parser("history", help="Show, filter or replay usage history")
    history.add_argument("--limit", type=int, default=history_report.DEFAULT_DISPLAY_LIMIT,
                         help="Entries to show (default: 50)")
    history.add_argument("--stats", action="store_true", help="Show usage statistics")
    history.add_argument("--clear", action="store_true", help="Delete all history")
    history.add_argument("--version", dest="filter_version", metavar="VERSION", help="Only this version")
    history.add_argument("--command", dest="filter_command", metavar="TEXT",
                         help="Only commands containing TEXT (case-insensitive)")
    history.add_argument("--failures-only", action="store_true", help="Only non-zero exit codes")
    history.add_argument("--format", choices=("table", "json"), default="table")
    history.add_argument("--show-output", action="store_true", help="Include captured output")
    history.add_argument("replay", nargs="?", metavar="!ID", help="Replay entry by id")

    for name, help_text in (("block", "Block a version"), ("unblock", "Unblock a version")):
        sub = subparsers.add_parser(name, help=help_text)
        sub.add_argument("version")
    subparsers.add_parser("list-blocked", help="List blocked versions")

    health = subparsers.add_parser("health-check", help="Check installation health")
    health.add_argument("--fix", action="store_true", help="Repair shim and PATH setup")
    health.add_argument("--json", action="store_true", help="Print the report as JSON")

    subparsers.add_parser("version", help="Show clivm and active versions")

    # Called by the shim after every invocation
    add_entry = subparsers.add_parser("add-history-entry")
    add_entry.add_argument("--stdout-file", metavar="PATH", help="Read captured stdout from this file, then delete it")
    add_entry.add_argument("--stderr-file", metavar="PATH", help="Read captured stderr from this file, then delete it")
    add_entry.add_argument("version")
    add_entry.add_argument("command")
    add_entry.add_argument("duration_ms")
    add_entry.add_argument("exit_code")
    add_entry.add_argument("stdout", nargs="?", default="")
    add_entry.add_argument("stderr", nargs="?", default="")

    return parser


def main(argv: list[str] | None = None) -> int:
    """Main entry point for clivm."""
    argv = list(sys.argv[1:] if argv is None else argv)
    head, command_tail = split_command_tail(argv)

    parser = build_parser()
    args, extras = parser.parse_known_args(head)
    # Without '--', compare leaves the command words unparsed
    if extras and not (args.subcommand in COMMAND_TAIL_SUBCOMMANDS and command_tail is None):
        parser.error(f"unrecognized arguments: {' '.join(extras)}")
    args.command_tail = command_tail

    setup_logging(verbose=args.verbose, quiet=args.quiet, log_file=args.log_file)
    logger = get_logger()
    if args.no_color:
        set_color(False)

    if not args.subcommand:
        parser.print_help()
        return 1

    try:
        config = load_config(args.config, verbose=args.verbose)
    except ValueError as e:
        logger.error(str(e))
        return 1

    try:
        if args.subcommand in COMMAND_TAIL_SUBCOMMANDS:
            check_flag_order(head, args.subcommand)
        app = build_app(config, verbose=args.verbose)
        return COMMANDS[args.subcommand](app, args)
    except ClivmError as e:
        logger.error(e.message)
        if e.remediation:
            logger.info(f"Hint: {e.remediation}")
        return 1
    except OSError as e:
        # Filesystem failures not mapped to a ClivmError by the store that hit them
        logger.error(f"{e.strerror or e}: {e.filename}" if e.filename else str(e))
        return 1
    except KeyboardInterrupt:
        logger.warning("Interrupted")
        return 130


if __name__ == "__main__":
    sys.exit(main())
