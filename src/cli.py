#!/usr/bin/env python3
"""CLI entry point for cf-driver.

Noun-action subcommands:
- goal: Build goals against a target space (run/list)
- target: Configured targets (list)
- info, app, logs, file: Controller inspection (see client_cli)

Examples:
    cf-driver goal run clean-space -T dev --yes
    cf-driver goal run clone-env -T dev --app web --exec make integration
    cf-driver goal run get-file -T dev --app web --filepath logs/app.log
"""

import argparse
import json
import logging
import os
import subprocess
import sys
from pathlib import Path

from client_cli import CLIENT_NOUNS
from cloud import CloudError, CloudFoundryClient
from common import export_lines, run_command, write_env_file
from config import ConfigError, list_targets, load_target_config
from goals import GoalRunner, get_goal, list_goals

# Noun commands (noun-action subcommands)
NOUN_COMMANDS = {
    "goal": "Build goals against a target space (run/list)",
    "target": "Configured targets (list)",
    **CLIENT_NOUNS,
}

LOG_FORMAT = '%(asctime)s [%(levelname)s] %(message)s'
LOG_DATEFMT = '%Y-%m-%d %H:%M:%S'


def get_version():
    """Get version from git tags, falling back to 'dev'."""
    try:
        result = subprocess.run(
            ['git', 'describe', '--tags', '--abbrev=0'],
            capture_output=True, text=True,
            cwd=Path(__file__).parent,
            check=False,
        )
        return result.stdout.strip() if result.returncode == 0 else 'dev'
    except OSError:
        return 'dev'

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format=LOG_FORMAT,
    datefmt=LOG_DATEFMT
)
logger = logging.getLogger(__name__)


def configure_logging(json_output: bool = False, verbose: bool = False):
    """Send logs to stderr for --json-output and raise verbosity for --verbose."""
    root_logger = logging.getLogger()
    if json_output:
        for handler in root_logger.handlers[:]:
            root_logger.removeHandler(handler)
        stderr_handler = logging.StreamHandler(sys.stderr)
        stderr_handler.setFormatter(logging.Formatter(LOG_FORMAT, datefmt=LOG_DATEFMT))
        root_logger.addHandler(stderr_handler)

    if verbose:
        root_logger.setLevel(logging.DEBUG)


def print_usage():
    """Print top-level usage showing noun commands."""
    print(f"cf-driver {get_version()}")
    print()
    print("Usage: cf-driver <noun> <action> [options]")
    print()
    print("Commands:")
    for noun, desc in NOUN_COMMANDS.items():
        print(f"  {noun:<12} {desc}")
    print()
    print("Run 'cf-driver <noun> --help' for command-specific options.")
    print()
    print("Examples:")
    print("  cf-driver goal list")
    print("  cf-driver goal run clean-space -T dev")
    print("  cf-driver goal run clone-env -T dev --app web --env-file build/app.env")
    print("  cf-driver goal run get-file -T dev --app web --filepath logs/app.log --mandatory")
    print("  cf-driver logs stream web -T dev")


def _build_goal_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cf-driver goal",
        description="Build goals against a target space",
    )
    sub = parser.add_subparsers(dest="action")
    sub.add_parser("list", help="List available goals")

    run_parser = sub.add_parser("run", help="Run a goal")
    run_parser.add_argument("goal", choices=list_goals(), help="Goal name")
    run_parser.add_argument(
        '--target', '-T',
        help='Target name from targets/ (default: CF_DRIVER_* environment)'
    )
    run_parser.add_argument('--app', '-a', help='Application name (clone-env, get-file)')
    run_parser.add_argument('--filepath', help='Remote file path inside each instance (get-file)')
    run_parser.add_argument(
        '--destpath',
        help='Local destination (get-file, default: target/<app>_<filepath>)'
    )
    run_parser.add_argument(
        '--mandatory',
        action='store_true',
        help='Fail the goal when the file cannot be retrieved (get-file)'
    )
    run_parser.add_argument(
        '--env-file',
        type=Path,
        help='Write the cloned environment as KEY=VALUE lines to this file (clone-env)'
    )
    run_parser.add_argument(
        '--exec',
        dest='exec_cmd',
        nargs=argparse.REMAINDER,
        help='Run this command with the cloned environment; must be last (clone-env)'
    )
    run_parser.add_argument(
        '--report-dir', '-r',
        type=Path,
        help='Write JSON and markdown run reports to this directory'
    )
    run_parser.add_argument(
        '--skip', '-s',
        action='append',
        default=[],
        help='Phases to skip (can be repeated)'
    )
    run_parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be executed without running actions'
    )
    run_parser.add_argument(
        '--yes', '-y',
        action='store_true',
        help='Skip confirmation prompt for destructive goals'
    )
    run_parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs go to stderr)'
    )
    run_parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    return parser


def _goal_params(args) -> dict:
    """Goal params from CLI arguments; unset values are left out."""
    params = {
        'app_name': args.app,
        'filepath': args.filepath,
        'destpath': args.destpath,
    }
    params = {k: v for k, v in params.items() if v}
    params['mandatory'] = args.mandatory
    return params


def _apply_environment(args, env: dict) -> int:
    """Hand a cloned environment to the next build step.

    The driver's own environment is left untouched; the mapping is passed to
    a child process, written to a file, or printed as export lines.
    """
    if args.exec_cmd:
        logger.info(f"Running {' '.join(args.exec_cmd)} with {len(env)} cloned variables")
        rc, _out, err = run_command(args.exec_cmd, capture=False, env={**os.environ, **env})
        if rc != 0 and err:
            print(f"Error: {err}", file=sys.stderr)
        return rc
    if args.env_file:
        path = write_env_file(args.env_file, env)
        logger.info(f"Wrote {len(env)} variables to {path}")
        return 0
    if not args.json_output:
        for line in export_lines(env):
            print(line)
    return 0


def run_goal(args) -> int:
    """Run a goal from parsed 'goal run' arguments."""
    configure_logging(args.json_output, args.verbose)
    goal = get_goal(args.goal)
    params = _goal_params(args)

    if getattr(goal, 'requires_app', False) and not params.get('app_name'):
        print(f"Error: --app is required for goal '{goal.name}'")
        return 1
    missing = [p for p in getattr(goal, 'required_params', []) if not params.get(p)]
    if missing:
        print(f"Error: {', '.join('--' + p for p in missing)} required for goal '{goal.name}'")
        return 1

    try:
        target_config = load_target_config(args.target)
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    client = None
    if not args.dry_run:
        try:
            client = CloudFoundryClient(target_config.to_client_config())
        except (ConfigError, CloudError) as e:
            print(f"Error: Cannot connect to target '{target_config.name}': {e}")
            return 1

    runner = GoalRunner(
        goal=goal,
        client=client,
        target=target_config.name,
        report_dir=args.report_dir,
        params=params,
        skip_phases=args.skip,
        dry_run=args.dry_run
    )

    # Check for confirmation on destructive goals
    if getattr(goal, 'requires_confirmation', False) and not args.yes and not args.dry_run:
        space = client.session_space if client else None
        print(f"\nWARNING: '{goal.name}' is a destructive goal.")
        print(f"Target: {target_config.name} ({target_config.api})")
        if space is not None:
            print(f"Space: {space.name}")
        print("\nThis action cannot be undone.")
        response = input("Continue? [y/N] ").strip().lower()
        if response != 'y':
            print("Aborted.")
            return 1

    success = runner.run()

    if args.json_output:
        print(json.dumps(runner.report.to_dict(), indent=2))

    if not success:
        return 1
    if not args.dry_run and 'environment' in runner.context:
        return _apply_environment(args, runner.context['environment'])
    return 0


def goal_main(argv: list) -> int:
    """Goal noun entry point."""
    parser = _build_goal_parser()
    args = parser.parse_args(argv)

    if not args.action:
        parser.print_help()
        return 1

    if args.action == "list":
        print("Available goals:")
        for name in list_goals():
            goal = get_goal(name)
            print(f"  {name:20} {goal.description}")
        return 0

    return run_goal(args)


def target_main(argv: list) -> int:
    """Target noun entry point."""
    parser = argparse.ArgumentParser(prog="cf-driver target", description="Configured targets")
    sub = parser.add_subparsers(dest="action")
    sub.add_parser("list", help="List configured targets")
    args = parser.parse_args(argv)

    if args.action != "list":
        parser.print_help()
        return 1

    targets = list_targets()
    if not targets:
        print("No targets configured")
        return 0
    for name in targets:
        print(f"  {name}")
    return 0


def dispatch_noun(noun: str, argv: list) -> int:
    """Dispatch to noun-specific CLI handler.

    Args:
        noun: The noun command (e.g., "goal", "app")
        argv: Remaining command line arguments

    Returns:
        Exit code
    """
    if noun == "goal":
        return goal_main(argv)
    if noun == "target":
        return target_main(argv)
    if noun in CLIENT_NOUNS:
        from client_cli import main as client_main
        rc: int = client_main(noun, argv)
        return rc

    print(f"Error: Noun '{noun}' not yet implemented")
    return 1


def main(argv=None):
    """CLI entry point."""
    argv = sys.argv[1:] if argv is None else argv

    if not argv:
        print_usage()
        return 0

    first_arg = argv[0]
    if first_arg == '--version':
        print(f"cf-driver {get_version()}")
        return 0
    if first_arg in ('--help', '-h'):
        print_usage()
        return 0
    if first_arg in NOUN_COMMANDS:
        return dispatch_noun(first_arg, argv[1:])

    print(f"Error: Unknown command '{first_arg}'")
    print_usage()
    return 1


if __name__ == '__main__':
    sys.exit(main())
