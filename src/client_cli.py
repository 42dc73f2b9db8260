"""Controller inspection CLI.

Usage:
    cf-driver info [-T target]
    cf-driver app list|show <app>|instances <app> [-T target]
    cf-driver logs recent|stream <app> [-T target]
    cf-driver file get <app> <path> [--instance N] [--start N] [--end N]
    cf-driver file tail <app> <path> --length N
"""

import argparse
import dataclasses
import json
import logging
import sys
import threading
from typing import Optional

from cloud import ApplicationLog, CloudError, CloudFoundryClient
from config import ConfigError, load_target_config

logger = logging.getLogger(__name__)

CLIENT_NOUNS = {
    "info": "Show controller information",
    "app": "Inspect applications (list/show/instances)",
    "logs": "Application logs (recent/stream)",
    "file": "Read files from application instances (get/tail)",
}


def connect(target: Optional[str]) -> CloudFoundryClient:
    """Build a client for a configured target (or environment-only target)."""
    target_config = load_target_config(target)
    logger.debug(f"Connecting to {target_config.api} (target '{target_config.name}')")
    return CloudFoundryClient(target_config.to_client_config())


def format_log(log: ApplicationLog) -> str:
    """Render a log entry as a console line."""
    source = f"{log.source_name}/{log.source_id}" if log.source_name else log.source_id
    stream = 'ERR' if log.message_type == 'STDERR' else 'OUT'
    return f"{log.timestamp:%Y-%m-%dT%H:%M:%S.%f} [{source}] {stream} {log.message}"


class ConsoleLogListener:
    """Prints streamed log entries until the stream ends."""

    def __init__(self, out=None):
        self.out = out or sys.stdout
        self.done = threading.Event()
        self.error: Optional[Exception] = None

    def on_message(self, log: ApplicationLog) -> None:
        print(format_log(log), file=self.out, flush=True)

    def on_complete(self) -> None:
        self.done.set()

    def on_error(self, error: Exception) -> None:
        self.error = error
        self.done.set()


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_info(client: CloudFoundryClient, args) -> int:
    info = client.get_cloud_info()
    if args.json_output:
        _print_json(dataclasses.asdict(info))
        return 0
    print(f"API endpoint:   {client.get_cloud_controller_url()}")
    print(f"Name:           {info.name}")
    print(f"Description:    {info.description}")
    print(f"Build:          {info.build}")
    print(f"API version:    {info.api_version}")
    print(f"Support:        {info.support}")
    space = client.session_space
    if space is not None:
        org = space.organization.name if space.organization else ''
        print(f"Org/space:      {org}/{space.name}")
    return 0


def cmd_app(client: CloudFoundryClient, args) -> int:
    if args.action == "list":
        apps = client.get_applications()
        if args.json_output:
            _print_json([dataclasses.asdict(a) for a in apps])
            return 0
        print(f"{'name':30} {'state':10} {'instances':>9} {'memory':>8}  urls")
        for app in apps:
            print(f"{app.name:30} {app.state:10} {app.instances:>9} {app.memory:>6}M  {', '.join(app.uris)}")
        return 0

    if args.action == "show":
        app = client.get_application(args.app)
        if args.json_output:
            _print_json(dataclasses.asdict(app))
            return 0
        print(f"Name:        {app.name}")
        print(f"GUID:        {app.guid}")
        print(f"State:       {app.state}")
        print(f"Instances:   {app.instances}")
        print(f"Memory:      {app.memory}M")
        print(f"Disk quota:  {app.disk_quota}M")
        print(f"Buildpack:   {app.staging.buildpack or '-'}")
        print(f"Stack:       {app.staging.stack or '-'}")
        print(f"URLs:        {', '.join(app.uris) or '-'}")
        print(f"Services:    {', '.join(app.services) or '-'}")
        print(f"Env keys:    {', '.join(sorted(app.env)) or '-'}")
        return 0

    # instances
    instances = client.get_application_instances(args.app).instances
    if args.json_output:
        _print_json([dataclasses.asdict(i) for i in instances])
        return 0
    for instance in instances:
        since = instance.since.isoformat() if instance.since else '-'
        print(f"  #{instance.index:<3} {instance.state:10} since {since}")
    return 0


def cmd_logs(client: CloudFoundryClient, args) -> int:
    if args.action == "recent":
        for log in client.get_recent_logs(args.app):
            print(format_log(log))
        return 0

    listener = ConsoleLogListener()
    token = client.stream_logs(args.app, listener)
    logger.info(f"Streaming logs for '{args.app}' (Ctrl-C to stop)")
    try:
        while not listener.done.wait(0.5):
            pass
    except KeyboardInterrupt:
        logger.info("Stopping log stream")
    finally:
        token.cancel()
    if listener.error is not None:
        print(f"Error: log stream failed: {listener.error}", file=sys.stderr)
        return 1
    return 0


def cmd_file(client: CloudFoundryClient, args) -> int:
    if args.action == "tail":
        content = client.get_file_tail(args.app, args.instance, args.path, args.length)
    else:
        content = client.get_file(args.app, args.instance, args.path, args.start, args.end)
    # Byte ranges can split a multibyte character
    sys.stdout.write(content.decode('utf-8', errors='replace'))
    return 0


HANDLERS = {
    "info": cmd_info,
    "app": cmd_app,
    "logs": cmd_logs,
    "file": cmd_file,
}


def _build_parser(noun: str) -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog=f"cf-driver {noun}",
        description=CLIENT_NOUNS[noun],
    )
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument('--target', '-T', help='Target name from targets/ (default: CF_DRIVER_* environment)')
    common.add_argument('--json-output', action='store_true', help='Output structured JSON')

    if noun == "info":
        parser.add_argument('--target', '-T', help='Target name from targets/ (default: CF_DRIVER_* environment)')
        parser.add_argument('--json-output', action='store_true', help='Output structured JSON')
        return parser

    sub = parser.add_subparsers(dest="action")
    if noun == "app":
        sub.add_parser("list", parents=[common], help="List applications in the space")
        for action, text in (("show", "Show application details"), ("instances", "Show instance states")):
            p = sub.add_parser(action, parents=[common], help=text)
            p.add_argument("app", help="Application name")
    elif noun == "logs":
        for action, text in (("recent", "Print recent log entries"), ("stream", "Follow new log entries")):
            p = sub.add_parser(action, parents=[common], help=text)
            p.add_argument("app", help="Application name")
    elif noun == "file":
        get_parser = sub.add_parser("get", parents=[common], help="Print a file or byte range")
        tail_parser = sub.add_parser("tail", parents=[common], help="Print the last bytes of a file")
        for p in (get_parser, tail_parser):
            p.add_argument("app", help="Application name")
            p.add_argument("path", help="File path inside the instance (e.g., logs/app.log)")
            p.add_argument('--instance', '-i', type=int, default=0, help='Instance index (default: 0)')
        get_parser.add_argument('--start', type=int, help='First byte to read')
        get_parser.add_argument('--end', type=int, help='Stop before this byte')
        tail_parser.add_argument('--length', '-n', type=int, required=True, help='Number of bytes')
    return parser


def main(noun: str, argv: list) -> int:
    """Client noun entry point."""
    parser = _build_parser(noun)
    args = parser.parse_args(argv)

    if noun != "info" and not args.action:
        parser.print_help()
        return 1

    try:
        client = connect(args.target)
        return HANDLERS[noun](client, args)
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    except CloudError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
