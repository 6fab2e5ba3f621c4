"""Command-line interface for the Otter client and proxy.

WHY: Exercising the Otter client (listing speeches, exporting, uploading)
should not require running the proxy. The CLI wires one logged-in
OtterClient to a subcommand per client operation, plus ``serve`` to start
the HTTP proxy.

HOW: argparse subcommands, each mapped to a coroutine that receives the
logged-in client and the parsed arguments and returns an Envelope. The
envelope's data is printed to stdout as JSON; status messages go to
stderr. Credentials come from --username/--password or the
OTTER_USERNAME/OTTER_PASSWORD environment variables.

RULES:
- Status output goes to stderr, results to stdout (pipeable)
- Exit code 1 on configuration errors, domain errors, or non-2xx statuses
- Exit code 130 on Ctrl-C
- ``serve`` does not log in
"""

from __future__ import annotations

import argparse
import asyncio
import json
import sys
from typing import Any, Awaitable, Callable, Dict, List, Optional

from otter_proxy import __version__
from otter_proxy.api.client import DEFAULT_EXPORT_FORMATS, OtterClient
from otter_proxy.api.errors import OtterError
from otter_proxy.api.models import SOURCES, Envelope
from otter_proxy.config import configure_logging, load_credentials


def _status(msg: str) -> None:
    """Print a status message to stderr."""
    print(msg, file=sys.stderr, flush=True)


def _jsonable(data: Any) -> Any:
    if hasattr(data, "to_dict"):
        return data.to_dict()
    if isinstance(data, bytes):
        return "<{} bytes>".format(len(data))
    return data


# ---------------------------------------------------------------------------
# Subcommands
# ---------------------------------------------------------------------------

Command = Callable[[OtterClient, argparse.Namespace], Awaitable[Envelope]]


async def _cmd_user(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.get_user()


async def _cmd_speeches(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.get_all_speeches(args.folder, args.source, args.max)


async def _cmd_all_speeches(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.get_all_speeches_from_all_sources(args.folder, args.max)


async def _cmd_speech(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.get_speech(args.speech_id)


async def _cmd_search(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.query_speech(args.query, args.speech_id, args.size)


async def _cmd_upload(client: OtterClient, args: argparse.Namespace) -> Envelope:
    _status("Uploading {}...".format(args.file))
    return await client.upload_speech(args.file, args.content_type)


async def _cmd_download(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.download_speech(
        args.speech_id, args.name, args.formats, args.output_dir
    )


async def _cmd_trash(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.move_to_trash_bin(args.speech_id)


async def _cmd_speakers(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.get_speakers()


async def _cmd_create_speaker(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.create_speaker(args.name)


async def _cmd_folders(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.get_folders()


async def _cmd_groups(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.list_groups()


async def _cmd_notifications(client: OtterClient, args: argparse.Namespace) -> Envelope:
    return await client.get_notification_settings()


COMMANDS: Dict[str, Command] = {
    "user": _cmd_user,
    "speeches": _cmd_speeches,
    "all-speeches": _cmd_all_speeches,
    "speech": _cmd_speech,
    "search": _cmd_search,
    "upload": _cmd_upload,
    "download": _cmd_download,
    "trash": _cmd_trash,
    "speakers": _cmd_speakers,
    "create-speaker": _cmd_create_speaker,
    "folders": _cmd_folders,
    "groups": _cmd_groups,
    "notifications": _cmd_notifications,
}


async def _run_command(
    args: argparse.Namespace,
    client_factory: Callable[[], OtterClient] = OtterClient,
) -> int:
    """Log in, run one subcommand, print its result. Returns the exit code."""
    try:
        if args.username and args.password:
            username, password = args.username, args.password
        else:
            username, password = load_credentials()
    except ValueError as e:
        print("Error: {}".format(e), file=sys.stderr)
        return 1

    async with client_factory() as client:
        try:
            _status("Logging in as {}...".format(username))
            login = await client.login(username, password)
            if login.status_code != 200:
                print(
                    "Error: login failed with status {}".format(login.status_code),
                    file=sys.stderr,
                )
                return 1

            envelope = await COMMANDS[args.command](client, args)
        except OtterError as e:
            print("Error: {}".format(e), file=sys.stderr)
            return 1

    print(json.dumps(_jsonable(envelope.data), indent=2, default=str))
    if not envelope.ok:
        _status("Otter returned status {}".format(envelope.status_code))
        return 1
    return 0


def build_parser() -> argparse.ArgumentParser:
    """Build the argparse parser for the CLI.

    RULES:
    - One subcommand per client operation, plus ``serve``
    - --username/--password are global and optional (env fallback)
    """
    parser = argparse.ArgumentParser(
        prog="otter-proxy",
        description="Otter.ai API client and HTTP proxy.",
    )
    parser.add_argument("--version", action="version", version=__version__)
    parser.add_argument("--username", default=None, help="Otter account e-mail (default: $OTTER_USERNAME).")
    parser.add_argument("--password", default=None, help="Otter password (default: $OTTER_PASSWORD).")
    parser.add_argument("--log-level", default=None, help="Logging level (default: $LOG_LEVEL or INFO).")

    sub = parser.add_subparsers(dest="command", required=True)

    serve = sub.add_parser("serve", help="Run the HTTP proxy.")
    serve.add_argument("--host", default=None, help="Bind address (default: $HOST or 0.0.0.0).")
    serve.add_argument("--port", type=int, default=None, help="Port (default: $PORT or 3000).")

    sub.add_parser("user", help="Show the logged-in user.")

    speeches = sub.add_parser("speeches", help="List speeches of one source.")
    speeches.add_argument("--folder", type=int, default=0)
    speeches.add_argument("--source", choices=SOURCES, default="owned")
    speeches.add_argument("--max", type=int, default=1000, help="Maximum speeches (capped at 200 per request).")

    all_speeches = sub.add_parser("all-speeches", help="List owned and shared speeches.")
    all_speeches.add_argument("--folder", type=int, default=0)
    all_speeches.add_argument("--max", type=int, default=500, help="Maximum speeches per source.")

    speech = sub.add_parser("speech", help="Show one speech with its transcript.")
    speech.add_argument("speech_id")

    search = sub.add_parser("search", help="Search inside one speech.")
    search.add_argument("query")
    search.add_argument("speech_id")
    search.add_argument("--size", type=int, default=500)

    upload = sub.add_parser("upload", help="Upload a recording for transcription.")
    upload.add_argument("file")
    upload.add_argument("--content-type", default="audio/mp4")

    download = sub.add_parser("download", help="Export a speech to a local file.")
    download.add_argument("speech_id")
    download.add_argument("--name", default=None, help="Base filename (default: the speech id).")
    download.add_argument(
        "--formats",
        default=DEFAULT_EXPORT_FORMATS,
        help="Comma-separated export formats; several formats produce a zip (default: %(default)s).",
    )
    download.add_argument("--output-dir", default=None, help="Target directory (default: current directory).")

    trash = sub.add_parser("trash", help="Move a speech to the trash bin.")
    trash.add_argument("speech_id")

    sub.add_parser("speakers", help="List speakers.")

    create_speaker = sub.add_parser("create-speaker", help="Create a speaker.")
    create_speaker.add_argument("name")

    sub.add_parser("folders", help="List folders.")
    sub.add_parser("groups", help="List groups.")
    sub.add_parser("notifications", help="Show notification settings.")

    return parser


def main(argv: Optional[List[str]] = None) -> None:
    """Entry point for ``otter-proxy`` and ``python -m otter_proxy``.

    RULES:
    - argv=None means use sys.argv (normal CLI invocation)
    - Explicit argv is for testing
    """
    parser = build_parser()
    args = parser.parse_args(argv)

    if args.command == "serve":
        from otter_proxy.server.app import run_api
        run_api(host=args.host, port=args.port)
        return

    configure_logging(args.log_level)
    try:
        code = asyncio.run(_run_command(args))
    except KeyboardInterrupt:
        _status("\nCancelled by user.")
        sys.exit(130)
    sys.exit(code)


if __name__ == "__main__":
    main()
