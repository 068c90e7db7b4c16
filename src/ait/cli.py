"""Command-line entry point: pick profiles, wire the collaborators, run the app."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys
from pathlib import Path

from prompt_toolkit import PromptSession  # type: ignore

from ait.app import TerminalApp
from ait.assistant import CommandAssistant
from ait.config import load_config
from ait.history import MemoryHistory
from ait.log_utils import build_log_config, configure_logging, log_event
from ait.models import Profile, find_profile, load_profiles
from ait.paths import profiles_file, settings_file
from ait.settings import JsonSettingsStore, SettingsStore, set_macro
from ait.transport.events import ByteEventBus
from ait.transport.ssh import SSHTransport

logger = logging.getLogger(__name__)


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="ait",
        description="Tabbed SSH terminal with history-based command completion.",
    )
    parser.add_argument("--profiles", type=Path, help="JSON file with saved connection profiles.")
    parser.add_argument("--host", help="Connect to this host instead of a saved profile.")
    parser.add_argument("--user", help="Login user for --host.")
    parser.add_argument("--port", type=int, default=22, help="SSH port for --host (default: 22).")
    parser.add_argument("--key", help="Private key file for --host.")
    parser.add_argument("--ai-server", help="Assistant server URL; saved for later runs.")
    parser.add_argument("--ai-model", help="Assistant model name; saved for later runs.")
    parser.add_argument(
        "--bind-macro",
        nargs=2,
        action="append",
        default=[],
        metavar=("KEY", "COMMAND"),
        help="Bind COMMAND to Alt+KEY (1..10); an empty COMMAND removes it. Repeatable.",
    )
    parser.add_argument("--macro-profile", help="Profile (id or name) that --bind-macro applies to; default global.")
    parser.add_argument("profile", nargs="*", help="Saved profiles to open, by id or name; one tab each.")
    return parser


def select_profiles(args: argparse.Namespace, saved: list[Profile]) -> tuple[list[Profile], list[str]]:
    """Resolve CLI arguments to profiles; returns (profiles, unknown references)."""
    selected: list[Profile] = []
    unknown: list[str] = []
    for ref in args.profile:
        profile = find_profile(saved, ref)
        if profile is None:
            unknown.append(ref)
        else:
            selected.append(profile)
    if args.host:
        selected.append(
            Profile(
                name=f"{args.user}@{args.host}",
                host=args.host,
                port=args.port,
                user=args.user,
                key_path=args.key,
            )
        )
    return selected, unknown


def apply_ai_flags(args: argparse.Namespace, assistant: CommandAssistant) -> bool:
    """Point the assistant at --ai-server/--ai-model; returns whether either was given."""
    if not (args.ai_server or args.ai_model):
        return False
    assistant.configure(args.ai_server or assistant.server_url, args.ai_model or assistant.model_name)
    return True


def bind_macros(args: argparse.Namespace, settings: SettingsStore, saved: list[Profile]) -> bool:
    """Save --bind-macro pairs; returns whether any were given.

    Raises ValueError for an unknown --macro-profile or a key outside 1..10.
    """
    if not args.bind_macro:
        return False
    profile_id = None
    if args.macro_profile:
        profile = find_profile(saved, args.macro_profile)
        if profile is None:
            raise ValueError(f"Unknown profile: {args.macro_profile}")
        profile_id = profile.id
    for key, command in args.bind_macro:
        set_macro(settings, profile_id, key, command)
        log_event(logger, "macro.bound", key=key, profile=profile_id or "global")
    return True


async def _prompt_passwords(profiles: list[Profile]) -> list[Profile]:
    if not sys.stdin.isatty():
        return profiles
    session: PromptSession[str] = PromptSession()
    resolved: list[Profile] = []
    for profile in profiles:
        if profile.has_credential:
            resolved.append(profile)
            continue
        password = await session.prompt_async(f"Password for {profile.label}: ", is_password=True)
        resolved.append(profile.model_copy(update={"credential": password or None}))
    return resolved


async def main(argv: list[str]) -> int:
    parser = build_parser()
    args = parser.parse_args(argv[1:])
    if args.host and not args.user:
        parser.error("--host requires --user")

    configure_logging(build_log_config())

    saved = load_profiles(args.profiles or profiles_file())
    settings = JsonSettingsStore(settings_file())
    try:
        saved_changes = bind_macros(args, settings, saved)
    except ValueError as exc:
        print(str(exc), file=sys.stderr)
        return 2
    config = load_config(settings)
    assistant = CommandAssistant(config.ai_server_url, config.ai_model, settings=settings)
    saved_changes = apply_ai_flags(args, assistant) or saved_changes

    profiles, unknown = select_profiles(args, saved)
    if unknown:
        print(f"Unknown profile(s): {', '.join(unknown)}", file=sys.stderr)
        return 2
    if not profiles:
        if saved_changes:
            return 0
        if saved:
            print("Saved profiles:", file=sys.stderr)
            for profile in saved:
                print(f"  {profile.name}  {profile.label}  ({profile.id})", file=sys.stderr)
        parser.print_usage(sys.stderr)
        return 2

    profiles = await _prompt_passwords(profiles)

    bus = ByteEventBus()
    transport = SSHTransport(bus, term_type=config.term_type, connect_timeout=config.connect_timeout_s)
    app = TerminalApp(
        transport,
        MemoryHistory(),
        settings,
        config=config,
        assistant=assistant,
    )
    log_event(logger, "app.start", tabs=len(profiles))
    try:
        return await app.run(profiles)
    finally:
        await transport.close_all()


def run() -> None:
    try:
        raise SystemExit(asyncio.run(main(sys.argv)))
    except KeyboardInterrupt:
        raise SystemExit(130)
