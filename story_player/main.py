"""Command line entrypoint: play stories and inspect saved listening progress."""

from __future__ import annotations

import argparse
import sys

from .application.bootstrap import AppServices, initialize_app_services
from .application.playback_clock import LoopScheduler, PlaybackClock
from .config import AppConfig, load_config
from .constants import PLAYBACK_RATES
from .domain.formatting import format_duration, format_listening_time, format_time_ago
from .domain.playback import (
    EVENT_END,
    EVENT_LOAD_FAILED,
    EVENT_PAUSE,
    EVENT_PLAY,
    EVENT_READY,
    EVENT_RESUMED,
    STATUS_ENDED,
    STATUS_ERROR,
    STATUS_LOADING,
    PlaybackEvent,
)
from .domain.story import Story, upgrade_to_https
from .integrations.platform_api import PlatformApiError
from .integrations.vlc_media import build_vlc_media_factory
from .logging_config import setup_logging
from .storage.key_value import StorageError


def _positive_float(value: str) -> float:
    try:
        parsed = float(value)
    except ValueError as exc:
        raise argparse.ArgumentTypeError(f"not a number: {value}") from exc
    if parsed <= 0:
        raise argparse.ArgumentTypeError(f"must be positive: {value}")
    return parsed


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="story-player",
        description="Play narrated stories and keep track of where you stopped.",
    )
    commands = parser.add_subparsers(dest="command", required=True)

    play = commands.add_parser("play", help="Play a story until it ends or Ctrl+C.")
    play.add_argument("slug", nargs="?", help="Story slug to look up in the catalog.")
    play.add_argument("--url", help="Play this audio URL or local file instead of a catalog story.")
    play.add_argument("--id", dest="story_id", help="Story id used for progress when --url is given.")
    play.add_argument("--title", default="", help="Display title when --url is given.")
    play.add_argument(
        "--duration",
        type=float,
        default=0.0,
        help="Duration hint in seconds when --url is given.",
    )
    play.add_argument(
        "--rate",
        type=_positive_float,
        help=f"Playback rate, e.g. one of {', '.join(str(rate) for rate in PLAYBACK_RATES)}.",
    )
    play.add_argument("--volume", type=float, help="Volume between 0 and 1.")
    play.add_argument(
        "--skip",
        type=int,
        default=0,
        help="Skip this many steps (SKIP_STEP_SECONDS each, negative to go back) before playing.",
    )

    commands.add_parser("continue", help="List stories that are partway through.")

    recent = commands.add_parser("recent", help="List recently played stories.")
    recent.add_argument(
        "--all",
        action="store_true",
        help="Show the full history, including stories listed under continue.",
    )

    progress = commands.add_parser("progress", help="Show the saved progress for one story.")
    progress.add_argument("story_id")

    clear = commands.add_parser("clear", help="Forget progress for one story, or everything.")
    clear.add_argument("story_id", nargs="?")

    login = commands.add_parser("login", help="Store the account token used for progress sync.")
    login.add_argument("token")

    commands.add_parser("logout", help="Remove the stored account token.")
    return parser


def _resolve_story(args: argparse.Namespace, services: AppServices) -> Story:
    if args.url:
        return Story(
            id=args.story_id or args.url,
            audio_url=upgrade_to_https(args.url) or "",
            duration_hint=max(0.0, float(args.duration or 0.0)),
            title=args.title,
        )
    if not args.slug:
        raise ValueError("Give a story slug or --url.")
    if services.api_client is None:
        raise ValueError("API_URL is not configured; use --url to play a file directly.")
    return services.api_client.get_story(args.slug)


def _print_event(event: PlaybackEvent) -> None:
    snapshot = event.snapshot
    story = snapshot.current_story
    title = (story.title or story.id) if story is not None else ""
    if event.kind == EVENT_READY:
        print(f"Loaded: {title} ({format_duration(snapshot.duration)})")
    elif event.kind == EVENT_RESUMED:
        print(f"Resuming at {format_duration(snapshot.current_time)}")
    elif event.kind == EVENT_PLAY:
        print(f"Playing at {snapshot.playback_rate:g}x")
    elif event.kind == EVENT_PAUSE:
        print(f"Paused at {format_duration(snapshot.current_time)}")
    elif event.kind == EVENT_END:
        print(f"Finished: {title}")
    elif event.kind == EVENT_LOAD_FAILED:
        print(f"PLAYBACK_FAILED: {event.error}", file=sys.stderr)


def _cmd_play(
    args: argparse.Namespace,
    services: AppServices,
    scheduler: LoopScheduler,
    config: AppConfig,
    logger,
) -> int:
    story = _resolve_story(args, services)
    engine = services.engine
    if args.rate is not None:
        engine.set_playback_rate(args.rate)
    if args.volume is not None:
        engine.set_volume(args.volume)
    unsubscribe = engine.subscribe(_print_event)
    clock = PlaybackClock(
        engine,
        scheduler,
        interval_ms=config.tick_interval_ms,
        logger_instance=logger,
    )
    try:
        engine.load_story(story)
        if args.skip:
            scheduler.run_until(lambda: engine.status != STATUS_LOADING)
            engine.skip(args.skip * config.skip_step_seconds)
        engine.play()
        clock.start()
        scheduler.run_until(lambda: engine.status in (STATUS_ENDED, STATUS_ERROR))
    except KeyboardInterrupt:
        print(f"\nStopped at {format_duration(engine.snapshot().current_time)}")
        logger.info("Playback interrupted for story %s", story.id)
    finally:
        clock.stop()
        unsubscribe()
    return 1 if engine.status == STATUS_ERROR else 0


def _cmd_continue(services: AppServices) -> int:
    items = services.progress_store.continue_listening()
    if not items:
        print("Nothing in progress.")
        return 0
    for item in items:
        record = item.progress
        print(
            f"{item.story.title or item.story.id}  "
            f"{format_duration(record.position)} / {format_duration(record.duration)} "
            f"({record.percentage}%)  {format_listening_time(record.duration - record.position)} left  "
            f"{format_time_ago(item.entry.played_at)}  [{item.story.id}]"
        )
    return 0


def _cmd_recent(args: argparse.Namespace, services: AppServices) -> int:
    store = services.progress_store
    entries = store.recently_played() if args.all else store.recently_played_filtered()
    if not entries:
        print("No recently played stories.")
        return 0
    for entry in entries:
        record = store.get_progress(entry.story_id)
        state = ""
        if record is not None and record.completed:
            state = "  done"
        print(
            f"{entry.story.title or entry.story.id}  {format_time_ago(entry.played_at)}"
            f"{state}  [{entry.story_id}]"
        )
    return 0


def _cmd_progress(args: argparse.Namespace, services: AppServices) -> int:
    record = services.progress_store.get_progress(args.story_id)
    if record is None:
        print(f"No progress saved for {args.story_id}.")
        return 1
    print(
        f"{record.story_id}: {format_duration(record.position)} / {format_duration(record.duration)} "
        f"({record.percentage}%) completed={str(record.completed).lower()} "
        f"last played {format_time_ago(record.last_played)}"
    )
    return 0


def _cmd_clear(args: argparse.Namespace, services: AppServices) -> int:
    if args.story_id:
        services.progress_store.clear_progress(args.story_id)
        print(f"Cleared progress for {args.story_id}.")
        return 0
    count = services.progress_store.clear_all_progress()
    print(f"Cleared {count} progress record(s) and the recently played list.")
    return 0


def _cmd_login(args: argparse.Namespace, services: AppServices) -> int:
    token = str(args.token or "").strip()
    if not token:
        print("Token is empty.", file=sys.stderr)
        return 2
    if not services.repository.save_user_token(token):
        print("Failed to store the account token.", file=sys.stderr)
        return 1
    print("Progress sync enabled for this account.")
    return 0


def _cmd_logout(services: AppServices) -> int:
    services.repository.delete_user_token()
    print("Signed out; progress stays on this device only.")
    return 0


def main(argv: list[str] | None = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(argv)

    config = load_config()
    logger = setup_logging(config)
    logger.debug("Log file: %s", config.log_file)

    scheduler = LoopScheduler()
    services = initialize_app_services(
        config=config,
        logger=logger,
        media_factory=build_vlc_media_factory(dispatch=scheduler.call_soon, logger_instance=logger),
    )
    try:
        if args.command == "play":
            return _cmd_play(args, services, scheduler, config, logger)
        if args.command == "continue":
            return _cmd_continue(services)
        if args.command == "recent":
            return _cmd_recent(args, services)
        if args.command == "progress":
            return _cmd_progress(args, services)
        if args.command == "clear":
            return _cmd_clear(args, services)
        if args.command == "login":
            return _cmd_login(args, services)
        if args.command == "logout":
            return _cmd_logout(services)
        parser.error(f"unknown command: {args.command}")
        return 2
    except (ValueError, PlatformApiError, StorageError, RuntimeError) as exc:
        logger.debug("Command %s failed", args.command, exc_info=True)
        print(f"STORY_PLAYER_FAILED: {exc}", file=sys.stderr)
        return 1
    finally:
        services.shutdown()


if __name__ == "__main__":
    raise SystemExit(main())
