"""
YouTube Digest - Main CLI
=========================

Register channels, poll for uploads, summarize with an LLM and export
Markdown notes for Obsidian.

Usage:
    python orchestrator.py add "https://www.youtube.com/@kurzgesagt" --frequency daily
    python orchestrator.py poll
    python orchestrator.py summarize --channel 1
    python orchestrator.py export-all --output ./vault

Flow:
    1. Resolve channel URL (/channel/, /@handle, /c/, /user/)
    2. Register it in the library (data/library.json)
    3. Fetch latest uploads (all channels or only those due for polling)
    4. Summarize videos without a summary (transcript -> LLM)
    5. Export to the Obsidian vault, a Markdown file, or a zip archive
"""

import argparse
import sys
from pathlib import Path

from tqdm import tqdm

from tubedigest.channel_resolver import ChannelResolutionError, resolve_channel
from tubedigest.config import configure_logging, get_settings
from tubedigest.service import build_service
from tubedigest.store import FREQUENCIES, DuplicateError, NotFoundError


def _cmd_resolve(args) -> int:
    print(f"\n🔍 Resolving channel: {args.url}")
    try:
        res = resolve_channel(args.url)
    except ChannelResolutionError as e:
        print(f"❌ {e.user_message} ({e})")
        return 1
    print(f"\n✅ Channel ID: {res.channel_id}")
    print(f"   Method:     {res.method}")
    if not res.confident:
        print("   ⚠️  Best-guess match: double-check this is the right channel.")
    return 0


def _cmd_add(args) -> int:
    svc = build_service(connect_vault=False)
    print(f"\n🔍 Registering channel: {args.url}")
    try:
        ch = svc.register_channel(args.url, frequency=args.frequency, is_active=not args.inactive)
    except ChannelResolutionError as e:
        print(f"❌ {e.user_message} ({e})")
        return 1
    except DuplicateError as e:
        print(f"❌ {e}")
        return 1

    videos = svc.store.videos_by_channel(ch.id)
    print(f"\n✅ Registered channel:")
    print(f"   Title:     {ch.name}")
    print(f"   ID:        {ch.channel_id}")
    print(f"   Library #: {ch.id}")
    print(f"   Frequency: {ch.frequency}")
    print(f"   Videos:    {len(videos)}")
    return 0


def _print_bulk(result, noun: str) -> int:
    print(f"\n✅ {result.success_count}/{result.total} {noun} succeeded.")
    for name, err in result.errors.items():
        print(f"   ❌ {name}: {err}")
    return 0 if result.error_count == 0 else 1


def _cmd_fetch(args) -> int:
    svc = build_service(connect_vault=False)
    if args.channel is not None:
        try:
            added = svc.fetch_channel_videos(args.channel, max_results=args.limit)
        except NotFoundError as e:
            print(f"❌ {e}")
            return 1
        print(f"\n✅ {added} new videos.")
        return 0

    channels = svc.store.list_channels()
    if not channels:
        print("No channels registered. Add one with `orchestrator.py add URL`.")
        return 1
    print(f"\n🎥 Fetching videos for {len(channels)} channels...")
    return _print_bulk(svc.fetch_all_channel_videos(), "channels")


def _cmd_poll(args) -> int:
    svc = build_service(connect_vault=False)
    due = svc.due_channels()
    if not due:
        print("\n✅ Nothing due for polling.")
        return 0
    print(f"\n🔄 Polling {len(due)} due channels...")
    return _print_bulk(svc.poll_due_channels(), "channels")


def _cmd_summarize(args) -> int:
    svc = build_service(connect_vault=False)
    if args.video is not None:
        try:
            summary = svc.summarize_video(args.video)
        except Exception as e:
            print(f"❌ Summary failed: {e}")
            return 1
        print(f"\n✅ Summary #{summary.id}: {summary.title}")
        return 0

    bar = tqdm(desc="Summarizing", unit="video")
    result = svc.summarize_pending(args.channel, on_progress=lambda _v: bar.update(1))
    bar.close()
    return _print_bulk(result, "videos")


def _cmd_export(args) -> int:
    svc = build_service(connect_vault=not args.no_vault)
    try:
        result = svc.export_summary(args.summary_id)
    except NotFoundError as e:
        print(f"❌ {e}")
        return 1

    if result.method == "obsidian_direct":
        print(f"\n✅ Saved to Obsidian: {result.path}")
        return 0

    out_dir = Path(args.output)
    out_dir.mkdir(parents=True, exist_ok=True)
    fpath = out_dir / result.filename
    fpath.write_text(result.markdown, encoding="utf-8")
    print(f"\n✅ Wrote {fpath}")
    return 0


def _cmd_export_all(args) -> int:
    svc = build_service(connect_vault=False)
    out = Path(args.output)
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_bytes(svc.export_all(args.channel))
    print(f"\n✅ Wrote {out}")
    print("\n💡 Tip: unzip into your Obsidian vault to browse the notes.\n")
    return 0


def _cmd_vault(args) -> int:
    svc = build_service()
    if svc.vault is None:
        print("❌ Obsidian is not connected. Set OBSIDIAN_API_KEY and start the Local REST API plugin.")
        return 1

    if args.search:
        hits = svc.vault.search(args.search)
        print(f"\n🔍 {len(hits)} notes match '{args.search}':")
        for hit in hits:
            print(f"   - {hit.get('filename', hit)}")
        return 0

    files = svc.vault.list_files()
    print(f"\n📁 {len(files)} entries at the vault root:")
    for name in files:
        print(f"   - {name}")
    return 0


def _cmd_serve(args) -> int:
    import uvicorn

    uvicorn.run("tubedigest.api:app", host=args.host, port=args.port, log_level=args.log_level.lower())
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description="YouTube channel digest: resolve, poll, summarize, export",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check how a pasted URL resolves
  python orchestrator.py resolve "https://www.youtube.com/@kcode_factory"

  # Register a channel polled every 6 hours
  python orchestrator.py add "https://www.youtube.com/@lexfridman" --frequency every6hours

  # Summarize everything new, then export a zip
  python orchestrator.py poll && python orchestrator.py summarize
  python orchestrator.py export-all --output ./summaries.zip
        """
    )
    parser.add_argument("--log-level", default=None, help="Logging level (default: LOG_LEVEL or INFO)")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("resolve", help="Resolve a channel URL to its channel ID")
    p.add_argument("url")
    p.set_defaults(func=_cmd_resolve)

    p = sub.add_parser("add", help="Register a channel and fetch its latest videos")
    p.add_argument("url")
    p.add_argument("--frequency", choices=FREQUENCIES, default="daily")
    p.add_argument("--inactive", action="store_true", help="Register without polling")
    p.set_defaults(func=_cmd_add)

    p = sub.add_parser("fetch", help="Fetch new videos (one channel or all)")
    p.add_argument("--channel", type=int, default=None, help="Library channel number")
    p.add_argument("--limit", type=int, default=10, help="Max videos per channel (default: 10)")
    p.set_defaults(func=_cmd_fetch)

    p = sub.add_parser("poll", help="Fetch videos for channels whose polling interval elapsed")
    p.set_defaults(func=_cmd_poll)

    p = sub.add_parser("summarize", help="Summarize videos that have no summary yet")
    p.add_argument("--channel", type=int, default=None)
    p.add_argument("--video", type=int, default=None, help="Summarize (or re-summarize) one video")
    p.set_defaults(func=_cmd_summarize)

    p = sub.add_parser("export", help="Export one summary to Obsidian or a Markdown file")
    p.add_argument("summary_id", type=int)
    p.add_argument("--output", default="./export", help="Directory for the Markdown file")
    p.add_argument("--no-vault", action="store_true", help="Skip Obsidian and write a file")
    p.set_defaults(func=_cmd_export)

    p = sub.add_parser("export-all", help="Zip all summaries as Markdown")
    p.add_argument("--channel", type=int, default=None)
    p.add_argument("--output", default="./obsidian-summaries.zip")
    p.set_defaults(func=_cmd_export_all)

    p = sub.add_parser("vault", help="List the Obsidian vault root or search its notes")
    p.add_argument("--search", default=None, help="Full-text query")
    p.set_defaults(func=_cmd_vault)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=5000)
    p.set_defaults(func=_cmd_serve)

    return parser


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    args.log_level = args.log_level or get_settings().log_level
    configure_logging(args.log_level)
    return args.func(args)


if __name__ == "__main__":
    sys.exit(main())
