"""Entry point: python -m chatport"""

from __future__ import annotations

import argparse
import asyncio
import sys
from pathlib import Path

from chatport.infrastructure.adapters import DirectoryDownloader
from chatport.infrastructure.config import EXPORT_DIR
from chatport.infrastructure.logger import logger


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="chatport", description="Export and import chat archives")
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser("list", help="List stored chats")

    export = sub.add_parser("export", help="Export chats to a ZIP archive")
    export.add_argument("ids", nargs="*", help="Chat ids to export")
    export.add_argument("--all", action="store_true", help="Export every stored chat")
    export.add_argument("--out", type=Path, default=EXPORT_DIR, help="Directory for the archive")
    export.add_argument("--no-attachment-data", action="store_true", help="Keep attachment metadata only")
    export.add_argument("--no-audio", action="store_true", help="Skip cached message audio")
    export.add_argument("--include-api-keys", action="store_true", help="Include stored API keys")
    export.add_argument("--include-api-logs", action="store_true", help="Include API request logs")

    imp = sub.add_parser("import", help="Import a ZIP archive or JSON export")
    imp.add_argument("file", type=Path)

    txt = sub.add_parser("txt", help="Export the active chat as plain text")
    txt.add_argument("--filename", type=str, default=None)
    txt.add_argument("--out", type=Path, default=EXPORT_DIR, help="Directory for the text file")
    return parser


async def main(argv: list[str]) -> int:
    from chatport.app import ChatportApp

    args = build_parser().parse_args(argv)
    out_dir = getattr(args, "out", EXPORT_DIR)
    app = ChatportApp(downloader=DirectoryDownloader(out_dir)).start()
    assert app.chat_history is not None and app.app_data is not None and app.transfer is not None

    try:
        if args.command == "list":
            current = app.chat_history.current_chat_id
            for chat in app.chat_history.get_all():
                marker = "*" if chat.id == current else " "
                print(f"{marker} {chat.id}\t{chat.title}\t{len(chat.messages)} message(s)")
            return 0

        if args.command == "export":
            ids = [c.id for c in app.chat_history.get_all()] if args.all else args.ids
            config = app.app_data.current_export_config.model_copy(
                update={
                    "include_full_attachment_file_data": not args.no_attachment_data
                    and app.app_data.current_export_config.include_full_attachment_file_data,
                    "include_cached_message_audio": not args.no_audio
                    and app.app_data.current_export_config.include_cached_message_audio,
                    "include_api_keys": args.include_api_keys,
                    "include_api_logs": args.include_api_logs,
                }
            )
            result = await app.transfer.export_chats(ids, config)
            if result.success:
                print(out_dir / result.filename)
            return 0 if result.success else 1

        if args.command == "import":
            try:
                data = args.file.read_bytes()
            except OSError as err:
                logger.error("Cannot read import file", path=str(args.file), error=str(err))
                return 1
            result = await app.transfer.import_archive(data, args.file.name)
            print(result.message)
            for warning in result.warnings:
                print(f"  warning: {warning}", file=sys.stderr)
            return 0 if result.success else 1

        if args.command == "txt":
            name = app.transfer.export_chat_to_txt(args.filename)
            if name:
                print(out_dir / name)
            return 0 if name else 1
    finally:
        app.shutdown()
    return 1


def run() -> None:
    try:
        sys.exit(asyncio.run(main(sys.argv[1:])))
    except KeyboardInterrupt:
        pass


if __name__ == "__main__":
    run()
