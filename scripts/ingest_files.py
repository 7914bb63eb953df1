#!/usr/bin/env python
"""Ingest PDF and text files into the knowledge base.

Usage:
    python scripts/ingest_files.py docs/*.pdf          # Add files
    python scripts/ingest_files.py --replace faq.txt   # Replace an earlier upload
    python scripts/ingest_files.py --rebuild docs/     # Clear the store first
    python scripts/ingest_files.py --seed              # Load the built-in FAQ entries
"""
import argparse
import asyncio
import mimetypes
import sys
from datetime import datetime
from pathlib import Path

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from kbchat import config
from kbchat.errors import KBChatError
from kbchat.rag.seed import seed_default_knowledge
from kbchat.rag.store_faiss import FAISSDocumentStore
from kbchat.services import build_services
import structlog

logger = structlog.get_logger()

SUPPORTED_SUFFIXES = {".pdf", ".txt"}


class ProgressReporter:
    """Simple progress reporter for CLI."""

    def __init__(self, verbose: bool = False):
        self.verbose = verbose
        self.start_time = None

    def start(self, message: str):
        """Start progress reporting."""
        self.start_time = datetime.now()
        print(f"\n{'=' * 60}")
        print(f"  {message}")
        print(f"{'=' * 60}\n")

    def update(self, current: int, total: int, file_path: Path):
        """Update progress."""
        percentage = (current / total) * 100 if total > 0 else 0
        bar_length = 40
        filled = int(bar_length * current / total) if total > 0 else 0
        bar = "█" * filled + "░" * (bar_length - filled)

        print(
            f"\r  [{bar}] {percentage:5.1f}% ({current}/{total}) {file_path.name[:30]:<30}",
            end="",
            flush=True,
        )

        if self.verbose:
            print()

    def finish(self, stats: dict):
        """Finish progress reporting."""
        print("\n")
        elapsed_seconds = (datetime.now() - self.start_time).total_seconds()

        print(f"{'=' * 60}")
        print(f"  Ingestion Complete!")
        print(f"{'=' * 60}\n")
        print(f"  📁 Files processed:      {stats['files_processed']}")
        print(f"  ❌ Files failed:         {stats['files_failed']}")
        print(f"  📝 Chunks created:       {stats['chunks_created']}")
        print(f"  ⏱️  Time elapsed:         {elapsed_seconds:.1f}s")

        if stats["chunks_created"] > 0 and elapsed_seconds > 0:
            rate = stats["chunks_created"] / elapsed_seconds
            print(f"  ⚡ Ingestion rate:       {rate:.1f} chunks/sec")

        print(f"\n{'=' * 60}\n")

        if stats["files_failed"] > 0:
            print(f"⚠️  Warning: {stats['files_failed']} file(s) failed to ingest.")
            print(f"   Check logs for details.\n")


def discover_files(paths: list) -> list:
    """Expand directories into the supported files they contain."""
    files = []
    for path in paths:
        if path.is_dir():
            files.extend(
                sorted(p for p in path.rglob("*") if p.suffix.lower() in SUPPORTED_SUFFIXES)
            )
        elif path.exists():
            files.append(path)
        else:
            raise FileNotFoundError(f"Path not found: {path}")
    return files


async def main():
    """Main entry point for the ingestion script."""
    parser = argparse.ArgumentParser(
        description="Ingest PDF and text files into the knowledge base",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument("paths", nargs="*", type=Path, help="Files or directories to ingest")
    parser.add_argument(
        "--replace",
        action="store_true",
        help="Replace chunks from earlier uploads of the same file names",
    )
    parser.add_argument(
        "--rebuild",
        action="store_true",
        help="Clear the store before ingesting (FAISS backend only)",
    )
    parser.add_argument(
        "--seed",
        action="store_true",
        help="Also load the built-in FAQ knowledge",
    )
    parser.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Show verbose progress output",
    )

    args = parser.parse_args()

    if not args.paths and not args.seed:
        parser.error("nothing to do: pass files/directories or --seed")

    progress = ProgressReporter(verbose=args.verbose)
    stats = {"files_processed": 0, "files_failed": 0, "chunks_created": 0}

    try:
        print("\n📋 Configuration:")
        print(f"   Store backend:    {config.STORE_BACKEND}")
        print(f"   Embedding model:  {config.EMBEDDING_MODEL}")
        print(f"   Chunk size:       {config.CHUNK_SIZE} chars")
        print(f"   Chunk overlap:    {config.CHUNK_OVERLAP} chars")

        files = discover_files(args.paths)

        services = build_services()
        await services.startup()

        if args.rebuild:
            if not isinstance(services.store, FAISSDocumentStore):
                print("\n❌ Error: --rebuild needs the faiss store backend\n")
                sys.exit(1)
            print("\n⚠️  Rebuild mode: Will clear the existing index and database!")
            print("   Press Ctrl+C within 3 seconds to cancel...")
            await asyncio.sleep(3)
            await services.store.rebuild_index()

        if args.seed:
            stored = await seed_default_knowledge(services.embedder, services.store)
            stats["chunks_created"] += stored
            print(f"\n🌱 Seeded {stored} default knowledge entries")

        progress.start("Ingesting Files")

        for idx, file_path in enumerate(files, 1):
            progress.update(idx, len(files), file_path)
            content_type, _ = mimetypes.guess_type(file_path.name)

            try:
                result = await services.ingest.ingest_upload(
                    filename=file_path.name,
                    content_type=content_type,
                    data=file_path.read_bytes(),
                    replace=args.replace,
                )
                stats["files_processed"] += 1
                stats["chunks_created"] += result.chunks_created
            except KBChatError as e:
                logger.error("file_ingestion_failed", path=str(file_path), error=str(e))
                stats["files_failed"] += 1

        progress.finish(stats)

        if stats["files_failed"] > 0:
            sys.exit(1)

    except KeyboardInterrupt:
        print("\n\n⚠️  Ingestion cancelled by user.\n")
        sys.exit(1)

    except FileNotFoundError as e:
        print(f"\n❌ Error: {e}\n")
        sys.exit(1)

    except KBChatError as e:
        print(f"\n❌ Error: {e}\n")
        logger.error("ingest_script_failed", error=str(e), error_type=type(e).__name__)
        sys.exit(1)


if __name__ == "__main__":
    asyncio.run(main())
