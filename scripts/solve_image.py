"""Answer the question in an image with k parallel model calls and report agreement."""

from __future__ import annotations

import sys
from pathlib import Path

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

import argparse
import asyncio
import base64
import json

from dotenv import load_dotenv

from visionlens.config import load_analysis_config
from visionlens.controller import ChannelEventKind, TaskController, UpdateStream
from visionlens.models import build_client, load_model_catalog
from visionlens.persistence import FileHistoryStore, PersistenceGate
from visionlens.utils.logging_config import setup_logging


def parse_args() -> argparse.Namespace:
    """Parse CLI args."""
    parser = argparse.ArgumentParser(description="Solve a photographed question with consensus voting")
    parser.add_argument("image", type=Path, nargs="?", help="JPEG file, or a text file holding base64 JPEG data")
    parser.add_argument("--config", type=Path, default=Path("config/analysis.yaml"))
    parser.add_argument("--models", type=Path, default=Path("config/models.yaml"))
    parser.add_argument("--model", default=None, help="Model alias from the catalog")
    parser.add_argument("-k", type=int, default=None, help="Number of parallel samples (1-5)")
    parser.add_argument("--log-dir", type=Path, default=Path("results/logs"))
    parser.add_argument("--history", action="store_true", help="Print saved history and exit")
    parser.add_argument("--dry-run", action="store_true")
    return parser.parse_args()


def load_image_payload(path: Path) -> str:
    """Return base64 JPEG data; accepts raw image bytes or an already-encoded file."""
    raw = path.read_bytes()
    if path.suffix.lower() in {".txt", ".b64"}:
        return raw.decode("ascii").strip()
    return base64.b64encode(raw).decode("ascii")


async def async_main(args: argparse.Namespace) -> int:
    """Run one analysis task and print its streamed verdicts."""
    logger, _ = setup_logging(log_dir=args.log_dir, name="solve_image")
    config = load_analysis_config(config_path=args.config if args.config.exists() else None)
    store = FileHistoryStore(config.history_dir or Path("results/history"))

    if args.history:
        for record in store.load_history(user_id=config.user_id):
            verdict = record["verdict"]
            print(f"{record['created_at']}  {verdict['tag']:<16} {verdict['best_answer']}")
        return 0

    if args.image is None:
        logger.error("An image path is required")
        return 2

    catalog = load_model_catalog(config_path=args.models)
    client = build_client(catalog, args.model, dry_run=args.dry_run)
    stream = UpdateStream()
    controller = TaskController(
        client,
        config=config,
        gate=PersistenceGate(store, logger=logger),
        channel=stream,
        logger=logger,
    )

    task = controller.new_task(load_image_payload(args.image), k=args.k)
    runner = asyncio.create_task(controller.run(task))
    async for event in stream:
        if event.kind is ChannelEventKind.VERDICT:
            verdict = event.update.verdict
            print(
                f"[{verdict.total_seen}/{verdict.expected}] {verdict.tag.value} "
                f"({verdict.color_hint.value}) best={verdict.best_answer!r}"
            )
        elif event.kind is ChannelEventKind.DEADLINE:
            print("Still working...")
        elif event.kind is ChannelEventKind.SAVED:
            logger.info("History record %s written", event.record_id)

    task = await runner
    await controller.dispatcher.drain()
    await client.close()

    print(json.dumps({"verdict": task.verdict.to_dict(), "results": [r.to_dict() for r in task.results]}, indent=2, ensure_ascii=False))
    return 0


def main() -> None:
    """Program entry point."""
    load_dotenv()
    args = parse_args()
    raise SystemExit(asyncio.run(async_main(args)))


if __name__ == "__main__":
    main()
