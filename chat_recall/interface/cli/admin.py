"""Admin CLI: collection bootstrap, bulk ingestion, ad-hoc search, backlog drain.

Usage:
    chat-recall ensure-collection
    chat-recall ingest messages.json
    chat-recall search u-42 "dinner reservation" --limit 5
    chat-recall drain-backlog --max 500
    chat-recall delete m-1001
"""

from __future__ import annotations

import argparse
import json
import sys

from chat_recall.application.call_context import CallContext
from chat_recall.application.dto.search_dto import SearchRequest
from chat_recall.config.compose import Container, build_container
from chat_recall.config.logging_setup import configure_logging
from chat_recall.domain.errors import DomainError
from chat_recall.domain.models import Message


def cmd_ensure_collection(args, container: Container) -> int:
    """Create the collection (and the user_id payload index) if missing."""
    s = container.settings
    dim = args.dim or s.embedding_dimension
    try:
        container.get_vector_index().ensure_collection(dim, metric=args.metric)
    except DomainError as err:
        print(f"✗ Failed: {err}")
        return 1
    print(f"✓ Collection '{s.collection}' ready (dim={dim}, metric={args.metric})")
    return 0


def cmd_ingest(args, container: Container) -> int:
    """Ingest messages from a JSON file (a list of message objects)."""
    try:
        with open(args.file, encoding="utf-8") as f:
            raw = json.load(f)
        messages = [Message.from_payload(item) for item in raw]
    except (OSError, ValueError, KeyError, TypeError) as ex:
        print(f"✗ Could not read {args.file}: {ex}")
        return 1

    print(f"Loaded {len(messages)} messages from {args.file}")
    uc = container.get_ingest_use_case()
    total = 0
    failed_batches = 0
    for i in range(0, len(messages), args.batch_size):
        batch = messages[i : i + args.batch_size]
        result = uc.execute_batch(batch, CallContext(container.settings.ingest_timeout_s))
        if not result.ok:
            failed_batches += 1
            print(f"✗ Batch starting at {i} failed: {result.error}")
            continue
        indexed = len(result.value or [])
        total += indexed
        if indexed < len(batch):
            print(f"  Skipped {len(batch) - indexed} invalid messages in batch starting at {i}")
        print(f"  Indexed {total}/{len(messages)} messages")

    if failed_batches:
        print(f"✗ {failed_batches} batches failed; {total} messages indexed")
        return 1
    print(f"✓ Ingested {total} messages into '{container.settings.collection}'")
    return 0


def cmd_search(args, container: Container) -> int:
    limit = args.limit or container.settings.result_limit_default
    result = container.get_search_use_case().execute(
        SearchRequest(user_id=args.user_id, query=args.query, limit=limit)
    )
    if not result.ok:
        print(f"✗ Search failed: {result.error}")
        return 1

    hits = result.value or []
    print(f"✓ {len(hits)} results")
    for rank, r in enumerate(hits, start=1):
        print(f"  {rank:2d}. [{r.score:.4f}] {r.timestamp.isoformat()} {r.message_id}: {r.text}")
    return 0


def cmd_drain_backlog(args, container: Container) -> int:
    result = container.get_ingest_use_case().drain_backlog(max_n=args.max)
    if not result.ok:
        print(f"✗ Drain failed: {result.error}")
        return 1
    report = result.value
    assert report is not None
    print(f"✓ Processed {report.processed} entries ({report.succeeded} ok, {report.failed} failed)")
    for err in report.errors:
        print(f"  - {err}")
    return 0 if report.failed == 0 else 2


def cmd_delete(args, container: Container) -> int:
    result = container.get_ingest_use_case().delete(args.message_id)
    if not result.ok:
        print(f"✗ Delete failed: {result.error}")
        return 1
    print(f"✓ Removed message '{args.message_id}' from the index")
    return 0


def cmd_count(args, container: Container) -> int:
    try:
        n = container.get_vector_index().count(user_id=args.user)
    except DomainError as err:
        print(f"✗ Count failed: {err}")
        return 1
    scope = f"user '{args.user}'" if args.user else "all users"
    print(f"✓ {n} indexed messages for {scope}")
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="chat-recall",
        description="Admin CLI for chat message semantic search",
    )
    subparsers = parser.add_subparsers(dest="command", required=True)

    p_ensure = subparsers.add_parser("ensure-collection", help="Create or verify the collection")
    p_ensure.add_argument("--dim", type=int, default=None, help="Vector dimension (default: EMBEDDING_DIMENSION)")
    p_ensure.add_argument("--metric", default="cosine", choices=["cosine", "dot", "euclid"])
    p_ensure.set_defaults(func=cmd_ensure_collection)

    p_ingest = subparsers.add_parser("ingest", help="Bulk-ingest messages from a JSON file")
    p_ingest.add_argument("file", help="JSON file with a list of messages")
    p_ingest.add_argument("--batch-size", type=int, default=256)
    p_ingest.set_defaults(func=cmd_ingest)

    p_search = subparsers.add_parser("search", help="Search one user's messages")
    p_search.add_argument("user_id")
    p_search.add_argument("query")
    p_search.add_argument("--limit", type=int, default=None)
    p_search.set_defaults(func=cmd_search)

    p_drain = subparsers.add_parser("drain-backlog", help="Retry parked ingestion failures")
    p_drain.add_argument("--max", type=int, default=100)
    p_drain.set_defaults(func=cmd_drain_backlog)

    p_delete = subparsers.add_parser("delete", help="Remove a deleted message from the index")
    p_delete.add_argument("message_id")
    p_delete.set_defaults(func=cmd_delete)

    p_count = subparsers.add_parser("count", help="Count indexed messages")
    p_count.add_argument("--user", default=None)
    p_count.set_defaults(func=cmd_count)

    return parser


def main(argv: list[str] | None = None, container: Container | None = None) -> int:
    args = build_parser().parse_args(argv)
    container = container or build_container()
    configure_logging(container.settings.log_level)
    return args.func(args, container)


if __name__ == "__main__":
    sys.exit(main())
