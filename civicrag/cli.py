"""
civicrag command-line interface.

    civicrag chunk bylaw.md --title "Zoning By-Law" --url https://example.gov/zoning
    civicrag detect-type bylaw.md --title "Zoning By-Law"
    civicrag init-store
    civicrag ingest bylaw.md --tenant needham --title "Zoning By-Law" --url https://example.gov/zoning
    civicrag query "when is the dump open" --tenant needham

Results go to stdout as JSON; structured logs go to stderr.
"""

import argparse
import json
import sys
from datetime import datetime, timezone
from pathlib import Path

from civicrag.shared.config import (
    get_config,
    get_settings,
    reload_config,
    validate_config_at_startup,
)
from civicrag.shared.errors import CivicRagError
from civicrag.shared.models import DocumentType
from civicrag.shared.observability import (
    correlation_scope,
    get_logger,
    get_metrics,
    setup_logging,
    setup_metrics,
)

logger = get_logger(__name__)


def _read_text(path: str) -> str:
    return Path(path).read_text(encoding="utf-8")


def _open_store(config):
    from civicrag.query.stores import QdrantChunkStore

    return QdrantChunkStore(config=config.search)


def _chunk_file(args):
    """Read and chunk ``args.file``; returns (Document, chunks)."""
    from civicrag.ingestion import DocumentChunker
    from civicrag.ingestion.annotator import content_hash
    from civicrag.shared.models import Document

    text = _read_text(args.file)
    chunks = DocumentChunker().chunk_document(
        text,
        document_id=args.document_id or Path(args.file).stem,
        document_url=args.url,
        document_title=args.title,
        document_type=DocumentType(args.type) if args.type else None,
        department=args.department,
    )
    document = Document(
        id=args.document_id or Path(args.file).stem,
        url=args.url,
        title=args.title,
        document_type=chunks[0].metadata.document_type if chunks else DocumentType.GENERAL,
        content_hash=content_hash(text),
        ingested_at=datetime.now(timezone.utc),
    )
    return document, chunks


def cmd_chunk(args) -> int:
    _, chunks = _chunk_file(args)
    for chunk in chunks:
        print(json.dumps(chunk.model_dump(mode="json")), flush=True)
    return 0 if chunks else 1


def cmd_detect_type(args) -> int:
    from civicrag.ingestion import detect_document_type

    print(detect_document_type(args.title, _read_text(args.file)).value)
    return 0


def cmd_init_store(args) -> int:
    config = get_config()
    store = _open_store(config)
    store.ensure_collections(config.embedding.dims)
    print(json.dumps({"collections": sorted(store.collections.values())}))
    return 0


def cmd_ingest(args) -> int:
    from civicrag.ingestion.writer import ChunkWriter
    from civicrag.providers.factory import ProviderFactory

    config, settings = get_config(), get_settings()
    document, chunks = _chunk_file(args)
    writer = ChunkWriter(
        ProviderFactory.create_embedding_provider(config, settings), _open_store(config)
    )
    written = writer.write_document(document, chunks, args.tenant)
    print(
        json.dumps(
            {
                "document_id": document.id,
                "tenant": args.tenant,
                "document_type": document.document_type.value,
                "chunks": written,
            }
        )
    )
    return 0


def cmd_query(args) -> int:
    from civicrag.query import RetrievalEngine, RetrievalOptions
    from civicrag.query.citations import dedupe_sources

    config, settings = get_config(), get_settings()
    validate_config_at_startup(config, settings)
    engine = RetrievalEngine.from_config(config, settings)
    options = RetrievalOptions(
        result_count=args.count,
        expand_siblings=False if args.no_siblings else None,
    )
    chunks = engine.retrieve(args.text, args.tenant, options)
    output = {
        "query": args.text,
        "tenant": args.tenant,
        "results": [c.to_dict() for c in chunks],
        "sources": [s.to_dict() for s in dedupe_sources(chunks)],
    }
    print(json.dumps(output, indent=2))
    return 0


def _add_document_arguments(parser: argparse.ArgumentParser) -> None:
    parser.add_argument("file", help="Path to the document text")
    parser.add_argument("--title", required=True, help="Document title")
    parser.add_argument("--url", required=True, help="Canonical document URL")
    parser.add_argument(
        "--type",
        choices=[t.value for t in DocumentType],
        help="Skip detection and use this document type",
    )
    parser.add_argument("--department", help="Owning department")
    parser.add_argument("--document-id", help="Document id (default: file stem)")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="civicrag",
        description="Municipal document chunking and retrieval",
    )
    parser.add_argument("--log-level", default=None, help="Override LOG_LEVEL")
    parser.add_argument(
        "--metrics-out", default=None, help="Write Prometheus metrics to this file on exit"
    )
    subparsers = parser.add_subparsers(dest="command", help="Command to execute")

    chunk_parser = subparsers.add_parser("chunk", help="Chunk a markdown/text document")
    _add_document_arguments(chunk_parser)

    detect_parser = subparsers.add_parser("detect-type", help="Print the detected document type")
    detect_parser.add_argument("file", help="Path to the document text")
    detect_parser.add_argument("--title", required=True, help="Document title")

    subparsers.add_parser("init-store", help="Create collections and payload indexes")

    ingest_parser = subparsers.add_parser(
        "ingest", help="Chunk, embed and store a document, replacing its old chunks"
    )
    _add_document_arguments(ingest_parser)
    ingest_parser.add_argument("--tenant", required=True, help="Tenant (town) id")

    query_parser = subparsers.add_parser("query", help="Run a retrieval")
    query_parser.add_argument("text", help="Query text")
    query_parser.add_argument("--tenant", required=True, help="Tenant (town) id")
    query_parser.add_argument("--count", type=int, default=None, help="Result count")
    query_parser.add_argument(
        "--no-siblings", action="store_true", help="Plain top-N selection"
    )
    return parser


COMMANDS = {
    "chunk": cmd_chunk,
    "detect-type": cmd_detect_type,
    "init-store": cmd_init_store,
    "ingest": cmd_ingest,
    "query": cmd_query,
}


def main(argv=None) -> int:
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    config, settings = reload_config()
    setup_logging(args.log_level or settings.log_level, stream=sys.stderr)
    setup_metrics(config)

    try:
        with correlation_scope(command=args.command):
            return COMMANDS[args.command](args)
    except CivicRagError as e:
        logger.error("command_failed", command=args.command, **e.to_dict())
        print(f"Error: {e.message}", file=sys.stderr)
        return 1
    except OSError as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1
    finally:
        if args.metrics_out:
            Path(args.metrics_out).write_bytes(get_metrics())


if __name__ == "__main__":
    sys.exit(main())
