from __future__ import annotations

import argparse
import csv
import json
import sys
from pathlib import Path
from typing import Any

from docgraph.settings import settings


def _configure_logging() -> None:
    import logging

    level = (settings.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _emit(payload: Any) -> None:
    print(json.dumps(payload, indent=2, default=str))


def _engine():
    from docgraph.engine import build_engine

    return build_engine(settings)


def cmd_version() -> int:
    from docgraph import __version__

    print(__version__)
    return 0


def cmd_ingest(args: argparse.Namespace) -> int:
    _configure_logging()
    path = Path(args.path)
    filename = args.filename or path.name
    engine = _engine()
    try:
        if args.rows:
            with path.open(newline="", encoding="utf-8") as fh:
                rows = list(csv.DictReader(fh))
            result = engine.pipeline.ingest_rows(rows, filename, content=path.read_text(encoding="utf-8"))
        else:
            result = engine.pipeline.ingest_text(path.read_text(encoding="utf-8"), filename)
        _emit(result.to_dict())
    finally:
        engine.close()
    return 0


def cmd_view(args: argparse.Namespace) -> int:
    _configure_logging()
    engine = _engine()
    try:
        view = engine.views.synthesize(
            document_id=args.document_id, max_nodes=args.max_nodes, max_edges=args.max_edges
        )
        _emit(view.to_dict())
    finally:
        engine.close()
    return 0


def cmd_search(args: argparse.Namespace) -> int:
    _configure_logging()
    engine = _engine()
    try:
        _emit(engine.views.search(args.query, type=args.type, limit=args.limit).to_dict())
    finally:
        engine.close()
    return 0


def cmd_delete(args: argparse.Namespace) -> int:
    _configure_logging()
    from docgraph.errors import DocumentNotFoundError

    engine = _engine()
    try:
        if args.filename:
            report = engine.cascade.delete_document_by_filename(args.filename)
        else:
            report = engine.cascade.delete_document(args.document_id)
        _emit(report.to_dict())
    except DocumentNotFoundError as e:
        print(str(e), file=sys.stderr)
        return 1
    finally:
        engine.close()
    return 0


def cmd_communities(args: argparse.Namespace) -> int:
    _configure_logging()
    engine = _engine()
    try:
        _emit(engine.communities.detect().to_dict())
    finally:
        engine.close()
    return 0


def cmd_stats(args: argparse.Namespace) -> int:
    _configure_logging()
    engine = _engine()
    try:
        _emit(engine.graph.stats())
    finally:
        engine.close()
    return 0


def cmd_documents(args: argparse.Namespace) -> int:
    _configure_logging()
    engine = _engine()
    try:
        _emit([d.to_dict() for d in engine.graph.list_documents(limit=args.limit)])
    finally:
        engine.close()
    return 0


def cmd_clear(args: argparse.Namespace) -> int:
    if not args.yes:
        print("Refusing to clear all data without --yes", file=sys.stderr)
        return 2
    _configure_logging()
    engine = _engine()
    try:
        _emit({"dropped": engine.cascade.clear_all()})
    finally:
        engine.close()
    return 0


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser(prog="docgraph")
    sub = p.add_subparsers(dest="cmd", required=True)

    sub.add_parser("version").set_defaults(func=lambda _a: cmd_version())

    ingest = sub.add_parser("ingest", help="Extract a knowledge graph from a text file or CSV")
    ingest.add_argument("path")
    ingest.add_argument("--filename", default=None, help="Name to record (defaults to the file name)")
    ingest.add_argument("--rows", action="store_true", help="Treat the file as CSV with a header row")
    ingest.set_defaults(func=cmd_ingest)

    view = sub.add_parser("view", help="Bounded, referentially valid subgraph")
    view.add_argument("--document-id", default=None)
    view.add_argument("--max-nodes", type=int, default=None)
    view.add_argument("--max-edges", type=int, default=None)
    view.set_defaults(func=cmd_view)

    search = sub.add_parser("search", help="Nodes by label substring plus their neighbourhood")
    search.add_argument("query")
    search.add_argument("--type", default=None)
    search.add_argument("--limit", type=int, default=20)
    search.set_defaults(func=cmd_search)

    delete = sub.add_parser("delete", help="Cascade-delete a document")
    target = delete.add_mutually_exclusive_group(required=True)
    target.add_argument("--document-id", default=None)
    target.add_argument("--filename", default=None)
    delete.set_defaults(func=cmd_delete)

    sub.add_parser("communities", help="Detect and summarize communities").set_defaults(func=cmd_communities)
    sub.add_parser("stats", help="Node, edge and document counts").set_defaults(func=cmd_stats)

    docs = sub.add_parser("documents", help="List ingested documents")
    docs.add_argument("--limit", type=int, default=None)
    docs.set_defaults(func=cmd_documents)

    clear = sub.add_parser("clear", help="Drop every collection")
    clear.add_argument("--yes", action="store_true")
    clear.set_defaults(func=cmd_clear)

    return p


def app(argv: list[str] | None = None) -> None:
    parser = build_parser()
    args = parser.parse_args(argv)
    rc = args.func(args)
    raise SystemExit(rc)


if __name__ == "__main__":
    app()
