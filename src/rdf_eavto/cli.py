"""
Command line interface.

Usage:
    rdf-eavto init
    rdf-eavto stats
    rdf-eavto import core.ttl extra.nt.gz
    rdf-eavto entity http://foundation.local/ontology/Computer
    rdf-eavto history http://foundation.local/ontology/Computer
    rdf-eavto serve --port 8000

The database location comes from ``--db`` or ``RDF_EAVTO_DB_PATH``, else
the per-user data directory.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from typing import Optional, Sequence

from rdf_eavto import __version__
from rdf_eavto.config import StoreConfig
from rdf_eavto.errors import EAVTOError
from rdf_eavto.store import TripleStore

logger = logging.getLogger(__name__)


def _print_json(data) -> None:
    print(json.dumps(data, indent=2, default=str))


def cmd_init(store: TripleStore, args: argparse.Namespace) -> int:
    state = "Created" if store.created else "Opened existing"
    print(f"{state} database at {store.path}")
    return 0


def cmd_stats(store: TripleStore, args: argparse.Namespace) -> int:
    _print_json(store.stats().to_dict())
    return 0


def cmd_import(store: TripleStore, args: argparse.Namespace) -> int:
    for path in args.files:
        result = store.import_file(path, args.origin)
        if result.skipped:
            print(f"{result.file}: unchanged, skipped")
        else:
            print(
                f"{result.file}: {result.triples_processed} triples "
                f"({result.format}) at tx {result.tx}"
            )
    return 0


def cmd_entity(store: TripleStore, args: argparse.Namespace) -> int:
    if args.at is not None:
        result = store.get_at_time(args.iri, args.at)
    else:
        result = store.get_by_entity(args.iri, include_retracted=args.all)
    _print_json(result.to_wire())
    return 0


def cmd_history(store: TripleStore, args: argparse.Namespace) -> int:
    _print_json([entry.to_wire() for entry in store.get_history(args.iri)])
    return 0


def cmd_serve(store: TripleStore, args: argparse.Namespace) -> int:
    import uvicorn

    from rdf_eavto.web import create_app

    uvicorn.run(create_app(store), host=args.host, port=args.port)
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="rdf-eavto",
        description="Append-only RDF triple store",
    )
    parser.add_argument("--version", action="version", version=f"%(prog)s {__version__}")
    parser.add_argument("--db", default=None, help="Database file (or :memory:)")
    parser.add_argument("--log-level", default=None, help="DEBUG, INFO, WARNING, ...")
    sub = parser.add_subparsers(dest="command", required=True)

    p = sub.add_parser("init", help="Create or migrate the database")
    p.set_defaults(func=cmd_init)

    p = sub.add_parser("stats", help="Print database statistics")
    p.set_defaults(func=cmd_stats)

    p = sub.add_parser("import", help="Import Turtle / N-Triples / RDF/XML files")
    p.add_argument("files", nargs="+")
    p.add_argument("--origin", default=None, help="Origin name (default import:<file>)")
    p.set_defaults(func=cmd_import)

    p = sub.add_parser("entity", help="Print the facts of an entity")
    p.add_argument("iri")
    p.add_argument("--at", type=int, default=None, help="Snapshot as of this tx")
    p.add_argument("--all", action="store_true", help="Include retracted rows")
    p.set_defaults(func=cmd_entity)

    p = sub.add_parser("history", help="Print the history of an entity")
    p.add_argument("iri")
    p.set_defaults(func=cmd_history)

    p = sub.add_parser("serve", help="Run the HTTP API")
    p.add_argument("--host", default="127.0.0.1")
    p.add_argument("--port", type=int, default=8000)
    p.set_defaults(func=cmd_serve)

    return parser


def main(argv: Optional[Sequence[str]] = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)

    config = StoreConfig.from_env()
    if args.db is not None:
        config.db_path = args.db
    if args.log_level is not None:
        config.log_level = args.log_level.upper()

    logging.basicConfig(
        level=getattr(logging, config.log_level, logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        with TripleStore(config) as store:
            return args.func(store, args)
    except EAVTOError as exc:
        logger.debug("Command failed", exc_info=True)
        print(f"error: {exc}", file=sys.stderr)
        return 1


if __name__ == "__main__":
    sys.exit(main())
