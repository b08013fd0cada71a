"""
Cocina Druid Retriever - application entry point.

Retrieves cocina for druids from the Dor Services App, archives the
responses and records each attempt in the database.
"""

from __future__ import annotations

import argparse
import logging
import os
import sys

from cocina_retriever.config import check_host_resources, load_config, validate_config
from cocina_retriever.db import (
    DruidRegistry,
    create_db_engine,
    init_db,
    make_session_factory,
)
from cocina_retriever.druid import is_valid_druid
from cocina_retriever.retriever import CocinaRetriever
from cocina_retriever.version import VERSION


def setup_logging(config: dict) -> None:
    level_str = config.get("logging", {}).get("level", "INFO").upper()
    level = getattr(logging, level_str, logging.INFO)

    handlers: list[logging.Handler] = [logging.StreamHandler(sys.stdout)]

    log_file = config.get("logging", {}).get("file", "")
    if log_file:
        try:
            log_dir = os.path.dirname(log_file)
            if log_dir:
                os.makedirs(log_dir, exist_ok=True)
            handlers.append(logging.FileHandler(log_file))
        except OSError as exc:
            logging.getLogger(__name__).warning(
                "Could not open log file %s: %s. Logging to stdout only.",
                log_file,
                exc,
            )

    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)-8s %(name)s: %(message)s",
        datefmt="%Y-%m-%dT%H:%M:%SZ",
        handlers=handlers,
        force=True,
    )


def read_druid_file(path: str) -> list[str]:
    """Read druids from a file, one per line. Blank lines and # comments are skipped."""
    logger = logging.getLogger(__name__)
    druids = []
    with open(path, "r", encoding="utf-8") as fh:
        for lineno, line in enumerate(fh, start=1):
            value = line.split("#", 1)[0].strip()
            if not value:
                continue
            if not is_valid_druid(value):
                logger.warning("Skipping invalid druid %r at %s:%d", value, path, lineno)
                continue
            druids.append(value)
    return druids


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="cocina-retriever",
        description="Retrieve cocina for druids from the Dor Services App.",
    )
    parser.add_argument("--config", help="Path to YAML config file.")
    parser.add_argument("--version", action="version", version=f"%(prog)s {VERSION}")
    sub = parser.add_subparsers(dest="command", required=True)

    unseen = sub.add_parser(
        "retrieve-unseen", help="Retrieve druids with no successful attempt yet."
    )
    unseen.add_argument(
        "--max",
        type=int,
        dest="max_to_retrieve",
        help="Maximum number of druids to try (default from config).",
    )

    retrieve = sub.add_parser("retrieve", help="Retrieve specific druids.")
    retrieve.add_argument("druids", nargs="+")

    load = sub.add_parser("load-druids", help="Register druids listed in a file.")
    load.add_argument("path")

    sub.add_parser("init-db", help="Create database tables.")
    return parser


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)

    config = load_config(args.config)
    setup_logging(config)

    logger = logging.getLogger(__name__)
    logger.info("Cocina Druid Retriever %s starting up.", VERSION)

    errors = validate_config(config)
    if errors:
        for err in errors:
            logger.error("Config validation: %s", err)
        return 2

    engine = create_db_engine(config["database"]["url"])
    init_db(engine)
    session_factory = make_session_factory(engine)

    try:
        if args.command == "init-db":
            logger.info("Database ready at %s", engine.url)
            return 0

        if args.command == "load-druids":
            try:
                druids = read_druid_file(args.path)
            except OSError as exc:
                logger.error("Could not read druid file %s: %s", args.path, exc)
                return 1
            with session_factory() as session:
                created = DruidRegistry(session).register(druids)
            logger.info(
                "Loaded %d druid(s) from %s (%d new).", len(druids), args.path, created
            )
            return 0

        check_host_resources(config)
        with session_factory() as session:
            retriever = CocinaRetriever.from_config(config, session)
            if args.command == "retrieve":
                retriever.try_retrieving(args.druids)
            else:
                retriever.try_retrieving_unseen_druids(args.max_to_retrieve)
        return 0
    finally:
        engine.dispose()
        logger.info("Cocina Druid Retriever finished.")


if __name__ == "__main__":
    sys.exit(main())
