"""Ensure every output directory listed on the command line or in a manifest exists."""
from __future__ import annotations

import argparse
import logging
import time
from pathlib import Path

from mkdirp_pipeline.manifests import ManifestConfig, iter_manifest_records
from mkdirp_pipeline.settings import DEFAULT_CHUNK_SIZE, DEFAULT_MANIFEST
from mkdirp_pipeline.streaming import DirectoryStage, field_resolver, mkdirp_stream, mkdirp_stream_obj, parse_mode


def parse_args(argv: list[str] | None = None) -> argparse.Namespace:
    parser = argparse.ArgumentParser(description="Create output directories (and missing parents) for a generation run.")
    parser.add_argument(
        "paths",
        nargs="*",
        type=Path,
        help="Directories to ensure. When omitted, directories are read from --manifest.",
    )
    parser.add_argument(
        "--manifest",
        type=Path,
        default=DEFAULT_MANIFEST,
        help="CSV or parquet manifest with one output directory per row.",
    )
    parser.add_argument(
        "--column",
        default="dirname",
        help="Manifest column holding the directory path (default: dirname).",
    )
    parser.add_argument(
        "--mode-column",
        default=None,
        help="Optional manifest column holding octal permission bits per row.",
    )
    parser.add_argument(
        "--mode",
        type=parse_mode,
        default=None,
        help="Octal permission bits for newly created leaf directories, e.g. 755.",
    )
    parser.add_argument(
        "--chunk-size",
        type=int,
        default=DEFAULT_CHUNK_SIZE,
        help="Number of manifest rows to read per chunk.",
    )
    parser.add_argument(
        "--log-level",
        choices=["DEBUG", "INFO", "WARNING", "ERROR"],
        default="INFO",
        help="Set the logging level (default: INFO)",
    )
    return parser.parse_args(argv)


def run(stage: DirectoryStage, items) -> int:
    """Drain ``items`` through ``stage`` and return how many were forwarded."""
    forwarded = 0
    for _ in stage(items):
        forwarded += 1
    return forwarded


def main(argv: list[str] | None = None) -> None:
    args = parse_args(argv)

    logging.basicConfig(
        level=getattr(logging, args.log_level),
        format='[%(asctime)s] %(levelname)s: %(message)s',
        datefmt='%H:%M:%S'
    )
    logger = logging.getLogger(__name__)

    if args.paths:
        logger.info(f"Ensuring {len(args.paths)} director{'y' if len(args.paths) == 1 else 'ies'} from the command line")
        stage = mkdirp_stream(mode=args.mode)
        items = args.paths
    else:
        if not args.manifest.exists():
            logger.error(f"Manifest file does not exist: {args.manifest}")
            return
        config = ManifestConfig(
            chunk_size=args.chunk_size,
            path_column=args.column,
            mode_column=args.mode_column,
        )
        logger.info("Starting output directory creation")
        logger.info(f"Manifest: {args.manifest}")
        logger.info(f"Path column: {config.path_column}")
        if config.mode_column:
            logger.info(f"Mode column: {config.mode_column}")
        logger.info(f"Chunk size: {config.chunk_size:,} rows")
        stage = mkdirp_stream_obj(field_resolver(config.path_column, config.mode_column), mode=args.mode)
        items = iter_manifest_records(args.manifest, config)

    if args.mode is not None:
        logger.info(f"Leaf directory mode: {args.mode:o}")

    start_time = time.time()
    try:
        forwarded = run(stage, items)
    except Exception as e:
        elapsed = time.time() - start_time
        logger.error(f"Directory creation failed after {elapsed:.1f} seconds: {e}")
        raise

    elapsed = time.time() - start_time
    stats = stage.stats
    logger.info(f"Completed in {elapsed:.1f} seconds")
    logger.info(f"Items processed: {forwarded:,}")
    logger.info(f"Directories created: {stats.created:,}")
    if stats.skipped:
        logger.warning(f"Items without a directory: {stats.skipped:,}")


if __name__ == "__main__":  # pragma: no cover - CLI entry point
    main()
