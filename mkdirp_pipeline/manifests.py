"""Read output-directory manifests produced by generation pipelines."""
from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path
from typing import Any, Iterable, Iterator
import logging
import numbers

import pandas as pd
import pyarrow.parquet as pq

from mkdirp_pipeline.settings import DEFAULT_CHUNK_SIZE

logger = logging.getLogger(__name__)


@dataclass
class ManifestConfig:
    """Configuration for reading a manifest."""

    chunk_size: int = DEFAULT_CHUNK_SIZE
    path_column: str = "dirname"
    mode_column: str | None = None


def require_columns(columns: Iterable[str], config: ManifestConfig) -> None:
    """Fail early when the manifest lacks the columns the resolver reads."""
    present = set(columns)
    missing = [name for name in (config.path_column, config.mode_column) if name and name not in present]
    if missing:
        raise ValueError(f"Manifest is missing required column(s): {', '.join(missing)}")


def _records(frame: pd.DataFrame) -> list[dict[str, Any]]:
    # NaN/NA cells become None so that blank paths resolve to a skip.
    return [
        {column: (None if pd.isna(value) else value) for column, value in row.items()}
        for row in frame.to_dict(orient="records")
    ]


def _mode_text(value: Any) -> Any:
    """Render a mode cell as octal text, the way CSV manifests spell it.

    Parquet keeps integer columns numeric, so a cell holding 755 means
    ``"755"`` (octal), never the decimal value 755.
    """
    if value is None or isinstance(value, (str, bool)):
        return value
    if pd.isna(value):
        return None
    if isinstance(value, float) and value.is_integer():
        return str(int(value))
    if isinstance(value, numbers.Integral):
        return str(int(value))
    return value


def _iter_csv_chunks(manifest: Path, chunk_size: int) -> Iterator[pd.DataFrame]:
    # Mode columns hold octal strings such as "0755"; keep every cell as text.
    yield from pd.read_csv(manifest, chunksize=chunk_size, dtype=str, keep_default_na=False, na_values=[""])


def _iter_parquet_chunks(manifest: Path, chunk_size: int) -> Iterator[pd.DataFrame]:
    parquet_file = pq.ParquetFile(manifest)
    for batch in parquet_file.iter_batches(batch_size=chunk_size):
        yield batch.to_pandas()


def iter_manifest_records(manifest: Path, config: ManifestConfig | None = None) -> Iterator[dict[str, Any]]:
    """Yield manifest rows as dicts, in file order.

    Parameters
    ----------
    manifest:
        ``.csv`` or ``.parquet`` file with one output directory per row.
    config:
        Optional :class:`ManifestConfig`; columns are validated against the
        first chunk.
    """
    cfg = config or ManifestConfig()
    suffix = manifest.suffix.lower()
    if suffix == ".csv":
        chunks = _iter_csv_chunks(manifest, cfg.chunk_size)
    elif suffix in {".parquet", ".pq"}:
        chunks = _iter_parquet_chunks(manifest, cfg.chunk_size)
    else:
        raise ValueError(f"Unsupported manifest format {manifest.suffix!r}; expected .csv or .parquet")

    total_rows = 0
    for chunk_num, chunk in enumerate(chunks, 1):
        if chunk_num == 1:
            require_columns(chunk.columns, cfg)
        if cfg.mode_column:
            chunk = chunk.assign(**{cfg.mode_column: chunk[cfg.mode_column].map(_mode_text)})
        total_rows += len(chunk)
        logger.debug(f"Read manifest chunk {chunk_num} ({len(chunk):,} rows)")
        yield from _records(chunk)

    logger.info(f"Read {total_rows:,} manifest rows from {manifest}")
