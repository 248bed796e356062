import os
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Sequence, Tuple

import pandas as pd


logger = logging.getLogger(__name__)

REQUIRED_FIELDS: Tuple[str, ...] = ("id", "name", "category", "tasks")
RENDERED_FIELDS: Tuple[Tuple[str, str], ...] = (
    ("ID", "id"),
    ("Name", "name"),
    ("Category", "category"),
    ("Tasks", "tasks"),
)


@dataclass(frozen=True)
class Dataset:
    records: Tuple[Dict[str, str], ...] = ()
    text: str = ""
    source: str = field(default="", compare=False)

    def __len__(self) -> int:
        return len(self.records)


def _is_complete(row: Dict[str, str]) -> bool:
    return all(str(row.get(name) or "").strip() for name in REQUIRED_FIELDS)


def filter_records(rows: Sequence[Dict[str, str]]) -> List[Dict[str, str]]:
    """Keep only rows that carry a non-empty value for every required field."""
    return [row for row in rows if _is_complete(row)]


def render_dataset(records: Sequence[Dict[str, str]]) -> str:
    lines = []
    for row in records:
        parts = [f"{label}: {str(row.get(key, '')).strip()}" for label, key in RENDERED_FIELDS]
        lines.append(" | ".join(parts))
    return "\n".join(lines)


def load_dataset(path: str) -> Dataset:
    """Read a CSV file into a :class:`Dataset`.

    Rows missing any of ``REQUIRED_FIELDS`` are dropped. A missing or
    unparseable file is logged and yields an empty dataset so the rest of
    the service keeps working.
    """
    if not os.path.exists(path):
        logger.error("Dataset file not found: %s", path)
        return Dataset(source=path)

    try:
        df = pd.read_csv(path, dtype=str, keep_default_na=False, skipinitialspace=True)
    except (OSError, UnicodeDecodeError, pd.errors.ParserError, pd.errors.EmptyDataError) as e:
        logger.error("Failed to parse dataset %s: %s", path, e)
        return Dataset(source=path)

    # short rows come back as NaN even with keep_default_na=False
    df = df.fillna("")
    df.columns = [str(c).strip() for c in df.columns]
    missing_cols = [c for c in REQUIRED_FIELDS if c not in df.columns]
    if missing_cols:
        logger.warning("Dataset %s has no column(s) %s; every row will be dropped", path, missing_cols)

    rows = [{k: str(v) for k, v in row.items()} for row in df.to_dict(orient="records")]
    records = filter_records(rows)
    dropped = len(rows) - len(records)
    if dropped:
        logger.info("Dropped %d incomplete row(s) from %s", dropped, path)
    logger.info("Loaded %d record(s) from %s", len(records), path)

    return Dataset(records=tuple(records), text=render_dataset(records), source=path)
