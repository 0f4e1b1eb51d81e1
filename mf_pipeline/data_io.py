"""
Data I/O Module

Handles rating and item data loading from delimited text dumps:
- MovieLens u.data (tab) and u.item (pipe)
- MovieTweetings ratings.dat / movies.dat (double colon)
- Generic CSV exports (comma)

Ill-formed lines are dropped, never fatal; the number of skipped lines is
kept on the store for reporting.
"""

import logging
import math
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Optional

import pandas as pd

from .errors import IngestError

logger = logging.getLogger(__name__)

DELIMITERS = {
    "pipe": "|",
    "tab": "\t",
    "double_colon": "::",
    "comma": ",",
}

# MovieLens 100K u.item genre flag columns, in file order
MOVIELENS_GENRES = [
    "unknown", "Action", "Adventure", "Animation", "Children's", "Comedy",
    "Crime", "Documentary", "Drama", "Fantasy", "Film-Noir", "Horror",
    "Musical", "Mystery", "Romance", "Sci-Fi", "Thriller", "War", "Western",
]

_TITLE_YEAR_RE = re.compile(r"^(.*?)\s*\((\d{4})\)\s*$")
_YEAR_RE = re.compile(r"(\d{4})")


@dataclass
class RatingRecord:
    """One observed (user, item, rating) triple."""
    user_id: int
    item_id: int
    rating: float
    timestamp: Optional[int] = None


@dataclass
class ItemRecord:
    """Display metadata for an item. Not consumed by the model."""
    item_id: int
    title: str
    year: Optional[int] = None
    genres: List[str] = field(default_factory=list)


def detect_format(raw_text: str) -> Optional[str]:
    """
    Guess the delimiter format from the first non-blank line.

    Returns:
        One of the DELIMITERS keys, or None if no known delimiter is present
    """
    for line in raw_text.splitlines():
        if not line.strip():
            continue
        if "::" in line:
            return "double_colon"
        if "\t" in line:
            return "tab"
        if "|" in line:
            return "pipe"
        if "," in line:
            return "comma"
        return None
    return None


def parse_rating_line(line: str, delimiter: str) -> Optional[RatingRecord]:
    """
    Parse one rating line.

    Accepts `user<d>item<d>rating` with an optional trailing integer timestamp.

    Returns:
        RatingRecord, or None if the line is malformed
    """
    parts = [p.strip() for p in line.split(delimiter)]
    if len(parts) not in (3, 4):
        return None

    try:
        user_id = int(parts[0])
        item_id = int(parts[1])
        rating = float(parts[2])
        timestamp = int(parts[3]) if len(parts) == 4 else None
    except ValueError:
        return None

    if user_id < 0 or item_id < 0 or not math.isfinite(rating):
        return None

    return RatingRecord(user_id=user_id, item_id=item_id, rating=rating, timestamp=timestamp)


class RatingStore:
    """
    Normalizes delimited rating dumps into a uniform list of RatingRecords.

    The store keeps only the last-ingested snapshot. Table sizes are derived
    from the largest id seen, so ids starting at 1 (MovieLens) leave row 0
    unused rather than being re-indexed.
    """

    def __init__(self):
        self.records: List[RatingRecord] = []
        self.skipped_lines = 0
        self.source_format: Optional[str] = None

    def ingest(self, raw_text: str, fmt: str = "auto") -> List[RatingRecord]:
        """
        Parse raw text into rating records.

        Args:
            raw_text: Full text of the ratings dump
            fmt: 'pipe', 'tab', 'double_colon', 'comma' or 'auto'

        Returns:
            List of parsed RatingRecords (also kept as the store snapshot)

        Raises:
            IngestError: If no valid record could be parsed
        """
        if fmt == "auto":
            fmt = detect_format(raw_text)
            if fmt is None:
                raise IngestError("Could not detect a rating delimiter format")
        if fmt not in DELIMITERS:
            raise IngestError(f"Unknown rating format: {fmt!r}. Expected one of {sorted(DELIMITERS)}")

        delimiter = DELIMITERS[fmt]
        records = []
        skipped = 0
        for line in raw_text.splitlines():
            if not line.strip():
                continue
            record = parse_rating_line(line, delimiter)
            if record is None:
                skipped += 1
                continue
            records.append(record)

        if not records:
            raise IngestError(f"No valid rating records parsed ({skipped} lines skipped, format={fmt})")

        if skipped:
            logger.warning(f"Skipped {skipped} malformed rating lines")

        self.records = records
        self.skipped_lines = skipped
        self.source_format = fmt

        logger.info(f"Ingested {len(records)} ratings from {self.user_count()} user slots "
                    f"and {self.item_count()} item slots (format={fmt})")
        return records

    def ingest_file(self, path, fmt: str = "auto") -> List[RatingRecord]:
        """Read a ratings file from disk and ingest it."""
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Ratings file not found: {path}")
        return self.ingest(path.read_text(encoding="utf-8", errors="replace"), fmt)

    def user_count(self) -> int:
        """Number of user table rows needed: max user id + 1."""
        if not self.records:
            return 0
        return max(r.user_id for r in self.records) + 1

    def item_count(self) -> int:
        """Number of item table rows needed: max item id + 1."""
        if not self.records:
            return 0
        return max(r.item_id for r in self.records) + 1

    def to_frame(self) -> pd.DataFrame:
        """Return the snapshot as a DataFrame with user_id, item_id, rating, timestamp."""
        return pd.DataFrame(
            {
                "user_id": [r.user_id for r in self.records],
                "item_id": [r.item_id for r in self.records],
                "rating": [r.rating for r in self.records],
                "timestamp": [r.timestamp for r in self.records],
            },
            columns=["user_id", "item_id", "rating", "timestamp"],
        )


# ============================================================================
# ITEM CATALOG
# ============================================================================

def _split_title_year(raw_title: str):
    match = _TITLE_YEAR_RE.match(raw_title.strip())
    if match:
        return match.group(1), int(match.group(2))
    return raw_title.strip(), None


def parse_item_line(line: str, fmt: str) -> Optional[ItemRecord]:
    """
    Parse one item line.

    double_colon: `id::Title (Year)::Genre|Genre` (MovieTweetings movies.dat)
    pipe: `id|Title (Year)|release date|video date|url|19 genre flags` (MovieLens u.item)
    """
    if fmt not in ("double_colon", "pipe"):
        raise ValueError(f"Unsupported item format: {fmt}")

    parts = line.split(DELIMITERS[fmt])
    if len(parts) < 2:
        return None
    try:
        item_id = int(parts[0].strip())
    except ValueError:
        return None

    title, year = _split_title_year(parts[1])
    if not title:
        return None
    genres = []

    if fmt == "double_colon":
        if len(parts) >= 3 and parts[2].strip():
            genres = [g for g in parts[2].strip().split("|") if g]
    else:
        if year is None and len(parts) >= 3:
            # Release date looks like 01-Jan-1995
            year_match = _YEAR_RE.search(parts[2])
            if year_match:
                year = int(year_match.group(1))
        flags = parts[-len(MOVIELENS_GENRES):] if len(parts) >= 5 + len(MOVIELENS_GENRES) else []
        genres = [name for name, flag in zip(MOVIELENS_GENRES, flags) if flag.strip() == "1"]

    return ItemRecord(item_id=item_id, title=title, year=year, genres=genres)


def parse_items(raw_text: str, fmt: str = "double_colon") -> List[ItemRecord]:
    """Parse an item catalog dump, skipping malformed lines."""
    items = []
    skipped = 0
    for line in raw_text.splitlines():
        if not line.strip():
            continue
        item = parse_item_line(line, fmt)
        if item is None:
            skipped += 1
            continue
        items.append(item)

    if skipped:
        logger.warning(f"Skipped {skipped} malformed item lines")
    logger.info(f"Parsed {len(items)} items")
    return items


class ItemCatalog:
    """Lookup of item display metadata by id."""

    def __init__(self, items: List[ItemRecord]):
        self.items: Dict[int, ItemRecord] = {item.item_id: item for item in items}

    @classmethod
    def from_file(cls, path, fmt: str = "double_colon") -> "ItemCatalog":
        path = Path(path)
        if not path.exists():
            raise FileNotFoundError(f"Items file not found: {path}")
        return cls(parse_items(path.read_text(encoding="utf-8", errors="replace"), fmt))

    def __len__(self):
        return len(self.items)

    def __contains__(self, item_id):
        return item_id in self.items

    def get(self, item_id: int) -> Optional[ItemRecord]:
        return self.items.get(item_id)

    def title(self, item_id: int) -> str:
        item = self.items.get(item_id)
        return item.title if item else f"Item {item_id}"

    def label(self, item_id: int) -> str:
        """Title with year suffix when known, e.g. 'Heat (1995)'."""
        item = self.items.get(item_id)
        if item is None:
            return f"Item {item_id}"
        return f"{item.title} ({item.year})" if item.year else item.title
