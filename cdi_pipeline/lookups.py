"""
CSR reference lookup.

The CSR (Cruise Summary Report) reference table is a semicolon-separated
file with quoted fields, downloaded once at startup. Each record ties a CSR
reference code to a platform (ship) code and a date range. Lookups answer
"which CSR covers this platform on this date?".
"""

import bisect
import csv
import logging
from dataclasses import dataclass, field
from datetime import date, datetime
from typing import Dict, List, Optional

import requests

from .errors import LookupLoadError


logger = logging.getLogger(__name__)

COLUMN_COUNT = 7
COL_CSR_REFERENCE = 0
COL_PLATFORM_CODE = 4
COL_START_DATE = 5
COL_END_DATE = 6

DELIMITER = ';'
DATE_FORMATS = ('%Y%m%d', '%Y-%m-%d')


@dataclass(frozen=True, order=True)
class IntervalEntry:
    """A half-open date range [start_date, end_date) with its reference code"""
    start_date: date
    end_date: date
    code: str = field(compare=False)

    def __post_init__(self):
        if self.start_date >= self.end_date:
            raise ValueError(
                f"Start date {self.start_date} must be before end date {self.end_date}"
            )

    def contains(self, day: date) -> bool:
        return self.start_date <= day < self.end_date


def parse_date(value: str) -> date:
    """Parse an 8-digit (YYYYMMDD) or ISO (YYYY-MM-DD) date"""
    for date_format in DATE_FORMATS:
        try:
            return datetime.strptime(value, date_format).date()
        except ValueError:
            continue
    raise ValueError(f"Unrecognised date '{value}'")


class IntervalLookup:
    """Per-key sorted interval entries, read-only once loaded"""

    def __init__(self):
        self._entries: Dict[str, List[IntervalEntry]] = {}
        self._starts: Dict[str, List[date]] = {}
        self._lines: Dict[str, List[int]] = {}

    @classmethod
    def load(cls, text: str) -> 'IntervalLookup':
        """
        Build a lookup from the raw reference file contents.

        The first line is a header and is skipped. Blank lines are ignored.

        Raises:
            LookupLoadError: For a line with the wrong number of fields, an
                unparseable or inverted date range, or an entry whose range
                overlaps another entry for the same platform.
        """
        lookup = cls()
        reader = csv.reader(text.splitlines(), delimiter=DELIMITER, quotechar='"')

        for line_number, fields in enumerate(reader, start=1):
            if line_number == 1 or not any(f.strip() for f in fields):
                continue

            if len(fields) != COLUMN_COUNT:
                raise LookupLoadError(
                    line_number,
                    f"Incorrect number of columns (expected {COLUMN_COUNT}, found {len(fields)})"
                )

            fields = [f.strip().strip('"') for f in fields]
            code = fields[COL_CSR_REFERENCE]
            key = fields[COL_PLATFORM_CODE]
            if not key:
                raise LookupLoadError(line_number, "Missing platform code")

            try:
                entry = IntervalEntry(
                    parse_date(fields[COL_START_DATE]),
                    parse_date(fields[COL_END_DATE]),
                    code,
                )
            except ValueError as e:
                raise LookupLoadError(line_number, str(e)) from None

            lookup._insert(key, entry, line_number)

        logger.info(f"Loaded CSR references for {len(lookup._entries)} platforms")
        return lookup

    @classmethod
    def from_url(cls, url: str, timeout: int = 60) -> 'IntervalLookup':
        """Download the reference file from *url* and load it"""
        logger.info(f"Downloading CSR reference data from {url}")
        response = requests.get(url, timeout=timeout)
        response.raise_for_status()

        # The file is UTF-8 whatever charset the server declares
        try:
            text = response.content.decode('utf-8')
        except UnicodeDecodeError as e:
            line_number = response.content.count(b'\n', 0, e.start) + 1
            raise LookupLoadError(line_number, f"Invalid UTF-8: {e.reason}") from e
        return cls.load(text)

    def _insert(self, key: str, entry: IntervalEntry, line_number: int) -> None:
        entries = self._entries.setdefault(key, [])
        starts = self._starts.setdefault(key, [])
        lines = self._lines.setdefault(key, [])

        position = bisect.bisect_right(starts, entry.start_date)

        # Neighbours in start order are the only possible overlaps, since
        # the existing entries never overlap each other.
        if position > 0 and entries[position - 1].end_date > entry.start_date:
            self._overlap(key, entry, entries[position - 1], lines[position - 1], line_number)
        if position < len(entries) and entry.end_date > entries[position].start_date:
            self._overlap(key, entry, entries[position], lines[position], line_number)

        entries.insert(position, entry)
        starts.insert(position, entry.start_date)
        lines.insert(position, line_number)

    @staticmethod
    def _overlap(key, entry, other, other_line, line_number):
        raise LookupLoadError(
            line_number,
            f"Platform {key}: {entry.code} ({entry.start_date} to {entry.end_date}) overlaps "
            f"{other.code} ({other.start_date} to {other.end_date}) from line {other_line}"
        )

    def query(self, key: str, day: date) -> Optional[str]:
        """Return the code whose interval for *key* contains *day*, or None"""
        starts = self._starts.get(key)
        if not starts:
            return None

        position = bisect.bisect_right(starts, day)
        if position == 0:
            return None

        entry = self._entries[key][position - 1]
        return entry.code if entry.contains(day) else None

    def entries(self, key: str) -> List[IntervalEntry]:
        return list(self._entries.get(key, []))

    def __contains__(self, key: str) -> bool:
        return key in self._entries

    def __len__(self) -> int:
        return sum(len(entries) for entries in self._entries.values())
