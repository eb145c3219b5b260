"""
Document numbering rules.

Pure helpers behind SequenceService: how a series is named, bucketed and
formatted, and how an existing number's suffix is read back.

    INV-001            global series
    POS-20240101-001   daily series (one counter per calendar day)

Suffixes are zero-padded to three digits and simply grow wider past 999.
"""

import re
from dataclasses import dataclass
from datetime import date
from enum import Enum


class SeriesBucket(str, Enum):
    """How a series partitions its counter."""

    GLOBAL = "global"
    DAILY = "daily"


@dataclass(frozen=True)
class DocumentSeries:
    """
    A named numbering series.

    Attributes:
        key: Logical document kind (``INVOICE``, ``JOURNAL``, ...).
        prefix: Printed prefix (``INV``, ``JV``, ...).
        bucket: GLOBAL or DAILY counter partitioning.
        pad_width: Minimum digits in the numeric suffix.
    """

    key: str
    prefix: str
    bucket: SeriesBucket = SeriesBucket.GLOBAL
    pad_width: int = 3

    def __post_init__(self) -> None:
        if not self.prefix or not re.fullmatch(r"[A-Z0-9]+", self.prefix):
            raise ValueError(f"Series prefix must be upper-case alphanumeric: {self.prefix!r}")
        if self.pad_width < 1:
            raise ValueError("pad_width must be positive")

    def stem(self, on_date: date) -> str:
        """Number text before the suffix, including the trailing hyphen."""
        if self.bucket == SeriesBucket.DAILY:
            return f"{self.prefix}-{on_date:%Y%m%d}-"
        return f"{self.prefix}-"

    def counter_name(self, on_date: date) -> str:
        """Name of the counter row backing this series (and day)."""
        return f"series:{self.stem(on_date).rstrip('-')}"

    def format(self, on_date: date, value: int) -> str:
        return f"{self.stem(on_date)}{value:0{self.pad_width}d}"


def parse_sequence_suffix(number: str | None, stem: str) -> int:
    """
    Read the numeric suffix of ``number`` issued under ``stem``.

    Anything unreadable counts as 0 so issuance is never blocked by a
    hand-edited or legacy number.
    """
    if not number or not number.startswith(stem):
        return 0
    suffix = number[len(stem):]
    if not (suffix.isascii() and suffix.isdigit()):
        return 0
    return int(suffix)


INVOICE_SERIES = DocumentSeries("INVOICE", "INV")
PURCHASE_INVOICE_SERIES = DocumentSeries("PURCHASE_INVOICE", "PINV")
JOURNAL_SERIES = DocumentSeries("JOURNAL", "JV")
EXPENSE_SERIES = DocumentSeries("EXPENSE", "EXP")
PAYMENT_SERIES = DocumentSeries("PAYMENT", "PAY")
CREDIT_NOTE_SERIES = DocumentSeries("CREDIT_NOTE", "CN")
DEBIT_NOTE_SERIES = DocumentSeries("DEBIT_NOTE", "DN")
POS_SESSION_SERIES = DocumentSeries("POS_SESSION", "POS", SeriesBucket.DAILY)

DEFAULT_SERIES: dict[str, DocumentSeries] = {
    s.key: s
    for s in (
        INVOICE_SERIES,
        PURCHASE_INVOICE_SERIES,
        JOURNAL_SERIES,
        EXPENSE_SERIES,
        PAYMENT_SERIES,
        CREDIT_NOTE_SERIES,
        DEBIT_NOTE_SERIES,
        POS_SESSION_SERIES,
    )
}
