"""Fixed-width record type.

A record is one punch-card line: exactly ``RECORD_WIDTH`` characters,
right-padded with spaces. Positions are 0-based.
"""

from __future__ import annotations

from dataclasses import dataclass

from .errors import FieldRangeError, RecordWidthError

RECORD_WIDTH = 80


def check_range(pos: int, length: int, width: int = RECORD_WIDTH) -> None:
    if pos < 0:
        raise FieldRangeError(f"field position must be >= 0, got {pos}")
    if length < 1:
        raise FieldRangeError(f"field length must be >= 1, got {length}")
    if pos + length > width:
        raise FieldRangeError(
            f"field {pos},{length} ends at {pos + length}, beyond record width {width}"
        )


def _fit(value: str, length: int) -> str:
    return value[:length].ljust(length)


@dataclass(frozen=True)
class Record:
    text: str

    def __post_init__(self) -> None:
        if len(self.text) != RECORD_WIDTH:
            raise RecordWidthError(
                f"record text must be exactly {RECORD_WIDTH} characters, got {len(self.text)}"
            )

    @classmethod
    def from_text(cls, line: str, strict: bool = True) -> "Record":
        """Build a record from one input line.

        Shorter lines are padded with spaces. Longer lines raise
        ``RecordWidthError`` unless ``strict`` is false, in which case they
        are truncated to the record width.
        """
        raw = line.rstrip("\r\n")
        if len(raw) > RECORD_WIDTH and strict:
            raise RecordWidthError(
                f"input line is {len(raw)} characters, maximum is {RECORD_WIDTH}: {raw[:20]!r}..."
            )
        return cls(_fit(raw, RECORD_WIDTH))

    @classmethod
    def fit(cls, text: str) -> "Record":
        """Build a record from stage-generated text, truncating when too long."""
        return cls(_fit(text, RECORD_WIDTH))

    @classmethod
    def blank(cls) -> "Record":
        return cls(" " * RECORD_WIDTH)

    def __str__(self) -> str:
        return self.text

    def field(self, pos: int, length: int) -> str:
        check_range(pos, length)
        return self.text[pos : pos + length]

    def field_eq(self, pos: int, length: int, value: str) -> bool:
        return self.field(pos, length) == _fit(value, length)

    def field_contains(self, pos: int, length: int, pattern: str) -> bool:
        return pattern in self.field(pos, length)

    def with_field_replaced(self, pos: int, length: int, value: str) -> "Record":
        check_range(pos, length)
        return Record(self.text[:pos] + _fit(value, length) + self.text[pos + length :])

    def rstrip(self) -> str:
        """Record text with the trailing pad removed, as written to the sink."""
        return self.text.rstrip(" ")
