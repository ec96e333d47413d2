"""Stage semantics shared by both executors.

Each verb has one processor class. A processor sees one record at a time
through ``process`` and the end of the stream through ``flush``; it never
knows which executor is driving it. The executors only decide *when* to call
these methods.
"""

from __future__ import annotations

from typing import Callable

from .models import (
    ChangeStage,
    ConsoleStage,
    CountStage,
    DuplicateStage,
    FilterStage,
    HoleStage,
    LiteralStage,
    LocateStage,
    LowerStage,
    ReverseStage,
    SelectStage,
    SkipStage,
    StageDescriptor,
    TakeStage,
    UpperStage,
)
from .record import Record


class StageProcessor:
    """Per-run instance of one stage."""

    name = "STAGE"

    @property
    def satisfied(self) -> bool:
        """True once the stage will not accept any further input."""
        return False

    def process(self, record: Record) -> list[Record]:
        raise NotImplementedError

    def flush(self) -> list[Record]:
        return []


class PassThrough(StageProcessor):
    name = "CONSOLE"

    def process(self, record: Record) -> list[Record]:
        return [record]


class Discard(StageProcessor):
    name = "HOLE"

    def process(self, record: Record) -> list[Record]:
        return []


class FieldFilter(StageProcessor):
    name = "FILTER"

    def __init__(self, stage: FilterStage) -> None:
        self.pos = stage.window.pos
        self.length = stage.window.length
        self.value = stage.value
        self.keep_equal = stage.op == "="

    def process(self, record: Record) -> list[Record]:
        if record.field_eq(self.pos, self.length, self.value) == self.keep_equal:
            return [record]
        return []


class FieldSelect(StageProcessor):
    name = "SELECT"

    def __init__(self, stage: SelectStage) -> None:
        self.fields = [(item.src, item.length, item.dest) for item in stage.fields]

    def process(self, record: Record) -> list[Record]:
        output = Record.blank()
        for src, length, dest in self.fields:
            output = output.with_field_replaced(dest, length, record.field(src, length))
        return [output]


class Take(StageProcessor):
    name = "TAKE"

    def __init__(self, stage: TakeStage) -> None:
        self.limit = stage.count
        self.seen = 0

    @property
    def satisfied(self) -> bool:
        return self.seen >= self.limit

    def process(self, record: Record) -> list[Record]:
        if self.satisfied:
            return []
        self.seen += 1
        return [record]


class Skip(StageProcessor):
    name = "SKIP"

    def __init__(self, stage: SkipStage) -> None:
        self.limit = stage.count
        self.seen = 0

    def process(self, record: Record) -> list[Record]:
        if self.seen < self.limit:
            self.seen += 1
            return []
        return [record]


class Locate(StageProcessor):
    def __init__(self, stage: LocateStage) -> None:
        self.name = stage.verb
        self.pattern = stage.pattern
        self.window = stage.window
        self.negate = stage.negate

    def _matches(self, record: Record) -> bool:
        if self.window is None:
            return self.pattern in record.text
        return record.field_contains(self.window.pos, self.window.length, self.pattern)

    def process(self, record: Record) -> list[Record]:
        if self._matches(record) != self.negate:
            return [record]
        return []


class Change(StageProcessor):
    """Replace every non-overlapping occurrence, left to right."""

    name = "CHANGE"

    def __init__(self, stage: ChangeStage) -> None:
        self.old = stage.old
        self.new = stage.new

    def process(self, record: Record) -> list[Record]:
        return [Record.fit(record.text.replace(self.old, self.new))]


class AppendLiteral(StageProcessor):
    """Pass input through, then add the literal record at end of stream."""

    name = "LITERAL"

    def __init__(self, stage: LiteralStage) -> None:
        self.record = Record.fit(stage.text)

    def process(self, record: Record) -> list[Record]:
        return [record]

    def flush(self) -> list[Record]:
        return [self.record]


class MapText(StageProcessor):
    def __init__(self, name: str, transform: Callable[[str], str]) -> None:
        self.name = name
        self.transform = transform

    def process(self, record: Record) -> list[Record]:
        return [Record.fit(self.transform(record.text))]


def _reverse(text: str) -> str:
    return text.rstrip(" ")[::-1]


class Duplicate(StageProcessor):
    name = "DUPLICATE"

    def __init__(self, stage: DuplicateStage) -> None:
        self.copies = stage.count

    def process(self, record: Record) -> list[Record]:
        return [record] * self.copies


class Count(StageProcessor):
    name = "COUNT"

    def __init__(self) -> None:
        self.count = 0

    def process(self, record: Record) -> list[Record]:
        self.count += 1
        return []

    def flush(self) -> list[Record]:
        return [Record.fit(f"COUNT={self.count}")]


_PROCESSOR_FACTORIES: dict[type, Callable[[StageDescriptor], StageProcessor]] = {
    ConsoleStage: lambda stage: PassThrough(),
    HoleStage: lambda stage: Discard(),
    FilterStage: FieldFilter,
    SelectStage: FieldSelect,
    TakeStage: Take,
    SkipStage: Skip,
    LocateStage: Locate,
    ChangeStage: Change,
    LiteralStage: AppendLiteral,
    UpperStage: lambda stage: MapText("UPPER", str.upper),
    LowerStage: lambda stage: MapText("LOWER", str.lower),
    ReverseStage: lambda stage: MapText("REVERSE", _reverse),
    DuplicateStage: Duplicate,
    CountStage: lambda stage: Count(),
}


def build_processor(stage: StageDescriptor) -> StageProcessor:
    """Create a fresh processor for a non-source position in the pipeline."""
    factory = _PROCESSOR_FACTORIES.get(type(stage))
    if factory is None:
        raise TypeError(f"no processor registered for stage descriptor {type(stage).__name__}")
    return factory(stage)


def build_processors(stages: list[StageDescriptor]) -> list[StageProcessor]:
    return [build_processor(stage) for stage in stages]


def source_records(source: StageDescriptor) -> list[Record] | None:
    """Records generated by a source stage, or None when it reads external input."""
    if isinstance(source, ConsoleStage):
        return None
    if isinstance(source, HoleStage):
        return []
    if isinstance(source, LiteralStage):
        return [Record.fit(source.text)]
    raise TypeError(f"{source.verb} cannot be used as a source stage")
