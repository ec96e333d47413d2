"""Execution traces for inspecting how records move through a pipeline."""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

from .record import Record


@dataclass
class StageStats:
    index: int
    name: str
    input_count: int = 0
    output_count: int = 0


@dataclass
class RecordTrace:
    """One admitted record's journey.

    ``pipe_points[0]`` holds the admitted record and ``pipe_points[i + 1]``
    the records that stage ``i`` emitted for it.
    """

    pipe_points: list[list[Record]] = field(default_factory=list)


@dataclass
class FlushTrace:
    stage_index: int
    pipe_points: list[list[Record]] = field(default_factory=list)


@dataclass
class RatTrace:
    stage_names: list[str]
    record_traces: list[RecordTrace] = field(default_factory=list)
    flush_traces: list[FlushTrace] = field(default_factory=list)


def _points(pipe_points: list[list[Record]]) -> list[list[str]]:
    return [[record.rstrip() for record in point] for point in pipe_points]


def trace_to_rows(trace: RatTrace) -> list[dict[str, Any]]:
    rows: list[dict[str, Any]] = []
    for number, record_trace in enumerate(trace.record_traces, start=1):
        rows.append(
            {
                "kind": "record",
                "record_number": number,
                "stage_names": trace.stage_names,
                "pipe_points": _points(record_trace.pipe_points),
            }
        )
    for flush_trace in trace.flush_traces:
        rows.append(
            {
                "kind": "flush",
                "stage_index": flush_trace.stage_index,
                "stage_name": trace.stage_names[flush_trace.stage_index],
                "pipe_points": _points(flush_trace.pipe_points),
            }
        )
    return rows


def save_jsonl(rows: list[dict[str, Any]], output_path: Path) -> None:
    output_path.parent.mkdir(parents=True, exist_ok=True)
    with output_path.open("w", encoding="utf-8") as handle:
        for row in rows:
            handle.write(json.dumps(row, ensure_ascii=False, default=str))
            handle.write("\n")
