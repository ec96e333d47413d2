"""Pipeline executors.

Two scheduling strategies over the same stage processors:

* ``BatchExecutor`` nests one generator per stage and lets the sink pull
  records through the chain. A stage that is satisfied (TAKE) stops pulling,
  so upstream stages and the input are only read as far as needed.
* ``RecordAtATimeExecutor`` admits one input record, pushes it through every
  stage, and only then admits the next. After the input ends, a flush phase
  lets each stage emit buffered output (COUNT, LITERAL) into the stages
  downstream of it. A satisfied stage raises a stop request on every stage
  upstream of it; stop-requested stages receive no more input and are not
  flushed.

Both must produce identical output for every pipeline and input.
"""

from __future__ import annotations

import logging
from typing import Iterable, Iterator

from .errors import ExecError, PipelineError
from .models import PipelineSpec
from .record import Record
from .stages import StageProcessor, build_processors, source_records
from .trace import FlushTrace, RatTrace, RecordTrace, StageStats

LOGGER = logging.getLogger(__name__)


def _source_stream(spec: PipelineSpec, records: Iterable[Record]) -> Iterator[Record]:
    generated = source_records(spec.source)
    if generated is not None:
        yield from generated
        return

    iterator = iter(records)
    while True:
        try:
            record = next(iterator)
        except StopIteration:
            return
        except PipelineError:
            raise
        except (OSError, ValueError) as error:
            raise ExecError(f"reading input records failed: {error}") from error
        yield record


class BatchExecutor:
    name = "batch"

    def __init__(self) -> None:
        self.stage_stats: list[StageStats] = []

    @staticmethod
    def _count(stream: Iterable[Record], stats: StageStats) -> Iterator[Record]:
        for record in stream:
            stats.output_count += 1
            yield record

    @staticmethod
    def _stage(
        processor: StageProcessor,
        upstream: Iterator[Record],
        stats: StageStats,
    ) -> Iterator[Record]:
        while not processor.satisfied:
            try:
                record = next(upstream)
            except StopIteration:
                break
            stats.input_count += 1
            produced = processor.process(record)
            stats.output_count += len(produced)
            yield from produced
        flushed = processor.flush()
        stats.output_count += len(flushed)
        yield from flushed

    def run(self, spec: PipelineSpec, records: Iterable[Record]) -> Iterator[Record]:
        processors = build_processors(spec.transforms)
        source_stats = StageStats(index=0, name=spec.source.verb)
        self.stage_stats = [source_stats]

        stream: Iterator[Record] = self._count(_source_stream(spec, records), source_stats)
        for index, processor in enumerate(processors, start=1):
            stats = StageStats(index=index, name=processor.name)
            self.stage_stats.append(stats)
            stream = self._stage(processor, stream, stats)
        return stream


class RecordAtATimeExecutor:
    name = "rat"

    def __init__(self, trace: bool = False) -> None:
        self.trace_enabled = trace
        self.trace: RatTrace | None = None

    @staticmethod
    def _request_stop(stop_requested: list[bool], index: int) -> None:
        for upstream in range(index):
            stop_requested[upstream] = True

    @classmethod
    def _push(
        cls,
        processors: list[StageProcessor],
        stop_requested: list[bool],
        start: int,
        records: list[Record],
        points: list[list[Record]] | None,
    ) -> list[Record]:
        current = records
        if points is not None:
            points.append(list(current))
        for index in range(start, len(processors)):
            processor = processors[index]
            produced: list[Record] = []
            for record in current:
                if processor.satisfied:
                    break
                produced.extend(processor.process(record))
            if processor.satisfied:
                cls._request_stop(stop_requested, index)
            if points is not None:
                points.append(produced)
            current = produced
        return current

    def run(self, spec: PipelineSpec, records: Iterable[Record]) -> Iterator[Record]:
        processors = build_processors(spec.transforms)
        trace = RatTrace(stage_names=[processor.name for processor in processors]) if self.trace_enabled else None
        self.trace = trace
        return self._run(processors, _source_stream(spec, records), trace)

    def _run(
        self,
        processors: list[StageProcessor],
        source: Iterator[Record],
        trace: RatTrace | None,
    ) -> Iterator[Record]:
        stop_requested = [False] * len(processors)
        for index, processor in enumerate(processors):
            if processor.satisfied:
                self._request_stop(stop_requested, index)

        while not (stop_requested[0] or processors[0].satisfied):
            try:
                record = next(source)
            except StopIteration:
                break
            points: list[list[Record]] | None = [] if trace is not None else None
            output = self._push(processors, stop_requested, 0, [record], points)
            if trace is not None and points is not None:
                trace.record_traces.append(RecordTrace(pipe_points=points))
            yield from output

        for index, processor in enumerate(processors):
            if stop_requested[index]:
                continue
            flushed = processor.flush()
            if not flushed:
                continue
            points = [] if trace is not None else None
            output = self._push(processors, stop_requested, index + 1, flushed, points)
            if trace is not None and points is not None:
                trace.flush_traces.append(FlushTrace(stage_index=index, pipe_points=points))
            yield from output


EXECUTORS = {
    BatchExecutor.name: BatchExecutor,
    RecordAtATimeExecutor.name: RecordAtATimeExecutor,
}


def create_executor(strategy: str, trace: bool = False) -> BatchExecutor | RecordAtATimeExecutor:
    if strategy not in EXECUTORS:
        allowed = ", ".join(sorted(EXECUTORS))
        raise ValueError(f"Unsupported executor '{strategy}'. Allowed: {allowed}")
    if strategy == RecordAtATimeExecutor.name:
        return RecordAtATimeExecutor(trace=trace)
    return BatchExecutor()


def execute(spec: PipelineSpec, records: Iterable[Record], strategy: str = "batch") -> list[Record]:
    """Run one pipeline block and return its output records."""
    executor = create_executor(strategy)
    output = list(executor.run(spec, records))
    LOGGER.debug(
        "Pipeline at line %s (%s) produced %s record(s) with the %s executor",
        spec.line_number,
        " | ".join(spec.stage_names),
        len(output),
        strategy,
    )
    return output


def run_pipelines(
    specs: list[PipelineSpec],
    records: Iterable[Record],
    strategy: str = "batch",
) -> list[Record]:
    """Run blocks in order, feeding each block's output to the next one."""
    current: Iterable[Record] = records
    for spec in specs:
        current = execute(spec, current, strategy)
    return list(current)
