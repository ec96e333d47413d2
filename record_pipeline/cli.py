from __future__ import annotations

import argparse
import logging
import sys
from dataclasses import asdict
from pathlib import Path
from typing import Any, Iterable, Iterator, TextIO

from .config import load_settings
from .dsl_parser import parse_pipelines
from .errors import PipelineError
from .executors import EXECUTORS, BatchExecutor, RecordAtATimeExecutor, create_executor
from .models import PipelineSpec
from .record import Record
from .trace import save_jsonl, trace_to_rows

LOGGER = logging.getLogger(__name__)


def _setup_logging(verbose: bool) -> None:
    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s - %(message)s",
    )


def read_records(lines: Iterable[str], strict: bool = True) -> Iterator[Record]:
    """Turn input lines into records; empty lines are skipped."""
    for line in lines:
        if line.rstrip("\r\n") == "":
            continue
        yield Record.from_text(line, strict=strict)


def write_records(records: Iterable[Record], handle: TextIO) -> int:
    written = 0
    for record in records:
        handle.write(record.rstrip())
        handle.write("\n")
        written += 1
    return written


def _counted(records: Iterable[Record], counter: list[int]) -> Iterator[Record]:
    for record in records:
        counter[0] += 1
        yield record


def _execute_blocks(
    specs: list[PipelineSpec],
    records: Iterable[Record],
    executor_name: str,
    collect_trace: bool,
) -> tuple[list[Record], list[dict[str, Any]]]:
    rows: list[dict[str, Any]] = []
    current: Iterable[Record] = records
    for block_number, spec in enumerate(specs, start=1):
        executor = create_executor(executor_name, trace=collect_trace)
        current = list(executor.run(spec, current))

        if isinstance(executor, BatchExecutor):
            for stats in executor.stage_stats:
                LOGGER.debug(
                    "Block %s stage %s %s: %s in -> %s out",
                    block_number,
                    stats.index,
                    stats.name,
                    stats.input_count,
                    stats.output_count,
                )
                if collect_trace:
                    rows.append({"block": block_number, "kind": "stage", **asdict(stats)})
        elif isinstance(executor, RecordAtATimeExecutor) and executor.trace is not None:
            rows.extend({"block": block_number, **row} for row in trace_to_rows(executor.trace))
    return list(current), rows


def _run_command(args: argparse.Namespace) -> int:
    settings = load_settings(
        config_path=Path(args.config) if args.config else None,
        executor=args.executor,
        input_encoding=args.input_encoding,
        strict_width=False if args.truncate else None,
    )
    pipeline_path = Path(args.pipeline)
    specs = parse_pipelines(pipeline_path.read_text(encoding="utf-8"))

    LOGGER.debug("Pipeline: %s", pipeline_path)
    LOGGER.debug("Input:    %s", "(stdin)" if args.input == "-" else args.input)
    LOGGER.debug("Output:   %s", args.output or "(stdout)")
    LOGGER.debug("Executor: %s", settings.executor)

    input_count = [0]
    if args.input == "-":
        records = _counted(read_records(sys.stdin, strict=settings.strict_width), input_count)
        output, rows = _execute_blocks(specs, records, settings.executor, bool(args.trace_jsonl))
    else:
        with Path(args.input).open("r", encoding=settings.input_encoding, newline="") as handle:
            records = _counted(read_records(handle, strict=settings.strict_width), input_count)
            output, rows = _execute_blocks(specs, records, settings.executor, bool(args.trace_jsonl))

    if args.output:
        output_path = Path(args.output)
        output_path.parent.mkdir(parents=True, exist_ok=True)
        with output_path.open("w", encoding=settings.output_encoding, newline="\n") as handle:
            write_records(output, handle)
    else:
        write_records(output, sys.stdout)

    if args.trace_jsonl:
        save_jsonl(rows=rows, output_path=Path(args.trace_jsonl))
        LOGGER.info("Trace exported: %s (%s rows)", args.trace_jsonl, len(rows))

    LOGGER.info("Records: %s in -> %s out", input_count[0], len(output))
    return 0


def _check_command(args: argparse.Namespace) -> int:
    specs = parse_pipelines(Path(args.pipeline).read_text(encoding="utf-8"))
    for spec in specs:
        sys.stdout.write(f"line {spec.line_number}: {' | '.join(spec.stage_names)}\n")
    LOGGER.info("%s pipeline block(s) OK", len(specs))
    return 0


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="record-pipeline",
        description="Run CMS-style PIPE specifications over 80-column fixed-width records.",
    )
    parser.add_argument("--verbose", action="store_true", help="Enable debug logs.")

    subparsers = parser.add_subparsers(dest="command", required=True)

    run = subparsers.add_parser("run", help="Run a pipeline file against input records.")
    run.add_argument("pipeline", help="Pipeline definition file (.pipe).")
    run.add_argument("input", nargs="?", default="-", help="Input records file or '-' for stdin.")
    run.add_argument("-o", "--output", default=None, help="Write output to a file instead of stdout.")
    run.add_argument("--executor", default=None, choices=sorted(EXECUTORS), help="Execution strategy.")
    run.add_argument("--input-encoding", default=None, help="Input file encoding (default: ascii).")
    run.add_argument(
        "--truncate",
        action="store_true",
        help="Truncate input lines longer than 80 characters instead of rejecting them.",
    )
    run.add_argument("--trace-jsonl", default=None, help="Write an execution trace as JSONL.")
    run.add_argument("--config", default=None, help="Settings file (TOML).")
    run.set_defaults(handler=_run_command)

    check = subparsers.add_parser("check", help="Parse a pipeline file and list its blocks.")
    check.add_argument("pipeline", help="Pipeline definition file (.pipe).")
    check.set_defaults(handler=_check_command)

    return parser


def main(argv: list[str] | None = None) -> int:
    parser = build_parser()
    args = parser.parse_args(argv)
    _setup_logging(verbose=args.verbose)
    try:
        return args.handler(args)
    except (PipelineError, OSError, ValueError) as error:
        sys.stderr.write(f"error: {error}\n")
        return 1


if __name__ == "__main__":
    raise SystemExit(main())
