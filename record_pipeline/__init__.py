"""CMS-style pipelines over 80-column fixed-width records."""

from .dsl_parser import parse_pipeline, parse_pipelines, parse_stage
from .errors import ExecError, FieldRangeError, ParseError, PipelineError, RecordWidthError
from .executors import (
    BatchExecutor,
    RecordAtATimeExecutor,
    create_executor,
    execute,
    run_pipelines,
)
from .models import PipelineSpec, StageDescriptor
from .record import RECORD_WIDTH, Record

__all__ = [
    "BatchExecutor",
    "ExecError",
    "FieldRangeError",
    "ParseError",
    "PipelineError",
    "PipelineSpec",
    "RECORD_WIDTH",
    "Record",
    "RecordAtATimeExecutor",
    "RecordWidthError",
    "StageDescriptor",
    "create_executor",
    "execute",
    "parse_pipeline",
    "parse_pipelines",
    "parse_stage",
    "run_pipelines",
]
