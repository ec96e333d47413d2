from __future__ import annotations


class PipelineError(RuntimeError):
    """Base class for every error raised by the pipeline core."""


class ParseError(PipelineError):
    def __init__(self, message: str, line_number: int = 0, line: str = "") -> None:
        self.message = message
        self.line_number = line_number
        self.line = line
        if line_number:
            super().__init__(f"Line {line_number}: {message}")
        else:
            super().__init__(message)


class FieldRangeError(PipelineError, ValueError):
    pass


class RecordWidthError(PipelineError, ValueError):
    pass


class ExecError(PipelineError):
    pass
