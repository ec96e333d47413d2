"""Parser for the PIPE command language.

    PIPE CONSOLE
    | FILTER 18,10 = "SALES"
    | SELECT 0,8,0; 28,8,8
    | CONSOLE
    ?

Only whole-line comments exist: a ``#`` later in a stage line is data.
A ``?`` closes the current block, alone on its line or at the end of a
stage line (``| CONSOLE ?``).
Strings are delimited CMS-style: the first non-blank character is the
delimiter and the string runs to its next occurrence, so ``"SALES"``,
``/SALES/`` and ``.SALES.`` are equivalent.

LITERAL is the exception. Its text is the rest of the line, and only a
``"`` pair is removed from around it: ``LITERAL /X/`` yields ``/X/``, so
headers such as ``LITERAL === END ===`` or ``LITERAL #1`` need no quoting.
"""

from __future__ import annotations

import logging
import re
from dataclasses import dataclass, field
from typing import Callable

from pydantic import ValidationError

from .errors import ParseError
from .models import (
    ChangeStage,
    ConsoleStage,
    CountStage,
    DuplicateStage,
    FieldWindow,
    FilterStage,
    HoleStage,
    LiteralStage,
    LocateStage,
    LowerStage,
    PipelineSpec,
    ReverseStage,
    SelectField,
    SelectStage,
    SkipStage,
    StageDescriptor,
    TakeStage,
    UpperStage,
)

LOGGER = logging.getLogger(__name__)

_DIGITS_RE = re.compile(r"[0-9]+")
_FILTER_RE = re.compile(r"^(?P<window>[^=!]*?)\s*(?P<op>!=|=)\s*(?P<value>.*)$")
_WINDOW_PREFIX_RE = re.compile(r"^([0-9]+)\s*,\s*([0-9]+)")


@dataclass
class _Block:
    line_number: int
    stages: list[StageDescriptor] = field(default_factory=list)


def _parse_int(token: str, what: str, verb: str) -> int:
    cleaned = token.strip()
    if not _DIGITS_RE.fullmatch(cleaned):
        raise ParseError(f"{verb}: invalid {what} {cleaned!r} (expected a non-negative integer)")
    return int(cleaned)


def _parse_window(text: str, verb: str) -> FieldWindow:
    parts = text.split(",")
    if len(parts) != 2:
        raise ParseError(f"{verb} expects a field as pos,len, got {text.strip()!r}")
    return FieldWindow(
        pos=_parse_int(parts[0], "position", verb),
        length=_parse_int(parts[1], "length", verb),
    )


def _take_delimited(text: str, verb: str) -> tuple[str, str]:
    """Return (string, remainder) for the delimited string at the start of ``text``."""
    stripped = text.lstrip()
    if not stripped:
        raise ParseError(f'{verb} expects a delimited string such as "text"')
    delimiter = stripped[0]
    if delimiter.isalnum() or delimiter.isspace():
        raise ParseError(
            f"{verb}: string must start with a delimiter character such as '\"', got {delimiter!r}"
        )
    end = stripped.find(delimiter, 1)
    if end == -1:
        raise ParseError(f"{verb}: unterminated string, missing closing {delimiter!r}")
    return stripped[1:end], stripped[end + 1 :]


def _expect_end(remainder: str, verb: str) -> None:
    if remainder.strip():
        raise ParseError(f"{verb}: unexpected text after string: {remainder.strip()!r}")


def _no_arguments(factory: Callable[[], StageDescriptor], verb: str) -> Callable[[str], StageDescriptor]:
    def parse(args: str) -> StageDescriptor:
        if args.strip():
            raise ParseError(f"{verb} takes no arguments, got {args.strip()!r}")
        return factory()

    return parse


def _parse_filter(args: str) -> StageDescriptor:
    match = _FILTER_RE.match(args.strip())
    if not match:
        raise ParseError('FILTER expects pos,len = "value" or pos,len != "value"')
    window = _parse_window(match.group("window"), "FILTER")
    value, remainder = _take_delimited(match.group("value"), "FILTER")
    _expect_end(remainder, "FILTER")
    return FilterStage(window=window, op=match.group("op"), value=value)


def _parse_select(args: str) -> StageDescriptor:
    fields: list[SelectField] = []
    for segment in args.split(";"):
        spec = segment.strip()
        if not spec:
            continue
        parts = spec.split(",")
        if len(parts) != 3:
            raise ParseError(f"SELECT field {spec!r} requires src,len,dest")
        fields.append(
            SelectField(
                src=_parse_int(parts[0], "source position", "SELECT"),
                length=_parse_int(parts[1], "length", "SELECT"),
                dest=_parse_int(parts[2], "destination position", "SELECT"),
            )
        )
    if not fields:
        raise ParseError("SELECT requires at least one src,len,dest field")
    return SelectStage(fields=fields)


def _single_count(args: str, verb: str) -> int:
    tokens = args.split()
    if len(tokens) != 1:
        raise ParseError(f"{verb} expects exactly one number, e.g. {verb} 5")
    return _parse_int(tokens[0], "count", verb)


def _parse_take(args: str) -> StageDescriptor:
    return TakeStage(count=_single_count(args, "TAKE"))


def _parse_skip(args: str) -> StageDescriptor:
    return SkipStage(count=_single_count(args, "SKIP"))


def _parse_duplicate(args: str) -> StageDescriptor:
    count = _single_count(args, "DUPLICATE")
    if count < 1:
        raise ParseError("DUPLICATE count must be at least 1")
    return DuplicateStage(count=count)


def _locate_parser(verb: str) -> Callable[[str], StageDescriptor]:
    def parse(args: str) -> StageDescriptor:
        rest = args.strip()
        if not rest:
            raise ParseError(f'{verb} requires a pattern, e.g. {verb} "text"')
        window = None
        if rest[0].isdigit():
            match = _WINDOW_PREFIX_RE.match(rest)
            if not match:
                raise ParseError(f'{verb} field restriction expects pos,len "pattern"')
            window = FieldWindow(pos=int(match.group(1)), length=int(match.group(2)))
            rest = rest[match.end() :]
        pattern, remainder = _take_delimited(rest, verb)
        _expect_end(remainder, verb)
        return LocateStage(verb=verb, pattern=pattern, window=window)

    return parse


def _parse_change(args: str) -> StageDescriptor:
    old, remainder = _take_delimited(args, "CHANGE")
    if not remainder.strip():
        raise ParseError('CHANGE expects two strings: "old" "new"')
    new, remainder = _take_delimited(remainder, "CHANGE")
    _expect_end(remainder, "CHANGE")
    if not old:
        raise ParseError("CHANGE: the string to replace must not be empty")
    return ChangeStage(old=old, new=new)


def _parse_literal(args: str) -> StageDescriptor:
    rest = args.strip()
    if not rest:
        raise ParseError('LITERAL requires text, e.g. LITERAL "HEADER"')
    if rest.startswith('"'):
        text, remainder = _take_delimited(rest, "LITERAL")
        _expect_end(remainder, "LITERAL")
        return LiteralStage(text=text)
    return LiteralStage(text=rest)


_VERB_PARSERS: dict[str, Callable[[str], StageDescriptor]] = {
    "CONSOLE": _no_arguments(ConsoleStage, "CONSOLE"),
    "HOLE": _no_arguments(HoleStage, "HOLE"),
    "COUNT": _no_arguments(CountStage, "COUNT"),
    "UPPER": _no_arguments(UpperStage, "UPPER"),
    "LOWER": _no_arguments(LowerStage, "LOWER"),
    "REVERSE": _no_arguments(ReverseStage, "REVERSE"),
    "FILTER": _parse_filter,
    "SELECT": _parse_select,
    "TAKE": _parse_take,
    "SKIP": _parse_skip,
    "LOCATE": _locate_parser("LOCATE"),
    "NLOCATE": _locate_parser("NLOCATE"),
    "CHANGE": _parse_change,
    "LITERAL": _parse_literal,
    "DUPLICATE": _parse_duplicate,
}

VERBS = frozenset(_VERB_PARSERS)


def _validation_message(error: ValidationError) -> str:
    detail = error.errors()[0]
    message = str(detail.get("msg", error)).removeprefix("Value error, ")
    location = ".".join(str(part) for part in detail.get("loc", ()))
    return f"{location}: {message}" if location else message


def parse_stage(text: str) -> StageDescriptor:
    """Parse one stage (``VERB args``) without the leading ``PIPE`` or ``|``."""
    parts = text.strip().split(None, 1)
    if not parts:
        raise ParseError("empty stage")
    verb = parts[0].upper()
    args = parts[1] if len(parts) == 2 else ""
    parser = _VERB_PARSERS.get(verb)
    if parser is None:
        raise ParseError(f"unknown verb {parts[0]!r} (expected one of {', '.join(sorted(VERBS))})")
    try:
        return parser(args)
    except ValidationError as error:
        raise ParseError(f"{verb}: {_validation_message(error)}") from None


def _parse_stage_line(text: str, line_number: int, raw_line: str) -> StageDescriptor:
    try:
        return parse_stage(text)
    except ParseError as error:
        raise ParseError(error.message, line_number=line_number, line=raw_line) from None


def _build_spec(block: _Block) -> PipelineSpec:
    if not block.stages:
        raise ParseError("pipeline block has no stages", line_number=block.line_number)
    try:
        return PipelineSpec(stages=block.stages, line_number=block.line_number)
    except ValidationError as error:
        raise ParseError(_validation_message(error), line_number=block.line_number) from None


def parse_pipelines(text: str) -> list[PipelineSpec]:
    """Parse DSL text into one validated ``PipelineSpec`` per ``PIPE`` block.

    Raises:
        ParseError: on the first malformed line or block; nothing is returned
            for the blocks that did parse.
    """
    blocks: list[_Block] = []
    current: _Block | None = None

    for line_number, raw_line in enumerate(text.splitlines(), start=1):
        line = raw_line.strip()
        if not line or line.startswith("#"):
            continue

        # A trailing "?" ends the block after the line's stage.
        terminated = line.endswith("?")
        if terminated:
            line = line.rstrip("?").rstrip()

        if not line:
            if current is not None:
                blocks.append(current)
                current = None
            continue

        head = line.split(None, 1)
        if head[0].upper() == "PIPE":
            if current is not None:
                blocks.append(current)
            current = _Block(line_number=line_number)
            if len(head) == 2:
                current.stages.append(_parse_stage_line(head[1], line_number, raw_line))
        elif line.startswith("|"):
            if current is None:
                raise ParseError("'|' stage outside of a PIPE block", line_number, raw_line)
            stage_text = line[1:].strip()
            if stage_text:
                current.stages.append(_parse_stage_line(stage_text, line_number, raw_line))
            elif not terminated:
                raise ParseError("empty stage after '|'", line_number, raw_line)
        else:
            raise ParseError("expected a line starting with 'PIPE', '|' or '?'", line_number, raw_line)

        if terminated:
            blocks.append(current)
            current = None

    if current is not None:
        blocks.append(current)
    if not blocks:
        raise ParseError("no pipeline found (expected a line starting with 'PIPE')")

    specs = [_build_spec(block) for block in blocks]
    LOGGER.debug("Parsed %s pipeline block(s)", len(specs))
    return specs


def parse_pipeline(text: str) -> PipelineSpec:
    """Parse text that must contain exactly one pipeline block."""
    specs = parse_pipelines(text)
    if len(specs) != 1:
        raise ParseError(f"expected exactly one pipeline block, found {len(specs)}")
    return specs[0]
