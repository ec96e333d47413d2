from __future__ import annotations

from typing import Annotated, Literal, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

from .record import RECORD_WIDTH, check_range

SOURCE_VERBS = frozenset({"CONSOLE", "LITERAL", "HOLE"})


class _Frozen(BaseModel):
    model_config = ConfigDict(frozen=True)


class FieldWindow(_Frozen):
    pos: int = Field(ge=0)
    length: int = Field(ge=1)

    @model_validator(mode="after")
    def validate_width(self) -> "FieldWindow":
        check_range(self.pos, self.length, RECORD_WIDTH)
        return self

    @property
    def end(self) -> int:
        return self.pos + self.length


class SelectField(_Frozen):
    src: int = Field(ge=0)
    length: int = Field(ge=1)
    dest: int = Field(ge=0)

    @model_validator(mode="after")
    def validate_width(self) -> "SelectField":
        check_range(self.src, self.length, RECORD_WIDTH)
        check_range(self.dest, self.length, RECORD_WIDTH)
        return self


class ConsoleStage(_Frozen):
    verb: Literal["CONSOLE"] = "CONSOLE"


class HoleStage(_Frozen):
    verb: Literal["HOLE"] = "HOLE"


class FilterStage(_Frozen):
    verb: Literal["FILTER"] = "FILTER"
    window: FieldWindow
    op: Literal["=", "!="] = "="
    value: str


class SelectStage(_Frozen):
    verb: Literal["SELECT"] = "SELECT"
    fields: list[SelectField] = Field(min_length=1)


class TakeStage(_Frozen):
    verb: Literal["TAKE"] = "TAKE"
    count: int = Field(ge=0)


class SkipStage(_Frozen):
    verb: Literal["SKIP"] = "SKIP"
    count: int = Field(ge=0)


class LocateStage(_Frozen):
    """LOCATE keeps records containing ``pattern``; NLOCATE keeps the others."""

    verb: Literal["LOCATE", "NLOCATE"] = "LOCATE"
    pattern: str
    window: FieldWindow | None = None

    @property
    def negate(self) -> bool:
        return self.verb == "NLOCATE"


class ChangeStage(_Frozen):
    verb: Literal["CHANGE"] = "CHANGE"
    old: str = Field(min_length=1)
    new: str


class LiteralStage(_Frozen):
    verb: Literal["LITERAL"] = "LITERAL"
    text: str


class UpperStage(_Frozen):
    verb: Literal["UPPER"] = "UPPER"


class LowerStage(_Frozen):
    verb: Literal["LOWER"] = "LOWER"


class ReverseStage(_Frozen):
    verb: Literal["REVERSE"] = "REVERSE"


class DuplicateStage(_Frozen):
    verb: Literal["DUPLICATE"] = "DUPLICATE"
    count: int = Field(ge=1)


class CountStage(_Frozen):
    verb: Literal["COUNT"] = "COUNT"


StageDescriptor = Annotated[
    Union[
        ConsoleStage,
        HoleStage,
        FilterStage,
        SelectStage,
        TakeStage,
        SkipStage,
        LocateStage,
        ChangeStage,
        LiteralStage,
        UpperStage,
        LowerStage,
        ReverseStage,
        DuplicateStage,
        CountStage,
    ],
    Field(discriminator="verb"),
]

STAGE_TYPES: tuple[type[BaseModel], ...] = (
    ConsoleStage,
    HoleStage,
    FilterStage,
    SelectStage,
    TakeStage,
    SkipStage,
    LocateStage,
    ChangeStage,
    LiteralStage,
    UpperStage,
    LowerStage,
    ReverseStage,
    DuplicateStage,
    CountStage,
)


class PipelineSpec(_Frozen):
    """One ``PIPE ... ?`` block: a source, then one or more stages.

    The last stage is the sink whatever its verb; its output is the block's
    output. CONSOLE forwards it and HOLE discards it.
    """

    stages: list[StageDescriptor] = Field(min_length=2)
    line_number: int = Field(default=0, ge=0)

    @model_validator(mode="after")
    def validate_source(self) -> "PipelineSpec":
        first = self.stages[0].verb
        if first not in SOURCE_VERBS:
            allowed = ", ".join(sorted(SOURCE_VERBS))
            raise ValueError(f"{first} cannot be the first stage (expected one of {allowed})")
        return self

    @property
    def source(self) -> StageDescriptor:
        return self.stages[0]

    @property
    def transforms(self) -> list[StageDescriptor]:
        """Every stage after the source, sink included."""
        return self.stages[1:]

    @property
    def stage_names(self) -> list[str]:
        return [stage.verb for stage in self.stages]
