from pathlib import Path

import pytest

from record_pipeline.record import Record

SPECS_DIR = Path(__file__).parent / "specs"

EMPLOYEE_LINES = [
    "SMITH   JOHN      SALES     00050000",
    "JONES   MARY      ENGINEER  00075000",
    "DOE     JANE      SALES     00060000",
    "BROWN   BOB       MARKETING 00055000",
    "WILSON  ALICE     ENGINEER  00080000",
]


@pytest.fixture
def specs_dir() -> Path:
    return SPECS_DIR


@pytest.fixture
def employees() -> list[Record]:
    return [Record.from_text(line) for line in EMPLOYEE_LINES]


@pytest.fixture
def sample_records() -> list[Record]:
    lines = (SPECS_DIR / "input-fixed-80.data").read_text(encoding="ascii").splitlines()
    return [Record.from_text(line) for line in lines if line]
