"""Every module under lms/ compiles cleanly with warnings turned into errors."""

from __future__ import annotations

import warnings
from pathlib import Path

import pytest

SOURCES = sorted((Path(__file__).resolve().parents[2] / "lms").rglob("*.py"))


@pytest.mark.parametrize("path", SOURCES, ids=lambda p: f"{p.parent.name}/{p.name}")
def test_compiles_without_syntax_warnings(path: Path) -> None:
    source = path.read_text(encoding="utf-8")
    with warnings.catch_warnings():
        warnings.simplefilter("error")
        compile(source, str(path), "exec")
