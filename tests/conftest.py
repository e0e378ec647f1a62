"""Test configuration helpers."""
from __future__ import annotations

import sys
from pathlib import Path

import pytest


def _ensure_src_on_path() -> None:
    src = Path(__file__).resolve().parent.parent / "src"
    if str(src) not in sys.path:
        sys.path.insert(0, str(src))


_ensure_src_on_path()


@pytest.fixture(autouse=True)
def audit_dir(tmp_path, monkeypatch):
    """Keep audit entries inside the test's temporary directory."""
    target = tmp_path / "audit"
    monkeypatch.setenv("SHADOWSHARE_AUDIT_DIR", str(target))
    return target
