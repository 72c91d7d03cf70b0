"""Tests that verify the self-contained examples run successfully."""

from __future__ import annotations

import runpy
from pathlib import Path

import pytest

_EXAMPLES = Path(__file__).parent.parent / "examples"


class TestSelfContainedExamples:
    """Examples that run entirely in-process."""

    def test_testing_http(self, capsys: pytest.CaptureFixture[str]) -> None:
        """testing_http.py: blocking, callback, override, status error and upload calls."""
        runpy.run_path(str(_EXAMPLES / "testing_http.py"), run_name="__main__")
        out = capsys.readouterr().out
        assert "sum: {'total': 6, 'count': 3}" in out
        assert "callback: result={'total': 30, 'count': 2} error=None" in out
        assert "override: 9" in out
        assert "status error: 401 bad token" in out
        assert "upload: {'title': 'report', 'doc': 'q3.txt', 'size': 17}" in out
