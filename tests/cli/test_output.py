"""Tests for CLI output formatting helpers."""

from __future__ import annotations

import pytest

from compsync.cli import output
from compsync.core.batch import BatchFailure, BatchResult, BatchStats
from compsync.core.sync import SyncResult, UpdateInfo


@pytest.mark.parametrize(
    ("ms", "expected"),
    [(0, "0ms"), (850.4, "850ms"), (2400, "2.4s"), (65_000, "1m 5s")],
)
def test_format_duration(ms: float, expected: str) -> None:
    assert output.format_duration(ms) == expected


class TestSummaries:
    def test_batch_summary_lists_failures_sorted(self, make_descriptor) -> None:
        result: BatchResult = BatchResult(
            succeeded=[make_descriptor("icon")],
            failed=[
                BatchFailure(make_descriptor("zeta"), RuntimeError("z broke"), 1, 2),
                BatchFailure(make_descriptor("alpha"), RuntimeError("a broke"), 1, 1),
            ],
            stats=BatchStats(total=3, succeeded_count=1, failed_count=2),
        )
        with output.console.capture() as capture:
            output.print_batch_summary(result)
        text = capture.get()
        assert "2 failed" in text
        assert text.index("alpha: a broke") < text.index("zeta: z broke")

    def test_bracketed_messages_printed_verbatim(self) -> None:
        result = SyncResult(failed=["card"], errors={"card": "[ui] card.tsx is [bold]locked"})
        with output.console.capture() as capture:
            output.print_sync_result(result)
        assert "[ui] card.tsx is [bold]locked" in capture.get()

        with output.err_console.capture() as capture:
            output.print_error("registry said [error] nope")
        assert "registry said [error] nope" in capture.get()

    def test_sync_result_table(self) -> None:
        result = SyncResult(synced=["card"], skipped=["icon"], duration_ms=1200)
        with output.console.capture() as capture:
            output.print_sync_result(result)
        text = capture.get()
        assert "card" in text
        assert "icon" in text
        assert "Completed in 1.2s" in text

    def test_updates(self) -> None:
        with output.console.capture() as capture:
            output.print_updates([])
            output.print_updates([UpdateInfo("card", "1.0.0", "2.0.0", True)])
        text = capture.get()
        assert "up to date" in text
        assert "Available Updates" in text
        assert "yes" in text
