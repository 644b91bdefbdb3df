"""Tests for the wake log collector and its journal."""

import datetime
import logging
import threading
from pathlib import Path

from wakeguard.libraries.journal import Journal
from wakeguard.models.power import PowerState
from wakeguard.models.wake import WakeAttempt, WakeLogEntry
from wakeguard.services.wake_log import WakeLogCollector


def attempt(host: str = "node1", outcome: str = "sent", sent_at: datetime.datetime | None = None) -> WakeAttempt:
    return WakeAttempt(
        host=host,
        mac="AA:BB:CC:DD:EE:01",
        packet_digest="0" * 16,
        outcome=outcome,
        packets_sent=1 if outcome == "sent" else 0,
        sent_at=sent_at or datetime.datetime.now(datetime.timezone.utc),
    )


class TestRecording:
    """Tests for recording and querying entries."""

    def test_no_destination_never_raises(self, logger: logging.Logger) -> None:
        collector = WakeLogCollector(logger=logger)

        collector.record_attempt(attempt())
        collector.record_confirmation("node1", "confirmed")
        collector.record_probe(PowerState(host="node1", verdict="online"))

        assert collector.degraded is True
        assert len(collector.recent()) == 3

    def test_unwritable_destination_degrades(self, tmp_path: Path, logger: logging.Logger) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        # parent is a regular file, so the journal cannot be created
        collector = WakeLogCollector(Journal(str(blocker / "wake-log.jsonl")), logger=logger)

        collector.record_attempt(attempt())

        assert collector.degraded is True
        assert len(collector.recent()) == 1

    def test_filters_by_host(self, wake_log: WakeLogCollector) -> None:
        wake_log.record_attempt(attempt("node1"))
        wake_log.record_attempt(attempt("node2"))
        wake_log.record_confirmation("node1", "confirmed")

        assert [entry.kind for entry in wake_log.recent(host="node1")] == ["wake", "confirm"]

    def test_filters_by_time(self, wake_log: WakeLogCollector) -> None:
        now = datetime.datetime.now(datetime.timezone.utc)
        wake_log.record_attempt(attempt(sent_at=now - datetime.timedelta(days=3)))
        wake_log.record_attempt(attempt(sent_at=now))

        assert len(wake_log.recent(since=now - datetime.timedelta(days=1))) == 1
        assert len(wake_log.recent(until=now - datetime.timedelta(days=1))) == 1

    def test_naive_bounds_treated_as_utc(self, wake_log: WakeLogCollector) -> None:
        now = datetime.datetime.now(datetime.timezone.utc)
        wake_log.record_attempt(attempt(sent_at=now))

        since = (now - datetime.timedelta(hours=1)).replace(tzinfo=None)

        assert len(wake_log.recent(since=since)) == 1

    def test_limit_returns_latest(self, wake_log: WakeLogCollector) -> None:
        for host in ("node1", "node2", "node3"):
            wake_log.record_attempt(attempt(host))

        assert [entry.host for entry in wake_log.recent(limit=2)] == ["node2", "node3"]
        assert wake_log.recent(limit=0) == []

    def test_buffer_is_bounded(self, logger: logging.Logger) -> None:
        collector = WakeLogCollector(logger=logger, max_entries=5)

        for _ in range(10):
            collector.record_confirmation("node1", "confirmed")

        assert len(collector.recent()) == 5

    def test_concurrent_appends_all_kept(self, tmp_path: Path, logger: logging.Logger) -> None:
        journal = Journal(str(tmp_path / "wake-log.jsonl"))
        collector = WakeLogCollector(journal, logger=logger)

        def worker(name: str) -> None:
            for _ in range(50):
                collector.record_attempt(attempt(name))

        threads = [threading.Thread(target=worker, args=(f"node{i}",)) for i in range(4)]

        for thread in threads:
            thread.start()

        for thread in threads:
            thread.join()

        assert len(collector.recent()) == 200
        assert len(journal.load()) == 200


class TestPersistence:
    """Tests for the JSON lines journal."""

    def test_entries_survive_restart(self, tmp_path: Path, logger: logging.Logger) -> None:
        filepath = str(tmp_path / "logs" / "wake-log.jsonl")

        collector = WakeLogCollector(Journal(filepath), logger=logger)
        collector.record_attempt(attempt(), reason="manual")
        collector.record_confirmation("node1", "confirmed")

        reloaded = WakeLogCollector(Journal(filepath), logger=logger)
        entries = reloaded.history()

        assert reloaded.degraded is False
        assert reloaded.recent() == []
        assert [(entry.kind, entry.outcome) for entry in entries] == [("wake", "sent"), ("confirm", "confirmed")]
        assert entries[0].detail["reason"] == "manual"

    def test_history_not_limited_by_buffer(self, tmp_path: Path, logger: logging.Logger) -> None:
        filepath = str(tmp_path / "wake-log.jsonl")

        collector = WakeLogCollector(Journal(filepath), logger=logger, max_entries=100)
        collector.record_attempt(attempt("node1"))

        for _ in range(150):
            collector.record_probe(PowerState(host="node2", verdict="offline"))

        assert collector.recent(host="node1") == []

        reloaded = WakeLogCollector(Journal(filepath), logger=logger, max_entries=100)

        assert [entry.kind for entry in reloaded.history(host="node1")] == ["wake"]
        assert len(reloaded.history(host="node2")) == 150
        assert len(reloaded.history(limit=10)) == 10

    def test_history_includes_unpersisted_entries(self, tmp_path: Path, logger: logging.Logger) -> None:
        blocker = tmp_path / "blocker"
        blocker.write_text("")
        collector = WakeLogCollector(Journal(str(blocker / "wake-log.jsonl")), logger=logger)

        collector.record_confirmation("node1", "confirmed")

        assert [entry.outcome for entry in collector.history()] == ["confirmed"]

    def test_history_without_journal_is_buffer(self, wake_log: WakeLogCollector) -> None:
        wake_log.record_confirmation("node1", "confirmed")

        assert wake_log.history() == wake_log.recent()

    def test_malformed_line_skipped(self, tmp_path: Path, logger: logging.Logger) -> None:
        filepath = tmp_path / "wake-log.jsonl"
        good = WakeLogEntry(kind="confirm", host="node1", outcome="confirmed").model_dump_json()
        filepath.write_text(f"{good}\nnot json at all\n\n{good}\n")

        assert len(Journal(str(filepath), logger=logger).load()) == 2

    def test_load_since(self, tmp_path: Path) -> None:
        filepath = str(tmp_path / "wake-log.jsonl")
        journal = Journal(filepath)
        now = datetime.datetime.now(datetime.timezone.utc)

        journal.append(WakeLogEntry(kind="confirm", host="node1", outcome="confirmed", recorded_at=now - datetime.timedelta(days=2)))
        journal.append(WakeLogEntry(kind="confirm", host="node1", outcome="confirmed", recorded_at=now))

        assert len(journal.load(since=now - datetime.timedelta(days=1))) == 1

    def test_load_by_host(self, tmp_path: Path) -> None:
        journal = Journal(str(tmp_path / "wake-log.jsonl"))

        journal.append(WakeLogEntry(kind="confirm", host="node1", outcome="confirmed"))
        journal.append(WakeLogEntry(kind="confirm", host="node2", outcome="timed_out"))

        assert [entry.host for entry in journal.load(host="node2")] == ["node2"]

    def test_missing_file_is_empty(self, tmp_path: Path) -> None:
        assert Journal(str(tmp_path / "missing.jsonl")).load() == []


class TestSummarize:
    """Tests for wake statistics."""

    def test_totals_and_success_rate(self) -> None:
        entries = [
            WakeLogEntry(kind="probe", host="node1", outcome="offline"),
            WakeLogEntry(kind="wake", host="node1", outcome="sent"),
            WakeLogEntry(kind="confirm", host="node1", outcome="confirmed"),
            WakeLogEntry(kind="wake", host="node1", outcome="sent"),
            WakeLogEntry(kind="confirm", host="node1", outcome="timed_out"),
            WakeLogEntry(kind="wake", host="node2", outcome="send_failed"),
            WakeLogEntry(kind="confirm", host="node2", outcome="failed"),
        ]

        summary = WakeLogCollector.summarize(entries)

        assert summary["totals"] == {"events": 6, "wol_sent": 2, "wol_failed": 1, "confirmed": 1, "timed_out": 1, "failed": 1}
        assert summary["hosts"]["node1"]["success_rate"] == 50
        assert summary["hosts"]["node2"]["success_rate"] == 0
        assert sum(summary["by_hour"].values()) == 3
        assert sum(summary["by_weekday"].values()) == 3

    def test_empty(self) -> None:
        summary = WakeLogCollector.summarize([])

        assert summary["totals"]["events"] == 0
        assert summary["hosts"] == {}
