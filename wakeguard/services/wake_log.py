import logging
import threading
import datetime
from collections import deque
from typing import Any
from wakeguard.exceptions import PersistenceDegraded
from wakeguard.libraries.journal import Journal
from wakeguard.models.power import PowerState, as_utc
from wakeguard.models.wake import WakeAttempt, WakeLogEntry

__all__ = ['WakeLogCollector']

class WakeLogCollector:
    """
    Append-only audit trail of probe verdicts, wake attempts and their outcome.

    Entries of the running process are kept in a bounded in-memory buffer
    and, when a journal is configured, appended to it as well. Failing to
    persist never propagates to the caller: the collector logs it and keeps
    the in-memory copy. ``history`` reads the journal, so it covers earlier
    runs and is not limited by the buffer size.
    """

    def __init__(self, journal: Journal | None = None, *, logger: logging.Logger, max_entries: int = 1000):
        self._journal: Journal | None = journal
        self._logger: logging.Logger = logger

        self._lock: threading.Lock = threading.Lock()
        self._entries: deque[WakeLogEntry] = deque(maxlen=max_entries)
        # entries the journal failed to take
        self._unpersisted: deque[WakeLogEntry] = deque(maxlen=max_entries)
        self._degraded: bool = journal is None

        if self._journal is None:
            self._logger.debug('No wake log destination configured. Keeping entries in memory only')

    @property
    def degraded(self) -> bool:
        return self._degraded

    def record(self, entry: WakeLogEntry) -> WakeLogEntry:
        with self._lock:
            self._entries.append(entry)

            if self._journal is not None:
                try:
                    self._journal.append(entry)
                except PersistenceDegraded as e:
                    self._unpersisted.append(entry)

                    if not self._degraded:
                        self._logger.warning(f'{e}. Continuing with in-memory wake log')
                    self._degraded = True
                else:
                    if self._degraded:
                        self._logger.info('Wake log destination is writable again')
                    self._degraded = False

        return entry

    def record_probe(self, state: PowerState) -> WakeLogEntry:
        return self.record(WakeLogEntry(
            kind='probe',
            host=state.host,
            outcome=state.verdict,
            detail={
                'consecutive_failures': state.consecutive_failures,
                'latency': state.latency,
            },
        ))

    def record_attempt(self, attempt: WakeAttempt, **detail: Any) -> WakeLogEntry:
        return self.record(WakeLogEntry(
            kind='wake',
            host=attempt.host,
            outcome=attempt.outcome,
            recorded_at=attempt.sent_at,
            detail={
                'mac': attempt.mac,
                'packet_digest': attempt.packet_digest,
                'packets_sent': attempt.packets_sent,
                'error': attempt.error,
                **detail,
            },
        ))

    def record_confirmation(self, host: str, outcome: str, **detail: Any) -> WakeLogEntry:
        return self.record(WakeLogEntry(kind='confirm', host=host, outcome=outcome, detail=detail))

    def recent(self, *, host: str | None = None, since: datetime.datetime | None = None, until: datetime.datetime | None = None, limit: int | None = None) -> list[WakeLogEntry]:
        # snapshot under the lock, filter outside of it
        with self._lock:
            entries = list(self._entries)

        return self._filter(entries, host=host, since=since, until=until, limit=limit)

    def history(self, *, host: str | None = None, since: datetime.datetime | None = None, until: datetime.datetime | None = None, limit: int | None = None) -> list[WakeLogEntry]:
        """
        Entries across restarts, read from the journal.

        Without a journal, or when it cannot be read, this is the in-memory
        buffer of the running process.
        """
        if self._journal is None:
            return self.recent(host=host, since=since, until=until, limit=limit)

        try:
            entries = self._journal.load(host=host, since=as_utc(since) if since else None)
        except PersistenceDegraded as e:
            self._logger.warning(f'{e}. Showing in-memory wake log only')
            return self.recent(host=host, since=since, until=until, limit=limit)

        with self._lock:
            entries += self._unpersisted

        entries.sort(key=lambda entry: entry.recorded_at)

        return self._filter(entries, host=host, since=since, until=until, limit=limit)

    @staticmethod
    def summarize(entries: list[WakeLogEntry]) -> dict:
        totals = {'events': 0, 'wol_sent': 0, 'wol_failed': 0, 'confirmed': 0, 'timed_out': 0, 'failed': 0}
        per_host: dict[str, dict] = {}
        by_hour: dict[int, int] = {}
        by_weekday: dict[str, int] = {}

        for entry in entries:
            if entry.kind == 'probe':
                continue

            totals['events'] += 1

            host = per_host.setdefault(entry.host or '-', {'sent': 0, 'confirmed': 0, 'timed_out': 0, 'failed': 0})

            if entry.kind == 'wake':
                if entry.outcome == 'sent':
                    totals['wol_sent'] += 1
                    host['sent'] += 1
                else:
                    totals['wol_failed'] += 1
                    host['failed'] += 1

                recorded_at = entry.recorded_at.astimezone()
                by_hour[recorded_at.hour] = by_hour.get(recorded_at.hour, 0) + 1
                weekday = recorded_at.strftime('%a')
                by_weekday[weekday] = by_weekday.get(weekday, 0) + 1
            elif entry.outcome == 'confirmed':
                totals['confirmed'] += 1
                host['confirmed'] += 1
            elif entry.outcome == 'timed_out':
                totals['timed_out'] += 1
                host['timed_out'] += 1
            elif entry.outcome == 'failed':
                totals['failed'] += 1

        for stats in per_host.values():
            stats['success_rate'] = round(stats['confirmed'] * 100 / stats['sent']) if stats['sent'] else 0

        return {
            'totals': totals,
            'hosts': per_host,
            'by_hour': dict(sorted(by_hour.items())),
            'by_weekday': by_weekday,
        }

    @staticmethod
    def _filter(entries: list[WakeLogEntry], *, host: str | None = None, since: datetime.datetime | None = None, until: datetime.datetime | None = None, limit: int | None = None) -> list[WakeLogEntry]:
        since = as_utc(since) if since else None
        until = as_utc(until) if until else None

        result = [
            entry for entry in entries
            if (host is None or entry.host == host)
            and (since is None or entry.recorded_at >= since)
            and (until is None or entry.recorded_at <= until)
        ]

        if limit is not None:
            result = result[-limit:] if limit > 0 else []

        return result
