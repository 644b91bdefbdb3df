import logging
import os
import datetime
from typing import Optional
from pydantic import ValidationError
from wakeguard.exceptions import PersistenceDegraded
from wakeguard.models.wake import WakeLogEntry

__all__ = ['Journal']

class Journal:
    """Append-only JSON-lines file of wake log entries."""

    def __init__(self, filepath: str, *, logger: Optional[logging.Logger] = None):
        self._filepath: str = filepath
        self._logger: logging.Logger = logger or logging.getLogger(__name__)

    @property
    def filepath(self) -> str:
        return self._filepath

    def append(self, entry: WakeLogEntry) -> None:
        line = entry.model_dump_json() + '\n'

        try:
            directory = os.path.dirname(self._filepath)

            if directory and not os.path.exists(directory):
                os.makedirs(directory)

            # one write per entry so readers never see half a line
            with open(self._filepath, 'a', encoding='utf-8') as f:
                f.write(line)
        except OSError as e:
            raise PersistenceDegraded(f'Could not write wake log {self._filepath}: {e}') from e

    def load(self, *, host: str | None = None, since: datetime.datetime | None = None) -> list[WakeLogEntry]:
        if not os.path.isfile(self._filepath):
            return []

        entries = []

        try:
            with open(self._filepath, 'r', encoding='utf-8') as f:
                for number, line in enumerate(f, start=1):
                    line = line.strip()

                    if not line:
                        continue

                    try:
                        entry = WakeLogEntry.model_validate_json(line)
                    except ValidationError:
                        self._logger.warning(f'Skipping malformed entry at {self._filepath}:{number}')
                        continue

                    if host is not None and entry.host != host:
                        continue

                    if since is not None and entry.recorded_at < since:
                        continue

                    entries.append(entry)
        except OSError as e:
            raise PersistenceDegraded(f'Could not read wake log {self._filepath}: {e}') from e

        return entries
