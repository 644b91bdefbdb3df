import logging
import asyncio
import json
from typing import Optional
from wakeguard.models.trigger import TriggerModel
from wakeguard.models.wake import WakeEvent
from wakeguard.services.classifier import PowerStateClassifier
from wakeguard.services.watcher import EventWakeWatcher

__all__ = ['TriggerListener']

class TriggerListener:
    """
    Line based TCP endpoint feeding wake events to the watcher.

    Commands::

        WAKE <host> [reason...]   -> OK queued | ERR <message>
        STATUS [host]             -> OK <json>
        PING                      -> OK pong
    """

    def __init__(self, config: TriggerModel, watcher: EventWakeWatcher, classifier: PowerStateClassifier, *, logger: logging.Logger):
        self._config: TriggerModel = config
        self._watcher: EventWakeWatcher = watcher
        self._classifier: PowerStateClassifier = classifier

        self._logger: logging.Logger = logger

        self._server: Optional[asyncio.AbstractServer] = None
        self._read_timeout: int = 30

    @property
    def sockets(self) -> list:
        return list(self._server.sockets) if self._server else []

    async def start(self) -> None:
        self._server = await asyncio.start_server(self._handle_client, self._config.listen, self._config.port)

        self._logger.info(f'Listening for wake triggers on {self._config.listen}:{self._config.port}')

    async def close(self) -> None:
        if self._server is None:
            return

        self._server.close()
        await self._server.wait_closed()
        self._server = None

        self._logger.info('Wake trigger listener closed')

    def handle_command(self, line: str) -> str:
        parts = line.split()

        if not parts:
            return 'ERR empty command'

        command = parts[0].upper()

        if command == 'PING':
            return 'OK pong'

        if command == 'WAKE':
            if len(parts) < 2:
                return 'ERR host required'

            name = parts[1]

            if name not in {host.name for host in self._watcher.hosts}:
                return f'ERR unknown host {name}'

            reason = ' '.join(parts[2:]) or 'trigger'
            self._watcher.submit(WakeEvent(host=name, reason=reason))

            return 'OK queued'

        if command == 'STATUS':
            states = self._classifier.states()

            if len(parts) > 1:
                states = {name: state for name, state in states.items() if name == parts[1]}

            payload = {name: state.model_dump(mode='json') for name, state in states.items()}

            for name in payload:
                payload[name]['wake'] = self._watcher.host_state(name)

            return 'OK ' + json.dumps(payload)

        return f'ERR unknown command {parts[0]}'

    async def _handle_client(self, reader: asyncio.StreamReader, writer: asyncio.StreamWriter) -> None:
        peer = writer.get_extra_info('peername')

        try:
            while True:
                data = await asyncio.wait_for(reader.readline(), timeout=self._read_timeout)

                if not data:
                    break

                try:
                    line = data.decode('utf-8').strip()
                except UnicodeDecodeError:
                    response = 'ERR invalid encoding'
                else:
                    self._logger.debug(f'Trigger command from {peer}: {line}')
                    response = self.handle_command(line)

                writer.write(f'{response}\n'.encode('utf-8'))
                await writer.drain()
        except asyncio.TimeoutError:
            self._logger.debug(f'Trigger client {peer} idle, closing')
        except (ConnectionResetError, BrokenPipeError) as e:
            self._logger.debug(f'Trigger client {peer} disconnected: {e}')
        finally:
            writer.close()

            try:
                await writer.wait_closed()
            except (ConnectionResetError, BrokenPipeError) as e:
                self._logger.debug(f'Error closing trigger client {peer}: {e}')
