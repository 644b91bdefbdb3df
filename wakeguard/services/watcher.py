import logging
import asyncio
from typing import Iterable, Literal
from wakeguard.models.host import HostModel
from wakeguard.models.hosts_policy import HostsPolicyModel
from wakeguard.models.wake import WakeAttempt, WakeEvent, WakeOutcome
from wakeguard.services.classifier import PowerStateClassifier
from wakeguard.services.wake_log import WakeLogCollector
from wakeguard.services.wol import WolService

__all__ = ['EventWakeWatcher', 'HostWakeState']

HostWakeState = Literal['idle', 'wake_requested', 'wake_in_flight', 'confirmed', 'timed_out']

class EventWakeWatcher:
    """
    Reacts to wake events by waking the implicated host and waiting for it to
    come online.

    Each host goes through idle -> wake_requested -> wake_in_flight ->
    confirmed | timed_out -> idle. A timed out or failed send is retried with
    exponential backoff until ``wake_retries`` attempts have been made. Events
    for a host that already has a wake in progress are coalesced into it.
    """

    def __init__(self, hosts: Iterable[HostModel], classifier: PowerStateClassifier, wol: WolService, policy: HostsPolicyModel, *, logger: logging.Logger, wake_log: WakeLogCollector | None = None):
        self._hosts: dict[str, HostModel] = {}
        self._classifier: PowerStateClassifier = classifier
        self._wol: WolService = wol
        self._policy: HostsPolicyModel = policy

        self._logger: logging.Logger = logger
        self._wake_log: WakeLogCollector | None = wake_log

        self._queue: asyncio.Queue[WakeEvent | None] = asyncio.Queue()
        self._workflows: dict[str, asyncio.Task] = {}
        self._locks: dict[str, asyncio.Lock] = {}
        self._host_states: dict[str, HostWakeState] = {}

        self.update_hosts(hosts)

    @property
    def hosts(self) -> list[HostModel]:
        return list(self._hosts.values())

    def update_hosts(self, hosts: Iterable[HostModel]) -> None:
        self._hosts = {host.name: host for host in hosts}

    def host_state(self, name: str) -> HostWakeState:
        return self._host_states.get(name, 'idle')

    def in_progress(self, name: str) -> bool:
        task = self._workflows.get(name)

        return task is not None and not task.done()

    def submit(self, event: WakeEvent) -> None:
        self._logger.debug(f'Wake event queued for "{event.host}" ({event.reason})')
        self._queue.put_nowait(event)

    async def run(self) -> None:
        self._logger.info('Wake watcher started')

        try:
            while True:
                event = await self._queue.get()

                if event is None:
                    break

                self.dispatch(event)
        finally:
            await self._cancel_workflows()
            self._logger.info('Wake watcher stopped')

    def stop(self) -> None:
        self._queue.put_nowait(None)

    def dispatch(self, event: WakeEvent) -> asyncio.Task:
        task = self._workflows.get(event.host)

        if task is not None and not task.done():
            self._logger.info(f'Wake for host "{event.host}" already in progress. Coalescing event ({event.reason})')
            return task

        task = asyncio.create_task(self._workflow(event), name=f'wake-{event.host}')
        self._workflows[event.host] = task
        task.add_done_callback(lambda t, name=event.host: self._workflow_done(name, t))

        return task

    async def handle(self, event: WakeEvent) -> WakeOutcome:
        task = self.dispatch(event)

        # the workflow may be shared with other events, do not cancel it on our behalf
        return await asyncio.shield(task)

    async def _workflow(self, event: WakeEvent) -> WakeOutcome:
        host = self._hosts.get(event.host)

        if host is None:
            self._logger.warning(f'Wake event for unknown host "{event.host}" rejected')
            return WakeOutcome(host=event.host, status='rejected', detail='unknown host')

        lock = self._locks.setdefault(host.name, asyncio.Lock())

        async with lock:
            try:
                return await self._wake(host, event)
            except asyncio.CancelledError:
                self._logger.info(f'Wake for host "{host.name}" cancelled')
                raise
            except Exception as e:
                self._logger.exception(e)
                self._record_confirmation(host.name, 'failed', reason=event.reason, error=str(e))
                return WakeOutcome(host=host.name, status='failed', detail=str(e))
            finally:
                self._host_states[host.name] = 'idle'

    async def _wake(self, host: HostModel, event: WakeEvent) -> WakeOutcome:
        # the cached verdict may be a whole check interval old
        state = await self._classifier.classify_host(host)

        if state.verdict == 'online':
            self._logger.info(f'Host "{host.name}" is already online. Ignoring wake event ({event.reason})')
            return WakeOutcome(host=host.name, status='skipped', detail='already online')

        if not host.mac:
            self._logger.warning(f'Host "{host.name}" does not have a MAC address configured. Cannot wake')
            return WakeOutcome(host=host.name, status='rejected', detail='no MAC address')

        self._host_states[host.name] = 'wake_requested'
        self._logger.info(f'Waking host "{host.name}" ({state.verdict}, reason: {event.reason})')

        retries = self._policy.wake_retries

        for attempt in range(1, retries + 1):
            if attempt > 1:
                backoff = self._policy.retry_backoff * 2 ** (attempt - 2)
                self._host_states[host.name] = 'wake_requested'
                self._logger.info(f'Retrying wake for host "{host.name}" in {backoff}s (attempt {attempt}/{retries})')
                await asyncio.sleep(backoff)

            wake_attempt = await self._send(host)

            if self._wake_log is not None:
                self._wake_log.record_attempt(wake_attempt, reason=event.reason, attempt=attempt)

            if wake_attempt.outcome == 'send_failed':
                continue

            self._host_states[host.name] = 'wake_in_flight'

            if await self._await_online(host):
                self._host_states[host.name] = 'confirmed'
                self._logger.info(f'Host "{host.name}" confirmed online after wake (attempt {attempt}/{retries})')
                self._record_confirmation(host.name, 'confirmed', reason=event.reason, attempt=attempt)
                return WakeOutcome(host=host.name, status='confirmed', attempts=attempt)

            self._host_states[host.name] = 'timed_out'
            self._logger.warning(f'Host "{host.name}" did not come online within {self._policy.confirm_deadline}s (attempt {attempt}/{retries})')
            self._record_confirmation(host.name, 'timed_out', reason=event.reason, attempt=attempt)

        self._logger.error(f'Giving up waking host "{host.name}" after {retries} attempt(s)')
        self._record_confirmation(host.name, 'failed', reason=event.reason, attempts=retries)

        return WakeOutcome(host=host.name, status='failed', attempts=retries, detail=f'no confirmation after {retries} attempt(s)')

    async def _send(self, host: HostModel) -> WakeAttempt:
        # sending may sleep between packets, keep it off the event loop
        return await asyncio.to_thread(self._wol.wake_host, host)

    async def _await_online(self, host: HostModel) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + self._policy.confirm_deadline

        self._logger.debug(f'Polling host "{host.name}" status to confirm wake...')

        while True:
            remaining = deadline - loop.time()

            if remaining <= 0:
                return False

            await asyncio.sleep(min(self._policy.confirm_interval, remaining))

            state = await self._classifier.classify_host(host)

            if state.verdict == 'online':
                return True

    def _record_confirmation(self, host: str, outcome: str, **detail) -> None:
        if self._wake_log is not None:
            self._wake_log.record_confirmation(host, outcome, **detail)

    def _workflow_done(self, name: str, task: asyncio.Task) -> None:
        if self._workflows.get(name) is task:
            del self._workflows[name]

    async def _cancel_workflows(self) -> None:
        tasks = [task for task in self._workflows.values() if not task.done()]

        if not tasks:
            return

        for task in tasks:
            task.cancel()

        await asyncio.gather(*tasks, return_exceptions=True)
