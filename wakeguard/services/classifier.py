import logging
import asyncio
from typing import Iterable
from wakeguard.exceptions import AddressValidationError, ProbeError
from wakeguard.libraries.net_probe import NetworkProbe
from wakeguard.models.host import HostModel
from wakeguard.models.hosts_policy import HostsPolicyModel
from wakeguard.models.power import PowerState, ProbeResult, Verdict, utcnow
from wakeguard.models.probe import ProbeModel
from wakeguard.services.wake_log import WakeLogCollector

__all__ = ['PowerStateClassifier']

class PowerStateClassifier:
    def __init__(self, probe: NetworkProbe, config: ProbeModel, policy: HostsPolicyModel, *, logger: logging.Logger, wake_log: WakeLogCollector | None = None):
        self._probe: NetworkProbe = probe
        self._config: ProbeModel = config
        self._policy: HostsPolicyModel = policy

        self._logger: logging.Logger = logger
        self._wake_log: WakeLogCollector | None = wake_log

        self._states: dict[str, PowerState] = {}
        self._locks: dict[str, asyncio.Lock] = {}

    def state(self, name: str) -> PowerState:
        state = self._states.get(name)

        return state.model_copy() if state else PowerState(host=name)

    def states(self) -> dict[str, PowerState]:
        return {name: state.model_copy() for name, state in self._states.items()}

    def is_wake_candidate(self, name: str) -> bool:
        state = self.state(name)

        return state.verdict == 'offline' and state.consecutive_failures >= self._policy.debounce_threshold

    def forget(self, names: Iterable[str]) -> None:
        for name in names:
            self._states.pop(name, None)
            self._locks.pop(name, None)

    async def classify(self, hosts: Iterable[HostModel]) -> dict[str, PowerState]:
        hosts = list({host.name: host for host in hosts}.values())

        if not hosts:
            return {}

        self._logger.debug(f'Classifying {len(hosts)} host(s)...')

        results = await asyncio.gather(*[self.classify_host(host) for host in hosts], return_exceptions=True)

        states = {}

        for host, result in zip(hosts, results):
            if isinstance(result, asyncio.CancelledError):
                raise result

            if isinstance(result, BaseException):
                self._logger.error(f'Classification of host "{host.name}" failed: {result}')
                result = self._update(host.name, 'unknown')

            states[host.name] = result

        return states

    async def classify_host(self, host: HostModel) -> PowerState:
        lock = self._locks.setdefault(host.name, asyncio.Lock())

        # one probe sequence per host at a time; a second caller gets the fresh verdict
        async with lock:
            verdict, latency = await self._probe_host(host)

            return self._update(host.name, verdict, latency=latency)

    async def _probe_host(self, host: HostModel) -> tuple[Verdict, float | None]:
        results: list[ProbeResult] = []

        try:
            result = await self._probe.ping_host(host.ip, self._config.ping_timeout, host=host.name)
            results.append(result)

            if result.succeeded:
                return 'online', result.latency

            # ICMP may be filtered, ask the services instead
            for port in self._config.tcp_ports:
                result = await self._probe.check_port(host.ip, port, self._config.tcp_timeout, host=host.name)
                results.append(result)

                if result.succeeded:
                    return 'online', result.latency
        except (AddressValidationError, ProbeError) as e:
            self._logger.error(f'Cannot probe host "{host.name}": {e}')
            return 'unknown', None

        if any(result.errored for result in results):
            errors = '; '.join(result.error or '' for result in results if result.errored)
            self._logger.warning(f'Probe for host "{host.name}" could not be executed: {errors}')
            return 'unknown', None

        return 'offline', None

    def _update(self, name: str, verdict: Verdict, *, latency: float | None = None) -> PowerState:
        previous = self.state(name)

        failures = previous.consecutive_failures

        if verdict == 'online':
            failures = 0
        elif verdict == 'offline':
            failures += 1

        state = PowerState(host=name, verdict=verdict, last_checked_at=utcnow(), consecutive_failures=failures, latency=latency)
        self._states[name] = state

        if previous.verdict != verdict:
            level = logging.INFO if previous.last_checked_at else logging.DEBUG
            self._logger.log(level, f'Host "{name}" is {verdict} (was {previous.verdict})')
        else:
            self._logger.debug(f'Host "{name}" is {verdict} (consecutive failures: {failures})')

        if self._wake_log is not None:
            self._wake_log.record_probe(state)

        return state.model_copy()
