"""Shared fixtures and test doubles."""

import asyncio
import logging
from typing import Callable

import pytest

from wakeguard.models.host import HostModel
from wakeguard.models.hosts_policy import HostsPolicyModel
from wakeguard.models.power import ProbeResult
from wakeguard.models.probe import ProbeModel
from wakeguard.models.wake import WakeAttempt
from wakeguard.services.classifier import PowerStateClassifier
from wakeguard.services.wake_log import WakeLogCollector


class FakeProbe:
    """Deterministic stand-in for NetworkProbe keyed by IP address."""

    def __init__(
        self,
        online: set[str] | None = None,
        tcp_online: set[str] | None = None,
        errored: set[str] | None = None,
        raises: set[str] | None = None,
        delay: float = 0,
    ) -> None:
        self.online = set(online or ())
        self.tcp_online = set(tcp_online or ())
        self.errored = set(errored or ())
        self.raises = set(raises or ())
        self.delay = delay
        self.calls: list[tuple] = []

    async def ping_host(self, address: str, timeout: float | None = None, *, host: str | None = None) -> ProbeResult:
        self.calls.append(("ping", address))

        if self.delay:
            await asyncio.sleep(self.delay)

        if address in self.raises:
            raise RuntimeError("network stack exploded")

        if address in self.errored:
            return ProbeResult(host=host or address, kind="ping", succeeded=False, error="socket: Operation not permitted", errored=True)

        succeeded = address in self.online
        return ProbeResult(host=host or address, kind="ping", succeeded=succeeded, latency=0.5 if succeeded else None)

    async def check_port(self, address: str, port: int, timeout: float | None = None, *, host: str | None = None) -> ProbeResult:
        self.calls.append(("tcp_port", address, port))

        succeeded = address in self.tcp_online
        return ProbeResult(host=host or address, kind="tcp_port", port=port, succeeded=succeeded, latency=1.0 if succeeded else None)


class FakeWol:
    """Records wake requests; ``on_send`` lets a test bring the host up."""

    def __init__(self, outcomes: list[str] | None = None, on_send: Callable[[HostModel], None] | None = None) -> None:
        self.outcomes = list(outcomes or [])
        self.on_send = on_send
        self.sent: list[str] = []

    def wake_host(self, host: HostModel) -> WakeAttempt:
        self.sent.append(host.name)
        outcome = self.outcomes.pop(0) if self.outcomes else "sent"

        if outcome == "sent" and self.on_send is not None:
            self.on_send(host)

        return WakeAttempt(
            host=host.name,
            mac=host.mac or "",
            packet_digest="0" * 16,
            outcome=outcome,
            packets_sent=1 if outcome == "sent" else 0,
            error=None if outcome == "sent" else "Network is unreachable",
        )


@pytest.fixture
def logger() -> logging.Logger:
    return logging.getLogger("wakeguard.tests")


@pytest.fixture
def hosts() -> list[HostModel]:
    return [
        HostModel(name="node1", ip="192.168.1.10", mac="AA:BB:CC:DD:EE:01"),
        HostModel(name="node2", ip="192.168.1.11", mac="AA:BB:CC:DD:EE:02"),
        HostModel(name="node3", ip="192.168.1.12", mac="AA:BB:CC:DD:EE:03"),
    ]


@pytest.fixture
def fast_policy() -> HostsPolicyModel:
    return HostsPolicyModel(
        debounce_threshold=2,
        confirm_interval=0.01,
        confirm_deadline=0.05,
        wake_retries=3,
        retry_backoff=0,
    )


@pytest.fixture
def wake_log(logger: logging.Logger) -> WakeLogCollector:
    return WakeLogCollector(logger=logger)


def make_classifier(probe: FakeProbe, policy: HostsPolicyModel, logger: logging.Logger, wake_log: WakeLogCollector | None = None, tcp_ports: list[int] | None = None) -> PowerStateClassifier:
    config = ProbeModel(ping_timeout=0.1, tcp_timeout=0.1, tcp_ports=[22] if tcp_ports is None else tcp_ports)
    return PowerStateClassifier(probe, config, policy, logger=logger, wake_log=wake_log)  # type: ignore[arg-type]
