import logging
import asyncio
import re
import socket
import shutil
import struct
from typing import Optional
from wakeguard.exceptions import AddressValidationError, ProbeError
from wakeguard.libraries.cmd_exec import CmdExec, CmdExecError, CmdExecProcessError
from wakeguard.libraries.validators import validate_ipv4
from wakeguard.models.power import ProbeResult

__all__ = ['NetworkProbe']

_LATENCY_PATTERN = re.compile(r'time[=<]([0-9.]+)\s*ms')
_GATEWAY_PATTERN = re.compile(r'^default\s+via\s+(\S+)', re.MULTILINE)

# ping exits non-zero both for "no reply" and for "could not send"; these mean the latter
_PING_FAULTS = ('operation not permitted', 'permission denied', 'socket:')

class NetworkProbe:
    """
    Reachability checks used by the classifier.

    Anything exposing the same ``ping_host`` and ``check_port`` coroutines can
    be injected in its place.
    """

    def __init__(self, *, ping_timeout: float = 2, tcp_timeout: float = 2, logger: Optional[logging.Logger] = None):
        self._ping_timeout: float = ping_timeout
        self._tcp_timeout: float = tcp_timeout

        self._logger: logging.Logger = logger or logging.getLogger(__name__)

    async def ping_host(self, address: str, timeout: float | None = None, *, host: str | None = None) -> ProbeResult:
        self._require_ipv4(address)

        timeout = timeout or self._ping_timeout
        host = host or address

        try:
            output = await asyncio.wait_for(CmdExec.ping(address, count=1, timeout=timeout), timeout=timeout)
        except asyncio.TimeoutError:
            self._logger.debug(f'Ping to {address} timed out after {timeout}s')
            return ProbeResult(host=host, kind='ping', succeeded=False, error='timeout')
        except CmdExecError as e:
            self._logger.warning(f'Ping to {address} could not be executed: {e}')
            return ProbeResult(host=host, kind='ping', succeeded=False, error=str(e), errored=True)
        except CmdExecProcessError as e:
            message = str(e)

            if any(fault in message.lower() for fault in _PING_FAULTS):
                self._logger.warning(f'Ping to {address} failed to run: {message}')
                return ProbeResult(host=host, kind='ping', succeeded=False, error=message, errored=True)

            self._logger.debug(f'No ping reply from {address} (exit code {e.code})')
            return ProbeResult(host=host, kind='ping', succeeded=False, error=message or 'no reply')

        match = _LATENCY_PATTERN.search(output)
        latency = float(match.group(1)) if match else None

        return ProbeResult(host=host, kind='ping', succeeded=True, latency=latency)

    async def check_port(self, address: str, port: int, timeout: float | None = None, *, host: str | None = None) -> ProbeResult:
        self._require_ipv4(address)

        if not 0 < port < 65536:
            raise ValueError(f'Invalid port: {port}')

        timeout = timeout or self._tcp_timeout
        host = host or address
        loop = asyncio.get_running_loop()
        start = loop.time()

        try:
            _, writer = await asyncio.wait_for(asyncio.open_connection(address, port), timeout=timeout)
        except asyncio.TimeoutError:
            self._logger.debug(f'TCP probe {address}:{port} timed out after {timeout}s')
            return ProbeResult(host=host, kind='tcp_port', port=port, succeeded=False, error='timeout')
        except OSError as e:
            # refused, host/network unreachable: the host did not answer
            self._logger.debug(f'TCP probe {address}:{port} failed: {e}')
            return ProbeResult(host=host, kind='tcp_port', port=port, succeeded=False, error=str(e) or type(e).__name__)

        latency = round((loop.time() - start) * 1000, 3)

        writer.close()

        try:
            await asyncio.wait_for(writer.wait_closed(), timeout=timeout)
        except (asyncio.TimeoutError, OSError) as e:
            self._logger.debug(f'Error closing TCP probe connection to {address}:{port}: {e}')

        return ProbeResult(host=host, kind='tcp_port', port=port, succeeded=True, latency=latency)

    async def get_default_gateway(self) -> str | None:
        try:
            output = await CmdExec.exec(['ip', 'route', 'show', 'default'], timeout=5)
        except (CmdExecError, CmdExecProcessError, asyncio.TimeoutError) as e:
            self._logger.debug(f'Could not query routing table with "ip": {e}')
        else:
            match = _GATEWAY_PATTERN.search(output)

            if match and validate_ipv4(match.group(1)):
                return match.group(1)

        gateway = self._read_proc_gateway()

        if gateway is None:
            self._logger.warning('No default gateway found')

        return gateway

    async def wait_for_host(self, address: str, timeout: float = 60, interval: float = 5) -> bool:
        loop = asyncio.get_running_loop()
        deadline = loop.time() + timeout

        while True:
            result = await self.ping_host(address, timeout=min(self._ping_timeout, timeout))

            if result.succeeded:
                return True

            remaining = deadline - loop.time()

            if remaining <= 0:
                return False

            await asyncio.sleep(min(interval, remaining))

    def _read_proc_gateway(self, path: str = '/proc/net/route') -> str | None:
        try:
            with open(path, 'r') as f:
                lines = f.readlines()[1:]
        except OSError as e:
            self._logger.debug(f'Could not read {path}: {e}')
            return None

        for line in lines:
            fields = line.split()

            if len(fields) < 4 or fields[1] != '00000000':
                continue

            # RTF_GATEWAY
            if not int(fields[3], 16) & 0x2:
                continue

            return socket.inet_ntoa(struct.pack('<L', int(fields[2], 16)))

        return None

    def check_capabilities(self) -> None:
        if shutil.which('ping') is None:
            raise ProbeError('"ping" is not available, only TCP probes will work')

    def _require_ipv4(self, address: str) -> None:
        if not validate_ipv4(address):
            raise AddressValidationError(f'Invalid IPv4 address: {address!r}', address)
