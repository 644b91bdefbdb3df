import logging
import hashlib
import socket
import time
from wakeonlan import create_magic_packet, send_magic_packet
from wakeguard.exceptions import AddressValidationError, TransmissionError
from wakeguard.libraries.validators import normalize_mac
from wakeguard.models.host import HostModel
from wakeguard.models.wake import WakeAttempt
from wakeguard.models.wol import WolModel

__all__ = ['WolService']

class WolService:
    def __init__(self, config: WolModel, *, logger: logging.Logger):
        self._config: WolModel = config

        self._logger: logging.Logger = logger

    def send_wake(self, mac_address: str, *, host: str | None = None, count: int | None = None) -> WakeAttempt:
        """
        Send the magic packet for ``mac_address`` to the configured broadcast address.

        Raises AddressValidationError for a malformed MAC. Transmission faults
        are not raised: they are reported as a ``send_failed`` attempt and
        retrying is left to the caller.
        """
        mac = normalize_mac(mac_address)
        count = count or self._config.count

        digest = hashlib.sha256(create_magic_packet(mac)).hexdigest()[:16]
        target = f'{self._config.broadcast}:{self._config.port}'

        sent = 0
        error = None

        for i in range(count):
            if i and self._config.packet_interval:
                time.sleep(self._config.packet_interval)

            try:
                send_magic_packet(mac, ip_address=self._config.broadcast, port=self._config.port, interface=self._config.interface)
                sent += 1
            except OSError as e:
                error = str(e)
                self._logger.warning(f'Failed to send Wake-on-LAN packet {i + 1}/{count} to {mac} via {target}: {e}')

        label = f'"{host}" ({mac})' if host else mac

        if sent:
            self._logger.info(f'Wake-on-LAN packet sent to {label} via {target} ({sent}/{count})')
            outcome = 'sent'
        else:
            self._logger.error(f'Could not send Wake-on-LAN packet to {label}: {error}')
            outcome = 'send_failed'

        return WakeAttempt(host=host, mac=mac, packet_digest=digest, outcome=outcome, packets_sent=sent, error=error)

    def check_broadcast(self) -> None:
        try:
            with socket.socket(socket.AF_INET, socket.SOCK_DGRAM) as sock:
                sock.setsockopt(socket.SOL_SOCKET, socket.SO_BROADCAST, 1)
        except OSError as e:
            raise TransmissionError(f'Cannot open a broadcast socket: {e}') from e

    def wake_host(self, host: HostModel) -> WakeAttempt:
        if not host.mac:
            raise AddressValidationError(f'Host "{host.name}" does not have a MAC address configured')

        return self.send_wake(host.mac, host=host.name)
