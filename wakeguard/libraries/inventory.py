import logging
import asyncio
import json
import os
from typing import Any
from pydantic import ValidationError
from wakeguard.exceptions import WakeguardRuntimeError
from wakeguard.libraries.cmd_exec import CmdExec, CmdExecError, CmdExecProcessError
from wakeguard.libraries.validators import validate_ipv4
from wakeguard.models.host import HostModel
from wakeguard.models.inventory import InventoryModel, KubectlInventoryModel

__all__ = ['Inventory']

class Inventory:
    """
    Builds the host list from every configured source.

    Sources are read in order hosts file, kubectl, config; a host seen again
    later replaces the earlier record. A host failing validation is logged
    and dropped, the remaining ones are kept.

    The MAC address is optional. A host without one is still checked and
    reported, but every wake request for it is rejected.
    """

    def __init__(self, hosts: list[dict[str, Any]], config: InventoryModel, *, logger: logging.Logger):
        self._hosts: list[dict[str, Any]] = hosts
        self._config: InventoryModel = config

        self._logger: logging.Logger = logger

    async def load(self) -> list[HostModel]:
        hosts: dict[str, HostModel] = {}

        if self._config.hosts_file:
            for host in self.parse_hosts_file(self._config.hosts_file):
                hosts[host.name] = host

        if self._config.kubectl.enabled:
            try:
                for host in await self.query_kubectl(self._config.kubectl):
                    hosts[host.name] = host
            except WakeguardRuntimeError as e:
                self._logger.error(f'Inventory query failed: {e}')

        for data in self._hosts:
            host = self.ingest(data, source='config')

            if host:
                hosts[host.name] = host

        self._logger.debug(f'Inventory loaded with {len(hosts)} host(s)')

        return list(hosts.values())

    def ingest(self, data: dict[str, Any], *, source: str) -> HostModel | None:
        try:
            return HostModel(**data)
        except ValidationError as e:
            name = data.get('name') or '?'
            errors = '; '.join(f"{'.'.join(str(x) for x in error['loc']) or 'general'}: {error['msg']}" for error in e.errors(include_url=False))
            self._logger.warning(f'Rejected host "{name}" from {source}: {errors}')
            return None

    def parse_hosts_file(self, filepath: str) -> list[HostModel]:
        """Parse a ``hostname mac_address ip_address`` file, one host per line."""
        if not os.path.isfile(filepath):
            self._logger.error(f'Hosts file not found: {filepath}')
            return []

        hosts = []

        with open(filepath, 'r') as f:
            for number, line in enumerate(f, start=1):
                line = line.strip()

                if not line or line.startswith('#'):
                    continue

                fields = line.split()

                if len(fields) < 3:
                    self._logger.warning(f'Skipping incomplete line {filepath}:{number}: {line}')
                    continue

                host = self.ingest({'name': fields[0], 'mac': fields[1], 'ip': fields[2]}, source=f'{filepath}:{number}')

                if host:
                    hosts.append(host)

        return hosts

    async def query_kubectl(self, config: KubectlInventoryModel) -> list[HostModel]:
        cmd = ['kubectl', 'get', 'nodes', '-o', 'json']

        if config.context:
            cmd += ['--context', config.context]

        if config.selector:
            cmd += ['-l', config.selector]

        try:
            output = await CmdExec.exec(cmd, timeout=30)
            data = json.loads(output)
        except (CmdExecError, CmdExecProcessError, asyncio.TimeoutError) as e:
            raise WakeguardRuntimeError(f'kubectl failed: {e}') from e
        except ValueError as e:
            raise WakeguardRuntimeError(f'kubectl returned invalid JSON: {e}') from e

        hosts = []

        for item in data.get('items', []):
            metadata = item.get('metadata', {})
            name = metadata.get('name')
            labels = metadata.get('labels') or {}
            mac = (metadata.get('annotations') or {}).get(config.mac_annotation) or labels.get(config.mac_annotation)

            ip = None

            for address in item.get('status', {}).get('addresses', []):
                if address.get('type') == 'InternalIP' and validate_ipv4(address.get('address')):
                    ip = address['address']
                    break

            if not mac:
                self._logger.debug(f'Node "{name}" has no "{config.mac_annotation}" annotation. Skipping')
                continue

            host = self.ingest({'name': name, 'ip': ip, 'mac': mac, 'labels': {str(k): str(v) for k, v in labels.items()}}, source='kubectl')

            if host:
                hosts.append(host)

        return hosts
