import os
import json
import logging
import signal
import yaml
import datetime
import asyncio
from logging.handlers import TimedRotatingFileHandler
from pydantic import ValidationError
from wakeguard.exceptions import WakeguardRuntimeError, AddressValidationError, ProbeError, TransmissionError
from wakeguard.libraries.cmd_exec import CmdExec, CmdExecError, CmdExecProcessError
from wakeguard.libraries.inventory import Inventory
from wakeguard.libraries.journal import Journal
from wakeguard.libraries.net_probe import NetworkProbe
from wakeguard.libraries.trigger_listener import TriggerListener
from wakeguard.libraries.validators import validate_ipv4, validate_mac
from wakeguard.models.host import HostModel
from wakeguard.models.power import PowerState
from wakeguard.models.wake import WakeEvent
from wakeguard.models.wakeguard import WakeguardModel
from wakeguard.models.wol import WolModel
from wakeguard.services.classifier import PowerStateClassifier
from wakeguard.services.wake_log import WakeLogCollector
from wakeguard.services.watcher import EventWakeWatcher
from wakeguard.services.wol import WolService

__all__ = ['WakeguardManager', 'EXIT_OK', 'EXIT_PARTIAL', 'EXIT_INTERNAL', 'EXIT_TOTAL']

EXIT_OK = 0
EXIT_PARTIAL = 1
EXIT_INTERNAL = 2
EXIT_TOTAL = 3

class WakeguardManager:
    def __init__(self, *, log_file: str = '', log_level: str = '', config_file: str = '') -> None:
        self._log_file: str = log_file
        self._log_level: str = log_level
        self._config_file: str = config_file

        self._logger: logging.Logger = self._logger_factory(self._log_file, self._log_level)
        self._pid_filepath: str = self._get_pid_filepath()

        self._init()

    @property
    def config(self) -> WakeguardModel:
        return self._config

    @property
    def wake_log(self) -> WakeLogCollector:
        return self._wake_log

    def check(self, targets: list[str], *, check_all: bool = False, as_json: bool = False) -> int:
        return self._run_main(self._do_check, targets, check_all=check_all, as_json=as_json)

    def wake(self, target: str, *, force: bool = False, count: int | None = None, broadcast: str | None = None, port: int | None = None, interface: str | None = None, wait: bool = False, timeout: float | None = None) -> int:
        overrides = {key: value for key, value in (('broadcast', broadcast), ('port', port), ('interface', interface)) if value is not None}

        return self._run_main(self._do_wake, target, force=force, count=count, overrides=overrides, wait=wait, timeout=timeout)

    def status(self, *, as_json: bool = False) -> int:
        return self._run_main(self._do_status, as_json=as_json)

    def run_forever(self) -> int:
        return self._run_main(self._do_run_forever)

    def gateway(self) -> int:
        return self._run_main(self._do_gateway)

    def logs(self, *, host: str | None = None, days: float | None = None, limit: int | None = None, analyze: bool = False, as_json: bool = False) -> int:
        since = None

        if days is not None:
            since = datetime.datetime.now(datetime.timezone.utc) - datetime.timedelta(days=days)

        entries = self._wake_log.history(host=host, since=since, limit=limit)

        if analyze:
            summary = WakeLogCollector.summarize(entries)

            if as_json:
                print(json.dumps(summary, indent=2))
            else:
                self._print_summary(summary)

            return EXIT_OK

        if as_json:
            print(json.dumps([entry.model_dump(mode='json') for entry in entries], indent=2))
            return EXIT_OK

        for entry in entries:
            detail = ' '.join(f'{k}={v}' for k, v in entry.detail.items() if v is not None)
            print(f'{entry.recorded_at.astimezone().isoformat(timespec="seconds")} {entry.kind:<8} {entry.outcome:<12} {entry.host or "-"} {detail}'.rstrip())

        return EXIT_OK

    def reload(self) -> int:
        self._logger.info("Reloading the running service")

        return self._run_main(self._send_reload_signal)

    def _init(self) -> None:
        self._config: WakeguardModel = WakeguardModel(**self._load_config(file=self._config_file))
        self._wake_log: WakeLogCollector = self._wake_log_factory()
        self._probe: NetworkProbe = self._probe_factory()
        self._classifier: PowerStateClassifier = self._classifier_factory()
        self._wol: WolService = self._wol_factory()
        self._watcher: EventWakeWatcher = self._watcher_factory()
        self._inventory: Inventory = Inventory(self._config.hosts, self._config.inventory, logger=self._logger.getChild('inventory'))

    def _load_config(self, *, file: str = '') -> dict:
        config_files = [
            '/etc/wakeguard/config.yml',
            '/etc/opt/wakeguard/config.yml',
            os.path.expanduser('~/.config/wakeguard/config.yml'),
        ]

        if file:
            config_files = [file]

        file_to_load = None

        for config_file in config_files:
            if os.path.isfile(config_file):
                file_to_load = config_file
                break

        if not file_to_load:
            if file:
                raise WakeguardRuntimeError(f"Config file not found: {file}")

            self._logger.warning("No config file found. Running with defaults")
            return {}

        with open(file_to_load, 'r') as f:
            try:
                config = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise WakeguardRuntimeError(f"Failed to parse config file: {e}")

        if config is None:
            return {}

        if not isinstance(config, dict):
            raise WakeguardRuntimeError(f"Config file {file_to_load} must contain a mapping")

        self._logger.debug(f'Loaded config from {file_to_load}')

        return config

    def _get_pid_filepath(self) -> str:
        if os.getuid() == 0:
            return '/var/run/wakeguard.pid'
        else:
            return os.path.expanduser('~/.wakeguard.pid')

    def _get_data_filepath(self, name: str) -> str:
        if os.getuid() == 0:
            return f'/var/opt/wakeguard/{name}'
        else:
            return os.path.expanduser(f'~/.wakeguard/{name}')

    def _logger_factory(self, log_file: str, log_level: str) -> logging.Logger:
        levels = {
            "DEBUG": logging.DEBUG,
            "INFO": logging.INFO,
            "WARNING": logging.WARNING,
            "ERROR": logging.ERROR,
            "CRITICAL": logging.CRITICAL,
        }

        format = "%(asctime)s - %(name)s - %(levelname)s - %(message)s"

        if not log_level in levels:
            log_level = "INFO"

        logger = logging.getLogger()
        logger.setLevel(levels[log_level])

        if log_file:
            directory = os.path.dirname(log_file)

            if directory and not os.path.exists(directory):
                os.makedirs(directory)

            handler = TimedRotatingFileHandler(log_file, when="midnight", backupCount=4)
        else:
            handler = logging.StreamHandler()

        handler.setLevel(levels[log_level])
        handler.setFormatter(logging.Formatter(format))

        logger.addHandler(handler)

        return logger

    def _wake_log_factory(self) -> WakeLogCollector:
        wake_log_logger = self._logger.getChild('wake_log')
        config = self._config.wake_log

        journal = None

        if config.enabled:
            filepath = config.path or self._get_data_filepath('wake-log.jsonl')
            journal = Journal(filepath, logger=wake_log_logger)

        return WakeLogCollector(journal, logger=wake_log_logger, max_entries=config.max_entries)

    def _probe_factory(self) -> NetworkProbe:
        probe_logger = self._logger.getChild('probe')

        return NetworkProbe(ping_timeout=self._config.probe.ping_timeout, tcp_timeout=self._config.probe.tcp_timeout, logger=probe_logger)

    def _classifier_factory(self) -> PowerStateClassifier:
        classifier_logger = self._logger.getChild('classifier')

        return PowerStateClassifier(self._probe, self._config.probe, self._config.hosts_policy, logger=classifier_logger, wake_log=self._wake_log)

    def _wol_factory(self) -> WolService:
        wol_logger = self._logger.getChild('wol')

        return WolService(self._config.wol, logger=wol_logger)

    def _wol_with(self, overrides: dict) -> WolService:
        if not overrides:
            return self._wol

        # rebuilt rather than model_copy'd so the overrides are validated
        config = WolModel(**{**self._config.wol.model_dump(), **overrides})

        return WolService(config, logger=self._logger.getChild('wol'))

    def _watcher_factory(self) -> EventWakeWatcher:
        watcher_logger = self._logger.getChild('watcher')

        return EventWakeWatcher([], self._classifier, self._wol, self._config.hosts_policy, logger=watcher_logger, wake_log=self._wake_log)

    def _signal_handler(self, task: asyncio.Task, received: str) -> None:
        self._received_signal = received
        task.cancel()

    def _run_main(self, main_task, *args, **kwargs) -> int:
        run = True
        result = EXIT_OK

        while run:
            loop = asyncio.new_event_loop()
            asyncio.set_event_loop(loop)

            self._received_signal = None
            task = loop.create_task(main_task(*args, **kwargs))

            loop.add_signal_handler(signal.SIGTERM, self._signal_handler, task, 'exit')
            loop.add_signal_handler(signal.SIGINT, self._signal_handler, task, 'exit')
            loop.add_signal_handler(signal.SIGQUIT, self._signal_handler, task, 'exit')

            # on signal SIGHUP, reinitialize all data
            loop.add_signal_handler(signal.SIGHUP, self._signal_handler, task, 'reload')

            try:
                result = loop.run_until_complete(task)
                run = False
            except (asyncio.CancelledError) as e:
                if self._received_signal == 'reload':
                    self._logger.info("Received SIGHUP signal")
                    # reinitialize all data
                    try:
                        self._init()
                    except (ValidationError, WakeguardRuntimeError) as e:
                        self._logger.error(f'Reload failed, keeping previous configuration: {e}')
                else:
                    self._logger.info("Received termination signal")
                    result = EXIT_OK
                    run = False
            except (WakeguardRuntimeError) as e:
                self._logger.error(str(e))
                result = EXIT_INTERNAL
                run = False
            except (Exception) as e:
                self._logger.exception(e)
                result = EXIT_INTERNAL
                run = False
            finally:
                try:
                    self._cancel_tasks(loop)
                    loop.run_until_complete(loop.shutdown_asyncgens())
                finally:
                    asyncio.set_event_loop(None)
                    loop.close()

        return result

    def _cancel_tasks(self, loop: asyncio.AbstractEventLoop) -> None:
        tasks = asyncio.all_tasks(loop=loop)

        if not tasks:
            return

        for task in tasks:
            task.cancel()

        loop.run_until_complete(asyncio.gather(*tasks, return_exceptions=True))

        for task in tasks:
            if task.cancelled():
                continue

            if task.exception() is not None:
                loop.call_exception_handler({
                    'message': 'Unhandled exception during task cancellation',
                    'exception': task.exception(),
                    'task': task,
                })

    async def _load_hosts(self) -> list[HostModel]:
        hosts = await self._inventory.load()

        self._watcher.update_hosts(hosts)

        # drop state of hosts that left the inventory
        names = {host.name for host in hosts}
        self._classifier.forget([name for name in self._classifier.states() if name not in names])

        return hosts

    def _resolve_targets(self, targets: list[str], hosts: list[HostModel]) -> tuple[list[HostModel], list[str]]:
        by_name = {host.name: host for host in hosts}
        by_ip = {host.ip: host for host in hosts}

        resolved = []
        invalid = []

        for target in targets:
            if target in by_name:
                resolved.append(by_name[target])
            elif target in by_ip:
                resolved.append(by_ip[target])
            elif validate_ipv4(target):
                resolved.append(HostModel(name=target, ip=target))
            else:
                self._logger.error(f'"{target}" is neither a known host nor a valid IPv4 address')
                invalid.append(target)

        return resolved, invalid

    async def _do_check(self, targets: list[str], *, check_all: bool = False, as_json: bool = False) -> int:
        hosts = await self._load_hosts()

        if check_all:
            selected, invalid = hosts, []
        else:
            selected, invalid = self._resolve_targets(targets, hosts)

        if not selected and not invalid:
            self._logger.error('No hosts specified. Use --all to check all configured hosts')
            return EXIT_INTERNAL

        states = await self._classifier.classify(selected)

        self._print_states(states, invalid, as_json=as_json)

        verdicts = [state.verdict for state in states.values()] + ['invalid'] * len(invalid)

        if all(verdict == 'online' for verdict in verdicts):
            return EXIT_OK

        if all(verdict == 'unknown' for verdict in verdicts):
            return EXIT_INTERNAL

        if not any(verdict == 'online' for verdict in verdicts):
            return EXIT_TOTAL

        return EXIT_PARTIAL

    async def _do_wake(self, target: str, *, force: bool = False, count: int | None = None, overrides: dict | None = None, wait: bool = False, timeout: float | None = None) -> int:
        hosts = await self._load_hosts()
        host = next((host for host in hosts if host.name == target), None)

        if host is None and not validate_mac(target.upper().replace('-', ':')):
            self._logger.error(f'"{target}" is neither a known host nor a valid MAC address')
            return EXIT_INTERNAL

        if force or host is None:
            try:
                wol = self._wol_with(overrides or {})
            except ValidationError as e:
                for error in e.errors(include_url=False):
                    self._logger.error(f"Invalid {'.'.join(str(x) for x in error['loc'])}: {error['msg']}")
                return EXIT_INTERNAL

            return await self._force_wake(target, host, wol, count=count, wait=wait, timeout=timeout)

        if overrides:
            self._logger.warning('Broadcast, port and interface options only apply to forced sends. Using configured values')

        outcome = await self._watcher.handle(WakeEvent(host=host.name, reason='manual'))

        print(f'{outcome.host}: {outcome.status}' + (f' ({outcome.detail})' if outcome.detail else ''))

        if outcome.ok:
            return EXIT_OK

        if outcome.status == 'rejected':
            return EXIT_INTERNAL

        return EXIT_PARTIAL

    async def _force_wake(self, target: str, host: HostModel | None, wol: WolService, *, count: int | None = None, wait: bool = False, timeout: float | None = None) -> int:
        try:
            if host is not None:
                if not host.mac:
                    raise AddressValidationError(f'Host "{host.name}" does not have a MAC address configured')

                attempt = await asyncio.to_thread(wol.send_wake, host.mac, host=host.name, count=count)
            else:
                attempt = await asyncio.to_thread(wol.send_wake, target, count=count)
        except AddressValidationError as e:
            self._logger.error(str(e))
            return EXIT_INTERNAL

        self._wake_log.record_attempt(attempt, reason='forced')

        print(f'{attempt.host or attempt.mac}: {attempt.outcome} ({attempt.packets_sent} packet(s))')

        if attempt.outcome != 'sent':
            return EXIT_TOTAL

        if not wait:
            return EXIT_OK

        if host is None:
            self._logger.warning('No IP address known for target, cannot wait for online status')
            return EXIT_OK

        timeout = timeout or self._config.hosts_policy.confirm_deadline

        self._logger.info(f'Waiting for host "{host.name}" to come online (timeout: {timeout}s)...')

        if await self._probe.wait_for_host(host.ip, timeout=timeout, interval=self._config.hosts_policy.confirm_interval):
            self._wake_log.record_confirmation(host.name, 'confirmed', reason='forced')
            print(f'{host.name}: online')
            return EXIT_OK

        self._wake_log.record_confirmation(host.name, 'timed_out', reason='forced')
        print(f'{host.name}: did not come online within {timeout}s')

        return EXIT_PARTIAL

    async def _do_status(self, *, as_json: bool = False) -> int:
        states = await self._query_service_status()

        if states is None:
            self._logger.debug('No running service answered. Checking hosts directly')

            hosts = await self._load_hosts()

            states = {}

            for name, state in (await self._classifier.classify(hosts)).items():
                states[name] = {**state.model_dump(mode='json'), 'wake': self._watcher.host_state(name)}

        if as_json:
            print(json.dumps(states, indent=2))
            return EXIT_OK

        print(f'{"HOST":<30} {"STATUS":<10} {"WAKE":<16} {"FAILURES":<9} {"LAST CHECKED"}')

        for name, state in states.items():
            print(f'{name:<30} {state["verdict"]:<10} {state["wake"]:<16} {state["consecutive_failures"]:<9} {state["last_checked_at"] or "never"}')

        return EXIT_OK

    async def _query_service_status(self) -> dict | None:
        config = self._config.trigger

        if not config.enabled:
            return None

        writer = None

        try:
            reader, writer = await asyncio.wait_for(asyncio.open_connection(config.listen, config.port), timeout=2)
            writer.write(b'STATUS\n')
            await writer.drain()

            line = (await asyncio.wait_for(reader.readline(), timeout=5)).decode('utf-8').strip()
        except (asyncio.TimeoutError, OSError, UnicodeDecodeError) as e:
            self._logger.debug(f'Could not query service on {config.listen}:{config.port}: {e}')
            return None
        finally:
            if writer is not None:
                writer.close()

        if not line.startswith('OK '):
            self._logger.warning(f'Unexpected status reply from service: {line}')
            return None

        try:
            return json.loads(line[3:])
        except ValueError as e:
            self._logger.warning(f'Invalid status reply from service: {e}')
            return None

    async def _do_gateway(self) -> int:
        gateway = await self._probe.get_default_gateway()

        if gateway is None:
            print('No default gateway')
            return EXIT_TOTAL

        print(gateway)

        return EXIT_OK

    async def _do_run_forever(self) -> int:
        # run as service
        pid = str(os.getpid())

        if os.path.isfile(self._pid_filepath):
            self._logger.error("Service is already running")
            return EXIT_INTERNAL

        try:
            self._wol.check_broadcast()
        except TransmissionError as e:
            raise WakeguardRuntimeError(str(e)) from e

        try:
            self._probe.check_capabilities()
        except ProbeError as e:
            self._logger.warning(str(e))

        with open(self._pid_filepath, 'w') as f:
            f.write(pid)

        self._logger.info(f'Starting service with pid {pid}')

        listener = None

        try:
            self._logger.info("Running initial inventory and checks")

            await self._check_hosts()

            tasks = [
                asyncio.create_task(self._watcher.run()),
                asyncio.create_task(self._check_hosts_task()),
            ]

            if self._config.trigger.enabled:
                listener = TriggerListener(self._config.trigger, self._watcher, self._classifier, logger=self._logger.getChild('trigger'))
                await listener.start()

            await asyncio.gather(*tasks, return_exceptions=True)

            for task in tasks:
                if task.cancelled():
                    continue

                if task.exception() is not None:
                    self._logger.error(f'Task failed with exception: {task.exception()}')
        finally:
            if listener is not None:
                await listener.close()

            if os.path.isfile(self._pid_filepath):
                os.remove(self._pid_filepath)

        return EXIT_OK

    async def _check_hosts_task(self) -> None:
        run_time = datetime.datetime.now().replace(microsecond=0)

        while True:
            # calculate the next scheduled run_time
            run_time += datetime.timedelta(seconds=self._config.hosts_policy.check_interval)

            # calculate the time left until the next run_time
            time_left = (run_time - datetime.datetime.now()).total_seconds()

            if time_left > 0:
                self._logger.debug(f'Hosts check run in {time_left} s')
                await asyncio.sleep(time_left)
            else:
                self._logger.debug('Running hosts check now')
                run_time = datetime.datetime.now().replace(microsecond=0) + datetime.timedelta(seconds=self._config.hosts_policy.check_interval)

            try:
                await self._check_hosts()
            except Exception as e:
                self._logger.exception(e)

    async def _check_hosts(self) -> None:
        hosts = await self._load_hosts()

        # hosts with a wake in progress are polled by their wake workflow
        idle_hosts = [host for host in hosts if not self._watcher.in_progress(host.name)]

        await self._classifier.classify(idle_hosts)

        for host in idle_hosts:
            if host.keep_awake and self._classifier.is_wake_candidate(host.name):
                self._watcher.submit(WakeEvent(host=host.name, reason='keep_awake'))

    async def _send_reload_signal(self) -> int:
        if not os.path.isfile(self._pid_filepath):
            self._logger.error('Service is not running')
            return EXIT_INTERNAL

        with open(self._pid_filepath, 'r') as f:
            pid = f.read().strip()

        if not pid.isdigit():
            self._logger.error(f'Invalid PID in {self._pid_filepath}: {pid}')
            return EXIT_INTERNAL

        try:
            await CmdExec.exec(['kill', '-HUP', pid])
            self._logger.info(f'Sent reload signal to process {pid}')
        except (CmdExecError, CmdExecProcessError) as e:
            self._logger.error(f'Failed to send reload signal to process {pid}: {e}')
            return EXIT_INTERNAL

        return EXIT_OK

    def _print_states(self, states: dict[str, PowerState], invalid: list[str], *, as_json: bool = False) -> None:
        online = sum(1 for state in states.values() if state.verdict == 'online')
        total = len(states) + len(invalid)

        if as_json:
            print(json.dumps({
                'timestamp': datetime.datetime.now().astimezone().isoformat(timespec='seconds'),
                'hosts': {
                    **{name: state.model_dump(mode='json') for name, state in states.items()},
                    **{name: {'host': name, 'verdict': 'invalid'} for name in invalid},
                },
                'summary': {'online': online, 'offline': total - online, 'total': total},
            }, indent=2))
            return

        print(f'{"HOST":<30} {"STATUS":<10} {"LATENCY":<12} {"FAILURES":<8}')

        for name, state in states.items():
            latency = f'{state.latency} ms' if state.latency is not None else 'N/A'
            print(f'{name:<30} {state.verdict:<10} {latency:<12} {state.consecutive_failures:<8}')

        for name in invalid:
            print(f'{name:<30} {"invalid":<10} {"N/A":<12} {"-":<8}')

        print(f'\nOnline: {online}  Offline: {total - online}  Total: {total}')

    def _print_summary(self, summary: dict) -> None:
        totals = summary['totals']

        print('Wake Event Summary')
        print(f'  Total events: {totals["events"]}')
        print(f'  WoL sent:     {totals["wol_sent"]}')
        print(f'  WoL failed:   {totals["wol_failed"]}')
        print(f'  Confirmed:    {totals["confirmed"]}')
        print(f'  Timed out:    {totals["timed_out"]}')
        print(f'  Failed:       {totals["failed"]}')

        if summary['hosts']:
            print('\nPer-Host Statistics')

            for host, stats in summary['hosts'].items():
                print(f'  {host:<20} Sent: {stats["sent"]:<4} Confirmed: {stats["confirmed"]:<4} Timed out: {stats["timed_out"]:<4} Success: {stats["success_rate"]}%')

        if summary['by_hour']:
            print('\nTime-of-Day Distribution')

            for hour, count in summary['by_hour'].items():
                print(f'  {hour:02d}:00 - {hour:02d}:59  [{count:3d}] {"#" * (count // 2)}')
