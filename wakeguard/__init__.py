import sys
import argparse
from pydantic import ValidationError
from wakeguard.manager import WakeguardManager, EXIT_INTERNAL
from wakeguard.exceptions import WakeguardRuntimeError
from wakeguard.info import __app_name__, __version__, __description__

def main():
    # get args from command line
    parser = argparse.ArgumentParser(description=__description__)

    parser.add_argument('--config', dest='config_file', help='Alternative config file')
    parser.add_argument('--log', dest='log_file', help='Log file where to write logs')
    parser.add_argument('--log-level', dest='log_level', help='Log level', choices=['DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL'])
    parser.add_argument('--version', action='version', version=f'{__app_name__} {__version__}')

    subparsers = parser.add_subparsers(title="Commands", dest="command")

    check_parser = subparsers.add_parser('check', help='Check the power state of hosts')
    check_parser.add_argument('targets', nargs='*', metavar='HOST', help='Host names or IPv4 addresses')
    check_parser.add_argument('-a', '--all', dest='check_all', action='store_true', help='Check all hosts in the inventory')
    check_parser.add_argument('--json', dest='as_json', action='store_true', help='Output results as JSON')

    wake_parser = subparsers.add_parser('wake', help='Wake a host and wait until it is online')
    wake_parser.add_argument('target', metavar='HOST|MAC', help='Host name or MAC address')
    wake_parser.add_argument('-f', '--force', action='store_true', help='Send the packet without checking the host state first')
    wake_parser.add_argument('-c', '--count', type=int, default=3, help='Number of packets to send when forcing (default: 3)')
    wake_parser.add_argument('-b', '--broadcast', help='Broadcast address for a forced send')
    wake_parser.add_argument('-p', '--port', type=int, help='UDP port for a forced send')
    wake_parser.add_argument('-i', '--interface', help='Source address to send a forced packet from')
    wake_parser.add_argument('-w', '--wait', action='store_true', help='Wait for a forced host to come online')
    wake_parser.add_argument('-t', '--timeout', type=float, help='Seconds to wait with --wait')

    status_parser = subparsers.add_parser('status', help='Show the power and wake state of all hosts')
    status_parser.add_argument('--json', dest='as_json', action='store_true', help='Output as JSON')

    subparsers.add_parser('watch', help='Run as daemon, keep hosts awake and react to wake triggers')

    subparsers.add_parser('reload', help='Reload the configuration of the running daemon')

    subparsers.add_parser('gateway', help='Show the default gateway')

    logs_parser = subparsers.add_parser('logs', help='Show recorded wake events')
    logs_parser.add_argument('--host', help='Only entries for this host')
    logs_parser.add_argument('-d', '--days', type=float, help='Only entries of the last N days')
    logs_parser.add_argument('-n', '--limit', type=int, help='Show at most N entries')
    logs_parser.add_argument('--analyze', action='store_true', help='Show statistics instead of entries')
    logs_parser.add_argument('--json', dest='as_json', action='store_true', help='Output as JSON')

    args = parser.parse_args()

    try:
        wakeguard = WakeguardManager(log_file=args.log_file, log_level=args.log_level, config_file=args.config_file)
    except ValidationError as e:
        print(f"Configuration file contains {e.error_count()} error(s):")

        for error in e.errors(include_url=False):
            loc = '.'.join(str(x) for x in error['loc']) if error['loc'] else 'general'
            print(f"  - {loc}: {error['msg']}")

        print(f"\nCheck documentation for more information on how to configure {__app_name__}")
        sys.exit(EXIT_INTERNAL)
    except WakeguardRuntimeError as e:
        print(f"Error: {e}")
        sys.exit(EXIT_INTERNAL)

    if args.command == 'check':
        code = wakeguard.check(args.targets, check_all=args.check_all, as_json=args.as_json)
    elif args.command == 'wake':
        code = wakeguard.wake(args.target, force=args.force, count=args.count, broadcast=args.broadcast, port=args.port, interface=args.interface, wait=args.wait, timeout=args.timeout)
    elif args.command == 'status':
        code = wakeguard.status(as_json=args.as_json)
    elif args.command == 'watch':
        code = wakeguard.run_forever()
    elif args.command == 'reload':
        code = wakeguard.reload()
    elif args.command == 'gateway':
        code = wakeguard.gateway()
    elif args.command == 'logs':
        code = wakeguard.logs(host=args.host, days=args.days, limit=args.limit, analyze=args.analyze, as_json=args.as_json)
    else:
        code = wakeguard.check([], check_all=True)

    sys.exit(code)
