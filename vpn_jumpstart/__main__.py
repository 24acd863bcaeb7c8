import os
import sys
import signal
import logging
import argparse

from vpn_jumpstart import Refresher
from vpn_jumpstart.config import (
    Settings, JumpstartError, ConfigError, CONFIG_FILE, INTERVAL,
    ON_ERROR_EXIT, ON_ERROR_POLICIES, load_credentials, load_customers,
    resolve_firewall, ssh_port,
)


LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()

LOGGER = logging.getLogger()
LOGGER.addHandler(logging.NullHandler())


def _positive_int(value):
    value = int(value)
    if value < 1:
        raise ValueError(value)
    return value


def _parser():
    parser = argparse.ArgumentParser(
        prog='vpn-jumpstart',
        description='Refresh Palo Alto firewall VPN tunnels listed in a '
                    'YAML configuration file.',
    )
    parser.add_argument(
        '-c', dest='config_file', default=CONFIG_FILE,
        help=f'Configuration filename (default is {CONFIG_FILE}). '
             'Example: "%(prog)s -c custom.yml"')
    parser.add_argument(
        '-i', dest='interval', default=str(INTERVAL),
        help=f'Iteration interval in minutes (default {INTERVAL})')
    parser.add_argument(
        '-e', dest='environment', default='',
        help='Firewall environment (prod, test). Example: "%(prog)s -e prod"')
    parser.add_argument(
        '--on-error', dest='on_error', default=ON_ERROR_EXIT,
        help='What to do when an iteration fails: exit (default) or '
             'reconnect')
    parser.add_argument('--log-level', type=str, default=LOG_LEVEL)
    return parser


def _handlers():
    "Progress goes to stdout, warnings and errors to stderr."
    stdout = logging.StreamHandler(sys.stdout)
    stdout.addFilter(lambda record: record.levelno < logging.WARNING)
    stderr = logging.StreamHandler(sys.stderr)
    stderr.setLevel(logging.WARNING)
    return stdout, stderr


def _setup_logging(level):
    root = logging.getLogger()
    if not any(
            isinstance(h, logging.StreamHandler) for h in root.handlers):
        for handler in _handlers():
            root.addHandler(handler)
    root.setLevel(getattr(logging, level.upper(), logging.INFO))


def _usage_error(parser, message):
    print(f'[ERROR]: {message}', file=sys.stderr)
    parser.print_help(sys.stderr)
    return 1


def _settings(args):
    username, password = load_credentials()
    return Settings(
        host=resolve_firewall(args.environment),
        port=ssh_port(),
        username=username,
        password=password,
        customers=load_customers(args.config_file),
        interval=args.interval,
        on_error=args.on_error,
    )


def main(argv=None):
    parser = _parser()
    args = parser.parse_args(argv)
    _setup_logging(args.log_level)

    try:
        resolve_firewall(args.environment)
        args.interval = _positive_int(args.interval)
        if args.on_error not in ON_ERROR_POLICIES:
            raise ConfigError(f'Invalid --on-error: {args.on_error}')

    except ConfigError as e:
        return _usage_error(parser, e.args[0])

    except ValueError:
        return _usage_error(
            parser, f'Invalid iteration interval: {args.interval}')

    try:
        settings = _settings(args)
        LOGGER.debug('Loaded %r', settings)
        refresher = Refresher(settings)

    except JumpstartError as e:
        LOGGER.error('%s', e)
        return 1

    def _stop(signum, frame):
        LOGGER.info('Received signal %i, stopping', signum)
        refresher.stop()

    handlers = {
        signum: signal.signal(signum, _stop)
        for signum in (signal.SIGTERM, signal.SIGINT)
    }
    try:
        refresher.run_forever()

    except JumpstartError as e:
        LOGGER.debug('Refresh loop failed', exc_info=True)
        LOGGER.error('%s', e)
        return 1

    finally:
        for signum, handler in handlers.items():
            signal.signal(signum, handler)

    return 0


if __name__ == '__main__':
    sys.exit(main())
