import os
import logging
from dataclasses import dataclass

import yaml


LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())

FIREWALLS = {
    'prod': os.getenv('PAN_PROD_HOST', 'palo-prod-fw1.example.com'),
    'test': os.getenv('PAN_TEST_HOST', 'palo-test-fw01.example.com'),
}
SSH_PORT = 22
CONFIG_FILE = 'config.yml'
INTERVAL = 15
COMMAND_DELAY = 2.0
ON_ERROR_EXIT = 'exit'
ON_ERROR_RECONNECT = 'reconnect'
ON_ERROR_POLICIES = (ON_ERROR_EXIT, ON_ERROR_RECONNECT)


class JumpstartError(Exception):
    pass


class ConfigError(JumpstartError):
    pass


class Customer:
    "A customer VPN connection to jumpstart."

    def __init__(self, name, gateway, tunnel):
        self.name = name
        self.gateway = gateway
        self.tunnel = tunnel

    @staticmethod
    def from_dict(dict):
        try:
            return Customer(
                str(dict['customer_name']),
                str(dict['customer_gateway']),
                str(dict['customer_tunnel']),
            )

        except KeyError as e:
            raise ConfigError(f'Customer entry is missing {e.args[0]}')

    def __str__(self):
        return f'{self.name} ({self.gateway}/{self.tunnel})'

    def __repr__(self):
        return f'<Customer {self}>'

    def __eq__(self, other):
        return self.name == other.name and \
               self.gateway == other.gateway and \
               self.tunnel == other.tunnel

    def to_dict(self):
        return {
            'customer_name': self.name,
            'customer_gateway': self.gateway,
            'customer_tunnel': self.tunnel,
        }


@dataclass(frozen=True)
class Settings:
    host: str
    username: str
    password: str
    customers: tuple = ()
    port: int = SSH_PORT
    interval: int = INTERVAL
    command_delay: float = COMMAND_DELAY
    on_error: str = ON_ERROR_EXIT

    def __repr__(self):
        # Keep the password out of logs and tracebacks.
        return (
            f'Settings(host={self.host!r}, port={self.port}, '
            f'username={self.username!r}, customers={len(self.customers)}, '
            f'interval={self.interval}, on_error={self.on_error!r})'
        )


def load_credentials(environ=None):
    "Read firewall credentials from PAN_USERNAME and PAN_PASSWORD."
    environ = os.environ if environ is None else environ
    credentials = []
    for name in ('PAN_USERNAME', 'PAN_PASSWORD'):
        value = environ.get(name)
        if value is None:
            raise ConfigError(f'{name} environment variable not set.')
        if value == '':
            raise ConfigError(f'{name} cannot be blank.')
        credentials.append(value)
    return tuple(credentials)


def ssh_port(environ=None):
    "Firewall SSH port, PAN_SSH_PORT overrides the default."
    environ = os.environ if environ is None else environ
    value = environ.get('PAN_SSH_PORT') or SSH_PORT
    try:
        port = int(value)

    except ValueError:
        port = 0
    if not 0 < port < 65536:
        raise ConfigError(f'Invalid PAN_SSH_PORT: {value}')
    return port


def resolve_firewall(environment):
    if not environment:
        raise ConfigError('Firewall environment needs to be set.')
    try:
        return FIREWALLS[environment]

    except KeyError:
        raise ConfigError(
            f'Invalid firewall environment: {environment} '
            f'(choose from {", ".join(FIREWALLS)})')


def load_customers(path):
    "Load the ordered customer list from a YAML file."
    LOGGER.debug('Loading customers from: %s', path)
    try:
        with open(path, 'r') as f:
            data = yaml.safe_load(f)

    except OSError as e:
        raise ConfigError(f'Cannot read {path}: {e.strerror or e}')

    except yaml.YAMLError as e:
        raise ConfigError(f'Invalid YAML in {path}: {e}')

    if data is None:
        data = []
    if not isinstance(data, list):
        raise ConfigError(f'{path} must contain a list of customers')

    customers = []
    for i, record in enumerate(data):
        if not isinstance(record, dict):
            raise ConfigError(f'{path}: entry #{i + 1} is not a mapping')
        customers.append(Customer.from_dict(record))

    LOGGER.debug('Loaded %i customers', len(customers))
    return tuple(customers)
