import time
import logging

import paramiko

from vpn_jumpstart.config import JumpstartError, SSH_PORT, COMMAND_DELAY


LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())

# Palo Alto operational commands that kick a VPN tunnel.
IKE_SA = 'test vpn ike-sa gateway'
IPSEC_SA = 'test vpn ipsec-sa tunnel'
TIMEOUT = 30.0
SSH_ERRORS = (paramiko.SSHException, OSError, EOFError)


class ConnectionFailed(JumpstartError):
    pass


class SessionFailed(JumpstartError):
    pass


def ike_sa_command(gateway):
    return f'{IKE_SA} {gateway}'


def ipsec_sa_command(tunnel):
    return f'{IPSEC_SA} {tunnel}'


class Shell:
    """
    One interactive shell session on the firewall.

    Commands are written to the session's stdin and never read back, so
    a command is assumed to have worked once the delay after it passed.
    """

    def __init__(self, channel, stdin, delay=COMMAND_DELAY, sleep=time.sleep):
        self._channel = channel
        self._stdin = stdin
        self._delay = delay
        self._sleep = sleep

    @property
    def closed(self):
        return self._channel is None

    def run(self, command):
        if self.closed:
            raise SessionFailed('Shell is closed')
        LOGGER.info('Executing: %s', command)
        try:
            self._stdin.write(f'{command}\n'.encode())
            self._stdin.flush()

        except SSH_ERRORS as e:
            raise SessionFailed(f'Failed to send "{command}": {e}') from e

        self._sleep(self._delay)
        LOGGER.info('Execution Complete')

    def close(self):
        "Close stdin and the session, ignoring errors."
        if self.closed:
            return
        for closeable in (self._stdin, self._channel):
            try:
                closeable.close()

            except Exception:
                LOGGER.debug('error closing shell', exc_info=True)
        self._stdin = self._channel = None

    def __enter__(self):
        return self

    def __exit__(self, *args):
        self.close()


class Firewall:
    "The single SSH connection to a firewall."

    def __init__(self, host, username, password, port=SSH_PORT):
        self._host = host
        self._port = port
        self._user = username
        self._password = password
        self._ssh = None

    @property
    def connected(self):
        return self._ssh is not None

    @property
    def transport(self):
        return self._ssh.get_transport() if self._ssh else None

    @property
    def alive(self):
        transport = self.transport
        return transport is not None and transport.is_active()

    def connect(self):
        if self.connected:
            return
        LOGGER.info(
            'Connecting ssh %s@%s:%i', self._user, self._host, self._port)
        self._ssh = paramiko.SSHClient()
        # NOTE: the firewall host key is not verified, unknown keys only
        # produce a warning.
        self._ssh.set_missing_host_key_policy(paramiko.WarningPolicy())
        try:
            self._ssh.connect(
                hostname=self._host, port=self._port, username=self._user,
                password=self._password, look_for_keys=False,
                allow_agent=False, timeout=TIMEOUT, auth_timeout=TIMEOUT,
                banner_timeout=TIMEOUT,
            )

        except SSH_ERRORS as e:
            self._ssh.close()
            self._ssh = None
            raise ConnectionFailed(
                f'Cannot connect to {self._host}:{self._port}: {e}') from e

        LOGGER.debug('Established ssh connection')

    def disconnect(self):
        if not self.connected:
            return
        LOGGER.debug('Disconnecting ssh')
        self._ssh.close()
        self._ssh = None

    def reconnect(self):
        self.disconnect()
        self.connect()

    def open_shell(self, delay=COMMAND_DELAY, sleep=time.sleep):
        "Open a new session, grab its stdin and start the shell."
        if not self.alive:
            raise SessionFailed(f'Not connected to {self._host}')
        try:
            channel = self.transport.open_session(timeout=TIMEOUT)

        except SSH_ERRORS as e:
            raise SessionFailed(f'Cannot open session: {e}') from e

        try:
            stdin = channel.makefile_stdin('wb')
            channel.invoke_shell()

        except SSH_ERRORS as e:
            channel.close()
            raise SessionFailed(f'Cannot start shell: {e}') from e

        return Shell(channel, stdin, delay=delay, sleep=sleep)
