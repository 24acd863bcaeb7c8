import socket
import logging
import threading
import unittest

import paramiko

from vpn_jumpstart.ssh import (
    Firewall, Shell, ConnectionFailed, SessionFailed, ike_sa_command,
    ipsec_sa_command,
)


LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())
HOST_KEY = paramiko.RSAKey.generate(2048)
USERNAME = 'admin'
PASSWORD = 's3cret'


def _closed_port():
    s = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    s.bind(('127.0.0.1', 0))
    port = s.getsockname()[1]
    s.close()
    return port


class SSHServer(paramiko.ServerInterface):
    def __init__(self, test_server):
        self._test_server = test_server

    def get_allowed_auths(self, username):
        return 'password'

    def check_auth_password(self, username, password):
        if (username, password) == (USERNAME, PASSWORD):
            return paramiko.AUTH_SUCCESSFUL
        return paramiko.AUTH_FAILED

    def check_channel_request(self, kind, chanid):
        if kind == 'session':
            return paramiko.OPEN_SUCCEEDED
        return paramiko.OPEN_FAILED_ADMINISTRATIVELY_PROHIBITED

    def check_channel_shell_request(self, channel):
        LOGGER.debug('shell request')
        return self._test_server.allow_shell


class TestServer:
    "Records the lines written to every shell session it serves."

    def __init__(self):
        self.allow_shell = True
        self.sessions = []
        self.session_done = threading.Semaphore(0)
        self._stopping = threading.Event()
        self._socket = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        self._socket.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        self._socket.bind(('127.0.0.1', 0))
        self._socket.listen(100)
        self._socket.settimeout(0.1)
        self.port = self._socket.getsockname()[1]
        self._thread = threading.Thread(target=self._run, daemon=True)
        self._thread.start()

    def _read_session(self, channel):
        data = b''
        while True:
            chunk = channel.recv(1024)
            if not chunk:
                break
            data += chunk
        channel.close()
        self.sessions.append(data.decode().splitlines())
        self.session_done.release()

    def _handle_client(self, client):
        t = paramiko.Transport(client)
        try:
            t.add_server_key(HOST_KEY)
            t.start_server(server=SSHServer(self))
            while t.is_active() and not self._stopping.is_set():
                channel = t.accept(0.1)
                if channel is None:
                    continue
                threading.Thread(
                    target=self._read_session, args=(channel,),
                    daemon=True).start()

        except Exception:
            LOGGER.exception('failure handling client')

        finally:
            t.close()

    def _run(self):
        try:
            while not self._stopping.is_set():
                try:
                    client, addr = self._socket.accept()

                except socket.timeout:
                    continue

                threading.Thread(
                    target=self._handle_client, args=(client,),
                    daemon=True).start()

        finally:
            self._socket.close()

    def wait_sessions(self, count, timeout=5.0):
        for _ in range(count):
            if not self.session_done.acquire(timeout=timeout):
                return False
        return True

    def stop(self):
        self._stopping.set()
        self._thread.join()


class SSHServerTestCase(unittest.TestCase):
    def setUp(self):
        self.server = TestServer()
        self.firewall = Firewall(
            '127.0.0.1', USERNAME, PASSWORD, port=self.server.port)

    def tearDown(self):
        self.firewall.disconnect()
        self.server.stop()


class FirewallTestCase(SSHServerTestCase):
    def test_connect(self):
        self.assertFalse(self.firewall.connected)
        self.firewall.connect()
        self.assertTrue(self.firewall.connected)
        self.assertTrue(self.firewall.alive)
        self.firewall.disconnect()
        self.assertFalse(self.firewall.connected)
        self.assertFalse(self.firewall.alive)

    def test_bad_password(self):
        firewall = Firewall(
            '127.0.0.1', USERNAME, 'wrong', port=self.server.port)
        with self.assertRaises(ConnectionFailed):
            firewall.connect()
        self.assertFalse(firewall.connected)

    def test_connection_refused(self):
        firewall = Firewall(
            '127.0.0.1', USERNAME, PASSWORD, port=_closed_port())
        with self.assertRaises(ConnectionFailed):
            firewall.connect()
        self.assertFalse(firewall.connected)

    def test_shell_not_connected(self):
        with self.assertRaises(SessionFailed):
            self.firewall.open_shell()

    def test_shell_refused(self):
        self.server.allow_shell = False
        self.firewall.connect()
        with self.assertRaises(SessionFailed):
            self.firewall.open_shell()

    def test_commands(self):
        delays = []
        self.firewall.connect()
        with self.firewall.open_shell(delay=2, sleep=delays.append) as shell:
            shell.run(ike_sa_command('gw-acme'))
            shell.run(ipsec_sa_command('tun-acme'))
        self.assertTrue(shell.closed)
        if not self.server.wait_sessions(1):
            self.fail('Session not closed')
        self.assertEqual(self.server.sessions, [[
            'test vpn ike-sa gateway gw-acme',
            'test vpn ipsec-sa tunnel tun-acme',
        ]])
        self.assertEqual(delays, [2, 2])

    def test_session_per_shell(self):
        self.firewall.connect()
        for i in range(3):
            with self.firewall.open_shell(sleep=lambda s: None) as shell:
                shell.run(f'show clock {i}')
        if not self.server.wait_sessions(3):
            self.fail('Sessions not closed')
        self.assertEqual(
            sorted(self.server.sessions),
            [['show clock 0'], ['show clock 1'], ['show clock 2']])


class FakeFile:
    def __init__(self, error=None):
        self.data = b''
        self.closed = False
        self._error = error

    def write(self, data):
        if self._error:
            raise self._error
        self.data += data

    def flush(self):
        pass

    def close(self):
        self.closed = True
        if self._error:
            raise self._error


class ShellTestCase(unittest.TestCase):
    def test_run(self):
        stdin, channel = FakeFile(), FakeFile()
        shell = Shell(channel, stdin, delay=2, sleep=lambda s: None)
        shell.run('show clock')
        self.assertEqual(stdin.data, b'show clock\n')

    def test_write_error(self):
        stdin = FakeFile(OSError('Socket is closed'))
        shell = Shell(FakeFile(), stdin, sleep=lambda s: None)
        with self.assertRaises(SessionFailed):
            shell.run('show clock')

    def test_close_ignores_errors(self):
        stdin = FakeFile(OSError('Socket is closed'))
        channel = FakeFile()
        shell = Shell(channel, stdin)
        shell.close()
        self.assertTrue(shell.closed)
        self.assertTrue(stdin.closed)
        self.assertTrue(channel.closed)
        shell.close()

    def test_run_closed(self):
        shell = Shell(FakeFile(), FakeFile())
        shell.close()
        with self.assertRaises(SessionFailed):
            shell.run('show clock')
