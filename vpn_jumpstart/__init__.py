import time
import logging
import threading

from vpn_jumpstart.config import ON_ERROR_RECONNECT
from vpn_jumpstart.ssh import (
    Firewall, ConnectionFailed, SessionFailed, ike_sa_command,
    ipsec_sa_command,
)


LOGGER = logging.getLogger(__name__)
LOGGER.addHandler(logging.NullHandler())

RECONNECT_DELAY = 10
SEPARATOR = '-' * 30


class Refresher:
    """
    Jumpstarts every customer tunnel on a firewall, forever.

    One connection is made up front and reused. Every iteration opens a
    fresh shell, sends the IKE-SA and IPsec-SA test commands for each
    customer in order and closes the shell again before sleeping.
    """

    def __init__(self, settings, firewall=None, sleep=time.sleep):
        self.settings = settings
        self.firewall = firewall or Firewall(
            settings.host, settings.username, settings.password,
            port=settings.port)
        self._sleep = sleep
        self._stopping = threading.Event()
        self.iteration = 1

    @property
    def stopping(self):
        return self._stopping.is_set()

    def refresh(self, iteration):
        "Run a single pass over all customers."
        LOGGER.info('Starting iteration # %i', iteration)
        shell = self.firewall.open_shell(
            delay=self.settings.command_delay, sleep=self._sleep)
        with shell:
            for customer in self.settings.customers:
                LOGGER.info('Refreshing connection: %s', customer.name)
                shell.run(ike_sa_command(customer.gateway))
                shell.run(ipsec_sa_command(customer.tunnel))
                LOGGER.info('Refresh complete for: %s', customer.name)
                LOGGER.info(SEPARATOR)
        LOGGER.info('Processing Complete for iteration # %i.', iteration)

    def _recover(self):
        LOGGER.exception('Iteration # %i failed', self.iteration)
        if self._stopping.wait(RECONNECT_DELAY):
            return
        try:
            self.firewall.reconnect()

        except ConnectionFailed:
            LOGGER.exception('Reconnect failed, retrying next iteration')

    def run_forever(self):
        self.firewall.connect()
        try:
            while not self.stopping:
                try:
                    self.refresh(self.iteration)

                except SessionFailed:
                    if self.settings.on_error != ON_ERROR_RECONNECT:
                        raise
                    self._recover()

                self.iteration += 1
                LOGGER.info('Waiting for next iteration (%i)..', self.iteration)
                self._stopping.wait(self.settings.interval * 60)

        finally:
            self.firewall.disconnect()

    def stop(self):
        self._stopping.set()
