import logging

LOGGER = logging.getLogger()
LOGGER.setLevel(logging.ERROR)
LOGGER.addHandler(logging.StreamHandler())

from tests.test_config import *
from tests.test_ssh import *
from tests.test_refresher import *
from tests.test_main import *
