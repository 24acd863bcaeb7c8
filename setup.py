#!/bin/env python

import os
from setuptools import setup


package_name = 'vpn-jumpstart'
version = '0.1'
readme = os.path.join(os.path.dirname(__file__), 'README.rst')
with open(readme) as readme_file:
    long_description = readme_file.read()


setup(
    name = package_name,
    version = version,
    install_requires=['paramiko>=2.6', 'PyYAML'],
    description = "Periodically refresh Palo Alto firewall VPN tunnels.",
    long_description = long_description,
    license = 'MIT',
    packages = ['vpn_jumpstart'],
    python_requires = '>=3.7',
    entry_points = {
        'console_scripts': [
            'vpn-jumpstart = vpn_jumpstart.__main__:main',
        ],
    },
    classifiers = (
          'Development Status :: 4 - Beta',
          'Intended Audience :: System Administrators',
          'Operating System :: OS Independent',
          'Programming Language :: Python :: 3',
          'Topic :: System :: Networking :: Firewalls',
    ),
)
