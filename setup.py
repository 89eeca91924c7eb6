#! /usr/bin/env python
# SPDX-License-Identifier: GPL-3.0-or-later

from setuptools import setup, find_packages

setup(
    name='SSH-KeySync',
    version='1.0',
    description='Keeps an SSH authorized_keys file in sync with remote '
                'public key listings',
    packages=find_packages(include=['keysync', 'keysync.*']),
    python_requires='>=3.8',
    install_requires=[
        'aiohttp',
        'prometheus_client',
        'PyYAML',
    ],
    extras_require={
        'test': [
            'pytest',
            'pytest-aiohttp',
            'pytest-asyncio',
            'pytest-mock',
        ],
    },
    entry_points={
        'console_scripts': ['keysync = keysync.__main__:run'],
    },
    zip_safe=False,
)
