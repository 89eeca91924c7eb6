# SPDX-License-Identifier: GPL-3.0-or-later

"""Configuration loading and validation.

The configuration is a YAML document read once at startup, e.g.::

    authorized_keys_file: /root/.ssh/authorized_keys
    identities: [alice, bob]
    sync_interval: 5m
"""

import collections
import math
import os
import re

import yaml

DEFAULT_CFG_PATH = '/etc/keysync/config.yml'
DEFAULT_KEY_URL = 'https://github.com/{identity}.keys'
DEFAULT_FETCH_TIMEOUT = 30.0

DURATION_UNITS = {
    'ms': 0.001,
    's': 1,
    'sec': 1,
    'm': 60,
    'min': 60,
    'h': 3600,
    'd': 86400,
}
DURATION_RE = re.compile(r'(\d+(?:\.\d+)?)\s*([a-z]+)')


class ConfigReadError(Exception):
    pass


class ConfigError(Exception):
    pass


Config = collections.namedtuple('Config', [
    'authorized_keys_file',
    'identities',
    'sync_interval',
    'key_url',
    'fetch_timeout',
    'cycle_timeout',
    'max_concurrency',
    'atomic_write',
    'owner',
    'monitoring_port',
], defaults=(
    DEFAULT_KEY_URL,
    DEFAULT_FETCH_TIMEOUT,
    None,
    None,
    False,
    None,
    None,
))


def parse_duration(value):
    """Return the number of seconds described by `value`.

    `value` is either a number of seconds or a human readable string such as
    "5m", "1h 30m" or "500ms". Raise a ValueError if it cannot be parsed.
    """
    if isinstance(value, bool):
        raise ValueError(f'invalid duration: {value!r}')
    if isinstance(value, (int, float)):
        return _finite(float(value), value)
    if not isinstance(value, str):
        raise ValueError(f'invalid duration: {value!r}')

    text = value.strip().lower()
    try:
        seconds = float(text)
    except ValueError:
        pass
    else:
        return _finite(seconds, value)

    pos = 0
    total = 0.0
    for match in DURATION_RE.finditer(text):
        if text[pos:match.start()].strip():
            break
        amount, unit = match.groups()
        if unit not in DURATION_UNITS:
            raise ValueError(f'unknown duration unit {unit!r} in {value!r}')
        total += float(amount) * DURATION_UNITS[unit]
        pos = match.end()
    if pos == 0 or text[pos:].strip():
        raise ValueError(f'invalid duration: {value!r}')
    return _finite(total, value)


def _finite(seconds, value):
    if not math.isfinite(seconds):
        raise ValueError(f'duration must be finite: {value!r}')
    return seconds


def _duration(cfg, field, default=None, required=False):
    value = cfg.get(field)
    if value is None:
        if required:
            raise ConfigError(f'missing required field: {field}')
        return default
    try:
        seconds = parse_duration(value)
    except ValueError as e:
        raise ConfigError(f'{field}: {e}') from None
    if seconds <= 0:
        raise ConfigError(f'{field} must be positive, got {value!r}')
    return seconds


def from_dict(cfg):
    """Validate a parsed configuration mapping and return a Config."""
    if not isinstance(cfg, dict):
        raise ConfigError('configuration must be a mapping')

    path = cfg.get('authorized_keys_file')
    if not path or not isinstance(path, str):
        raise ConfigError('missing required field: authorized_keys_file')

    identities = cfg.get('identities')
    if not isinstance(identities, list) or not identities:
        raise ConfigError('identities must be a non-empty list')
    for identity in identities:
        if not isinstance(identity, str) or not identity:
            raise ConfigError(f'invalid identity: {identity!r}')

    key_url = cfg.get('key_url', DEFAULT_KEY_URL)
    if not isinstance(key_url, str) or '{identity}' not in key_url:
        raise ConfigError('key_url must contain an {identity} placeholder')

    max_concurrency = cfg.get('max_concurrency')
    if max_concurrency is not None and (
        isinstance(max_concurrency, bool)
        or not isinstance(max_concurrency, int)
        or max_concurrency < 1
    ):
        raise ConfigError('max_concurrency must be a positive integer')

    owner = cfg.get('owner')
    if owner is not None and not isinstance(owner, str):
        raise ConfigError('owner must be a user name')

    monitoring_port = cfg.get('monitoring_port')
    if monitoring_port is not None and (
        isinstance(monitoring_port, bool)
        or not isinstance(monitoring_port, int)
    ):
        raise ConfigError('monitoring_port must be an integer')

    atomic_write = cfg.get('atomic_write', False)
    if not isinstance(atomic_write, bool):
        raise ConfigError('atomic_write must be true or false')

    return Config(
        authorized_keys_file=path,
        identities=tuple(identities),
        sync_interval=_duration(cfg, 'sync_interval', required=True),
        key_url=key_url,
        fetch_timeout=_duration(cfg, 'fetch_timeout',
                                default=DEFAULT_FETCH_TIMEOUT),
        cycle_timeout=_duration(cfg, 'cycle_timeout'),
        max_concurrency=max_concurrency,
        atomic_write=atomic_write,
        owner=owner,
        monitoring_port=monitoring_port,
    )


def load(path=None):
    """Load, validate and return the configuration file at `path`.

    If `path` is None, look for the "KEYSYNC_CONFIG" environment variable,
    or use DEFAULT_CFG_PATH otherwise. Raise a ConfigReadError if the file
    cannot be read or parsed, and a ConfigError if its content is invalid.
    """
    if path is None:
        path = os.environ.get('KEYSYNC_CONFIG', DEFAULT_CFG_PATH)

    try:
        with open(path, 'r') as cfg_fp:
            cfg = yaml.safe_load(cfg_fp)
    except IOError:
        raise ConfigReadError("%s does not exist (specify KEYSYNC_CONFIG?)"
                              % path)
    except yaml.YAMLError as e:
        raise ConfigReadError('%s is not valid YAML: %s' % (path, e))

    return from_dict(cfg)
