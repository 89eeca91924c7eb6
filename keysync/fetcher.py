# SPDX-License-Identifier: GPL-3.0-or-later

"""Retrieval of the public keys published for one identity."""

import asyncio
import logging
from urllib.parse import quote

import aiohttp

from keysync.config import DEFAULT_KEY_URL
from keysync.errors import FetchError, FetchTimeoutError


def key_url(identity, template=DEFAULT_KEY_URL):
    """Returns the URL of the key listing of `identity`."""
    if not identity:
        raise ValueError("identity must be a non-empty string")
    return template.format(identity=quote(identity, safe=''))


async def fetch_keys(session, identity, template=DEFAULT_KEY_URL,
                     timeout=None):
    """Fetches the key listing of `identity` using the `session` HTTP client.

    Returns the response body as text, unmodified. `timeout` is the total
    number of seconds allowed for the request, None leaves it to the session.

    Raises a FetchError if the request fails, if the server does not answer
    with a success status or if the body is not valid UTF-8. There is no
    retry: a failed fetch is only attempted again on the next cycle.
    """
    url = key_url(identity, template)
    kwargs = {}
    if timeout is not None:
        kwargs['timeout'] = aiohttp.ClientTimeout(total=timeout)

    logging.debug('fetching keys of %s from %s', identity, url)
    try:
        async with session.get(url, **kwargs) as resp:
            if not 200 <= resp.status < 300:
                raise FetchError(identity, url, f"HTTP status {resp.status}")
            body = await resp.read()
    except asyncio.TimeoutError:
        reason = ("timed out" if timeout is None
                  else f"timed out after {timeout}s")
        raise FetchTimeoutError(identity, url, reason) from None
    except (aiohttp.ClientError, OSError) as e:
        raise FetchError(identity, url, f"{type(e).__name__}: {e}") from e

    try:
        return body.decode('utf-8')
    except UnicodeDecodeError as e:
        raise FetchError(identity, url, f"invalid UTF-8 body: {e}") from e
