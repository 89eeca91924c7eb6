# SPDX-License-Identifier: GPL-3.0-or-later

"""Concurrent retrieval of the keys of all identities, and their assembly
into the content of an authorized_keys file.

The output of `format_aggregate` must stay byte-identical from one release
to another: each identity contributes a "# <identity>" comment line, its raw
keys and a trailing newline, and entries are joined with a newline.

>>> format_aggregate(['alice', 'bob'], ['keyA\\n', 'keyB\\n'])
'# alice\\nkeyA\\n\\n\\n# bob\\nkeyB\\n\\n'
"""

import asyncio
import logging

from keysync.config import DEFAULT_KEY_URL
from keysync.fetcher import fetch_keys


def format_block(identity, keys):
    return f"# {identity}\n{keys}\n"


def format_aggregate(identities, blocks):
    return "\n".join(
        format_block(identity, keys)
        for identity, keys in zip(identities, blocks)
    )


async def fetch_all(session, identities, template=DEFAULT_KEY_URL,
                    timeout=None, max_concurrency=None):
    """Fetches the keys of all `identities` concurrently.

    Returns the key blocks in the order of `identities`, whatever the order
    in which the fetches complete. If `max_concurrency` is set, at most that
    many fetches are in flight at once.

    The first failing fetch cancels all the others and its FetchError is
    raised.
    """
    semaphore = (asyncio.Semaphore(max_concurrency)
                 if max_concurrency is not None else None)

    async def fetch(identity):
        if semaphore is None:
            return await fetch_keys(session, identity, template, timeout)
        async with semaphore:
            return await fetch_keys(session, identity, template, timeout)

    tasks = [asyncio.ensure_future(fetch(identity)) for identity in identities]
    try:
        return await asyncio.gather(*tasks)
    finally:
        pending = [task for task in tasks if not task.done()]
        for task in pending:
            task.cancel()
        if pending:
            logging.debug('cancelled %d pending fetches', len(pending))
            await asyncio.gather(*pending, return_exceptions=True)


async def aggregate(session, identities, template=DEFAULT_KEY_URL,
                    timeout=None, max_concurrency=None):
    """Returns the authorized_keys content for `identities`."""
    blocks = await fetch_all(session, identities, template, timeout,
                             max_concurrency)
    return format_aggregate(identities, blocks)
