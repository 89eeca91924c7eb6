# SPDX-License-Identifier: GPL-3.0-or-later

"""The synchronisation loop.

Every `sync_interval` seconds, the keys of all configured identities are
fetched and written to the authorized_keys file. A failing cycle is logged
and skipped, the loop itself only stops on `KeySync.stop()`.
"""

import asyncio
import contextlib
import logging
import time

import aiohttp

from keysync import aggregator
from keysync.errors import FetchError, FetchTimeoutError, WriteError
from keysync.monitoring import (
    keysync_cycle_failures,
    keysync_cycle_summary,
    keysync_identities,
    keysync_last_success_timestamp)
from keysync.writer import AuthorizedKeysWriter


def remaining_delay(interval, elapsed):
    """Returns how long to sleep after a cycle that took `elapsed` seconds.

    Slow cycles are followed immediately by the next one.
    """
    return max(interval - elapsed, 0)


class KeySync:
    def __init__(self, config, session=None, writer=None):
        self.config = config
        self.clock = time.monotonic
        self.cycles = 0
        # For testing, we can use an existing client. Its lifecycle is then
        # handled externally.
        self._session = session
        self._writer = writer or AuthorizedKeysWriter(
            config.authorized_keys_file,
            atomic=config.atomic_write,
            owner=config.owner)
        self._stopping = asyncio.Event()

    @contextlib.asynccontextmanager
    async def _client(self):
        if self._session is not None:
            yield self._session
            return

        async with aiohttp.ClientSession() as session:
            self._session = session
            try:
                yield session
            finally:
                self._session = None

    def setup(self):
        """Prepares the destination file. Raises a SetupError on failure."""
        self._writer.setup()
        keysync_identities.set(len(self.config.identities))

    async def fetch(self):
        coro = aggregator.aggregate(
            self._session, self.config.identities,
            template=self.config.key_url,
            timeout=self.config.fetch_timeout,
            max_concurrency=self.config.max_concurrency)
        if self.config.cycle_timeout is None:
            return await coro
        try:
            return await asyncio.wait_for(coro, self.config.cycle_timeout)
        except asyncio.TimeoutError:
            raise FetchTimeoutError(
                None, None,
                f"cycle deadline of {self.config.cycle_timeout}s exceeded"
            ) from None

    async def run_once(self):
        """Runs one synchronisation cycle. Returns whether it succeeded."""
        self.cycles += 1
        start = self.clock()
        logging.info('synchronising keys of %s',
                     ', '.join(self.config.identities))

        try:
            keys = await self.fetch()
        except FetchError as e:
            logging.error('cycle %d: fetch failed, keeping previous keys: %s',
                          self.cycles, e)
            keysync_cycle_failures.labels(step='fetch').inc()
            return False

        try:
            self._writer.write(keys)
        except WriteError as e:
            logging.error('cycle %d: write failed: %s', self.cycles, e)
            keysync_cycle_failures.labels(step='write').inc()
            return False

        duration = max(self.clock() - start, 0)
        keysync_cycle_summary.observe(duration)
        keysync_last_success_timestamp.set_to_current_time()
        logging.info('cycle %d: synchronised %d identities in %.2fs',
                     self.cycles, len(self.config.identities), duration)
        return True

    async def sleep(self, delay):
        """Sleeps for `delay` seconds, or until stop() is called."""
        with contextlib.suppress(asyncio.TimeoutError):
            await asyncio.wait_for(self._stopping.wait(), delay)

    async def run_forever(self):
        """Sets up the destination and runs cycles until stop() is called.

        A SetupError is raised if the destination cannot be prepared.
        """
        self.setup()
        try:
            async with self._client():
                while not self._stopping.is_set():
                    start = self.clock()
                    await self.run_once()
                    delay = remaining_delay(self.config.sync_interval,
                                            self.clock() - start)
                    if delay > 0 and not self._stopping.is_set():
                        logging.debug('next cycle in %.2fs', delay)
                        await self.sleep(delay)
        finally:
            self._writer.close()
        logging.info('synchronisation stopped')

    async def run_single(self):
        """Sets up the destination and runs exactly one cycle."""
        self.setup()
        try:
            async with self._client():
                return await self.run_once()
        finally:
            self._writer.close()

    def stop(self):
        logging.info('stopping after the current cycle')
        self._stopping.set()
