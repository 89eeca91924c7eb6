# SPDX-License-Identifier: GPL-3.0-or-later

import asyncio
import logging
import optparse
import signal
import sys

import keysync.config
import keysync.log
from keysync.errors import SetupError
from keysync.monitoring import monitoring_start
from keysync.scheduler import KeySync


async def main(config, once=False):
    sync = KeySync(config)
    if once:
        return await sync.run_single()

    loop = asyncio.get_running_loop()
    for signum in (signal.SIGINT, signal.SIGTERM):
        loop.add_signal_handler(signum, sync.stop)
    await sync.run_forever()
    return True


def run():
    parser = optparse.OptionParser()
    parser.add_option('-c', '--config', action='store', dest='config',
                      default=None,
                      help='Configuration file (default: $KEYSYNC_CONFIG or '
                           '%s).' % keysync.config.DEFAULT_CFG_PATH)
    parser.add_option('-l', '--local-logging', action='store_true',
                      dest='local_logging', default=False,
                      help='Activate logging to stderr.')
    parser.add_option('-v', '--verbose', action='store_true',
                      dest='verbose', default=False,
                      help='Verbose mode.')
    parser.add_option('--once', action='store_true', dest='once',
                      default=False,
                      help='Run a single synchronisation and exit.')
    options, args = parser.parse_args()

    keysync.log.setup_logging('keysync', verbose=options.verbose,
                              local=options.local_logging)
    logging.getLogger('asyncio').setLevel(logging.WARNING)

    try:
        config = keysync.config.load(options.config)
    except (keysync.config.ConfigReadError, keysync.config.ConfigError) as e:
        logging.error('invalid configuration: %s', e)
        sys.exit(1)

    if config.monitoring_port is not None:
        monitoring_start(config.monitoring_port)

    try:
        ok = asyncio.run(main(config, once=options.once))
    except SetupError as e:
        logging.error('%s', e)
        sys.exit(1)
    sys.exit(0 if ok else 1)


if __name__ == '__main__':
    run()
