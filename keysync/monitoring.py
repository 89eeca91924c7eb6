# SPDX-License-Identifier: GPL-3.0-or-later

from prometheus_client import start_http_server, Counter, Gauge, Summary

keysync_cycle_summary = Summary(
    'keysync_cycle_summary',
    'Summary of synchronisation cycles')

keysync_cycle_failures = Counter(
    'keysync_cycle_failures',
    'Number of failed synchronisation cycles',
    labelnames=('step',))

keysync_last_success_timestamp = Gauge(
    'keysync_last_success_timestamp',
    'Time of the last successful synchronisation')

keysync_identities = Gauge(
    'keysync_identities',
    'Number of identities whose keys are synchronised')


def monitoring_start(port):
    start_http_server(port)
