import asyncio

import pytest

from keysync.aggregator import aggregate, format_aggregate, format_block
from keysync.errors import FetchError


def test_format_block():
    assert format_block('alice', 'keyA\n') == '# alice\nkeyA\n\n'


def test_format_aggregate_exact_bytes():
    text = format_aggregate(['alice', 'bob'], ['keyA\n', 'keyB\n'])
    assert text == '# alice\nkeyA\n\n\n# bob\nkeyB\n\n'


def test_format_aggregate_single():
    assert format_aggregate(['alice'], ['keyA\n']) == '# alice\nkeyA\n\n'


def test_format_aggregate_keeps_raw_blocks():
    text = format_aggregate(['alice', 'bob'], ['keyA', ''])
    assert text == '# alice\nkeyA\n\n# bob\n\n'


async def test_aggregate(session, keyserver, key_routes):
    key_routes['alice'] = 'keyA\n'
    key_routes['bob'] = 'keyB\n'
    text = await aggregate(session, ['alice', 'bob'], keyserver.template)
    assert text == '# alice\nkeyA\n\n\n# bob\nkeyB\n\n'


async def test_order_independent_of_completion(session, keyserver,
                                               key_routes):
    key_routes['alice'] = {'body': 'keyA\n', 'delay': 0.2}
    key_routes['bob'] = 'keyB\n'
    text = await aggregate(session, ['alice', 'bob'], keyserver.template)
    assert keyserver.completed == ['bob', 'alice']
    assert text == '# alice\nkeyA\n\n\n# bob\nkeyB\n\n'


async def test_duplicates_are_kept(session, keyserver, key_routes):
    key_routes['alice'] = 'keyA\n'
    text = await aggregate(session, ['alice', 'alice'], keyserver.template)
    assert text == '# alice\nkeyA\n\n\n# alice\nkeyA\n\n'
    assert keyserver.requests == ['alice', 'alice']


async def test_fetches_concurrently(session, keyserver, key_routes):
    for name in ('alice', 'bob', 'carol'):
        key_routes[name] = {'body': name + '\n', 'delay': 0.1}
    await aggregate(session, ['alice', 'bob', 'carol'], keyserver.template)
    assert keyserver.peak == 3


async def test_max_concurrency(session, keyserver, key_routes):
    for name in ('alice', 'bob', 'carol'):
        key_routes[name] = {'body': name + '\n', 'delay': 0.05}
    text = await aggregate(session, ['alice', 'bob', 'carol'],
                           keyserver.template, max_concurrency=1)
    assert keyserver.peak == 1
    assert text.startswith('# alice\n')


async def test_fail_fast(session, keyserver, key_routes):
    key_routes['alice'] = 'keyA\n'
    key_routes['carol'] = {'body': 'keyC\n', 'delay': 1}
    with pytest.raises(FetchError) as excinfo:
        await asyncio.wait_for(
            aggregate(session, ['alice', 'bob', 'carol'], keyserver.template),
            0.5)
    assert excinfo.value.identity == 'bob'
    assert 'carol' not in keyserver.completed
