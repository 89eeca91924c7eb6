import asyncio

import aiohttp
import pytest
from aiohttp import web

import keysync.config


@pytest.fixture
def key_routes():
    """Keys served by the :func:`keyserver` fixture, by identity.

    Each value is either the body to serve, or a dict with "body" and
    optionally "status" and "delay" (in seconds) keys::

        def test_something(key_routes, keyserver):
            key_routes["alice"] = "ssh-ed25519 AAAA alice\\n"
            key_routes["bob"] = {"body": "", "status": 500}

    Unknown identities get a 404.
    """
    return {}


@pytest.fixture
async def keyserver(aiohttp_server, key_routes):
    """Serves /<identity>.keys like GitHub does.

    The server object gets a few extra attributes: `template` is the key URL
    template to use, `requests` lists the requested identities, `completed`
    lists them in order of response and `peak` is the maximum number of
    requests handled at once.
    """
    state = {'inflight': 0}

    async def handler(request):
        filename = request.match_info['filename']
        identity = filename[:-len('.keys')]
        server.requests.append(identity)
        state['inflight'] += 1
        server.peak = max(server.peak, state['inflight'])
        try:
            route = key_routes.get(identity)
            if route is None:
                return web.Response(status=404, text='Not Found')
            if not isinstance(route, dict):
                route = {'body': route}
            if route.get('delay'):
                await asyncio.sleep(route['delay'])
            body = route['body']
            if isinstance(body, str):
                body = body.encode('utf-8')
            server.completed.append(identity)
            return web.Response(status=route.get('status', 200), body=body)
        finally:
            state['inflight'] -= 1

    app = web.Application()
    app.router.add_get('/{filename:.+\\.keys}', handler)
    server = await aiohttp_server(app)
    server.template = f'http://{server.host}:{server.port}/{{identity}}.keys'
    server.requests = []
    server.completed = []
    server.peak = 0
    return server


@pytest.fixture
async def session():
    async with aiohttp.ClientSession() as session:
        yield session


@pytest.fixture
def keyfile(tmp_path):
    return tmp_path / 'home' / '.ssh' / 'authorized_keys'


@pytest.fixture
def make_config(keyfile, keyserver):
    """Builds a validated Config pointing to the test key server."""

    def configure_func(**kwargs):
        cfg = {
            'authorized_keys_file': str(keyfile),
            'identities': ['alice', 'bob'],
            'sync_interval': '10s',
            'key_url': keyserver.template,
        }
        cfg.update(kwargs)
        return keysync.config.from_dict(cfg)

    return configure_func
