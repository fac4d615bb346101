"""Shared fixtures: a fake Graph transport and in-memory byte sources."""

import json

import pytest

from graph_admin import graph_api


class FakeResponse:
    def __init__(self, status_code=200, body=None, headers=None, text=None):
        self.status_code = status_code
        self._body = body
        self.headers = headers or {}
        if text is not None:
            self.text = text
        elif body is not None:
            self.text = json.dumps(body)
        else:
            self.text = ''
        self.content = self.text.encode('utf-8')

    def json(self):
        if self._body is None:
            raise ValueError("No JSON body")
        return self._body


class FakeGraph:
    """
    Records every request and answers from a handler or a queue of responses.

    Request bodies are recorded by length only so large uploads stay cheap.
    """

    def __init__(self):
        self.calls = []
        self.queue = []
        self.handler = None

    def respond(self, *responses):
        self.queue.extend(responses)

    def _dispatch(self, method, url, headers=None, data=None, timeout=None):
        self.calls.append({
            'method': method,
            'url': url,
            'headers': dict(headers or {}),
            'size': len(data) if data is not None else None,
            'timeout': timeout,
        })
        if self.handler is not None:
            result = self.handler(method, url, headers or {}, data)
        else:
            assert self.queue, f"Unexpected {method} {url}"
            result = self.queue.pop(0)
        if isinstance(result, Exception):
            raise result
        return result

    def by_method(self, method):
        return [c for c in self.calls if c['method'] == method]


@pytest.fixture
def fake_graph(monkeypatch):
    graph = FakeGraph()
    monkeypatch.setattr(graph_api.requests, 'get',
                        lambda url, headers=None, timeout=None: graph._dispatch('GET', url, headers, None, timeout))
    monkeypatch.setattr(graph_api.requests, 'post',
                        lambda url, headers=None, data=None, timeout=None: graph._dispatch('POST', url, headers, data, timeout))
    monkeypatch.setattr(graph_api.requests, 'put',
                        lambda url, headers=None, data=None, timeout=None: graph._dispatch('PUT', url, headers, data, timeout))
    monkeypatch.setattr(graph_api.requests, 'delete',
                        lambda url, headers=None, timeout=None: graph._dispatch('DELETE', url, headers, None, timeout))
    return graph


class ZeroSource:
    """Byte source of `size` zero bytes with the FileSource read interface."""

    def __init__(self, size):
        self.size = size
        self.position = 0
        self.reads = []

    def read(self, n):
        n = max(0, min(n, self.size - self.position))
        self.position += n
        self.reads.append(n)
        return bytes(n)

    def read_all(self):
        return self.read(self.size)

    def hexdigest(self):
        return 'zero'


@pytest.fixture
def zero_source():
    return ZeroSource
