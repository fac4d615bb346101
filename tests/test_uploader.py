"""Unit tests for ChunkedUploader wire behaviour."""

import math

import pytest

from graph_admin.results import ErrorKind, UploadTarget
from graph_admin.uploader import (
    CHUNK_ALIGNMENT,
    DEFAULT_CHUNK_SIZE,
    SINGLE_SESSION_LIMIT,
    SMALL_FILE_LIMIT,
    ChunkedUploader,
    plan_fragments,
)

from conftest import FakeResponse

MiB = 1024 * 1024
ENDPOINT = "https://graph.microsoft.com/v1.0/sites/contoso.sharepoint.com,abc,def"
SESSION_URL = "https://contoso.sharepoint.com/_api/v2.0/uploadSession?guid=123&tempauth=xyz"


def parse_range(header):
    """'bytes 0-9/100' -> (0, 9, 100)"""
    span, total = header[len('bytes '):].split('/')
    start, end = span.split('-')
    return int(start), int(end), int(total)


def drive_handler(method, url, headers, data):
    if method == 'PUT' and url.endswith(':/content'):
        return FakeResponse(201, {'id': 'item-1', 'size': len(data)})
    if method == 'POST' and url.endswith(':/createUploadSession'):
        return FakeResponse(200, {'uploadUrl': SESSION_URL, 'expirationDateTime': '2030-01-01T00:00:00Z'})
    if method == 'PUT' and url == SESSION_URL:
        start, end, total = parse_range(headers['Content-Range'])
        if end == total - 1:
            return FakeResponse(201, {'id': 'item-1', 'size': total})
        return FakeResponse(202, {'nextExpectedRanges': [f"{end + 1}-"]})
    if method == 'DELETE':
        return FakeResponse(204)
    raise AssertionError(f"Unexpected {method} {url}")


@pytest.fixture
def drive(fake_graph):
    fake_graph.handler = drive_handler
    return fake_graph


def test_small_file_is_single_direct_put(drive, zero_source):
    target = UploadTarget(ENDPOINT, "Folder", "a.csv", 2 * MiB)
    result = ChunkedUploader().upload(target, zero_source(2 * MiB), "tok")

    assert result.success
    assert result.method == 'small'
    assert len(drive.calls) == 1
    call = drive.calls[0]
    assert call['method'] == 'PUT'
    assert call['url'] == f"{ENDPOINT}/drive/root:/Folder/a.csv:/content"
    assert call['headers']['Authorization'] == "Bearer tok"
    assert call['size'] == 2 * MiB


def test_small_file_below_threshold_by_one_byte(drive, zero_source):
    size = SMALL_FILE_LIMIT - 1
    result = ChunkedUploader().upload(UploadTarget(ENDPOINT, "", "x.bin", size), zero_source(size), "tok")

    assert result.success
    assert [c['method'] for c in drive.calls] == ['PUT']
    assert drive.calls[0]['url'] == f"{ENDPOINT}/drive/root:/x.bin:/content"


@pytest.mark.parametrize("size", [SMALL_FILE_LIMIT, 100 * MiB, SINGLE_SESSION_LIMIT - 1])
def test_medium_file_uses_one_session_put(drive, zero_source, size):
    target = UploadTarget(ENDPOINT, "Reports/2024", "big.xlsx", size)
    result = ChunkedUploader().upload(target, zero_source(size), "tok")

    assert result.success
    assert result.method == 'session'
    assert [c['method'] for c in drive.calls] == ['POST', 'PUT']

    post, put = drive.calls
    assert post['url'] == f"{ENDPOINT}/drive/root:/Reports/2024/big.xlsx:/createUploadSession"
    assert post['headers'] == {
        'Accept': 'application/json',
        'Content-Type': 'text/plain',
        'Authorization': 'bearer tok',
    }
    assert put['url'] == SESSION_URL
    assert put['headers']['Content-Range'] == f"bytes 0-{size - 1}/{size}"
    assert 'Authorization' not in put['headers']
    assert put['size'] == size


def test_large_file_fragments_are_contiguous_and_aligned(drive, zero_source):
    chunk = 4 * CHUNK_ALIGNMENT
    size = SINGLE_SESSION_LIMIT + 12345
    uploader = ChunkedUploader(chunk_size=chunk)
    result = uploader.upload(UploadTarget(ENDPOINT, "F", "huge.bin", size), zero_source(size), "tok")

    assert result.success
    assert result.method == 'chunked'
    posts = drive.by_method('POST')
    puts = drive.by_method('PUT')
    assert len(posts) == 1
    assert len(puts) == math.ceil(size / chunk)

    ranges = [parse_range(c['headers']['Content-Range']) for c in puts]
    assert ranges[0][0] == 0
    for (start, end, total), (next_start, _, _) in zip(ranges, ranges[1:]):
        assert end == next_start - 1
    assert all(total == size for _, _, total in ranges)
    assert ranges[-1][1] == size - 1

    for call in puts[:-1]:
        assert call['size'] % CHUNK_ALIGNMENT == 0
    assert puts[-1]['size'] == size % chunk
    assert sum(c['size'] for c in puts) == size


def test_250_mib_file_with_default_chunk_size(drive, zero_source):
    size = 250 * MiB
    result = ChunkedUploader().upload(UploadTarget(ENDPOINT, "Folder", "dump.bak", size),
                                      zero_source(size), "tok")

    assert result.success
    puts = drive.by_method('PUT')
    assert len(drive.by_method('POST')) == 1
    assert len(puts) == 5
    assert [c['size'] for c in puts] == [DEFAULT_CHUNK_SIZE] * 4 + [13107200]
    assert puts[0]['headers']['Content-Range'] == "bytes 0-62259199/262144000"
    assert puts[-1]['headers']['Content-Range'] == "bytes 249036800-262143999/262144000"


def test_evenly_divisible_file_sends_no_empty_fragment(drive, zero_source):
    chunk = CHUNK_ALIGNMENT * 100
    size = chunk * 8
    assert size >= SINGLE_SESSION_LIMIT
    source = zero_source(size)
    result = ChunkedUploader(chunk_size=chunk).upload(UploadTarget(ENDPOINT, "", "even.bin", size), source, "tok")

    assert result.success
    puts = drive.by_method('PUT')
    assert len(puts) == 8
    assert all(c['size'] == chunk for c in puts)


def test_session_creation_without_upload_url_fails(fake_graph, zero_source):
    fake_graph.respond(FakeResponse(200, {'uploadUrl': '   '}))
    size = 10 * MiB
    result = ChunkedUploader().upload(UploadTarget(ENDPOINT, "F", "a.bin", size), zero_source(size), "tok")

    assert not result.success
    assert result.error_kind == ErrorKind.SESSION_CREATION
    assert len(fake_graph.calls) == 1


def test_session_creation_http_error_is_not_retried(fake_graph, zero_source):
    fake_graph.respond(FakeResponse(403, {'error': {'code': 'accessDenied', 'message': 'Access denied'}}))
    size = 10 * MiB
    result = ChunkedUploader().upload(UploadTarget(ENDPOINT, "F", "a.bin", size), zero_source(size), "tok")

    assert result.error_kind == ErrorKind.SESSION_CREATION
    assert result.status_code == 403
    assert 'accessDenied' in result.message
    assert len(fake_graph.calls) == 1


def test_fragment_failure_aborts_and_cancels_session(fake_graph, zero_source):
    chunk = CHUNK_ALIGNMENT * 200
    size = SINGLE_SESSION_LIMIT + 1
    fake_graph.respond(
        FakeResponse(200, {'uploadUrl': SESSION_URL}),
        FakeResponse(202, {'nextExpectedRanges': [f"{chunk}-"]}),
        FakeResponse(500, {'error': {'code': 'generalException', 'message': 'boom'}}),
        FakeResponse(204),
    )
    result = ChunkedUploader(chunk_size=chunk).upload(UploadTarget(ENDPOINT, "F", "a.bin", size),
                                                      zero_source(size), "tok")

    assert not result.success
    assert result.error_kind == ErrorKind.TRANSFER
    assert result.status_code == 500
    assert [c['method'] for c in fake_graph.calls] == ['POST', 'PUT', 'PUT', 'DELETE']
    assert fake_graph.calls[-1]['url'] == SESSION_URL


def test_expired_session_is_reported_as_invalid(fake_graph, zero_source):
    size = 10 * MiB
    fake_graph.respond(
        FakeResponse(200, {'uploadUrl': SESSION_URL}),
        FakeResponse(404, {'error': {'code': 'itemNotFound', 'message': 'The upload session was not found'}}),
        FakeResponse(204),
    )
    result = ChunkedUploader().upload(UploadTarget(ENDPOINT, "F", "a.bin", size), zero_source(size), "tok")

    assert result.error_kind == ErrorKind.TRANSFER
    assert 'expired or invalid' in result.message
    assert len(fake_graph.by_method('PUT')) == 1


def test_cancel_can_be_disabled(fake_graph, zero_source):
    size = 10 * MiB
    fake_graph.respond(
        FakeResponse(200, {'uploadUrl': SESSION_URL}),
        FakeResponse(500, text='oops'),
    )
    uploader = ChunkedUploader(cancel_on_failure=False)
    result = uploader.upload(UploadTarget(ENDPOINT, "F", "a.bin", size), zero_source(size), "tok")

    assert result.error_kind == ErrorKind.TRANSFER
    assert fake_graph.by_method('DELETE') == []


def test_small_upload_failure_is_transfer_error(fake_graph, zero_source):
    fake_graph.respond(FakeResponse(409, {'error': {'code': 'nameAlreadyExists', 'message': 'exists'}}))
    result = ChunkedUploader().upload(UploadTarget(ENDPOINT, "F", "a.csv", 10), zero_source(10), "tok")

    assert result.error_kind == ErrorKind.TRANSFER
    assert result.status_code == 409


@pytest.mark.parametrize("chunk_size", [0, -CHUNK_ALIGNMENT, CHUNK_ALIGNMENT + 1, 3 * MiB])
def test_misaligned_chunk_size_rejected(chunk_size):
    with pytest.raises(ValueError):
        ChunkedUploader(chunk_size=chunk_size)


def test_plan_fragments_matches_uploader_arithmetic():
    fragments = list(plan_fragments(250 * MiB))

    assert len(fragments) == 5
    assert fragments[-1].length == 13107200
    assert fragments[-1].content_range == "bytes 249036800-262143999/262144000"
    assert list(plan_fragments(0)) == []


def test_upload_path_closes_file_on_success_and_failure(fake_graph, tmp_path, monkeypatch):
    path = tmp_path / "report #1.csv"
    path.write_bytes(b"a,b\n1,2\n")

    opened = []
    import graph_admin.uploader as uploader_module
    real_source = uploader_module.FileSource

    class TrackingSource(real_source):
        def __enter__(self):
            opened.append(self)
            return super().__enter__()

    monkeypatch.setattr(uploader_module, 'FileSource', TrackingSource)

    fake_graph.respond(FakeResponse(201, {'id': 'item-1'}))
    result = ChunkedUploader().upload_path(str(path), ENDPOINT, "Reports", "tok")
    assert result.success
    assert fake_graph.calls[0]['url'].endswith("/root:/Reports/report%20%EF%BC%831.csv:/content")
    assert result.content_hash

    fake_graph.respond(FakeResponse(500, text='down'))
    result = ChunkedUploader().upload_path(str(path), ENDPOINT, "Reports", "tok")
    assert not result.success

    assert len(opened) == 2
    assert all(source.closed for source in opened)


def test_upload_path_missing_file_is_transfer_failure(fake_graph, tmp_path):
    result = ChunkedUploader().upload_path(str(tmp_path / "gone.csv"), ENDPOINT, "Reports", "tok")

    assert not result.success
    assert result.error_kind == ErrorKind.TRANSFER
    assert result.target.size == 0
    assert result.target.display_path == "Reports/gone.csv"
    assert "gone.csv" in result.message
    assert fake_graph.calls == []


def test_read_error_mid_upload_fails_and_cancels_session(fake_graph, zero_source):
    chunk = CHUNK_ALIGNMENT * 200
    size = SINGLE_SESSION_LIMIT + 1
    source = zero_source(size)
    first_read = source.read

    def read(n):
        if source.position:
            raise OSError(5, 'Input/output error', 'a.bin')
        return first_read(n)

    source.read = read
    fake_graph.respond(
        FakeResponse(200, {'uploadUrl': SESSION_URL}),
        FakeResponse(202, {'nextExpectedRanges': [f"{chunk}-"]}),
        FakeResponse(204),
    )
    result = ChunkedUploader(chunk_size=chunk).upload(UploadTarget(ENDPOINT, "F", "a.bin", size), source, "tok")

    assert not result.success
    assert result.error_kind == ErrorKind.TRANSFER
    assert result.message.startswith("Cannot read a.bin")
    assert [c['method'] for c in fake_graph.calls] == ['POST', 'PUT', 'DELETE']


@pytest.mark.parametrize("size,responses", [
    (10, [FakeResponse(201, text='')]),
    (10 * MiB, [FakeResponse(200, {'uploadUrl': SESSION_URL}), FakeResponse(201, text='')]),
])
def test_confirmed_upload_without_json_body_succeeds(fake_graph, zero_source, size, responses):
    fake_graph.respond(*responses)
    result = ChunkedUploader().upload(UploadTarget(ENDPOINT, "F", "a.bin", size), zero_source(size), "tok")

    assert result.success
    assert result.item is None


def test_session_creation_with_non_json_body_fails(fake_graph, zero_source):
    fake_graph.respond(FakeResponse(200, text='<html>gateway</html>'))
    size = 10 * MiB
    result = ChunkedUploader().upload(UploadTarget(ENDPOINT, "F", "a.bin", size), zero_source(size), "tok")

    assert result.error_kind == ErrorKind.SESSION_CREATION
    assert len(fake_graph.calls) == 1
