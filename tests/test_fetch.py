import io
import datetime as dt
from unittest import mock

import httpx
import pytest
from conftest import RecordingSink

from copybench.pool import BufferPool
from copybench.transfer import ReadError, WriteError
from copybench.fetch import *


BODY = b'<html><body>' + b'hello world\n' * 10000 + b'</body></html>'


def handler(request):
    if request.url.path == '/':
        # Deliver the body in awkwardly sized chunks, like a network would
        return httpx.Response(200, content=iter(
            BODY[i:i + 1500] for i in range(0, len(BODY), 1500)))
    elif request.url.path == '/moved':
        return httpx.Response(301, headers={'Location': '/'})
    elif request.url.path == '/broken':
        def chunks():
            yield BODY[:1000]
            raise httpx.ReadError('connection reset', request=request)
        return httpx.Response(200, content=chunks())
    else:
        return httpx.Response(404, content=b'not found')


@pytest.fixture()
def client(request):
    # Not opened with "with" here as main() does that itself, and a client
    # cannot be opened twice
    client = httpx.Client(
        transport=httpx.MockTransport(handler), follow_redirects=True)
    yield client
    client.close()


@pytest.fixture()
def mock_client(client):
    with mock.patch('copybench.fetch.make_client') as make_client:
        make_client.return_value = client
        yield make_client


def test_response_reader():
    response = httpx.Response(200, content=iter([b'abc', b'', b'defgh']))
    body = ResponseReader(response)
    assert body.readable()
    assert body.read(2) == b'ab'
    assert body.read(4) == b'c'
    assert body.read(4) == b'defg'
    assert body.read(4) == b'h'
    assert body.read(4) == b''


def test_response_reader_readinto():
    response = httpx.Response(200, content=iter([b'abcdef']))
    body = ResponseReader(response)
    buf = bytearray(4)
    assert body.readinto(buf) == 4
    assert buf == b'abcd'
    assert body.readinto(buf) == 2
    assert buf[:2] == b'ef'
    assert body.readinto(buf) == 0


def test_response_reader_readall():
    response = httpx.Response(200, content=iter([b'abc', b'defgh']))
    assert ResponseReader(response).read() == b'abcdefgh'


def test_fetch_stream(client):
    target = io.BytesIO()
    assert fetch(client, 'http://example.com/', target) == len(BODY)
    assert target.getvalue() == BODY


def test_fetch_stream_pooled(client):
    pool = BufferPool(4096)
    for i in range(3):
        target = RecordingSink()
        assert fetch(
            client, 'http://example.com/', target, pool=pool) == len(BODY)
        assert target.getvalue() == BODY
        # Chunks never exceed the transfer buffer
        assert max(len(chunk) for chunk in target.chunks) <= 4096
    assert pool.allocated == 1
    assert pool.outstanding == 0


def test_fetch_no_stream(client):
    target = RecordingSink()
    assert fetch(
        client, 'http://example.com/', target, stream=False) == len(BODY)
    assert target.writes == 1
    assert target.getvalue() == BODY


def test_fetch_redirect(client):
    target = io.BytesIO()
    assert fetch(client, 'http://example.com/moved', target) == len(BODY)
    assert target.getvalue() == BODY


def test_fetch_not_found(client):
    target = RecordingSink()
    with pytest.raises(httpx.HTTPStatusError):
        fetch(client, 'http://example.com/missing', target)
    assert target.writes == 0


def test_fetch_read_failure(client):
    pool = BufferPool(4096)
    target = RecordingSink()
    with pytest.raises(ReadError) as err:
        fetch(client, 'http://example.com/broken', target, pool=pool)
    assert isinstance(err.value.__cause__, httpx.ReadError)
    assert err.value.transferred == 1000
    assert target.getvalue() == BODY[:1000]
    assert pool.outstanding == 0

    with pytest.raises(ReadError):
        fetch(client, 'http://example.com/broken', target, stream=False)


def test_fetch_write_failure(client):
    pool = BufferPool(4096)
    with pytest.raises(WriteError):
        fetch(
            client, 'http://example.com/', RecordingSink(fail_after=2),
            pool=pool)
    assert pool.outstanding == 0


def test_make_client():
    conf = mock.Mock(timeout=dt.timedelta(seconds=30))
    with make_client(conf) as client:
        assert client.timeout.read == 30.0
        assert client.follow_redirects


def test_help(capsys):
    with pytest.raises(SystemExit) as err:
        main(['--version'])
    assert err.value.code == 0
    capture = capsys.readouterr()
    assert capture.out.strip() == '0.1'

    with pytest.raises(SystemExit) as err:
        main(['--help'])
    assert err.value.code == 0
    capture = capsys.readouterr()
    assert capture.out.startswith('usage:')


def test_defaults():
    conf = get_parser().parse_args([])
    assert conf.url == 'https://example.com/'
    assert conf.stream is True
    assert conf.timeout == dt.timedelta(minutes=1)
    assert conf.bufsize == 32768
    assert conf.output is None


def test_error_exit_no_debug(capsys, monkeypatch):
    with \
        mock.patch('copybench.fetch.get_parser') as get_parser, \
        monkeypatch.context() as m:

        m.delenv('DEBUG', raising=False)
        get_parser.side_effect = RuntimeError('trouble is bad')

        assert main([]) == 1
        capture = capsys.readouterr()
        assert 'trouble is bad' in capture.err


def test_error_exit_with_debug(monkeypatch):
    with \
        mock.patch('copybench.fetch.get_parser') as get_parser, \
        monkeypatch.context() as m:

        m.setenv('DEBUG', '1')
        get_parser.side_effect = RuntimeError('trouble is bad')

        with pytest.raises(RuntimeError):
            main([])


def test_error_exit_with_pdb(monkeypatch):
    with \
        mock.patch('copybench.fetch.get_parser') as get_parser, \
        mock.patch('pdb.post_mortem') as post_mortem, \
        monkeypatch.context() as m:

        m.setenv('DEBUG', '2')
        get_parser.side_effect = RuntimeError('trouble is bad')

        assert main([]) == 1
        assert post_mortem.called


@pytest.mark.parametrize('stream_arg', ['--stream', '--no-stream'])
def test_regular_operation(mock_client, tmp_path, capsys, stream_arg):
    output = tmp_path / 'body.html'
    assert main([
        '-v', stream_arg, '-o', str(output), 'http://example.com/'
    ]) == 0
    assert output.read_bytes() == BODY
    capture = capsys.readouterr()
    assert 'Retrieving http://example.com/' in capture.err
    assert f'Wrote {len(BODY)} bytes' in capture.err


def test_stdout_operation(mock_client, capsysbinary):
    assert main(['http://example.com/']) == 0
    capture = capsysbinary.readouterr()
    assert capture.out == BODY


def test_failed_operation(mock_client, tmp_path, capsys, monkeypatch):
    monkeypatch.delenv('DEBUG', raising=False)
    output = tmp_path / 'body.html'
    assert main(['-o', str(output), 'http://example.com/missing']) == 1
    capture = capsys.readouterr()
    assert '404' in capture.err
    assert output.read_bytes() == b''
