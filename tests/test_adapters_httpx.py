import httpx
import pytest

from servicekit import BodyReadError, HttpxTransport, Request, TransportError


def test_httpx_send_returns_status_and_body():
    def _handle(request):
        assert request.method == "POST"
        assert request.headers["Content-Type"] == "application/json"
        assert request.content == b'{"a": 1}'
        return httpx.Response(201, content=b'{"ok":true}')

    client = httpx.Client(transport=httpx.MockTransport(_handle))
    with HttpxTransport(client) as transport:
        resp = transport.send(
            Request("POST", "https://example.com/x", b'{"a": 1}', {"Content-Type": "application/json"})
        )
    assert resp.status_code == 201  # noqa: PLR2004
    assert resp.text == '{"ok":true}'


def test_httpx_sends_repeated_header_pairs():
    seen = {}

    def _handle(request):
        seen["auth"] = request.headers.get_list("Authorization")
        return httpx.Response(204)

    client = httpx.Client(transport=httpx.MockTransport(_handle))
    HttpxTransport(client).send(
        Request(
            "GET",
            "https://example.com",
            headers=[("Authorization", "Basic b"), ("Authorization", "Bearer t")],
        )
    )
    assert seen["auth"] == ["Basic b", "Bearer t"]


def test_httpx_error_status_is_not_an_exception():
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(500)))
    resp = HttpxTransport(client).send(Request("GET", "https://example.com"))
    assert resp.status_code == 500  # noqa: PLR2004


def test_httpx_connect_error_becomes_transport_error():
    def _handle(request):
        raise httpx.ConnectError("refused", request=request)

    client = httpx.Client(transport=httpx.MockTransport(_handle))
    with pytest.raises(TransportError):
        HttpxTransport(client).send(Request("GET", "https://example.com"))


def test_httpx_body_read_error_keeps_status():
    class _BrokenStream(httpx.SyncByteStream):
        def __iter__(self):
            raise httpx.ReadError("connection reset")

    def _handle(request):
        return httpx.Response(200, stream=_BrokenStream())

    client = httpx.Client(transport=httpx.MockTransport(_handle))
    with pytest.raises(BodyReadError) as exc:
        HttpxTransport(client).send(Request("GET", "https://example.com"))
    assert exc.value.status_code == 200  # noqa: PLR2004


def test_httpx_external_client_not_closed():
    client = httpx.Client(transport=httpx.MockTransport(lambda r: httpx.Response(204)))
    HttpxTransport(client).close()
    assert not client.is_closed
    client.close()
