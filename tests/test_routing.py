import json
import threading

import httpx
import pytest
from starlette.requests import Request

from x402_sentinel.errors import BackendError, RoutingError
from x402_sentinel.routing import (
    BackendTarget,
    Dispatcher,
    ServiceRegistry,
    extract_service,
    parse_services,
    strip_service_prefix,
)


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/x402/eth/blockNumber", "eth"),
        ("/x402/cosmos/status", "cosmos"),
        ("/eth/blockNumber", "eth"),
        ("/thorchain/pools", "thorchain"),
        ("", "unknown"),
        ("/", "unknown"),
        ("/x402/eth", "eth"),
    ],
)
def test_extract_service(path, expected):
    assert extract_service(path) == expected


@pytest.mark.parametrize(
    "path,expected",
    [
        ("/x402/eth/blockNumber", "/blockNumber"),
        ("/x402/eth", ""),
        ("/x402/eth/", "/"),
        ("/x402/cosmos/cosmos/base/tendermint//v1", "/cosmos/base/tendermint//v1"),
        ("/thorchain/pools", "/pools"),
    ],
)
def test_strip_service_prefix(path, expected):
    assert strip_service_prefix(path) == expected


def test_backend_target_from_url():
    target = BackendTarget.from_url("http://localhost:8545/rpc/")
    assert target == BackendTarget(scheme="http", host="localhost", port=8545, base_path="/rpc")
    assert target.url_for("/blockNumber", "a=1") == "http://localhost:8545/rpc/blockNumber?a=1"
    assert target.url_for("") == "http://localhost:8545/rpc"


def test_backend_target_without_path():
    target = BackendTarget.from_url("https://rpc.example.com")
    assert target.url_for("") == "https://rpc.example.com/"
    assert target.url_for("/status") == "https://rpc.example.com/status"


@pytest.mark.parametrize("url", ["ftp://host", "not a url", "http://", ""])
def test_backend_target_rejects_invalid_urls(url):
    with pytest.raises(ValueError):
        BackendTarget.from_url(url)


def test_parse_services_pairs_and_json():
    assert parse_services("eth=http://a:1, cosmos=http://b:2") == {
        "eth": "http://a:1",
        "cosmos": "http://b:2",
    }
    assert parse_services('{"eth": "http://a:1"}') == {"eth": "http://a:1"}
    assert parse_services("") == {}
    with pytest.raises(ValueError):
        parse_services("eth")


def test_registry_register_and_lookup():
    registry = ServiceRegistry({"eth": "http://a:1"})
    registry.register("cosmos", "http://b:2")

    assert "eth" in registry
    assert "thorchain" not in registry
    assert registry.get("cosmos").host == "b"
    assert registry.names() == ["cosmos", "eth"]

    registry.unregister("eth")
    assert "eth" not in registry


@pytest.mark.parametrize("name", ["", "a/b", "x402", "requirements"])
def test_registry_rejects_bad_names(name):
    with pytest.raises(ValueError):
        ServiceRegistry().register(name, "http://a:1")


def test_registry_concurrent_registration():
    registry = ServiceRegistry()

    def register(i):
        registry.register(f"svc{i}", f"http://backend{i}:80")

    threads = [threading.Thread(target=register, args=(i,)) for i in range(20)]
    for thread in threads:
        thread.start()
    for thread in threads:
        thread.join()

    assert len(registry.names()) == 20


def test_resolve_unknown_service():
    dispatcher = Dispatcher(ServiceRegistry({"eth": "http://a:1"}))
    assert dispatcher.resolve("eth").host == "a"
    with pytest.raises(RoutingError):
        dispatcher.resolve("thorchain")


def make_request(
    method: str,
    path: str,
    body: bytes = b"",
    headers=None,
    query: str = "",
    raw_path: bytes | None = None,
) -> Request:
    raw_headers = [
        (key.lower().encode(), value.encode()) for key, value in (headers or {}).items()
    ]
    sent = False

    async def receive():
        nonlocal sent
        if sent:
            return {"type": "http.disconnect"}
        sent = True
        return {"type": "http.request", "body": body, "more_body": False}

    scope = {
        "type": "http",
        "method": method,
        "path": path,
        "raw_path": path.encode() if raw_path is None else raw_path,
        "query_string": query.encode(),
        "headers": raw_headers,
        "scheme": "http",
        "server": ("sentinel.test", 80),
    }
    return Request(scope, receive)


@pytest.mark.asyncio
async def test_forward_rewrites_destination_and_relays_response():
    seen = []

    def backend(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(
            201,
            json={"jsonrpc": "2.0", "id": 1, "result": "0x134e82a"},
            headers={"X-Backend": "geth"},
        )

    dispatcher = Dispatcher(
        ServiceRegistry({"eth": "http://eth-backend.test:8545"}),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )
    request = make_request(
        "POST",
        "/x402/eth/rpc/v1",
        body=b'{"method": "eth_blockNumber"}',
        headers={
            "Content-Type": "application/json",
            "X-PAYMENT": "proof",
            "Connection": "keep-alive",
        },
        query="debug=1",
    )

    response = await dispatcher.forward(request, dispatcher.resolve("eth"))

    assert response.status_code == 201
    assert json.loads(response.body) == {"jsonrpc": "2.0", "id": 1, "result": "0x134e82a"}
    assert response.headers["x-backend"] == "geth"

    upstream = seen[0]
    assert str(upstream.url) == "http://eth-backend.test:8545/rpc/v1?debug=1"
    assert upstream.method == "POST"
    assert upstream.content == b'{"method": "eth_blockNumber"}'
    assert upstream.headers["content-type"] == "application/json"
    assert "x-payment" not in upstream.headers
    assert upstream.headers["host"] == "eth-backend.test:8545"


@pytest.mark.asyncio
async def test_forward_relays_backend_errors_verbatim():
    dispatcher = Dispatcher(
        ServiceRegistry({"eth": "http://eth-backend.test:8545"}),
        http_client=httpx.AsyncClient(
            transport=httpx.MockTransport(lambda request: httpx.Response(503, text="syncing"))
        ),
    )

    response = await dispatcher.forward(make_request("GET", "/x402/eth/status"), dispatcher.resolve("eth"))

    assert response.status_code == 503
    assert response.body == b"syncing"


@pytest.mark.asyncio
async def test_forward_unreachable_backend():
    def backend(request):
        raise httpx.ConnectError("connection refused", request=request)

    dispatcher = Dispatcher(
        ServiceRegistry({"eth": "http://eth-backend.test:8545"}),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )

    with pytest.raises(BackendError):
        await dispatcher.forward(make_request("GET", "/x402/eth/status"), dispatcher.resolve("eth"))


@pytest.mark.asyncio
async def test_forward_keeps_percent_encoded_segments():
    seen = []

    def backend(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200, json={"ok": True})

    dispatcher = Dispatcher(
        ServiceRegistry({"eth": "http://eth-backend.test:8545"}),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )
    request = make_request("GET", "/x402/eth/a/b/c", raw_path=b"/x402/eth/a/b%2Fc")

    await dispatcher.forward(request, dispatcher.resolve("eth"))

    assert seen[0].url.raw_path == b"/a/b%2Fc"


@pytest.mark.asyncio
async def test_forward_falls_back_to_decoded_path_without_raw_path():
    seen = []

    def backend(request: httpx.Request) -> httpx.Response:
        seen.append(request)
        return httpx.Response(200)

    dispatcher = Dispatcher(
        ServiceRegistry({"eth": "http://eth-backend.test:8545"}),
        http_client=httpx.AsyncClient(transport=httpx.MockTransport(backend)),
    )
    request = make_request("GET", "/x402/eth/status", raw_path=b"")

    await dispatcher.forward(request, dispatcher.resolve("eth"))

    assert seen[0].url.raw_path == b"/status"
