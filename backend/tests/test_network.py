import os
from concurrent.futures import ThreadPoolExecutor

from gateway.core.network import NoProxyRegistry, endpoint_hostname


def test_registry_seeds_from_environment(monkeypatch):
    monkeypatch.setenv("NO_PROXY", "localhost, 127.0.0.1,,")
    registry = NoProxyRegistry.from_environ()
    assert registry.hosts() == {"localhost", "127.0.0.1"}


def test_registry_falls_back_to_lowercase_variable(monkeypatch):
    monkeypatch.setenv("no_proxy", "internal.example")
    assert NoProxyRegistry.from_environ().hosts() == {"internal.example"}


def test_register_merges_hostname_once():
    registry = NoProxyRegistry(["localhost"])
    assert registry.register("https://minio.example.com:9000/path") == "minio.example.com"
    registry.register("http://minio.example.com")
    assert registry.hosts() == {"localhost", "minio.example.com"}
    assert registry.value == "localhost,minio.example.com"
    assert registry.bypasses("https://minio.example.com/bucket")
    assert not registry.bypasses("https://s3.amazonaws.com")


def test_malformed_endpoint_is_ignored(monkeypatch):
    monkeypatch.setenv("NO_PROXY", "localhost")
    before = dict(os.environ)
    registry = NoProxyRegistry.from_environ()

    assert registry.register("http://[::1") is None
    assert registry.register("not a url") is None
    assert registry.register("") is None

    assert registry.hosts() == {"localhost"}
    assert dict(os.environ) == before


def test_concurrent_registration_is_a_union():
    registry = NoProxyRegistry()
    endpoints = [f"http://host{index % 10}.example:9000" for index in range(200)]
    with ThreadPoolExecutor(max_workers=8) as pool:
        list(pool.map(registry.register, endpoints))
    assert registry.hosts() == {f"host{index}.example" for index in range(10)}


def test_endpoint_hostname():
    assert endpoint_hostname("http://MinIO.Local:9000") == "minio.local"
    assert endpoint_hostname("minio.local") is None
