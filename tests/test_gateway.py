import json
import os
import threading
from dataclasses import replace

import pytest

from file_explorer.exceptions import (
    BadRequest,
    Forbidden,
    NotFound,
    RateLimited,
    ServerError,
    Unauthorized,
)
from file_explorer.gateway.access import AccessGateway
from file_explorer.gateway.ratelimit import RateLimiter
from file_explorer.scanning.filesystem import ManifestBuilder
from file_explorer.storage.store import ManifestStore

from conftest import API_KEY


class FakeClock:
    def __init__(self):
        self.now = 1000.0

    def __call__(self):
        return self.now


# --- Folder validation ---

@pytest.mark.parametrize("folder", ["../../etc", "a/../../b", "/etc", "pub_ab//sub", "pub_ab\\sub",
                                    "pub_ab/..", "pub_ab/./sub"])
def test_traversal_attempts_rejected(gateway, folder):
    with pytest.raises((Forbidden, BadRequest)):
        gateway.handle_manifest_request(API_KEY, folder, "1.1.1.1")


@pytest.mark.parametrize("folder", ["", None, "   "])
def test_empty_folder_is_bad_request(gateway, folder):
    with pytest.raises(BadRequest):
        gateway.handle_manifest_request(API_KEY, folder, "1.1.1.1")


@pytest.mark.parametrize("folder", ["assets/doc", "assets", "pub", "pub_abc", "private"])
def test_non_whitelisted_rejected(gateway, folder):
    with pytest.raises(Forbidden):
        gateway.validate_folder(folder)


@pytest.mark.parametrize("folder,expected", [
    ("pub_ab", "pub_ab"),
    ("pub_ab/", "pub_ab"),
    ("pub_ab/sub", "pub_ab/sub"),
    ("assets/documents", "assets/documents"),
])
def test_whitelisted_folders_accepted(gateway, folder, expected):
    assert gateway.validate_folder(folder) == expected


def test_symlink_escaping_library_is_forbidden(gateway, library, tmp_path):
    outside = tmp_path / "outside"
    outside.mkdir()
    os.symlink(outside, library / "pub_ab" / "escape")

    with pytest.raises(Forbidden):
        gateway.handle_manifest_request(API_KEY, "pub_ab/escape", "1.1.1.1")


def test_missing_whitelisted_folder_is_not_found(gateway):
    with pytest.raises(NotFound):
        gateway.handle_manifest_request(API_KEY, "pub_ab/nothing-here", "1.1.1.1")


# --- API key ---

@pytest.mark.parametrize("key", [None, "", "wrong"])
def test_bad_keys_rejected(gateway, key):
    with pytest.raises(Unauthorized):
        gateway.handle_manifest_request(key, "pub_ab", "1.1.1.1")
    with pytest.raises(Unauthorized):
        gateway.list_allowed_folders(key)


def test_unconfigured_key_rejects_everything(gateway_config):
    gw = AccessGateway(replace(gateway_config, api_key=""))
    with pytest.raises(Unauthorized):
        gw.list_allowed_folders("")


def test_list_allowed_folders(gateway):
    assert gateway.list_allowed_folders(API_KEY) == ["pub_ab", "assets/documents"]


def test_health(gateway):
    h = gateway.health()
    assert h["status"] == "ok"
    assert h["environment"] == "test"
    assert h["timestamp"]


# --- Resolution policy ---

def test_live_build_when_no_persisted_manifest(gateway):
    data = gateway.handle_manifest_request(API_KEY, "pub_ab", "1.1.1.1")
    assert data["folder"] == "pub_ab"
    assert [c["name"] for c in data["children"]] == ["a.mp3", "sub"]


def test_persisted_manifest_preferred(gateway, library):
    stored = {"version": "1.0", "generatedAt": "2020-01-01T00:00:00+00:00",
              "folder": "pub_ab", "children": [], "note": "verbatim"}
    (library / "pub_ab" / "manifest.json").write_text(json.dumps(stored))

    assert gateway.handle_manifest_request(API_KEY, "pub_ab", "1.1.1.1") == stored


def test_persisted_manifest_ignored_when_policy_off(gateway_config, library):
    (library / "pub_ab" / "manifest.json").write_text(json.dumps({"children": []}))
    gw = AccessGateway(replace(gateway_config, prefer_persisted=False))

    data = gw.handle_manifest_request(API_KEY, "pub_ab", "1.1.1.1")
    assert len(data["children"]) == 2


def test_malformed_persisted_manifest_is_server_error(gateway, library):
    (library / "pub_ab" / "manifest.json").write_text("{broken")
    with pytest.raises(ServerError) as exc:
        gateway.handle_manifest_request(API_KEY, "pub_ab", "1.1.1.1")
    assert "broken" not in exc.value.message


# --- Generate ---

def test_generate_without_save(gateway, library):
    data = gateway.generate_manifest(API_KEY, "pub_ab", save=False)
    assert data["folder"] == "pub_ab"
    assert not (library / "pub_ab" / "manifest.json").exists()


def test_generate_with_save(gateway, library):
    result = gateway.generate_manifest(API_KEY, "pub_ab", save=True)
    dest = library / "pub_ab" / "manifest.json"

    assert result["status"] == "success"
    assert result["path"] == str(dest)
    assert result["size"] == dest.stat().st_size
    assert result["itemCount"] == 2
    assert json.loads(dest.read_text())["folder"] == "pub_ab"


def test_generate_write_failure_is_server_error(gateway, monkeypatch):
    def boom(manifest, target_dir):
        from file_explorer.exceptions import ManifestWriteError
        raise ManifestWriteError("disk on fire")

    monkeypatch.setattr(gateway.store, "persist", boom)
    with pytest.raises(ServerError) as exc:
        gateway.generate_manifest(API_KEY, "pub_ab", save=True)
    assert "disk on fire" not in exc.value.message


def test_generate_requires_key(gateway):
    with pytest.raises(Unauthorized):
        gateway.generate_manifest("nope", "pub_ab")


# --- Rate limiting ---

def test_rate_limit_blocks_after_ceiling(gateway_config):
    clock = FakeClock()
    limiter = RateLimiter(3, 60, clock=clock)
    gw = AccessGateway(gateway_config, limiter=limiter)

    for _ in range(3):
        gw.handle_manifest_request(API_KEY, "pub_ab", "9.9.9.9")
    with pytest.raises(RateLimited):
        gw.handle_manifest_request(API_KEY, "pub_ab", "9.9.9.9")

    # other sources are unaffected
    gw.handle_manifest_request(API_KEY, "pub_ab", "8.8.8.8")

    clock.now += 61
    gw.handle_manifest_request(API_KEY, "pub_ab", "9.9.9.9")


def test_rate_limit_checked_before_key(gateway_config):
    gw = AccessGateway(gateway_config, limiter=RateLimiter(1, 60))
    with pytest.raises(Unauthorized):
        gw.handle_manifest_request("wrong", "pub_ab", "7.7.7.7")
    with pytest.raises(RateLimited):
        gw.handle_manifest_request("wrong", "pub_ab", "7.7.7.7")


def test_rate_limit_disabled(gateway_config):
    gw = AccessGateway(replace(gateway_config, rate_limit_enabled=False),
                       limiter=RateLimiter(1, 60))
    for _ in range(5):
        gw.handle_manifest_request(API_KEY, "pub_ab", "6.6.6.6")


def test_rate_limiter_window_resets():
    clock = FakeClock()
    limiter = RateLimiter(2, 10, clock=clock)

    assert limiter.hit("a")
    assert limiter.hit("a")
    assert not limiter.hit("a")
    assert limiter.count("a") == 3

    clock.now += 10
    assert limiter.count("a") == 0
    assert limiter.hit("a")


def test_concurrent_hits_counted_exactly_once():
    limiter = RateLimiter(10_000, 60)
    threads_per_source = 8
    hits_per_thread = 250
    sources = ["10.0.0.1", "10.0.0.2"]

    barrier = threading.Barrier(threads_per_source * len(sources))

    def worker(src):
        barrier.wait()
        for _ in range(hits_per_thread):
            limiter.hit(src)

    threads = [threading.Thread(target=worker, args=(src,))
               for src in sources for _ in range(threads_per_source)]
    for t in threads:
        t.start()
    for t in threads:
        t.join()

    for src in sources:
        assert limiter.count(src) == threads_per_source * hits_per_thread


def test_gateway_builds_probe_only_when_enabled(gateway_config):
    assert AccessGateway(gateway_config).builder.probe is None
    gw = AccessGateway(replace(gateway_config, probe_audio=True, ffprobe_path="/nonexistent/ffprobe"))
    assert gw.builder.probe is not None

    data = gw.handle_manifest_request(API_KEY, "pub_ab", "5.5.5.5")
    assert "audio" not in data["children"][0]


def test_custom_builder_and_store_are_used(gateway_config):
    store = ManifestStore(filename="listing.json")
    gw = AccessGateway(gateway_config, builder=ManifestBuilder(), store=store)
    result = gw.generate_manifest(API_KEY, "assets/documents", save=True)
    assert result["path"].endswith("listing.json")
    assert result["message"] == "listing.json saved to assets/documents/listing.json"
