import pytest
from fastapi.testclient import TestClient

from file_explorer.api import create_app
from file_explorer.config import GatewayConfig
from file_explorer.gateway.access import AccessGateway

API_KEY = "test-key"


@pytest.fixture
def library(tmp_path):
    """
    A small library root:
      pub_ab/a.mp3, pub_ab/sub/b.txt
      assets/documents/cv.pdf
      private/secret.txt   (not whitelisted)
    """
    root = tmp_path / "site"
    pub = root / "pub_ab"
    (pub / "sub").mkdir(parents=True)
    (pub / "a.mp3").write_bytes(b"ID3" + b"\x00" * 29)
    (pub / "sub" / "b.txt").write_text("hello")

    docs = root / "assets" / "documents"
    docs.mkdir(parents=True)
    (docs / "cv.pdf").write_bytes(b"%PDF-1.4")

    private = root / "private"
    private.mkdir()
    (private / "secret.txt").write_text("nope")
    return root


@pytest.fixture
def gateway_config(library):
    return GatewayConfig(
        api_key=API_KEY,
        allowed_folders=("pub_ab", "assets/documents"),
        library_root=library,
        environment="test",
        rate_limit_max_requests=5,
        rate_limit_window_sec=60,
    )


@pytest.fixture
def gateway(gateway_config):
    return AccessGateway(gateway_config)


@pytest.fixture
def client(gateway):
    return TestClient(create_app(gateway=gateway))
