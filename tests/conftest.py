from io import BytesIO

import pytest
from fastapi.testclient import TestClient
from PIL import Image


@pytest.fixture()
def client() -> TestClient:
    import server

    # Each test starts with an empty rate-limit window
    server.rate_limit_store.clear()
    test_client = TestClient(server.app)
    yield test_client
    server.rate_limit_store.clear()


def make_image_bytes(size=(120, 80), color=(255, 0, 0), fmt='JPEG') -> bytes:
    img = Image.new('RGB', size, color)
    buf = BytesIO()
    img.save(buf, format=fmt)
    return buf.getvalue()


@pytest.fixture()
def image_bytes():
    return make_image_bytes
