import pytest

from sniffproxy.tools import testserver


@pytest.fixture
def client():
    testserver.app.config["TESTING"] = True
    return testserver.app.test_client()


def test_get(client):
    resp = client.get("/")
    assert resp.status_code == 200
    assert resp.data == b"Serving...\n"
    assert resp.content_type.startswith("text/plain")


def test_post_echoes_body(client):
    resp = client.post("/some/path", data=b"Ohai!")
    assert resp.data == b"Serving...\nOhai!"


def test_method_not_allowed(client):
    assert client.delete("/").status_code == 405
