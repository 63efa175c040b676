from unittest.mock import Mock

import requests

from veriface.sender import check_health, main, send_selfie

from conftest import png_bytes


def response(payload, status_code=200):
    resp = Mock()
    resp.status_code = status_code
    resp.json.return_value = payload
    return resp


class TestSendSelfie:
    def test_posts_data_uri(self, tmp_path):
        path = tmp_path / "selfie.png"
        path.write_bytes(png_bytes())
        session = Mock()
        session.post.return_value = response({"status": "success", "message": "Photo received successfully.", "version": 3})

        result = send_selfie(str(path), "http://api.test/", api_key="k", session=session)

        assert result["version"] == 3
        args, kwargs = session.post.call_args
        assert args[0] == "http://api.test/api/receive-photo"
        assert kwargs["json"]["selfieDataUri"].startswith("data:image/png;base64,")
        assert kwargs["headers"] == {"Authorization": "Bearer k"}

    def test_missing_file(self, tmp_path):
        session = Mock()
        assert send_selfie(str(tmp_path / "nope.png"), session=session) is None
        session.post.assert_not_called()

    def test_rejected(self, tmp_path, capsys):
        path = tmp_path / "selfie.png"
        path.write_bytes(png_bytes())
        session = Mock()
        session.post.return_value = response(
            {"status": "error", "message": "Invalid input.", "errors": {"selfieDataUri": ["bad"]}},
            status_code=400,
        )

        assert send_selfie(str(path), session=session) is None
        out = capsys.readouterr().out
        assert "400" in out
        assert "selfieDataUri: bad" in out

    def test_connection_error(self, tmp_path):
        path = tmp_path / "selfie.png"
        path.write_bytes(png_bytes())
        session = Mock()
        session.post.side_effect = requests.exceptions.ConnectionError()
        assert send_selfie(str(path), session=session) is None


class TestHealth:
    def test_healthy(self):
        session = Mock()
        session.get.return_value = response({"status": "healthy", "service": "VeriFace API"})
        assert check_health("http://api.test", session=session) is True
        session.get.assert_called_with("http://api.test/health", timeout=10)

    def test_unhealthy(self):
        session = Mock()
        session.get.return_value = response({}, status_code=503)
        assert check_health("http://api.test", session=session) is False

    def test_non_json_body(self, capsys):
        session = Mock()
        resp = response(None)
        resp.json.side_effect = ValueError("Expecting value")
        session.get.return_value = resp

        assert check_health("http://api.test", session=session) is False
        assert "not JSON" in capsys.readouterr().out

    def test_connection_error_is_logged(self, caplog):
        session = Mock()
        session.get.side_effect = requests.exceptions.ConnectionError()

        assert check_health("http://api.test", session=session) is False
        assert "http://api.test/health" in caplog.text


def test_main_health(monkeypatch):
    monkeypatch.setattr("veriface.sender.check_health", lambda url: True)
    assert main(["health", "--server", "http://api.test"]) == 0
