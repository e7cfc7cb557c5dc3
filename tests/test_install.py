import io
import json
import urllib.request

import install


class TagsResponse(io.BytesIO):
    status = 200


def serve_tags(monkeypatch, names):
    body = json.dumps({"models": [{"name": n} for n in names]}).encode()
    monkeypatch.setattr(urllib.request, "urlopen",
                        lambda url, timeout=None: TagsResponse(body))


def test_check_python_versions(capsys):
    assert install.check_python((3, 11, 4))
    assert not install.check_python((3, 8, 10))
    assert "3.8.10" in capsys.readouterr().out


def test_has_model_matches_tag_suffix_only():
    models = ["llava-llama3:latest", "llama3:8b"]
    assert install.has_model(models, "llava-llama3")
    assert install.has_model(models, "llama3")
    assert not install.has_model(["llama3.1:latest"], "llama3")
    assert not install.has_model(models, "moondream")


def test_local_models_none_when_server_down(monkeypatch):
    def refuse(url, timeout=None):
        raise OSError("connection refused")
    monkeypatch.setattr(urllib.request, "urlopen", refuse)
    assert install.local_models() is None
    assert not install.ensure_models()


def test_ensure_models_pulls_only_missing(monkeypatch):
    serve_tags(monkeypatch, [f"{install.TEXT_MODEL}:latest"])
    pulled = []

    class Done:
        returncode = 0

    monkeypatch.setattr(install.subprocess, "run",
                        lambda cmd, **kw: pulled.append(cmd) or Done())
    assert install.ensure_models()
    assert pulled == [["ollama", "pull", install.VISION_MODEL]]


def test_ensure_models_reports_failed_pull(monkeypatch):
    serve_tags(monkeypatch, [])

    class Failed:
        returncode = 1

    monkeypatch.setattr(install.subprocess, "run", lambda cmd, **kw: Failed())
    assert not install.ensure_models()


def test_main_stops_when_install_fails(monkeypatch):
    monkeypatch.setattr(install, "check_python", lambda: True)
    monkeypatch.setattr(install, "install_project", lambda: False)
    assert install.main() == 1
