import pytest

from builder_client.session import EditorSession


@pytest.fixture(autouse=True)
def _isolate_client_env(tmp_path, monkeypatch):
    # keep log files and config lookups out of the user's home directory
    monkeypatch.setenv("BUILDER_CLIENT_LOG_DIR", str(tmp_path / "logs"))
    monkeypatch.delenv("BUILDER_CLIENT_CONFIG", raising=False)


@pytest.fixture
def sent():
    return []


@pytest.fixture
def session(sent):
    answers = {"confirm": True}

    def confirm(message):
        answers.setdefault("asked", []).append(message)
        return answers["confirm"]

    s = EditorSession(sent.append, confirm=confirm)
    s.answers = answers
    return s
