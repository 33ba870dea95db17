"""Settings loading and application wiring."""

from pathlib import Path

import pytest

import cli
from filevault.app import create_app
from filevault.config import Settings
from filevault.storage.blobs import FilesystemBlobStore, InMemoryBlobStore

ENV_KEYS = (
    "FILEVAULT_BACKEND",
    "FILEVAULT_DATA_DIR",
    "FILEVAULT_MAX_UPLOAD_SIZE",
    "FILEVAULT_ACCESS_LOG_LIMIT",
    "FILEVAULT_QUEUE_SIZE",
    "FILEVAULT_PING_INTERVAL",
    "FILEVAULT_PING_TIMEOUT",
    "FILEVAULT_LOG_LEVEL",
    "FILEVAULT_COMPENSATION_ATTEMPTS",
)


@pytest.fixture(autouse=True)
def clean_env(monkeypatch, tmp_path):
    # setenv first so monkeypatch also undoes anything load_dotenv writes
    for key in ENV_KEYS:
        monkeypatch.setenv(key, "")
        monkeypatch.delenv(key)
    monkeypatch.chdir(tmp_path)


def test_defaults():
    settings = Settings.from_env()
    assert settings == Settings()
    assert settings.backend == "memory"
    assert settings.access_log_limit == 5
    assert settings.max_upload_size == 50 * 1024 * 1024


def test_from_env(monkeypatch, tmp_path):
    monkeypatch.setenv("FILEVAULT_BACKEND", "Persistent")
    monkeypatch.setenv("FILEVAULT_DATA_DIR", str(tmp_path / "data"))
    monkeypatch.setenv("FILEVAULT_ACCESS_LOG_LIMIT", "10")
    monkeypatch.setenv("FILEVAULT_PING_INTERVAL", "5")
    monkeypatch.setenv("FILEVAULT_PING_TIMEOUT", "15.5")
    monkeypatch.setenv("FILEVAULT_LOG_LEVEL", "debug")

    settings = Settings.from_env()
    assert settings.backend == "persistent"
    assert settings.data_dir == tmp_path / "data"
    assert settings.access_log_limit == 10
    assert settings.ping_interval == 5.0
    assert settings.ping_timeout == 15.5
    assert settings.log_level == "DEBUG"


def test_env_file(tmp_path):
    env_file = tmp_path / "vault.env"
    env_file.write_text("FILEVAULT_QUEUE_SIZE=7\nFILEVAULT_COMPENSATION_ATTEMPTS=5\n")
    settings = Settings.from_env(str(env_file))
    assert settings.queue_size == 7
    assert settings.compensation_attempts == 5


@pytest.mark.parametrize("key,value", [
    ("FILEVAULT_BACKEND", "sqlite"),
    ("FILEVAULT_QUEUE_SIZE", "many"),
    ("FILEVAULT_MAX_UPLOAD_SIZE", "-1"),
    ("FILEVAULT_PING_TIMEOUT", "1"),
])
def test_invalid_values(monkeypatch, key, value):
    monkeypatch.setenv(key, value)
    with pytest.raises(ValueError):
        Settings.from_env()


def test_create_app_picks_backend(tmp_path):
    with create_app(Settings()) as app:
        assert isinstance(app.gateway.blobs, InMemoryBlobStore)

    with create_app(Settings(backend="persistent", data_dir=tmp_path / "vault")) as app:
        assert isinstance(app.gateway.blobs, FilesystemBlobStore)
        app.accounts.register("alice")
    assert (tmp_path / "vault" / "users.json").exists()
    assert (tmp_path / "vault" / "encrypted").is_dir()


def test_cli_signup_upload_and_list(monkeypatch, capsys, tmp_path):
    source = tmp_path / "hello.txt"
    source.write_text("hello vault")
    answers = iter(["1", "alice", "2", "alice", "1", str(source), "3", "8", "9", "0"])
    monkeypatch.setattr("builtins.input", lambda prompt="": next(answers))

    app = create_app(Settings())
    cli.main(app)

    out = capsys.readouterr().out
    assert "Account created: alice" in out
    assert "File uploaded successfully" in out
    assert "hello.txt" in out
    assert "Files: 1" in out
    owner = app.accounts.get_user_by_username("alice")
    record, = app.gateway.list_owned(owner.user_id)
    assert record.mime_type == "text/plain"
    assert Path(source).read_text() == "hello vault"
