import os

import pytest

from media_jobs.config import DEFAULT_DIAGNOSTIC_LIMIT, Config

ENV_VARS = (
    "MEDIA_JOBS_BIN_DIR",
    "MEDIA_JOBS_OUTPUT_DIR",
    "MEDIA_JOBS_DIAGNOSTIC_LIMIT",
    "MEDIA_JOBS_EVENT_BUFFER",
    "MEDIA_JOBS_READER_GRACE",
    "MEDIA_JOBS_LOG_LEVEL",
)


@pytest.fixture
def clean_env(monkeypatch):
    # setenv first so that whatever load_dotenv writes is undone afterwards
    for name in ENV_VARS:
        monkeypatch.setenv(name, "")
        monkeypatch.delenv(name)
    return monkeypatch


def test_defaults(clean_env, tmp_path):
    config = Config.from_env(tmp_path / "absent.env")

    assert config.bin_dir is None
    assert config.diagnostic_limit == DEFAULT_DIAGNOSTIC_LIMIT
    assert config.event_buffer == 256
    assert config.reader_grace_seconds == 5.0
    assert config.log_level == "INFO"
    assert config.output_dir.endswith("Downloads")


def test_values_from_env_file(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text(
        "MEDIA_JOBS_BIN_DIR=/opt/media/bin\n"
        f"MEDIA_JOBS_OUTPUT_DIR={tmp_path}\n"
        "MEDIA_JOBS_DIAGNOSTIC_LIMIT=4096\n"
        "MEDIA_JOBS_READER_GRACE=0.5\n"
        "MEDIA_JOBS_LOG_LEVEL=debug\n"
    )

    config = Config.from_env(env_file)

    assert config.bin_dir == "/opt/media/bin"
    assert config.output_dir == str(tmp_path)
    assert config.diagnostic_limit == 4096
    assert config.reader_grace_seconds == 0.5
    assert config.log_level == "DEBUG"


def test_process_environment_beats_env_file(clean_env, tmp_path):
    env_file = tmp_path / ".env"
    env_file.write_text("MEDIA_JOBS_EVENT_BUFFER=16\n")
    clean_env.setenv("MEDIA_JOBS_EVENT_BUFFER", "64")

    assert Config.from_env(env_file).event_buffer == 64


@pytest.mark.parametrize("value", ["lots", "0", "-5"])
def test_invalid_integer_rejected(clean_env, tmp_path, value):
    clean_env.setenv("MEDIA_JOBS_DIAGNOSTIC_LIMIT", value)

    with pytest.raises(ValueError, match="MEDIA_JOBS_DIAGNOSTIC_LIMIT"):
        Config.from_env(tmp_path / "absent.env")


def test_invalid_grace_rejected(clean_env, tmp_path):
    clean_env.setenv("MEDIA_JOBS_READER_GRACE", "soon")

    with pytest.raises(ValueError, match="MEDIA_JOBS_READER_GRACE"):
        Config.from_env(tmp_path / "absent.env")


def test_resolve_output_folder(tmp_path):
    (tmp_path / "clips").mkdir()
    config = Config(output_dir=str(tmp_path))

    assert config.resolve_output_folder() == str(tmp_path.resolve())
    assert config.resolve_output_folder("clips") == str((tmp_path / "clips").resolve())
    assert config.resolve_output_folder(str(tmp_path / "clips")) == str((tmp_path / "clips").resolve())

    with pytest.raises(ValueError, match="does not exist"):
        config.resolve_output_folder("missing")


@pytest.mark.skipif(os.name == "nt", reason="home comes from USERPROFILE on Windows")
def test_resolve_output_folder_expands_home(tmp_path, monkeypatch):
    monkeypatch.setenv("HOME", str(tmp_path))
    (tmp_path / "Videos" / "talks").mkdir(parents=True)
    config = Config(output_dir="~/Videos")

    assert config.resolve_output_folder() == str((tmp_path / "Videos").resolve())
    assert config.resolve_output_folder("talks") == str((tmp_path / "Videos" / "talks").resolve())
    assert config.resolve_output_folder("~/Videos/talks") == str((tmp_path / "Videos" / "talks").resolve())
