from memoryshare.core.config import Settings, file_defaults, write_missing_defaults
from memoryshare.core.config_file import ConfigFile


def test_config_file_preserves_comments_and_order(tmp_path):
    path = tmp_path / "settings.ini"
    path.write_text("# branding\nbrand_name=Family Album\n\nhttp_port=9000\nnot a setting\nurl=http://a/?b=c\n")

    config_file = ConfigFile.load(path)
    config_file.set("http_port", "9100")
    config_file.set("version", "1.0.0")
    config_file.save()

    assert path.read_text() == (
        "# branding\nbrand_name=Family Album\n\nhttp_port=9100\nurl=http://a/?b=c\nversion=1.0.0\n"
    )
    assert ConfigFile.load(path).get("url") == "http://a/?b=c"


def test_missing_defaults_are_appended(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "settings.ini").write_text("# keep me\nbrand_name=Gunay Memories\n")
    settings = Settings(root_path=tmp_path)

    config_file = write_missing_defaults(settings)

    rendered = settings.config_file.read_text()
    assert rendered.startswith("# keep me\nbrand_name=Gunay Memories\n")
    assert config_file.get("brand_name") == "Gunay Memories"
    assert set(file_defaults()) <= set(config_file.items())
    assert "root_path" not in config_file.items()


def test_ini_values_are_loaded_below_explicit_arguments(tmp_path):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "settings.ini").write_text("brand_name=From File\nhttp_port=9000\nenable_console_commands=true\n")

    settings = Settings(root_path=tmp_path, http_port=9500)

    assert settings.brand_name == "From File"
    assert settings.http_port == 9500
    assert settings.enable_console_commands is True


def test_environment_overrides_ini(tmp_path, monkeypatch):
    config_dir = tmp_path / "config"
    config_dir.mkdir()
    (config_dir / "settings.ini").write_text("max_session_age=3\n")
    monkeypatch.setenv("MEMORYSHARE_MAX_SESSION_AGE", "14")

    settings = Settings(root_path=tmp_path)

    assert settings.max_session_age == 14
    assert settings.session_max_age_seconds == 14 * 86400


def test_upload_cap_is_expressed_in_mebibytes(tmp_path):
    assert Settings(root_path=tmp_path).max_upload_bytes == 10 * 1024 * 1024
