from factorio_manager.config import load_settings


def test_defaults(monkeypatch) -> None:
    for name in (
        "FACTORIO_MOD_PORTAL_USER",
        "FACTORIO_MOD_PORTAL_TOKEN",
        "FACTORIO_VERSION",
        "FACTORIO_MODS_DIR",
        "FACTORIO_MOD_LIST_FILE",
        "MOD_PORTAL_TIMEOUT_SECONDS",
        "API_TOKEN",
    ):
        monkeypatch.delenv(name, raising=False)

    settings = load_settings()

    assert settings.mod_portal_url == "https://mods.factorio.com"
    assert settings.factorio_version == "2.0"
    assert settings.mods_dir == "/factorio/mods"
    assert settings.mod_list_file == "/factorio/mods/mod-list.json"
    assert settings.portal_timeout_seconds == 600.0
    assert settings.api_token is None


def test_mod_list_follows_mods_dir_and_bad_numbers_fall_back(monkeypatch, tmp_path) -> None:
    monkeypatch.setenv("FACTORIO_MODS_DIR", str(tmp_path))
    monkeypatch.delenv("FACTORIO_MOD_LIST_FILE", raising=False)
    monkeypatch.setenv("MOD_PORTAL_TIMEOUT_SECONDS", "ten minutes")
    monkeypatch.setenv("DOCKER_STOP_TIMEOUT_SECONDS", "")

    settings = load_settings()

    assert settings.mod_list_file == str(tmp_path / "mod-list.json")
    assert settings.portal_timeout_seconds == 600.0
    assert settings.stop_timeout_seconds == 30
