import pytest

from nii2bids.config import DEFAULT_SETTINGS, ConversionSettings, load_settings, resolve_settings


def test_defaults():
    assert load_settings() is DEFAULT_SETTINGS
    assert resolve_settings(None) is DEFAULT_SETTINGS
    assert DEFAULT_SETTINGS.subject == "sub-01"
    assert DEFAULT_SETTINGS.task == "unnamed"
    assert DEFAULT_SETTINGS.checksum_limit_gb == 2.0


def test_yaml_overrides(tmp_path):
    cfg = tmp_path / "settings.yaml"
    cfg.write_text("task: rest\nmax_workers: '2'\nchecksum_limit_gb: 1\n")
    settings = load_settings(cfg)
    assert settings == ConversionSettings(task="rest", max_workers=2, checksum_limit_gb=1.0)
    assert isinstance(settings.checksum_limit_gb, float)


def test_empty_file_gives_defaults(tmp_path):
    cfg = tmp_path / "settings.yaml"
    cfg.write_text("")
    assert load_settings(cfg) == DEFAULT_SETTINGS


@pytest.mark.parametrize(
    "content",
    ["colour: blue\n", "- a\n- b\n", "max_workers: 0\n"],
)
def test_invalid_settings(tmp_path, content):
    cfg = tmp_path / "settings.yaml"
    cfg.write_text(content)
    with pytest.raises(ValueError):
        load_settings(cfg)
