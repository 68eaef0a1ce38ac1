import pytest

from newnames.config import Config


def _write(tmp_path, content):
    path = tmp_path / "testconfig.conf"
    path.write_text(content, encoding="utf-8")
    return str(path)


def test_load_config_parses_fields_correctly(tmp_path):
    content = """
anonymize:
  users: email, name, phone
  orders: address
skip:
  - logs
  - audit
sample:
  users: 0.1
  orders: 0.5
"""
    cfg = Config()
    cfg.load_file(_write(tmp_path, content))
    assert cfg.anonymize_fields == {
        "users": ["email", "name", "phone"],
        "orders": ["address"],
    }
    assert cfg.skip_tables == ["logs", "audit"]
    assert cfg.sample_tables == {"users": 0.1, "orders": 0.5}


def test_load_config_handles_empty_file(tmp_path):
    cfg = Config()
    cfg.load_file(_write(tmp_path, ""))
    assert cfg.anonymize_fields == {}
    assert cfg.skip_tables == []
    assert cfg.sample_tables == {}


def test_blank_field_names_are_dropped(tmp_path):
    cfg = Config()
    cfg.load_file(_write(tmp_path, "anonymize:\n  users: email, , name,\n"))
    assert cfg.anonymize_fields == {"users": ["email", "name"]}


def test_missing_file_raises_oserror(tmp_path):
    cfg = Config()
    with pytest.raises(OSError, match="failed to read config file"):
        cfg.load_file(str(tmp_path / "absent.conf"))


def test_invalid_yaml_raises_value_error(tmp_path):
    cfg = Config()
    with pytest.raises(ValueError, match="failed to parse yaml config"):
        cfg.load_file(_write(tmp_path, "anonymize: [unclosed\n"))


def test_non_numeric_sample_is_rejected(tmp_path):
    cfg = Config()
    with pytest.raises(ValueError, match="failed to parse yaml config"):
        cfg.load_file(_write(tmp_path, "sample:\n  users: lots\n"))


def test_loading_replaces_previous_rules(tmp_path):
    cfg = Config(anonymize_fields={"old": ["x"]}, skip_tables=["gone"])
    cfg.load_file(_write(tmp_path, "skip:\n  - logs\n"))
    assert cfg.anonymize_fields == {}
    assert cfg.skip_tables == ["logs"]