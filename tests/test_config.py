import pytest

from laundrytrack.config import ConfigError, load_config, parse_config

FULL = """
[app]
name = "Test Shop"
log_level = "debug"
backend = "postgres"

[db]
host = "db"
name = "laundry"
user = "u"
password = "p"

[shop]
order_id_prefix = "CC"

[notifications]
enabled = true
channel = "both"
twilio_account_sid = "AC1"

[auth]
cli_user_id = "admin"

[auth.tokens]
"tok-1" = "admin"
"""


def test_load_full_config(tmp_path, monkeypatch):
    monkeypatch.setenv("TWILIO_AUTH_TOKEN", "from-env")
    monkeypatch.delenv("TWILIO_ACCOUNT_SID", raising=False)
    path = tmp_path / "config.toml"
    path.write_text(FULL, encoding="utf-8")

    cfg = load_config(path)

    assert cfg.name == "Test Shop"
    assert cfg.log_level == "DEBUG"
    assert cfg.db.port == 5432
    assert cfg.db.sslmode == "disable"
    assert cfg.shop.order_id_prefix == "CC"
    assert cfg.notifications.channel == "both"
    assert cfg.notifications.twilio_account_sid == "AC1"
    assert cfg.notifications.twilio_auth_token == "from-env"
    assert cfg.notifications.has_credentials
    assert cfg.auth.tokens == {"tok-1": "admin"}


def test_memory_backend_needs_no_db():
    cfg = parse_config({"app": {"backend": "memory"}, "auth": {"bootstrap_admin": "boss"}})
    assert cfg.db is None
    assert cfg.shop.order_id_prefix == "LD"
    assert cfg.notifications.enabled is False
    assert cfg.auth.bootstrap_admin == "boss"


def test_missing_file(tmp_path):
    with pytest.raises(ConfigError):
        load_config(tmp_path / "nope.toml")


def test_bad_toml(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("[app\nname=", encoding="utf-8")
    with pytest.raises(ConfigError):
        load_config(path)


@pytest.mark.parametrize(
    "data",
    [
        {"app": {"backend": "postgres"}},
        {"app": {"backend": "mongo"}},
        {"app": {"backend": "memory"}, "shop": {"order_id_prefix": "ld"}},
        {"app": {"backend": "memory"}, "notifications": {"channel": "fax"}},
        {"app": {"backend": "memory"}, "notifications": {"timeout": "soon"}},
    ],
)
def test_invalid_values(data):
    with pytest.raises(ConfigError):
        parse_config(data)
