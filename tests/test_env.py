import pytest

from keycarousel import (
    KeyRotator,
    MemoryCounterStore,
    MisconfiguredError,
    load_keyconfigs_from_env,
    load_numbered_keyconfigs,
    load_rotation_config,
)


@pytest.fixture(autouse=True)
def _clean_env(monkeypatch):
    for n in range(1, 11):
        monkeypatch.delenv(f"GOOGLE_API_KEY{n}", raising=False)
    for var in ("KEYCAROUSEL_QUOTA", "KEYCAROUSEL_EXPIRY_SECONDS", "KEYCAROUSEL_NAMESPACE"):
        monkeypatch.delenv(var, raising=False)


def test_env_names_and_comma_split(monkeypatch, tmp_path):
    monkeypatch.setenv("A_KEY", "tok1,tok2 , tok3")
    cfgs = load_keyconfigs_from_env(names=["A_KEY"], split_commas=True)
    assert [c.name for c in cfgs] == ["A_KEY_1", "A_KEY_2", "A_KEY_3"]
    assert [c.token for c in cfgs] == ["tok1", "tok2", "tok3"]

    envp = tmp_path / ".env"
    envp.write_text("B_PREFIX_BETA=y1\n# comment\nB_PREFIX_ALPHA='x1,x2'\n")
    cfgs2 = load_keyconfigs_from_env(
        prefix="B_PREFIX_", env_path=str(envp), to_lower_names=True, strip_prefix=True
    )
    # prefix matches come back sorted by variable name
    assert [c.name for c in cfgs2] == ["alpha_1", "alpha_2", "beta"]
    assert [c.token for c in cfgs2] == ["x1", "x2", "y1"]


def test_env_overrides_file(monkeypatch, tmp_path):
    envp = tmp_path / ".env"
    envp.write_text("APPKEY_A=a1,a2\n")
    monkeypatch.setenv("APPKEY_A", "b1")
    cfgs = load_keyconfigs_from_env(prefix="APPKEY_", env_path=str(envp))
    assert [(c.name, c.token) for c in cfgs] == [("APPKEY_A", "b1")]


def test_numbered_keys_are_compacted(monkeypatch, tmp_path):
    envp = tmp_path / ".env"
    envp.write_text("GOOGLE_API_KEY7=seven\n")
    monkeypatch.setenv("GOOGLE_API_KEY1", "one")
    monkeypatch.setenv("GOOGLE_API_KEY3", "three")
    monkeypatch.setenv("GOOGLE_API_KEY4", "")
    monkeypatch.setenv("GOOGLE_API_KEY11", "out-of-range")
    cfgs = load_numbered_keyconfigs("GOOGLE_API_KEY", env_path=str(envp))
    assert [c.token for c in cfgs] == ["one", "three", "seven"]
    assert [c.name for c in cfgs] == ["GOOGLE_API_KEY1", "GOOGLE_API_KEY3", "GOOGLE_API_KEY7"]


def test_rotation_config_defaults():
    cfg = load_rotation_config()
    assert (cfg.quota, cfg.expiry_seconds, cfg.namespace) == (3, 120, "keycarousel")


def test_rotation_config_from_env(monkeypatch):
    monkeypatch.setenv("KEYCAROUSEL_QUOTA", "15")
    monkeypatch.setenv("KEYCAROUSEL_EXPIRY_SECONDS", "180")
    monkeypatch.setenv("KEYCAROUSEL_NAMESPACE", "gemini")
    cfg = load_rotation_config()
    assert (cfg.quota, cfg.expiry_seconds, cfg.namespace) == (15, 180, "gemini")


def test_rotation_config_rejects_garbage(monkeypatch):
    monkeypatch.setenv("KEYCAROUSEL_QUOTA", "three")
    with pytest.raises(ValueError):
        load_rotation_config()


def test_rotator_from_env(monkeypatch):
    monkeypatch.setenv("GOOGLE_API_KEY2", "g2")
    monkeypatch.setenv("GOOGLE_API_KEY5", "g5")
    monkeypatch.setenv("KEYCAROUSEL_QUOTA", "1")
    rot = KeyRotator.from_env(MemoryCounterStore(), numbered="GOOGLE_API_KEY")
    assert rot.size == 2  # noqa: PLR2004
    assert rot.quota == 1
    assert {rot.acquire_credential(), rot.acquire_credential()} == {"g2", "g5"}


def test_rotator_from_env_without_keys_is_misconfigured(tmp_path):
    with pytest.raises(MisconfiguredError):
        KeyRotator.from_env(MemoryCounterStore(), numbered="GOOGLE_API_KEY", env_path=str(tmp_path / "missing.env"))
