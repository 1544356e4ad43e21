"""Pruebas de la configuración de Escrutinio.

Tests for Escrutinio configuration loading.
"""

import json

import pytest

from escrutinio.config import SEPOLIA_CHAIN_ID, load_config, load_contract_abi
from escrutinio.errors import ConfigurationError, MissingCredentialError

CONTRACT = "0x4444444444444444444444444444444444444444"


@pytest.fixture
def abi_file(tmp_path):
    path = tmp_path / "Voting.json"
    path.write_text(json.dumps({"abi": [{"type": "function", "name": "admin"}]}), encoding="utf-8")
    return path


@pytest.fixture
def base_env(monkeypatch, tmp_path, abi_file):
    monkeypatch.chdir(tmp_path)
    for key in ("CHAIN_ID", "PINATA_JWT", "WALLET_PRIVATE_KEYS", "POLL_INTERVAL_SECONDS", "LOG_LEVEL"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.setenv("RPC_URL", "https://rpc.sepolia.test/")
    monkeypatch.setenv("CONTRACT_ADDRESS", CONTRACT)
    monkeypatch.setenv("CONTRACT_ABI_PATH", str(abi_file))


def test_load_config_from_environment(base_env):
    settings = load_config()

    assert settings.CHAIN_ID == SEPOLIA_CHAIN_ID
    assert settings.RPC_URL == "https://rpc.sepolia.test"
    assert settings.POLL_INTERVAL_SECONDS == 10.0
    assert settings.private_keys() == []


def test_yaml_overrides_environment_but_not_secrets(base_env, tmp_path, monkeypatch):
    monkeypatch.setenv("PINATA_JWT", "env-jwt")
    config_file = tmp_path / "escrutinio.yaml"
    config_file.write_text(
        "chain_id: 31337\npoll_interval_seconds: 2.5\npinata_jwt: yaml-jwt\n",
        encoding="utf-8",
    )

    settings = load_config(config_file)

    assert settings.CHAIN_ID == 31337
    assert settings.POLL_INTERVAL_SECONDS == 2.5
    assert settings.require_publication_credential() == "env-jwt"


def test_missing_publication_credential(base_env):
    with pytest.raises(MissingCredentialError):
        load_config().require_publication_credential()


def test_private_keys_are_split(base_env, monkeypatch):
    monkeypatch.setenv("WALLET_PRIVATE_KEYS", " 0xaa , ,0xbb")
    assert load_config().private_keys() == ["0xaa", "0xbb"]


def test_invalid_contract_address_is_rejected(base_env, monkeypatch):
    monkeypatch.setenv("CONTRACT_ADDRESS", "0x1234")
    with pytest.raises(ConfigurationError):
        load_config()


def test_non_positive_poll_interval_is_rejected(base_env, monkeypatch):
    monkeypatch.setenv("POLL_INTERVAL_SECONDS", "0")
    with pytest.raises(ConfigurationError):
        load_config()


def test_missing_abi_file_is_rejected(base_env, monkeypatch, tmp_path):
    monkeypatch.setenv("CONTRACT_ABI_PATH", str(tmp_path / "missing.json"))
    with pytest.raises(ConfigurationError):
        load_config()


def test_invalid_yaml_is_rejected(base_env, tmp_path):
    config_file = tmp_path / "broken.yaml"
    config_file.write_text("chain_id: [unclosed\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(config_file)


def test_yaml_must_be_a_mapping(base_env, tmp_path):
    config_file = tmp_path / "list.yaml"
    config_file.write_text("- a\n- b\n", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_config(config_file)


def test_load_contract_abi_accepts_artifact_and_bare_list(abi_file, tmp_path):
    assert load_contract_abi(abi_file) == [{"type": "function", "name": "admin"}]

    bare = tmp_path / "bare.json"
    bare.write_text(json.dumps([{"type": "event", "name": "Voted"}]), encoding="utf-8")
    assert load_contract_abi(bare)[0]["name"] == "Voted"


def test_load_contract_abi_rejects_empty(tmp_path):
    empty = tmp_path / "empty.json"
    empty.write_text("{}", encoding="utf-8")
    with pytest.raises(ConfigurationError):
        load_contract_abi(empty)
