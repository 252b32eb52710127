import pytest

from coti_mcp import config
from coti_mcp.config import CotiConfig, load_account_settings
from coti_mcp.errors import ConfigurationMissingError


def _env(**overrides):
    env = {
        "COTI_MCP_PUBLIC_KEY": "0xA1, 0xB2",
        "COTI_MCP_PRIVATE_KEY": "k1,k2",
        "COTI_MCP_AES_KEY": "s1,s2",
    }
    env.update(overrides)
    return env


def test_load_account_settings_keeps_order_and_trims():
    settings = load_account_settings(_env())
    assert settings.addresses == ["0xA1", "0xB2"]
    assert settings.private_keys == ["k1", "k2"]
    assert settings.aes_keys == ["s1", "s2"]
    assert settings.current_address is None
    assert settings.network == "testnet"


def test_blank_entries_are_dropped():
    settings = load_account_settings(
        _env(COTI_MCP_PUBLIC_KEY="0xA1,,0xB2,", COTI_MCP_PRIVATE_KEY="k1, ,k2", COTI_MCP_AES_KEY=",s1,s2")
    )
    assert settings.addresses == ["0xA1", "0xB2"]
    assert settings.private_keys == ["k1", "k2"]
    assert settings.aes_keys == ["s1", "s2"]


@pytest.mark.parametrize("missing", ["COTI_MCP_PUBLIC_KEY", "COTI_MCP_PRIVATE_KEY", "COTI_MCP_AES_KEY"])
def test_missing_key_list_is_fatal(missing):
    env = _env()
    env.pop(missing)
    with pytest.raises(ConfigurationMissingError) as excinfo:
        load_account_settings(env)
    assert missing in excinfo.value.message


def test_empty_key_list_is_fatal():
    with pytest.raises(ConfigurationMissingError):
        load_account_settings(_env(COTI_MCP_AES_KEY=" , "))


def test_mismatched_list_lengths_are_fatal():
    with pytest.raises(ConfigurationMissingError) as excinfo:
        load_account_settings(_env(COTI_MCP_AES_KEY="s1"))
    assert "COTI_MCP_AES_KEY has 1 entries" in excinfo.value.message


def test_current_address_and_network_are_read():
    settings = load_account_settings(_env(COTI_MCP_CURRENT_PUBLIC_KEY=" 0xB2 ", COTI_MCP_NETWORK="Mainnet"))
    assert settings.current_address == "0xB2"
    assert settings.network == "mainnet"


def test_unknown_network_is_fatal():
    with pytest.raises(ConfigurationMissingError):
        load_account_settings(_env(COTI_MCP_NETWORK="devnet"))


def test_per_tool_rate_limits_skip_bad_pairs():
    limits = config._load_per_tool_rate_limits("transfer_native=0.5, list_accounts=10,broken,sign_message=fast")
    assert limits == {"transfer_native": 0.5, "list_accounts": 10.0}
    assert config._load_per_tool_rate_limits(None) == {}


def test_rpc_url_by_network():
    cfg = CotiConfig(testnet_rpc_url="http://test", mainnet_rpc_url="http://main")
    assert cfg.rpc_url("testnet") == "http://test"
    assert cfg.rpc_url("mainnet") == "http://main"


def test_duplicate_addresses_are_fatal():
    with pytest.raises(ConfigurationMissingError) as excinfo:
        load_account_settings(_env(COTI_MCP_PUBLIC_KEY="0xA1,0xa1"))
    assert excinfo.value.message == "COTI_MCP_PUBLIC_KEY lists 0xa1 more than once"
