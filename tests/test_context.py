import pytest
from coti import crypto_utils
from fastapi.testclient import TestClient

from coti_mcp import server
from coti_mcp.config import CotiConfig
from coti_mcp.context import build_context
from coti_mcp.coti_api import CotiApiClient, CotiSdkCipher
from coti_mcp.errors import ConfigurationMissingError
from coti_mcp.mcp import call_tool
from conftest import ADDRESS_A, ADDRESS_B, AES_A, AES_B, KEY_A, KEY_B, TOKEN, StubClient

ENV = {
    "COTI_MCP_PUBLIC_KEY": f"{ADDRESS_A},{ADDRESS_B}",
    "COTI_MCP_PRIVATE_KEY": f"{KEY_A},{KEY_B}",
    "COTI_MCP_AES_KEY": f"{AES_A},{AES_B}",
    "COTI_MCP_CURRENT_PUBLIC_KEY": ADDRESS_B,
    "COTI_MCP_NETWORK": "mainnet",
}


def test_build_context_from_environment():
    context = build_context(CotiConfig(), ENV)
    assert context.accounts.addresses == [ADDRESS_A, ADDRESS_B]
    assert context.accounts.get().address == ADDRESS_B
    assert context.network.get().value == "mainnet"
    assert isinstance(context.client, CotiApiClient)
    assert context.client.network is context.network
    assert isinstance(context.client.cipher, CotiSdkCipher)


@pytest.mark.asyncio
async def test_built_context_decrypts_with_the_default_account_key():
    context = build_context(CotiConfig(), ENV)
    ciphertext, r = crypto_utils.encrypt(bytes.fromhex(AES_B), (777).to_bytes(2, "big"))
    envelope = await call_tool("decrypt_value", {"ciphertext": str(int.from_bytes(ciphertext + r, "big"))}, context)
    assert envelope["isError"] is False
    assert envelope["content"][0]["text"] == "Decrypted Message: 777"


@pytest.mark.asyncio
async def test_built_context_encrypts_values_for_private_contracts():
    context = build_context(CotiConfig(), ENV)
    envelope = await call_tool(
        "encrypt_value",
        {"message": "500", "contract_address": TOKEN, "function_selector": "0xa9059cbb"},
        context,
    )
    assert envelope["isError"] is False
    ciphertext, signature = envelope["structuredContent"]["encryptedMessage"]
    assert signature.startswith("0x") and len(signature) == 132
    decrypted = await call_tool("decrypt_value", {"ciphertext": str(ciphertext)}, context)
    assert decrypted["content"][0]["text"] == "Decrypted Message: 500"


def test_build_context_rejects_missing_keys():
    with pytest.raises(ConfigurationMissingError):
        build_context(CotiConfig(), {"COTI_MCP_PUBLIC_KEY": ADDRESS_A})


def test_lifespan_builds_and_closes_context(monkeypatch):
    stub = StubClient()
    monkeypatch.setattr(server, "build_context", lambda config: build_context(config, ENV, client=stub))
    app = server.create_app(config=CotiConfig(rate_limit_qps=0))
    with TestClient(app) as client:
        resp = client.post("/tools/get_current_network", json={})
        assert resp.json()["content"][0]["text"] == "Current network: mainnet"
    assert stub.closed is True
    assert app.state.context is None


def test_main_exits_on_bad_configuration(monkeypatch, capsys):
    def fail(config):
        raise ConfigurationMissingError("COTI_MCP_AES_KEY environment variable is required")

    monkeypatch.setattr(server, "build_context", fail)
    monkeypatch.setattr(server, "configure_logging", lambda **kwargs: None)
    with pytest.raises(SystemExit) as excinfo:
        server.main()
    assert excinfo.value.code == 1
    assert "Error: COTI_MCP_AES_KEY environment variable is required" in capsys.readouterr().err
