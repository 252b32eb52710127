import pytest

from coti_mcp.errors import DownstreamError
from coti_mcp.tools.native import get_native_balance, transfer_native
from coti_mcp.tools.signing import decrypt_value, encrypt_value, sign_message, verify_signature
from conftest import ADDRESS_A, ADDRESS_B, AES_A, AES_B, KEY_A, RECIPIENT, TOKEN, TX_HASH


@pytest.mark.asyncio
async def test_sign_message_uses_default_account(context, stub_client):
    outcome = await sign_message("hello", context=context)
    assert outcome.text == 'Message: "hello"\nSignature: 0xsignature'
    assert stub_client.calls == [("sign_message", KEY_A, "hello")]


@pytest.mark.asyncio
async def test_sign_message_follows_default_change(context, stub_client):
    context.accounts.set_default(ADDRESS_B)
    outcome = await sign_message("hello", context=context)
    assert outcome.data["address"] == ADDRESS_B


@pytest.mark.asyncio
async def test_verify_signature_reports_signer(context):
    outcome = await verify_signature("hello", "0xsignature", context=context)
    assert outcome.text.endswith(f"Signed by address: {ADDRESS_A}")


@pytest.mark.asyncio
async def test_verify_signature_failure(context, stub_client):
    async def broken(message, signature):
        raise DownstreamError("invalid signature length")

    stub_client.recover_signer = broken
    outcome = await verify_signature("hello", "0x00", context=context)
    assert outcome.text == "Failed to verify signature: invalid signature length"
    assert outcome.error == "downstream_failure"


@pytest.mark.asyncio
async def test_encrypt_value_numeric_message_is_int(context, stub_client):
    outcome = await encrypt_value("42", TOKEN, "0xa9059cbb", context=context)
    assert not outcome.is_error
    assert stub_client.calls == [("encrypt_value", AES_A, 42, TOKEN, "0xa9059cbb")]
    assert outcome.data["encryptedMessage"] == [123456789, "0x0102"]
    assert outcome.text.startswith("Encrypted Message: ")


@pytest.mark.asyncio
async def test_encrypt_value_text_message_stays_string(context, stub_client):
    context.accounts.set_default(ADDRESS_B)
    await encrypt_value("ipfs://meta", TOKEN, "0x12345678", context=context)
    assert stub_client.calls == [("encrypt_value", AES_B, "ipfs://meta", TOKEN, "0x12345678")]


@pytest.mark.asyncio
async def test_encrypt_value_rejects_bad_selector(context, stub_client):
    outcome = await encrypt_value("42", TOKEN, "transfer", context=context)
    assert outcome.text == "Failed to encrypt message: Invalid function selector: transfer"
    assert stub_client.calls == []


@pytest.mark.asyncio
async def test_decrypt_value(context, stub_client):
    stub_client.decrypted = 1000
    outcome = await decrypt_value(" 98765 ", context=context)
    assert outcome.text == "Decrypted Message: 1000"
    assert stub_client.calls == [("decrypt_value", AES_A, 98765)]


@pytest.mark.asyncio
async def test_decrypt_value_rejects_non_numeric(context):
    outcome = await decrypt_value("0xzz", context=context)
    assert outcome.error == "invalid_argument"
    assert outcome.text.startswith("Failed to decrypt message: ")


@pytest.mark.asyncio
async def test_get_native_balance(context):
    outcome = await get_native_balance(ADDRESS_B, context=context)
    assert outcome.text == f"Account: {ADDRESS_B}\nBalance: 1500000000000000000 wei (1.5 COTI)"


@pytest.mark.asyncio
async def test_get_native_balance_invalid_address(context, stub_client):
    outcome = await get_native_balance("0x123", context=context)
    assert outcome.text == "Failed to get native balance: Invalid account address: 0x123"
    assert stub_client.calls == []


@pytest.mark.asyncio
async def test_transfer_native(context, stub_client):
    outcome = await transfer_native(RECIPIENT, "1000", gas_limit="21000", context=context)
    assert outcome.text == (
        "Transaction successful!\n"
        "Token: COTI\n"
        f"Transaction Hash: {TX_HASH}\n"
        "Amount in Wei: 1000\n"
        f"Recipient: {RECIPIENT}"
    )
    assert stub_client.calls == [("send_transaction", KEY_A, RECIPIENT, 1000, 21000)]


@pytest.mark.asyncio
async def test_transfer_native_rejects_bad_amount(context, stub_client):
    outcome = await transfer_native(RECIPIENT, "1.5", context=context)
    assert outcome.text.startswith("Failed to transfer COTI tokens: amount_wei must be a non-negative integer")
    assert stub_client.calls == []
