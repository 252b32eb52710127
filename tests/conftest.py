import os
import sys

import pytest

# Ensure repository root is on sys.path before importing project modules.
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)

from coti_mcp.accounts import Credential, CredentialStore  # noqa: E402
from coti_mcp.config import CotiConfig  # noqa: E402
from coti_mcp.context import ServerContext  # noqa: E402
from coti_mcp.metrics import default_metrics  # noqa: E402
from coti_mcp.network import NetworkSelector  # noqa: E402

ADDRESS_A = "0x0D7C5C1DA069fd7C1fAFBeb922482B2C7B15D273"
ADDRESS_B = "0x1111111111111111111111111111111111111111"
ADDRESS_NEW = "0x2222222222222222222222222222222222222222"
TOKEN = "0x3333333333333333333333333333333333333333"
RECIPIENT = "0x4444444444444444444444444444444444444444"
KEY_A = "0x" + "aa" * 32
KEY_B = "0x" + "bb" * 32
AES_A = "a1" * 16
AES_B = "b2" * 16
TX_HASH = "0x" + "ab" * 32


class StubClient:
    """Records calls and returns canned chain results."""

    def __init__(self):
        self.calls = []
        self.contract_results = {}
        self.receipt = {"transactionHash": TX_HASH, "status": 1, "blockNumber": 10, "gasUsed": 21000, "logs": []}
        self.balance = 1500000000000000000
        self.aes_key = "c3" * 16
        self.decrypted = 0
        self.closed = False

    @staticmethod
    def create_random_keypair():
        return {"address": ADDRESS_NEW, "private_key": "0x" + "cc" * 32}

    @staticmethod
    def function_selector(abi, function_name):
        return {"transfer": "0xa9059cbb", "approve": "0x095ea7b3"}.get(function_name, "0x12345678")

    async def get_balance(self, address):
        self.calls.append(("get_balance", address))
        return self.balance

    async def sign_message(self, private_key, message):
        self.calls.append(("sign_message", private_key, message))
        return "0xsignature"

    async def recover_signer(self, message, signature):
        return ADDRESS_A

    async def encrypt_value(self, private_key, aes_key, value, contract_address, function_selector):
        self.calls.append(("encrypt_value", aes_key, value, contract_address, function_selector))
        return (123456789, b"\x01\x02")

    async def decrypt_value(self, private_key, aes_key, ciphertext):
        self.calls.append(("decrypt_value", aes_key, ciphertext))
        return self.decrypted

    async def send_transaction(self, private_key, to, value, gas_limit=None):
        self.calls.append(("send_transaction", private_key, to, value, gas_limit))
        return self.receipt

    async def call_contract(self, private_key, address, abi, function_name, args=()):
        self.calls.append(("call", function_name, list(args)))
        result = self.contract_results[function_name]
        if isinstance(result, Exception):
            raise result
        return result

    async def transact_contract(self, private_key, address, abi, function_name, args=(), gas_limit=None):
        self.calls.append(("transact", function_name, list(args), gas_limit))
        return self.receipt

    async def generate_or_recover_aes_key(self, private_key):
        self.calls.append(("generate_or_recover_aes_key", private_key))
        return self.aes_key

    async def get_transaction(self, tx_hash):
        return None

    async def get_transaction_receipt(self, tx_hash):
        return None

    async def get_block_number(self):
        return 0

    async def aclose(self):
        self.closed = True


@pytest.fixture(autouse=True)
def reset_metrics():
    default_metrics.reset()
    yield
    default_metrics.reset()


@pytest.fixture
def store():
    return CredentialStore(
        [
            Credential(address=ADDRESS_A, private_key=KEY_A, aes_key=AES_A),
            Credential(address=ADDRESS_B, private_key=KEY_B, aes_key=AES_B),
        ]
    )


@pytest.fixture
def stub_client():
    return StubClient()


@pytest.fixture
def context(store, stub_client):
    return ServerContext(
        config=CotiConfig(rate_limit_qps=0),
        accounts=store,
        network=NetworkSelector(),
        client=stub_client,
    )
