from coti_mcp.coti_api.abis import ERC20_ABI, ERC721_ABI
from coti_mcp.coti_api.cipher import ConfidentialCipher, CotiSdkCipher
from coti_mcp.coti_api.client import CotiApiClient

__all__ = [
    "CotiApiClient",
    "ConfidentialCipher",
    "CotiSdkCipher",
    "ERC20_ABI",
    "ERC721_ABI",
]
