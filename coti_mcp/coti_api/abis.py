"""Minimal ABIs for COTI private ERC20 and ERC721 token contracts."""

from __future__ import annotations

from typing import Any, Dict, List


def _fn(name: str, inputs: List[Dict[str, Any]], outputs: List[Dict[str, Any]], mutability: str = "view") -> Dict[str, Any]:
    return {
        "type": "function",
        "name": name,
        "inputs": inputs,
        "outputs": outputs,
        "stateMutability": mutability,
    }


def _arg(name: str, type_: str, **extra: Any) -> Dict[str, Any]:
    return {"name": name, "type": type_, **extra}


def _event(name: str, inputs: List[Dict[str, Any]]) -> Dict[str, Any]:
    return {"type": "event", "name": name, "anonymous": False, "inputs": inputs}


# itUint64: encrypted 64-bit input (ciphertext + signature over the input)
IT_UINT64 = [_arg("ciphertext", "uint256"), _arg("signature", "bytes")]
# itString: chunked encrypted string input
IT_STRING = [
    _arg("ciphertext", "tuple", components=[_arg("value", "uint256[]")]),
    _arg("signature", "bytes[]"),
]
# ctString: chunked encrypted string output
CT_STRING = [_arg("value", "uint256[]")]
# Allowance ciphertexts, re-encrypted for owner and spender
ALLOWANCE = [
    _arg("ciphertext", "uint256"),
    _arg("ownerCiphertext", "uint256"),
    _arg("spenderCiphertext", "uint256"),
]

_METADATA = [
    _fn("name", [], [_arg("", "string")]),
    _fn("symbol", [], [_arg("", "string")]),
    _fn("totalSupply", [], [_arg("", "uint256")]),
]

ERC20_ABI: List[Dict[str, Any]] = [
    *_METADATA,
    _fn("decimals", [], [_arg("", "uint8")]),
    _fn("balanceOf", [_arg("account", "address")], [_arg("", "uint256")]),
    _fn(
        "transfer",
        [_arg("to", "address"), _arg("value", "tuple", components=IT_UINT64)],
        [_arg("", "bool")],
        "nonpayable",
    ),
    _fn(
        "approve",
        [_arg("spender", "address"), _arg("value", "tuple", components=IT_UINT64)],
        [_arg("", "bool")],
        "nonpayable",
    ),
    _fn(
        "allowance",
        [_arg("owner", "address"), _arg("spender", "address")],
        [_arg("", "tuple", components=ALLOWANCE)],
    ),
    _fn("mint", [_arg("account", "address"), _arg("amount", "uint64")], [], "nonpayable"),
    _event(
        "Transfer",
        [
            _arg("from", "address", indexed=True),
            _arg("to", "address", indexed=True),
            _arg("senderValue", "uint256", indexed=False),
            _arg("receiverValue", "uint256", indexed=False),
        ],
    ),
    _event(
        "Approval",
        [
            _arg("owner", "address", indexed=True),
            _arg("spender", "address", indexed=True),
            _arg("ownerValue", "uint256", indexed=False),
            _arg("spenderValue", "uint256", indexed=False),
        ],
    ),
]

ERC721_ABI: List[Dict[str, Any]] = [
    *_METADATA,
    _fn("balanceOf", [_arg("owner", "address")], [_arg("", "uint256")]),
    _fn("ownerOf", [_arg("tokenId", "uint256")], [_arg("", "address")]),
    _fn("tokenURI", [_arg("tokenId", "uint256")], [_arg("", "tuple", components=CT_STRING)]),
    _fn("getApproved", [_arg("tokenId", "uint256")], [_arg("", "address")]),
    _fn("isApprovedForAll", [_arg("owner", "address"), _arg("operator", "address")], [_arg("", "bool")]),
    _fn("approve", [_arg("to", "address"), _arg("tokenId", "uint256")], [], "nonpayable"),
    _fn("setApprovalForAll", [_arg("operator", "address"), _arg("approved", "bool")], [], "nonpayable"),
    _fn(
        "transferFrom",
        [_arg("from", "address"), _arg("to", "address"), _arg("tokenId", "uint256")],
        [],
        "nonpayable",
    ),
    _fn(
        "safeTransferFrom",
        [_arg("from", "address"), _arg("to", "address"), _arg("tokenId", "uint256")],
        [],
        "nonpayable",
    ),
    _fn(
        "mint",
        [_arg("to", "address"), _arg("itTokenURI", "tuple", components=IT_STRING)],
        [],
        "nonpayable",
    ),
]

# Events emitted by both token standards; ERC20 value fields are ctUint64 ciphertexts.
ERC721_EVENTS: List[Dict[str, Any]] = [
    _event(
        "Transfer",
        [
            _arg("from", "address", indexed=True),
            _arg("to", "address", indexed=True),
            _arg("tokenId", "uint256", indexed=True),
        ],
    ),
    _event(
        "Approval",
        [
            _arg("owner", "address", indexed=True),
            _arg("approved", "address", indexed=True),
            _arg("tokenId", "uint256", indexed=True),
        ],
    ),
    _event(
        "ApprovalForAll",
        [
            _arg("owner", "address", indexed=True),
            _arg("operator", "address", indexed=True),
            _arg("approved", "bool", indexed=False),
        ],
    ),
    _event("MetadataUpdate", [_arg("_tokenId", "uint256", indexed=False)]),
    _event(
        "BatchMetadataUpdate",
        [_arg("_fromTokenId", "uint256", indexed=False), _arg("_toTokenId", "uint256", indexed=False)],
    ),
]
ERC721_ABI.extend(ERC721_EVENTS)

# AccountOnboard: registers an RSA public key and returns the AES key in two RSA-encrypted shares.
ONBOARD_ABI: List[Dict[str, Any]] = [
    _fn(
        "onboardAccount",
        [_arg("publicKey", "bytes"), _arg("signedEK", "bytes")],
        [],
        "nonpayable",
    ),
    _event(
        "AccountOnboarded",
        [
            _arg("_from", "address", indexed=True),
            _arg("userKey1", "bytes", indexed=False),
            _arg("userKey2", "bytes", indexed=False),
        ],
    ),
]
