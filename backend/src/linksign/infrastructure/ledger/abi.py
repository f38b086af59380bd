"""AgreementOracle contract ABI."""

from typing import Any

AGREEMENT_ORACLE_ABI: list[dict[str, Any]] = [
    {
        "type": "function",
        "name": "registerAgreement",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "agreementId", "type": "bytes32"},
            {"name": "docHash", "type": "bytes32"},
            {"name": "cid", "type": "string"},
            {"name": "creator", "type": "address"},
            {"name": "paymentRef", "type": "bytes32"},
            {"name": "chainRef", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "recordSignature",
        "stateMutability": "nonpayable",
        "inputs": [
            {"name": "agreementId", "type": "bytes32"},
            {"name": "signer", "type": "address"},
            {"name": "paymentRef", "type": "bytes32"},
            {"name": "chainRef", "type": "string"},
        ],
        "outputs": [],
    },
    {
        "type": "function",
        "name": "agreementExists",
        "stateMutability": "view",
        "inputs": [{"name": "agreementId", "type": "bytes32"}],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "function",
        "name": "hasSigned",
        "stateMutability": "view",
        "inputs": [
            {"name": "agreementId", "type": "bytes32"},
            {"name": "signer", "type": "address"},
        ],
        "outputs": [{"name": "", "type": "bool"}],
    },
    {
        "type": "event",
        "name": "AgreementCreated",
        "anonymous": False,
        "inputs": [
            {"name": "agreementId", "type": "bytes32", "indexed": True},
            {"name": "docHash", "type": "bytes32", "indexed": False},
            {"name": "cid", "type": "string", "indexed": False},
            {"name": "creator", "type": "address", "indexed": True},
            {"name": "paymentRef", "type": "bytes32", "indexed": False},
            {"name": "chainRef", "type": "string", "indexed": False},
        ],
    },
    {
        "type": "event",
        "name": "AgreementSigned",
        "anonymous": False,
        "inputs": [
            {"name": "agreementId", "type": "bytes32", "indexed": True},
            {"name": "signer", "type": "address", "indexed": True},
            {"name": "paymentRef", "type": "bytes32", "indexed": False},
            {"name": "chainRef", "type": "string", "indexed": False},
        ],
    },
]
