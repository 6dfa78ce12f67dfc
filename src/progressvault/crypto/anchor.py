"""Anchor the ledger's audit root on an Ethereum chain.

The Merkle root over the event log is embedded in the data field of a
0-ETH self-send transaction. Observers can later check that the event
history they were shown matches a root that existed at a given block.
No contract code runs; the chain is only a timestamped witness.
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from datetime import datetime, timezone

from progressvault.crypto.merkle import MerkleTree
from progressvault.persistence.event_log import EventLog


logger = logging.getLogger(__name__)

SEPOLIA_CHAIN_ID = 11155111

_EXPLORERS = {
    SEPOLIA_CHAIN_ID: "https://sepolia.etherscan.io/tx/",
    1: "https://etherscan.io/tx/",
}


@dataclass(frozen=True)
class AnchorRecord:
    """A confirmed audit-root anchor."""
    audit_root: str
    event_count: int
    tx_hash: str
    block_number: int
    chain_id: int
    timestamp_utc: str
    explorer_url: str


def audit_root(event_log: EventLog) -> str:
    """Merkle root over every event hash, in log order."""
    return MerkleTree(event_log.event_hashes()).root


def anchor_to_chain(
    root: str,
    event_count: int,
    rpc_url: str,
    private_key: str,
    chain_id: int = SEPOLIA_CHAIN_ID,
    gas: int = 30_000,
    gas_price_gwei: str = "2",
) -> AnchorRecord:
    """Send the audit root on-chain and wait for one confirmation."""
    from web3 import Web3, HTTPProvider
    from eth_account import Account

    digest = root.removeprefix("sha256:")
    w3 = Web3(HTTPProvider(rpc_url))
    acct = Account.from_key(private_key)

    tx = {
        "to": acct.address,
        "value": 0,
        "gas": gas,
        "gasPrice": w3.to_wei(gas_price_gwei, "gwei"),
        "nonce": w3.eth.get_transaction_count(acct.address),
        "chainId": chain_id,
        "data": bytes.fromhex(digest),
    }

    signed = acct.sign_transaction(tx)
    tx_hash = w3.eth.send_raw_transaction(signed.raw_transaction)
    tx_hex = "0x" + bytes(tx_hash).hex()
    logger.info("Anchor tx sent %s (root %s)", tx_hex, root)

    receipt = w3.eth.wait_for_transaction_receipt(tx_hash, timeout=300)
    logger.info("Anchor confirmed in block %d", receipt.blockNumber)

    explorer = _EXPLORERS.get(chain_id)
    return AnchorRecord(
        audit_root=root,
        event_count=event_count,
        tx_hash=tx_hex,
        block_number=receipt.blockNumber,
        chain_id=chain_id,
        timestamp_utc=datetime.now(timezone.utc).strftime("%Y-%m-%dT%H:%M:%SZ"),
        explorer_url=f"{explorer}{tx_hex}" if explorer else "",
    )
