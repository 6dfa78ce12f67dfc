"""Runtime settings, read from the environment and an optional .env file.

The development defaults make the CLI usable out of the box against the
plaintext reference backend. They must never be used with real value:
the dev verifier key is public.
"""

from __future__ import annotations

import os
from dataclasses import dataclass
from pathlib import Path
from typing import Mapping, Optional

from dotenv import load_dotenv
from web3 import Web3


DEV_LEDGER_ADDRESS = "0x5FbDB2315678afecb367f032d93F642f64180aa3"
DEV_VERIFIER_KEY = "0x4c0883a69102937d6231471b5dbb6204fe5129617082792ae468d01a3f362318"
DEFAULT_CHAIN_ID = 11155111


@dataclass(frozen=True)
class LedgerSettings:
    ledger_address: str = DEV_LEDGER_ADDRESS
    verifier_key: str = DEV_VERIFIER_KEY
    data_dir: Path = Path("data")
    chain_id: int = DEFAULT_CHAIN_ID
    rpc_url: Optional[str] = None
    anchor_private_key: Optional[str] = None

    @property
    def state_path(self) -> Path:
        return self.data_dir / "state.json"

    @property
    def events_path(self) -> Path:
        return self.data_dir / "events.jsonl"

    @property
    def can_anchor(self) -> bool:
        return bool(self.rpc_url and self.anchor_private_key)

    @staticmethod
    def from_env(
        env_file: Optional[Path] = None,
        environ: Optional[Mapping[str, str]] = None,
    ) -> LedgerSettings:
        """Build settings from ``environ`` (default os.environ) after loading .env.

        Raises ValueError for a malformed ledger address or chain id.
        """
        if environ is None:
            load_dotenv(env_file)
            environ = os.environ

        ledger_address = environ.get("PROGRESSVAULT_LEDGER_ADDRESS") or DEV_LEDGER_ADDRESS
        if not Web3.is_address(ledger_address):
            raise ValueError(f"PROGRESSVAULT_LEDGER_ADDRESS is not an address: {ledger_address}")

        chain_raw = environ.get("PROGRESSVAULT_CHAIN_ID") or str(DEFAULT_CHAIN_ID)
        try:
            chain_id = int(chain_raw)
        except ValueError as e:
            raise ValueError(f"PROGRESSVAULT_CHAIN_ID must be an integer, got {chain_raw!r}") from e

        return LedgerSettings(
            ledger_address=Web3.to_checksum_address(ledger_address),
            verifier_key=environ.get("PROGRESSVAULT_VERIFIER_KEY") or DEV_VERIFIER_KEY,
            data_dir=Path(environ.get("PROGRESSVAULT_DATA_DIR") or "data"),
            chain_id=chain_id,
            rpc_url=environ.get("SEPOLIA_RPC_URL") or None,
            anchor_private_key=(
                environ.get("PRIVATE_KEY") or environ.get("SEPOLIA_PRIVATE_KEY") or None
            ),
        )
