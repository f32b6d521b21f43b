"""
Transaction Signer - handles transaction signing.

The sender never manages wallet keys itself: signing goes through a Signer,
which may be a local keypair (CLI, tests) or an external wallet bridge.
"""

import json
from abc import ABC, abstractmethod
from pathlib import Path
from typing import Optional

import structlog

from solders.hash import Hash
from solders.keypair import Keypair
from solders.message import Message
from solders.pubkey import Pubkey
from solders.transaction import Transaction

from nftsender.config import SenderConfig, get_config
from nftsender.errors import SigningRejected

logger = structlog.get_logger(__name__)


class Signer(ABC):
    """
    Abstract signer for the connected wallet.

    Implementations may block until a user approves or rejects the request.
    Any refusal or unavailability must be raised as SigningRejected.
    """

    @property
    @abstractmethod
    def pubkey(self) -> Pubkey:
        """Address of the wallet, used as owner and fee payer."""
        pass

    @abstractmethod
    async def sign_transaction(self, message: Message, blockhash: Hash) -> Transaction:
        """
        Sign a compiled message against a blockhash.

        Args:
            message: Legacy message with the fee payer set
            blockhash: Recent blockhash to bind

        Returns:
            Signed transaction

        Raises:
            SigningRejected: If the wallet refuses or cannot sign
        """
        pass


class KeypairSigner(Signer):
    """
    Signs with a local keypair.

    Supports loading keys from:
    - File path (Solana CLI JSON keypair: an array of 64 bytes)
    - Base58 encoded secret key
    """

    def __init__(self, keypair: Optional[Keypair] = None, config: Optional[SenderConfig] = None):
        """
        Initialize the keypair signer.

        Args:
            keypair: Keypair to sign with; can also be loaded later
            config: Sender configuration
        """
        self.config = config or get_config()
        self._keypair = keypair

    def load_key_from_file(self, key_path: str) -> None:
        """
        Load a keypair from a Solana CLI JSON file.

        Args:
            key_path: Path to the keypair file
        """
        path = Path(key_path)
        if not path.exists():
            raise FileNotFoundError(f"Keypair file not found: {key_path}")

        secret = json.loads(path.read_text())
        self._keypair = Keypair.from_bytes(bytes(secret))

        logger.info("keypair_loaded", path=key_path, address=str(self._keypair.pubkey()))

    def load_key_from_base58(self, secret: str) -> None:
        """
        Load a keypair from a base58 encoded secret key.

        Args:
            secret: Base58 encoded 64-byte secret key
        """
        self._keypair = Keypair.from_base58_string(secret)
        logger.info("keypair_loaded_from_base58", address=str(self._keypair.pubkey()))

    def load_from_config(self) -> None:
        """Load the keypair from configuration."""
        if not self.config.keypair_path:
            raise ValueError("No keypair configured")
        self.load_key_from_file(self.config.keypair_path)

    @property
    def is_loaded(self) -> bool:
        """Check if a keypair is loaded."""
        return self._keypair is not None

    @property
    def pubkey(self) -> Pubkey:
        if not self._keypair:
            raise RuntimeError("No keypair loaded")
        return self._keypair.pubkey()

    async def sign_transaction(self, message: Message, blockhash: Hash) -> Transaction:
        """Sign a message with the local keypair."""
        if not self._keypair:
            raise SigningRejected("No keypair loaded")

        try:
            signed_tx = Transaction([self._keypair], message, blockhash)
        except Exception as e:
            raise SigningRejected(f"Keypair could not sign transaction: {e}") from e

        logger.debug("transaction_signed", signature=str(signed_tx.signatures[0])[:16] + "...")
        return signed_tx


def generate_test_signer() -> KeypairSigner:
    """
    Generate a signer with a new random keypair for testing.

    WARNING: Do not use in production. The key is not persisted.

    Returns:
        KeypairSigner with a new random key
    """
    signer = KeypairSigner(Keypair())
    logger.warning("test_keypair_generated", address=str(signer.pubkey))
    return signer
