"""
Account identity for the Polymarket CLOB.
Signs orders (EIP-712) and builds L1 (EIP-712) and L2 (HMAC) request headers.
"""

import base64
import hashlib
import hmac
import time
from typing import Optional

from eth_account import Account
from eth_account.messages import encode_typed_data

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..exec.orders import OrderSpec


EIP712_DOMAIN_TYPE = [
    {"name": "name", "type": "string"},
    {"name": "version", "type": "string"},
    {"name": "chainId", "type": "uint256"},
]

ORDER_TYPE = [
    {"name": "salt", "type": "uint256"},
    {"name": "maker", "type": "address"},
    {"name": "signer", "type": "address"},
    {"name": "taker", "type": "address"},
    {"name": "tokenId", "type": "uint256"},
    {"name": "makerAmount", "type": "uint256"},
    {"name": "takerAmount", "type": "uint256"},
    {"name": "expiration", "type": "uint256"},
    {"name": "nonce", "type": "uint256"},
    {"name": "feeRateBps", "type": "uint256"},
    {"name": "side", "type": "uint8"},
    {"name": "signatureType", "type": "uint8"},
]

CLOB_AUTH_TYPE = [
    {"name": "address", "type": "address"},
    {"name": "timestamp", "type": "string"},
    {"name": "nonce", "type": "uint256"},
    {"name": "message", "type": "string"},
]

AUTH_MESSAGE = "This message attests that I control the given wallet"


class AccountSigner:
    """
    One trading account: a private key plus optional L2 API credentials.

    sign() is the order-signing capability used by the execution layer.
    """

    def __init__(
        self,
        private_key: str,
        exchange_address: str,
        chain_id: int = 137,
        api_key: Optional[str] = None,
        api_secret: Optional[str] = None,
        api_passphrase: Optional[str] = None,
    ):
        if not private_key.startswith("0x"):
            private_key = "0x" + private_key
        self.account = Account.from_key(private_key)
        self.address = self.account.address
        self.exchange_address = exchange_address
        self.chain_id = chain_id
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_passphrase = api_passphrase

    def sign(self, order: "OrderSpec") -> str:
        """EIP-712 signature of the exchange Order struct."""
        typed_data = {
            "types": {
                "EIP712Domain": EIP712_DOMAIN_TYPE + [
                    {"name": "verifyingContract", "type": "address"},
                ],
                "Order": ORDER_TYPE,
            },
            "primaryType": "Order",
            "domain": {
                "name": "Polymarket CTF Exchange",
                "version": "1",
                "chainId": self.chain_id,
                "verifyingContract": self.exchange_address,
            },
            "message": order.to_message(),
        }
        signed = self.account.sign_message(encode_typed_data(full_message=typed_data))
        return _hex(signed.signature)

    def get_l1_headers(self, nonce: int = 0) -> dict[str, str]:
        """
        L1 authentication headers (EIP-712 ClobAuth).
        Used for deriving API credentials.
        """
        timestamp = str(int(time.time()))

        typed_data = {
            "types": {
                "EIP712Domain": EIP712_DOMAIN_TYPE,
                "ClobAuth": CLOB_AUTH_TYPE,
            },
            "primaryType": "ClobAuth",
            "domain": {
                "name": "ClobAuthDomain",
                "version": "1",
                "chainId": self.chain_id,
            },
            "message": {
                "address": self.address,
                "timestamp": timestamp,
                "nonce": nonce,
                "message": AUTH_MESSAGE,
            },
        }
        signed = self.account.sign_message(encode_typed_data(full_message=typed_data))

        return {
            "POLY_ADDRESS": self.address,
            "POLY_SIGNATURE": _hex(signed.signature),
            "POLY_TIMESTAMP": timestamp,
            "POLY_NONCE": str(nonce),
        }

    def get_l2_headers(self, method: str, path: str, body: str = "") -> dict[str, str]:
        """
        L2 authentication headers (HMAC-SHA256 over timestamp+method+path+body).
        Used for authenticated API requests.
        """
        if not self.has_l2_credentials():
            raise ValueError("API credentials required for L2 authentication")

        timestamp = str(int(time.time()))
        message = timestamp + method.upper() + path + body

        secret_bytes = base64.urlsafe_b64decode(self.api_secret)
        digest = hmac.new(secret_bytes, message.encode("utf-8"), hashlib.sha256).digest()

        return {
            "POLY_ADDRESS": self.address,
            "POLY_SIGNATURE": base64.urlsafe_b64encode(digest).decode("utf-8"),
            "POLY_TIMESTAMP": timestamp,
            "POLY_API_KEY": self.api_key,
            "POLY_PASSPHRASE": self.api_passphrase,
        }

    def set_api_credentials(self, api_key: str, api_secret: str, api_passphrase: str) -> None:
        self.api_key = api_key
        self.api_secret = api_secret
        self.api_passphrase = api_passphrase

    def has_l2_credentials(self) -> bool:
        return all([self.api_key, self.api_secret, self.api_passphrase])


class DryRunSigner:
    """Stand-in signer for dry runs without a wallet."""

    address = "0x0000000000000000000000000000000000000001"

    def sign(self, order: "OrderSpec") -> str:
        return "DRY_RUN_SIGNATURE"


def _hex(signature: bytes) -> str:
    value = signature.hex()
    return value if value.startswith("0x") else "0x" + value
