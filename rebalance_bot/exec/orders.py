"""
Unsigned order construction for the CTF exchange.
Each leg is a bounded-price limit order with its own random salt.
"""

import secrets
import time
from dataclasses import dataclass
from decimal import Decimal, ROUND_FLOOR
from enum import IntEnum
from typing import Any

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from ..signals import Opportunity


ZERO_ADDRESS = "0x0000000000000000000000000000000000000000"
USDC_DECIMALS = Decimal("1000000")  # USDC and outcome tokens use 6 decimals


class OrderSide(IntEnum):
    BUY = 0
    SELL = 1


def to_base_units(amount: Decimal) -> int:
    """Convert a token amount to integer 6-decimal units, rounding down."""
    return int((amount * USDC_DECIMALS).to_integral_value(rounding=ROUND_FLOOR))


@dataclass(frozen=True)
class OrderSpec:
    """A single unsigned order."""
    salt: int
    maker: str
    signer: str
    taker: str
    token_id: str
    maker_amount: int
    taker_amount: int
    expiration: int
    nonce: int
    fee_rate_bps: int
    side: OrderSide
    signature_type: int

    # Human-readable terms, not part of the signed struct
    price: Decimal
    size: Decimal

    def to_message(self) -> dict[str, Any]:
        """EIP-712 message values for the Order struct."""
        return {
            "salt": self.salt,
            "maker": self.maker,
            "signer": self.signer,
            "taker": self.taker,
            "tokenId": int(self.token_id),
            "makerAmount": self.maker_amount,
            "takerAmount": self.taker_amount,
            "expiration": self.expiration,
            "nonce": self.nonce,
            "feeRateBps": self.fee_rate_bps,
            "side": int(self.side),
            "signatureType": self.signature_type,
        }

    def to_json(self, signature: str) -> dict[str, Any]:
        """Wire representation for POST /order."""
        return {
            "salt": self.salt,
            "maker": self.maker,
            "signer": self.signer,
            "taker": self.taker,
            "tokenId": self.token_id,
            "makerAmount": str(self.maker_amount),
            "takerAmount": str(self.taker_amount),
            "expiration": str(self.expiration),
            "nonce": str(self.nonce),
            "feeRateBps": str(self.fee_rate_bps),
            "side": self.side.name,
            "signatureType": self.signature_type,
            "signature": signature,
        }


class OrderBuilder:
    """Builds paired BUY orders for an opportunity."""

    def __init__(
        self,
        maker_address: str,
        signer_address: str = "",
        signature_type: int = 0,
        expiration_seconds: int = 300,
    ):
        self.maker = maker_address
        self.signer = signer_address or maker_address
        self.signature_type = signature_type
        self.expiration_seconds = expiration_seconds

    def build_order(
        self,
        token_id: str,
        side: OrderSide,
        price: Decimal,
        size: Decimal,
    ) -> OrderSpec:
        """
        Build a limit order for `size` shares at `price`.

        BUY:  maker gives size * price USDC, takes size shares.
        SELL: maker gives size shares, takes size * price USDC.
        """
        if not token_id:
            raise ValueError("token_id is required")
        if not Decimal("0") < price < Decimal("1"):
            raise ValueError(f"Price out of range: {price}")
        if size <= 0:
            raise ValueError(f"Size must be positive: {size}")

        notional = to_base_units(size * price)
        shares = to_base_units(size)

        return OrderSpec(
            salt=secrets.randbits(256),
            maker=self.maker,
            signer=self.signer,
            taker=ZERO_ADDRESS,
            token_id=token_id,
            maker_amount=notional if side == OrderSide.BUY else shares,
            taker_amount=shares if side == OrderSide.BUY else notional,
            expiration=int(time.time()) + self.expiration_seconds,
            nonce=0,
            fee_rate_bps=0,
            side=side,
            signature_type=self.signature_type,
            price=price,
            size=size,
        )

    def build_arb_orders(self, opportunity: "Opportunity") -> tuple[OrderSpec, OrderSpec]:
        """Build (yes_order, no_order), both BUY at the detected prices."""
        yes_order = self.build_order(
            token_id=opportunity.yes_token_id or "",
            side=OrderSide.BUY,
            price=opportunity.yes_price,
            size=opportunity.position_size,
        )
        no_order = self.build_order(
            token_id=opportunity.no_token_id or "",
            side=OrderSide.BUY,
            price=opportunity.no_price,
            size=opportunity.position_size,
        )
        return yes_order, no_order
