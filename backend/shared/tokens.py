"""Token registry: canonical addresses and base-unit amount conversion.

Every amount that reaches the record store is an integer string in the
token's base units. Conversions go through Decimal so that human amounts
such as "0.1" never pick up binary floating point error.
"""

from __future__ import annotations

from dataclasses import dataclass
from decimal import ROUND_HALF_UP, Decimal, InvalidOperation, localcontext

from pydantic import Field
from pydantic_settings import BaseSettings
from web3 import Web3

from shared.validators import is_hex_address

# Enough precision for any uint256 amount.
_AMOUNT_PRECISION = 80


class UnsupportedTokenError(ValueError):
    """The identifier matches neither a known symbol nor a known token address."""


class InvalidAmountError(ValueError):
    """The amount is missing, non-numeric or not strictly positive."""


class TokenSettings(BaseSettings):
    model_config = {"env_prefix": "TOKEN_"}

    wld_address: str = "0x1FfE36E4C7F1cdd192d08F7569bB31Ac5D2B6C2f"
    usdc_address: str = "0xDECAF9CD2367cdbb726E904cD6397eDFcAe6068D"
    memecoin_address: str = "0xA9B68b83c130b67D2E0c5d44EeE466D70c1B2de4"
    memecoin_symbol: str = "PUF"
    memecoin_name: str = "PUF Memecoin"
    memecoin_decimals: int = Field(default=18, ge=0, le=36)


@dataclass(frozen=True)
class TokenConfig:
    key: str  # registry key: "WLD" | "USDC" | "MEMECOIN"
    symbol: str
    name: str
    decimals: int
    address: str  # canonical (lowercase) address


def canonical_address(value: str) -> str:
    """Return the canonical form of a hex address (EIP-55 checksummed, then lowercased).

    Raises ValueError for anything that is not a 0x-prefixed 40 hex digit address.
    """
    if not is_hex_address(value):
        raise ValueError(f"Invalid address: {value!r}")
    return Web3.to_checksum_address(value.strip()).lower()


def checksum_address(value: str) -> str:
    """Return the EIP-55 display form of an address."""
    return Web3.to_checksum_address(canonical_address(value))


class TokenRegistry:
    """Static token configuration with symbol and address lookups."""

    def __init__(self, settings: TokenSettings | None = None) -> None:
        settings = settings or TokenSettings()
        configs = [
            TokenConfig("WLD", "WLD", "Worldcoin", 18, canonical_address(settings.wld_address)),
            TokenConfig("USDC", "USDC", "USD Coin", 6, canonical_address(settings.usdc_address)),
            TokenConfig(
                "MEMECOIN",
                settings.memecoin_symbol.upper(),
                settings.memecoin_name,
                settings.memecoin_decimals,
                canonical_address(settings.memecoin_address),
            ),
        ]
        self._by_key = {config.key: config for config in configs}
        self._by_symbol = {config.symbol: config for config in configs}
        self._by_address = {config.address: config for config in configs}

    @property
    def tokens(self) -> list[TokenConfig]:
        return list(self._by_key.values())

    def resolve(self, identifier: str | None) -> TokenConfig:
        """Resolve a registry key, symbol or address to its token configuration."""
        if not identifier or not isinstance(identifier, str) or not identifier.strip():
            raise UnsupportedTokenError("Token is required")

        trimmed = identifier.strip()
        upper = trimmed.upper()
        config = self._by_key.get(upper) or self._by_symbol.get(upper)
        if config is not None:
            return config

        if is_hex_address(trimmed):
            config = self._by_address.get(canonical_address(trimmed))
            if config is not None:
                return config

        raise UnsupportedTokenError(f"Token {identifier!r} is not supported")

    def normalize(self, identifier: str | None) -> str:
        """Map a symbol or address to the canonical token address."""
        return self.resolve(identifier).address

    def is_supported(self, identifier: str | None) -> bool:
        try:
            self.resolve(identifier)
        except UnsupportedTokenError:
            return False
        return True

    def tokens_match(self, a: str | None, b: str | None) -> bool:
        try:
            return self.normalize(a) == self.normalize(b)
        except UnsupportedTokenError:
            return False

    def to_base_units(self, human_amount: object, token: str) -> str:
        """Convert a human amount to an integer string of base units, rounding half up."""
        config = self.resolve(token)
        value = _parse_amount(human_amount)
        with localcontext() as ctx:
            ctx.prec = _AMOUNT_PRECISION
            scaled = (value * (Decimal(10) ** config.decimals)).quantize(Decimal(1), rounding=ROUND_HALF_UP)
        if scaled <= 0:
            raise InvalidAmountError(f"Amount {human_amount!r} rounds to zero base units")
        return str(int(scaled))

    def from_base_units(self, base_units: str | int, token: str) -> Decimal:
        """Convert an integer amount of base units back to a human Decimal."""
        config = self.resolve(token)
        with localcontext() as ctx:
            ctx.prec = _AMOUNT_PRECISION
            return Decimal(int(base_units)).scaleb(-config.decimals)


def _parse_amount(raw: object) -> Decimal:
    if raw is None or isinstance(raw, bool):
        raise InvalidAmountError("Amount is required")
    try:
        value = Decimal(str(raw).strip())
    except InvalidOperation as e:
        raise InvalidAmountError(f"Amount {raw!r} is not a number") from e
    if not value.is_finite() or value <= 0:
        raise InvalidAmountError(f"Amount {raw!r} must be greater than zero")
    return value
