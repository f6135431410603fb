"""Solana address validation and display helpers."""

from solders.pubkey import Pubkey

from forkoor_sentinel.core.exceptions import InvalidMintError


def is_valid_address(address: str) -> bool:
    """Return True if address is a valid base58 Solana public key."""
    try:
        Pubkey.from_string(address.strip())
        return True
    except Exception:
        return False


def require_mint(mint: str) -> Pubkey:
    """Parse a mint identity; raise InvalidMintError for anything that is not a pubkey."""
    if not isinstance(mint, str) or not mint.strip():
        raise InvalidMintError("mint must be a non-empty string")
    try:
        return Pubkey.from_string(mint.strip())
    except Exception as e:
        raise InvalidMintError(f"Invalid Solana mint address: {mint!r}") from e


def short(address: str | None, chars: int = 16) -> str:
    """Truncate an address for log output."""
    if not address:
        return ""
    return address[:chars] + "..." if len(address) > chars else address
