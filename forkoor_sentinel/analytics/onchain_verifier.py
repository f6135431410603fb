"""
On-chain verifier: authority state, metadata mutability and holder
concentration read directly from Solana, independent of any third party.

Every RPC read goes through the shared RequestGate. A read that is
rate-limited out (gate returns None), a missing account, or a failed decode
all mean "unknown" (None) rather than an error; the analyzer then keeps the
flag at its prior value.

Metadata mutability is decoded from the Metaplex metadata account by walking
its Borsh layout. The layout is owned by a third-party program, so the decode
is isolated here; when the walk fails (format change, truncated account) the
legacy fixed-offset read is used instead.
"""

from __future__ import annotations

import functools
import struct
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, TypeVar

from solders.pubkey import Pubkey

from forkoor_sentinel.analytics.risk_engine import (
    FLAG_FREEZE_AUTHORITY,
    FLAG_HIGH_HOLDER_CONCENTRATION,
    FLAG_METADATA_MUTABLE,
    FLAG_MINT_AUTHORITY,
)
from forkoor_sentinel.core.exceptions import AccountNotFoundError, InvalidAccountOwnerError
from forkoor_sentinel.sentinel_logging import get_logger
from forkoor_sentinel.solana_listener.models import MintInfo
from forkoor_sentinel.solana_listener.request_gate import RequestGate
from forkoor_sentinel.solana_listener.rpc_client import (
    TOKEN_2022_PROGRAM_ID,
    TOKEN_PROGRAM_ID,
    SolanaRpcClient,
)
from forkoor_sentinel.utils.address_utils import require_mint, short

logger = get_logger(__name__)

T = TypeVar("T")

METADATA_PROGRAM_ID = "metaqbxxUerdq28cj1RbAWkYQm3ybzjb6a8bt518x1s"
METADATA_SEED = b"metadata"
METADATA_V1_KEY = 4
# Legacy read: is_mutable byte of a V1 account with max-length padded fields
LEGACY_IS_MUTABLE_OFFSET = 326
CREATOR_SIZE = 32 + 1 + 1

# Token-2022 first: fee-extension tokens are the ones a plain SPL read misses
MINT_PROGRAM_ORDER = (TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID)
DEFAULT_HOLDER_CONCENTRATION_PCT = 50.0
DEFAULT_TOP_HOLDER_COUNT = 10


class MetadataDecodeError(ValueError):
    """Metadata account bytes do not follow the expected V1 layout."""


@dataclass(frozen=True)
class AuthorityState:
    mint_active: bool
    freeze_active: bool
    program_id: str
    supply: int
    decimals: int
    mint_authority: str | None = None
    freeze_authority: str | None = None


@dataclass(frozen=True)
class TokenMetadata:
    name: str
    symbol: str
    uri: str
    seller_fee_basis_points: int
    is_mutable: bool
    update_authority: str
    decimals: int | None = None


def metadata_address(mint: str) -> str:
    """Metaplex metadata PDA for a mint: seeds ["metadata", program, mint]."""
    program = Pubkey.from_string(METADATA_PROGRAM_ID)
    mint_key = require_mint(mint)
    pda, _bump = Pubkey.find_program_address(
        [METADATA_SEED, bytes(program), bytes(mint_key)], program
    )
    return str(pda)


class _Reader:
    """Cursor over Borsh-encoded bytes."""

    def __init__(self, data: bytes) -> None:
        self._data = data
        self._pos = 0

    def take(self, n: int) -> bytes:
        end = self._pos + n
        if n < 0 or end > len(self._data):
            raise MetadataDecodeError(f"read of {n} bytes at {self._pos} past end ({len(self._data)})")
        chunk = self._data[self._pos:end]
        self._pos = end
        return chunk

    def u8(self) -> int:
        return self.take(1)[0]

    def u16(self) -> int:
        return struct.unpack("<H", self.take(2))[0]

    def u32(self) -> int:
        return struct.unpack("<I", self.take(4))[0]

    def string(self) -> str:
        raw = self.take(self.u32())
        try:
            return raw.decode("utf-8").replace("\x00", "").strip()
        except UnicodeDecodeError as e:
            raise MetadataDecodeError(f"invalid utf-8 string: {e}") from e

    def boolean(self) -> bool:
        value = self.u8()
        if value not in (0, 1):
            raise MetadataDecodeError(f"invalid bool byte {value}")
        return value == 1


def decode_metadata(data: bytes) -> TokenMetadata:
    """
    Decode a Metaplex MetadataV1 account:
    key u8 | update_authority 32 | mint 32 | name, symbol, uri (u32 len + utf-8)
    | seller_fee_basis_points u16 | creators Option<Vec<Creator>>
    | primary_sale_happened bool | is_mutable bool.
    """
    r = _Reader(data)
    key = r.u8()
    if key != METADATA_V1_KEY:
        raise MetadataDecodeError(f"unexpected metadata key {key}")
    update_authority = str(Pubkey.from_bytes(r.take(32)))
    r.take(32)  # mint
    name = r.string()
    symbol = r.string()
    uri = r.string()
    seller_fee = r.u16()
    if r.boolean():
        r.take(r.u32() * CREATOR_SIZE)
    r.boolean()  # primary_sale_happened
    is_mutable = r.boolean()
    return TokenMetadata(
        name=name,
        symbol=symbol,
        uri=uri,
        seller_fee_basis_points=seller_fee,
        is_mutable=is_mutable,
        update_authority=update_authority,
    )


def legacy_is_mutable(data: bytes) -> bool | None:
    """Fixed-offset fallback; None when the account is too short."""
    if len(data) > LEGACY_IS_MUTABLE_OFFSET:
        return data[LEGACY_IS_MUTABLE_OFFSET] == 1
    return None


class OnChainVerifier:
    """Reads rug vectors straight from chain through the request gate."""

    def __init__(
        self,
        rpc: SolanaRpcClient,
        gate: RequestGate,
        *,
        holder_concentration_pct: float = DEFAULT_HOLDER_CONCENTRATION_PCT,
        top_holder_count: int = DEFAULT_TOP_HOLDER_COUNT,
    ) -> None:
        self._rpc = rpc
        self._gate = gate
        self._holder_concentration_pct = holder_concentration_pct
        self._top_holder_count = top_holder_count

    @property
    def holder_concentration_pct(self) -> float:
        return self._holder_concentration_pct

    async def _read(self, fn: Callable[..., Awaitable[T]], *args: Any) -> T | None:
        return await self._gate.execute(functools.partial(fn, *args))

    async def read_mint(self, mint: str) -> MintInfo | None:
        """Mint state under Token-2022, else SPL Token; None if neither owns it."""
        for program_id in MINT_PROGRAM_ORDER:
            try:
                return await self._read(self._rpc.get_mint_info, mint, program_id)
            except (AccountNotFoundError, InvalidAccountOwnerError) as e:
                logger.debug(
                    "verifier_mint_program_miss",
                    mint=short(mint),
                    program_id=short(program_id),
                    error=str(e),
                )
        return None

    async def read_authorities(self, mint: str) -> AuthorityState | None:
        """Mint/freeze authority state; active means the authority field is set."""
        info = await self.read_mint(mint)
        if info is None:
            return None
        state = AuthorityState(
            mint_active=bool(info.mint_authority),
            freeze_active=bool(info.freeze_authority),
            program_id=info.program_id,
            supply=info.supply,
            decimals=info.decimals,
            mint_authority=info.mint_authority,
            freeze_authority=info.freeze_authority,
        )
        logger.info(
            "verifier_authorities",
            mint=short(mint),
            mint_authority_active=state.mint_active,
            freeze_authority_active=state.freeze_active,
            token_2022=info.program_id == TOKEN_2022_PROGRAM_ID,
        )
        return state

    async def _metadata_bytes(self, mint: str) -> bytes | None:
        account = await self._read(self._rpc.get_account_info, metadata_address(mint))
        return account.data if account is not None else None

    async def read_metadata_mutability(self, mint: str) -> bool | None:
        """is_mutable of the metadata account; None when there is no (readable) metadata."""
        try:
            data = await self._metadata_bytes(mint)
        except Exception as e:
            logger.warning("verifier_metadata_read_failed", mint=short(mint), error=str(e))
            return None
        if data is None:
            return None
        try:
            return decode_metadata(data).is_mutable
        except MetadataDecodeError as e:
            fallback = legacy_is_mutable(data)
            logger.warning(
                "verifier_metadata_decode_fallback",
                mint=short(mint),
                error=str(e),
                legacy_value=fallback,
            )
            return fallback

    async def read_token_metadata(self, mint: str, *, with_decimals: bool = True) -> TokenMetadata | None:
        """Name, symbol, uri and decimals for display; None when unavailable."""
        try:
            data = await self._metadata_bytes(mint)
            if data is None:
                return None
            meta = decode_metadata(data)
            if not with_decimals:
                return meta
            info = await self.read_mint(mint)
        except Exception as e:
            logger.warning("verifier_token_metadata_failed", mint=short(mint), error=str(e))
            return None
        if info is None:
            return meta
        return TokenMetadata(
            name=meta.name,
            symbol=meta.symbol,
            uri=meta.uri,
            seller_fee_basis_points=meta.seller_fee_basis_points,
            is_mutable=meta.is_mutable,
            update_authority=meta.update_authority,
            decimals=info.decimals,
        )

    async def holder_concentration(self, mint: str, supply: int | None = None) -> float | None:
        """Percent of supply held by the top holder accounts; None when unknown."""
        try:
            largest = await self._read(self._rpc.get_token_largest_accounts, mint)
            if not largest:
                return None
            if supply is None:
                info = await self.read_mint(mint)
                supply = info.supply if info is not None else 0
        except Exception as e:
            logger.warning("verifier_holder_concentration_failed", mint=short(mint), error=str(e))
            return None
        if not supply:
            return None
        top = sum(acct.amount for acct in largest[: self._top_holder_count])
        concentration = top / supply * 100
        logger.info(
            "verifier_holder_concentration",
            mint=short(mint),
            top_holders=min(len(largest), self._top_holder_count),
            concentration_pct=round(concentration, 2),
        )
        return concentration

    async def high_holder_concentration(self, mint: str, supply: int | None = None) -> bool | None:
        concentration = await self.holder_concentration(mint, supply=supply)
        if concentration is None:
            return None
        return concentration > self._holder_concentration_pct

    async def on_chain_flags(self, mint: str, *, include_holders: bool = False) -> dict[str, bool]:
        """
        Partial flags for the signals that could be read; missing keys are unknown.

        With include_holders, holder concentration is checked against the
        supply from the authority read, so the mint is not fetched twice. An
        unreadable mint leaves concentration unknown.

        Never raises for data problems: each failed read is logged and skipped.
        """
        flags: dict[str, bool] = {}
        try:
            authorities = await self.read_authorities(mint)
        except Exception as e:
            logger.error("verifier_authorities_failed", mint=short(mint), error=str(e))
            authorities = None
        if authorities is not None:
            flags[FLAG_MINT_AUTHORITY] = authorities.mint_active
            flags[FLAG_FREEZE_AUTHORITY] = authorities.freeze_active
        mutable = await self.read_metadata_mutability(mint)
        if mutable is not None:
            flags[FLAG_METADATA_MUTABLE] = mutable
        if include_holders and authorities is not None:
            high = await self.high_holder_concentration(mint, supply=authorities.supply)
            if high is not None:
                flags[FLAG_HIGH_HOLDER_CONCENTRATION] = high
        return flags
