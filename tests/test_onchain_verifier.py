"""
Tests for the on-chain verifier: authority reads, Metaplex metadata decoding
and holder concentration. The RPC reader is mocked; the gate is real.
"""

from __future__ import annotations

import asyncio
import struct
from unittest.mock import AsyncMock, MagicMock

from solders.pubkey import Pubkey

from forkoor_sentinel.analytics.onchain_verifier import (
    LEGACY_IS_MUTABLE_OFFSET,
    METADATA_PROGRAM_ID,
    OnChainVerifier,
    decode_metadata,
    legacy_is_mutable,
    metadata_address,
)
from forkoor_sentinel.core.exceptions import AccountNotFoundError, InvalidAccountOwnerError, RpcError
from forkoor_sentinel.solana_listener.models import AccountInfo, MintInfo, TokenAccountBalance
from forkoor_sentinel.solana_listener.request_gate import RequestGate
from forkoor_sentinel.solana_listener.rpc_client import TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID

MINT = "9QCfNuQuxct1Xk9ytFYgxc5fThmTzL4pHQnSjjrVUrka"
AUTHORITY = "DezXAZ8z7PnrnRJjz3wXBoRgixCa6xjnB7YaB1pPB263"


def _borsh_str(value: str) -> bytes:
    raw = value.encode("utf-8")
    return struct.pack("<I", len(raw)) + raw


def _metadata_bytes(*, is_mutable: bool, creators: int = 0, name: str = "Forkable") -> bytes:
    data = bytes([4]) + bytes(Pubkey.from_string(AUTHORITY)) + bytes(Pubkey.from_string(MINT))
    # Padded fields as written by the metadata program
    data += _borsh_str(name + "\x00" * 4) + _borsh_str("FRK") + _borsh_str("https://meta.example/frk.json")
    data += struct.pack("<H", 500)
    if creators:
        data += bytes([1]) + struct.pack("<I", creators) + bytes(34 * creators)
    else:
        data += bytes([0])
    data += bytes([1, 1 if is_mutable else 0])
    return data + bytes(64)


def _mint_info(program_id: str = TOKEN_PROGRAM_ID, mint_authority=AUTHORITY, freeze_authority=None, supply=1_000):
    return MintInfo(
        address=MINT,
        program_id=program_id,
        supply=supply,
        decimals=6,
        mint_authority=mint_authority,
        freeze_authority=freeze_authority,
    )


def _verifier(rpc) -> OnChainVerifier:
    return OnChainVerifier(rpc, RequestGate(min_delay_sec=0.0))


def _rpc_with_mint(info: MintInfo | None = None) -> MagicMock:
    """get_mint_info: Token-2022 rejects ownership, SPL Token returns info."""
    info = info or _mint_info()

    async def get_mint_info(mint, program_id):
        if program_id == TOKEN_2022_PROGRAM_ID:
            raise InvalidAccountOwnerError("owned by Tokenkeg")
        return info

    rpc = MagicMock()
    rpc.get_mint_info = AsyncMock(side_effect=get_mint_info)
    rpc.get_account_info = AsyncMock(return_value=None)
    rpc.get_token_largest_accounts = AsyncMock(return_value=[])
    return rpc


def test_decode_metadata_walks_layout():
    """Strings are length-prefixed and null-stripped; is_mutable follows the creators option."""
    meta = decode_metadata(_metadata_bytes(is_mutable=True, creators=2))
    assert meta.name == "Forkable"
    assert meta.symbol == "FRK"
    assert meta.uri == "https://meta.example/frk.json"
    assert meta.seller_fee_basis_points == 500
    assert meta.update_authority == AUTHORITY
    assert meta.is_mutable is True
    assert decode_metadata(_metadata_bytes(is_mutable=False)).is_mutable is False


def test_legacy_offset_fallback():
    """Too-short data is unknown; long data reads the fixed offset."""
    assert legacy_is_mutable(b"\x00" * 10) is None
    data = bytearray(LEGACY_IS_MUTABLE_OFFSET + 1)
    data[LEGACY_IS_MUTABLE_OFFSET] = 1
    assert legacy_is_mutable(bytes(data)) is True


def test_metadata_address_is_program_derived():
    """PDA matches find_program_address over ["metadata", program, mint]."""
    program = Pubkey.from_string(METADATA_PROGRAM_ID)
    expected, _ = Pubkey.find_program_address(
        [b"metadata", bytes(program), bytes(Pubkey.from_string(MINT))], program
    )
    assert metadata_address(MINT) == str(expected)


def test_read_authorities_falls_back_to_spl_token():
    """Token-2022 is tried first; SPL Token answers; active means field is set."""
    rpc = _rpc_with_mint(_mint_info(freeze_authority=None))
    state = asyncio.run(_verifier(rpc).read_authorities(MINT))
    assert state.mint_active is True
    assert state.freeze_active is False
    assert state.program_id == TOKEN_PROGRAM_ID
    programs = [c.args[1] for c in rpc.get_mint_info.await_args_list]
    assert programs == [TOKEN_2022_PROGRAM_ID, TOKEN_PROGRAM_ID]


def test_read_authorities_missing_mint_is_unknown():
    """No mint under either program: None."""
    rpc = MagicMock()
    rpc.get_mint_info = AsyncMock(side_effect=AccountNotFoundError("missing"))
    assert asyncio.run(_verifier(rpc).read_authorities(MINT)) is None


def test_read_metadata_mutability_decodes_account():
    """Metadata account at the PDA is decoded."""
    rpc = _rpc_with_mint()
    rpc.get_account_info = AsyncMock(
        return_value=AccountInfo("pda", METADATA_PROGRAM_ID, 1, _metadata_bytes(is_mutable=True))
    )
    assert asyncio.run(_verifier(rpc).read_metadata_mutability(MINT)) is True
    rpc.get_account_info.assert_awaited_once_with(metadata_address(MINT))


def test_read_metadata_mutability_without_account_is_unknown():
    """No metadata account is not a risk signal."""
    assert asyncio.run(_verifier(_rpc_with_mint()).read_metadata_mutability(MINT)) is None


def test_read_metadata_mutability_rpc_error_is_unknown():
    """RPC failures while reading metadata degrade to None."""
    rpc = _rpc_with_mint()
    rpc.get_account_info = AsyncMock(side_effect=RpcError("timeout"))
    assert asyncio.run(_verifier(rpc).read_metadata_mutability(MINT)) is None


def test_read_token_metadata_includes_decimals():
    """Display metadata merges the metadata account with mint decimals."""
    rpc = _rpc_with_mint()
    rpc.get_account_info = AsyncMock(
        return_value=AccountInfo("pda", METADATA_PROGRAM_ID, 1, _metadata_bytes(is_mutable=False))
    )
    meta = asyncio.run(_verifier(rpc).read_token_metadata(MINT))
    assert meta.name == "Forkable"
    assert meta.decimals == 6
    assert meta.is_mutable is False


def test_read_token_metadata_without_decimals_skips_mint_read():
    """Name and symbol alone need only the metadata account."""
    rpc = _rpc_with_mint()
    rpc.get_account_info = AsyncMock(
        return_value=AccountInfo("pda", METADATA_PROGRAM_ID, 1, _metadata_bytes(is_mutable=True))
    )
    meta = asyncio.run(_verifier(rpc).read_token_metadata(MINT, with_decimals=False))
    assert (meta.name, meta.symbol) == ("Forkable", "FRK")
    assert meta.decimals is None
    rpc.get_mint_info.assert_not_awaited()


def test_holder_concentration_top_ten_over_supply():
    """Only the ten largest accounts count toward concentration."""
    rpc = _rpc_with_mint(_mint_info(supply=1_000))
    rpc.get_token_largest_accounts = AsyncMock(
        return_value=[TokenAccountBalance(f"acct{i}", 60, 6) for i in range(12)]
    )
    verifier = _verifier(rpc)
    assert asyncio.run(verifier.holder_concentration(MINT)) == 60.0
    assert asyncio.run(verifier.high_holder_concentration(MINT)) is True


def test_holder_concentration_unknown_cases():
    """Empty holder list or zero supply is unknown, not false."""
    empty = _rpc_with_mint()
    assert asyncio.run(_verifier(empty).high_holder_concentration(MINT)) is None

    zero_supply = _rpc_with_mint(_mint_info(supply=0))
    zero_supply.get_token_largest_accounts = AsyncMock(
        return_value=[TokenAccountBalance("acct", 10, 6)]
    )
    assert asyncio.run(_verifier(zero_supply).holder_concentration(MINT)) is None


def test_on_chain_flags_partial():
    """Authorities known, metadata missing: only authority flags are reported."""
    rpc = _rpc_with_mint(_mint_info(mint_authority=None, freeze_authority=AUTHORITY))
    flags = asyncio.run(_verifier(rpc).on_chain_flags(MINT))
    assert flags == {"mint_authority_active": False, "freeze_authority_active": True}


def test_on_chain_flags_never_raise():
    """Every read failing yields an empty dict."""
    rpc = MagicMock()
    rpc.get_mint_info = AsyncMock(side_effect=RpcError("down"))
    rpc.get_account_info = AsyncMock(side_effect=RpcError("down"))
    assert asyncio.run(_verifier(rpc).on_chain_flags(MINT)) == {}


def test_on_chain_flags_holder_check_reuses_authority_supply():
    """The holder check uses the supply from the authority read; the mint is read only once."""
    rpc = _rpc_with_mint(_mint_info(mint_authority=None, supply=1_000))
    rpc.get_token_largest_accounts = AsyncMock(
        return_value=[TokenAccountBalance(f"acct{i}", 40, 6) for i in range(12)]
    )
    flags = asyncio.run(_verifier(rpc).on_chain_flags(MINT, include_holders=True))
    assert flags == {
        "mint_authority_active": False,
        "freeze_authority_active": False,
        "high_holder_concentration": False,
    }
    # Token-2022 miss + SPL Token hit, no second lookup for the supply
    assert rpc.get_mint_info.await_count == 2
    rpc.get_token_largest_accounts.assert_awaited_once()


def test_on_chain_flags_unreadable_mint_skips_holder_check():
    """Without a readable mint the supply is unknown, so concentration is not fetched."""
    rpc = MagicMock()
    rpc.get_mint_info = AsyncMock(side_effect=AccountNotFoundError("no account"))
    rpc.get_account_info = AsyncMock(return_value=None)
    rpc.get_token_largest_accounts = AsyncMock(return_value=[])
    assert asyncio.run(_verifier(rpc).on_chain_flags(MINT, include_holders=True)) == {}
    rpc.get_token_largest_accounts.assert_not_awaited()
