"""
Parsed-transaction helpers: jsonParsed getTransaction payloads to mint candidates.

Purely structural; no RPC and no scoring. Handles accountKeys given either as
plain strings or as {"pubkey": ...} objects, and instructions from both the
top-level message and meta.innerInstructions.
"""

from __future__ import annotations

from typing import Any, Iterable, Iterator

# SPL mint account size (bytes) for the base token program
MINT_ACCOUNT_SIZE = 82

INITIALIZE_MINT_TYPES = frozenset({"initializeMint", "initializeMint2"})

KNOWN_BASE_MINTS = frozenset({
    "So11111111111111111111111111111111111111112",  # Wrapped SOL
    "EPjFWdd5AufqSSqeM2qN1xzybapC8G4wEGGkZwyTDt1v",  # USDC
    "Es9vMFrzaCERmJfrF4H2FYD4KCoNkY11McCe8BenwNYB",  # USDT
    "7vfCXTUXx5WJV5JADk17DUJ4ksgau7utNKj4b963voxs",  # ETH (Wormhole)
})


def logs_match(logs: Iterable[str], keywords: Iterable[str]) -> bool:
    """Cheap pre-filter: does any log line contain any keyword (case-sensitive)."""
    words = tuple(keywords)
    return any(word in line for line in logs for word in words)


def _message(tx: dict[str, Any]) -> dict[str, Any]:
    transaction = tx.get("transaction") if isinstance(tx, dict) else None
    if not isinstance(transaction, dict):
        return {}
    message = transaction.get("message")
    return message if isinstance(message, dict) else {}


def account_keys(tx: dict[str, Any]) -> list[str]:
    """Account keys of the message, in order, as base58 strings."""
    keys: list[str] = []
    for key in _message(tx).get("accountKeys") or []:
        if isinstance(key, str):
            keys.append(key)
        elif isinstance(key, dict) and isinstance(key.get("pubkey"), str):
            keys.append(key["pubkey"])
    return keys


def fee_payer(tx: dict[str, Any]) -> str:
    """First account key (fee payer / creator); empty string if unavailable."""
    keys = account_keys(tx)
    return keys[0] if keys else ""


def iter_instructions(tx: dict[str, Any]) -> Iterator[dict[str, Any]]:
    """Inner instructions first (where CPI mint creation lives), then top-level ones."""
    meta = tx.get("meta") if isinstance(tx, dict) else None
    for inner in (meta or {}).get("innerInstructions") or []:
        for ix in (inner or {}).get("instructions") or []:
            if isinstance(ix, dict):
                yield ix
    for ix in _message(tx).get("instructions") or []:
        if isinstance(ix, dict):
            yield ix


def initialized_mints(tx: dict[str, Any]) -> list[str]:
    """Mints created by initializeMint/initializeMint2 instructions, first-seen order, no duplicates."""
    mints: list[str] = []
    for ix in iter_instructions(tx):
        parsed = ix.get("parsed")
        if not isinstance(parsed, dict) or parsed.get("type") not in INITIALIZE_MINT_TYPES:
            continue
        mint = (parsed.get("info") or {}).get("mint")
        if isinstance(mint, str) and mint and mint not in mints:
            mints.append(mint)
    return mints


def candidate_mint_keys(tx: dict[str, Any]) -> list[str]:
    """Account keys that might be a newly listed mint (known base tokens removed)."""
    out: list[str] = []
    for key in account_keys(tx):
        if key in KNOWN_BASE_MINTS or key in out:
            continue
        out.append(key)
    return out
