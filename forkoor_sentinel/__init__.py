"""
Forkoor Sentinel: token launch monitor and rug-risk scorer for Solana.

Watches new token deployments (pump.fun feed, pump.fun and Raydium program
logs), funnels them through a rate-limited admission queue, and scores each
mint from a RugCheck report plus independent on-chain verification. Tokens
whose flaws are fixable by redeploying a corrected token are flagged as fork
opportunities for downstream collaborators.
"""

__version__ = "0.1.0"
