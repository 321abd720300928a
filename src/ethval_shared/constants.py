"""
constants.py — shared constants used across the collector.

Bookkeeping table names, status/quality literals, source tags and the
dimension lists for composite-keyed metrics live here so the pipeline,
the CLI and the SQL schema stay in sync.
"""

from __future__ import annotations

from typing import Final, Literal

# ---------------------------------------------------------------------------
# Bookkeeping tables
# ---------------------------------------------------------------------------
STATUS_TABLE: Final[str] = "data_collection_status"
LOG_TABLE: Final[str] = "data_collection_logs"

# ---------------------------------------------------------------------------
# Typed literals
# ---------------------------------------------------------------------------
RunStatusName = Literal["pending", "success", "partial", "failed"]
QualityTag = Literal["success", "partial", "estimated"]
LogType = Literal["info", "warning", "error"]

# Tags written to the `source` column for non-live rows
SOURCE_INTERPOLATED: Final[str] = "interpolated"
SOURCE_ESTIMATED: Final[str] = "estimated"
SYNTHETIC_SOURCES: Final[frozenset[str]] = frozenset(
    {SOURCE_INTERPOLATED, SOURCE_ESTIMATED}
)

# ---------------------------------------------------------------------------
# Ethereum network facts
# ---------------------------------------------------------------------------
BEACON_CHAIN_GENESIS: Final[str] = "2020-12-01"
ETH_PER_VALIDATOR: Final[int] = 32
WEI_PER_GWEI: Final[float] = 1e9
WEI_PER_ETH: Final[float] = 1e18

# ---------------------------------------------------------------------------
# Dimensions for composite-keyed metrics
# ---------------------------------------------------------------------------
L2_CHAINS: Final[list[str]] = [
    "Arbitrum",
    "Optimism",
    "Base",
    "Polygon zkEVM",
    "zkSync Era",
    "Linea",
    "Scroll",
    "Blast",
    "Mantle",
    "Starknet",
]

# DefiLlama protocol slug → display name stored in the `protocol` column
TRACKED_PROTOCOLS: Final[dict[str, str]] = {
    "lido": "Lido",
    "aave-v3": "Aave V3",
    "uniswap-v3": "Uniswap V3",
    "eigenlayer": "EigenLayer",
    "sky-lending": "Sky",
}
