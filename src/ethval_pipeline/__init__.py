"""
ethval_pipeline — tiered collector for Ethereum daily metrics.

Architecture:
  sources/     — one adapter per tier: live APIs, CSV exports, stored series,
                 synthetic generators
  transforms/  — record normalization, tier merging, interpolation
  loaders/     — idempotent batched Supabase upserts and run bookkeeping
  pipelines/   — metric catalog, tiered resolver and the run orchestrator
  utils/       — structlog configuration, retry, rate limiting, deadlines

Quick start:
    from ethval_pipeline.pipelines.collector import run
    from ethval_shared.config import load_settings
    import asyncio
    summary = asyncio.run(run(load_settings(), only=["eth_price"], dry_run=True))

CLI:
    ethval-collect --dry-run
    ethval-collect status
    ethval-collect backfill gas_burn avg_gas_price_gwei

Shared code from ethval_shared:
    from ethval_shared.config import Settings, load_settings
    from ethval_shared.db import get_supabase_client
    from ethval_shared.models import RunStatus
    from ethval_shared.time_utils import HistoryWindow, parse_chain_date
    from ethval_shared.constants import L2_CHAINS, TRACKED_PROTOCOLS
"""

__version__ = "0.1.0"
