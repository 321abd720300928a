"""
ethval_shared — shared configuration, models, and helpers for the ethval collector.

Usage:
    from ethval_shared.config import Settings, load_settings
    from ethval_shared.db import get_supabase_client
    from ethval_shared.models import RunStatus, CollectionLogEntry
    from ethval_shared.time_utils import parse_chain_date, HistoryWindow
    from ethval_shared.constants import L2_CHAINS, TRACKED_PROTOCOLS
"""

__version__ = "0.1.0"
