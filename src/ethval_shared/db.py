"""
db.py — Supabase client factory.

Usage:
    from ethval_shared.config import load_settings
    from ethval_shared.db import get_supabase_client

    settings = load_settings()
    supabase = get_supabase_client(settings)   # service key (collector writes)
"""

from __future__ import annotations

import threading
from typing import Optional

import structlog
from supabase import Client, ClientOptions, create_client

from ethval_shared.config import Settings

logger = structlog.get_logger(__name__)

# One client per process (thread-safe via lock)
_supabase_lock = threading.Lock()
_supabase_service: Optional[Client] = None


def get_supabase_client(settings: Settings) -> Client:
    """
    Return a singleton Supabase client authenticated with the service key.

    The service role bypasses RLS, which the collector needs for writes.
    Store calls inherit settings.store_timeout so no request blocks forever.

    Raises:
        RuntimeError: if SUPABASE_SERVICE_KEY is not configured.
    """
    global _supabase_service

    with _supabase_lock:
        if _supabase_service is None:
            if not settings.supabase_service_key:
                raise RuntimeError(
                    "SUPABASE_SERVICE_KEY is not set. "
                    "Set it in .env before running the collector."
                )
            _supabase_service = create_client(
                settings.supabase_url,
                settings.supabase_service_key,
                options=ClientOptions(
                    postgrest_client_timeout=settings.store_timeout,
                ),
            )
            logger.info("supabase_client_created", role="service_role")
        return _supabase_service


def reset_supabase_client() -> None:
    """Reset the singleton client (useful in tests)."""
    global _supabase_service
    with _supabase_lock:
        _supabase_service = None
