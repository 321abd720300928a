"""
tests/test_shared/test_db.py — Supabase client factory.
"""

from __future__ import annotations

from unittest.mock import patch

import pytest

from ethval_shared.config import load_settings
from ethval_shared.db import get_supabase_client, reset_supabase_client


class TestGetSupabaseClient:
    def setup_method(self):
        reset_supabase_client()

    def teardown_method(self):
        reset_supabase_client()

    def test_requires_service_key(self):
        settings = load_settings(_env_file=None, supabase_service_key="")
        with pytest.raises(RuntimeError, match="SUPABASE_SERVICE_KEY"):
            get_supabase_client(settings)

    def test_client_is_created_once(self, settings):
        with patch("ethval_shared.db.create_client") as create:
            first = get_supabase_client(settings)
            second = get_supabase_client(settings)
        assert first is second
        create.assert_called_once()
        args, kwargs = create.call_args
        assert args == ("http://supabase.test", "service-key")
        assert kwargs["options"].postgrest_client_timeout == settings.store_timeout
