"""
tests/test_shared/test_config.py — Settings validation.
"""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from ethval_shared.config import load_settings


class TestSettings:
    def test_defaults(self):
        settings = load_settings(_env_file=None)
        assert settings.batch_size == 500
        assert settings.rate_limit_delay == pytest.approx(0.3)
        assert settings.max_redirects == 5

    def test_trailing_slash_stripped(self):
        settings = load_settings(_env_file=None, defillama_base_url="https://api.llama.fi/")
        assert settings.defillama_base_url == "https://api.llama.fi"

    @pytest.mark.parametrize("field", ["batch_size", "days_to_fetch", "min_history_rows"])
    def test_must_be_positive(self, field):
        with pytest.raises(ValidationError):
            load_settings(_env_file=None, **{field: 0})

    def test_environment_is_read(self, monkeypatch):
        monkeypatch.setenv("DAYS_TO_FETCH", "30")
        monkeypatch.setenv("ETHERSCAN_API_KEY", "abc")
        settings = load_settings(_env_file=None)
        assert settings.days_to_fetch == 30
        assert settings.etherscan_api_key == "abc"
