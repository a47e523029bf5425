"""
test_config_logging.py - Unit tests for configuration and logging setup
"""

import json
import logging

import pytest
from datetime import timedelta
from decimal import Decimal

from loanbook import ConfigurationError, LendingConfig, RateTier, setup_logging
from loanbook.logging import JsonFormatter, get_logger


class TestLendingConfig:

    def test_defaults(self):
        config = LendingConfig()
        assert config.min_principal == Decimal("100")
        assert config.max_principal == Decimal("100000")
        assert (config.min_duration, config.max_duration) == (1, 36)
        assert config.period_length == timedelta(days=30)
        assert config.origination_fee_bps == 50
        assert config.matching_fee_bps == 10
        assert config.insurance_fee_bps == 200
        assert config.late_penalty_bps == 500
        assert config.overdue_rate_multiplier == 2
        assert config.hours_per_year == 8760
        assert config.escrow_wallet == "loanbook"

    def test_principal_window_validated(self):
        with pytest.raises(ConfigurationError):
            LendingConfig(min_principal=Decimal("1000"), max_principal=Decimal("100"))
        with pytest.raises(ConfigurationError):
            LendingConfig(min_principal=Decimal("0"))

    def test_duration_window_validated(self):
        with pytest.raises(ConfigurationError):
            LendingConfig(min_duration=0)
        with pytest.raises(ConfigurationError):
            LendingConfig(min_duration=12, max_duration=6)

    def test_fee_bounds(self):
        with pytest.raises(ConfigurationError):
            LendingConfig(insurance_fee_bps=10001)
        with pytest.raises(ConfigurationError):
            LendingConfig(origination_fee_bps=-1)

    def test_period_must_be_positive(self):
        with pytest.raises(ConfigurationError):
            LendingConfig(period_length=timedelta(0))

    def test_rate_tiers_validated(self):
        with pytest.raises(ConfigurationError):
            LendingConfig(rate_tiers=(RateTier(600, Decimal("1000")),))

    def test_from_env(self):
        config = LendingConfig.from_env({
            "LOANBOOK_MIN_PRINCIPAL": "50",
            "LOANBOOK_MAX_DURATION": "48",
            "LOANBOOK_PERIOD_DAYS": "7",
            "LOANBOOK_INSURANCE_FEE_BPS": "150",
            "LOANBOOK_ESCROW_WALLET": "escrow",
            "LOANBOOK_LOG_LEVEL": "debug",
            "UNRELATED": "x",
        })
        assert config.min_principal == Decimal("50")
        assert config.max_duration == 48
        assert config.period_length == timedelta(days=7)
        assert config.insurance_fee_bps == 150
        assert config.escrow_wallet == "escrow"
        assert config.log_level == "DEBUG"
        assert config.max_principal == Decimal("100000")

    def test_from_env_empty_keeps_defaults(self):
        assert LendingConfig.from_env({}) == LendingConfig()

    def test_from_env_invalid_value(self):
        with pytest.raises(ConfigurationError):
            LendingConfig.from_env({"LOANBOOK_MAX_DURATION": "many"})
        with pytest.raises(ConfigurationError):
            LendingConfig.from_env({"LOANBOOK_MIN_PRINCIPAL": "lots"})

    def test_from_env_validates_result(self):
        with pytest.raises(ConfigurationError):
            LendingConfig.from_env({"LOANBOOK_PERIOD_DAYS": "0"})

    def test_from_os_environ(self, monkeypatch):
        monkeypatch.setenv("LOANBOOK_MATCHING_FEE_BPS", "25")
        assert LendingConfig.from_env().matching_fee_bps == 25


class TestLogging:

    @pytest.fixture
    def restore_root_logger(self):
        root = logging.getLogger()
        package_logger = logging.getLogger("loanbook")
        handlers, level = root.handlers[:], root.level
        package_level = package_logger.level
        yield root
        for handler in root.handlers[:]:
            root.removeHandler(handler)
        for handler in handlers:
            root.addHandler(handler)
        root.setLevel(level)
        package_logger.setLevel(package_level)

    def test_setup_standard(self, restore_root_logger):
        setup_logging("WARNING")
        root = restore_root_logger
        assert root.level == logging.WARNING
        assert len(root.handlers) == 1
        assert not isinstance(root.handlers[0].formatter, JsonFormatter)
        assert logging.getLogger("loanbook").level == logging.WARNING

    def test_setup_json(self, restore_root_logger):
        setup_logging("debug", format_type="json")
        assert isinstance(restore_root_logger.handlers[0].formatter, JsonFormatter)

    def test_json_formatter_includes_extra(self):
        record = logging.LogRecord(
            "loanbook.book", logging.INFO, __file__, 1, "applied %s", ("make_payment",), None,
        )
        record.extra = {"loan_id": 7, "amount": Decimal("1.5")}
        data = json.loads(JsonFormatter().format(record))
        assert data["message"] == "applied make_payment"
        assert data["level"] == "INFO"
        assert data["logger"] == "loanbook.book"
        assert data["loan_id"] == 7
        assert data["amount"] == "1.5"

    def test_get_logger(self):
        assert get_logger("loanbook.book") is logging.getLogger("loanbook.book")
