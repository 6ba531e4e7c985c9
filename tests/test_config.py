"""
Tests for configuration and structured logging
"""

import json
import logging
import pytest
from decimal import Decimal

from lending import config as config_module
from lending.amortization import LoanType, recover_principal_from_total
from lending.config import LendingConfig, get_config, reload_config
from lending.logging_config import JSONFormatter, log_action, setup_logging


class TestLendingConfig:
    """Test environment driven configuration"""

    def test_defaults(self):
        """Test default values"""
        config = LendingConfig()
        assert config.timezone == "America/Sao_Paulo"
        assert config.locale == "pt_BR"
        assert config.currency == "BRL"
        assert config.principal_search_max_iterations == 10
        assert Decimal(config.principal_search_lower_ratio) == Decimal('0.5')

    def test_environment_override(self, monkeypatch):
        """Test LENDING_ prefixed variables override defaults"""
        monkeypatch.setenv("LENDING_TIMEZONE", "America/Manaus")
        monkeypatch.setenv("LENDING_PRINCIPAL_SEARCH_MAX_ITERATIONS", "30")

        config = LendingConfig()
        assert config.timezone == "America/Manaus"
        assert config.principal_search_max_iterations == 30

    def test_reload_config(self, monkeypatch):
        """Test reload picks up the environment and feeds the engine"""
        original = get_config()
        monkeypatch.setenv("LENDING_PRINCIPAL_SEARCH_MAX_ITERATIONS", "30")
        try:
            reloaded = reload_config()
            assert get_config() is reloaded
            estimate = recover_principal_from_total(Decimal('1350'), LoanType.SAC, 5, Decimal('35'))
            assert not estimate.approximate
        finally:
            config_module.config = original


class TestStructuredLogging:
    """Test the JSON formatter and action logging"""

    def teardown_method(self):
        logger = logging.getLogger("lending")
        for handler in logger.handlers[:]:
            logger.removeHandler(handler)
            handler.close()
        logger.propagate = True
        logger.setLevel(logging.NOTSET)

    def test_json_formatter(self):
        """Test structured fields are emitted and empty ones dropped"""
        record = logging.LogRecord("lending.loans", logging.INFO, __file__, 1, "Loan cancelled", (), None)
        record.action = "loan_cancelled"
        record.resource = "loan-1"

        entry = json.loads(JSONFormatter().format(record))
        assert entry["level"] == "INFO"
        assert entry["logger"] == "lending.loans"
        assert entry["message"] == "Loan cancelled"
        assert entry["action"] == "loan_cancelled"
        assert entry["resource"] == "loan-1"
        assert "user_id" not in entry

    def test_log_action_to_file(self, tmp_path):
        """Test log_action writes a JSON line with its context"""
        log_file = tmp_path / "lending.log"
        setup_logging("INFO", log_file=str(log_file))

        log_action(logging.getLogger("lending.loans"), "info", "Installment 1 paid",
                   user_id="operator-1", action="installment_paid", resource="i-1",
                   extra={"amount": "300.00"})
        log_action(logging.getLogger("lending.loans"), "debug", "Not written")

        lines = log_file.read_text().strip().splitlines()
        assert len(lines) == 1
        entry = json.loads(lines[0])
        assert entry["user_id"] == "operator-1"
        assert entry["action"] == "installment_paid"
        assert entry["extra"] == {"amount": "300.00"}

    def test_text_format(self, tmp_path):
        """Test the plain text format"""
        log_file = tmp_path / "lending.log"
        setup_logging("DEBUG", log_format="text", log_file=str(log_file))

        logging.getLogger("lending.periodicity").debug("Generated 3 due dates")
        assert "DEBUG [lending.periodicity] Generated 3 due dates" in log_file.read_text()
