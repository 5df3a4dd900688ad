"""Tests for configuration, approval policy resolution, logging and transactions."""

import json
import logging
from decimal import Decimal

import pytest
from pydantic import ValidationError

from inventory_engine.core.config import Settings
from inventory_engine.core.exceptions import InvalidInputError
from inventory_engine.core.logging import JSONFormatter, configure_logging
from inventory_engine.db.unit_of_work import in_unit_of_work, unit_of_work
from inventory_engine.models.product import Warehouse
from inventory_engine.models.setting import Setting
from inventory_engine.services.settings_service import (
    ADJUSTMENT_APPROVAL_KEY,
    ADJUSTMENT_THRESHOLD_KEY,
    APPROVALS_GROUP,
    DatabaseSettingsProvider,
    StaticSettingsProvider,
    load_approval_policy,
)


class TestSettings:
    def test_defaults(self):
        config = Settings(_env_file=None)
        assert config.adjustment_require_approval is True
        assert config.adjustment_approval_threshold == Decimal("100")
        assert config.movement_page_size == 200

    def test_env_override(self, monkeypatch):
        monkeypatch.setenv("MOVEMENT_PAGE_SIZE", "25")
        monkeypatch.setenv("ADJUSTMENT_APPROVAL_THRESHOLD", "7.5")
        config = Settings(_env_file=None)
        assert config.movement_page_size == 25
        assert config.adjustment_approval_threshold == Decimal("7.5")

    @pytest.mark.parametrize("field,value", [
        ("movement_page_size", 0),
        ("adjustment_approval_threshold", -1),
    ])
    def test_rejects_invalid_values(self, field, value):
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: value})

    def test_is_sqlite(self):
        assert Settings(_env_file=None, database_url="sqlite:///x.db").is_sqlite
        assert not Settings(_env_file=None, database_url="postgresql://u@h/db").is_sqlite


class TestApprovalPolicy:
    def test_falls_back_to_config(self):
        config = Settings(_env_file=None, adjustment_approval_threshold=Decimal("40"))
        policy = load_approval_policy(StaticSettingsProvider(), config)
        assert policy.require_approval
        assert policy.threshold == Decimal("40")
        assert policy.creator_cannot_approve

    def test_threshold_is_inclusive(self):
        policy = load_approval_policy(
            StaticSettingsProvider({APPROVALS_GROUP: {ADJUSTMENT_THRESHOLD_KEY: "10"}})
        )
        assert policy.needs_approval(Decimal("-10"))
        assert not policy.needs_approval(Decimal("9.99"))

    def test_string_flags(self):
        provider = StaticSettingsProvider({APPROVALS_GROUP: {ADJUSTMENT_APPROVAL_KEY: "off"}})
        assert not load_approval_policy(provider).needs_approval(Decimal("1000"))

    def test_invalid_threshold_uses_default(self):
        config = Settings(_env_file=None)
        provider = StaticSettingsProvider({APPROVALS_GROUP: {ADJUSTMENT_THRESHOLD_KEY: "lots"}})
        assert load_approval_policy(provider, config).threshold == config.adjustment_approval_threshold

    def test_database_provider(self, db_session):
        db_session.add(Setting(group=APPROVALS_GROUP, key=ADJUSTMENT_THRESHOLD_KEY, value=5))
        db_session.commit()

        provider = DatabaseSettingsProvider(db_session)
        assert provider.get(APPROVALS_GROUP, ADJUSTMENT_THRESHOLD_KEY) == 5
        assert provider.get(APPROVALS_GROUP, "missing", "fallback") == "fallback"
        assert load_approval_policy(provider).threshold == Decimal("5")


class TestUnitOfWork:
    def test_commits_outermost_scope(self, db_session):
        with unit_of_work(db_session):
            with unit_of_work(db_session):
                db_session.add(Warehouse(code="W1", name="One", active=True))
                assert in_unit_of_work(db_session)
        assert not in_unit_of_work(db_session)
        db_session.rollback()
        assert db_session.query(Warehouse).count() == 1

    def test_inner_failure_rolls_back_everything(self, db_session):
        with pytest.raises(InvalidInputError):
            with unit_of_work(db_session):
                db_session.add(Warehouse(code="W1", name="One", active=True))
                db_session.flush()
                with unit_of_work(db_session):
                    raise InvalidInputError("stop")
        assert db_session.query(Warehouse).count() == 0

    def test_unexpected_error_is_logged(self, db_session, caplog):
        with caplog.at_level(logging.ERROR, logger="inventory_engine.db.unit_of_work"):
            with pytest.raises(RuntimeError):
                with unit_of_work(db_session):
                    raise RuntimeError("boom")
        assert "rolled back" in caplog.text


class TestLogging:
    def test_json_formatter(self):
        record = logging.LogRecord("inventory_engine.test", logging.INFO, __file__, 10, "moved %s", ("5",), None)
        payload = json.loads(JSONFormatter().format(record))
        assert payload["level"] == "INFO"
        assert payload["logger"] == "inventory_engine.test"
        assert payload["msg"] == "moved 5"

    def test_configure_logging(self):
        root = logging.getLogger()
        saved_handlers, saved_level = root.handlers[:], root.level
        try:
            configure_logging(Settings(_env_file=None, log_level="DEBUG", log_json=True))
            assert root.level == logging.DEBUG
            assert len(root.handlers) == 1
            assert isinstance(root.handlers[0].formatter, JSONFormatter)
        finally:
            root.handlers[:] = saved_handlers
            root.setLevel(saved_level)
