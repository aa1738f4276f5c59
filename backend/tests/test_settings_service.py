import pytest

from stockledger.extensions import db
from stockledger.models import AppSetting
from stockledger.services import settings_service
from stockledger.validation import ValidationError


class TestSettings:

    def test_defaults_are_written_on_first_read(self, db_session):
        assert db.session.query(AppSetting).count() == 0

        settings = settings_service.get_settings()

        assert settings == {"expiry_warning_days": 7, "depletion_warning_days": 5}
        assert db.session.query(AppSetting).count() == 2

    def test_update(self, db_session):
        settings = settings_service.update_settings({"expiry_warning_days": 3})
        assert settings["expiry_warning_days"] == 3
        assert settings["depletion_warning_days"] == 5

        settings = settings_service.update_settings({"depletion_warning_days": 0})
        assert settings == {"expiry_warning_days": 3, "depletion_warning_days": 0}

    @pytest.mark.parametrize("payload", [
        {"expiry_warning_days": -1},
        {"expiry_warning_days": "7"},
        {"depletion_warning_days": 2.5},
        {"theme": "dark"},
        {},
        None,
    ])
    def test_invalid_update(self, db_session, payload):
        with pytest.raises(ValidationError):
            settings_service.update_settings(payload)

    def test_corrupt_row_is_repaired(self, db_session):
        db.session.add(AppSetting(key="expiry_warning_days", value="not-json"))
        db.session.add(AppSetting(key="depletion_warning_days", value="-4"))
        db.session.commit()

        settings = settings_service.get_settings()

        assert settings == {"expiry_warning_days": 7, "depletion_warning_days": 5}
        row = db.session.query(AppSetting).filter_by(key="depletion_warning_days").one()
        assert row.value == "5"

    def test_defaults_come_from_config(self, db_session, app, monkeypatch):
        monkeypatch.setitem(app.config, "DEFAULT_EXPIRY_WARNING_DAYS", 14)
        assert settings_service.get_settings()["expiry_warning_days"] == 14
