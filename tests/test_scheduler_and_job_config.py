from __future__ import annotations

import json
from datetime import date
from pathlib import Path

import pytest

from reminder_ops.jobs import scheduler
from reminder_ops.settings import Settings, load_settings, resolve_target_date, with_overrides


def test_resolve_work_days_defaults_to_weekdays(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REMINDERS_WORK_DAYS", raising=False)
    assert scheduler.resolve_work_days() == "mon,tue,wed,thu,fri"


def test_resolve_work_days_uses_env_and_filters_invalid(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REMINDERS_WORK_DAYS", "Tue,wed,garbage,sat")
    assert scheduler.resolve_work_days() == "tue,wed,sat"


def test_resolve_run_time_defaults_to_evening(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REMINDERS_RUN_HOUR", raising=False)
    monkeypatch.delenv("REMINDERS_RUN_MINUTE", raising=False)
    assert scheduler.resolve_run_time() == (18, 0)


def test_resolve_run_time_rejects_out_of_range(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REMINDERS_RUN_HOUR", "25")
    with pytest.raises(ValueError, match="Invalid run time"):
        scheduler.resolve_run_time()


def test_build_scheduler_registers_daily_job(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REMINDERS_WORK_DAYS", "mon,fri")
    monkeypatch.setenv("REMINDERS_RUN_HOUR", "17")
    monkeypatch.setenv("REMINDERS_RUN_MINUTE", "30")

    sched = scheduler.build_scheduler(Settings())
    job = sched.get_job(scheduler.JOB_ID)

    assert job is not None
    assert job.kwargs["settings"] == Settings()
    fields = {field.name: str(field) for field in job.trigger.fields}
    assert fields["day_of_week"] == "mon,fri"
    assert fields["hour"] == "17"
    assert fields["minute"] == "30"


def test_daily_job_targets_configured_offset(monkeypatch: pytest.MonkeyPatch, settings: Settings) -> None:
    seen = {}

    def fake_run(*, target_date, settings):
        seen["target_date"] = target_date
        return type("Artifacts", (), {"reminder_sheet": "sheet.html"})()

    monkeypatch.setattr(scheduler, "run_daily_reminders", fake_run)
    monkeypatch.setattr(scheduler, "resolve_target_date", lambda s: date(2024, 5, 10))

    scheduler.daily_reminders_job(settings)

    assert seen["target_date"] == date(2024, 5, 10)


def test_load_settings_reads_environment(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    monkeypatch.setenv("REMINDERS_RUNTIME_ROOT", str(tmp_path))
    monkeypatch.setenv("FRESHA_BASE_URL", "https://partners.example.test/")
    monkeypatch.setenv("REMINDERS_COUNTRY_CODES", "351, 34")
    monkeypatch.setenv("REMINDERS_HEADLESS", "false")
    monkeypatch.setenv("REMINDERS_UNKNOWN_PHONE_POLICY", "Merge")
    monkeypatch.setenv("REMINDERS_TYPING_DELAY_MS", "150")
    monkeypatch.delenv("REMINDERS_OUTPUT_DIR", raising=False)

    settings = load_settings()

    assert settings.portal.base_url == "https://partners.example.test"
    assert settings.portal.typing_delay_ms == 150
    assert settings.reminders.country_codes == ("351", "34")
    assert settings.reminders.unknown_phone_policy == "merge"
    assert settings.headless is False
    assert settings.output_dir == tmp_path / "artifacts"


def test_load_settings_rejects_unknown_policy(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("REMINDERS_UNKNOWN_PHONE_POLICY", "shared")
    with pytest.raises(ValueError, match="REMINDERS_UNKNOWN_PHONE_POLICY"):
        load_settings()


def test_load_settings_rejects_non_integer_delay(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REMINDERS_UNKNOWN_PHONE_POLICY", raising=False)
    monkeypatch.setenv("REMINDERS_TYPING_DELAY_MS", "fast")
    with pytest.raises(ValueError, match="must be an integer"):
        load_settings()


def test_column_synonym_file_adds_locale(monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
    path = tmp_path / "columns.json"
    path.write_text(json.dumps({"reference": {"es": ["Referencia"]}}), encoding="utf-8")
    monkeypatch.delenv("REMINDERS_UNKNOWN_PHONE_POLICY", raising=False)
    monkeypatch.setenv("REMINDERS_COLUMN_SYNONYMS_PATH", str(path))

    columns = load_settings().reminders.columns

    assert "es" in columns.locales
    assert "Referencia" in columns.for_field("reference")


def test_resolve_target_date_applies_offset() -> None:
    settings = Settings()
    assert resolve_target_date(settings, run_date=date(2024, 5, 9)) == date(2024, 5, 10)
    assert resolve_target_date(settings, run_date=date(2024, 5, 9), offset_days=3) == date(2024, 5, 12)


def test_with_overrides_routes_reminder_fields_and_skips_none(tmp_path: Path) -> None:
    updated = with_overrides(Settings(), output_dir=tmp_path, unknown_phone_policy="merge", headless=None)

    assert updated.output_dir == tmp_path
    assert updated.reminders.unknown_phone_policy == "merge"
    assert updated.headless is True


def test_message_template_with_unknown_field_is_rejected_at_load(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REMINDERS_UNKNOWN_PHONE_POLICY", raising=False)
    monkeypatch.setenv("REMINDERS_MESSAGE_TEMPLATE", "Olá {first_name}, até {dia}!")

    with pytest.raises(ValueError, match=r"unknown fields \['dia'\]"):
        load_settings()


def test_message_template_with_known_fields_is_accepted(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delenv("REMINDERS_UNKNOWN_PHONE_POLICY", raising=False)
    monkeypatch.setenv("REMINDERS_MESSAGE_TEMPLATE", "{first_name}: {date} {time} ({services}) - {business_name}")

    assert load_settings().reminders.message_template.startswith("{first_name}:")
