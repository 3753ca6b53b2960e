"""Runtime configuration resolved from environment variables.

Everything a run needs is collected into a ``RunContext`` that is passed
explicitly to each component.
"""

from __future__ import annotations

import json
import logging
import os
import string
from dataclasses import dataclass, field, replace
from datetime import date, datetime, timedelta
from pathlib import Path
from zoneinfo import ZoneInfo

logger = logging.getLogger(__name__)

DEFAULT_BASE_URL = "https://partners.fresha.com"
DEFAULT_RUNTIME_ROOT = "/tmp/reminder-ops"
UNKNOWN_PHONE_POLICIES = ("separate", "merge")

DEFAULT_MESSAGE_TEMPLATE = (
    "Olá {first_name} 🤍\n"
    "Lembrete: a tua marcação é amanhã, dia {date}, às {time}, para {services}.\n\n"
    "Se precisares de fazer alguma alteração, é só avisar. 🌸\n\n"
    "Com carinho,\n{business_name}"
)
TEMPLATE_FIELDS = ("first_name", "date", "time", "services", "business_name")

# Logical field -> locale -> accepted header fragments, in precedence order.
DEFAULT_COLUMN_SYNONYMS: dict[str, dict[str, tuple[str, ...]]] = {
    "reference": {"pt": ("Referência",), "en": ("Ref #", "Reference")},
    "client": {"pt": ("Cliente",), "en": ("Client",)},
    "phone": {"pt": ("Telemóvel", "Telefone"), "en": ("Mobile", "Phone")},
    "time": {"pt": ("Horário", "Hora"), "en": ("Time",)},
    "date": {"pt": ("Data agendada", "Data"), "en": ("Scheduled date", "Date")},
    "service": {"pt": ("Serviço",), "en": ("Service",)},
    "status": {"pt": ("Situação", "Estado"), "en": ("Status",)},
}


@dataclass(frozen=True, slots=True)
class ColumnSynonyms:
    table: dict[str, dict[str, tuple[str, ...]]] = field(
        default_factory=lambda: dict(DEFAULT_COLUMN_SYNONYMS)
    )
    locales: tuple[str, ...] = ("pt", "en")

    def for_field(self, name: str) -> tuple[str, ...]:
        """Synonyms for ``name`` across all active locales, default locale first."""
        per_locale = self.table.get(name, {})
        merged: list[str] = []
        for locale in self.locales:
            for synonym in per_locale.get(locale, ()):
                if synonym not in merged:
                    merged.append(synonym)
        return tuple(merged)


@dataclass(frozen=True, slots=True)
class FlowTimeouts:
    """Bounded waits, in milliseconds, for each flow state."""

    consent_visible_ms: int = 1_500
    network_idle_ms: int = 15_000
    login_field_ms: int = 15_000
    login_redirect_ms: int = 60_000
    export_trigger_ms: int = 30_000
    export_format_ms: int = 10_000
    download_ms: int = 60_000
    reference_visible_ms: int = 15_000
    contact_control_ms: int = 2_000


@dataclass(frozen=True, slots=True)
class PortalSettings:
    base_url: str = DEFAULT_BASE_URL
    appointments_path: str = "/sales/appointments-list/"
    login_path: str = "/users/sign-in"
    sign_in_marker: str = "sign-in"
    sign_in_form_selector: str = "form[action*='sign-in']"
    email_selector: str = "input[name='email']"
    continue_selector: str = "button[data-qa='continue']"
    password_selector: str = "input[name='password']"
    login_selector: str = "button[data-qa='login']"
    export_trigger_selector: str = ":text-is('Exportar'), :text-is('Export')"
    export_format_selector: str = "li:has-text('CSV')"
    contact_number_selector: str = "button[data-qa='customer-contact-number']"
    typing_delay_ms: int = 300
    settle_after_navigation_ms: int = 2_000
    enrich_settle_ms: int = 3_000
    export_attempts: int = 2
    timeouts: FlowTimeouts = field(default_factory=FlowTimeouts)

    @property
    def appointments_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.appointments_path}"

    @property
    def login_url(self) -> str:
        return f"{self.base_url.rstrip('/')}{self.login_path}"


@dataclass(frozen=True, slots=True)
class ReminderSettings:
    country_codes: tuple[str, ...] = ("351",)
    deep_link_country_code: str = "351"
    cancellation_terms: tuple[str, ...] = ("Cancelado", "Cancelled", "Canceled")
    message_template: str = DEFAULT_MESSAGE_TEMPLATE
    business_name: str = "Linea Studio"
    fallback_first_name: str = "Cliente"
    date_locale: str = "pt"
    unknown_phone_policy: str = "separate"
    columns: ColumnSynonyms = field(default_factory=ColumnSynonyms)


@dataclass(frozen=True, slots=True)
class Settings:
    portal: PortalSettings = field(default_factory=PortalSettings)
    reminders: ReminderSettings = field(default_factory=ReminderSettings)
    output_dir: Path = Path(DEFAULT_RUNTIME_ROOT) / "artifacts"
    session_state_path: Path = Path(DEFAULT_RUNTIME_ROOT) / "browser" / "fresha_session.json"
    screenshots_dir: Path = Path(DEFAULT_RUNTIME_ROOT) / "artifacts" / "screenshots"
    headless: bool = True
    target_offset_days: int = 1
    credential_source: str = "env"
    timezone: str = "Europe/Lisbon"


@dataclass(frozen=True, slots=True)
class RunContext:
    """Everything one pipeline run reads; created fresh per invocation."""

    target_date: date
    settings: Settings

    @property
    def output_dir(self) -> Path:
        return self.settings.output_dir

    @property
    def consolidated_csv_path(self) -> Path:
        return self.output_dir / f"appointments_{self.target_date.isoformat()}.csv"

    @property
    def reminder_sheet_path(self) -> Path:
        return self.output_dir / f"reminders_{self.target_date.isoformat()}.html"


def _split_list(value: str) -> tuple[str, ...]:
    return tuple(item.strip() for item in value.split(",") if item.strip())


def _env_int(name: str, default: int) -> int:
    raw = os.getenv(name, "").strip()
    if not raw:
        return default
    try:
        return int(raw)
    except ValueError as exc:
        raise ValueError(f"{name} must be an integer, got {raw!r}") from exc


def _checked_template(template: str) -> str:
    try:
        fields = [name for _, name, _, _ in string.Formatter().parse(template) if name is not None]
    except ValueError as exc:
        raise ValueError(f"REMINDERS_MESSAGE_TEMPLATE is not a valid format string: {exc}") from exc
    unknown = sorted({name for name in fields if name not in TEMPLATE_FIELDS})
    if unknown:
        raise ValueError(
            f"REMINDERS_MESSAGE_TEMPLATE uses unknown fields {unknown}; allowed: {', '.join(TEMPLATE_FIELDS)}"
        )
    return template


def _load_column_synonyms(path: str) -> ColumnSynonyms:
    payload = json.loads(Path(path).read_text(encoding="utf-8"))
    if not isinstance(payload, dict):
        raise ValueError("Column synonym file must map field names to locale tables.")
    table = {name: dict(locales) for name, locales in DEFAULT_COLUMN_SYNONYMS.items()}
    locales: list[str] = []
    for name, per_locale in payload.items():
        if not isinstance(per_locale, dict):
            continue
        merged = dict(table.get(name, {}))
        merged.update({str(locale): tuple(values) for locale, values in per_locale.items()})
        table[name] = merged
        for locale in per_locale:
            if locale not in locales:
                locales.append(locale)
    ordered = tuple(dict.fromkeys(["pt", "en", *locales]))
    return ColumnSynonyms(table=table, locales=ordered)


def load_settings() -> Settings:
    """Build settings from ``FRESHA_*`` and ``REMINDERS_*`` environment variables."""
    root = Path(os.getenv("REMINDERS_RUNTIME_ROOT", DEFAULT_RUNTIME_ROOT))

    portal = PortalSettings(
        base_url=os.getenv("FRESHA_BASE_URL", DEFAULT_BASE_URL).rstrip("/"),
        typing_delay_ms=_env_int("REMINDERS_TYPING_DELAY_MS", 300),
        enrich_settle_ms=_env_int("REMINDERS_ENRICH_SETTLE_MS", 3_000),
        export_attempts=max(1, _env_int("REMINDERS_EXPORT_ATTEMPTS", 2)),
    )

    policy = os.getenv("REMINDERS_UNKNOWN_PHONE_POLICY", "separate").strip().lower()
    if policy not in UNKNOWN_PHONE_POLICIES:
        raise ValueError(
            f"REMINDERS_UNKNOWN_PHONE_POLICY must be one of {UNKNOWN_PHONE_POLICIES}, got {policy!r}"
        )

    synonyms_path = os.getenv("REMINDERS_COLUMN_SYNONYMS_PATH", "").strip()
    defaults = ReminderSettings()
    reminders = ReminderSettings(
        country_codes=_split_list(os.getenv("REMINDERS_COUNTRY_CODES", "")) or defaults.country_codes,
        deep_link_country_code=os.getenv("REMINDERS_DEEP_LINK_COUNTRY_CODE", defaults.deep_link_country_code),
        cancellation_terms=_split_list(os.getenv("REMINDERS_CANCELLATION_TERMS", ""))
        or defaults.cancellation_terms,
        message_template=_checked_template(
            os.getenv("REMINDERS_MESSAGE_TEMPLATE", "") or defaults.message_template
        ),
        business_name=os.getenv("REMINDERS_BUSINESS_NAME", defaults.business_name),
        fallback_first_name=os.getenv("REMINDERS_FALLBACK_FIRST_NAME", defaults.fallback_first_name),
        date_locale=os.getenv("REMINDERS_DATE_LOCALE", defaults.date_locale).strip().lower(),
        unknown_phone_policy=policy,
        columns=_load_column_synonyms(synonyms_path) if synonyms_path else ColumnSynonyms(),
    )

    settings = Settings(
        portal=portal,
        reminders=reminders,
        output_dir=Path(os.getenv("REMINDERS_OUTPUT_DIR", str(root / "artifacts"))),
        session_state_path=Path(
            os.getenv("REMINDERS_SESSION_STATE_PATH", str(root / "browser" / "fresha_session.json"))
        ),
        screenshots_dir=Path(os.getenv("REMINDERS_SCREENSHOTS_DIR", str(root / "artifacts" / "screenshots"))),
        headless=os.getenv("REMINDERS_HEADLESS", "true").lower() != "false",
        target_offset_days=_env_int("REMINDERS_TARGET_OFFSET_DAYS", 1),
        credential_source=os.getenv("REMINDERS_CREDENTIAL_SOURCE", "env").strip().lower(),
        timezone=os.getenv("REMINDERS_TIMEZONE", "Europe/Lisbon"),
    )
    logger.debug(
        "Resolved settings (base_url=%s, output_dir=%s, headless=%s, offset_days=%s)",
        settings.portal.base_url,
        settings.output_dir,
        settings.headless,
        settings.target_offset_days,
    )
    return settings


def resolve_target_date(settings: Settings, *, run_date: date | None = None, offset_days: int | None = None) -> date:
    """Target date for a run: ``run_date`` (today in the configured zone) plus the offset."""
    base = run_date or datetime.now(tz=ZoneInfo(settings.timezone)).date()
    offset = settings.target_offset_days if offset_days is None else offset_days
    return base + timedelta(days=offset)


def with_overrides(settings: Settings, **changes: object) -> Settings:
    """Return a copy of ``settings`` with top-level or reminder fields replaced."""
    reminder_fields = {name for name in ReminderSettings.__dataclass_fields__}
    reminder_changes = {k: v for k, v in changes.items() if k in reminder_fields and v is not None}
    top_changes = {k: v for k, v in changes.items() if k not in reminder_fields and v is not None}
    if reminder_changes:
        top_changes["reminders"] = replace(settings.reminders, **reminder_changes)
    return replace(settings, **top_changes)
