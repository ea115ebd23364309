# src/pet_scheduler/tasks/triggers.py

from __future__ import annotations

"""
Trigger evaluation.

compute_next_run() answers a single question: given a trigger and a reference
time, when is the task next eligible to fire? It is pure and never raises;
"no next run" (None) is the only signal for malformed or non-recurring triggers.

Config shapes (stored as JSON text, camelCase keys as written by the host):
- interval: {"type": "interval", "seconds": 60}
- cron:     {"type": "cron", "expression": "0 9 * * *"}
- event:    {"type": "event", "eventName": "...", "filter": {...}}
- manual:   {"type": "manual"}

The embedded "type" key is optional; when present it must match the trigger type.
"""

import logging
from datetime import datetime, timezone
from typing import Any, Literal

from croniter import croniter
from pydantic import BaseModel, ConfigDict, Field, StrictInt, ValidationError

from .errors import ConfigDecodeError
from .task_models import Trigger, TriggerType

logger = logging.getLogger(__name__)

CRON_FIELDS = 5
# Largest value an SQLite INTEGER column can hold.
MAX_TIMESTAMP_MS = 2**63 - 1


class ConfigModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="ignore", frozen=True)


class IntervalTriggerConfig(ConfigModel):
    type: Literal["interval"] | None = None
    seconds: StrictInt


class CronTriggerConfig(ConfigModel):
    type: Literal["cron"] | None = None
    expression: str


class EventTriggerConfig(ConfigModel):
    type: Literal["event"] | None = None
    event_name: str = Field(alias="eventName")
    filter: dict[str, Any] | None = None


class ManualTriggerConfig(ConfigModel):
    type: Literal["manual"] | None = None


TriggerConfig = IntervalTriggerConfig | CronTriggerConfig | EventTriggerConfig | ManualTriggerConfig

_TRIGGER_CONFIGS: dict[str, type[ConfigModel]] = {
    TriggerType.INTERVAL: IntervalTriggerConfig,
    TriggerType.CRON: CronTriggerConfig,
    TriggerType.EVENT: EventTriggerConfig,
    TriggerType.MANUAL: ManualTriggerConfig,
}


def decode_config(model: type[ConfigModel], raw: Any, *, label: str) -> Any:
    """
    Decode a stored config (JSON text, dict or an already-built model) into `model`.

    Raises ConfigDecodeError with a readable message on any mismatch.
    """
    if isinstance(raw, model):
        return raw
    if isinstance(raw, BaseModel):
        raw = raw.model_dump(by_alias=True, exclude_none=True)
    try:
        if isinstance(raw, (str, bytes, bytearray)):
            return model.model_validate_json(raw)
        return model.model_validate(raw)
    except ValidationError as e:
        details = "; ".join(
            f"{'.'.join(str(p) for p in err['loc']) or '<root>'}: {err['msg']}" for err in e.errors()
        )
        raise ConfigDecodeError(f"invalid {label} config: {details}") from e


def decode_trigger_config(trigger_type: str, raw: Any) -> TriggerConfig:
    model = _TRIGGER_CONFIGS.get(trigger_type)
    if model is None:
        raise ConfigDecodeError(f"unknown trigger type: {trigger_type}")
    return decode_config(model, raw, label=f"{trigger_type} trigger")


def validate_trigger(trigger: Trigger) -> str | None:
    """Return a decode error message for `trigger`, or None when it decodes cleanly."""
    try:
        decode_trigger_config(trigger.type, trigger.config)
    except ConfigDecodeError as e:
        return str(e)
    return None


def cron_next_ms(expression: str, from_ms: int) -> int | None:
    """
    First instant strictly after from_ms matching a 5-field cron expression (UTC).

    The expression has an implicit "second = 0" field.
    """
    expr = (expression or "").strip()
    if len(expr.split()) != CRON_FIELDS:
        return None
    try:
        base = datetime.fromtimestamp(from_ms / 1000.0, tz=timezone.utc)
        it = croniter(expr, base)
        next_ms = int(it.get_next(datetime).timestamp() * 1000)
        if next_ms <= from_ms:
            next_ms = int(it.get_next(datetime).timestamp() * 1000)
    except Exception:
        logger.debug("cron evaluation failed expr=%r from_ms=%s", expr, from_ms, exc_info=True)
        return None
    return next_ms if from_ms < next_ms <= MAX_TIMESTAMP_MS else None


def compute_next_run(trigger_type: str, trigger_config: Any, from_ms: int) -> int | None:
    """
    Next eligible run timestamp (ms) for a trigger, or None.

    - interval: from_ms + seconds * 1000 (None when seconds <= 0 or the sum
      does not fit a 64-bit timestamp)
    - cron: next matching minute strictly after from_ms
    - manual / event / unknown: None (never auto-scheduled)
    """
    if trigger_type not in (TriggerType.INTERVAL, TriggerType.CRON):
        return None

    try:
        cfg = decode_trigger_config(trigger_type, trigger_config)
    except ConfigDecodeError as e:
        logger.debug("No next run: %s", e)
        return None

    if isinstance(cfg, IntervalTriggerConfig):
        if cfg.seconds <= 0:
            return None
        next_ms = int(from_ms) + cfg.seconds * 1000
        if next_ms > MAX_TIMESTAMP_MS:
            logger.debug("No next run: interval of %s seconds overflows", cfg.seconds)
            return None
        return next_ms

    if isinstance(cfg, CronTriggerConfig):
        return cron_next_ms(cfg.expression, int(from_ms))

    return None


def next_run_for(trigger: Trigger, *, enabled: bool, from_ms: int) -> int | None:
    """next_run as stored on a task: always None while the task is disabled."""
    if not enabled:
        return None
    return compute_next_run(trigger.type, trigger.config, from_ms)
