"""Structured, human-scannable log lines shared by the engine and the host."""

from __future__ import annotations

import json
import logging
import secrets
from typing import Mapping, Tuple


def new_request_id() -> str:
    return secrets.token_hex(4)


def _truncate(value: str, limit: int = 64) -> str:
    if len(value) <= limit:
        return value
    half = limit // 2
    return f"{value[:half]}…{value[-half:]}"


def _build_payload(req: str, **fields: object) -> dict[str, object]:
    payload: dict[str, object] = {"request_id": req}
    for key, value in fields.items():
        if value is None:
            continue
        payload[key] = _truncate(value) if isinstance(value, str) else value
    return payload


class StageLogger:
    """Emits ``[<component>: <Stage>]: <event label>`` followed by a JSON payload."""

    def __init__(
        self,
        logger: logging.Logger,
        component: str,
        stage_labels: Mapping[str, str],
        event_labels: Mapping[Tuple[str, str], str],
    ) -> None:
        self.logger = logger
        self.component = component
        self.stage_labels = stage_labels
        self.event_labels = event_labels

    def __call__(self, stage: str, event: str, req: str, level: int = logging.INFO, **fields: object) -> None:
        if not self.logger.isEnabledFor(level):
            return
        stage_label = self.stage_labels.get(stage, stage.title())
        event_label = self.event_labels.get((stage, event), event)
        payload = json.dumps(_build_payload(req, **fields), indent=2, sort_keys=True, default=str)
        self.logger.log(level, f"[{self.component}: {stage_label}]: {event_label}\n{payload}")
