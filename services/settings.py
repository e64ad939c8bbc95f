"""Workflow constants projected from the Flask configuration."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import timedelta
from decimal import Decimal
from typing import Mapping

from flask import current_app


@dataclass(frozen=True)
class WorkflowSettings:
    base_fee: Decimal = Decimal("50")
    service_fee: Decimal = Decimal("10")
    # Real resubmission chances per document type; one more flag closes the application.
    max_document_attempts: int = 3
    payment_timeout: timedelta = timedelta(minutes=5)
    payment_deadline: timedelta = timedelta(days=7)
    currency: str = "php"

    @property
    def total_fee(self) -> Decimal:
        return self.base_fee + self.service_fee

    @property
    def closing_attempt(self) -> int:
        return self.max_document_attempts + 1

    @classmethod
    def from_mapping(cls, config: Mapping) -> "WorkflowSettings":
        defaults = cls()
        return cls(
            base_fee=Decimal(str(config.get("BASE_FEE", defaults.base_fee))),
            service_fee=Decimal(str(config.get("SERVICE_FEE", defaults.service_fee))),
            max_document_attempts=int(
                config.get("MAX_DOCUMENT_ATTEMPTS", defaults.max_document_attempts)
            ),
            payment_timeout=timedelta(
                seconds=int(
                    config.get(
                        "PAYMENT_TIMEOUT_SECONDS",
                        defaults.payment_timeout.total_seconds(),
                    )
                )
            ),
            payment_deadline=timedelta(
                days=int(
                    config.get("PAYMENT_DEADLINE_DAYS", defaults.payment_deadline.days)
                )
            ),
            currency=str(config.get("PAYMENT_CURRENCY") or defaults.currency),
        )


def get_settings(settings: WorkflowSettings | None = None) -> WorkflowSettings:
    """Return ``settings`` or build them from the active app's config."""

    if settings is not None:
        return settings
    return WorkflowSettings.from_mapping(current_app.config)
