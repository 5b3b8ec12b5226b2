"""Dual-Write Resource - Eligibility gate configuration."""

from dagster import ConfigurableResource
from pydantic import Field

from libs.migration import DualWriteGate
from libs.models import DualWriteSettings

__all__ = ["DualWriteResource"]


class DualWriteResource(ConfigurableResource):
    """
    Dagster resource carrying the dual-write gate settings.

    Configuration matches DualWriteSettings from libs.models.config. An
    invalid ``minimum_version`` fails when the gate is built, before any
    message is processed.
    """

    minimum_version: str = Field(..., description="Minimum message version eligible for relational writes")
    dead_letter_on_relational_failure: bool = Field(
        False, description="Dead-letter events whose relational write failed"
    )

    def get_settings(self) -> DualWriteSettings:
        return DualWriteSettings(
            minimum_version=self.minimum_version,
            dead_letter_on_relational_failure=self.dead_letter_on_relational_failure,
        )

    def get_gate(self) -> DualWriteGate:
        return DualWriteGate(self.get_settings())
