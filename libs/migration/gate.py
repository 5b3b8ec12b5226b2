# =============================================================================
# Dual-Write Gate
# =============================================================================
# Per-event decision: may this completion message be written to the
# relational store now?
# =============================================================================

"""Eligibility gate for steady-state relational writes."""

from dataclasses import dataclass, field
from typing import Optional
import logging

from packaging.version import InvalidVersion, Version
from sqlalchemy.engine import Connection

from libs.models import CompletionMessage, DualWriteSettings

from .references import ReferenceKind, ReferenceResolver

__all__ = ["GateDecision", "DualWriteGate"]

logger = logging.getLogger(__name__)


@dataclass
class GateDecision:
    """
    Outcome of evaluating one message.

    ``execution``/``pdr``/``granules`` say which relational writes may go
    ahead; the ``*_cumulus_id`` fields carry what the gate resolved so the
    writes do not look them up again. ``reasons`` lists every failed gate.
    """

    version_eligible: bool = False
    execution: bool = False
    pdr: bool = False
    granules: bool = False
    collection_cumulus_id: Optional[int] = None
    provider_cumulus_id: Optional[int] = None
    parent_cumulus_id: Optional[int] = None
    async_operation_cumulus_id: Optional[int] = None
    reasons: list[str] = field(default_factory=list)

    @property
    def eligible(self) -> bool:
        return self.execution


class DualWriteGate:
    """
    Decide whether a completion message is safe to write relationally.

    Gates, in order:

    1. Version: the message's ``cumulus_version`` must be at least the
       configured minimum. Older or unversioned messages never touch the
       relational store.
    2. Parent: a named parent execution must already exist relationally.
    3. Async operation: a named async operation must already exist.
    4. Collection / provider: the message must name an existing collection
       or nothing is written relationally; PDRs also need their provider.

    No state is kept between events.

    Args:
        settings: Dual-write settings; the minimum version is required
        resolver: Reference resolver (default: a new one)

    Raises:
        ValueError: If the configured minimum version cannot be parsed
    """

    def __init__(self, settings: DualWriteSettings, resolver: Optional[ReferenceResolver] = None):
        try:
            self.minimum_version = Version(settings.minimum_version)
        except InvalidVersion as exc:
            raise ValueError(
                f"Invalid minimum version '{settings.minimum_version}'"
            ) from exc
        self.resolver = resolver or ReferenceResolver()

    def is_post_deployment(self, message: CompletionMessage) -> bool:
        """Whether the message was produced by an eligible release."""
        version = message.cumulus_version
        if not version:
            return False
        try:
            return Version(version) >= self.minimum_version
        except InvalidVersion:
            logger.warning(f"Message carries unparseable version '{version}'")
            return False

    def evaluate(self, message: CompletionMessage, conn: Connection) -> GateDecision:
        """
        Evaluate every gate for ``message``.

        Args:
            message: Completion message
            conn: Connection used for reference lookups

        Returns:
            GateDecision
        """
        decision = GateDecision()
        if not self.is_post_deployment(message):
            decision.reasons.append(
                f"message version {message.cumulus_version!r} is older than "
                f"minimum {self.minimum_version}"
            )
            return decision
        decision.version_eligible = True

        collection_key = message.collection_key
        if collection_key is None:
            decision.reasons.append("message has no collection")
        else:
            decision.collection_cumulus_id = self.resolver.resolve_cumulus_id(
                ReferenceKind.COLLECTION, collection_key, conn
            )
            if decision.collection_cumulus_id is None:
                decision.reasons.append(f"collection {collection_key} does not exist")
        has_collection = decision.collection_cumulus_id is not None

        parent_ok = True
        if message.parent_arn:
            decision.parent_cumulus_id = self.resolver.resolve_cumulus_id(
                ReferenceKind.EXECUTION, message.parent_arn, conn
            )
            if decision.parent_cumulus_id is None:
                parent_ok = False
                decision.reasons.append(
                    f"parent execution {message.parent_arn} does not exist"
                )

        async_ok = True
        if message.async_operation_id:
            decision.async_operation_cumulus_id = self.resolver.resolve_cumulus_id(
                ReferenceKind.ASYNC_OPERATION, message.async_operation_id, conn
            )
            if decision.async_operation_cumulus_id is None:
                async_ok = False
                decision.reasons.append(
                    f"async operation {message.async_operation_id} does not exist"
                )

        if message.provider_id:
            decision.provider_cumulus_id = self.resolver.resolve_cumulus_id(
                ReferenceKind.PROVIDER, message.provider_id, conn
            )

        decision.execution = has_collection and parent_ok and async_ok

        if message.pdr is not None:
            if decision.provider_cumulus_id is None:
                decision.reasons.append(
                    f"provider {message.provider_id!r} of PDR does not exist"
                )
            decision.pdr = decision.execution and decision.provider_cumulus_id is not None

        if message.granules:
            decision.granules = decision.execution

        return decision
