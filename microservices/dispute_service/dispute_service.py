"""
Dispute Service Business Logic

Disputes are filed by the escrow ledger (which freezes the escrow). This
service moves them through investigation to a decision, and a decision
always settles the escrow first and records the outcome second, so a
dispute is never marked resolved while its funds are still frozen.
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from microservices.escrow_service.models import EscrowStatus, ReleaseType
from microservices.escrow_service.protocols import EscrowAlreadySettledError, EscrowNotFoundError

from .models import (
    DISPUTE_TRANSITIONS,
    Dispute,
    DisputeOutcome,
    DisputeStatus,
)
from .protocols import (
    DisputeNotFoundError,
    DisputeRepositoryProtocol,
    EscrowSettlementProtocol,
    InvalidDisputeStateError,
)
from .events.publishers import publish_dispute_status_changed

logger = logging.getLogger(__name__)


class DisputeService:
    """Dispute resolution business logic"""

    def __init__(
        self,
        repository: DisputeRepositoryProtocol,
        escrow_service: EscrowSettlementProtocol,
        order_service=None,
        event_bus=None,
    ):
        """
        Args:
            repository: Dispute repository
            escrow_service: Escrow ledger, settles the frozen funds
            order_service: Order manager, used for disputes filed before payment
            event_bus: NATS event bus instance (optional)
        """
        self.repository = repository
        self.escrow_service = escrow_service
        self.order_service = order_service
        self.event_bus = event_bus
        logger.info("✅ DisputeService initialized")

    async def start_investigation(self, dispute_id: str, admin_id: str, notes: Optional[str] = None) -> Dispute:
        """Move an open dispute to investigating"""
        dispute = await self.get_dispute(dispute_id)
        self._check_transition(dispute, DisputeStatus.INVESTIGATING)

        updated = await self.repository.update_dispute(
            dispute_id,
            {
                "status": DisputeStatus.INVESTIGATING.value,
                "investigated_by": admin_id,
                "admin_notes": notes,
                "updated_at": datetime.now(timezone.utc),
            },
            expected_status=DisputeStatus.OPEN,
        )
        if updated is None:
            raise InvalidDisputeStateError(
                f"Dispute {dispute_id} changed while starting investigation",
                user_message="Dispute was updated, please refresh and try again",
            )

        logger.info(f"Dispute {dispute_id} under investigation by {admin_id}")
        await publish_dispute_status_changed(self.event_bus, updated, admin_id)
        return updated

    async def resolve_dispute(
        self,
        dispute_id: str,
        resolution: str,
        outcome: DisputeOutcome,
        resolved_by: Optional[str] = None,
    ) -> Dispute:
        """
        Decide a dispute.

        Business Rules:
        - refund_to_buyer refunds the escrow (order cancelled)
        - release_to_vendor releases the escrow with dispute_resolution
        - The escrow is settled before the dispute is marked resolved; a retry
          after the escrow already moved the same way only completes the record

        Raises:
            DisputeNotFoundError: Unknown dispute
            InvalidDisputeStateError: Dispute already resolved or closed
            ConflictError: Escrow was settled the other way
        """
        dispute = await self.get_dispute(dispute_id)
        self._check_transition(dispute, DisputeStatus.RESOLVED)

        await self._settle_escrow(dispute, outcome, resolution, resolved_by)
        return await self._record_decision(dispute, DisputeStatus.RESOLVED, outcome, resolution, resolved_by)

    async def close_dispute(self, dispute_id: str, resolution: str, closed_by: Optional[str] = None) -> Dispute:
        """
        Dismiss a dispute after investigation.

        The complaint is rejected, so the funds go to the vendor exactly as
        for release_to_vendor.
        """
        dispute = await self.get_dispute(dispute_id)
        self._check_transition(dispute, DisputeStatus.CLOSED)

        outcome = DisputeOutcome.RELEASE_TO_VENDOR
        await self._settle_escrow(dispute, outcome, resolution, closed_by)
        return await self._record_decision(dispute, DisputeStatus.CLOSED, outcome, resolution, closed_by)

    async def get_dispute(self, dispute_id: str) -> Dispute:
        dispute = await self.repository.get_dispute(dispute_id)
        if not dispute:
            raise DisputeNotFoundError(dispute_id)
        return dispute

    async def list_disputes(
        self,
        status: Optional[DisputeStatus] = None,
        order_id: Optional[str] = None,
        limit: int = 50,
    ) -> List[Dispute]:
        return await self.repository.list_disputes(order_id=order_id, status=status, limit=limit)

    # ====================
    # Helpers
    # ====================

    def _check_transition(self, dispute: Dispute, new_status: DisputeStatus):
        if new_status not in DISPUTE_TRANSITIONS[dispute.status]:
            raise InvalidDisputeStateError(
                f"Dispute {dispute.id} cannot move from {dispute.status.value} to {new_status.value}",
                user_message=f"Dispute is already {dispute.status.value}",
            )

    async def _settle_escrow(
        self,
        dispute: Dispute,
        outcome: DisputeOutcome,
        resolution: str,
        actor_id: Optional[str],
    ):
        refund = outcome == DisputeOutcome.REFUND_TO_BUYER

        if dispute.escrow_transaction_id is None:
            try:
                # A hold opened after filing is linked late
                await self.escrow_service.get_escrow_for_order(dispute.order_id)
            except EscrowNotFoundError:
                # Filed before payment: nothing is held, only the order leaves dispute
                if self.order_service is not None:
                    await self.order_service.restore_after_dispute(dispute.order_id, refunded=refund, reason=resolution)
                return

        try:
            if refund:
                await self.escrow_service.refund_escrow(
                    dispute.order_id, resolution, refunded_by=actor_id, from_dispute=True
                )
            else:
                await self.escrow_service.release_escrow(
                    dispute.order_id, ReleaseType.DISPUTE_RESOLUTION, actor_id, resolution
                )
        except EscrowAlreadySettledError:
            escrow = await self.escrow_service.get_escrow_for_order(dispute.order_id)
            expected = EscrowStatus.REFUNDED if refund else EscrowStatus.RELEASED
            if escrow.status != expected:
                raise
            logger.warning(
                f"Escrow for dispute {dispute.id} already {escrow.status.value}, completing dispute record"
            )

    async def _record_decision(
        self,
        dispute: Dispute,
        status: DisputeStatus,
        outcome: DisputeOutcome,
        resolution: str,
        actor_id: Optional[str],
    ) -> Dispute:
        now = datetime.now(timezone.utc)
        updated = await self.repository.update_dispute(
            dispute.id,
            {
                "status": status.value,
                "outcome": outcome.value,
                "resolution": resolution,
                "resolved_by": actor_id,
                "resolved_at": now,
                "updated_at": now,
            },
            expected_status=dispute.status,
        )
        if updated is None:
            current = await self.get_dispute(dispute.id)
            if current.status == status and current.outcome == outcome:
                return current
            raise InvalidDisputeStateError(
                f"Dispute {dispute.id} changed to {current.status.value} while recording decision",
                user_message=f"Dispute is already {current.status.value}",
            )

        logger.info(f"Dispute {dispute.id} {status.value}: {outcome.value} by {actor_id or 'admin'}")
        await publish_dispute_status_changed(self.event_bus, updated, actor_id)
        return updated
