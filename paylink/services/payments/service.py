"""Payment lifecycle coordination.

Guards every status write with the transition table and makes provider
webhook ingestion safe under redelivery with a two-layer idempotency check:
an exact `(reference, provider transaction id)` marker in the cache, then a
fallback that accepts a terminal status the record already holds.
"""

from dataclasses import dataclass
from datetime import datetime
from uuid import uuid4

from paylink.common.cache import Cache, safe_get, safe_set
from paylink.common.errors import ConcurrencyConflict, InvalidTransition, NotFound
from paylink.common.logging import logger, payment_reference_ctx
from paylink.common.metrics import (
    payment_requests_total,
    payment_status_transitions_total,
    webhook_outcomes_total,
)
from paylink.common.state_machine import PaymentStatus, is_terminal, validate_transition
from paylink.services.payments.models import Payment
from paylink.services.payments.repository import PaymentRepository
from paylink.services.payments.schemas import PaymentCreateRequest

WEBHOOK_ALREADY_PROCESSED = "Webhook already processed"
WEBHOOK_ALREADY_IN_STATE = "Payment already in requested state"
WEBHOOK_PROCESSED = "Webhook processed successfully"


@dataclass(frozen=True)
class WebhookOutcome:
    success: bool
    message: str
    payment_reference: str


def webhook_idempotency_key(payment_reference: str, provider_transaction_id: str) -> str:
    return f"webhook:{payment_reference}:{provider_transaction_id}"


class PaymentLifecycleCoordinator:
    """Owns payment initiation and every guarded status mutation."""

    def __init__(
        self,
        store: PaymentRepository,
        cache: Cache,
        idempotency_ttl_seconds: int = 86400,
        service_name: str = "payments",
    ) -> None:
        self.store = store
        self.cache = cache
        self.idempotency_ttl_seconds = idempotency_ttl_seconds
        self.service_name = service_name

    async def initiate(self, spec: PaymentCreateRequest) -> Payment:
        """Create a payment in `INITIATED` under a fresh random reference."""

        reference = str(uuid4())
        payment_reference_ctx.set(reference)
        payment_requests_total.labels(service=self.service_name, operation="initiate").inc()
        logger.info("initiating payment reference=%s", reference)
        payment = self.store.create(reference, spec)
        logger.info("payment initiated reference=%s amount=%s %s", reference, spec.amount, spec.currency.value)
        return payment

    async def get_by_reference(self, reference: str) -> Payment:
        payment = self.store.find_by_reference(reference)
        if payment is None:
            logger.warning("payment not found reference=%s", reference)
            raise NotFound(f"Payment with reference {reference} not found")
        return payment

    async def update_status(
        self,
        reference: str,
        status: PaymentStatus,
        provider_transaction_id: str | None = None,
    ) -> Payment:
        """Apply an explicit status change after checking it against the state machine."""

        payment_reference_ctx.set(reference)
        payment_requests_total.labels(service=self.service_name, operation="update_status").inc()
        logger.info("updating payment reference=%s status=%s", reference, status.value)
        payment = await self.get_by_reference(reference)
        validate_transition(payment.status, status)

        if provider_transaction_id:
            payment.provider_transaction_id = provider_transaction_id
        self._persist(payment, status, reason="status_update")
        logger.info("payment updated reference=%s status=%s", reference, status.value)
        return payment

    async def ingest_webhook(
        self,
        payment_reference: str,
        status: PaymentStatus,
        provider_transaction_id: str,
        occurred_at: datetime | None = None,
    ) -> WebhookOutcome:
        """Apply a provider callback at most once per `(reference, transaction id)`.

        `occurred_at` is logged for audit and never used for ordering.
        """

        payment_reference_ctx.set(payment_reference)
        payment_requests_total.labels(service=self.service_name, operation="webhook").inc()
        logger.info(
            "processing webhook reference=%s status=%s provider_txn=%s occurred_at=%s",
            payment_reference,
            status.value,
            provider_transaction_id,
            occurred_at.isoformat() if occurred_at else None,
        )
        key = webhook_idempotency_key(payment_reference, provider_transaction_id)

        if await safe_get(self.cache, key):
            logger.info("duplicate webhook skipped reference=%s provider_txn=%s", payment_reference, provider_transaction_id)
            return self._outcome(payment_reference, WEBHOOK_ALREADY_PROCESSED, "duplicate")

        payment = await self.get_by_reference(payment_reference)
        current = PaymentStatus(payment.status)

        # A settled record is never rewritten, even by a matching status.
        if current == status and is_terminal(current):
            logger.info("payment already in terminal state reference=%s status=%s", payment_reference, current.value)
            await safe_set(self.cache, key, True, self.idempotency_ttl_seconds)
            return self._outcome(payment_reference, WEBHOOK_ALREADY_IN_STATE, "already_in_state")

        self._validate_webhook(payment_reference, current, status)

        payment.provider_transaction_id = provider_transaction_id
        try:
            self._persist(payment, status, reason="webhook")
        except ConcurrencyConflict:
            return await self._classify_lost_race(payment_reference, status, provider_transaction_id, key)
        await safe_set(self.cache, key, True, self.idempotency_ttl_seconds)
        logger.info("webhook processed reference=%s status=%s", payment_reference, status.value)
        return self._outcome(payment_reference, WEBHOOK_PROCESSED, "processed")

    async def timeline(self, reference: str):
        await self.get_by_reference(reference)
        return self.store.timeline(reference)

    async def _classify_lost_race(
        self,
        payment_reference: str,
        status: PaymentStatus,
        provider_transaction_id: str,
        key: str,
    ) -> WebhookOutcome:
        """Decide what a webhook whose save lost a race actually was.

        The write is never retried. A twin delivery that landed first makes
        this one a duplicate; anything else is rejected or re-raised.
        """

        logger.info("webhook save lost a race reference=%s provider_txn=%s", payment_reference, provider_transaction_id)
        if await safe_get(self.cache, key):
            return self._outcome(payment_reference, WEBHOOK_ALREADY_PROCESSED, "duplicate")

        fresh = await self.get_by_reference(payment_reference)
        current = PaymentStatus(fresh.status)
        if current == status and fresh.provider_transaction_id == provider_transaction_id:
            await safe_set(self.cache, key, True, self.idempotency_ttl_seconds)
            return self._outcome(payment_reference, WEBHOOK_ALREADY_PROCESSED, "duplicate")
        if current == status and is_terminal(current):
            await safe_set(self.cache, key, True, self.idempotency_ttl_seconds)
            return self._outcome(payment_reference, WEBHOOK_ALREADY_IN_STATE, "already_in_state")

        self._validate_webhook(payment_reference, current, status)
        raise ConcurrencyConflict(
            f"Payment {payment_reference} was modified concurrently (now at version {fresh.state_version})"
        )

    def _validate_webhook(self, payment_reference: str, current: PaymentStatus, status: PaymentStatus) -> None:
        try:
            validate_transition(current, status)
        except InvalidTransition:
            webhook_outcomes_total.labels(service=self.service_name, outcome="rejected").inc()
            logger.warning(
                "webhook rejected reference=%s current=%s requested=%s",
                payment_reference,
                current.value,
                status.value,
            )
            raise

    def _persist(self, payment: Payment, status: PaymentStatus, reason: str) -> None:
        from_status = payment.status
        payment.status = status.value
        self.store.save(
            payment,
            expected_status=from_status,
            expected_version=payment.state_version,
            reason=reason,
        )
        payment_status_transitions_total.labels(
            service=self.service_name, from_state=from_status, to_state=status.value
        ).inc()

    def _outcome(self, payment_reference: str, message: str, outcome: str) -> WebhookOutcome:
        webhook_outcomes_total.labels(service=self.service_name, outcome=outcome).inc()
        return WebhookOutcome(success=True, message=message, payment_reference=payment_reference)
