"""Payment record store.

Owns persistence of `Payment` rows behind three operations the lifecycle
coordinator relies on: lookup by reference, insert, and a conditional save.
"""

from sqlalchemy import select, update
from sqlalchemy.exc import IntegrityError

from paylink.common.errors import ConcurrencyConflict, ReferenceCollision
from paylink.common.state_machine import PaymentStatus
from paylink.services.payments.models import Payment, PaymentTimeline, utcnow
from paylink.services.payments.schemas import PaymentCreateRequest


class PaymentRepository:
    """SQLAlchemy-backed store for payment records and their timeline."""

    def __init__(self, session_factory) -> None:
        self.session_factory = session_factory

    def find_by_reference(self, reference: str) -> Payment | None:
        with self.session_factory() as db:
            return db.execute(
                select(Payment).where(Payment.reference == reference)
            ).scalar_one_or_none()

    def create(self, reference: str, spec: PaymentCreateRequest) -> Payment:
        """Insert a new payment in `INITIATED` along with its first timeline row."""

        with self.session_factory() as db:
            payment = Payment(
                reference=reference,
                amount=spec.amount,
                currency=spec.currency.value,
                payment_method=spec.payment_method.value,
                customer_phone=spec.customer_phone,
                customer_email=spec.customer_email,
                status=PaymentStatus.INITIATED.value,
                state_version=0,
            )
            db.add(payment)
            try:
                db.flush()
            except IntegrityError as exc:
                db.rollback()
                raise ReferenceCollision(f"Payment reference {reference} already exists") from exc
            db.add(
                PaymentTimeline(
                    payment_id=payment.id,
                    from_state=None,
                    to_state=payment.status,
                    reason="payment_initiated",
                )
            )
            db.commit()
            return payment

    def save(
        self,
        payment: Payment,
        expected_status: str,
        expected_version: int,
        reason: str,
    ) -> Payment:
        """Persist `payment` only if nobody else wrote it since it was loaded.

        The write is guarded by `(id, status, state_version)`; a stale caller
        gets `ConcurrencyConflict` and the stored row is left untouched.
        """

        now = utcnow()
        with self.session_factory() as db:
            result = db.execute(
                update(Payment)
                .where(
                    Payment.id == payment.id,
                    Payment.status == expected_status,
                    Payment.state_version == expected_version,
                )
                .values(
                    status=payment.status,
                    provider_transaction_id=payment.provider_transaction_id,
                    state_version=expected_version + 1,
                    updated_at=now,
                )
            )
            if result.rowcount != 1:
                db.rollback()
                raise ConcurrencyConflict(
                    f"Payment {payment.reference} was modified concurrently "
                    f"(expected version {expected_version})"
                )
            db.add(
                PaymentTimeline(
                    payment_id=payment.id,
                    from_state=expected_status,
                    to_state=payment.status,
                    reason=reason,
                    provider_transaction_id=payment.provider_transaction_id,
                )
            )
            db.commit()

        payment.state_version = expected_version + 1
        payment.updated_at = now
        return payment

    def timeline(self, reference: str) -> list[PaymentTimeline]:
        with self.session_factory() as db:
            return list(
                db.execute(
                    select(PaymentTimeline)
                    .join(Payment, Payment.id == PaymentTimeline.payment_id)
                    .where(Payment.reference == reference)
                    .order_by(PaymentTimeline.created_at)
                ).scalars()
            )
