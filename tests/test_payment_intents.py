"""Business logic tests for payment intent and payroll services."""

from __future__ import annotations

import base64
from decimal import Decimal

import pytest

from cloakpay.application.dtos import (
    CreatePaymentIntentDTO,
    CreatePayrollBatchDTO,
    PayrollPaymentInputDTO,
    UpdatePaymentIntentDTO,
)
from cloakpay.application.mpc_dtos import PaymentSettlementJob, PayrollSettlementJob
from cloakpay.application.payment_intents import PaymentIntentService
from cloakpay.application.payroll import PayrollService
from cloakpay.crypto.amount_encryption import AmountEncryptionEngine
from cloakpay.domain.errors import EntityNotFoundError, InvalidStateError
from cloakpay.domain.payments.entities import (
    Currency,
    PaymentIntentStatus,
    PayrollStatus,
)
from cloakpay.infrastructure.payments.computation_index import claim_computation_id
from cloakpay.infrastructure.payments.payment_intent_repository_impl import (
    PaymentIntentRepositoryImpl,
)
from cloakpay.infrastructure.payments.payroll_batch_repository_impl import (
    PayrollBatchRepositoryImpl,
)
from tests.fixtures import FakeDispatcher, InMemoryKeyValueStore, new_address


@pytest.fixture
def intents(
    payment_intent_repository: PaymentIntentRepositoryImpl,
    engine: AmountEncryptionEngine,
    dispatcher: FakeDispatcher,
) -> PaymentIntentService:
    return PaymentIntentService(payment_intent_repository, engine, dispatcher)


@pytest.fixture
def payroll(
    payroll_batch_repository: PayrollBatchRepositoryImpl,
    engine: AmountEncryptionEngine,
    dispatcher: FakeDispatcher,
) -> PayrollService:
    return PayrollService(payroll_batch_repository, engine, dispatcher)


def _intent_dto(amount: str = "125.50", **kwargs) -> CreatePaymentIntentDTO:
    return CreatePaymentIntentDTO(
        amount=Decimal(amount),
        recipient=new_address(),
        payer_wallet=new_address(),
        **kwargs,
    )


class TestPaymentIntentService:
    @pytest.mark.asyncio
    async def test_create_stores_only_encrypted_amount_fields(
        self, intents: PaymentIntentService, engine: AmountEncryptionEngine
    ) -> None:
        dto = _intent_dto(currency=Currency.SOL, description="Order #1")

        intent = await intents.create("merchant-1", dto)

        assert intent.status == PaymentIntentStatus.PENDING
        assert len(base64.b64decode(intent.ciphertext)) == 36
        assert engine.decrypt_amount(
            intent.ciphertext, dto.payer_wallet, intent.associated_data()
        ) == Decimal("125.5")
        assert AmountEncryptionEngine.verify_commitment(
            "125.5", intent.nonce, intent.commitment
        )

    @pytest.mark.asyncio
    async def test_intents_are_scoped_to_their_merchant(
        self, intents: PaymentIntentService
    ) -> None:
        intent = await intents.create("merchant-1", _intent_dto())

        with pytest.raises(EntityNotFoundError):
            await intents.get("merchant-2", intent.id)
        assert await intents.list("merchant-2") == []
        assert [i.id for i in await intents.list("merchant-1")] == [intent.id]

    @pytest.mark.asyncio
    async def test_confirm_binds_computation_and_dispatches(
        self,
        intents: PaymentIntentService,
        dispatcher: FakeDispatcher,
        payment_intent_repository: PaymentIntentRepositoryImpl,
    ) -> None:
        intent = await intents.create("merchant-1", _intent_dto())

        confirmed = await intents.confirm("merchant-1", intent.id)

        assert confirmed.status == PaymentIntentStatus.PROCESSING
        assert confirmed.computation_id is not None
        [(job, computation_id)] = dispatcher.submitted
        assert isinstance(job, PaymentSettlementJob)
        assert computation_id == confirmed.computation_id
        assert job.encrypted_amount == intent.ciphertext
        found = await payment_intent_repository.get_by_computation_id(computation_id)
        assert found is not None and found.id == intent.id

    @pytest.mark.asyncio
    async def test_confirm_twice_is_rejected(self, intents: PaymentIntentService) -> None:
        intent = await intents.create("merchant-1", _intent_dto())
        await intents.confirm("merchant-1", intent.id)

        with pytest.raises(InvalidStateError):
            await intents.confirm("merchant-1", intent.id)

    @pytest.mark.asyncio
    async def test_cancel_only_while_pending(self, intents: PaymentIntentService) -> None:
        pending = await intents.create("merchant-1", _intent_dto())
        processing = await intents.create("merchant-1", _intent_dto())
        await intents.confirm("merchant-1", processing.id)

        cancelled = await intents.cancel("merchant-1", pending.id)

        assert cancelled.status == PaymentIntentStatus.CANCELLED
        with pytest.raises(InvalidStateError):
            await intents.cancel("merchant-1", processing.id)
        with pytest.raises(InvalidStateError):
            await intents.cancel("merchant-1", pending.id)

    @pytest.mark.asyncio
    async def test_list_filters_by_status(self, intents: PaymentIntentService) -> None:
        first = await intents.create("merchant-1", _intent_dto())
        await intents.create("merchant-1", _intent_dto())
        await intents.cancel("merchant-1", first.id)

        cancelled = await intents.list("merchant-1", PaymentIntentStatus.CANCELLED)

        assert [i.id for i in cancelled] == [first.id]

    @pytest.mark.asyncio
    async def test_update_description(self, intents: PaymentIntentService) -> None:
        intent = await intents.create("merchant-1", _intent_dto())

        updated = await intents.update(
            "merchant-1", intent.id, UpdatePaymentIntentDTO(description="Refund")
        )

        assert updated.description == "Refund"
        assert (await intents.get("merchant-1", intent.id)).description == "Refund"

    @pytest.mark.asyncio
    async def test_computation_id_belongs_to_one_entity(
        self, intents: PaymentIntentService, store: InMemoryKeyValueStore
    ) -> None:
        intent = await intents.create("merchant-1", _intent_dto())
        await claim_computation_id(store, "pay_taken", "payroll_batch:other")
        intents.dispatcher.new_computation_id = lambda _type: "pay_taken"

        with pytest.raises(InvalidStateError):
            await intents.confirm("merchant-1", intent.id)
        assert (await intents.get("merchant-1", intent.id)).status == (
            PaymentIntentStatus.PENDING
        )


class TestPayrollService:
    def _dto(self, *employee_ids: str) -> CreatePayrollBatchDTO:
        return CreatePayrollBatchDTO(
            payments=[
                PayrollPaymentInputDTO(
                    employee_id=eid, employee_wallet=new_address(), amount=Decimal("1000")
                )
                for eid in employee_ids
            ]
        )

    @pytest.mark.asyncio
    async def test_create_encrypts_each_payment_for_its_employee(
        self, payroll: PayrollService, engine: AmountEncryptionEngine
    ) -> None:
        batch = await payroll.create("company-1", self._dto("emp-1", "emp-2"))

        assert batch.employee_count == 2
        assert batch.total_amount == "2000"
        for payment in batch.payments:
            assert engine.decrypt_amount(
                payment.ciphertext, payment.employee_wallet, payment.associated_data()
            ) == Decimal("1000")

    @pytest.mark.asyncio
    async def test_duplicate_employees_are_rejected(self, payroll: PayrollService) -> None:
        with pytest.raises(ValueError):
            await payroll.create("company-1", self._dto("emp-1", "emp-1"))

    @pytest.mark.asyncio
    async def test_execute_dispatches_batch(
        self, payroll: PayrollService, dispatcher: FakeDispatcher
    ) -> None:
        batch = await payroll.create("company-1", self._dto("emp-1", "emp-2"))

        executed = await payroll.execute("company-1", batch.id)

        assert executed.status == PayrollStatus.PROCESSING
        assert all(p.status == PayrollStatus.PROCESSING for p in executed.payments)
        [(job, computation_id)] = dispatcher.submitted
        assert isinstance(job, PayrollSettlementJob)
        assert computation_id.startswith("payroll_")
        assert [p.employee_id for p in job.payments] == ["emp-1", "emp-2"]

    @pytest.mark.asyncio
    async def test_cancel_after_execute_is_rejected(self, payroll: PayrollService) -> None:
        batch = await payroll.create("company-1", self._dto("emp-1"))
        await payroll.execute("company-1", batch.id)

        with pytest.raises(InvalidStateError):
            await payroll.cancel("company-1", batch.id)
