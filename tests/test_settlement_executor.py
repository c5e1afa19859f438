"""Tests for on-chain settlement: chunking, retries and entity outcomes."""

from __future__ import annotations

from decimal import Decimal

import pytest

from cloakpay.application.dtos import (
    CreatePaymentIntentDTO,
    CreatePayrollBatchDTO,
    PayrollPaymentInputDTO,
)
from cloakpay.application.payment_intents import PaymentIntentService
from cloakpay.application.payroll import PayrollService
from cloakpay.application.settlement import SettlementExecutor, SettlementPayment
from cloakpay.crypto.amount_encryption import AmountEncryptionEngine
from cloakpay.domain.errors import InvalidStateError
from cloakpay.domain.payments.entities import (
    Currency,
    PaymentIntent,
    PaymentIntentStatus,
    PayrollStatus,
    intent_associated_data,
)
from cloakpay.infrastructure.payments.payment_intent_repository_impl import (
    PaymentIntentRepositoryImpl,
)
from cloakpay.infrastructure.payments.payroll_batch_repository_impl import (
    PayrollBatchRepositoryImpl,
)
from cloakpay.infrastructure.solana.transactions import TransferTransactionBuilder
from tests.fixtures import FakeChainClient, FakeDispatcher, new_address


@pytest.fixture
def sleeps() -> list[float]:
    return []


@pytest.fixture
def executor(
    chain: FakeChainClient,
    builder: TransferTransactionBuilder,
    engine: AmountEncryptionEngine,
    payment_intent_repository: PaymentIntentRepositoryImpl,
    payroll_batch_repository: PayrollBatchRepositoryImpl,
    sleeps: list[float],
) -> SettlementExecutor:
    async def record_sleep(delay: float) -> None:
        sleeps.append(delay)

    return SettlementExecutor(
        chain,
        builder,
        engine,
        payment_intent_repository,
        payroll_batch_repository,
        sleep=record_sleep,
    )


def _payments(count: int) -> list[SettlementPayment]:
    return [
        SettlementPayment(new_address(), Decimal("1.25"), f"ref-{i}")
        for i in range(count)
    ]


def _u32(data: bytes) -> int:
    return int.from_bytes(data[1:5], "little")


def _u64(data: bytes) -> int:
    return int.from_bytes(data[1:9], "little")


class TestExecuteDirect:
    @pytest.mark.asyncio
    async def test_splits_into_chunks_of_ten(
        self, executor: SettlementExecutor, chain: FakeChainClient, sleeps: list[float]
    ) -> None:
        result = await executor.execute_direct(_payments(25), Currency.USDC)

        assert result.success
        assert result.succeeded == 25
        # compute price + compute limit + one transfer per recipient
        assert chain.instruction_counts() == [12, 12, 7]
        assert sleeps == [0.5, 0.5]

    @pytest.mark.asyncio
    async def test_compute_budget_scales_with_transfers(
        self, executor: SettlementExecutor, chain: FakeChainClient
    ) -> None:
        await executor.execute_direct(_payments(3), Currency.SOL)

        [tx] = chain.sent
        price, limit = tx.message.instructions[0], tx.message.instructions[1]
        assert int.from_bytes(bytes(price.data)[1:9], "little") == 1000
        assert _u32(bytes(limit.data)) == 200_000 + 3 * 50_000

    @pytest.mark.asyncio
    async def test_failed_chunk_fails_only_its_payments(
        self, executor: SettlementExecutor, chain: FakeChainClient
    ) -> None:
        chain.fail_on = {2}
        payments = _payments(25)

        result = await executor.execute_direct(payments, Currency.USDC)

        assert not result.success
        assert result.succeeded == 15
        assert result.failed == 10
        statuses = [o.status for o in result.payments]
        assert statuses == ["success"] * 10 + ["failed"] * 10 + ["success"] * 5
        assert [o.reference for o in result.payments] == [p.reference for p in payments]
        assert result.payments[10].error is not None


class TestSingleTransfers:
    @pytest.mark.asyncio
    async def test_sol_payment_retries_with_linear_backoff(
        self, executor: SettlementExecutor, chain: FakeChainClient, sleeps: list[float]
    ) -> None:
        chain.fail_on = {1, 2}

        outcome = await executor.process_sol_payment(new_address(), 250_000_000)

        assert outcome.status == "success"
        assert outcome.signature == str(chain.sent[0].signatures[0])
        assert sleeps == [2.0, 4.0]
        transfer = chain.sent[0].message.instructions[2]
        # system transfer: u32 discriminator then u64 lamports
        assert int.from_bytes(bytes(transfer.data)[4:12], "little") == 250_000_000

    @pytest.mark.asyncio
    async def test_usdc_payment_gives_up_after_max_retries(
        self, executor: SettlementExecutor, chain: FakeChainClient, sleeps: list[float]
    ) -> None:
        chain.fail_on = {1, 2, 3}

        outcome = await executor.process_usdc_payment(new_address(), Decimal("3"))

        assert outcome.status == "failed"
        assert "rejected" in (outcome.error or "")
        assert chain.submissions == 3
        assert sleeps == [2.0, 4.0]


async def _processing_intent(
    repo: PaymentIntentRepositoryImpl, engine: AmountEncryptionEngine, amount: str
) -> PaymentIntent:
    service = PaymentIntentService(repo, engine, FakeDispatcher())
    intent = await service.create(
        "merchant-1",
        CreatePaymentIntentDTO(
            amount=Decimal(amount), recipient=new_address(), payer_wallet=new_address()
        ),
    )
    return await service.begin_direct_settlement("merchant-1", intent.id)


class TestPaymentIntentSettlement:
    @pytest.mark.asyncio
    async def test_finalizes_with_decrypted_amount(
        self,
        executor: SettlementExecutor,
        chain: FakeChainClient,
        engine: AmountEncryptionEngine,
        payment_intent_repository: PaymentIntentRepositoryImpl,
    ) -> None:
        intent = await _processing_intent(payment_intent_repository, engine, "12.5")

        result = await executor.settle_payment_intent(intent.id)

        assert result.success
        stored = await payment_intent_repository.get_by_id(intent.id)
        assert stored is not None
        assert stored.status == PaymentIntentStatus.FINALIZED
        assert stored.tx_signature == result.payments[0].signature
        assert "settlement_timestamp" in stored.metadata
        token_transfer = chain.sent[0].message.instructions[2]
        assert _u64(bytes(token_transfer.data)) == 12_500_000

    @pytest.mark.asyncio
    async def test_rejects_intent_that_is_not_processing(
        self,
        executor: SettlementExecutor,
        engine: AmountEncryptionEngine,
        payment_intent_repository: PaymentIntentRepositoryImpl,
    ) -> None:
        service = PaymentIntentService(
            payment_intent_repository, engine, FakeDispatcher()
        )
        intent = await service.create(
            "merchant-1",
            CreatePaymentIntentDTO(
                amount=Decimal("1"), recipient=new_address(), payer_wallet=new_address()
            ),
        )

        with pytest.raises(InvalidStateError):
            await executor.settle_payment_intent(intent.id)

    @pytest.mark.asyncio
    async def test_commitment_mismatch_fails_without_transfer(
        self,
        executor: SettlementExecutor,
        chain: FakeChainClient,
        engine: AmountEncryptionEngine,
        payment_intent_repository: PaymentIntentRepositoryImpl,
    ) -> None:
        recipient, payer_wallet = new_address(), new_address()
        intent = PaymentIntent(
            merchant_id="merchant-1",
            recipient=recipient,
            payer_identity=payer_wallet,
            ciphertext="placeholder",
            commitment="placeholder",
            nonce="placeholder",
            status=PaymentIntentStatus.PROCESSING,
        )
        encrypted = engine.encrypt_amount(
            "10",
            payer_wallet,
            intent_associated_data(intent.id, "merchant-1", recipient, Currency.USDC),
        )
        tampered = PaymentIntent(
            **{
                **intent.model_dump(exclude={"ciphertext", "commitment", "nonce"}),
                "ciphertext": encrypted.ciphertext,
                "commitment": AmountEncryptionEngine.create_commitment(
                    "1000", encrypted.nonce
                ),
                "nonce": encrypted.nonce,
            }
        )
        await payment_intent_repository.create(tampered)

        result = await executor.settle_payment_intent(tampered.id)

        assert not result.success
        assert chain.submissions == 0
        stored = await payment_intent_repository.get_by_id(tampered.id)
        assert stored is not None
        assert stored.status == PaymentIntentStatus.FAILED
        assert "commitment" in stored.metadata["error_message"]


class TestPayrollSettlement:
    async def _processing_batch(
        self,
        repo: PayrollBatchRepositoryImpl,
        engine: AmountEncryptionEngine,
        employees: int,
    ):
        service = PayrollService(repo, engine, FakeDispatcher())
        batch = await service.create(
            "company-1",
            CreatePayrollBatchDTO(
                payments=[
                    PayrollPaymentInputDTO(
                        employee_id=f"emp-{i}",
                        employee_wallet=new_address(),
                        amount=Decimal("100"),
                    )
                    for i in range(employees)
                ]
            ),
        )
        return await service.begin_direct_settlement("company-1", batch.id)

    @pytest.mark.asyncio
    async def test_all_payments_succeed(
        self,
        executor: SettlementExecutor,
        engine: AmountEncryptionEngine,
        payroll_batch_repository: PayrollBatchRepositoryImpl,
    ) -> None:
        batch = await self._processing_batch(payroll_batch_repository, engine, 3)

        result = await executor.settle_payroll_batch(batch.id)

        assert result.success
        stored = await payroll_batch_repository.get_by_id(batch.id)
        assert stored is not None
        assert stored.status == PayrollStatus.COMPLETED
        assert stored.completed_at is not None
        assert all(p.status == PayrollStatus.COMPLETED for p in stored.payments)
        assert all(p.tx_signature for p in stored.payments)

    @pytest.mark.asyncio
    async def test_partial_failure_requires_reconciliation(
        self,
        executor: SettlementExecutor,
        chain: FakeChainClient,
        engine: AmountEncryptionEngine,
        payroll_batch_repository: PayrollBatchRepositoryImpl,
    ) -> None:
        chain.fail_on = {2}
        batch = await self._processing_batch(payroll_batch_repository, engine, 12)

        result = await executor.settle_payroll_batch(batch.id)

        assert not result.success
        stored = await payroll_batch_repository.get_by_id(batch.id)
        assert stored is not None
        assert stored.status == PayrollStatus.FAILED
        assert stored.metadata["requires_reconciliation"] is True
        assert stored.metadata["settlement_result"] == {
            "success": False,
            "successful": 10,
            "failed": 2,
        }
        statuses = [p.status for p in stored.payments]
        assert statuses.count(PayrollStatus.COMPLETED) == 10
        assert statuses.count(PayrollStatus.FAILED) == 2


@pytest.mark.asyncio
async def test_payer_balance(
    executor: SettlementExecutor, chain: FakeChainClient, builder: TransferTransactionBuilder
) -> None:
    chain.balance_lamports = 1_500_000_000
    chain.token_balance = Decimal("42.5")

    balance = await executor.get_payer_balance()

    assert balance.address == builder.payer_address
    assert balance.sol == Decimal("1.5")
    assert balance.usdc == Decimal("42.5")
