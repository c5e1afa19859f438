"""DTOs exchanged with the MPC cluster: settlement jobs, statuses and callbacks."""

from __future__ import annotations

from typing import Any, Literal, Optional

from pydantic import BaseModel, Field

PAYMENT_SETTLEMENT = "payment_settlement"
PAYROLL_SETTLEMENT = "payroll_settlement"

ComputationType = Literal["payment_settlement", "payroll_settlement"]
ComputationStatus = Literal["queued", "processing", "completed", "failed"]


class PaymentSettlementJob(BaseModel):
    payment_intent_id: str
    merchant_id: str
    recipient: str
    currency: str
    encrypted_amount: str
    amount_commitment: str
    amount: str

    @property
    def computation_type(self) -> str:
        return PAYMENT_SETTLEMENT

    def params(self) -> dict[str, Any]:
        return self.model_dump()


class PayrollJobPayment(BaseModel):
    employee_id: str
    employee_wallet: str
    encrypted_amount: str
    amount_commitment: str
    amount: str


class PayrollSettlementJob(BaseModel):
    batch_id: str
    company_id: str
    currency: str
    payments: list[PayrollJobPayment]

    @property
    def computation_type(self) -> str:
        return PAYROLL_SETTLEMENT

    def params(self) -> dict[str, Any]:
        return self.model_dump()


class ComputationResult(BaseModel):
    computation_id: str
    status: ComputationStatus
    result: Optional[dict[str, Any]] = None
    error: Optional[str] = None


class CallbackPaymentResultDTO(BaseModel):
    employee_id: str
    status: Literal["completed", "failed"]
    tx_signature: Optional[str] = None
    error: Optional[str] = None


class CallbackResultDTO(BaseModel):
    tx_signatures: list[str] = Field(default_factory=list)
    error_message: Optional[str] = None
    payment_results: list[CallbackPaymentResultDTO] = Field(default_factory=list)


class MpcCallbackDTO(BaseModel):
    """Body POSTed by the MPC cluster when a computation finishes."""

    computation_id: str = Field(..., min_length=1, max_length=128)
    computation_type: ComputationType
    status: Literal["completed", "failed"]
    result: Optional[CallbackResultDTO] = None
    timestamp: int = Field(..., ge=0)  # epoch milliseconds


class CallbackAckDTO(BaseModel):
    success: bool = True
    message: str
    outcome: str
