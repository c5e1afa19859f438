"""Inbound MPC callback route."""

from __future__ import annotations

import logging
from typing import Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Request, status
from pydantic import ValidationError

from ...application.callbacks import CallbackReceiver
from ...application.mpc_dtos import CallbackAckDTO
from ...domain.errors import CallbackAuthenticationError
from ..dependencies import get_callback_receiver

logger = logging.getLogger(__name__)

router = APIRouter(prefix="/mpc", tags=["mpc"])


@router.post("/callbacks", response_model=CallbackAckDTO)
async def receive_callback(
    request: Request,
    x_mpc_signature: Optional[str] = Header(None, alias="X-MPC-Signature"),
    receiver: CallbackReceiver = Depends(get_callback_receiver),
) -> CallbackAckDTO:
    """Apply a signed computation result.

    The signature covers the raw body, so it is read before any parsing.
    Duplicate and unknown computations are acknowledged with 200 so the
    cluster stops retrying.
    """
    raw_body = await request.body()
    try:
        outcome = await receiver.handle(raw_body, x_mpc_signature)
    except CallbackAuthenticationError as e:
        logger.warning("Rejected MPC callback: %s", e)
        raise HTTPException(status_code=status.HTTP_401_UNAUTHORIZED, detail=str(e))
    except ValidationError as e:
        raise HTTPException(
            status_code=status.HTTP_422_UNPROCESSABLE_ENTITY,
            detail=f"Malformed callback body: {e.error_count()} error(s)",
        )
    return CallbackAckDTO(message=f"Callback {outcome}", outcome=outcome)
