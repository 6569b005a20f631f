"""Motor REST routes (fallback for clients without a WebSocket)."""

from typing import Optional

from fastapi import APIRouter, Body, Depends, HTTPException
from pydantic import BaseModel, StrictBool

from core.container import container
from core.logging import get_logger
from models.messages import MOTORS
from services.message_router import MessageRouter
from services.registry import ConnectionRegistry
from services.state_store import StateStore

logger = get_logger(__name__)
router = APIRouter(tags=["motor"])


class MotorRequest(BaseModel):
    """Optional target state; omitted means toggle."""
    state: Optional[StrictBool] = None


@router.get("/status")
@router.get("/api/status")
async def get_status(
    state_store: StateStore = Depends(lambda: container.state_store()),
    registry: ConnectionRegistry = Depends(lambda: container.registry())
):
    """Get current motor state plus device connectivity."""
    state = await state_store.read()
    return {**state.to_payload(), "deviceConnected": registry.device_connected}


@router.post("/motor/{motor_id}")
@router.post("/api/motor/{motor_id}")
async def control_motor(
    motor_id: str,
    request: Optional[MotorRequest] = Body(default=None),
    state_store: StateStore = Depends(lambda: container.state_store()),
    message_router: MessageRouter = Depends(lambda: container.message_router())
):
    """Switch a motor through the connected device.

    Examples:
    - Toggle motor A: POST /motor/A
    - Force motor B on: POST /motor/B {"state": true}
    """
    motor = motor_id.upper()
    if motor not in MOTORS:
        raise HTTPException(status_code=400, detail=f"Invalid motor id: {motor_id}")

    target = request.state if request is not None else None
    if target is None:
        current = await state_store.read()
        target = not getattr(current, f"motor_{motor.lower()}")

    logger.info("[Motor API] Control request", motor=motor, state=target)
    success, message = await message_router.control_motor(motor, target)

    return {
        "success": success,
        "message": message,
        "motor": motor,
        "state": target,
    }
