"""API routes for frame analysis and emergency messages."""

from datetime import datetime, timezone
from typing import Literal

from fastapi import APIRouter, Depends
from fastapi.responses import JSONResponse
from pydantic import BaseModel

from lanoria.normalizer import normalize
from webapp.services.vision import (
    EMERGENCY_FALLBACK,
    VisionConfigError,
    VisionService,
    VisionUpstreamError,
    vision_service,
)

router = APIRouter()


class FrameRequest(BaseModel):
    """Request body carrying a captured frame as a data URI."""

    image: str | None = None


class AnalysisResponse(BaseModel):
    danger: bool
    description: str


class DescriptionResponse(BaseModel):
    description: str


class EmergencyResponse(BaseModel):
    message: str
    timestamp: str


class StatusResponse(BaseModel):
    """Response for system status."""

    ready: bool
    analyze_model: str
    emergency_model: str


def get_vision_service() -> VisionService:
    return vision_service


def _now() -> str:
    return datetime.now(timezone.utc).isoformat()


@router.post(
    "/analyze-frame",
    response_model=AnalysisResponse | DescriptionResponse,
)
async def analyze_frame(
    request: FrameRequest | None = None,
    mode: Literal["danger", "plain"] = "danger",
    service: VisionService = Depends(get_vision_service),
):
    """Describe a frame, flagging immediate danger in "danger" mode."""
    if request is None or not request.image:
        return JSONResponse(status_code=400, content={"error": "No image provided"})

    try:
        text = await service.analyze(request.image, mode)
    except VisionConfigError as e:
        print(f"Error in analyze-frame API: {e}")
        return JSONResponse(status_code=500, content={"error": str(e)})
    except VisionUpstreamError as e:
        print(f"Error in analyze-frame API: {e}")
        return JSONResponse(status_code=500, content={"error": "Failed to analyze frame"})

    if mode == "plain":
        return DescriptionResponse(description=text or "No se pudo analizar la imagen")

    result = normalize(text)
    return AnalysisResponse(danger=result.danger, description=result.description)


@router.post("/emergency", response_model=EmergencyResponse)
async def emergency(
    request: FrameRequest | None = None,
    service: VisionService = Depends(get_vision_service),
):
    """Compose a message for emergency services from a frame.

    The message is always populated, even when the upstream call fails.
    """
    if request is None or not request.image:
        return JSONResponse(status_code=400, content={"error": "No image provided"})

    try:
        message = await service.emergency_message(request.image)
    except (VisionConfigError, VisionUpstreamError) as e:
        print(f"Error in emergency API: {e}")
        return JSONResponse(
            status_code=500,
            content={
                "message": EMERGENCY_FALLBACK,
                "timestamp": _now(),
                "error": "Failed to analyze emergency situation",
            },
        )

    return EmergencyResponse(message=message, timestamp=_now())


@router.get("/status", response_model=StatusResponse)
async def status(service: VisionService = Depends(get_vision_service)):
    """Check gateway status."""
    return StatusResponse(
        ready=True,
        analyze_model=service.config.analyze_model,
        emergency_model=service.config.emergency_model,
    )
