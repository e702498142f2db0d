"""HTTP route definitions for the service."""

from __future__ import annotations

import logging
from typing import List, Optional

from fastapi import APIRouter, Depends, Header, HTTPException, Query, Request, status
from fastapi.concurrency import run_in_threadpool
from fastapi.responses import JSONResponse

from app.schemas import (
    DashboardSummary,
    FieldError,
    GroupCreate,
    GroupDetail,
    GroupMembershipCreate,
    GroupSummary,
    GroupUpdate,
    IngestAccepted,
    IngestFailure,
    ProfileOut,
    ProfileUpdate,
    Reading,
    SensorCreate,
    SensorCreated,
    SensorDetail,
    SensorSummary,
    SensorUpdate,
)
from datastore.base import Backend, BackendError, ConflictError
from services.groups import GroupService
from services.ingestion import (
    AuthenticationError,
    IngestionService,
    StorageError,
    SubmissionValidationError,
)
from services.profiles import ProfileService
from services.sensors import SensorService
from settings import get_settings

logger = logging.getLogger(__name__)

router = APIRouter()

INVALID_BODY = "Invalid request body"
UNEXPECTED_ERROR = "An unexpected error occurred"


def get_backend(request: Request) -> Backend:
    return request.app.state.backend


def get_ingestion_service(backend: Backend = Depends(get_backend)) -> IngestionService:
    return IngestionService(sensors=backend, verifier=backend, readings=backend)


def get_sensor_service(backend: Backend = Depends(get_backend)) -> SensorService:
    return SensorService(backend, readings_limit=get_settings().readings_limit)


def get_group_service(backend: Backend = Depends(get_backend)) -> GroupService:
    return GroupService(backend)


def get_profile_service(backend: Backend = Depends(get_backend)) -> ProfileService:
    return ProfileService(backend)


def get_current_user(
    user_id: Optional[str] = Header(
        None,
        alias="X-User-Id",
        description="Identity of the signed-in user, set by the authentication layer.",
    ),
) -> str:
    if user_id is None or not user_id.strip():
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Missing X-User-Id header.",
        )
    return user_id.strip()


def _failure(
    status_code: int, error: str, details: Optional[List[FieldError]] = None
) -> JSONResponse:
    body = IngestFailure(error=error, details=details)
    return JSONResponse(status_code=status_code, content=body.model_dump(exclude_none=True))


def _http_error(exc: Exception) -> HTTPException:
    if isinstance(exc, KeyError):
        return HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail=exc.args[0])
    if isinstance(exc, ConflictError):
        return HTTPException(status_code=status.HTTP_409_CONFLICT, detail=str(exc))
    if isinstance(exc, BackendError):
        logger.error("Backend request failed", extra={"reason": str(exc)})
        return HTTPException(
            status_code=status.HTTP_502_BAD_GATEWAY,
            detail="Backend request failed.",
        )
    return HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(exc))


@router.post(
    "/api/sensor",
    status_code=status.HTTP_201_CREATED,
    response_model=IngestAccepted,
    responses={
        400: {"model": IngestFailure},
        401: {"model": IngestFailure},
        500: {"model": IngestFailure},
    },
    summary="Record one reading submitted by a sensor device.",
)
async def ingest_sensor_data(
    request: Request,
    service: IngestionService = Depends(get_ingestion_service),
):
    try:
        payload = await request.json()
    except ValueError:
        return _failure(
            status.HTTP_400_BAD_REQUEST,
            INVALID_BODY,
            [FieldError(field="body", message="Request body must be valid JSON.", type="json_invalid")],
        )

    try:
        await run_in_threadpool(service.ingest, payload)
    except SubmissionValidationError as exc:
        return _failure(status.HTTP_400_BAD_REQUEST, INVALID_BODY, exc.errors)
    except AuthenticationError as exc:
        return _failure(status.HTTP_401_UNAUTHORIZED, str(exc))
    except StorageError as exc:
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, str(exc))
    except Exception:  # noqa: BLE001 - every other failure maps to a generic 500
        logger.exception("Unexpected error while ingesting sensor data")
        return _failure(status.HTTP_500_INTERNAL_SERVER_ERROR, UNEXPECTED_ERROR)
    return IngestAccepted()


@router.post(
    "/sensors",
    status_code=status.HTTP_201_CREATED,
    response_model=SensorCreated,
    summary="Register a sensor and issue its API key.",
)
def create_sensor(
    request: SensorCreate,
    user_id: str = Depends(get_current_user),
    service: SensorService = Depends(get_sensor_service),
) -> SensorCreated:
    try:
        return service.create_sensor(user_id, request)
    except (ValueError, BackendError) as exc:
        raise _http_error(exc) from exc


@router.get("/sensors", response_model=List[SensorSummary], summary="List the caller's sensors.")
def list_sensors(
    user_id: str = Depends(get_current_user),
    service: SensorService = Depends(get_sensor_service),
) -> List[SensorSummary]:
    try:
        return service.list_sensors(user_id)
    except BackendError as exc:
        raise _http_error(exc) from exc


@router.get("/sensors/{sensor_id}", response_model=SensorDetail, summary="Fetch one sensor.")
def get_sensor(
    sensor_id: str,
    user_id: str = Depends(get_current_user),
    service: SensorService = Depends(get_sensor_service),
) -> SensorDetail:
    try:
        return service.get_sensor(user_id, sensor_id)
    except (KeyError, BackendError) as exc:
        raise _http_error(exc) from exc


@router.patch(
    "/sensors/{sensor_id}",
    response_model=SensorDetail,
    summary="Rename a sensor or change its visibility.",
)
def update_sensor(
    sensor_id: str,
    request: SensorUpdate,
    user_id: str = Depends(get_current_user),
    service: SensorService = Depends(get_sensor_service),
) -> SensorDetail:
    try:
        return service.update_sensor(user_id, sensor_id, request)
    except (KeyError, ValueError, BackendError) as exc:
        raise _http_error(exc) from exc


@router.get(
    "/sensors/{sensor_id}/readings",
    response_model=List[Reading],
    summary="Most recent readings of one of the caller's sensors, newest first.",
)
def list_sensor_readings(
    sensor_id: str,
    limit: Optional[int] = Query(None, ge=1),
    user_id: str = Depends(get_current_user),
    service: SensorService = Depends(get_sensor_service),
) -> List[Reading]:
    try:
        return service.recent_readings(user_id, sensor_id, limit)
    except (KeyError, BackendError) as exc:
        raise _http_error(exc) from exc


@router.get(
    "/public-sensors/{sensor_id}",
    response_model=SensorSummary,
    summary="Fetch a sensor that its owner made public.",
)
def get_public_sensor(
    sensor_id: str,
    service: SensorService = Depends(get_sensor_service),
) -> SensorSummary:
    try:
        return service.public_sensor(sensor_id)
    except (KeyError, BackendError) as exc:
        raise _http_error(exc) from exc


@router.get(
    "/public-sensors/{sensor_id}/readings",
    response_model=List[Reading],
    summary="Most recent readings of a public sensor, newest first.",
)
def list_public_readings(
    sensor_id: str,
    limit: Optional[int] = Query(None, ge=1),
    service: SensorService = Depends(get_sensor_service),
) -> List[Reading]:
    try:
        return service.public_readings(sensor_id, limit)
    except (KeyError, BackendError) as exc:
        raise _http_error(exc) from exc


@router.post(
    "/groups",
    status_code=status.HTTP_201_CREATED,
    response_model=GroupSummary,
    summary="Create a group of sensors.",
)
def create_group(
    request: GroupCreate,
    user_id: str = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
) -> GroupSummary:
    try:
        return service.create_group(user_id, request)
    except (ValueError, BackendError) as exc:
        raise _http_error(exc) from exc


@router.get("/groups", response_model=List[GroupSummary], summary="List the caller's groups.")
def list_groups(
    user_id: str = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
) -> List[GroupSummary]:
    try:
        return service.list_groups(user_id)
    except BackendError as exc:
        raise _http_error(exc) from exc


@router.get(
    "/groups/{group_id}",
    response_model=GroupDetail,
    summary="Fetch a group with its member sensors.",
)
def get_group(
    group_id: str,
    user_id: str = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
) -> GroupDetail:
    try:
        return service.get_group(user_id, group_id)
    except (KeyError, BackendError) as exc:
        raise _http_error(exc) from exc


@router.patch("/groups/{group_id}", response_model=GroupSummary, summary="Rename a group.")
def update_group(
    group_id: str,
    request: GroupUpdate,
    user_id: str = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
) -> GroupSummary:
    try:
        return service.update_group(user_id, group_id, request)
    except (KeyError, ValueError, BackendError) as exc:
        raise _http_error(exc) from exc


@router.post(
    "/groups/{group_id}/sensors",
    status_code=status.HTTP_201_CREATED,
    response_model=GroupDetail,
    summary="Add one of the caller's sensors to a group.",
)
def add_sensor_to_group(
    group_id: str,
    request: GroupMembershipCreate,
    user_id: str = Depends(get_current_user),
    service: GroupService = Depends(get_group_service),
) -> GroupDetail:
    try:
        return service.add_sensor(user_id, group_id, request.sensor_id)
    except (KeyError, BackendError) as exc:
        raise _http_error(exc) from exc


@router.get(
    "/dashboard",
    response_model=DashboardSummary,
    summary="Sensor and group counts for the caller.",
)
def dashboard(
    user_id: str = Depends(get_current_user),
    service: SensorService = Depends(get_sensor_service),
) -> DashboardSummary:
    try:
        return service.dashboard(user_id)
    except BackendError as exc:
        raise _http_error(exc) from exc


@router.get("/profile", response_model=ProfileOut, summary="Fetch the caller's profile.")
def get_profile(
    user_id: str = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
) -> ProfileOut:
    try:
        return service.get_profile(user_id)
    except (KeyError, BackendError) as exc:
        raise _http_error(exc) from exc


@router.put("/profile", response_model=ProfileOut, summary="Create or update the caller's profile.")
def update_profile(
    request: ProfileUpdate,
    user_id: str = Depends(get_current_user),
    service: ProfileService = Depends(get_profile_service),
) -> ProfileOut:
    try:
        return service.update_profile(user_id, request)
    except BackendError as exc:
        raise _http_error(exc) from exc


@router.get(
    "/health",
    summary="Health check endpoint.",
    status_code=status.HTTP_200_OK,
)
async def healthcheck() -> dict[str, str]:
    return {"status": "ok"}


@router.get(
    "/",
    summary="Root endpoint mirrors health information.",
    status_code=status.HTTP_200_OK,
)
async def root() -> dict[str, str]:
    return {"status": "ok", "detail": "See /health for service status."}
