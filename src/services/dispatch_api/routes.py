# src/services/dispatch_api/routes.py
"""
Маршруты HTTP API диспетчеризации.
Ошибки координатора преобразуются в ответы обработчиками из app.py.
"""

from __future__ import annotations

import json
from typing import Any

from fastapi import APIRouter, Depends, HTTPException, Query, Request, status
from pydantic import ValidationError

from src.common.constants import EntityCategory
from src.config import settings
from src.core.locations import EntityCoordinator
from src.core.locations.models import make_position
from src.services.dispatch_api.dependencies import get_coordinator
from src.services.dispatch_api.schemas import (
    DriverLocationRequest,
    EntityIdRequest,
    EntityLocationRequest,
    MessageResponse,
    NearestDriverResponse,
    PointRequest,
    StatsResponse,
    StoreLocationRequest,
    TypedLocationRequest,
)

router = APIRouter()


# === DRIVERS ===

@router.post("/drivers", response_model=MessageResponse, tags=["Drivers"])
@router.post("/drivers/update", response_model=MessageResponse, tags=["Drivers"])
@router.post("/updateDriverLocation", response_model=MessageResponse, tags=["Drivers"])
async def add_or_update_driver(
    request: DriverLocationRequest,
    coordinator: EntityCoordinator = Depends(get_coordinator),
):
    await coordinator.add_or_update_driver(
        request.id,
        make_position(request.lat, request.lng),
        attributes=request.merged_attributes(),
    )
    return MessageResponse(message="Driver added/updated")


@router.delete("/drivers", response_model=MessageResponse, tags=["Drivers"])
async def delete_driver(
    request: EntityIdRequest,
    coordinator: EntityCoordinator = Depends(get_coordinator),
):
    await coordinator.delete_driver(request.id)
    return MessageResponse(message="Driver deleted")


@router.get("/nearest-driver", response_model=NearestDriverResponse, tags=["Drivers"])
async def find_nearest_driver(
    http_request: Request,
    lat: float | None = Query(default=None, ge=-90, le=90),
    lng: float | None = Query(default=None, ge=-180, le=180),
    radius_m: float | None = Query(default=None, gt=0),
    coordinator: EntityCoordinator = Depends(get_coordinator),
):
    """
    Ближайший водитель к точке.

    Точка берётся из query (?lat=&lng=), иначе из JSON-тела {lat, lng}.
    """
    if lat is None or lng is None:
        point = await _point_from_body(http_request)
        lat, lng = point.lat, point.lng

    match = await coordinator.find_nearest_driver(make_position(lat, lng), radius_m=radius_m)
    if match is None:
        raise HTTPException(status_code=status.HTTP_404_NOT_FOUND, detail="No drivers found")

    return NearestDriverResponse(
        driver_id=match.id,
        distance_m=round(match.distance_m, 2),
        lat=match.position.lat,
        lng=match.position.lng,
    )


# === DELIVERIES ===

@router.post("/deliveries", response_model=MessageResponse, tags=["Deliveries"])
async def add_delivery(
    request: EntityLocationRequest,
    coordinator: EntityCoordinator = Depends(get_coordinator),
):
    await coordinator.add_delivery(request.id, make_position(request.lat, request.lng))
    return MessageResponse(message="Delivery added")


@router.delete("/deliveries", response_model=MessageResponse, tags=["Deliveries"])
async def delete_delivery(
    request: EntityIdRequest,
    coordinator: EntityCoordinator = Depends(get_coordinator),
):
    await coordinator.delete_delivery(request.id)
    return MessageResponse(message="Delivery deleted")


# === STORES ===

@router.post("/stores", response_model=MessageResponse, tags=["Stores"])
async def add_store(
    request: StoreLocationRequest | None = None,
    coordinator: EntityCoordinator = Depends(get_coordinator),
):
    """Магазин из тела запроса; без координат создаётся демо-магазин."""
    demo = settings.demo
    request = request or StoreLocationRequest()
    if request.lat is None or request.lng is None:
        lat, lng = demo.DEMO_STORE_LAT, demo.DEMO_STORE_LNG
    else:
        lat, lng = request.lat, request.lng

    await coordinator.add_store(request.id or demo.DEMO_STORE_ID, make_position(lat, lng))
    return MessageResponse(message="Store location added")


@router.delete("/stores", response_model=MessageResponse, tags=["Stores"])
async def delete_store(
    request: EntityIdRequest,
    coordinator: EntityCoordinator = Depends(get_coordinator),
):
    await coordinator.delete_store(request.id)
    return MessageResponse(message="Store deleted")


# === LOCATIONS ===

@router.post("/addLocation", response_model=MessageResponse, tags=["Locations"])
async def add_location(
    request: TypedLocationRequest,
    coordinator: EntityCoordinator = Depends(get_coordinator),
):
    await coordinator.add_location(request.type, request.id, make_position(request.lat, request.lng))
    return MessageResponse(message=f"{request.type.value.capitalize()} location added")


@router.get("/locations", tags=["Locations"])
async def list_all_locations(
    coordinator: EntityCoordinator = Depends(get_coordinator),
) -> list[dict[str, Any]]:
    return [document.to_public() async for document in coordinator.list_all_locations()]


@router.get("/locations/{entity_id}", tags=["Locations"])
async def get_location(
    entity_id: str,
    coordinator: EntityCoordinator = Depends(get_coordinator),
) -> dict[str, Any]:
    document = await coordinator.get_location(entity_id)
    return document.to_public()


@router.get("/stats", response_model=StatsResponse, tags=["Stats"])
async def get_stats(
    coordinator: EntityCoordinator = Depends(get_coordinator),
):
    counts = await coordinator.stats()
    return StatsResponse(**{category.index_key: counts[category.index_key] for category in EntityCategory})


async def _point_from_body(http_request: Request) -> PointRequest:
    """Читает {lat, lng} из тела GET-запроса."""
    raw = await http_request.body()
    if not raw:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail="lat and lng are required")
    try:
        return PointRequest.model_validate(json.loads(raw))
    except (json.JSONDecodeError, ValidationError) as e:
        raise HTTPException(status_code=status.HTTP_400_BAD_REQUEST, detail=str(e)) from e
