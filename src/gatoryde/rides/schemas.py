"""Request/response schemas for ride endpoints."""

from __future__ import annotations

from datetime import datetime

from pydantic import BaseModel, Field


class Location(BaseModel):
    place_name: str = Field(..., min_length=1, max_length=255)
    lat: float = Field(..., ge=-90, le=90)
    lng: float = Field(..., ge=-180, le=180)


class CreateRideRequest(BaseModel):
    origin: Location
    destination: Location
    depart_at: datetime
    seats_total: int = Field(..., ge=1, le=8)
    total_trip_cost_cents: int = Field(..., ge=0)
    notes: str | None = Field(None, max_length=1000)
    polyline: str | None = None


class RideResponse(BaseModel):
    id: str
    driver_id: str
    origin_text: str
    dest_text: str
    depart_at: datetime
    seats_total: int
    seats_available: int
    total_cost_cents: int
    status: str
    notes: str | None = None


class RideListResponse(BaseModel):
    rides: list[RideResponse]
    total: int
