"""Pydantic models for the units search API."""

from pydantic import BaseModel


class Center(BaseModel):
    lat: float
    lng: float


class UnitInfo(BaseModel):
    unit_id: str
    name: str
    address: str
    city: str
    phone: str
    lat: float
    lng: float
    distance_m: float | None = None


class NearbyUnitsResponse(BaseModel):
    center: Center
    radius_m: float
    page: int | None = None
    per_page: int | None = None
    count: int
    units: list[UnitInfo]
    formatted_address: str | None = None


class GeocodeResponse(BaseModel):
    lat: float
    lng: float
    formatted_address: str
