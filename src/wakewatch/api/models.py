"""Pydantic request/response models for the wakewatch API."""

from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class WifiStatusResponse(BaseModel):
    state: str
    address: str
    broadcast_address: str
    subnet_mask: str


class DeviceStatusResponse(BaseModel):
    state: str
    address: str
    mac_address: str


class MonitorStatusResponse(BaseModel):
    host: str
    state: str
    attempts_made: int
    max_attempts: int
    backoff_seconds: float


class StatusResponse(BaseModel):
    wifi: WifiStatusResponse
    device: DeviceStatusResponse
    monitor: Optional[MonitorStatusResponse]
    foreground: bool


class WakeResponse(BaseModel):
    result: str
    host: str


class CheckResponse(BaseModel):
    scheduled: bool
    device_state: str


class PreferencesUpdate(BaseModel):
    network_device_ip_address: Optional[str] = None
    network_device_mac_address: Optional[str] = None
    network_subnet_mask: Optional[str] = None


class ForegroundRequest(BaseModel):
    foreground: bool


class EventResponse(BaseModel):
    kind: str
    host: str
    at: datetime
    result: Optional[str] = None
    is_available: Optional[bool] = None
    attempts: Optional[int] = None
