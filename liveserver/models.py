"""Pydantic models for API"""
from pydantic import BaseModel


class HealthStatus(BaseModel):
    status: str = "ok"
    root: str
    entry: str
    clients: int
    watching: bool
