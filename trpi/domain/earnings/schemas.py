"""Earnings schemas - Pydantic models for validation"""

from pydantic import BaseModel


class CalculateEarningsRequest(BaseModel):
    session_id: int
