"""
Trip snapshot contract.

Defines the document written to host-owned storage when a completed plan is
finalized. This is the only state that outlives the process.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, Field


class TripSnapshotV1(BaseModel):
    """
    Contract for the finalized trip (v1).

    Carries the user's selections, the itinerary they approved, and the
    conversation transcript that produced it.
    """

    trip_id: str = Field(description="Identifier assigned at finalization")
    session_id: str = Field(description="Conversation session that produced the trip")
    created_at: str = Field(description="ISO-8601 UTC timestamp")
    destination: Optional[str] = Field(default=None, description="Canonical destination name")
    start_date: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    end_date: Optional[str] = Field(default=None, description="YYYY-MM-DD")
    preferences: Dict[str, Any] = Field(
        default_factory=dict, description="Full preference set, JSON-ready"
    )
    itinerary: Optional[Dict[str, Any]] = Field(
        default=None, description="Approved itinerary"
    )
    confidence: Dict[str, str] = Field(
        default_factory=dict, description="Confidence markers at completion"
    )
    transcript: List[Dict[str, Any]] = Field(
        default_factory=list, description="Conversation transcript"
    )
    schema_version: str = Field(default="1.0", description="Snapshot schema version")
