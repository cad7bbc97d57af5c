"""Contracts for enrichment endpoints and the finalized trip snapshot."""

from quickplan.shared.contracts.enrichment import (
    AreaCandidate,
    HotelCandidate,
    RestaurantCandidate,
    ExperienceCandidate,
    DiscoverAreasResponse,
    HotelsResponse,
    RestaurantsResponse,
    ExperiencesResponse,
    Itinerary,
    GenerateItineraryResponse,
)
from quickplan.shared.contracts.snapshot import TripSnapshotV1

__all__ = [
    "AreaCandidate",
    "HotelCandidate",
    "RestaurantCandidate",
    "ExperienceCandidate",
    "DiscoverAreasResponse",
    "HotelsResponse",
    "RestaurantsResponse",
    "ExperiencesResponse",
    "Itinerary",
    "GenerateItineraryResponse",
    "TripSnapshotV1",
]
