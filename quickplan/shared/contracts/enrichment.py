"""
Enrichment endpoint contracts.

Defines the response payloads of the five enrichment endpoints. Wire keys are
camelCase; models accept both aliases and field names, and keep unknown keys
so richer backend payloads pass through to the presentation layer untouched.
"""

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class _WireModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True, extra="allow")


class AreaCandidate(_WireModel):
    """A neighbourhood or region worth staying in."""

    id: str = Field(description="Stable area identifier")
    name: str = Field(description="Display name")
    description: str = Field(default="", description="Why this area fits")
    center_lat: Optional[float] = Field(default=None, alias="centerLat")
    center_lng: Optional[float] = Field(default=None, alias="centerLng")
    best_for: List[str] = Field(default_factory=list, alias="bestFor")


class HotelCandidate(_WireModel):
    """A hotel found inside one area."""

    id: str = Field(description="Hotel identifier")
    name: str = Field(description="Hotel name")
    area_id: Optional[str] = Field(default=None, alias="areaId")
    lat: Optional[float] = None
    lng: Optional[float] = None
    rating: Optional[float] = None
    price_per_night: Optional[float] = Field(default=None, alias="pricePerNight")


class RestaurantCandidate(_WireModel):
    """A restaurant found for one cuisine."""

    id: str = Field(description="Restaurant identifier")
    name: str = Field(description="Restaurant name")
    cuisine: Optional[str] = None
    lat: Optional[float] = None
    lng: Optional[float] = None
    rating: Optional[float] = None


class ExperienceCandidate(_WireModel):
    """A bookable tour or activity for one activity type."""

    id: str = Field(description="Experience identifier")
    name: str = Field(description="Experience name")
    activity_type: Optional[str] = Field(default=None, alias="activityType")
    price: Optional[float] = None
    duration_hours: Optional[float] = Field(default=None, alias="durationHours")


class DiscoverAreasResponse(_WireModel):
    """discover-areas → {areas[], redditPostCount, llmAreasCount}"""

    areas: List[AreaCandidate] = Field(default_factory=list)
    reddit_post_count: int = Field(default=0, alias="redditPostCount")
    llm_areas_count: int = Field(default=0, alias="llmAreasCount")


class HotelsResponse(_WireModel):
    """hotels → {hotelsByArea: {areaId → hotel[]}}"""

    hotels_by_area: Dict[str, List[HotelCandidate]] = Field(
        default_factory=dict, alias="hotelsByArea"
    )


class RestaurantsResponse(_WireModel):
    """restaurants → {restaurantsByCuisine: {cuisine → restaurant[]}}"""

    restaurants_by_cuisine: Dict[str, List[RestaurantCandidate]] = Field(
        default_factory=dict, alias="restaurantsByCuisine"
    )


class ExperiencesResponse(_WireModel):
    """experiences → {experiencesByType: {activity → experience[]}}"""

    experiences_by_type: Dict[str, List[ExperienceCandidate]] = Field(
        default_factory=dict, alias="experiencesByType"
    )


class Itinerary(_WireModel):
    """A generated itinerary: ordered days plus the area stops they belong to."""

    days: List[Dict[str, Any]] = Field(default_factory=list)
    stops: List[Dict[str, Any]] = Field(default_factory=list)
    is_fallback: bool = Field(
        default=False,
        alias="isFallback",
        description="True when built locally because generation failed",
    )


class GenerateItineraryResponse(_WireModel):
    """generate-itinerary → {itinerary: {days[], stops[]}}"""

    itinerary: Optional[Itinerary] = None
