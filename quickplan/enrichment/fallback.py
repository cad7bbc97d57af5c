"""
Local default itinerary.

Built when the generate-itinerary endpoint fails (after retries) so the
conversation still reaches review. Uses whatever enrichment data exists and
substitutes defaults for anything missing: the first discovered hotel per
area when none was selected, and an even split of nights when none was given.
"""

import logging
from datetime import timedelta
from typing import Any, Dict, List, Optional

from quickplan.conversation.catalog import DEFAULT_TRIP_NIGHTS
from quickplan.conversation.schemas import DiscoveredData, PreferenceSet
from quickplan.shared.contracts.enrichment import Itinerary


logger = logging.getLogger(__name__)

ACTIVITIES_PER_DAY = {"chill": 1, "balanced": 2, "packed": 3}


def nights_per_area(prefs: PreferenceSet, area_ids: List[str]) -> Dict[str, int]:
    """The user's split, or an even split with the remainder on the last area."""
    if prefs.split:
        return dict(prefs.split)
    if not area_ids:
        return {}
    nights = prefs.trip_length or DEFAULT_TRIP_NIGHTS
    base = nights // len(area_ids)
    split = {area_id: base for area_id in area_ids}
    split[area_ids[-1]] = nights - base * (len(area_ids) - 1)
    return split


def hotels_for_itinerary(prefs: PreferenceSet, discovered: DiscoveredData) -> Dict[str, Dict[str, Any]]:
    """Selected hotel per area, else the first discovered one."""
    chosen: Dict[str, Dict[str, Any]] = {}
    for area_id, hotels in discovered.hotels.items():
        if not hotels:
            continue
        selected_id = prefs.selected_hotels.get(area_id)
        hotel = next((h for h in hotels if h.id == selected_id), hotels[0])
        chosen[area_id] = hotel.model_dump(by_alias=True)
    return chosen


def _stop_areas(prefs: PreferenceSet, discovered: DiscoveredData) -> List[str]:
    if prefs.selected_areas:
        return list(prefs.selected_areas)
    if discovered.areas:
        return [discovered.areas[0].id]
    return []


def _picked_experiences(prefs: PreferenceSet, discovered: DiscoveredData) -> List[Dict[str, Any]]:
    picked = []
    for activity_type, ids in prefs.selected_experiences.items():
        for experience in discovered.experiences.get(activity_type, []):
            if experience.id in ids:
                picked.append({"id": experience.id, "name": experience.name, "type": activity_type})
    return picked


def _picked_restaurants(prefs: PreferenceSet, discovered: DiscoveredData) -> List[Dict[str, Any]]:
    picked = []
    for cuisine, ids in prefs.selected_restaurants.items():
        for restaurant in discovered.restaurants.get(cuisine, []):
            if restaurant.id in ids:
                picked.append({"id": restaurant.id, "name": restaurant.name, "cuisine": cuisine})
    return picked


def build_fallback_itinerary(
    prefs: PreferenceSet,
    discovered: DiscoveredData,
    reason: Optional[str] = None,
) -> Itinerary:
    """
    Assemble a day-by-day plan from the current selections.

    Args:
        prefs: Current preferences
        discovered: Current enrichment results (possibly partial)
        reason: Why generation fell back, recorded on the itinerary

    Returns:
        Itinerary flagged with is_fallback=True
    """
    area_ids = _stop_areas(prefs, discovered)
    split = nights_per_area(prefs, area_ids)
    hotels = hotels_for_itinerary(prefs, discovered)

    experiences = _picked_experiences(prefs, discovered)
    restaurants = _picked_restaurants(prefs, discovered)
    per_day = ACTIVITIES_PER_DAY.get(prefs.pace or "balanced", 2)

    stops: List[Dict[str, Any]] = []
    days: List[Dict[str, Any]] = []
    day_number = 0

    for area_id in area_ids:
        area = discovered.area(area_id)
        area_name = area.name if area else area_id
        nights = split.get(area_id, 0)
        stops.append(
            {
                "area_id": area_id,
                "area_name": area_name,
                "nights": nights,
                "hotel": hotels.get(area_id),
            }
        )
        for _ in range(nights):
            day_number += 1
            start = (day_number - 1) * per_day
            day: Dict[str, Any] = {
                "day": day_number,
                "area_id": area_id,
                "area_name": area_name,
                "activities": experiences[start:start + per_day],
                "meals": restaurants[day_number - 1:day_number],
            }
            if prefs.start_date:
                day["date"] = (prefs.start_date + timedelta(days=day_number - 1)).isoformat()
            days.append(day)

    logger.info(
        f"[component=fallback] Built fallback itinerary | stops={len(stops)}, "
        f"days={len(days)}, reason={reason}"
    )

    return Itinerary(days=days, stops=stops, is_fallback=True, fallback_reason=reason)
