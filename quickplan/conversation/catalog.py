"""
Field catalog for the Quick Plan conversation.

Each field the assistant can ask about is described once here: the phase it
belongs to, the widget used to answer it, whether it blocks phase
advancement, its prompt, and its static options. The sequencer decides
*when* a field is asked; the catalog decides *how*.
"""

from dataclasses import dataclass
from typing import Dict, List, Optional, Tuple


@dataclass(frozen=True)
class FieldSpec:
    """
    Static description of one askable field.

    Attributes:
        name: Field name used in questions and history entries
        phase: Phase in which the field is asked
        input_kind: Widget the presentation layer renders
        required: Whether the field blocks phase advancement (cannot be skipped)
        prompt: First-round prompt text
        options: Static (id, label) choices for select widgets
        allow_custom_text: Whether free text is accepted besides options
        completion_set: For repeatable fields, the PreferenceSet attribute
            holding the categories already covered
        attrs: PreferenceSet attributes the field writes (cleared together)
    """

    name: str
    phase: str
    input_kind: str
    required: bool
    prompt: str
    options: Tuple[Tuple[str, str], ...] = ()
    allow_custom_text: bool = False
    completion_set: Optional[str] = None
    attrs: Tuple[str, ...] = ()

    @property
    def repeatable(self) -> bool:
        return self.completion_set is not None

    @property
    def option_ids(self) -> List[str]:
        return [option_id for option_id, _ in self.options]


# =============================================================================
# Static options
# =============================================================================

TRIP_OCCASIONS = (
    ("vacation", "Regular Vacation"),
    ("honeymoon", "Honeymoon"),
    ("anniversary", "Anniversary"),
    ("solo_adventure", "Solo Adventure"),
    ("bachelor", "Bachelor/Bachelorette"),
    ("family_reunion", "Family Reunion"),
    ("wedding", "Attending Wedding"),
    ("workation", "Work + Travel"),
    ("wellness", "Wellness Retreat"),
)

YES_NO = (("no", "No"), ("yes", "Yes"))

ACCESSIBILITY_NEEDS = (
    ("wheelchair", "Wheelchair accessible"),
    ("ground_floor", "Ground floor room"),
    ("elevator", "Elevator required"),
    ("no_stairs", "No stairs"),
    ("grab_bars", "Grab bars in bathroom"),
    ("roll_in_shower", "Roll-in shower"),
    ("wide_doorways", "Wide doorways"),
)

ACCOMMODATION_TYPES = (
    ("hostel", "Hostel"),
    ("hotel", "Hotel"),
    ("vacation_rental", "Vacation Rental"),
    ("villa", "Private Villa"),
    ("resort", "Resort"),
    ("boutique", "Boutique Hotel"),
    ("eco_lodge", "Eco Lodge"),
)

ACTIVITIES = (
    ("beach", "Beach Days"),
    ("swimming", "Swimming"),
    ("snorkel", "Snorkeling"),
    ("wildlife", "Wildlife"),
    ("nature", "Nature"),
    ("hiking", "Hiking"),
    ("cultural", "Cultural"),
    ("food_tour", "Food Tours"),
    ("adventure", "Adventure"),
    ("spa_wellness", "Spa & Wellness"),
    ("surf", "Surfing"),
    ("dive", "Scuba Diving"),
    ("golf", "Golf"),
    ("photography", "Photography"),
    ("nightlife", "Nightlife"),
)

KIDS_ACTIVITIES = (
    ("kids_activities", "Kids Activities"),
    ("water_park", "Water Parks"),
)

PACES = (
    ("chill", "Chill"),
    ("balanced", "Balanced"),
    ("packed", "Action-packed"),
)

SUBREDDITS = (
    ("travel", "r/travel"),
    ("solotravel", "r/solotravel"),
    ("TravelHacks", "r/TravelHacks"),
    ("budgettravel", "r/budgettravel"),
    ("luxurytravel", "r/luxurytravel"),
    ("familytravel", "r/familytravel"),
    ("travelwithkids", "r/travelwithkids"),
)

HOTEL_PREFERENCES = (
    ("pool", "Pool"),
    ("beach_access", "Beach Access"),
    ("spa", "Spa"),
    ("gym", "Gym"),
    ("restaurant", "On-site Restaurant"),
    ("all_inclusive", "All-Inclusive"),
    ("boutique", "Boutique/Unique"),
    ("quiet", "Quiet/Peaceful"),
    ("family", "Family-Friendly"),
    ("adults_only", "Adults Only"),
)

DINING_MODES = (
    ("plan", "Help me find restaurants"),
    ("none", "Skip dining"),
)

DIETARY_RESTRICTIONS = (
    ("none", "No restrictions"),
    ("vegetarian", "Vegetarian"),
    ("vegan", "Vegan"),
    ("halal", "Halal"),
    ("kosher", "Kosher"),
    ("gluten_free", "Gluten-free"),
    ("nut_allergy", "Nut allergy"),
    ("seafood_allergy", "Seafood allergy"),
    ("dairy_free", "Dairy-free"),
)

CUISINES = (
    ("italian", "Italian"),
    ("steakhouse", "Steakhouse"),
    ("sushi", "Sushi/Japanese"),
    ("fine_dining", "Fine Dining"),
    ("seafood", "Seafood"),
    ("local", "Local Cuisine"),
    ("mexican", "Mexican"),
    ("asian", "Asian Fusion"),
    ("mediterranean", "Mediterranean"),
    ("casual", "Casual/Pub"),
)

DISSATISFACTION_REASONS = (
    ("wrong_areas", "Wrong areas"),
    ("wrong_vibe", "Wrong vibe"),
    ("too_packed", "Too packed"),
    ("too_chill", "Too chill"),
    ("hotel_wrong", "Hotel issues"),
    ("dining_wrong", "Dining issues"),
    ("too_touristy", "Too touristy"),
    ("missing_activity", "Missing something"),
    ("budget_exceeded", "Over budget"),
    ("other", "Something else"),
)

BUDGET_RANGE = {"min": 50, "max": 1000, "step": 25, "default_value": 175}

DEFAULT_TRIP_NIGHTS = 7


# =============================================================================
# Field specs
# =============================================================================

FIELD_SPECS: Dict[str, FieldSpec] = {
    spec.name: spec
    for spec in (
        # --- gathering ---
        FieldSpec(
            "destination", "gathering", "destination", True,
            "Hey! I'm here to help plan your trip. Where are you dreaming of going?",
            attrs=("destination",),
        ),
        FieldSpec(
            "dates", "gathering", "date_range", True,
            "When are you thinking of going? Pick your dates or tell me roughly "
            "how long you want to be there.",
            attrs=("trip_length", "start_date", "end_date"),
        ),
        FieldSpec(
            "party", "gathering", "party", True,
            "Who's coming along on this adventure?",
            attrs=("adults", "children", "child_ages"),
        ),
        FieldSpec(
            "trip_occasion", "gathering", "single_select", False,
            "What's the occasion for this trip? This helps me tailor my recommendations!",
            options=TRIP_OCCASIONS, allow_custom_text=True,
            attrs=("trip_occasion",),
        ),
        FieldSpec(
            "accessibility", "gathering", "yes_no", False,
            "Any accessibility needs?",
            options=YES_NO,
            attrs=("has_accessibility_needs",),
        ),
        FieldSpec(
            "accessibility_type", "gathering", "multi_select", False,
            "What accessibility features do you need?",
            options=ACCESSIBILITY_NEEDS, allow_custom_text=True,
            attrs=("accessibility_needs",),
        ),
        FieldSpec(
            "budget", "gathering", "budget", True,
            "What's your hotel budget per night?",
            attrs=("budget_max", "budget_min"),
        ),
        FieldSpec(
            "accommodation_type", "gathering", "single_select", False,
            "What type of accommodation are you looking for?",
            options=ACCOMMODATION_TYPES,
            attrs=("accommodation_type",),
        ),
        FieldSpec(
            "activities", "gathering", "multi_select", True,
            "What kind of activities are you excited about? Pick all that sound fun!",
            options=ACTIVITIES, allow_custom_text=True,
            attrs=("activities",),
        ),
        FieldSpec(
            "pace", "gathering", "single_select", True,
            "How do you like to travel? Action-packed or more relaxed?",
            options=PACES,
            attrs=("pace",),
        ),
        FieldSpec(
            "vibe", "gathering", "text", False,
            "Any must-dos or hard passes for this trip? Things you absolutely want "
            "or definitely don't want.",
            attrs=("vibe",),
        ),
        FieldSpec(
            "subreddits", "gathering", "multi_select", False,
            "Which Reddit communities should I search? I've picked some based on "
            "your destination and trip style.",
            options=SUBREDDITS, allow_custom_text=True,
            attrs=("subreddits",),
        ),
        FieldSpec(
            "user_notes", "gathering", "text", False,
            "Anything else I should know before I start digging?",
            attrs=("user_notes",),
        ),
        # --- enriching ---
        FieldSpec(
            "areas", "enriching", "area_select", True,
            "I found some great areas for you. Which ones look good?",
            attrs=("selected_areas",),
        ),
        FieldSpec(
            "split", "enriching", "split", True,
            "How do you want to split your time between these areas?",
            attrs=("split",),
        ),
        FieldSpec(
            "hotel_preferences", "enriching", "multi_select", True,
            "What's important to you in a hotel? Pick all that apply.",
            options=HOTEL_PREFERENCES,
            attrs=("hotel_preferences",),
        ),
        FieldSpec(
            "hotels", "enriching", "hotel_select", False,
            "I found some great hotels in {area}. Which one catches your eye?",
            completion_set="hotel_areas_done",
        ),
        FieldSpec(
            "dining", "enriching", "single_select", True,
            "How do you want to handle dining? I can help you find great "
            "restaurants, or you can wing it.",
            options=DINING_MODES,
            attrs=("dining_mode",),
        ),
        FieldSpec(
            "dietary_restrictions", "enriching", "multi_select", False,
            "Any dietary restrictions I should know about when finding restaurants?",
            options=DIETARY_RESTRICTIONS,
            attrs=("dietary_restrictions",),
        ),
        FieldSpec(
            "cuisine_preferences", "enriching", "multi_select", False,
            "What kind of food are you in the mood for? Pick all that sound good!",
            options=CUISINES, allow_custom_text=True,
            attrs=("cuisine_preferences",),
        ),
        FieldSpec(
            "restaurants", "enriching", "restaurant_select", False,
            "Here are the best {category} restaurants near your hotels. Pick the "
            "ones you'd like to try!",
            completion_set="cuisines_done",
        ),
        FieldSpec(
            "experiences", "enriching", "experience_select", False,
            "Here are some {category} experiences worth booking. Anything catch your eye?",
            completion_set="activity_types_done",
        ),
        # --- reviewing ---
        FieldSpec(
            "satisfaction", "reviewing", "satisfaction", True,
            "Here's your itinerary! How does it look?",
            options=DISSATISFACTION_REASONS,
            attrs=("satisfied", "dissatisfaction_reasons"),
        ),
    )
}

# Ask order per phase
PHASE_FIELDS: Dict[str, Tuple[str, ...]] = {
    "gathering": (
        "destination", "dates", "party", "trip_occasion", "accessibility",
        "accessibility_type", "budget", "accommodation_type", "activities",
        "pace", "vibe", "subreddits", "user_notes",
    ),
    "enriching": (
        "areas", "split", "hotel_preferences", "hotels", "dining",
        "dietary_restrictions", "cuisine_preferences", "restaurants", "experiences",
    ),
    "generating": (),
    "reviewing": ("satisfaction",),
    "satisfied": (),
}

# Selection attribute per repeatable field (category -> selection)
SELECTION_ATTRS = {
    "hotels": "selected_hotels",
    "restaurants": "selected_restaurants",
    "experiences": "selected_experiences",
}


def get_field_spec(name: str) -> FieldSpec:
    try:
        return FIELD_SPECS[name]
    except KeyError:
        raise KeyError(f"Unknown field: {name}")


def option_list(options: Tuple[Tuple[str, str], ...]) -> List[Dict[str, str]]:
    return [{"id": option_id, "label": label} for option_id, label in options]


def label_for(options: Tuple[Tuple[str, str], ...], option_id: str) -> str:
    for candidate_id, label in options:
        if candidate_id == option_id:
            return label
    return option_id.replace("_", " ")
