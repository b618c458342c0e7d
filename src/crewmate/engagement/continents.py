"""Coarse city -> continent buckets for exploration bonuses and badges."""

from __future__ import annotations

CONTINENTS = (
    "North America",
    "South America",
    "Europe",
    "Asia",
    "Africa",
    "Oceania",
    "Antarctica",
)

# Crew bases and common layover cities. Unlisted cities resolve to the default.
CITY_CONTINENTS: dict[str, str] = {
    # North America
    "new york": "North America", "los angeles": "North America", "chicago": "North America",
    "dallas": "North America", "atlanta": "North America", "denver": "North America",
    "seattle": "North America", "san francisco": "North America", "miami": "North America",
    "boston": "North America", "houston": "North America", "phoenix": "North America",
    "las vegas": "North America", "orlando": "North America", "charlotte": "North America",
    "detroit": "North America", "minneapolis": "North America", "honolulu": "North America",
    "anchorage": "North America", "toronto": "North America", "vancouver": "North America",
    "montreal": "North America", "calgary": "North America", "mexico city": "North America",
    "cancun": "North America", "san juan": "North America", "panama city": "North America",
    # South America
    "sao paulo": "South America", "são paulo": "South America", "rio de janeiro": "South America",
    "buenos aires": "South America", "lima": "South America", "bogota": "South America",
    "bogotá": "South America", "santiago": "South America", "quito": "South America",
    # Europe
    "london": "Europe", "paris": "Europe", "frankfurt": "Europe", "amsterdam": "Europe",
    "madrid": "Europe", "barcelona": "Europe", "rome": "Europe", "milan": "Europe",
    "munich": "Europe", "zurich": "Europe", "dublin": "Europe", "lisbon": "Europe",
    "copenhagen": "Europe", "stockholm": "Europe", "oslo": "Europe", "helsinki": "Europe",
    "vienna": "Europe", "prague": "Europe", "athens": "Europe", "istanbul": "Europe",
    "brussels": "Europe", "reykjavik": "Europe", "edinburgh": "Europe", "manchester": "Europe",
    # Asia
    "tokyo": "Asia", "osaka": "Asia", "seoul": "Asia", "beijing": "Asia", "shanghai": "Asia",
    "hong kong": "Asia", "taipei": "Asia", "singapore": "Asia", "bangkok": "Asia",
    "manila": "Asia", "delhi": "Asia", "new delhi": "Asia", "mumbai": "Asia",
    "dubai": "Asia", "doha": "Asia", "abu dhabi": "Asia", "tel aviv": "Asia",
    "kuala lumpur": "Asia", "jakarta": "Asia", "ho chi minh city": "Asia", "hanoi": "Asia",
    # Africa
    "johannesburg": "Africa", "cape town": "Africa", "cairo": "Africa", "nairobi": "Africa",
    "lagos": "Africa", "casablanca": "Africa", "addis ababa": "Africa", "accra": "Africa",
    "marrakech": "Africa",
    # Oceania
    "sydney": "Oceania", "melbourne": "Oceania", "brisbane": "Oceania", "perth": "Oceania",
    "auckland": "Oceania", "christchurch": "Oceania", "fiji": "Oceania", "nadi": "Oceania",
    "papeete": "Oceania",
    # Antarctica
    "mcmurdo station": "Antarctica", "mcmurdo": "Antarctica",
}


def continent_for_city(city: str | None, default: str = "North America") -> str:
    """Case-insensitive lookup; an unknown or empty city resolves to ``default``."""
    if not city:
        return default
    return CITY_CONTINENTS.get(city.strip().lower(), default)
