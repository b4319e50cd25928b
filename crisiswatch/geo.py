"""Country reference data used by adapters and displacement estimation."""

from dataclasses import dataclass
from typing import Optional


@dataclass(frozen=True)
class CountryInfo:
    name: str
    iso3: str
    lat: float
    lon: float
    destinations: tuple[str, ...]


_COUNTRIES: tuple[CountryInfo, ...] = (
    CountryInfo("Sudan", "SDN", 15.5007, 32.5599, ("Chad", "Egypt", "Ethiopia", "South Sudan")),
    CountryInfo("Myanmar", "MMR", 21.9162, 95.9560, ("Bangladesh", "Thailand", "India", "Malaysia")),
    CountryInfo("Syria", "SYR", 34.8021, 38.9968, ("Turkey", "Lebanon", "Jordan", "Germany")),
    CountryInfo("Yemen", "YEM", 15.5527, 48.5164, ("Saudi Arabia", "Oman", "Djibouti", "Somalia")),
    CountryInfo("Afghanistan", "AFG", 33.9391, 67.7100, ("Pakistan", "Iran", "Turkey", "Tajikistan")),
    CountryInfo("Bangladesh", "BGD", 23.6850, 90.3563, ("India", "Myanmar", "Internal displacement")),
    CountryInfo("Ethiopia", "ETH", 9.1450, 40.4897, ("Sudan", "Kenya", "Djibouti", "Somalia")),
    CountryInfo("Chad", "TCD", 15.4542, 18.7322, ("Cameroon", "Central African Republic", "Niger")),
    CountryInfo("Iraq", "IRQ", 33.2232, 43.6793, ("Turkey", "Iran", "Jordan", "Syria")),
    CountryInfo("Somalia", "SOM", 5.1521, 46.1996, ("Kenya", "Ethiopia", "Yemen", "Uganda")),
    CountryInfo("South Sudan", "SSD", 6.8770, 31.3070, ("Uganda", "Sudan", "Ethiopia", "Kenya")),
    CountryInfo("DR Congo", "COD", -4.0383, 21.7587, ("Uganda", "Rwanda", "Burundi", "Tanzania")),
    CountryInfo("Ukraine", "UKR", 48.3794, 31.1656, ("Poland", "Germany", "Czech Republic", "Moldova")),
    CountryInfo("Haiti", "HTI", 18.9712, -72.2852, ("Dominican Republic", "United States", "Chile")),
)

_BY_NAME = {c.name.casefold(): c for c in _COUNTRIES}
_BY_ISO3 = {c.iso3.casefold(): c for c in _COUNTRIES}

DEFAULT_DESTINATIONS: tuple[str, ...] = ("Neighboring countries", "Regional destinations")


def resolve_country(name: str) -> Optional[CountryInfo]:
    """Look up a country by name or ISO3 code (case-insensitive)."""
    key = (name or "").strip().casefold()
    return _BY_NAME.get(key) or _BY_ISO3.get(key)


def canonical_name(name: str) -> str:
    """Canonical spelling for known countries, trimmed input otherwise."""
    info = resolve_country(name)
    return info.name if info else (name or "").strip()


def likely_destinations(name: str) -> tuple[str, ...]:
    info = resolve_country(name)
    return info.destinations if info else DEFAULT_DESTINATIONS


def known_countries() -> list[str]:
    return [c.name for c in _COUNTRIES]
