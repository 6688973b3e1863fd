"""Synthetic lead record generator used by simulated scrape jobs."""
from __future__ import annotations

import random
import re
from typing import List, Optional, Sequence

from .models import LeadRecord

BUSINESS_NAMES: Sequence[str] = (
    "Joe's Pizza", "Golden Dragon", "Burger Palace", "Sushi Master", "Taco Town",
    "The Italian Kitchen", "Brooklyn Bagels", "Manhattan Deli", "Empire Steakhouse",
    "Central Park Cafe", "Hudson River Grill", "Broadway Bistro", "Fifth Avenue Diner",
    "SoHo Sushi", "Chelsea Grill", "Midtown Eats", "Upper East Cafe", "West Village Wine",
    "Harlem Soul Food", "Tribeca Tavern", "Wall Street Steaks", "Queens Kitchen",
    "Bronx BBQ", "Brooklyn Brewery", "Staten Island Seafood", "Times Square Tacos",
    "Grand Central Grill", "Penn Station Pizza", "Rockefeller Ramen", "Carnegie Deli",
    "Lexington Lounge", "Park Avenue Pub", "Madison Square Munch", "Union Square Sushi",
    "Gramercy Grill", "Murray Hill Meatballs", "Kips Bay Kitchen", "NoHo Noodles",
    "Little Italy Lasagna", "Chinatown Chopsticks", "Korea Town Kitchen", "Curry Hill Cuisine",
    "Hell's Kitchen Heat", "Clinton Cafe", "Theater District Treats", "Diamond District Deli",
)

STREET_NAMES: Sequence[str] = (
    "Broadway", "5th Avenue", "Park Avenue", "Madison Avenue", "Lexington Avenue",
    "3rd Avenue", "2nd Avenue", "1st Avenue", "Amsterdam Avenue", "Columbus Avenue",
    "Central Park West", "West End Avenue", "Riverside Drive", "Hudson Street",
    "Greenwich Street", "Church Street", "Canal Street", "Houston Street",
    "Bleecker Street", "Spring Street", "Prince Street", "Mulberry Street",
)

EMAIL_PREFIXES: Sequence[str] = ("info", "contact", "hello", "support", "order")

DEFAULT_CITY = "New York"
DEFAULT_STATE = "NY"

_NON_ALNUM = re.compile(r"[^a-z0-9]")


class RecordGenerator:
    """Produces plausible-looking lead records for a location.

    The keyword is accepted for interface parity with a real search but does
    not change the output. Pass a seeded :class:`random.Random` for repeatable
    output; the default source is unseeded.
    """

    def __init__(
        self,
        rng: Optional[random.Random] = None,
        *,
        email_probability: float = 0.7,
        name_pool: Sequence[str] = BUSINESS_NAMES,
    ) -> None:
        if not name_pool:
            raise ValueError("name_pool must contain at least one name")
        self._rng = rng or random.Random()
        self._email_probability = email_probability
        self._name_pool = tuple(name_pool)

    def generate(self, index: int, location: str, keyword: str) -> LeadRecord:
        name = self.business_name(index)
        email = self._email(name)
        website = f"https://{email.split('@', 1)[1]}" if email else None
        return LeadRecord(
            id=f"lead_{self._rng.getrandbits(32):08x}_{index}",
            name=name,
            phone=self._phone(),
            email=email,
            rating=round(self._rng.uniform(3.5, 5.0), 1),
            reviews=self._rng.randint(5, 2000),
            address=self._address(location),
            website=website,
        )

    def generate_batch(self, start: int, count: int, location: str, keyword: str) -> List[LeadRecord]:
        return [self.generate(index, location, keyword) for index in range(start, start + count)]

    def business_name(self, index: int) -> str:
        if index < 0:
            raise ValueError("index must be non-negative")
        pool_size = len(self._name_pool)
        base = self._name_pool[index % pool_size]
        if index >= pool_size:
            return f"{base} #{index // pool_size + 1}"
        return base

    # ------------------------------------------------------------------
    def _phone(self) -> str:
        area = self._rng.randint(100, 999)
        prefix = self._rng.randint(100, 999)
        line = self._rng.randint(1000, 9999)
        return f"+1 ({area}) {prefix}-{line}"

    def _email(self, business_name: str) -> Optional[str]:
        if self._rng.random() >= self._email_probability:
            return None
        sanitized = _NON_ALNUM.sub("", business_name.lower())[:15] or "business"
        prefix = self._rng.choice(EMAIL_PREFIXES)
        return f"{prefix}@{sanitized}.com"

    def _address(self, location: str) -> str:
        number = self._rng.randint(100, 9099)
        street = self._rng.choice(STREET_NAMES)
        postcode = self._rng.randint(10000, 99999)
        city, state = split_location(location)
        return f"{number} {street}, {city}, {state} {postcode}"


def split_location(location: str) -> tuple[str, str]:
    """Return ``(city, state)`` from a ``"City, ST"`` style location string."""

    parts = [part.strip() for part in (location or "").split(",")]
    city = parts[0] if parts and parts[0] else DEFAULT_CITY
    state = parts[1] if len(parts) > 1 and parts[1] else DEFAULT_STATE
    return city, state


__all__ = ["BUSINESS_NAMES", "RecordGenerator", "split_location"]
