"""Stable, human-readable identifiers for anomalies and cache keys.

IDs are a pure function of the investigation context, so the same anomaly
gets the same ID across reloads and can be addressed from page state. They
are a convenience, not a uniqueness guarantee: the 32-bit hash can collide.
"""

from datetime import datetime, timedelta

from investigation.models.anomaly import AnomalyCategory, ensure_utc

ADJECTIVES = (
    "alpine", "azure", "blazing", "bold", "brilliant", "chrome", "classic",
    "coastal", "cosmic", "crimson", "crystal", "daring", "dazzling", "dusty",
    "electric", "elegant", "ember", "emerald", "fierce", "fiery", "flash",
    "forest", "frozen", "gentle", "gilded", "gleaming", "golden", "granite",
    "hidden", "highland", "icy", "ivory", "jade", "jet", "lunar", "marble",
    "midnight", "misty", "moonlit", "neon", "noble", "obsidian", "ocean",
    "onyx", "opulent", "pearl", "phantom", "polar", "pristine", "radiant",
    "raven", "royal", "ruby", "rustic", "sable", "sapphire", "scarlet",
    "shadow", "silent", "silver", "sleek", "smoky", "solar", "sonic",
    "speedy", "starlit", "steel", "storm", "sunset", "swift", "teal",
    "thunder", "titan", "turbo", "twilight", "velvet", "vintage", "violet",
    "wild", "winter", "zephyr",
)

# Color palettes encode severity in the ID itself
COLORS_RED = (
    "burgundy", "cardinal", "carmine", "cerise", "cherry", "claret", "coral",
    "cranberry", "crimson", "garnet", "magenta", "maroon", "raspberry", "rose",
    "ruby", "russet", "rust", "scarlet", "vermillion", "wine",
)

COLORS_ORANGE = (
    "amber", "apricot", "bronze", "burnt", "butterscotch", "caramel", "carrot",
    "cinnamon", "copper", "flame", "ginger", "gold", "honey", "marigold",
    "melon", "ochre", "orange", "papaya", "peach", "pumpkin", "saffron",
    "sand", "sienna", "tan", "tangerine", "tawny", "topaz", "yellow",
)

COLORS_COOL = (
    "aqua", "azure", "blue", "cerulean", "chartreuse", "cobalt", "cyan",
    "emerald", "forest", "green", "hunter", "indigo", "jade", "lagoon",
    "lime", "mint", "navy", "olive", "pacific", "pine", "sage", "seafoam",
    "spruce", "teal", "turquoise", "verdant", "viridian",
)

MODELS = (
    "accord", "alpine", "beetle", "boxster", "bronco", "camaro", "camry",
    "cayenne", "challenger", "charger", "civic", "cobra", "continental",
    "corolla", "corvette", "defender", "elantra", "escort", "explorer",
    "firebird", "focus", "frontier", "fury", "galaxie", "giulia", "gto",
    "impala", "jetta", "lancer", "landcruiser", "maverick", "miata", "monte",
    "mustang", "navigator", "nova", "outback", "panda", "pantera", "passat",
    "pathfinder", "pinto", "porsche", "prelude", "prius", "quattro", "rabbit",
    "ranger", "raptor", "roadster", "safari", "scirocco", "senna", "shelby",
    "sierra", "skyline", "solara", "sonata", "spark", "spider", "stingray",
    "supra", "tacoma", "tempest", "tercel", "thunderbird", "tiguan", "torino",
    "tundra", "vantage", "viper", "wrangler", "zephyr",
)

_BASE36_DIGITS = "0123456789abcdefghijklmnopqrstuvwxyz"


def simple_hash(value: str) -> int:
    """32-bit rolling hash (``h * 31 + code``), returned as an absolute value.

    Arithmetic wraps to a signed 32-bit integer after every step.
    """
    h = 0
    for char in value:
        h = ((h << 5) - h + ord(char)) & 0xFFFFFFFF
    if h >= 0x80000000:
        h -= 0x100000000
    return abs(h)


def to_base36(value: int) -> str:
    """Render a non-negative integer in base 36."""
    if value == 0:
        return "0"
    digits = []
    while value:
        value, remainder = divmod(value, 36)
        digits.append(_BASE36_DIGITS[remainder])
    return "".join(reversed(digits))


def round_to_minute(value: datetime) -> str:
    """Round to the nearest minute (30s rounds up) as a UTC ISO string.

    The format matches ``2025-01-01T10:05:00.000Z``; sub-second parts are
    dropped before rounding.
    """
    value = ensure_utc(value)
    rounded = value.replace(second=0, microsecond=0)
    if value.second >= 30:
        rounded += timedelta(minutes=1)
    return rounded.strftime("%Y-%m-%dT%H:%M:%S.000Z")


def _color_palette(category: AnomalyCategory | str) -> tuple[str, ...]:
    category = AnomalyCategory(category)
    if category == AnomalyCategory.RED:
        return COLORS_RED
    if category == AnomalyCategory.YELLOW:
        return COLORS_ORANGE
    return COLORS_COOL


def generate_anomaly_id(
    base_time_range: str,
    base_filters: str,
    anomaly_start: datetime,
    anomaly_end: datetime,
    category: AnomalyCategory | str = AnomalyCategory.GREEN,
) -> str:
    """Generate a stable ID such as ``opulent-crimson-miata`` for an anomaly.

    Args:
        base_time_range: The resolved time filter of the investigation
        base_filters: The active facet filter predicate
        anomaly_start: Anomaly start, rounded to the minute before hashing
        anomaly_end: Anomaly end, rounded to the minute before hashing
        category: Anomaly category, selects the color palette

    Returns:
        Three dash-joined words: adjective, color, model
    """
    input_str = "|".join(
        [
            base_time_range,
            base_filters,
            round_to_minute(anomaly_start),
            round_to_minute(anomaly_end),
        ]
    )
    h = simple_hash(input_str)
    colors = _color_palette(category)

    adjective = ADJECTIVES[h % len(ADJECTIVES)]
    color = colors[(h // len(ADJECTIVES)) % len(colors)]
    model = MODELS[(h // (len(ADJECTIVES) * len(colors))) % len(MODELS)]
    return f"{adjective}-{color}-{model}"


def generate_cache_key(time_filter: str, host_filter: str) -> str:
    """Durable cache key, derived from the base dataset (time and host) only."""
    return to_base36(simple_hash(f"{time_filter}|{host_filter}"))
