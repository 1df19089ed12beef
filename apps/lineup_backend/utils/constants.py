"""
Constants used across the lineup system.
"""

# Label written for a player who holds no position in a slot
NOT_PLAYING_LABEL = "OUT"

# Labels exempt from per-slot exclusivity and from playing-time stats
EXCLUDED_LABELS = frozenset({"OUT", "BENCH"})

MIN_GAME_INNINGS = 1
MAX_GAME_INNINGS = 20

# Default position catalogue: (name, category, is_editable)
DEFAULT_POSITIONS = [
    ("P", "PITCHER", False),
    ("C", "CATCHER", False),
    ("1B", "INF", False),
    ("2B", "INF", False),
    ("3B", "INF", False),
    ("SS", "INF", False),
    ("LF", "OF", False),
    ("CF", "OF", False),
    ("RF", "OF", False),
    ("BF", "OF", True),
    ("SF", "OF", True),
    ("OUT", "SPECIAL", False),
    ("BENCH", "SPECIAL", True),
    ("DH", "SPECIAL", True),
    ("EH", "SPECIAL", True),
]


def normalize_label(label) -> str:
    """Case-fold a slot label for comparisons ("ss " -> "SS")."""
    return str(label).strip().upper()


def is_excluded_label(label) -> bool:
    """True for labels meaning the player is not actively playing."""
    return normalize_label(label) in EXCLUDED_LABELS
