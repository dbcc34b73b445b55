"""
Keyword tables for rule-based genre / language / culture inference.

Order matters: genres and cultures are reported in table order, and the first
language whose pattern matches wins.
"""

import re
from typing import Dict, List, Pattern

DEFAULT_GENRE = "pop"
UNKNOWN_LANGUAGE = "unknown"
INSTRUMENTAL_LANGUAGE = "instrumental"

GENRE_KEYWORDS: Dict[str, List[str]] = {
    "kompa": ["kompa", "konpa", "compas"],
    "zouk": ["zouk", "zouklove", "zouk love"],
    "reggaeton": ["reggaeton", "reggeaton", "regueton"],
    "afrobeats": ["afrobeats", "afrobeat", "afro"],
    "dancehall": ["dancehall", "dance hall"],
    "hip-hop": ["hip hop", "hip-hop", "hiphop", "rap"],
    "r&b": ["r&b", "rnb", "r & b", "soul"],
    "pop": ["pop"],
    "latin": ["latin", "latino", "bachata", "salsa", "merengue"],
    "electronic": ["edm", "electronic", "house", "techno"],
    "rock": ["rock", "alternative"],
    "jazz": ["jazz"],
    "classical": ["classical", "orchestra"],
    "country": ["country"],
    "gospel": ["gospel", "worship", "christian"],
    "amapiano": ["amapiano", "piano"],
}

LANGUAGE_PATTERNS: Dict[str, List[Pattern]] = {
    "ht": [re.compile(p, re.IGNORECASE) for p in ("creole", "kreyol", "ayiti", "haiti")],
    "fr": [re.compile(p, re.IGNORECASE) for p in ("french", "français", "francais")],
    "es": [re.compile(p, re.IGNORECASE) for p in ("spanish", "español", "espanol", "latino")],
    "pt": [re.compile(p, re.IGNORECASE) for p in ("portuguese", "português", "brasil")],
    "en": [re.compile("english", re.IGNORECASE)],
}

CULTURE_KEYWORDS: Dict[str, List[str]] = {
    "Caribbean": ["caribbean", "jamaica", "haiti", "trinidad", "barbados", "bahamas"],
    "African": ["african", "nigeria", "ghana", "south africa", "kenya", "afro"],
    "Latin": ["latin", "latino", "mexico", "puerto rico", "colombia", "brazil"],
    "American": ["american", "usa", "us"],
    "European": ["european", "uk", "british", "french", "spanish"],
    "Asian": ["asian", "kpop", "jpop", "korean", "japanese", "chinese"],
}

# Confidence contributed by each matched category, capped at 1.0 overall.
GENRE_CONFIDENCE = 0.2
LANGUAGE_CONFIDENCE = 0.3
CULTURE_CONFIDENCE = 0.1
