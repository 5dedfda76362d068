"""Static lookup tables for languages, difficulty tiers and turn limits."""

from collections import namedtuple

DEFAULT_LANGUAGE = 'en'

LANGUAGE_NAMES = {
    'en': 'English',
    'it': 'Italian',
    'es': 'Spanish',
    'fr': 'French',
    'de': 'German',
}

LANGUAGE_FLAGS = {
    'en': '🇬🇧',
    'it': '🇮🇹',
    'es': '🇪🇸',
    'fr': '🇫🇷',
    'de': '🇩🇪',
}

# Languages a learner can currently pick as their target language
AVAILABLE_LEARNING_LANGUAGES = ('en', 'it')

DIFFICULTY_LEVELS = ('beginner', 'intermediate', 'advanced')

STAGES_PER_LOCATION = 3

ALL_LOCATIONS = ('restaurant', 'bakery', 'school', 'bank', 'hotel', 'grocery-store')

TurnLimits = namedtuple('TurnLimits', ['min', 'max'])

TURN_LIMITS = {
    'beginner': TurnLimits(min=2, max=3),       # short, focused conversations
    'intermediate': TurnLimits(min=3, max=4),
    'advanced': TurnLimits(min=3, max=5),       # longer, more in-depth discussions
}

LanguagePair = namedtuple('LanguagePair', ['native', 'learning'])


def language_name(code: str) -> str:
    return LANGUAGE_NAMES.get(code, code)


def language_flag(code: str) -> str:
    return LANGUAGE_FLAGS.get(code, '🌐')


def normalize_language(code) -> str:
    """Map an unknown or empty locale code to the default language."""
    code = (code or '').strip().lower()
    return code if code in LANGUAGE_NAMES else DEFAULT_LANGUAGE


def language_pair(native=None, learning=None) -> LanguagePair:
    return LanguagePair(native=normalize_language(native), learning=normalize_language(learning))


def is_difficulty(value) -> bool:
    return value in DIFFICULTY_LEVELS


def require_difficulty(value) -> str:
    if not is_difficulty(value):
        raise ValueError(f'Unknown difficulty: {value!r}')
    return value


def get_turn_limits(difficulty: str) -> TurnLimits:
    return TURN_LIMITS[require_difficulty(difficulty)]


def difficulty_index(difficulty: str) -> int:
    return DIFFICULTY_LEVELS.index(require_difficulty(difficulty))


def next_difficulty(difficulty: str):
    """Return the tier after ``difficulty``, or None at the top tier."""
    idx = difficulty_index(difficulty)
    if idx < len(DIFFICULTY_LEVELS) - 1:
        return DIFFICULTY_LEVELS[idx + 1]
    return None


def difficulty_display_name(difficulty: str) -> str:
    return difficulty[:1].upper() + difficulty[1:]
