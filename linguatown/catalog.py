"""Scenario text and practice topics for every location and difficulty tier."""

import random
from collections import namedtuple

from linguatown.characters import location_slug
from linguatown.registry import require_difficulty

Topic = namedtuple('Topic', ['id', 'name', 'description'])

SCENARIOS = {
    'restaurant': {
        'beginner': (
            "SCENARIO: Simple ordering\n"
            "- Help them order a meal (drink, main course, maybe dessert)\n"
            "- Ask simple questions: \"What would you like?\" \"Anything to drink?\"\n"
            "- Keep it to basic menu items or simple choice questions"
        ),
        'intermediate': (
            "SCENARIO: Special occasion dinner\n"
            "- They're planning a birthday dinner or anniversary meal\n"
            "- Ask about the occasion, dietary restrictions, preferences\n"
            "- Discuss recommendations, specials, wine pairings\n"
            "- Encourage them to describe what they're celebrating and who's coming"
        ),
        'advanced': (
            "SCENARIO: Food critic or culinary discussion\n"
            "- Treat them as a food enthusiast\n"
            "- Discuss ingredient sourcing, chef's inspiration\n"
            "- Ask about their own cooking experiences and favorite cuisines\n"
            "- Encourage them to share opinions and detailed preferences"
        ),
    },
    'bakery': {
        'beginner': (
            "SCENARIO: Simple purchase\n"
            "- Help them choose what to buy including how many of various items.\n"
            "- Create realistic scenarios such as an item being out of stock or needing to wait for it to be done baking\n"
            "- Ask basic questions: \"What can I get you?\" \"For here or to go?\"\n"
            "- Suggest popular items, handle straightforward transactions"
        ),
        'intermediate': (
            "SCENARIO: Party catering order\n"
            "- They need baked goods for an event (birthday, office party, gathering)\n"
            "- Ask about the occasion, number of guests, preferences\n"
            "- Discuss customization options (flavors, decorations, dietary needs)\n"
            "- Encourage them to describe the party and what would make it special"
        ),
        'advanced': (
            "SCENARIO: Baking class or technique discussion\n"
            "- They're interested in learning to bake or discussing techniques\n"
            "- Talk about recipes, methods, common mistakes, pro tips\n"
            "- Ask about their baking experience and what they want to learn\n"
            "- Encourage them to share their baking attempts and questions"
        ),
    },
    'school': {
        'beginner': (
            "SCENARIO: New student orientation\n"
            "- Help them find their classroom or understand the schedule\n"
            "- Ask simple questions about what class they're looking for\n"
            "- Give basic directions and information"
        ),
        'intermediate': (
            "SCENARIO: Parent-teacher meeting or course selection\n"
            "- Discuss academic progress, extracurriculars, or choosing classes\n"
            "- Ask about interests, goals, concerns\n"
            "- Encourage them to describe their child's interests or their own academic goals"
        ),
        'advanced': (
            "SCENARIO: Discuss how much technology should be used in the classroom\n"
            "- Discuss teaching methods, learning styles, educational trends\n"
            "- Ask about their experiences with different approaches to learning\n"
            "- Encourage them to share their views on education and what works for them"
        ),
    },
    'bank': {
        'beginner': (
            "SCENARIO: Basic banking transaction\n"
            "- Help with simple tasks: checking balance, making a deposit, getting cash\n"
            "- Ask straightforward questions about what they need\n"
            "- Keep it to routine banking services"
        ),
        'intermediate': (
            "SCENARIO: Opening an account or loan inquiry\n"
            "- Discuss different account types, savings goals, or loan options\n"
            "- Ask about their financial goals and situation\n"
            "- Encourage them to describe what they're saving for or planning"
        ),
        'advanced': (
            "SCENARIO: Investment or financial planning discussion\n"
            "- Discuss investment strategies, retirement planning, financial goals\n"
            "- Ask about their risk tolerance, timeline, existing portfolio\n"
            "- Encourage them to share their financial philosophy and long-term plans"
        ),
    },
    'hotel': {
        'beginner': (
            "SCENARIO: Simple check-in\n"
            "- Help them check into their room\n"
            "- Ask basic questions: name, reservation, room preference\n"
            "- Provide key information about the stay"
        ),
        'intermediate': (
            "SCENARIO: Planning a special trip\n"
            "- They're booking for a honeymoon, anniversary, or family vacation\n"
            "- Ask about the occasion, preferences, special requests\n"
            "- Discuss amenities, local attractions, dining options\n"
            "- Encourage them to describe their ideal trip and what they want to experience"
        ),
        'advanced': (
            "SCENARIO: Travel expert\n"
            "- Treat them as an experienced traveler\n"
            "- Discuss travel tips, hidden gems, cultural experiences\n"
            "- Ask about their most memorable trips and travel philosophy\n"
            "- Encourage them to share stories and recommendations"
        ),
    },
    'grocery-store': {
        'beginner': (
            "SCENARIO: Finding items\n"
            "- Help them locate products in the store\n"
            "- Ask simple questions about what they're looking for\n"
            "- Give basic directions and suggestions"
        ),
        'intermediate': (
            "SCENARIO: Meal planning assistance\n"
            "- They're shopping for a dinner party or special meal\n"
            "- Ask about the menu, number of guests, dietary restrictions\n"
            "- Suggest ingredients, quantities, alternatives\n"
            "- Encourage them to describe what they're cooking and for whom"
        ),
        'advanced': (
            "SCENARIO: Culinary or nutrition discussion\n"
            "- Discuss ingredients, seasonal produce, cooking techniques\n"
            "- Ask about their cooking style and dietary philosophy\n"
            "- Encourage them to share recipes, nutrition goals, food experiences"
        ),
    },
}

# Used when the location has no scenario of its own
GENERIC_SCENARIOS = {
    'beginner': "SCENARIO: Simple transaction or request",
    'intermediate': "SCENARIO: More detailed planning or discussion",
    'advanced': "SCENARIO: Expert-level discussion sharing experiences",
}

TOPICS = {
    'bakery': {
        'beginner': [
            Topic('buying-bread', 'Buying Bread', 'Purchase bread from the bakery'),
            Topic('asking-price', 'Asking for Price', 'Inquire about the cost of items'),
            Topic('ordering-coffee-pastry', 'Ordering Coffee and Pastry', 'Order a coffee and pastry combination'),
            Topic('picking-up-order', 'Picking Up an Order', 'Collect a pre-placed order'),
            Topic('out-of-stock-substitution', 'Out-of-Stock Substitution', 'Find an alternative when an item is unavailable'),
        ],
        'intermediate': [],
        'advanced': [],
    },
    'bank': {
        'beginner': [
            Topic('opening-account', 'Opening an Account', 'Start a new bank account'),
            Topic('withdrawing-money', 'Withdrawing Money', 'Take money out from your account'),
            Topic('asking-hours', 'Asking About Hours', 'Find out when the bank is open'),
            Topic('help-with-card', 'Getting Help with a Card', 'Get assistance with your bank card'),
            Topic('exchanging-money', 'Exchanging Money', 'Exchange currency at the bank'),
        ],
        'intermediate': [],
        'advanced': [],
    },
    'hotel': {
        'beginner': [
            Topic('checking-in', 'Checking In', 'Register and get your room key'),
            Topic('asking-wifi', 'Asking for Wi-Fi', 'Get the Wi-Fi password'),
            Topic('asking-towels', 'Asking for Towels', 'Request extra towels for your room'),
            Topic('breakfast-hours', 'Asking About Breakfast Hours', 'Find out when breakfast is served'),
            Topic('checking-out', 'Checking Out', 'Complete your stay and pay'),
        ],
        'intermediate': [],
        'advanced': [],
    },
    'school': {
        'beginner': [
            Topic('where-class', 'Asking Where a Class Is', 'Find the location of your classroom'),
            Topic('meeting-teacher', 'Meeting a Teacher', 'Introduce yourself to a new teacher'),
            Topic('asking-help', 'Asking for Help', 'Request assistance with something'),
            Topic('borrowing-pen', 'Borrowing a Pen', 'Ask to borrow a writing utensil'),
            Topic('class-time', 'Asking About Class Time', 'Find out when a class starts or ends'),
        ],
        'intermediate': [],
        'advanced': [],
    },
    'restaurant': {
        'beginner': [
            Topic('ordering-food', 'Ordering Food', 'Place an order for a meal'),
            Topic('asking-check', 'Asking for the Check', 'Request the bill'),
            Topic('asking-about-dish', 'Asking About a Dish', 'Get information about a menu item'),
            Topic('more-water', 'Asking for More Water', 'Request a water refill'),
            Topic('simple-reservation', 'Making a Simple Reservation', 'Book a table for later'),
        ],
        'intermediate': [],
        'advanced': [],
    },
    'grocery-store': {
        'beginner': [
            Topic('finding-item', 'Finding an Item', 'Locate a product in the store'),
            Topic('price-check', 'Price Check', 'Ask about the cost of an item'),
            Topic('paying-register', 'Paying at the Register', 'Complete your purchase'),
            Topic('item-availability', 'Asking About Item Availability', 'Check if something is in stock'),
            Topic('returning-item', 'Returning an Item', 'Return a product you purchased'),
        ],
        'intermediate': [],
        'advanced': [],
    },
}


def get_scenario_prompt(location: str, difficulty: str) -> str:
    require_difficulty(difficulty)
    scenarios = SCENARIOS.get(location_slug(location))
    if scenarios:
        return scenarios[difficulty]
    return GENERIC_SCENARIOS[difficulty]


def get_topics(location: str, difficulty: str) -> list:
    require_difficulty(difficulty)
    return list(TOPICS.get(location_slug(location), {}).get(difficulty, []))


def topic_ids(location: str, difficulty: str) -> list:
    return [t.id for t in get_topics(location, difficulty)]


def get_topic(location: str, difficulty: str, topic_id: str):
    for topic in get_topics(location, difficulty):
        if topic.id == topic_id:
            return topic
    return None


def topic_from_payload(payload):
    """Build a Topic from a request dict like {'id', 'name', 'description'}; None if unusable."""
    if not isinstance(payload, dict):
        return None
    name = (payload.get('name') or '').strip()
    if not name:
        return None
    return Topic(
        id=(payload.get('id') or '').strip(),
        name=name,
        description=(payload.get('description') or '').strip(),
    )


def select_topic(location: str, difficulty: str, completed_ids=(), rng=None):
    """Pick the next topic, preferring ones not yet completed.

    Once every topic in the bucket is completed the choice falls back to a
    uniform pick over the whole bucket, so repeats are possible.
    Returns None when no topics exist for (location, difficulty).
    """
    rng = rng or random
    topics = get_topics(location, difficulty)
    if not topics:
        return None
    completed = set(completed_ids or ())
    available = [t for t in topics if t.id not in completed]
    return rng.choice(available or topics)
