"""System-instruction builders for the character, hint and evaluation calls.

Everything here is a pure function of its arguments; the model call that
consumes the output lives elsewhere.
"""

from linguatown.catalog import get_scenario_prompt
from linguatown.characters import format_location_name, location_slug
from linguatown.registry import DEFAULT_LANGUAGE, language_name, require_difficulty

CONVERSATION_CONTEXT_SIZE = 6
HINT_WORD_LIMIT = 25

CONTROL_TAG_INSTRUCTION = (
    "IMPORTANT: Start your response with [CONTINUE] or [END], then your message.\n"
    "If ending, give a warm, natural goodbye that references the conversation."
)

STYLE_GUIDELINES = {
    'beginner': (
        "CONVERSATION STYLE:\n"
        "- Use simple, clear language\n"
        "- Offer variety between direct questions, and offering information and letting the user direct the conversation.\n"
        "- If asking a question, only ask one. Do not include multiple questions in one turn.\n"
        "- Keep your responses short (1 sentence)\n"
        "- Focus on the immediate task\n"
        "- Be patient and encouraging"
    ),
    'intermediate': (
        "CONVERSATION STYLE:\n"
        "- Use natural, conversational language. Keep your dialogue short.\n"
        "- Ask open-ended questions that invite descriptions\n"
        "- If asking a question, only ask one. Do not include multiple questions in one turn.\n"
        "- Encourage them to explain their preferences and reasons\n"
        "- Show interest in details they share\n"
        "- Build on their responses to go deeper"
    ),
    'advanced': (
        "CONVERSATION STYLE:\n"
        "- Engage as equals having a genuine conversation. Keep your dialogue short.\n"
        "- Ask thought-provoking questions about their experiences\n"
        "- If asking a question, only ask one. Do not include multiple questions in one turn.\n"
        "- Invite them to share stories, opinions, and expertise\n"
        "- Respond to their ideas with your own insights\n"
        "- Create a back-and-forth discussion, not just Q&A"
    ),
}

END_GUIDANCE = {
    'beginner': "Since this is a beginner conversation, wrap up soon unless there's a critical detail to cover. Keep it brief and friendly.",
    'intermediate': "Based on how the conversation has flowed, decide whether to continue or wrap up naturally.",
    'advanced': "You can continue exploring this topic in depth. Only wrap up when the conversation has reached a natural, satisfying conclusion.",
}

CLOSING_GUIDANCE = {
    'beginner': "Keep it very brief and simple (1 sentence). Thank them warmly.",
    'intermediate': "Thank them warmly and reference something specific from the conversation. Keep it brief (1-2 sentences).",
    'advanced': "Thank them warmly and reference something meaningful from your discussion. You can be slightly more elaborate (2-3 sentences) given the depth of conversation.",
}

EVALUATION_STRICTNESS = {
    'beginner': "Only flag clear mistakes that change the meaning or would confuse a listener. Ignore accents, punctuation and capitalization.",
    'intermediate': "Flag grammar and vocabulary mistakes a teacher would correct in class. Ignore punctuation and capitalization.",
    'advanced': "Flag grammar, vocabulary and unnatural phrasing. Suggest the more idiomatic wording when it matters.",
}


def get_difficulty_guidelines(difficulty: str) -> str:
    return STYLE_GUIDELINES[require_difficulty(difficulty)]


def _language_instruction(languages) -> str:
    if languages.learning == DEFAULT_LANGUAGE:
        return ''
    learning = language_name(languages.learning)
    native = language_name(languages.native)
    return (
        "\nLANGUAGE REQUIREMENT:\n"
        f"You must respond ONLY in {learning}. The user's native language is {native}, "
        f"but you should conduct this entire conversation in {learning}. "
        f"Do not switch to {native} or any other language."
    )


def _hint_instruction(difficulty: str, languages, with_example: bool) -> str:
    # Advanced learners get no inline hints
    if difficulty == 'advanced':
        return ''
    native = language_name(languages.native)
    learning = language_name(languages.learning)
    text = (
        f"\nIMPORTANT: After your response, generate a helpful hint in {native} (the user's native language). "
        f"Format it as: HINT: [guidance or instruction on what the user could communicate in response to your message, "
        f"written entirely in {native}]. The hint should be guidance/instructions only, NOT an example phrase in {learning}."
    )
    if difficulty == 'beginner' and with_example:
        text += (
            f" For example, if you ask \"Did you find everything you were looking for?\" in {learning}, "
            "your hint might be: HINT: Let the clerk know that you could not find the item you were looking for."
        )
    return text


def _topic_prompt(character, location_name: str, difficulty: str, topic) -> str:
    if topic is None:
        return get_scenario_prompt(location_name, difficulty)
    return (
        f"CONVERSATION TOPIC: {topic.name}\n"
        f"{topic.description}\n\n"
        "You should initiate this conversation naturally. Start by greeting the customer and then guide "
        "the conversation toward this topic. Make it feel natural and contextual to your role as a "
        f"{character.role} at the {location_name}."
    )


def build_system_prompt(character, location: str, difficulty: str, topic, turn_state, languages) -> str:
    """Compose the character's system instruction for the current turn.

    One of three templates is used: a plain "continue" prompt, a "may end"
    prompt that asks for a leading [CONTINUE]/[END] tag, and a "must end"
    prompt that asks only for a closing line. A topic, when given, replaces
    the generic scenario for the location.
    """
    require_difficulty(difficulty)
    location_name = format_location_name(location_slug(location))
    header = f"You are {character.name}, a friendly {character.role} at the {location_name}.\n{_language_instruction(languages)}"

    if turn_state.must_end:
        return (
            f"{header}\n\n"
            "This is the END of the conversation. Wrap up naturally based on what was discussed.\n"
            f"{CLOSING_GUIDANCE[difficulty]}\n\n"
            "Do not ask any questions.\n"
            "Respond with ONLY your closing message."
        )

    topic_prompt = _topic_prompt(character, location_name, difficulty, topic)
    style = get_difficulty_guidelines(difficulty)

    if turn_state.can_end:
        return (
            f"{header}\n\n"
            f"{topic_prompt}\n\n"
            f"{style}\n\n"
            f"{END_GUIDANCE[difficulty]}\n\n"
            f"{CONTROL_TAG_INSTRUCTION}"
            f"{_hint_instruction(difficulty, languages, with_example=False)}"
        )

    return (
        f"{header}\n\n"
        f"{topic_prompt}\n\n"
        f"{style}\n\n"
        "Guidelines:\n"
        "- Stay in character naturally\n"
        "- Keep responses concise but warm\n"
        "- Move the conversation forward\n"
        "- Don't be overly formal or verbose"
        f"{_hint_instruction(difficulty, languages, with_example=True)}"
    )


def build_hint_prompt(last_character_message: str, difficulty: str, languages) -> str:
    """Instruction for an on-demand coaching hint in the learner's native language."""
    require_difficulty(difficulty)
    native = language_name(languages.native)
    learning = language_name(languages.learning)
    return (
        f"You are a patient {learning} coach helping a {difficulty} learner who is stuck in a role-play conversation.\n"
        f"The other person just said: \"{(last_character_message or '').strip()}\"\n\n"
        f"Write ONE short hint in {native} (at most {HINT_WORD_LIMIT} words) describing what the learner could say next.\n"
        f"Do NOT write the answer sentence in {learning}. Give guidance only, never a phrase to copy.\n"
        "Format your reply exactly as: HINT: <your hint>"
    )


def build_evaluation_prompt(user_message: str, difficulty: str, languages, context=None) -> str:
    """Instruction for grading one learner message; the reply must be OK: or CORRECTION:."""
    require_difficulty(difficulty)
    native = language_name(languages.native)
    learning = language_name(languages.learning)
    lines = []
    for m in map_messages_to_context(context):
        speaker = 'Learner' if m['role'] == 'user' else 'Character'
        lines.append(f"{speaker}: {m['content']}")
    context_block = "\n".join(lines) if lines else "(no earlier messages)"
    return (
        f"You are an experienced {learning} teacher checking a single message written by a {difficulty} learner "
        f"whose native language is {native}.\n\n"
        f"Recent conversation:\n{context_block}\n\n"
        f"Message to check: \"{(user_message or '').strip()}\"\n\n"
        f"{EVALUATION_STRICTNESS[difficulty]}\n"
        "Judge only grammar and vocabulary, not content or politeness.\n\n"
        "Reply in exactly one of these formats:\n"
        "OK: <a few words of encouragement>\n"
        f"CORRECTION: <the corrected phrase and a short explanation in {native}, under 20 words>"
    )


def map_messages_to_context(messages, size: int = CONVERSATION_CONTEXT_SIZE) -> list:
    """Keep the last ``size`` messages as chat-API {role, content} dicts."""
    context = []
    for m in messages or []:
        if not isinstance(m, dict):
            continue
        role = m.get('role')
        if role not in ('user', 'assistant'):
            continue
        content = m.get('content') if 'content' in m else m.get('text')
        content = content.strip() if isinstance(content, str) else ''
        if content:
            context.append({'role': role, 'content': content})
    return context[-size:] if size > 0 else []
