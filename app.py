"""Lingua Town HTTP API.

The server is meant for one learner running it locally. Progress and language
settings live in a single store under DATA_DIR and are shared by every client;
X-Session-ID only tags analytics events.
"""

import base64
import binascii
import concurrent.futures
import json
import logging
import random
import time
import uuid
from datetime import datetime, timezone

from flask import Flask, has_request_context, jsonify, request
from flask_cors import CORS
from flask_limiter import Limiter
from flask_limiter.util import get_remote_address
from werkzeug.exceptions import HTTPException

from linguatown.catalog import get_topic, topic_from_payload
from linguatown.characters import Character, format_location_name, get_character, location_slug
from linguatown.config import Config
from linguatown.llm import TranscriptionError, UpstreamUnavailable, create_client
from linguatown.parsing import NO_CORRECTION, parse_evaluation, parse_hint
from linguatown.progress import (
    JsonFileStore,
    ProgressLedger,
    ProgressStore,
    get_learning_language,
    get_native_language,
    set_learning_language,
)
from linguatown.prompts import (
    build_evaluation_prompt,
    build_hint_prompt,
    build_system_prompt,
    map_messages_to_context,
)
from linguatown.registry import (
    ALL_LOCATIONS,
    AVAILABLE_LEARNING_LANGUAGES,
    DIFFICULTY_LEVELS,
    difficulty_display_name,
    get_turn_limits,
    is_difficulty,
    language_flag,
    language_name,
    language_pair,
    normalize_language,
)
from linguatown.turns import ConversationSession, TurnState, resolve_reply

app = Flask(__name__)

# Logging
logging.basicConfig(level=getattr(logging, Config.LOG_LEVEL, logging.INFO),
                    format='%(asctime)s %(levelname)s %(name)s %(message)s')
logger = logging.getLogger(__name__)

# CORS policy: default deny (no CORS). If ALLOWED_ORIGINS is set, enable narrowly.
if Config.ALLOWED_ORIGINS:
    CORS(app, resources={r"/*": {"origins": Config.ALLOWED_ORIGINS,
                                  "methods": ["GET", "POST", "OPTIONS"],
                                  "allow_headers": ["Content-Type", "X-Session-ID"]}})

limiter = Limiter(get_remote_address, app=app,
                  default_limits=[Config.DEFAULT_RATE_LIMIT],
                  storage_uri='memory://',
                  enabled=Config.RATELIMIT_ENABLED)

# OpenAI-backed model client; None until OPENAI_API_KEY is configured
llm = create_client(Config)

# Local progress and preference storage
kv_store = JsonFileStore(Config.DATA_DIR)

# Evaluation calls that outlive their timeout keep running here unobserved
executor = concurrent.futures.ThreadPoolExecutor(max_workers=Config.WORKER_THREADS)

NOT_CONFIGURED = 'OpenAI API key is not configured. Please set OPENAI_API_KEY in your .env.'


class InvalidRequest(ValueError):
    pass


# ---------- Data Collection & Analytics ----------
def log_user_interaction(event_type, data, session_id=None):
    """Append one sampled analytics event to today's JSONL file."""
    if not Config.ENABLE_ANALYTICS:
        return
    if random.random() > Config.ANALYTICS_SAMPLE_RATE:
        return
    try:
        Config.ANALYTICS_DIR.mkdir(parents=True, exist_ok=True)
        now = datetime.now(timezone.utc)
        log_entry = {
            'timestamp': now.isoformat().replace('+00:00', 'Z'),
            'event_type': event_type,
            'session_id': session_id or get_session_id(),
            'data': data,
        }
        log_file = Config.ANALYTICS_DIR / f"session_data_{now.strftime('%Y%m%d')}.jsonl"
        with open(log_file, 'a', encoding='utf-8') as f:
            f.write(json.dumps(log_entry, ensure_ascii=False) + '\n')
    except Exception as e:
        logger.warning(f"Analytics logging failed: {e}")


def get_session_id():
    """Get or create session ID from request headers"""
    if has_request_context() and request.headers.get('X-Session-ID'):
        return request.headers['X-Session-ID']
    return str(uuid.uuid4())[:8]


# ---------- Request helpers ----------
def _payload():
    data = request.get_json(silent=True)
    return data if isinstance(data, dict) else {}


def _languages(data):
    return language_pair(
        native=data.get('nativeLanguage') or get_native_language(kv_store),
        learning=data.get('learningLanguage') or get_learning_language(kv_store),
    )


def _ledger(learning_language):
    return ProgressLedger(ProgressStore(kv_store, learning_language))


def _difficulty(value, default=None):
    value = value or default
    if not is_difficulty(value):
        raise InvalidRequest(f'Unknown difficulty: {value}')
    return value


def _known_location(value):
    slug = location_slug(value or '')
    if slug not in ALL_LOCATIONS:
        raise InvalidRequest(f'Unknown location: {value}')
    return slug


def _character(data, language):
    """Resolve the speaking character; explicit characterName/role override the catalog."""
    location = (data.get('location') or '').strip()
    if not location:
        raise InvalidRequest('location is required')
    character = get_character(location, language)
    name = (data.get('characterName') or '').strip()
    role = (data.get('role') or '').strip()
    if character is None:
        if not (name and role):
            raise InvalidRequest(f'Unknown location: {location}')
        slug = location_slug(location)
        return Character(slug, format_location_name(slug), name, role, '')
    if name or role:
        character = character._replace(name=name or character.name, role=role or character.role)
    return character


def _turn_count(value):
    try:
        count = int(value or 0)
    except (TypeError, ValueError):
        raise InvalidRequest('turnCount must be an integer')
    if count < 0:
        raise InvalidRequest('turnCount must be non-negative')
    return count


def _user_message(data, key='message'):
    text = (data.get(key) or '').strip()
    if not text:
        raise InvalidRequest('message is required')
    if len(text) > Config.MAX_TURN_CHARS:
        raise InvalidRequest(f'Message too long (max {Config.MAX_TURN_CHARS} characters)')
    return text


def _history(messages):
    history = []
    for m in messages or []:
        if not isinstance(m, dict):
            continue
        role = m.get('role')
        content = m.get('content')
        content = content.strip() if isinstance(content, str) else ''
        if role in ('user', 'assistant') and content:
            history.append({'role': role, 'content': content})
    return history


def _topic_dict(topic):
    if topic is None:
        return None
    return {'id': topic.id, 'name': topic.name, 'description': topic.description}


def _character_dict(character):
    return {
        'slug': character.slug,
        'locationName': character.location_name,
        'name': character.name,
        'role': character.role,
        'openingMessage': character.opening_message,
    }


def _evaluate(user_message, difficulty, languages, context):
    """Grade one learner message. Never raises: any failure means no correction."""
    if llm is None:
        return NO_CORRECTION
    prompt = build_evaluation_prompt(user_message, difficulty, languages, context)
    try:
        raw = llm.complete(
            [{'role': 'system', 'content': prompt}, {'role': 'user', 'content': user_message}],
            max_tokens=Config.EVAL_MAX_TOKENS,
            temperature=Config.EVAL_TEMPERATURE,
        )
    except UpstreamUnavailable as e:
        logger.warning('Evaluation skipped: %s', e)
        return NO_CORRECTION
    parsed = parse_evaluation(raw)
    if not parsed.ok:
        logger.info('Evaluation reply not understood (%s): %r', parsed.failure, raw[:80])
    return parsed.value


# ---------- Error handling ----------
@app.errorhandler(InvalidRequest)
def handle_invalid_request(e):
    return jsonify({'error': str(e)}), 400


@app.errorhandler(Exception)
def handle_unexpected_error(e):
    if isinstance(e, HTTPException):
        return jsonify({'error': e.description}), e.code
    logger.exception('Unhandled error')
    return jsonify({'error': str(e)}), 500


# ---------- Health/Version Endpoints ----------
@app.route('/', methods=['GET'])
def index():
    return jsonify({
        'name': 'Lingua Town',
        'version': Config.VERSION,
        'locations': list(ALL_LOCATIONS),
        'difficulties': [{'id': d, 'name': difficulty_display_name(d)} for d in DIFFICULTY_LEVELS],
    })


@app.route('/health', methods=['GET'])
def health():
    return jsonify({'status': 'ok', 'time': datetime.now(timezone.utc).isoformat().replace('+00:00', 'Z')})


@app.route('/version', methods=['GET'])
def version():
    return jsonify({'version': Config.VERSION})


# ---------- Languages & Settings ----------
@app.route('/api/languages', methods=['GET'])
def list_languages():
    return jsonify({
        'learning': [
            {'code': code, 'name': language_name(code), 'flag': language_flag(code)}
            for code in AVAILABLE_LEARNING_LANGUAGES
        ],
        'native': get_native_language(kv_store),
    })


@app.route('/api/settings', methods=['GET', 'POST'])
def settings():
    if request.method == 'POST':
        data = _payload()
        code = (data.get('learningLanguage') or '').strip().lower()
        if code not in AVAILABLE_LEARNING_LANGUAGES:
            raise InvalidRequest(f'Unsupported learning language: {code}')
        set_learning_language(kv_store, code)
    return jsonify({
        'learningLanguage': get_learning_language(kv_store),
        'nativeLanguage': get_native_language(kv_store),
    })


@app.route('/api/locations', methods=['GET'])
def list_locations():
    language = normalize_language(request.args.get('language') or get_learning_language(kv_store))
    ledger = _ledger(language)
    stages = ledger.all_location_stages()
    locations = []
    for slug in ALL_LOCATIONS:
        entry = _character_dict(get_character(slug, language))
        entry['completedStages'] = stages[slug]
        locations.append(entry)
    return jsonify({'language': language, 'level': ledger.current_level, 'locations': locations})


# ---------- Conversation ----------
@app.route('/api/conversation/start', methods=['POST'])
@limiter.limit(Config.RATE_LIMIT_CHAT)
def conversation_start():
    data = _payload()
    languages = _languages(data)
    slug = _known_location(data.get('location'))
    character = _character(data, languages.learning)
    ledger = _ledger(languages.learning)
    difficulty = _difficulty(data.get('difficulty'), default=ledger.current_level)

    topic_id = (data.get('topicId') or '').strip()
    topic = get_topic(slug, difficulty, topic_id) if topic_id else ledger.next_topic(slug, difficulty)
    if topic_id and topic is None:
        raise InvalidRequest(f'Unknown topic: {topic_id}')

    limits = get_turn_limits(difficulty)
    state = TurnState.for_turn(0, limits)
    message, hint, fallback = character.opening_message, None, True
    if llm is not None:
        system = build_system_prompt(character, slug, difficulty, topic, state, languages)
        try:
            raw = llm.complete([{'role': 'system', 'content': system}],
                               max_tokens=Config.CHAT_MAX_TOKENS, temperature=Config.CHAT_TEMPERATURE)
            if raw:
                outcome = resolve_reply(raw, state)
                message, hint, fallback = outcome.text, outcome.hint, False
        except UpstreamUnavailable as e:
            logger.warning('Opening message fell back to the static greeting: %s', e)

    log_user_interaction('conversation_start', {
        'location': slug,
        'difficulty': difficulty,
        'language': languages.learning,
        'topic_id': topic.id if topic else None,
        'fallback': fallback,
    })
    return jsonify({
        'character': _character_dict(character),
        'difficulty': difficulty,
        'topic': _topic_dict(topic),
        'message': message,
        'hint': hint,
        'turnCount': 0,
        'turnLimits': {'min': limits.min, 'max': limits.max},
    })


@app.route('/api/chat', methods=['POST'])
@limiter.limit(Config.RATE_LIMIT_CHAT)
def chat():
    """One character reply for a client that tracks its own turn count."""
    if llm is None:
        return jsonify({'error': NOT_CONFIGURED}), 500
    data = _payload()
    languages = _languages(data)
    character = _character(data, languages.learning)
    difficulty = _difficulty(data.get('difficulty'))
    turn_count = _turn_count(data.get('turnCount'))
    topic = topic_from_payload(data.get('topic'))

    state = TurnState.for_turn(turn_count, get_turn_limits(difficulty))
    system = build_system_prompt(character, character.slug, difficulty, topic, state, languages)
    messages = [{'role': 'system', 'content': system}] + _history(data.get('messages'))
    try:
        raw = llm.complete(messages, max_tokens=Config.CHAT_MAX_TOKENS, temperature=Config.CHAT_TEMPERATURE)
    except UpstreamUnavailable as e:
        logger.error(f"Error in chat endpoint: {e}")
        return jsonify({'error': 'Failed to generate response'}), e.status

    outcome = resolve_reply(raw, state)
    log_user_interaction('chat_turn', {
        'location': character.slug,
        'difficulty': difficulty,
        'turn_count': turn_count,
        'mode': state.mode,
        'should_end': outcome.should_end,
    })
    return jsonify({'message': outcome.text, 'shouldEnd': outcome.should_end, 'hint': outcome.hint})


@app.route('/api/evaluate', methods=['POST'])
@limiter.limit(Config.RATE_LIMIT_EVALUATE)
def evaluate():
    # On any problem report no correction so the conversation is never blocked
    data = _payload()
    user_message = data.get('userMessage')
    user_message = user_message.strip() if isinstance(user_message, str) else ''
    if not user_message or not is_difficulty(data.get('difficulty')):
        return jsonify(NO_CORRECTION.to_dict())
    languages = _languages(data)
    context = map_messages_to_context(data.get('conversationContext'))
    evaluation = _evaluate(user_message, data['difficulty'], languages, context)
    log_user_interaction('evaluation', {
        'difficulty': data['difficulty'],
        'language': languages.learning,
        'message_length': len(user_message),
        'needs_correction': evaluation.needs_correction,
    })
    return jsonify(evaluation.to_dict())


@app.route('/api/hint', methods=['POST'])
@limiter.limit(Config.RATE_LIMIT_HINT)
def hint():
    if llm is None:
        return jsonify({'error': NOT_CONFIGURED}), 500
    data = _payload()
    languages = _languages(data)
    difficulty = _difficulty(data.get('difficulty'))
    last_message = (data.get('lastMessage') or '').strip()
    if not last_message:
        assistant_turns = [m for m in _history(data.get('messages')) if m['role'] == 'assistant']
        last_message = assistant_turns[-1]['content'] if assistant_turns else ''
    if not last_message:
        raise InvalidRequest('lastMessage is required')

    prompt = build_hint_prompt(last_message, difficulty, languages)
    try:
        raw = llm.complete(
            [{'role': 'system', 'content': prompt}, {'role': 'user', 'content': 'Give me a hint.'}],
            max_tokens=Config.HINT_MAX_TOKENS,
            temperature=Config.HINT_TEMPERATURE,
        )
    except UpstreamUnavailable as e:
        return jsonify({'error': 'Failed to generate hint'}), e.status

    parsed = parse_hint(raw)
    log_user_interaction('hint_request', {'difficulty': difficulty, 'has_hint': parsed.ok})
    return jsonify({'hint': parsed.value.hint})


@app.route('/api/turn', methods=['POST'])
@limiter.limit(Config.RATE_LIMIT_CHAT)
def turn():
    """Run one learner turn: character reply and evaluation in parallel.

    The evaluation is advisory. If it is not back within
    EVALUATION_TIMEOUT_SECONDS the reply goes out without it.
    """
    if llm is None:
        return jsonify({'error': NOT_CONFIGURED}), 500
    data = _payload()
    languages = _languages(data)
    character = _character(data, languages.learning)
    difficulty = _difficulty(data.get('difficulty'))
    user_message = _user_message(data)
    topic = topic_from_payload(data.get('topic'))

    session = ConversationSession.from_history(
        character.slug, difficulty, data.get('messages'),
        turn_count=_turn_count(data.get('turnCount')), topic=topic,
    )
    session.add_user_message(user_message)
    state = session.turn_state()
    system = build_system_prompt(character, character.slug, difficulty, topic, state, languages)
    history = session.history()

    # Only the evaluation goes to the pool; the reply is generated on this thread
    deadline = time.monotonic() + Config.EVALUATION_TIMEOUT_SECONDS
    eval_future = executor.submit(
        _evaluate, user_message, difficulty, languages, map_messages_to_context(history[:-1]),
    )

    try:
        raw = llm.complete([{'role': 'system', 'content': system}] + history,
                           max_tokens=Config.CHAT_MAX_TOKENS, temperature=Config.CHAT_TEMPERATURE)
    except UpstreamUnavailable as e:
        logger.error(f"Error in turn endpoint: {e}")
        return jsonify({'error': 'Failed to generate response', 'turnCount': session.turn_count}), e.status
    outcome = session.apply_reply(raw)

    try:
        evaluation = eval_future.result(timeout=max(0.0, deadline - time.monotonic()))
    except concurrent.futures.TimeoutError:
        eval_future.cancel()
        logger.info('Evaluation dropped after %.1fs', Config.EVALUATION_TIMEOUT_SECONDS)
        evaluation = None

    payload = {
        'message': outcome.text,
        'shouldEnd': outcome.should_end,
        'hint': outcome.hint,
        'turnCount': session.turn_count,
        'evaluation': evaluation.to_dict() if evaluation is not None else None,
    }
    event = {
        'location': character.slug,
        'difficulty': difficulty,
        'language': languages.learning,
        'turn_count': session.turn_count,
        'message_length': len(user_message),
        'should_end': outcome.should_end,
        'needs_correction': bool(evaluation and evaluation.needs_correction),
        'evaluation_dropped': evaluation is None,
    }
    log_user_interaction('chat_turn', event)

    if outcome.should_end and character.slug in ALL_LOCATIONS:
        ledger = _ledger(languages.learning)
        if topic is not None and topic.id:
            ledger.mark_topic_complete(character.slug, difficulty, topic.id)
        result = ledger.record_completion(character.slug)
        payload['progress'] = result.to_dict()
        log_user_interaction('conversation_complete', {
            'location': character.slug,
            'difficulty': difficulty,
            'turn_count': session.turn_count,
            'advanced': result.advanced,
            'new_level': result.new_level,
        })
    return jsonify(payload)


# ---------- Voice ----------
@app.route('/api/voice', methods=['POST'])
@limiter.limit(Config.RATE_LIMIT_VOICE)
def voice():
    upload = request.files.get('audio')
    data = {} if upload else _payload()
    if upload:
        audio = upload.read()
        language = request.form.get('learningLanguage')
    else:
        encoded = data.get('audio')
        if not encoded:
            return jsonify({'error': 'No audio data provided'}), 400
        try:
            audio = base64.b64decode(encoded, validate=True)
        except (binascii.Error, ValueError, TypeError):
            return jsonify({'error': 'Invalid audio data format'}), 400
        language = data.get('learningLanguage')
    if not audio:
        return jsonify({'error': 'No audio data provided'}), 400
    if len(audio) > Config.MAX_AUDIO_BYTES:
        return jsonify({'error': 'Audio file is too large'}), 400
    if llm is None:
        return jsonify({'error': 'OpenAI client configuration error'}), 500

    language = normalize_language(language or get_learning_language(kv_store))
    try:
        text = llm.transcribe(audio, language=language)
    except TranscriptionError as e:
        logger.error('Transcription failed (%s): %s', e.kind, e)
        log_user_interaction('voice_transcription', {'ok': False, 'kind': e.kind, 'bytes': len(audio)})
        return jsonify({'error': e.message}), e.status

    log_user_interaction('voice_transcription', {'ok': True, 'bytes': len(audio), 'language': language})
    return jsonify({'transcription': text})


# ---------- Progress ----------
def _progress_language(data=None):
    value = (data or {}).get('learningLanguage') or request.args.get('language')
    return normalize_language(value or get_learning_language(kv_store))


@app.route('/api/progress', methods=['GET'])
def get_progress():
    return jsonify(_ledger(_progress_language()).snapshot())


@app.route('/api/topics/next', methods=['GET'])
def next_topic():
    ledger = _ledger(_progress_language())
    slug = _known_location(request.args.get('location'))
    difficulty = _difficulty(request.args.get('difficulty'), default=ledger.current_level)
    topic = ledger.next_topic(slug, difficulty)
    return jsonify({'location': slug, 'difficulty': difficulty, 'topic': _topic_dict(topic)})


@app.route('/api/progress/complete', methods=['POST'])
def complete_conversation():
    data = _payload()
    ledger = _ledger(_progress_language(data))
    slug = _known_location(data.get('location'))
    topic_id = (data.get('topicId') or '').strip()
    if topic_id:
        difficulty = _difficulty(data.get('difficulty'), default=ledger.current_level)
        ledger.mark_topic_complete(slug, difficulty, topic_id)
    result = ledger.record_completion(slug)
    log_user_interaction('conversation_complete', {
        'location': slug,
        'advanced': result.advanced,
        'new_level': result.new_level,
    })
    return jsonify({'result': result.to_dict(), 'progress': ledger.snapshot()})


@app.route('/api/progress/topic', methods=['POST'])
def complete_topic():
    data = _payload()
    ledger = _ledger(_progress_language(data))
    slug = _known_location(data.get('location'))
    difficulty = _difficulty(data.get('difficulty'))
    topic_id = (data.get('topicId') or '').strip()
    if not topic_id:
        raise InvalidRequest('topicId is required')
    ledger.mark_topic_complete(slug, difficulty, topic_id)
    return jsonify({'completedTopics': ledger.completed_topics(slug, difficulty)})


@app.route('/api/progress/reset', methods=['POST'])
def reset_progress():
    ledger = _ledger(_progress_language(_payload()))
    ledger.reset()
    return jsonify(ledger.snapshot())


# ---------- Dev tools ----------
@app.route('/api/progress/level', methods=['POST'])
def set_level():
    if not Config.ENABLE_DEV_TOOLS:
        return jsonify({'error': 'Not found'}), 404
    data = _payload()
    ledger = _ledger(_progress_language(data))
    ledger.set_level(_difficulty(data.get('level')))
    return jsonify(ledger.snapshot())


@app.route('/api/progress/stages', methods=['POST'])
def set_stages():
    if not Config.ENABLE_DEV_TOOLS:
        return jsonify({'error': 'Not found'}), 404
    data = _payload()
    ledger = _ledger(_progress_language(data))
    slug = _known_location(data.get('location'))
    difficulty = _difficulty(data.get('difficulty'), default=ledger.current_level)
    try:
        stages = int(data.get('stages'))
    except (TypeError, ValueError):
        raise InvalidRequest('stages must be an integer')
    ledger.set_location_stages(difficulty, slug, stages)
    return jsonify(ledger.snapshot())


if __name__ == '__main__':
    app.run(host='127.0.0.1', port=Config.PORT, debug=(Config.ENV != 'production'))
