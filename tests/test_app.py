import base64
import concurrent.futures
import threading

from linguatown.catalog import topic_ids
from linguatown.llm import UpstreamUnavailable
from linguatown.prompts import CONTROL_TAG_INSTRUCTION
from linguatown.registry import ALL_LOCATIONS

OPENING = {'role': 'assistant', 'content': 'Good morning! What would you like?'}


def _turn(client, **overrides):
    payload = {
        'location': 'bakery',
        'difficulty': 'beginner',
        'messages': [OPENING],
        'turnCount': 0,
        'message': 'A croissant, please.',
    }
    payload.update(overrides)
    return client.post('/api/turn', json=payload)


def test_health_and_version(client) -> None:
    assert client.get('/health').get_json()['status'] == 'ok'
    assert client.get('/version').get_json() == {'version': '1.0.0'}
    assert client.get('/').get_json()['locations'] == list(ALL_LOCATIONS)


def test_languages_and_settings(client) -> None:
    codes = [lang['code'] for lang in client.get('/api/languages').get_json()['learning']]
    assert codes == ['en', 'it']

    assert client.get('/api/settings').get_json()['learningLanguage'] == 'en'
    resp = client.post('/api/settings', json={'learningLanguage': 'it'})
    assert resp.get_json()['learningLanguage'] == 'it'
    assert client.get('/api/settings').get_json()['learningLanguage'] == 'it'
    assert client.post('/api/settings', json={'learningLanguage': 'xx'}).status_code == 400


def test_locations_are_localized(client) -> None:
    data = client.get('/api/locations?language=it').get_json()
    assert data['level'] == 'beginner'
    names = {loc['slug']: loc['name'] for loc in data['locations']}
    assert names['bakery'] == 'Alessia'
    assert all(loc['completedStages'] == 0 for loc in data['locations'])


def test_chat_reply_with_end_tag(client, fake_llm) -> None:
    fake_llm.chat_replies = ['[END] Thank you, goodbye!']
    resp = client.post('/api/chat', json={
        'location': 'bakery', 'difficulty': 'beginner', 'turnCount': 2, 'messages': [OPENING],
    })
    assert resp.status_code == 200
    assert resp.get_json() == {'message': 'Thank you, goodbye!', 'shouldEnd': True, 'hint': None}
    system = fake_llm.chat_calls()[-1][0]['content']
    assert CONTROL_TAG_INSTRUCTION in system


def test_chat_accepts_custom_character_for_unknown_location(client, fake_llm) -> None:
    fake_llm.chat_replies = ['Welcome to the library!']
    resp = client.post('/api/chat', json={
        'location': 'library', 'characterName': 'Lena', 'role': 'librarian', 'difficulty': 'beginner',
    })
    assert resp.status_code == 200
    assert 'SCENARIO: Simple transaction or request' in fake_llm.chat_calls()[-1][0]['content']


def test_chat_validation(client) -> None:
    assert client.post('/api/chat', json={'location': 'bakery', 'difficulty': 'expert'}).status_code == 400
    assert client.post('/api/chat', json={'location': 'library', 'difficulty': 'beginner'}).status_code == 400
    assert client.post('/api/chat', json={'difficulty': 'beginner'}).status_code == 400
    resp = client.post('/api/chat', json={'location': 'bakery', 'difficulty': 'beginner', 'turnCount': 'two'})
    assert resp.status_code == 400


def test_chat_upstream_failure(client, fake_llm) -> None:
    fake_llm.chat_replies = [UpstreamUnavailable('Network timeout contacting OpenAI.', status=504)]
    resp = client.post('/api/chat', json={'location': 'bakery', 'difficulty': 'beginner'})
    assert resp.status_code == 504
    assert resp.get_json()['error'] == 'Failed to generate response'


def test_chat_without_api_key(client, app_module, monkeypatch) -> None:
    monkeypatch.setattr(app_module, 'llm', None)
    resp = client.post('/api/chat', json={'location': 'bakery', 'difficulty': 'beginner'})
    assert resp.status_code == 500
    assert 'OPENAI_API_KEY' in resp.get_json()['error']


def test_evaluate_correction(client, fake_llm) -> None:
    fake_llm.evaluation_reply = 'CORRECTION: Say "vorrei un caffè". Error: wrong verb form.'
    resp = client.post('/api/evaluate', json={
        'userMessage': 'Io volere un caffè', 'difficulty': 'beginner', 'learningLanguage': 'it',
        'conversationContext': [OPENING],
    })
    data = resp.get_json()
    assert data['needsCorrection'] is True
    assert data['correction'].startswith('Say "vorrei un caffè"')
    assert data['errors'] == ['wrong verb form']


def test_evaluate_fails_open(client, app_module, fake_llm, monkeypatch) -> None:
    body = {'userMessage': 'Hello', 'difficulty': 'beginner'}
    fake_llm.evaluation_reply = 'Looks good I think'
    assert client.post('/api/evaluate', json=body).get_json() == {'needsCorrection': False}

    fake_llm.evaluation_reply = UpstreamUnavailable()
    assert client.post('/api/evaluate', json=body).get_json() == {'needsCorrection': False}

    assert client.post('/api/evaluate', json={'userMessage': ''}).get_json() == {'needsCorrection': False}

    monkeypatch.setattr(app_module, 'llm', None)
    assert client.post('/api/evaluate', json=body).get_json() == {'needsCorrection': False}


def test_hint(client, fake_llm) -> None:
    resp = client.post('/api/hint', json={'lastMessage': 'What can I get you?', 'difficulty': 'beginner'})
    assert resp.get_json() == {'hint': 'Tell them what you would like to order.'}

    fake_llm.hint_reply = 'You could order bread.'
    resp = client.post('/api/hint', json={'messages': [OPENING], 'difficulty': 'beginner'})
    assert resp.get_json() == {'hint': None}

    assert client.post('/api/hint', json={'difficulty': 'beginner'}).status_code == 400


def test_turn_continues_with_evaluation(client, fake_llm) -> None:
    fake_llm.chat_replies = ['Anything to drink? HINT: Say whether you want a drink.']
    fake_llm.evaluation_reply = 'OK: Perfect!'
    data = _turn(client).get_json()
    assert data['message'] == 'Anything to drink?'
    assert data['hint'] == 'Say whether you want a drink.'
    assert data['shouldEnd'] is False
    assert data['turnCount'] == 1
    assert data['evaluation'] == {'needsCorrection': False}
    assert 'progress' not in data

    chat_messages = fake_llm.chat_calls()[-1]
    assert chat_messages[-1] == {'role': 'user', 'content': 'A croissant, please.'}
    assert chat_messages[1] == OPENING


def test_turn_must_end_records_progress(client, fake_llm) -> None:
    fake_llm.chat_replies = ['Thank you for coming, goodbye!']
    topic = {'id': 'buying-bread', 'name': 'Buying Bread', 'description': 'Purchase bread from the bakery'}
    data = _turn(client, turnCount=2, topic=topic).get_json()
    assert data['shouldEnd'] is True
    assert data['turnCount'] == 3
    assert data['progress'] == {'advanced': False}
    assert 'Do not ask any questions.' in fake_llm.chat_calls()[-1][0]['content']

    progress = client.get('/api/progress').get_json()
    assert progress['stages']['bakery'] == 1
    assert progress['completed'] == 1

    resp = client.post('/api/progress/topic', json={
        'location': 'bakery', 'difficulty': 'beginner', 'topicId': 'asking-price',
    })
    assert resp.get_json()['completedTopics'] == ['buying-bread', 'asking-price']


def test_turn_drops_slow_evaluation(client, app_module, fake_llm, monkeypatch) -> None:
    monkeypatch.setattr(app_module.Config, 'EVALUATION_TIMEOUT_SECONDS', 0.05)
    fake_llm.evaluation_gate = threading.Event()
    fake_llm.chat_replies = ['What else?']
    try:
        data = _turn(client).get_json()
    finally:
        fake_llm.evaluation_gate.set()
    assert data['message'] == 'What else?'
    assert data['evaluation'] is None


def test_turn_validation_happens_before_any_model_call(client, fake_llm) -> None:
    assert _turn(client, message='').status_code == 400
    assert _turn(client, message='x' * 601).status_code == 400
    assert _turn(client, difficulty='expert').status_code == 400
    assert _turn(client, turnCount=-1).status_code == 400
    assert fake_llm.calls == []


def test_turn_upstream_failure(client, fake_llm) -> None:
    fake_llm.chat_replies = [UpstreamUnavailable('Cannot reach OpenAI.', status=503)]
    resp = _turn(client)
    assert resp.status_code == 503
    assert resp.get_json()['turnCount'] == 1


def test_conversation_start(client, fake_llm) -> None:
    fake_llm.chat_replies = ['Good morning! Fresh bread today. HINT: Greet the baker.']
    data = client.post('/api/conversation/start', json={'location': 'bakery'}).get_json()
    assert data['character']['name'] == 'Alice'
    assert data['difficulty'] == 'beginner'
    assert data['topic']['id'] in topic_ids('bakery', 'beginner')
    assert data['message'] == 'Good morning! Fresh bread today.'
    assert data['hint'] == 'Greet the baker.'
    assert data['turnLimits'] == {'min': 2, 'max': 3}
    assert f"CONVERSATION TOPIC: {data['topic']['name']}" in fake_llm.chat_calls()[-1][0]['content']


def test_conversation_start_falls_back_to_static_opening(client, app_module, fake_llm, monkeypatch) -> None:
    fake_llm.chat_replies = [UpstreamUnavailable()]
    data = client.post('/api/conversation/start', json={
        'location': 'Grocery Store', 'learningLanguage': 'it', 'difficulty': 'advanced',
    }).get_json()
    assert data['character']['name'] == 'Chiara'
    assert data['message'].startswith('Ciao! Sono Chiara.')
    assert data['topic'] is None

    monkeypatch.setattr(app_module, 'llm', None)
    data = client.post('/api/conversation/start', json={'location': 'hotel'}).get_json()
    assert data['message'].startswith('Hi, welcome to Lingua Towers!')


def test_conversation_start_validation(client) -> None:
    assert client.post('/api/conversation/start', json={'location': 'library'}).status_code == 400
    resp = client.post('/api/conversation/start', json={'location': 'bakery', 'topicId': 'nope'})
    assert resp.status_code == 400


def test_voice_transcription(client, fake_llm) -> None:
    audio = base64.b64encode(b'webm-bytes').decode()
    resp = client.post('/api/voice', json={'audio': audio, 'learningLanguage': 'it'})
    assert resp.get_json() == {'transcription': 'Vorrei un caffè'}
    assert fake_llm.transcriptions == [(b'webm-bytes', 'it')]


def test_voice_rejects_bad_audio_before_upload(client, app_module, fake_llm, monkeypatch) -> None:
    resp = client.post('/api/voice', json={})
    assert (resp.status_code, resp.get_json()['error']) == (400, 'No audio data provided')
    resp = client.post('/api/voice', json={'audio': '!!not base64!!'})
    assert (resp.status_code, resp.get_json()['error']) == (400, 'Invalid audio data format')

    monkeypatch.setattr(app_module.Config, 'MAX_AUDIO_BYTES', 4)
    resp = client.post('/api/voice', json={'audio': base64.b64encode(b'too many bytes').decode()})
    assert (resp.status_code, resp.get_json()['error']) == (400, 'Audio file is too large')
    assert fake_llm.transcriptions == []


def test_voice_transcription_errors(client, fake_llm) -> None:
    audio = base64.b64encode(b'webm-bytes').decode()
    fake_llm.transcribe_error = 'rate_limited'
    assert client.post('/api/voice', json={'audio': audio}).status_code == 429
    fake_llm.transcribe_error = 'empty'
    resp = client.post('/api/voice', json={'audio': audio})
    assert (resp.status_code, resp.get_json()['error']) == (400, 'Could not transcribe audio')


def test_progress_completion_and_reset(client) -> None:
    for _ in range(4):
        resp = client.post('/api/progress/complete', json={'location': 'hotel', 'topicId': 'checking-in'})
    data = resp.get_json()
    assert data['result'] == {'advanced': False}
    assert data['progress']['stages']['hotel'] == 3

    nxt = client.get('/api/topics/next?location=hotel&difficulty=beginner').get_json()
    assert nxt['topic']['id'] != 'checking-in'

    assert client.post('/api/progress/complete', json={'location': 'library'}).status_code == 400

    data = client.post('/api/progress/reset', json={}).get_json()
    assert data['completed'] == 0


def test_completing_every_location_advances_level(client) -> None:
    for slug in ALL_LOCATIONS:
        for _ in range(3):
            resp = client.post('/api/progress/complete', json={'location': slug})
    assert resp.get_json()['result'] == {'advanced': True, 'newLevel': 'intermediate'}
    assert client.get('/api/progress').get_json()['level'] == 'intermediate'


def test_dev_tools_are_hidden_unless_enabled(client, app_module, monkeypatch) -> None:
    assert client.post('/api/progress/level', json={'level': 'advanced'}).status_code == 404
    assert client.post('/api/progress/stages', json={'location': 'bank', 'stages': 2}).status_code == 404

    monkeypatch.setattr(app_module.Config, 'ENABLE_DEV_TOOLS', True)
    assert client.post('/api/progress/level', json={'level': 'advanced'}).get_json()['level'] == 'advanced'
    data = client.post('/api/progress/stages', json={'location': 'bank', 'stages': 9}).get_json()
    assert data['stages']['bank'] == 3
    assert client.post('/api/progress/level', json={'level': 'expert'}).status_code == 400


def test_progress_is_per_language(client) -> None:
    client.post('/api/progress/complete', json={'location': 'bank', 'learningLanguage': 'it'})
    assert client.get('/api/progress?language=it').get_json()['stages']['bank'] == 1
    assert client.get('/api/progress?language=en').get_json()['stages']['bank'] == 0


def test_evaluate_ignores_malformed_context(client, fake_llm) -> None:
    resp = client.post('/api/evaluate', json={
        'userMessage': 'Vorrei un pane', 'difficulty': 'beginner',
        'conversationContext': ['hello', None, {'role': 'assistant', 'content': 42}, OPENING],
    })
    assert resp.status_code == 200
    assert resp.get_json() == {'needsCorrection': False}
    prompt = fake_llm.calls[-1][0]['content']
    assert f"Character: {OPENING['content']}" in prompt
    assert 'hello' not in prompt

    resp = client.post('/api/evaluate', json={'userMessage': 7, 'difficulty': 'beginner'})
    assert resp.get_json() == {'needsCorrection': False}


def test_malformed_history_and_body_are_not_server_errors(client, fake_llm) -> None:
    fake_llm.chat_replies = ['What else?', 'Anything else?']
    resp = _turn(client, messages=['hi', 3, OPENING])
    assert resp.status_code == 200
    assert fake_llm.chat_calls()[-1][1] == OPENING

    resp = client.post('/api/chat', json={
        'location': 'bakery', 'difficulty': 'beginner', 'messages': [['user', 'hi']],
    })
    assert resp.status_code == 200

    assert client.post('/api/turn', json=['bakery', 'beginner']).status_code == 400
    assert client.post('/api/evaluate', json=['x']).get_json() == {'needsCorrection': False}


def test_abandoned_evaluations_do_not_delay_replies(client, app_module, fake_llm, monkeypatch) -> None:
    pool = concurrent.futures.ThreadPoolExecutor(max_workers=1)
    monkeypatch.setattr(app_module, 'executor', pool)
    monkeypatch.setattr(app_module.Config, 'EVALUATION_TIMEOUT_SECONDS', 0.05)
    fake_llm.evaluation_gate = threading.Event()
    fake_llm.chat_replies = ['First reply', 'Second reply', 'Third reply']
    try:
        replies = [_turn(client).get_json() for _ in range(3)]
    finally:
        fake_llm.evaluation_gate.set()
        pool.shutdown(wait=True)
    assert [r['message'] for r in replies] == ['First reply', 'Second reply', 'Third reply']
    assert all(r['evaluation'] is None for r in replies)


def test_progress_is_shared_by_all_clients(client) -> None:
    client.post('/api/progress/complete', json={'location': 'bank'}, headers={'X-Session-ID': 'one'})
    snapshot = client.get('/api/progress', headers={'X-Session-ID': 'two'}).get_json()
    assert snapshot['stages']['bank'] == 1
