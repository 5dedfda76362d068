import os
import sys
import threading
from pathlib import Path

import pytest

ROOT = Path(__file__).resolve().parents[1]
if str(ROOT) not in sys.path:
    sys.path.insert(0, str(ROOT))

# Config is read at import time; keep tests offline and quiet
os.environ['OPENAI_API_KEY'] = ''
os.environ['RATELIMIT_ENABLED'] = 'false'
os.environ['ENABLE_ANALYTICS'] = 'false'
os.environ['ENABLE_DEV_TOOLS'] = 'false'

from linguatown.llm import TranscriptionError  # noqa: E402
from linguatown.progress import MemoryStore  # noqa: E402


class FakeLLM:
    """Stands in for LLMClient. Replies are chosen by which prompt is being answered."""

    def __init__(self):
        self.chat_replies = []
        self.evaluation_reply = 'OK: Well said!'
        self.hint_reply = 'HINT: Tell them what you would like to order.'
        self.transcription = 'Vorrei un caffè'
        self.transcribe_error = None
        self.evaluation_gate = None
        self.calls = []
        self.transcriptions = []
        self._lock = threading.Lock()

    def complete(self, messages, max_tokens=150, temperature=0.8):
        with self._lock:
            self.calls.append(messages)
        system = messages[0]['content'] if messages else ''
        if 'teacher checking a single message' in system:
            if self.evaluation_gate is not None:
                self.evaluation_gate.wait(5)
            reply = self.evaluation_reply
        elif 'coach helping' in system:
            reply = self.hint_reply
        else:
            with self._lock:
                reply = self.chat_replies.pop(0) if self.chat_replies else 'Sure, anything else?'
        if isinstance(reply, Exception):
            raise reply
        return reply

    def chat_calls(self):
        return [c for c in self.calls
                if 'teacher checking a single message' not in c[0]['content']
                and 'coach helping' not in c[0]['content']]

    def transcribe(self, audio, language=None, filename='audio.webm'):
        self.transcriptions.append((audio, language))
        if self.transcribe_error:
            raise TranscriptionError(self.transcribe_error)
        return self.transcription


@pytest.fixture
def store():
    return MemoryStore()


@pytest.fixture
def fake_llm():
    return FakeLLM()


@pytest.fixture
def app_module(monkeypatch, store, fake_llm):
    import app as module

    monkeypatch.setattr(module, 'llm', fake_llm)
    monkeypatch.setattr(module, 'kv_store', store)
    module.app.config['TESTING'] = True
    return module


@pytest.fixture
def client(app_module):
    with app_module.app.test_client() as c:
        yield c
