"""Thin wrapper around the OpenAI chat-completion and transcription endpoints."""

import logging
import time

import httpx
import openai
from openai import OpenAI

logger = logging.getLogger(__name__)

# Whisper hints are only passed for languages the app is tuned for
TRANSCRIPTION_LANGUAGES = ('en', 'it')


class UpstreamUnavailable(Exception):
    """The model could not be reached or refused the request."""

    def __init__(self, message='Upstream model unavailable', status=503):
        super().__init__(message)
        self.status = status


class TranscriptionError(Exception):
    EMPTY = 'empty'
    RATE_LIMITED = 'rate_limited'
    TOO_LARGE = 'too_large'
    UNAUTHENTICATED = 'unauthenticated'
    UPSTREAM = 'upstream'

    MESSAGES = {
        EMPTY: 'Could not transcribe audio',
        RATE_LIMITED: 'OpenAI API rate limit exceeded. Please try again later.',
        TOO_LARGE: 'Audio file is too large',
        UNAUTHENTICATED: 'OpenAI API authentication failed',
        UPSTREAM: 'Failed to process voice input',
    }
    STATUSES = {
        EMPTY: 400,
        RATE_LIMITED: 429,
        TOO_LARGE: 400,
        UNAUTHENTICATED: 500,
        UPSTREAM: 500,
    }

    def __init__(self, kind, detail=None):
        super().__init__(detail or self.MESSAGES[kind])
        self.kind = kind
        self.detail = detail

    @property
    def message(self) -> str:
        return self.MESSAGES[self.kind]

    @property
    def status(self) -> int:
        return self.STATUSES[self.kind]


class LLMClient:
    def __init__(self, api_key: str, model: str = 'gpt-4o-mini',
                 transcription_model: str = 'whisper-1', timeout: float = 30.0):
        self.client = OpenAI(api_key=api_key, timeout=timeout)
        self.model = model
        self.transcription_model = transcription_model

    def complete(self, messages: list, max_tokens: int = 150, temperature: float = 0.8) -> str:
        """Return the model's text for ``messages``; empty string when it says nothing."""
        try:
            resp = self.client.chat.completions.create(
                model=self.model,
                messages=messages,
                max_tokens=max_tokens,
                temperature=temperature,
            )
        except (openai.APITimeoutError, httpx.TimeoutException) as e:
            logger.warning('Timeout contacting OpenAI: %s', e)
            raise UpstreamUnavailable('Network timeout contacting OpenAI.', status=504) from e
        except (openai.APIConnectionError, httpx.ConnectError) as e:
            logger.warning('Cannot reach OpenAI: %s', e)
            raise UpstreamUnavailable('Cannot reach OpenAI.', status=503) from e
        except openai.OpenAIError as e:
            logger.error('OpenAI chat completion failed: %s', e)
            raise UpstreamUnavailable(str(e), status=503) from e
        if not resp.choices:
            return ''
        return (resp.choices[0].message.content or '').strip()

    def transcribe(self, audio: bytes, language=None, filename: str = 'audio.webm') -> str:
        kwargs = {}
        if language in TRANSCRIPTION_LANGUAGES:
            kwargs['language'] = language
        started = time.monotonic()
        try:
            result = self.client.audio.transcriptions.create(
                file=(filename, audio, 'audio/webm'),
                model=self.transcription_model,
                **kwargs,
            )
        except openai.AuthenticationError as e:
            raise TranscriptionError(TranscriptionError.UNAUTHENTICATED, str(e)) from e
        except openai.RateLimitError as e:
            raise TranscriptionError(TranscriptionError.RATE_LIMITED, str(e)) from e
        except openai.APIStatusError as e:
            if e.status_code == 413 or 'file size' in str(e).lower():
                raise TranscriptionError(TranscriptionError.TOO_LARGE, str(e)) from e
            raise TranscriptionError(TranscriptionError.UPSTREAM, str(e)) from e
        except (openai.OpenAIError, httpx.HTTPError) as e:
            raise TranscriptionError(TranscriptionError.UPSTREAM, str(e)) from e

        logger.info('Transcription completed in %.0fms', (time.monotonic() - started) * 1000)
        text = (getattr(result, 'text', '') or '').strip()
        if not text:
            raise TranscriptionError(TranscriptionError.EMPTY)
        return text


def create_client(config):
    """Build an LLMClient from Config, or None when no API key is set."""
    if not config.OPENAI_API_KEY:
        return None
    return LLMClient(
        api_key=config.OPENAI_API_KEY,
        model=config.OPENAI_MODEL,
        transcription_model=config.TRANSCRIPTION_MODEL,
        timeout=config.OPENAI_TIMEOUT,
    )
