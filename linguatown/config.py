import os
from pathlib import Path

from dotenv import load_dotenv

# Load environment variables
load_dotenv()

BASE_DIR = Path(__file__).resolve().parent.parent


def _flag(name: str, default: str) -> bool:
    return os.getenv(name, default).strip().lower() in ('1', 'true', 'yes')


# ---------- Centralized Config ----------
class Config:
    ENV = os.getenv('ENV', 'development')
    LOG_LEVEL = os.getenv('LOG_LEVEL', 'INFO').upper()
    PORT = int(os.getenv('PORT', '5050'))
    VERSION = os.getenv('VERSION', '1.0.0')
    ALLOWED_ORIGINS = [o.strip() for o in (os.getenv('ALLOWED_ORIGINS') or '').split(',') if o.strip()]

    # OpenAI
    OPENAI_API_KEY = os.getenv('OPENAI_API_KEY')
    OPENAI_MODEL = os.getenv('OPENAI_MODEL', 'gpt-4o-mini')
    TRANSCRIPTION_MODEL = os.getenv('TRANSCRIPTION_MODEL', 'whisper-1')
    OPENAI_TIMEOUT = float(os.getenv('OPENAI_TIMEOUT', '30'))

    # Sampling parameters per call site
    CHAT_MAX_TOKENS = int(os.getenv('CHAT_MAX_TOKENS', '150'))
    CHAT_TEMPERATURE = float(os.getenv('CHAT_TEMPERATURE', '0.8'))
    EVAL_MAX_TOKENS = int(os.getenv('EVAL_MAX_TOKENS', '200'))
    EVAL_TEMPERATURE = float(os.getenv('EVAL_TEMPERATURE', '0.3'))
    HINT_MAX_TOKENS = int(os.getenv('HINT_MAX_TOKENS', '80'))
    HINT_TEMPERATURE = float(os.getenv('HINT_TEMPERATURE', '0.5'))

    # Input limits
    MAX_TURN_CHARS = int(os.getenv('MAX_TURN_CHARS', '600'))
    MAX_AUDIO_BYTES = int(os.getenv('MAX_AUDIO_BYTES', str(25 * 1024 * 1024)))

    # Turn handling
    EVALUATION_TIMEOUT_SECONDS = float(os.getenv('EVALUATION_TIMEOUT_SECONDS', '3'))
    WORKER_THREADS = int(os.getenv('WORKER_THREADS', '4'))

    # Rate limits
    RATELIMIT_ENABLED = _flag('RATELIMIT_ENABLED', 'true')
    DEFAULT_RATE_LIMIT = os.getenv('DEFAULT_RATE_LIMIT', '200/hour')
    RATE_LIMIT_CHAT = os.getenv('RATE_LIMIT_CHAT', '40/minute')
    RATE_LIMIT_EVALUATE = os.getenv('RATE_LIMIT_EVALUATE', '40/minute')
    RATE_LIMIT_HINT = os.getenv('RATE_LIMIT_HINT', '20/minute')
    RATE_LIMIT_VOICE = os.getenv('RATE_LIMIT_VOICE', '20/minute')

    # Local progress storage
    DATA_DIR = Path(os.getenv('DATA_DIR') or BASE_DIR / 'data')
    ENABLE_DEV_TOOLS = _flag('ENABLE_DEV_TOOLS', 'false')

    # Data collection settings
    ENABLE_ANALYTICS = _flag('ENABLE_ANALYTICS', 'true')
    ANALYTICS_SAMPLE_RATE = float(os.getenv('ANALYTICS_SAMPLE_RATE', '1.0'))  # 1.0 = 100%
    ANALYTICS_DIR = Path(os.getenv('ANALYTICS_DIR') or BASE_DIR / 'analytics')
