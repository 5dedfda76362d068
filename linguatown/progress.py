"""Learner progress: stages per location, completed topics and tier advancement.

Progress is a single JSON document per learning language kept in a small
key/value store. Storage problems never interrupt a conversation; they are
logged and the ledger carries on with an in-memory default.
"""

import json
import logging
import re
import tempfile
import threading
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from linguatown.catalog import select_topic
from linguatown.registry import (
    ALL_LOCATIONS,
    DEFAULT_LANGUAGE,
    DIFFICULTY_LEVELS,
    STAGES_PER_LOCATION,
    next_difficulty,
    normalize_language,
    require_difficulty,
)

logger = logging.getLogger(__name__)

STORAGE_KEY_PREFIX = 'lingua-town-progress'
NATIVE_LANGUAGE_KEY = 'lingua-town-native-language'
LEARNING_LANGUAGE_KEY = 'lingua-town-learning-language'


# ---------- Key/value stores ----------
class KeyValueStore:
    """String key/value storage. ``lock`` serializes read-modify-write cycles."""

    def __init__(self):
        self.lock = threading.RLock()

    def get(self, key: str) -> Optional[str]:
        raise NotImplementedError

    def set(self, key: str, value: str) -> None:
        raise NotImplementedError

    def delete(self, key: str) -> None:
        raise NotImplementedError


class MemoryStore(KeyValueStore):
    def __init__(self, initial=None):
        super().__init__()
        self._data = dict(initial or {})

    def get(self, key):
        return self._data.get(key)

    def set(self, key, value):
        self._data[key] = value

    def delete(self, key):
        self._data.pop(key, None)


class JsonFileStore(KeyValueStore):
    """One file per key under ``directory``. Failures are logged, never raised."""

    def __init__(self, directory):
        super().__init__()
        self.directory = Path(directory)

    def _path(self, key: str) -> Path:
        safe = re.sub(r'[^A-Za-z0-9_-]+', '_', key).strip('_') or 'default'
        return self.directory / f'{safe}.json'

    def get(self, key):
        path = self._path(key)
        try:
            return path.read_text(encoding='utf-8')
        except FileNotFoundError:
            return None
        except (OSError, UnicodeDecodeError) as e:
            logger.warning('Progress read failed for %s: %s', path, e)
            return None

    def set(self, key, value):
        path = self._path(key)
        tmp = None
        try:
            self.directory.mkdir(parents=True, exist_ok=True)
            with tempfile.NamedTemporaryFile('w', encoding='utf-8', dir=self.directory,
                                             prefix=f'.{path.stem}-', suffix='.tmp', delete=False) as f:
                tmp = Path(f.name)
                f.write(value)
            tmp.replace(path)
        except OSError as e:
            logger.warning('Progress write failed for %s: %s', path, e)
            if tmp is not None:
                tmp.unlink(missing_ok=True)

    def delete(self, key):
        try:
            self._path(key).unlink()
        except FileNotFoundError:
            pass
        except OSError as e:
            logger.warning('Progress delete failed for %s: %s', key, e)


# ---------- Progress records ----------
@dataclass
class LocationProgress:
    completed_stages: int = 0
    completed_at: list = field(default_factory=list)
    completed_topics: list = field(default_factory=list)

    @classmethod
    def from_dict(cls, data) -> 'LocationProgress':
        data = data or {}
        stages = int(data.get('completed_stages', 0) or 0)
        return cls(
            completed_stages=max(0, min(stages, STAGES_PER_LOCATION)),
            completed_at=[str(t) for t in data.get('completed_at', []) or []],
            completed_topics=[str(t) for t in data.get('completed_topics', []) or []],
        )

    def to_dict(self) -> dict:
        return {
            'completed_stages': self.completed_stages,
            'completed_at': list(self.completed_at),
            'completed_topics': list(self.completed_topics),
        }


@dataclass
class UserProgress:
    global_level: str = DIFFICULTY_LEVELS[0]
    difficulties: dict = field(default_factory=dict)

    @classmethod
    def from_dict(cls, data) -> 'UserProgress':
        level = data.get('global_level')
        if level not in DIFFICULTY_LEVELS:
            raise ValueError(f'Unknown global_level: {level!r}')
        difficulties = {}
        for tier, locations in (data.get('difficulties') or {}).items():
            if tier not in DIFFICULTY_LEVELS or not isinstance(locations, dict):
                continue
            difficulties[tier] = {
                slug: LocationProgress.from_dict(loc) for slug, loc in locations.items()
            }
        return cls(global_level=level, difficulties=difficulties)

    def to_dict(self) -> dict:
        return {
            'global_level': self.global_level,
            'difficulties': {
                tier: {slug: loc.to_dict() for slug, loc in locations.items()}
                for tier, locations in self.difficulties.items()
            },
        }

    def location(self, tier: str, slug: str, create: bool = False) -> Optional[LocationProgress]:
        locations = self.difficulties.get(tier)
        if locations is None:
            if not create:
                return None
            locations = self.difficulties[tier] = {}
        record = locations.get(slug)
        if record is None and create:
            record = locations[slug] = LocationProgress()
        return record


class ProgressStore:
    """Loads and saves UserProgress for one learning language."""

    def __init__(self, kv: KeyValueStore, learning_language: str = DEFAULT_LANGUAGE):
        self.kv = kv
        self.learning_language = normalize_language(learning_language)

    @property
    def lock(self):
        return self.kv.lock

    @property
    def key(self) -> str:
        return f'{STORAGE_KEY_PREFIX}-{self.learning_language}'

    def _read(self, key: str) -> Optional[UserProgress]:
        try:
            raw = self.kv.get(key)
        except Exception as e:
            logger.error('Failed to read progress under %s: %s', key, e)
            return None
        if not raw:
            return None
        try:
            return UserProgress.from_dict(json.loads(raw))
        except (ValueError, TypeError, AttributeError) as e:
            logger.warning('Ignoring unreadable progress under %s: %s', key, e)
            return None

    def load(self) -> UserProgress:
        progress = self._read(self.key)
        if progress is not None:
            return progress
        # Progress saved before keys were scoped by language
        legacy = self._read(STORAGE_KEY_PREFIX)
        if legacy is not None:
            logger.info('Migrating unscoped progress to %s', self.key)
            self.save(legacy)
            return legacy
        return UserProgress()

    def save(self, progress: UserProgress) -> None:
        try:
            self.kv.set(self.key, json.dumps(progress.to_dict(), ensure_ascii=False))
        except Exception as e:
            logger.error('Failed to save progress: %s', e)

    def reset(self) -> None:
        try:
            self.kv.delete(self.key)
        except Exception as e:
            logger.error('Failed to reset progress: %s', e)


@dataclass(frozen=True)
class CompletionResult:
    advanced: bool
    new_level: Optional[str] = None

    def to_dict(self) -> dict:
        data = {'advanced': self.advanced}
        if self.new_level:
            data['newLevel'] = self.new_level
        return data


def _utcnow():
    return datetime.now(timezone.utc)


class ProgressLedger:
    def __init__(self, store: ProgressStore, locations=ALL_LOCATIONS, clock=_utcnow):
        self.store = store
        self.locations = tuple(locations)
        self.clock = clock

    @property
    def progress(self) -> UserProgress:
        return self.store.load()

    @property
    def current_level(self) -> str:
        return self.progress.global_level

    def record_completion(self, location: str) -> CompletionResult:
        """Count one finished conversation at ``location`` for the current tier.

        Stages stop at STAGES_PER_LOCATION. When every location has reached
        that at the current tier the learner moves up one tier.
        """
        with self.store.lock:
            progress = self.store.load()
            level = progress.global_level
            record = progress.location(level, location, create=True)
            if record.completed_stages < STAGES_PER_LOCATION:
                record.completed_stages += 1
                record.completed_at.append(self.clock().isoformat())
            self.store.save(progress)

            if self._all_complete(progress, level):
                new_level = next_difficulty(level)
                if new_level:
                    progress.global_level = new_level
                    self.store.save(progress)
                    logger.info('Advanced from %s to %s', level, new_level)
                    return CompletionResult(advanced=True, new_level=new_level)
        return CompletionResult(advanced=False)

    def _all_complete(self, progress: UserProgress, level: str) -> bool:
        for slug in self.locations:
            record = progress.location(level, slug)
            if record is None or record.completed_stages < STAGES_PER_LOCATION:
                return False
        return True

    def mark_topic_complete(self, location: str, difficulty: str, topic_id: str) -> None:
        require_difficulty(difficulty)
        with self.store.lock:
            progress = self.store.load()
            record = progress.location(difficulty, location, create=True)
            if topic_id not in record.completed_topics:
                record.completed_topics.append(topic_id)
                self.store.save(progress)

    def completed_topics(self, location: str, difficulty: str) -> list:
        require_difficulty(difficulty)
        record = self.progress.location(difficulty, location)
        return list(record.completed_topics) if record else []

    def next_topic(self, location: str, difficulty: str, rng=None):
        return select_topic(location, difficulty, self.completed_topics(location, difficulty), rng=rng)

    def location_stages(self, location: str) -> int:
        progress = self.progress
        record = progress.location(progress.global_level, location)
        return record.completed_stages if record else 0

    def all_location_stages(self) -> dict:
        progress = self.progress
        stages = {}
        for slug in self.locations:
            record = progress.location(progress.global_level, slug)
            stages[slug] = record.completed_stages if record else 0
        return stages

    def is_location_complete(self, location: str) -> bool:
        return self.location_stages(location) >= STAGES_PER_LOCATION

    def can_advance(self) -> bool:
        return all(s >= STAGES_PER_LOCATION for s in self.all_location_stages().values())

    def total_progress(self):
        stages = self.all_location_stages()
        return sum(stages.values()), len(self.locations) * STAGES_PER_LOCATION

    def snapshot(self) -> dict:
        completed, total = self.total_progress()
        return {
            'language': self.store.learning_language,
            'level': self.current_level,
            'stages': self.all_location_stages(),
            'completed': completed,
            'total': total,
            'canAdvance': self.can_advance(),
        }

    def reset(self) -> None:
        with self.store.lock:
            self.store.reset()

    # ---- dev tools ----
    def set_level(self, level: str) -> None:
        require_difficulty(level)
        with self.store.lock:
            progress = self.store.load()
            progress.global_level = level
            self.store.save(progress)

    def set_location_stages(self, difficulty: str, location: str, value: int) -> int:
        require_difficulty(difficulty)
        value = max(0, min(int(value), STAGES_PER_LOCATION))
        with self.store.lock:
            progress = self.store.load()
            progress.location(difficulty, location, create=True).completed_stages = value
            self.store.save(progress)
        return value


# ---------- Language preferences ----------
def get_learning_language(kv: KeyValueStore) -> str:
    return normalize_language(kv.get(LEARNING_LANGUAGE_KEY))


def set_learning_language(kv: KeyValueStore, language: str) -> str:
    language = normalize_language(language)
    kv.set(LEARNING_LANGUAGE_KEY, language)
    return language


def get_native_language(kv: KeyValueStore) -> str:
    return normalize_language(kv.get(NATIVE_LANGUAGE_KEY))
