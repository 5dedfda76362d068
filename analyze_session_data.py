#!/usr/bin/env python3
"""
Session Data Analysis Script

Summarises the learner interaction events written by the Lingua Town API.
Usage: python analyze_session_data.py [date_range]

Example: python analyze_session_data.py 20250301-20250307
"""

import json
import sys
from collections import Counter, defaultdict
from datetime import datetime, timedelta
from pathlib import Path

from linguatown.config import Config


def load_analytics_data(analytics_dir, date_filter=None):
    """Load all analytics data from JSONL files"""
    data = []
    analytics_path = Path(analytics_dir)

    if not analytics_path.exists():
        print(f"Analytics directory not found: {analytics_path}")
        return data

    for file_path in sorted(analytics_path.glob("session_data_*.jsonl")):
        date_str = file_path.stem.replace('session_data_', '')
        if date_filter and date_str not in date_filter:
            continue

        try:
            with open(file_path, 'r', encoding='utf-8') as f:
                for line in f:
                    if line.strip():
                        data.append(json.loads(line))
        except (OSError, ValueError) as e:
            print(f"Error reading {file_path}: {e}")

    return data


def parse_date_range(date_range):
    """'20250301-20250303' -> ['20250301', '20250302', '20250303']; a single date stays a single date."""
    if '-' not in date_range:
        return [date_range]
    start_date, end_date = date_range.split('-', 1)
    start = datetime.strptime(start_date, '%Y%m%d')
    end = datetime.strptime(end_date, '%Y%m%d')
    dates = []
    current = start
    while current <= end:
        dates.append(current.strftime('%Y%m%d'))
        current += timedelta(days=1)
    return dates


def _events(data, event_type):
    return [e for e in data if e.get('event_type') == event_type]


def analyze_user_engagement(data):
    print("\n=== USER ENGAGEMENT ANALYSIS ===")

    sessions = defaultdict(list)
    for entry in data:
        sessions[entry.get('session_id')].append(entry)
    session_lengths = [len(events) for events in sessions.values()]

    print(f"Total sessions: {len(sessions)}")
    if session_lengths:
        print(f"Average events per session: {sum(session_lengths) / len(session_lengths):.1f}")
        print(f"Max events in a session: {max(session_lengths)}")

    event_counts = Counter(entry.get('event_type') for entry in data)
    print("\nEvent distribution:")
    for event_type, count in event_counts.most_common():
        print(f"  {event_type}: {count}")


def analyze_conversations(data):
    """Starts, turns and completions per location."""
    print("\n=== CONVERSATION ANALYSIS ===")

    starts = _events(data, 'conversation_start')
    turns = _events(data, 'chat_turn')
    completions = _events(data, 'conversation_complete')
    if not (starts or turns):
        print("No conversations found.")
        return

    print("Conversations started by location:")
    for location, count in Counter(e['data'].get('location') for e in starts).most_common():
        print(f"  {location}: {count}")

    print("\nStarted by difficulty:")
    for difficulty, count in Counter(e['data'].get('difficulty') for e in starts).most_common():
        print(f"  {difficulty}: {count}")

    fallbacks = sum(1 for e in starts if e['data'].get('fallback'))
    if starts:
        print(f"\nStatic opening fallbacks: {fallbacks}/{len(starts)}")

    turns_by_location = Counter(e['data'].get('location') for e in turns)
    print("\nTurns by location:")
    for location, count in turns_by_location.most_common():
        print(f"  {location}: {count} turns")

    lengths = [e['data'].get('message_length') for e in turns if e['data'].get('message_length')]
    if lengths:
        print("\nMessage length stats:")
        print(f"  Average: {sum(lengths) / len(lengths):.1f} characters")
        print(f"  Max: {max(lengths)} characters")
        print(f"  Min: {min(lengths)} characters")

    finished_turns = [e['data'].get('turn_count', 0) for e in completions if e['data'].get('turn_count')]
    print(f"\nCompleted conversations: {len(completions)}")
    if finished_turns:
        print(f"Average turns to completion: {sum(finished_turns) / len(finished_turns):.1f}")


def analyze_corrections(data):
    print("\n=== CORRECTION ANALYSIS ===")

    graded = [e for e in _events(data, 'evaluation') + _events(data, 'chat_turn')
              if 'needs_correction' in e['data']]
    if not graded:
        print("No evaluations found.")
        return

    corrected = sum(1 for e in graded if e['data'].get('needs_correction'))
    print(f"Messages needing correction: {corrected}/{len(graded)} ({corrected / len(graded) * 100:.1f}%)")

    dropped = sum(1 for e in graded if e['data'].get('evaluation_dropped'))
    if dropped:
        print(f"Evaluations dropped after timeout: {dropped}")

    by_difficulty = defaultdict(lambda: [0, 0])
    for e in graded:
        bucket = by_difficulty[e['data'].get('difficulty')]
        bucket[1] += 1
        if e['data'].get('needs_correction'):
            bucket[0] += 1
    print("\nCorrection rate by difficulty:")
    for difficulty, (flagged, total) in sorted(by_difficulty.items(), key=lambda kv: str(kv[0])):
        print(f"  {difficulty}: {flagged}/{total}")

    hints = _events(data, 'hint_request')
    if hints:
        with_hint = sum(1 for e in hints if e['data'].get('has_hint'))
        print(f"\nHint requests: {len(hints)} ({with_hint} answered)")


def analyze_voice_usage(data):
    print("\n=== VOICE INPUT ANALYSIS ===")

    voice_events = _events(data, 'voice_transcription')
    if not voice_events:
        print("No voice input found.")
        return

    ok = [e for e in voice_events if e['data'].get('ok')]
    print(f"Transcriptions: {len(ok)}/{len(voice_events)} succeeded")
    failures = Counter(e['data'].get('kind') for e in voice_events if not e['data'].get('ok'))
    if failures:
        print("Failures:")
        for kind, count in failures.most_common():
            print(f"  {kind}: {count}")
    sizes = [e['data'].get('bytes', 0) for e in ok]
    if sizes:
        print(f"Average audio size: {sum(sizes) / len(sizes) / 1024:.1f} KB")


def analyze_advancement(data):
    print("\n=== LEVEL ADVANCEMENT ===")

    advances = [e for e in _events(data, 'conversation_complete') if e['data'].get('advanced')]
    if not advances:
        print("No level advances recorded.")
        return
    for level, count in Counter(e['data'].get('new_level') for e in advances).most_common():
        print(f"  advanced to {level}: {count}")


def generate_summary_report(data):
    print("\n" + "=" * 50)
    print("LINGUA TOWN SESSION SUMMARY REPORT")
    print("=" * 50)

    if not data:
        print("No data available for analysis.")
        return

    timestamps = [datetime.fromisoformat(e['timestamp'].replace('Z', '+00:00')) for e in data]
    print(f"Data period: {min(timestamps).strftime('%Y-%m-%d')} to {max(timestamps).strftime('%Y-%m-%d')}")
    print(f"Total events: {len(data)}")
    print(f"Unique sessions: {len(set(e.get('session_id') for e in data))}")

    daily_counts = Counter(ts.strftime('%Y-%m-%d') for ts in timestamps)
    busiest_day, max_events = daily_counts.most_common(1)[0]
    print(f"Most active day: {busiest_day} ({max_events} events)")


def main(argv=None, analytics_dir=None):
    argv = sys.argv[1:] if argv is None else argv
    analytics_dir = Path(analytics_dir or Config.ANALYTICS_DIR)

    date_filter = None
    if argv:
        try:
            date_filter = parse_date_range(argv[0])
        except ValueError:
            print(f"Invalid date range: {argv[0]} (expected YYYYMMDD or YYYYMMDD-YYYYMMDD)")
            return 2

    data = load_analytics_data(analytics_dir, date_filter)
    if not data:
        print("No analytics data found. Make sure ENABLE_ANALYTICS=true and learners have used the app.")
        return 1

    generate_summary_report(data)
    analyze_user_engagement(data)
    analyze_conversations(data)
    analyze_corrections(data)
    analyze_voice_usage(data)
    analyze_advancement(data)

    print(f"\nAnalysis complete. Analyzed {len(data)} events.")
    print(f"Analytics data location: {analytics_dir}")
    return 0


if __name__ == '__main__':
    sys.exit(main())
