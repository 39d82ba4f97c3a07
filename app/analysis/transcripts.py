"""
Transcript normalization
Voice providers deliver transcripts either as plain text or as a list of turns
"""

import json
from typing import Any, List, Union

Transcript = Union[str, List[Any], None]


def format_turn(turn: Any) -> str:
    """Render one turn as 'speaker: utterance'"""
    if isinstance(turn, str):
        return turn
    if not isinstance(turn, dict):
        return json.dumps(turn, ensure_ascii=False, default=str)

    if turn.get("content"):
        return f"{turn.get('role') or 'unknown'}: {turn['content']}"
    if turn.get("words") and isinstance(turn["words"], str):
        return f"{turn.get('speaker') or 'unknown'}: {turn['words']}"
    if turn.get("text"):
        speaker = turn.get("speaker")
        label = f"Speaker {speaker}" if speaker is not None else "unknown"
        return f"{label}: {turn['text']}"

    return json.dumps(turn, ensure_ascii=False, default=str)


def normalize_transcript(transcript: Transcript) -> str:
    """Flatten a transcript into newline-joined text, preserving turn order"""
    if transcript is None:
        return ""
    if isinstance(transcript, str):
        return transcript.strip()
    if isinstance(transcript, (list, tuple)):
        return "\n".join(format_turn(turn) for turn in transcript).strip()
    return str(transcript).strip()
