"""Clean raw completion text into a single utterance.

Completion APIs tend to echo the speaker label, wrap the line in quotes and,
near the token limit, stop in the middle of a sentence. format_response()
removes all three so the reply can be shown as-is.
"""

SENTENCE_TERMINATORS = ".!?"


def strip_speaker_label(text: str, name: str) -> str:
    """Remove leading "<name>:" labels, e.g. "Aria: Hi." → "Hi."."""
    if not name:
        return text.strip()
    label = f"{name}:"
    text = text.strip()
    while text.startswith(label):
        text = text[len(label):].strip()
    return text


def truncate_to_sentence(text: str) -> str:
    """Cut everything after the last sentence terminator.

    Text whose last terminator sits at index 0 or 1 (or that has none) is
    returned unchanged.
    """
    last = max(text.rfind(ch) for ch in SENTENCE_TERMINATORS)
    if last > 1:
        return text[:last + 1]
    return text


def format_response(raw: str, npc_name: str) -> str:
    """Normalize a raw completion into the utterance shown to the player."""
    text = raw.replace('"', "").strip()
    text = strip_speaker_label(text, npc_name)
    return truncate_to_sentence(text)
