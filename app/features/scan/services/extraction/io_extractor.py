"""
Keyword based input/output modality extraction.

Sentences that contain an input verb ("upload", "accepts", ...) form the input
zone, sentences with an output verb ("generates", "returns", ...) form the
output zone. A side with no zone is evaluated against the whole text, and a
modality mentioned outside of both zones is reported on both sides.
"""
import re
from typing import Dict, Iterable, List, Set, Tuple

from app.features.scan.schemas.scan import IOModalityResult, Modality

MODALITY_KEYWORDS: Dict[Modality, Tuple[str, ...]] = {
    Modality.TEXT: ("text", "string", "message", "prompt", "query", "chat"),
    Modality.IMAGE: ("image", "picture", "photo", "screenshot", "png", "jpg", "jpeg", "gif", "svg", "vision"),
    Modality.AUDIO: ("audio", "sound", "voice", "speech", "mp3", "wav", "music", "podcast"),
    Modality.VIDEO: ("video", "movie", "mp4", "footage", "stream"),
    Modality.FILE: ("file", "document", "pdf", "attachment", "csv", "spreadsheet", "docx"),
}

INPUT_VERBS = (
    "upload", "accept", "read", "take", "input", "receive",
    "submit", "send", "provide", "enter", "paste", "drop",
)

OUTPUT_VERBS = (
    "generate", "produce", "return", "export", "output", "create",
    "respond", "render", "emit", "convert", "download", "transcribe",
)

MCP_KEYWORDS = ("mcp", "model context protocol", "mcp-server", "modelcontextprotocol")

_SENTENCE_SPLIT = re.compile(r"(?<=[.!?;])\s+|\n+")

# A split right after these does not end a sentence
ABBREVIATIONS = ("e.g.", "i.e.", "etc.", "vs.", "incl.", "approx.")


def _verb_pattern(verbs: Iterable[str]) -> re.Pattern:
    # Word-start match so "uploads", "accepted" and "returning" all count
    return re.compile(r"\b(?:" + "|".join(re.escape(v) for v in verbs) + r")", re.IGNORECASE)


_INPUT_PATTERN = _verb_pattern(INPUT_VERBS)
_OUTPUT_PATTERN = _verb_pattern(OUTPUT_VERBS)


def split_sentences(text: str) -> List[str]:
    sentences: List[str] = []
    for fragment in _SENTENCE_SPLIT.split(text):
        fragment = fragment.strip()
        if not fragment:
            continue
        if sentences and sentences[-1].lower().endswith(ABBREVIATIONS):
            sentences[-1] = f"{sentences[-1]} {fragment}"
        else:
            sentences.append(fragment)
    return sentences


def find_modalities(text: str) -> Set[Modality]:
    """Every modality with at least one keyword in ``text`` (case-insensitive substring)."""
    lowered = text.lower()
    return {
        modality
        for modality, keywords in MODALITY_KEYWORDS.items()
        if any(keyword in lowered for keyword in keywords)
    }


def extract_modalities(text: str) -> IOModalityResult:
    if not text or not isinstance(text, str):
        return IOModalityResult()

    sentences = split_sentences(text)
    input_zone = " ".join(s for s in sentences if _INPUT_PATTERN.search(s))
    output_zone = " ".join(s for s in sentences if _OUTPUT_PATTERN.search(s))

    everywhere = find_modalities(text)
    inputs = find_modalities(input_zone) if input_zone else set(everywhere)
    outputs = find_modalities(output_zone) if output_zone else set(everywhere)

    unplaced = everywhere - inputs - outputs
    inputs |= unplaced
    outputs |= unplaced

    return IOModalityResult(
        input_modalities=frozenset(inputs),
        output_modalities=frozenset(outputs),
    )


def detect_mcp(text: str) -> bool:
    """True when the text advertises Model Context Protocol support."""
    lowered = (text or "").lower()
    return any(re.search(r"\b" + re.escape(keyword) + r"\b", lowered) for keyword in MCP_KEYWORDS)
