"""Data models for MultiSub."""

from dataclasses import dataclass, field
from typing import Dict, List, Optional

@dataclass
class AudioChunk:
    """One slice of the source audio written by the transcoder."""
    index: int
    path: str
    duration_seconds: float

@dataclass
class ChunkSpan:
    """Nominal position of a chunk in source time, before it is cut."""
    index: int
    start_seconds: float
    duration_seconds: float

    @property
    def end_seconds(self) -> float:
        return self.start_seconds + self.duration_seconds

@dataclass
class Segment:
    """Represents a single timed chunk of text, local to its audio chunk."""
    start: float
    end: float
    text: str
    language: str = ""

@dataclass
class UsageStats:
    """Token and call counters. Only ever added together."""
    tokens_used: int = 0
    input_tokens: int = 0
    output_tokens: int = 0
    api_calls: int = 0

    def __add__(self, other: "UsageStats") -> "UsageStats":
        return UsageStats(
            tokens_used=self.tokens_used + other.tokens_used,
            input_tokens=self.input_tokens + other.input_tokens,
            output_tokens=self.output_tokens + other.output_tokens,
            api_calls=self.api_calls + other.api_calls,
        )

    def as_dict(self) -> Dict[str, int]:
        return {
            "tokens_used": self.tokens_used,
            "input_tokens": self.input_tokens,
            "output_tokens": self.output_tokens,
            "api_calls": self.api_calls,
        }

@dataclass
class TranscriptionResult:
    """Holds the structured output of transcribing one audio chunk."""
    language: Optional[str]
    segments: List[Segment] = field(default_factory=list)
    chunk_index: int = 0
    usage: UsageStats = field(default_factory=UsageStats)

@dataclass
class SubtitleEntry:
    """A globally timed, numbered cue of the merged document."""
    id: int
    start: float
    end: float
    text: str

@dataclass
class SubtitleDocument:
    entries: List[SubtitleEntry] = field(default_factory=list)
    detected_language: str = ""

    def __len__(self) -> int:
        return len(self.entries)

@dataclass
class TranslationChunk:
    """A contiguous batch of entries sized for one translation request."""
    index: int
    entries: List[SubtitleEntry]
    estimated_tokens: int = 0

@dataclass
class TranslationResponse:
    """Raw reply of a translation backend: interchange text plus usage."""
    content: str
    usage: UsageStats = field(default_factory=UsageStats)

@dataclass
class LanguageOutcome:
    """Per-language result of the translation stage."""
    language: str
    entries: List[SubtitleEntry] = field(default_factory=list)
    errors: List[Exception] = field(default_factory=list)
    output_path: Optional[str] = None

    @property
    def complete(self) -> bool:
        return not self.errors

@dataclass
class PipelineResult:
    """Summary handed back to the caller at the end of a run."""
    detected_language: str
    usage: UsageStats
    original_path: Optional[str] = None
    outputs: Dict[str, str] = field(default_factory=dict)
    failed_languages: Dict[str, List[str]] = field(default_factory=dict)
    audio_chunk_count: int = 0
    translation_chunk_count: int = 0
