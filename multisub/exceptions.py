"""Custom Exceptions for the MultiSub application."""

from typing import Optional


class MultiSubError(Exception):
    """Base class for exceptions in this module."""
    pass

class ConfigurationError(MultiSubError):
    """Exception raised for errors in configuration loading."""
    pass

class FileSystemError(MultiSubError):
    """Exception raised for file system related errors (permissions, not found etc)."""
    pass

class MediaNotFound(MultiSubError):
    """Exception raised when the input media path is missing or not a file."""
    pass

class ChunkingFailure(MultiSubError):
    """Exception raised when the transcoder cannot split the audio into chunks."""
    pass

class TranscriptionError(MultiSubError):
    """Exception raised by a speech-to-text backend."""
    pass

class TranscriptionFailure(MultiSubError):
    """Exception raised when transcribing one audio chunk fails. Fatal for the run."""

    def __init__(self, chunk_index: int, message: str):
        super().__init__(f"Transcription failed for chunk {chunk_index}: {message}")
        self.chunk_index = chunk_index

class EmptyTranscription(MultiSubError):
    """Exception raised when an audio chunk produced no segments."""

    def __init__(self, chunk_index: int):
        super().__init__(f"Chunk {chunk_index} produced no transcribed segments")
        self.chunk_index = chunk_index

class DegenerateSegment(MultiSubError):
    """Exception raised for a segment that ends before it starts."""
    pass

class TranslationError(MultiSubError):
    """Exception raised by a translation backend."""
    pass

class ChunkScopedError(MultiSubError):
    """Base class for failures that only affect one (chunk, language) pair."""

    def __init__(self, chunk_index: int, language: str, message: str):
        super().__init__(f"[chunk {chunk_index}, {language}] {message}")
        self.chunk_index = chunk_index
        self.language = language

class ChunkTooLarge(ChunkScopedError):
    """The prompt for a translation chunk leaves no room for a response."""
    pass

class TranslationFormatError(ChunkScopedError):
    """The translated response does not match the entries that were sent."""
    pass

class TranslationCallFailed(ChunkScopedError):
    """The translation collaborator raised for one chunk."""
    pass

class PartialLanguageFailure(MultiSubError):
    """A target language with one or more failed chunks. Recorded, not raised."""

    def __init__(self, language: str, failed_chunks: list):
        super().__init__(f"Translation to '{language}' incomplete; failed chunks: {failed_chunks}")
        self.language = language
        self.failed_chunks = failed_chunks

class AllTranslationsFailed(MultiSubError):
    """No requested target language was translated completely."""

    def __init__(self, message: str, result: Optional[object] = None):
        super().__init__(message)
        self.result = result

class FormattingError(MultiSubError):
    """Exception raised for errors during subtitle formatting or parsing."""
    pass
