"""Handles the SRT interchange format: serializing, parsing and writing subtitle files."""

import logging
import re
from abc import ABC, abstractmethod
from typing import List, Sequence

from .models import SubtitleEntry
from .exceptions import FormattingError
from .utils import format_time_srt, parse_time_srt

logger = logging.getLogger(__name__)

_BLOCK_SPLIT_RE = re.compile(r"\n\s*\n")
_FENCE_RE = re.compile(r"^```[\w-]*\s*$")

class SubtitleFormatter(ABC):
    """Abstract base class for subtitle formatters."""

    @abstractmethod
    def serialize(self, entries: Sequence[SubtitleEntry]) -> str:
        """
        Renders entries into the subtitle text format.

        Args:
            entries: Entries in display order.

        Returns:
            The serialized document, without a trailing blank line.
        """
        pass

    @abstractmethod
    def parse(self, content: str) -> List[SubtitleEntry]:
        """
        Parses subtitle text back into entries.

        Raises:
            FormattingError: If the content is not valid for the format.
        """
        pass

    def write(self, entries: Sequence[SubtitleEntry], output_path: str) -> None:
        """
        Writes entries to a UTF-8 subtitle file.

        Raises:
            FormattingError: If file writing fails.
        """
        logger.info(f"Writing {len(entries)} subtitle blocks to {output_path}")
        try:
            with open(output_path, 'w', encoding='utf-8') as f:
                f.write(self.serialize(entries))
                f.write("\n")
        except IOError as e:
            logger.error(f"Failed to write subtitle file to {output_path}: {e}", exc_info=True)
            raise FormattingError(f"Could not write subtitle file: {e}") from e


class SRTFormatter(SubtitleFormatter):
    """Formats subtitles into the SRT (SubRip Text) format."""

    def serialize_entry(self, entry: SubtitleEntry) -> str:
        start_time_str = format_time_srt(entry.start)
        end_time_str = format_time_srt(entry.end)
        return f"{entry.id}\n{start_time_str} --> {end_time_str}\n{entry.text.strip()}"

    def serialize(self, entries: Sequence[SubtitleEntry]) -> str:
        return "\n\n".join(self.serialize_entry(entry) for entry in entries)

    def parse(self, content: str) -> List[SubtitleEntry]:
        content = self._strip_fences(content.replace("\r\n", "\n").replace("﻿", ""))
        entries = []
        for block in _BLOCK_SPLIT_RE.split(content.strip()):
            lines = [line for line in block.strip().split("\n")]
            if not lines or not lines[0].strip():
                continue
            if len(lines) < 3:
                raise FormattingError(f"Incomplete SRT block: {block[:60]!r}")
            try:
                entry_id = int(lines[0].strip())
            except ValueError as e:
                raise FormattingError(f"Invalid SRT block number: {lines[0]!r}") from e
            if "-->" not in lines[1]:
                raise FormattingError(f"Missing time range in SRT block {entry_id}: {lines[1]!r}")
            start_str, end_str = lines[1].split("-->", 1)
            text = "\n".join(line.strip() for line in lines[2:]).strip()
            if not text:
                raise FormattingError(f"SRT block {entry_id} has no text")
            entries.append(SubtitleEntry(
                id=entry_id,
                start=parse_time_srt(start_str),
                end=parse_time_srt(end_str),
                text=text
            ))
        return entries

    @staticmethod
    def _strip_fences(content: str) -> str:
        """Drops markdown code fence lines a model may wrap its reply in."""
        lines = content.split("\n")
        return "\n".join(line for line in lines if not _FENCE_RE.match(line.strip()))
