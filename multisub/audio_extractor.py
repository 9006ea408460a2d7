"""Handles probing and splitting the audio track of a video using ffmpeg."""

import ffmpeg
import os
import logging
from typing import List, Optional

from .chunk_planner import ChunkPlanner
from .exceptions import ChunkingFailure, MediaNotFound
from .models import AudioChunk
from .utils import ensure_dir_exists

logger = logging.getLogger(__name__)

class AudioExtractor:
    """Cuts the audio track of a media file into fixed-length WAV chunks."""

    def __init__(self, ffmpeg_path: Optional[str] = None, ffprobe_path: Optional[str] = None):
        """
        Initializes the AudioExtractor.

        Args:
            ffmpeg_path: Optional path to the ffmpeg executable.
                         If None, assumes ffmpeg is in the system PATH.
            ffprobe_path: Optional path to the ffprobe executable.
        """
        self.ffmpeg_cmd = ffmpeg_path or 'ffmpeg'
        self.ffprobe_cmd = ffprobe_path or 'ffprobe'
        logger.info(f"Using ffmpeg command: {self.ffmpeg_cmd}")

    def probe_duration(self, media_path: str) -> float:
        """
        Returns the duration in seconds reported by ffprobe.

        Raises:
            ChunkingFailure: If ffprobe fails or reports no duration.
        """
        try:
            info = ffmpeg.probe(media_path, cmd=self.ffprobe_cmd)
        except ffmpeg.Error as e:
            stderr_output = e.stderr.decode('utf-8', errors='replace') if e.stderr else "No stderr output"
            logger.error(f"ffprobe failed for {media_path}: {stderr_output}")
            raise ChunkingFailure(f"ffprobe failed for {media_path}: {stderr_output}") from e

        duration = info.get('format', {}).get('duration')
        if duration is None:
            # Some containers only carry the duration on the stream
            for stream in info.get('streams', []):
                if stream.get('codec_type') == 'audio' and stream.get('duration'):
                    duration = stream['duration']
                    break
        if duration is None:
            raise ChunkingFailure(f"Could not determine duration of {media_path}")
        return float(duration)

    def split_audio(self, video_filepath: str, output_audio_dir: str, segment_length: float) -> List[AudioChunk]:
        """
        Extracts the audio stream into consecutive WAV chunks.

        Args:
            video_filepath: Path to the input video file.
            output_audio_dir: Directory owned by the current run for chunk files.
            segment_length: Nominal chunk length in seconds.

        Returns:
            AudioChunks ordered by index, each carrying its probed duration.

        Raises:
            MediaNotFound: If the input video file does not exist.
            ChunkingFailure: If ffmpeg fails or produces no chunks.
        """
        logger.info(f"Starting audio split for: {video_filepath}")
        if not os.path.isfile(video_filepath):
            raise MediaNotFound(f"Input video file not found: {video_filepath}")

        ensure_dir_exists(output_audio_dir)
        planner = ChunkPlanner(segment_length)
        spans = planner.plan_spans(self.probe_duration(video_filepath))

        chunks = []
        for span in spans:
            chunk_path = os.path.join(output_audio_dir, f"chunk_{span.index:04d}.wav")
            try:
                # acodec='pcm_s16le' -> standard WAV, ar=16000 / ac=1 -> 16kHz mono for ASR
                (
                    ffmpeg
                    .input(video_filepath, ss=span.start_seconds, t=span.duration_seconds)
                    .output(chunk_path, acodec='pcm_s16le', ar=16000, ac=1, vn=None)
                    .overwrite_output()
                    .run(cmd=self.ffmpeg_cmd, capture_stdout=True, capture_stderr=True)
                )
            except ffmpeg.Error as e:
                stderr_output = e.stderr.decode('utf-8', errors='replace') if e.stderr else "No stderr output"
                logger.error(f"ffmpeg failed on chunk {span.index} of {video_filepath}: {stderr_output}")
                raise ChunkingFailure(f"ffmpeg failed on chunk {span.index}: {stderr_output}") from e

            if not os.path.exists(chunk_path) or os.path.getsize(chunk_path) == 0:
                raise ChunkingFailure(f"ffmpeg wrote no audio for chunk {span.index}")

            duration = self.probe_duration(chunk_path)
            logger.debug(f"Chunk {span.index}: {chunk_path} ({duration:.3f}s, nominal {span.duration_seconds:.3f}s)")
            chunks.append(AudioChunk(index=span.index, path=chunk_path, duration_seconds=duration))

        logger.info(f"Split audio into {len(chunks)} chunk(s) in {output_audio_dir}")
        return ChunkPlanner.order_chunks(chunks)
