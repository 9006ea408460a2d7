"""Command-Line Interface handler for MultiSub."""

import argparse
import logging
import os
import sys
import threading

from tqdm import tqdm

from .config_loader import ConfigLoader, resolve_api_key
from .log_setup import setup_logging, setup_logging_from_config
from .audio_extractor import AudioExtractor
from .progress import ProgressReporter
from .tokens import TokenEstimator
from .transcriber import OpenAITranscriber, WhisperTranscriber
from .translator import HuggingFaceTranslator, OpenAITranslator
from .subtitle_generator import SubtitleGenerator
from .exceptions import AllTranslationsFailed, MultiSubError, ConfigurationError

logger = logging.getLogger(__name__) # Get logger for this module


def build_generator(config: dict, progress: ProgressReporter) -> SubtitleGenerator:
    """Instantiates the configured backends and wires them into a SubtitleGenerator."""
    device = config.get('device', 'cuda')
    hint = config.get('source_language_hint')
    api_key = None
    if 'openai' in (config['transcription_backend'], config['translation_backend']):
        api_key = resolve_api_key(config)
        if not api_key:
            raise ConfigurationError("OPENAI_API_KEY is required. Set it in the config, a .env file or the environment.")

    audio_extractor = AudioExtractor(
        ffmpeg_path=config.get('ffmpeg_path'),
        ffprobe_path=config.get('ffprobe_path')
    )
    if config['transcription_backend'] == 'whisper':
        transcriber = WhisperTranscriber(
            model_name=config.get('whisper_model', 'medium'),
            device=device,
            fp16=config.get('whisper_fp16', True) if device == 'cuda' else False,
            language_hint=hint
        )
    else:
        transcriber = OpenAITranscriber(api_key, model_name=config.get('transcription_model', 'whisper-1'),
                                        language_hint=hint)

    if config['translation_backend'] == 'huggingface':
        translator = HuggingFaceTranslator(
            model_template=config.get('huggingface_model_template'),
            device=device
        )
    else:
        translator = OpenAITranslator(api_key, model_name=config.get('translation_model', 'gpt-4o'),
                                      temperature=config.get('temperature', 0.3))

    return SubtitleGenerator(
        config=config,
        audio_extractor=audio_extractor,
        transcriber=transcriber,
        translator=translator,
        token_estimator=TokenEstimator(config.get('translation_model', 'gpt-4o')),
        progress=progress
    )


def _drain_progress(progress: ProgressReporter) -> None:
    """Renders progress events on a tqdm bar until the reporter closes."""
    with tqdm(total=100, unit="%", bar_format="{l_bar}{bar}| {n:.0f}/{total:.0f}%") as bar:
        for event in progress.events():
            bar.set_description_str(event.message[:40])
            bar.update(event.percent - bar.n)


class CLIHandler:
    """Parses arguments and orchestrates the MultiSub process."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        parser = argparse.ArgumentParser(
            description="MultiSub: Generate time-aligned subtitles for a video in several languages.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter # Show defaults in help
        )
        parser.add_argument(
            "-v", "--video",
            required=True,
            help="Path to the input video file."
        )
        parser.add_argument(
            "-o", "--output-dir",
            default=None, # Default taken from config file
            help="Directory to save the generated subtitle files (.srt)."
        )
        parser.add_argument(
            "-c", "--config",
            default="config.yaml",
            help="Path to the configuration YAML file."
        )
        parser.add_argument(
            "-l", "--languages",
            default=None,
            help="Comma-separated target language codes, e.g. 'ja,es'. Overrides the config."
        )
        parser.add_argument(
            "--temp-dir",
            default=None,
            help="Override the temporary directory specified in the config file."
        )
        parser.add_argument(
            "--log-level",
            default="INFO",
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            help="Set the logging level for console and file output."
        )
        parser.add_argument(
            "--device",
            default=None,
            choices=["cuda", "cpu"],
            help="Override the processing device for local models."
        )
        parser.add_argument(
            "--no-progress",
            action="store_true",
            help="Log to the console instead of drawing a progress bar."
        )
        return parser

    def run(self, argv=None) -> None:
        """Parses arguments, sets up logging, loads config, and runs the generator."""
        args = self.parser.parse_args(argv)

        log_level = getattr(logging, args.log_level.upper(), logging.INFO)
        setup_logging(log_level=log_level, log_dir='logs', log_file='multisub_init.log')

        # --- Load Configuration ---
        try:
            config = ConfigLoader().load_config(args.config)
        except ConfigurationError as e:
            logger.critical(f"Failed to load configuration from {args.config}: {e}")
            sys.exit(1)
        except FileNotFoundError:
            logger.critical(f"Configuration file not found: {args.config}")
            sys.exit(1)

        # --- Apply CLI Overrides ---
        if args.temp_dir:
            logger.info(f"Overriding temp_dir from config with CLI argument: {args.temp_dir}")
            config['temp_dir'] = args.temp_dir
        if args.device:
            logger.info(f"Overriding device from config with CLI argument: {args.device}")
            config['device'] = args.device
        if args.languages:
            config['target_languages'] = [lang.strip() for lang in args.languages.split(',') if lang.strip()]
        output_dir = args.output_dir or config.get('output_dir', 'output')

        # The progress bar owns the console; logs still go to the file
        show_progress = not args.no_progress
        setup_logging_from_config(config, log_level, console=not show_progress)

        if not os.path.isfile(args.video):
            logger.critical(f"Input video file not found or is not a file: {args.video}")
            sys.exit(1)

        progress = ProgressReporter()
        consumer = None
        if show_progress:
            consumer = threading.Thread(target=_drain_progress, args=(progress,), daemon=True)
            consumer.start()

        exit_code = 0
        result = None
        try:
            logger.info("Initializing MultiSub components...")
            generator = build_generator(config, progress)
            result = generator.generate(args.video, output_dir)
            if result.failed_languages:
                logger.warning(f"Incomplete languages: {', '.join(sorted(result.failed_languages))}")
            logger.info(f"Detected language: {result.detected_language}. Usage: {result.usage.as_dict()}")
        except AllTranslationsFailed as e:
            logger.error(f"{e}")
            result = e.result
            exit_code = 1
        except MultiSubError as e:
            logger.error(f"A MultiSub error occurred: {e}")
            print(f"Error: {e}", file=sys.stderr)
            exit_code = 1
        except KeyboardInterrupt:
            logger.warning("Process interrupted by user (Ctrl+C). Exiting.")
            exit_code = 1
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred at the top level: {e}", exc_info=True)
            exit_code = 2
        finally:
            progress.close()
            if consumer is not None:
                consumer.join(timeout=5)

        if result is not None:
            print(f"Detected language: {result.detected_language}")
            print(f"Usage: {result.usage.as_dict()}")
            print(f"  original: {result.original_path}")
            for lang, path in sorted(result.outputs.items()):
                print(f"  {lang}: {path}")
            for lang in sorted(result.failed_languages):
                print(f"  {lang}: FAILED")
        sys.exit(exit_code)


def main() -> None:
    """Console script entry point."""
    CLIHandler().run()
