"""Command-Line Interface handler for SubtitleSync."""

import argparse
import asyncio
import logging
import os
import sys
from typing import List, Optional

from tqdm import tqdm

from .audio_extractor import AudioExtractor
from .config_loader import AppSettings, ConfigLoader
from .document import SubtitleDocument
from .exceptions import ConfigurationError, SubtitleSyncError
from .log_setup import setup_logging
from .models import ProgressStage, ProgressState, SubtitleFormat, TranscriptionTask
from .providers.base import ProviderAdapter, ProviderKind
from .providers.registry import create_adapter
from .subtitle_generator import SubtitleGenerator
from .transcriber import TranscriptionOptions, TranscriptionOrchestrator
from .translator import Translator

logger = logging.getLogger(__name__) # Get logger for this module

DEFAULT_CONFIG_PATH = "config.yaml"


async def _run_then_close(coroutine, adapters: List[ProviderAdapter]):
    """Awaits the command, then closes every adapter in the same event loop."""
    try:
        return await coroutine
    finally:
        for adapter in adapters:
            await adapter.aclose()


class StageProgressBar:
    """Shows orchestrator progress as one tqdm bar labelled with the current stage."""

    def __init__(self):
        self._bar: Optional[tqdm] = None

    def __call__(self, state: ProgressState) -> None:
        if state.stage in (ProgressStage.IDLE, ProgressStage.COMPLETE, ProgressStage.ERROR):
            if self._bar is not None and state.stage is ProgressStage.COMPLETE:
                self._bar.n = state.percentage
                self._bar.refresh()
            self.close()
            return
        if self._bar is None:
            self._bar = tqdm(total=100, unit="%", bar_format="{l_bar}{bar}| {n:.0f}/{total:.0f}%")
        self._bar.set_description(state.stage.value.capitalize(), refresh=False)
        self._bar.n = state.percentage
        self._bar.set_postfix_str(state.message[:40], refresh=False)
        self._bar.refresh()

    def close(self) -> None:
        if self._bar is not None:
            self._bar.close()
            self._bar = None


class CLIHandler:
    """Parses arguments and runs the requested SubtitleSync command."""

    def __init__(self):
        self.parser = self._create_parser()

    def _create_parser(self) -> argparse.ArgumentParser:
        """Creates the argument parser for the CLI."""
        common = argparse.ArgumentParser(add_help=False)
        common.add_argument(
            "-c", "--config",
            default=None,
            help=f"Path to the configuration YAML file (defaults to ./{DEFAULT_CONFIG_PATH} when present)."
        )
        common.add_argument(
            "--log-level",
            default="INFO",
            choices=["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"],
            help="Set the logging level for console and file output."
        )

        parser = argparse.ArgumentParser(
            prog="subtitlesync",
            description="SubtitleSync: transcribe, translate and edit SRT/WebVTT subtitles.",
            formatter_class=argparse.ArgumentDefaultsHelpFormatter
        )
        subparsers = parser.add_subparsers(dest="command", required=True)

        generate = subparsers.add_parser(
            "generate", parents=[common], formatter_class=argparse.ArgumentDefaultsHelpFormatter,
            help="Transcribe a media file into subtitles."
        )
        generate.add_argument("-m", "--media", required=True, help="Path to the input audio or video file.")
        generate.add_argument("-o", "--output-dir", required=True, help="Directory to save the generated subtitle files.")
        generate.add_argument("--translate", default=None, metavar="LANG",
                              help="Also write a copy translated to this language code (e.g. 'fa', 'de').")
        generate.add_argument("--refine", action="store_true",
                              help="Re-transcribe every segment with the refinement model.")
        generate.add_argument("--task", default=TranscriptionTask.TIMESTAMPED.value,
                              choices=[task.value for task in TranscriptionTask],
                              help="Timestamped segments, or one cue of plain text per chunk.")
        generate.add_argument("--provider", default=None, choices=[kind.value for kind in ProviderKind],
                              help="Override the transcription provider specified in config.")
        generate.add_argument("--model", default=None,
                              help="Override the transcription model specified in config.")
        generate.add_argument("--max-chunk-duration", default=None, type=float,
                              help="Override the seconds of audio sent per request.")
        generate.add_argument("--format", default=None, choices=["srt", "vtt"],
                              help="Override the output format specified in config.")
        generate.add_argument("--language", default=None,
                              help="Override the spoken language specified in config ('auto-detect' to detect).")
        generate.add_argument("--temp-dir", default=None,
                              help="Override the temporary directory specified in the config file.")
        generate.add_argument("--device", default=None, choices=["cuda", "cpu"],
                              help="Override the processing device for the local provider.")

        translate = subparsers.add_parser(
            "translate", parents=[common], formatter_class=argparse.ArgumentDefaultsHelpFormatter,
            help="Translate an existing subtitle file."
        )
        translate.add_argument("-i", "--input", required=True, help="Subtitle file to translate (.srt or .vtt).")
        translate.add_argument("-l", "--language", required=True, help="Target language code.")
        translate.add_argument("-o", "--output", required=True, help="Path of the translated subtitle file.")

        convert = subparsers.add_parser(
            "convert", parents=[common], formatter_class=argparse.ArgumentDefaultsHelpFormatter,
            help="Convert between SRT and WebVTT."
        )
        convert.add_argument("-i", "--input", required=True, help="Subtitle file to convert.")
        convert.add_argument("-o", "--output", required=True, help="Path of the converted subtitle file.")
        convert.add_argument("--format", default=None, choices=["srt", "vtt"],
                             help="Output format; inferred from the output extension when omitted.")

        shift = subparsers.add_parser(
            "shift", parents=[common], formatter_class=argparse.ArgumentDefaultsHelpFormatter,
            help="Shift every cue of a subtitle file by a fixed offset."
        )
        shift.add_argument("-i", "--input", required=True, help="Subtitle file to shift.")
        shift.add_argument("-s", "--seconds", required=True, type=float,
                           help="Offset in seconds; negative values move cues earlier.")
        shift.add_argument("-o", "--output", required=True, help="Path of the shifted subtitle file.")
        shift.add_argument("--media-duration", default=None, type=float,
                           help="Clamp shifted cues to this media duration in seconds.")

        return parser

    def _load_settings(self, config_path: Optional[str]) -> AppSettings:
        if config_path is None:
            if not os.path.isfile(DEFAULT_CONFIG_PATH):
                logger.info(f"No {DEFAULT_CONFIG_PATH} found; using default settings.")
                config = {}
            else:
                config = ConfigLoader().load_config(DEFAULT_CONFIG_PATH)
        else:
            config = ConfigLoader().load_config(config_path)
        settings = AppSettings.from_dict(config)
        settings.resolve_api_keys(os.environ)
        return settings

    def _create_adapter(self, settings: AppSettings, kind: ProviderKind, model: str,
                        temperature: Optional[float] = None) -> ProviderAdapter:
        kwargs = {}
        if kind is ProviderKind.LOCAL:
            kwargs['device'] = settings.device
        return create_adapter(settings.provider_settings(kind, temperature), model, **kwargs)

    def _create_translator(self, settings: AppSettings) -> Translator:
        adapter = self._create_adapter(settings, settings.llm_provider, settings.llm_model,
                                       settings.translation_temperature)
        return Translator(adapter, temperature=settings.translation_temperature)

    def run(self, argv: Optional[List[str]] = None) -> None:
        """Parses arguments, sets up logging, loads config, and runs the command."""
        args = self.parser.parse_args(argv)

        # --- Setup Logging ---
        log_level = getattr(logging, args.log_level.upper(), logging.INFO)
        setup_logging(log_level=log_level)

        # --- Load Configuration ---
        try:
            settings = self._load_settings(args.config)
        except (ConfigurationError, FileNotFoundError) as e:
            logger.critical(f"Failed to load configuration: {e}")
            sys.exit(1)

        # --- Re-configure Logging with settings from Config ---
        setup_logging(log_level=log_level, log_dir=settings.log_dir, log_file=settings.log_file)

        try:
            handler = getattr(self, f"_run_{args.command}")
            handler(args, settings)
            logger.info("SubtitleSync finished successfully.")
            sys.exit(0)
        except (SubtitleSyncError, FileNotFoundError) as e:
            # Catch errors originating from our application logic
            logger.error(f"A SubtitleSync error occurred: {e}")
            sys.exit(1)
        except KeyboardInterrupt:
            logger.warning("Process interrupted by user (Ctrl+C). Exiting.")
            sys.exit(1)
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred at the top level: {e}", exc_info=True)
            sys.exit(2) # Use a different exit code for unexpected crashes

    def _apply_overrides(self, args: argparse.Namespace, settings: AppSettings) -> None:
        """Applies generate's CLI flags on top of the loaded settings."""
        overrides = {
            'transcription_provider': args.provider,
            'transcription_model': args.model,
            'language': args.language,
            'max_chunk_duration': args.max_chunk_duration,
            'output_format': args.format,
            'temp_dir': args.temp_dir,
            'device': args.device,
        }
        for key, value in overrides.items():
            if value is None:
                continue
            logger.info(f"Overriding {key} from config with CLI argument: {value}")
            if key == 'transcription_provider':
                value = ProviderKind.coerce(value)
            elif key == 'output_format':
                value = SubtitleFormat.coerce(value)
            setattr(settings, key, value)
        settings.validate()

    def _run_generate(self, args: argparse.Namespace, settings: AppSettings) -> None:
        # --- Apply CLI Overrides ---
        self._apply_overrides(args, settings)

        if not os.path.isfile(args.media):
            raise FileNotFoundError(f"Input media file not found or is not a file: {args.media}")

        logger.info("Initializing SubtitleSync components...")
        adapter = self._create_adapter(settings, settings.transcription_provider, settings.transcription_model)
        refinement_adapter = None
        if args.refine:
            # Refinement falls back to the transcription provider and model.
            refinement_kind = settings.refinement_provider or settings.transcription_provider
            refinement_model = settings.refinement_model or settings.transcription_model
            if (refinement_kind, refinement_model) != (settings.transcription_provider, settings.transcription_model):
                refinement_adapter = self._create_adapter(settings, refinement_kind, refinement_model)
        translator = self._create_translator(settings) if args.translate else None
        adapters = [adapter]
        if refinement_adapter is not None:
            adapters.append(refinement_adapter)
        if translator is not None:
            adapters.append(translator.adapter)

        progress = StageProgressBar()
        generator = SubtitleGenerator(
            audio_extractor=AudioExtractor(ffmpeg_path=settings.ffmpeg_path),
            orchestrator=TranscriptionOrchestrator(adapter, refinement_adapter, progress_callback=progress),
            translator=translator,
            output_format=settings.output_format,
            temp_dir=settings.temp_dir,
        )
        options = TranscriptionOptions(
            language=settings.language,
            task=TranscriptionTask(args.task),
            max_chunk_duration=settings.max_chunk_duration,
            prompt=settings.prompt,
            refine=args.refine,
        )
        logger.info("Components initialized successfully.")

        with tqdm(unit="cue", desc="Translating", disable=not args.translate) as pbar:
            def on_translated(done: int, total: int) -> None:
                pbar.total = total
                pbar.update(done - pbar.n)

            try:
                written = asyncio.run(_run_then_close(
                    generator.generate(args.media, args.output_dir, options, args.translate, on_translated),
                    adapters))
            finally:
                progress.close()
        for path in written:
            print(path)

    def _run_translate(self, args: argparse.Namespace, settings: AppSettings) -> None:
        document = SubtitleDocument.load(args.input)
        translator = self._create_translator(settings)

        with tqdm(total=len(document), unit="cue", desc="Translating") as pbar:
            def on_translated(done: int, total: int) -> None:
                pbar.update(done - pbar.n)

            translated_track, stats = asyncio.run(_run_then_close(
                translator.translate_track(document.track, args.language, on_translated), [translator.adapter]))

        SubtitleDocument(translated_track).save(args.output)
        logger.info(f"Translated subtitles saved to {args.output} ({stats.translated} translated, "
                    f"{stats.skipped} skipped, {stats.kept_original} kept original).")

    def _run_convert(self, args: argparse.Namespace, settings: AppSettings) -> None:
        document = SubtitleDocument.load(args.input)
        document.save(args.output, args.format)
        logger.info(f"Converted {args.input} -> {args.output} ({len(document)} cues).")

    def _run_shift(self, args: argparse.Namespace, settings: AppSettings) -> None:
        document = SubtitleDocument.load(args.input)
        removed = document.shift_times(args.seconds, args.media_duration)
        if removed:
            logger.warning(f"{removed} cue(s) fell outside the media after shifting and were removed.")
        document.save(args.output)
        logger.info(f"Shifted subtitles saved to {args.output}.")


def main(argv: Optional[List[str]] = None) -> None:
    CLIHandler().run(argv)
