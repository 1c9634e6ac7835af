"""Orchestrates the subtitle generation pipeline."""

import logging
import os
import shutil
import time
from typing import Callable, List, Optional, Tuple

from .audio_extractor import AudioExtractor
from .document import SubtitleDocument
from .exceptions import FileSystemError, SubtitleSyncError
from .models import MediaReference, SubtitleEntry, SubtitleFormat, SubtitleTrack, TranscriptionTask
from .transcriber import TranscriptionOptions, TranscriptionOrchestrator, TranscriptionOutcome
from .translator import Translator
from .utils import ensure_dir_exists

logger = logging.getLogger(__name__)

class SubtitleGenerator:
    """
    Manages the end-to-end process of generating subtitles for a media file:
    open the media, transcribe it chunk by chunk, build a subtitle document,
    optionally translate it and write the resulting files.
    """

    def __init__(
        self,
        audio_extractor: AudioExtractor,
        orchestrator: TranscriptionOrchestrator,
        translator: Optional[Translator] = None,
        output_format=SubtitleFormat.SRT,
        temp_dir: str = "temp",
    ):
        """
        Initializes the SubtitleGenerator.

        Args:
            audio_extractor: Opens media files and slices their audio.
            orchestrator: Runs chunked transcription through a provider adapter.
            translator: Optional translator; required only when translating.
            output_format: Format of the written subtitle files.
            temp_dir: Directory where output files are staged before being moved into place.

        Raises:
            SubtitleSyncError: If the temporary directory is invalid or not writable.
        """
        self.audio_extractor = audio_extractor
        self.orchestrator = orchestrator
        self.translator = translator
        self.output_format = SubtitleFormat.coerce(output_format)

        self.temp_dir = temp_dir
        if not self.temp_dir:
            raise SubtitleSyncError("Configuration missing 'temp_dir'.")
        try:
            # Ensure temp dir exists and is writable early on
            ensure_dir_exists(self.temp_dir)
            test_file = os.path.join(self.temp_dir, f".subtitlesync_write_test_{int(time.time())}")
            with open(test_file, "w") as f:
                f.write("test")
            os.remove(test_file)
        except (FileSystemError, OSError, ValueError) as e:
            raise SubtitleSyncError(f"Temporary directory '{self.temp_dir}' is invalid or not writable: {e}") from e

    def _get_output_paths(self, media_path: str, output_dir: str,
                          target_language: Optional[str] = None) -> Tuple[str, Optional[str]]:
        """Determines output filenames based on the media path and format."""
        base_name = os.path.splitext(os.path.basename(media_path))[0]
        ext = self.output_format.value
        subtitle_path = os.path.join(output_dir, f"{base_name}.{ext}")
        translated_path = os.path.join(output_dir, f"{base_name}.{target_language}.{ext}") if target_language else None
        return subtitle_path, translated_path

    def _cleanup_temp_files(self, *file_paths: str) -> None:
        """Removes temporary files specified."""
        for file_path in file_paths:
            if file_path and os.path.exists(file_path):
                try:
                    os.remove(file_path)
                    logger.info(f"Cleaned up temporary file: {file_path}")
                except OSError as e:
                    logger.warning(f"Could not remove temporary file {file_path}: {e}", exc_info=False)

    def build_document(self, media: MediaReference, outcome: TranscriptionOutcome,
                       task: TranscriptionTask) -> SubtitleDocument:
        """
        Turns a finished run into a document. Whole-text runs get one cue per
        chunk, spanning that chunk.
        """
        if TranscriptionTask(task) is TranscriptionTask.WHOLE_TEXT:
            entries = [SubtitleEntry(start_time=chunk.start_time, end_time=chunk.end_time, text=text)
                       for chunk, text in outcome.chunk_texts]
        else:
            entries = outcome.entries
        base_name = os.path.splitext(media.name)[0]
        track = SubtitleTrack(file_name=f"{base_name}.{self.output_format.value}", format=self.output_format)
        document = SubtitleDocument(track)
        document.replace_entries(entries)
        return document

    def _stage(self, document: SubtitleDocument, final_path: str) -> str:
        staged_path = os.path.join(self.temp_dir, f"{os.path.basename(final_path)}.{int(time.time() * 1000)}.part")
        document.save(staged_path, self.output_format)
        return staged_path

    def _publish(self, staged: List[Tuple[str, str]]) -> List[str]:
        """
        Moves staged files to their final paths. If any move fails, files
        already moved are restored to what was there before (or removed if
        nothing was), so the outputs are replaced all together or not at all.

        Raises:
            FileSystemError: If a file could not be moved into place.
        """
        replaced: List[Tuple[str, Optional[str]]] = []
        try:
            for staged_path, final_path in staged:
                backup_path = None
                if os.path.exists(final_path):
                    backup_path = f"{staged_path}.bak"
                    shutil.copy2(final_path, backup_path)
                replaced.append((final_path, backup_path))
                shutil.move(staged_path, final_path)
                logger.info(f"Subtitles saved to: {final_path}")
        except OSError as e:
            logger.error(f"Could not write {final_path}: {e}. Restoring previous output files.")
            self._roll_back(replaced)
            raise FileSystemError(f"Could not write {final_path}: {e}") from e
        finally:
            self._cleanup_temp_files(*(f"{staged_path}.bak" for staged_path, _ in staged))
        return [final_path for _, final_path in staged]

    def _roll_back(self, replaced: List[Tuple[str, Optional[str]]]) -> None:
        for final_path, backup_path in reversed(replaced):
            try:
                if backup_path is not None:
                    shutil.copy2(backup_path, final_path)
                elif os.path.exists(final_path):
                    os.remove(final_path)
            except OSError as e:
                logger.error(f"Could not restore {final_path}: {e}")

    async def generate(
        self,
        media_path: str,
        output_dir: str,
        options: Optional[TranscriptionOptions] = None,
        target_language: Optional[str] = None,
        translation_progress: Optional[Callable[[int, int], None]] = None,
    ) -> List[str]:
        """
        Executes the full subtitle generation pipeline for a single media file.

        Existing files at the output paths are only replaced once every
        requested file has been rendered, so a failure never leaves a
        half-written result behind.

        Args:
            media_path: Path to the input audio or video file.
            output_dir: Directory to save the final subtitle files.
            options: Transcription options (language, task, chunk size, refinement).
            target_language: If set, a translated copy is written as well.
            translation_progress: Called with (done, total) after each translated cue.

        Returns:
            The paths of the written subtitle files.

        Raises:
            SubtitleSyncError: For any configuration or processing errors in the pipeline.
            FileNotFoundError: If the input media is not found.
        """
        options = options or TranscriptionOptions()
        if target_language and self.translator is None:
            raise SubtitleSyncError("Translation requested but no translator is configured.")

        start_time = time.time()
        logger.info(f"--- Starting SubtitleSync process for: {media_path} ---")
        ensure_dir_exists(output_dir)
        subtitle_path, translated_path = self._get_output_paths(media_path, output_dir, target_language)
        staged: List[Tuple[str, str]] = []

        try:
            # 1. Open media
            logger.info("Step 1: Probing media...")
            media = self.audio_extractor.open_media(media_path)

            # 2. Transcribe
            logger.info(f"Step 2: Transcribing audio ({TranscriptionTask(options.task).value})...")
            outcome = await self.orchestrator.run(media, options)
            document = self.build_document(media, outcome, options.task)
            if not len(document):
                raise SubtitleSyncError("Transcription produced no subtitles. Cannot proceed.")
            logger.info(f"Transcription complete. {len(document)} cue(s).")
            staged.append((self._stage(document, subtitle_path), subtitle_path))

            # 3. Translate
            if target_language:
                logger.info(f"Step 3: Translating cues to '{target_language}'...")
                translated_track, stats = await self.translator.translate_track(
                    document.track, target_language, translation_progress)
                if stats.translated == 0:
                    logger.warning("No cue was translated; the translated file repeats the original text.")
                staged.append((self._stage(SubtitleDocument(translated_track), translated_path), translated_path))

            # 4. Move rendered files into place
            logger.info("Step 4: Writing subtitle files...")
            written = self._publish(staged)

            logger.info(f"--- SubtitleSync process completed successfully in {time.time() - start_time:.2f} seconds ---")
            return written

        except (SubtitleSyncError, FileNotFoundError) as e:
            logger.error(f"SubtitleSync process failed: {e}", exc_info=False)
            raise
        except Exception as e:
            logger.critical(f"An unexpected critical error occurred during subtitle generation: {e}", exc_info=True)
            raise SubtitleSyncError(f"An unexpected critical error occurred: {e}") from e
        finally:
            self._cleanup_temp_files(*(staged_path for staged_path, _ in staged))
