"""
Download orchestration: task flags, extraction tool processes and the worker pool.
"""

import asyncio
import logging
import time
from collections import deque
from dataclasses import dataclass
from functools import partial
from pathlib import Path
from typing import Any, Awaitable, Callable, Dict, List, Optional, Sequence, Tuple

from config import (
    AUDIO_CONTAINER,
    ITEM_URL_TEMPLATE,
    OUTPUT_TEMPLATE,
    TASK_BUFFER_SIZE,
    TASK_FRAGMENT_RETRIES,
    TASK_HTTP_CHUNK_SIZE,
    TASK_OUTPUT_TAIL_LINES,
    TASK_RETRIES,
    VIDEO_CONTAINER,
)
from errors import FormatUnavailableError, SpawnError, TaskError, is_format_unavailable
from models import (
    ConcurrencyProfile,
    DownloadTask,
    Item,
    ItemStatus,
    StartDownloadCommand,
    TargetKind,
    TaskAttempt,
    Variant,
)
from progress_parser import is_postprocessing_line, parse_progress_line
from utils import build_item_url, cookie_flags, extraction_command

logger = logging.getLogger(__name__)

EventEmitter = Callable[[str, Dict[str, Any]], Awaitable[None]]
LineHandler = Callable[[str], Awaitable[None]]


def build_base_flags(session_dir: Path, profile: ConcurrencyProfile) -> List[str]:
    """Flags shared by every attempt of every task in a run."""
    return [
        "--no-warnings",
        "--no-playlist",
        "--newline",
        "--progress",
        "--output",
        str(session_dir / OUTPUT_TEMPLATE),
        "--retries",
        str(TASK_RETRIES),
        "--fragment-retries",
        str(TASK_FRAGMENT_RETRIES),
        "--concurrent-fragments",
        str(profile.fragment_parallelism),
        "--buffer-size",
        TASK_BUFFER_SIZE,
        "--http-chunk-size",
        TASK_HTTP_CHUNK_SIZE,
        *cookie_flags(),
    ]


def _audio_extract_flags(audio_quality_index: str) -> List[str]:
    return [
        "--extract-audio",
        "--audio-format",
        AUDIO_CONTAINER,
        "--audio-quality",
        audio_quality_index,
    ]


def _video_container_flags(recode: bool) -> List[str]:
    flags = ["--merge-output-format", VIDEO_CONTAINER]
    if recode:
        flags.extend(["--recode-video", VIDEO_CONTAINER])
    return flags


def build_generic_format_flags(target: TargetKind, audio_quality_index: str, height_cap: int) -> List[str]:
    """Format flags used when no variant was chosen, and for the fallback attempt."""
    if target is TargetKind.AUDIO:
        return ["--format", "bestaudio/best", *_audio_extract_flags(audio_quality_index)]

    cap = f"[height<={height_cap}]"
    selector = "/".join(
        (
            f"best{cap}[vcodec!=none][acodec!=none][ext={VIDEO_CONTAINER}]",
            f"bestvideo{cap}[ext={VIDEO_CONTAINER}]+bestaudio[ext=m4a]",
            f"bestvideo{cap}+bestaudio",
            f"best{cap}",
        )
    )
    return ["--format", selector, *_video_container_flags(recode=True)]


def build_variant_format_flags(variant: Variant, audio_quality_index: str) -> List[str]:
    """Format flags for an explicitly chosen variant."""
    if variant.has_video and variant.has_audio:
        needs_recode = bool(variant.container) and variant.container.lower() != VIDEO_CONTAINER
        return ["--format", variant.id, *_video_container_flags(recode=needs_recode)]

    if variant.has_video:
        return ["--format", f"{variant.id}+bestaudio", *_video_container_flags(recode=True)]

    if variant.has_audio:
        return ["--format", variant.id, *_audio_extract_flags(audio_quality_index)]

    # Catalog data without codec info; let the tool decide.
    return ["--format", variant.id]


def build_task_flags(item: Item, command: StartDownloadCommand, session_dir: Path) -> List[str]:
    """Flags for the primary attempt of an item."""
    base = build_base_flags(session_dir, command.profile)
    if item.chosen_variant is None:
        return base + build_fallback_format_flags(command)
    return base + build_variant_format_flags(item.chosen_variant, command.audio_quality_index)


def build_fallback_flags(command: StartDownloadCommand, session_dir: Path) -> List[str]:
    """Flags for the single retry after a "format unavailable" failure."""
    return build_base_flags(session_dir, command.profile) + build_fallback_format_flags(command)


def build_fallback_format_flags(command: StartDownloadCommand) -> List[str]:
    return build_generic_format_flags(command.target, command.audio_quality_index, command.height_cap)


@dataclass
class ProcessOutcome:
    """Exit status and the last lines printed by a finished process."""

    returncode: int
    output_tail: str = ""

    @property
    def error_text(self) -> str:
        lines = [line for line in self.output_tail.splitlines() if line.strip()]
        for line in reversed(lines):
            if line.startswith("ERROR:"):
                return line
        return lines[-1] if lines else f"exit status {self.returncode}"


class ExtractionRunner:
    """Runs the extraction tool and feeds its output to a line handler."""

    def __init__(
        self,
        command: Optional[Sequence[str]] = None,
        tail_lines: int = TASK_OUTPUT_TAIL_LINES,
    ):
        self.command = list(command) if command else extraction_command()
        self.tail_lines = tail_lines

    async def run(self, url: str, flags: Sequence[str], on_line: LineHandler) -> ProcessOutcome:
        argv = [*self.command, *flags, url]
        try:
            process = await asyncio.create_subprocess_exec(
                *argv,
                stdout=asyncio.subprocess.PIPE,
                stderr=asyncio.subprocess.STDOUT,
                limit=1024 * 1024,
            )
        except OSError as error:
            raise SpawnError(f"Cannot start {self.command[0]}: {error}") from error

        tail: deque = deque(maxlen=self.tail_lines)
        try:
            async for raw in process.stdout:
                line = raw.decode("utf-8", errors="replace").rstrip("\r\n")
                if not line.strip():
                    continue
                tail.append(line)
                await on_line(line)
            returncode = await process.wait()
        finally:
            if process.returncode is None:
                self._kill(process)
                await process.wait()

        return ProcessOutcome(returncode=returncode, output_tail="\n".join(tail))

    @staticmethod
    def _kill(process: asyncio.subprocess.Process) -> None:
        try:
            process.kill()
        except ProcessLookupError:
            pass


class DownloadOrchestrator:
    """
    Runs one ``start_download`` request.

    Items are served in submission order from a FIFO queue by at most
    ``profile.task_parallelism`` workers. A failed item never stalls the run:
    it is reported through ``item_complete`` with ``status="error"``. Exactly
    one ``run_complete`` is emitted once the queue is drained and no task is
    active.
    """

    def __init__(
        self,
        command: StartDownloadCommand,
        session_dir: Path,
        emit: EventEmitter,
        runner: Optional[ExtractionRunner] = None,
        download_url: str = "",
        item_url_template: str = ITEM_URL_TEMPLATE,
    ):
        self.command = command
        self.session_dir = Path(session_dir)
        self.emit = emit
        self.runner = runner or ExtractionRunner()
        self.download_url = download_url
        self.item_url_template = item_url_template

        self.queue: asyncio.Queue = asyncio.Queue()
        self.active = 0
        self.max_active = 0
        self.completed = 0
        self.failed = 0
        self._finished = False

    @property
    def parallelism(self) -> int:
        return self.command.profile.task_parallelism

    async def run(self) -> None:
        items = self.command.items
        logger.info(
            "Starting run of %s item(s) in %s (profile=%s target=%s quality=%s)",
            len(items),
            self.session_dir,
            self.command.profile.value,
            self.command.target.value,
            self.command.quality,
        )

        for item in items:
            self.queue.put_nowait(item)

        workers = [
            asyncio.create_task(self._worker_loop(idx))
            for idx in range(min(self.parallelism, len(items)))
        ]
        for _ in workers:
            self.queue.put_nowait(None)

        try:
            await asyncio.gather(*workers)
        except asyncio.CancelledError:
            for worker in workers:
                worker.cancel()
            await asyncio.gather(*workers, return_exceptions=True)
            logger.info("Run in %s cancelled", self.session_dir)
            raise

        await self._finish()

    async def _worker_loop(self, worker_id: int) -> None:
        """Consume queue entries until sentinel is received."""
        while True:
            item = await self.queue.get()
            if item is None:
                self.queue.task_done()
                break

            self._mark_task_started()
            try:
                await self._process_item(item)
            except Exception:
                logger.exception("Unexpected worker error (worker=%s item=%s)", worker_id, item.id)
            finally:
                self._mark_task_finished()
                self.queue.task_done()

    def _mark_task_started(self) -> None:
        self.active += 1
        self.max_active = max(self.max_active, self.active)

    def _mark_task_finished(self) -> None:
        if self.active > 0:
            self.active -= 1

    async def _process_item(self, item: Item) -> None:
        item.advance(ItemStatus.PREPARING)
        try:
            ok = await self._execute(item)
        except Exception as error:
            logger.exception("Unexpected error while downloading %s", item.id)
            item.error_message = str(error)
            ok = False

        if ok:
            item.advance(ItemStatus.COMPLETED)
            self.completed += 1
        else:
            item.advance(ItemStatus.ERROR)
            self.failed += 1

        await self._emit("item_complete", {"itemId": item.id, "status": item.status.value})

    def _build_attempt_plan(self, item: Item) -> List[Tuple[TaskAttempt, List[str]]]:
        primary = build_task_flags(item, self.command, self.session_dir)
        fallback = build_fallback_flags(self.command, self.session_dir)
        if fallback == primary:
            return [(TaskAttempt.PRIMARY, primary)]
        return [(TaskAttempt.PRIMARY, primary), (TaskAttempt.FALLBACK, fallback)]

    async def _execute(self, item: Item) -> bool:
        url = build_item_url(item.id, self.item_url_template)
        for attempt, flags in self._build_attempt_plan(item):
            task = DownloadTask(item=item, flags=flags, attempt=attempt, start_ts=time.time())
            try:
                await self._run_attempt(task, url)
                return True
            except FormatUnavailableError as error:
                task.error_message = item.error_message = str(error)
                logger.warning(
                    "Requested format unavailable for %s (%s attempt): %s",
                    item.id,
                    attempt.value,
                    error,
                )
            except (SpawnError, TaskError) as error:
                task.error_message = item.error_message = str(error)
                logger.error("Download failed for %s (%s attempt): %s", item.id, attempt.value, error)
                return False
            finally:
                task.end_ts = time.time()
        return False

    async def _run_attempt(self, task: DownloadTask, url: str) -> None:
        outcome = await self.runner.run(url, task.flags, partial(self._handle_line, task.item))
        if outcome.returncode == 0:
            return
        if is_format_unavailable(outcome.output_tail):
            raise FormatUnavailableError(outcome.error_text)
        raise TaskError(outcome.error_text, returncode=outcome.returncode)

    async def _handle_line(self, item: Item, line: str) -> None:
        if is_postprocessing_line(line):
            item.advance(ItemStatus.CONVERTING)
            return

        sample = parse_progress_line(line)
        if sample is None:
            return

        item.advance(ItemStatus.DOWNLOADING)
        item.progress = sample.progress
        item.speed = sample.speed
        item.eta = sample.eta
        await self._emit(
            "progress_update",
            {"itemId": item.id, "progress": sample.progress, "speed": sample.speed, "eta": sample.eta},
        )

    async def _finish(self) -> None:
        if self._finished:
            return
        self._finished = True
        logger.info(
            "Run in %s finished: %s completed, %s failed",
            self.session_dir,
            self.completed,
            self.failed,
        )
        await self._emit(
            "run_complete",
            {"downloadUrl": self.download_url, "completed": self.completed, "failed": self.failed},
        )

    async def _emit(self, event: str, data: Dict[str, Any]) -> None:
        try:
            await self.emit(event, data)
        except Exception:
            logger.debug("Dropping %s event", event, exc_info=True)
