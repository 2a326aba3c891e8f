"""
Shared stubs for orchestration and web tests.
"""

import asyncio
from pathlib import Path
from typing import Callable, Dict, List, Optional, Tuple

import pytest

from managers import ProcessOutcome

FORMAT_UNAVAILABLE = "ERROR: [youtube] abc: Requested format is not available. Use --list-formats"

Script = Callable[[str, int], Tuple[List[str], int]]


def progress_lines(steps=(0.0, 25.0, 50.0, 75.0, 100.0)) -> List[str]:
    return [f"[download] {step:5.1f}% of 3.00MiB at  1.50MiB/s ETA 00:0{idx}" for idx, step in enumerate(steps)]


def succeed(item_id: str, attempt: int) -> Tuple[List[str], int]:
    return ["[youtube] Extracting URL", *progress_lines(), "[ExtractAudio] Destination: out.mp3"], 0


class ScriptedRunner:
    """Stands in for the extraction tool: replays scripted output per item."""

    def __init__(self, script: Optional[Script] = None, write_files: bool = False):
        self.script = script or succeed
        self.write_files = write_files
        self.calls: List[Tuple[str, List[str]]] = []
        self.timeline: List[Tuple[str, str]] = []
        self.attempts: Dict[str, int] = {}
        self.active = 0
        self.max_active = 0

    async def run(self, url, flags, on_line) -> ProcessOutcome:
        item_id = url.rsplit("=", 1)[-1]
        attempt = self.attempts.get(item_id, 0)
        self.attempts[item_id] = attempt + 1
        self.calls.append((item_id, list(flags)))

        self.active += 1
        self.max_active = max(self.max_active, self.active)
        self.timeline.append(("start", item_id))
        try:
            lines, returncode = self.script(item_id, attempt)
            for line in lines:
                await on_line(line)
                await asyncio.sleep(0)
            if self.write_files and returncode == 0:
                output = Path(flags[flags.index("--output") + 1])
                (output.parent / f"{item_id}.mp3").write_bytes(b"audio:" + item_id.encode())
        finally:
            self.active -= 1
            self.timeline.append(("end", item_id))
        return ProcessOutcome(returncode=returncode, output_tail="\n".join(lines))


class EventRecorder:
    def __init__(self):
        self.events: List[Tuple[str, dict]] = []

    async def __call__(self, event: str, data: dict) -> None:
        self.events.append((event, data))

    def named(self, name: str) -> List[dict]:
        return [data for event, data in self.events if event == name]


class FakeClock:
    def __init__(self, now: float = 1_000_000.0):
        self.now = now

    def __call__(self) -> float:
        return self.now


@pytest.fixture
def clock():
    return FakeClock()


class GatedRunner:
    """Blocks every task until ``release`` is set; records cancellations."""

    def __init__(self):
        self.started = asyncio.Event()
        self.release = asyncio.Event()
        self.cancelled: List[str] = []
        self.finished: List[str] = []

    async def run(self, url, flags, on_line) -> ProcessOutcome:
        item_id = url.rsplit("=", 1)[-1]
        self.started.set()
        try:
            await self.release.wait()
        except asyncio.CancelledError:
            self.cancelled.append(item_id)
            raise
        self.finished.append(item_id)
        return ProcessOutcome(returncode=0)
