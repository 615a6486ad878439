import asyncio
import random
from collections.abc import Callable

from docmark.backend.base import BaseFileTransport
from docmark.intake.models import SelectedFile
from docmark.logging.logger import Log
from docmark.processor.timers import OneShotTimer, RepeatingTimer, Scheduler, default_scheduler
from docmark.upload.exceptions import UploadFailedError
from docmark.upload.models import UploadedReference
from docmark.upload.progress import SimulatedProgress

ProgressListener = Callable[[float], None]


class UploadTracker:
    """Runs a transport upload while publishing a simulated progress value.

    The tracker owns two timers: the progress ticker and the grace timer that
    returns the value to 0 after a successful upload. Starting an upload, or
    calling ``cancel()``, disposes both.
    """

    def __init__(
        self,
        transport: BaseFileTransport,
        *,
        tick_seconds: float = 0.2,
        max_increment: float = 30.0,
        ceiling: float = 90.0,
        reset_delay_seconds: float = 1.0,
        rng: random.Random | None = None,
        scheduler: Scheduler | None = None,
    ) -> None:
        self._transport = transport
        self._tick_seconds = tick_seconds
        self._reset_delay_seconds = reset_delay_seconds
        self._progress = SimulatedProgress(max_increment=max_increment, ceiling=ceiling, rng=rng)
        self._scheduler = scheduler
        self._ticker: RepeatingTimer | None = None
        self._reset_timer: OneShotTimer | None = None
        self._listeners: list[ProgressListener] = []
        self._upload_id = 0
        self._uploading = False

    @property
    def progress_percent(self) -> float:
        return self._progress.value

    @property
    def is_uploading(self) -> bool:
        return self._uploading

    @property
    def has_live_timers(self) -> bool:
        return self._ticker is not None or self._reset_timer is not None

    def add_listener(self, listener: ProgressListener) -> None:
        self._listeners.append(listener)

    async def upload(self, file: SelectedFile) -> UploadedReference:
        """Upload ``file`` through the transport.

        Raises:
            UploadFailedError: if the transport fails; progress is back at 0.
        """
        self.cancel()
        self._upload_id += 1
        upload_id = self._upload_id
        self._uploading = True
        self._set_progress(0.0)

        scheduler = self._scheduler or default_scheduler()
        self._ticker = RepeatingTimer(scheduler, self._tick_seconds, self._tick)
        self._ticker.start()
        Log.info(f"Uploading {file.name} ({file.size_bytes} bytes)")

        try:
            reference = await self._transport.upload(file)
        except asyncio.CancelledError:
            if upload_id == self._upload_id:
                self.cancel()
            raise
        except Exception as exc:
            if upload_id == self._upload_id:
                self._stop_ticker()
                self._uploading = False
                self._set_progress(0.0)
            Log.error(f"Upload of {file.name} failed: {exc}")
            raise UploadFailedError(str(exc) or "File upload failed") from exc

        if upload_id == self._upload_id:
            self._stop_ticker()
            self._uploading = False
            self._set_progress(100.0)
            self._reset_timer = OneShotTimer(
                scheduler, self._reset_delay_seconds, self._reset_after_success
            )
            self._reset_timer.start()
        Log.info(f"Uploaded {file.name} to {reference.file_url}")
        return reference

    def cancel(self) -> None:
        """Dispose both timers and drop the outcome of any upload in flight."""
        self._upload_id += 1
        self._uploading = False
        self._stop_ticker()
        if self._reset_timer is not None:
            self._reset_timer.cancel()
            self._reset_timer = None
        if self._progress.value != 0.0:
            self._set_progress(0.0)

    def _tick(self) -> None:
        self._set_progress(self._progress.advance())
        if self._progress.at_ceiling:
            self._stop_ticker()

    def _reset_after_success(self) -> None:
        self._reset_timer = None
        self._set_progress(0.0)

    def _stop_ticker(self) -> None:
        if self._ticker is not None:
            self._ticker.cancel()
            self._ticker = None

    def _set_progress(self, value: float) -> None:
        self._progress.set(value)
        for listener in self._listeners:
            listener(self._progress.value)
