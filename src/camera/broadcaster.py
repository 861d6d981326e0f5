"""
Continuous capture with fan-out to multiple listeners.

One acquisition thread per camera captures frames and hands each one to
every registered listener. Each listener has its own delivery thread and a
one-slot mailbox (latest frame wins), so a slow or failing listener only
loses its own frames and never delays the acquisition loop or the other
listeners.

State per camera: Idle -> Capturing (first listener added) -> Idle (last
listener removed).
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from typing import Any, Callable, Dict, Hashable, Optional

from models.frame import FrameData

FrameListener = Callable[[FrameData], None]

_STOP = object()


class _ListenerChannel:
    """Delivery thread and mailbox for one listener."""

    def __init__(self, camera_name: str, listener: FrameListener):
        self.listener = listener
        self.delivered = 0
        self.dropped = 0
        self._camera_name = camera_name
        self._mailbox: queue.Queue = queue.Queue(maxsize=1)
        # Held for the whole delivery so close() waits for an in-flight frame.
        self._lock = threading.RLock()
        self._active = True
        self._thread = threading.Thread(
            target=self._run,
            name=f"listener-{camera_name}",
            daemon=True,
        )

    def start(self) -> None:
        self._thread.start()

    def offer(self, frame: Any) -> None:
        """Queue a frame, replacing any frame the listener has not picked up yet."""
        try:
            self._mailbox.put_nowait(frame)
            return
        except queue.Full:
            pass
        try:
            self._mailbox.get_nowait()
            if frame is not _STOP:
                self.dropped += 1
                logging.debug(f"[{self._camera_name}] slow listener {self.listener!r}, frame dropped")
        except queue.Empty:
            pass
        try:
            self._mailbox.put_nowait(frame)
        except queue.Full:
            pass

    def close(self, timeout: float = 1.0) -> None:
        """
        Stop delivering. When this returns, the listener is not running and
        will never be called again.
        """
        with self._lock:
            self._active = False
        self.offer(_STOP)
        if threading.current_thread() is not self._thread:
            self._thread.join(timeout)

    def _run(self) -> None:
        while True:
            frame = self._mailbox.get()
            if frame is _STOP:
                return
            with self._lock:
                if not self._active:
                    return
                try:
                    self.listener(frame)
                    self.delivered += 1
                except Exception:
                    logging.exception(f"[{self._camera_name}] listener {self.listener!r} failed")


class CaptureBroadcaster:
    """
    Continuous-capture manager for one camera.

    Example:
        broadcaster = CaptureBroadcaster(camera, fps=15)
        broadcaster.start_continuous_capture(on_frame)
        ...
        broadcaster.stop_continuous_capture(on_frame)
    """

    def __init__(
        self,
        camera: Any,
        fps: Optional[float] = None,
        failure_backoff_s: float = 0.5,
    ):
        """
        Args:
            camera: Anything with a `name` and a `capture_transformed()` returning FrameData.
            fps: Target acquisition rate; None or 0 captures as fast as the device allows.
            failure_backoff_s: Pause after a failed capture before retrying.
        """
        self._camera = camera
        self.fps = fps
        self.failure_backoff_s = failure_backoff_s
        self._lock = threading.Lock()
        self._channels: Dict[Hashable, _ListenerChannel] = {}
        self._thread: Optional[threading.Thread] = None
        self._stop_event: Optional[threading.Event] = None
        self._latest: Optional[FrameData] = None
        self._latest_seq = 0
        self._consumed: Dict[Hashable, int] = {}
        self.frames_captured = 0
        self.capture_failures = 0

    @property
    def camera_name(self) -> str:
        return getattr(self._camera, "name", "camera")

    @property
    def is_capturing(self) -> bool:
        with self._lock:
            return self._thread is not None

    @property
    def listener_count(self) -> int:
        with self._lock:
            return len(self._channels)

    @property
    def consumer_count(self) -> int:
        with self._lock:
            return len(self._consumed)

    def start_continuous_capture(self, listener: FrameListener) -> None:
        """Register a listener; starts the acquisition loop if it is not running."""
        with self._lock:
            if listener in self._channels:
                return
            channel = _ListenerChannel(self.camera_name, listener)
            channel.start()
            self._channels[listener] = channel
            if self._thread is None:
                self._stop_event = threading.Event()
                self._thread = threading.Thread(
                    target=self._run,
                    args=(self._stop_event,),
                    name=f"capture-{self.camera_name}",
                    daemon=True,
                )
                self._thread.start()
                logging.info(f"[{self.camera_name}] continuous capture started")

    def stop_continuous_capture(self, listener: FrameListener, timeout: float = 2.0) -> None:
        """
        Unregister a listener. No frame reaches it after this returns. When
        no listeners remain the acquisition loop stops.
        """
        thread = None
        with self._lock:
            channel = self._channels.pop(listener, None)
            self._consumed.pop(listener, None)
            if channel is None:
                return
            if not self._channels and self._thread is not None:
                thread = self._thread
                self._stop_event.set()
                self._thread = None
                self._stop_event = None
        channel.close()
        if thread is not None:
            if thread is not threading.current_thread():
                thread.join(timeout)
            logging.info(f"[{self.camera_name}] continuous capture stopped")

    def stop_all(self) -> None:
        """Unregister every listener and stop the loop."""
        with self._lock:
            listeners = list(self._channels)
        for listener in listeners:
            self.stop_continuous_capture(listener)

    def has_new_frame(self, consumer: Hashable) -> bool:
        """True if a frame arrived since `consumer` last called consume_frame()."""
        with self._lock:
            return self._latest_seq > self._consumed.get(consumer, 0)

    def consume_frame(self, consumer: Hashable) -> Optional[FrameData]:
        """Latest frame, marked as seen by `consumer`."""
        with self._lock:
            self._consumed[consumer] = self._latest_seq
            return self._latest

    def release_consumer(self, consumer: Hashable) -> None:
        """Forget what `consumer` has seen. Call when the consumer goes away."""
        with self._lock:
            self._consumed.pop(consumer, None)

    @property
    def latest_frame(self) -> Optional[FrameData]:
        with self._lock:
            return self._latest

    def _run(self, stop_event: threading.Event) -> None:
        interval = 1.0 / self.fps if self.fps else 0.0
        consecutive_failures = 0
        while not stop_event.is_set():
            started = time.monotonic()
            try:
                frame_data = self._camera.capture_transformed()
            except Exception as e:
                consecutive_failures += 1
                with self._lock:
                    self.capture_failures += 1
                logging.warning(
                    f"[{self.camera_name}] continuous capture failed "
                    f"({consecutive_failures} in a row): {e}"
                )
                if stop_event.wait(self.failure_backoff_s):
                    break
                continue
            consecutive_failures = 0

            with self._lock:
                if stop_event.is_set():
                    break
                self._latest = frame_data
                self._latest_seq += 1
                self.frames_captured += 1
                channels = list(self._channels.values())
            for channel in channels:
                channel.offer(frame_data)

            if interval:
                remaining = interval - (time.monotonic() - started)
                if remaining > 0 and stop_event.wait(remaining):
                    break
