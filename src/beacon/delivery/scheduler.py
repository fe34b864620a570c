"""Flush scheduling, upload and size-based backoff."""

from __future__ import annotations

import logging

from beacon.clock import Clock, now_millis
from beacon.constants import STATUS_PAYLOAD_TOO_LARGE
from beacon.delivery.callbacks import CallbackReconciler, ResponseCallback
from beacon.delivery.timers import Timer
from beacon.delivery.transport import Transport, UploadResponse, build_upload_request
from beacon.events import EventQueue, QueuedEntry

logger = logging.getLogger(__name__)


class DeliveryScheduler:
    """
    Decides when the queue is flushed and runs one upload at a time.

    Immediate mode flushes on every enqueue. Batched mode flushes when the
    unsent count reaches the threshold, otherwise arms a single delayed flush.
    At most one upload is in flight; ``in_flight`` is set before the request
    is handed to the transport and cleared first thing in the response
    handler, whatever the outcome.

    Response handling:
        200: remove the batch, restore the nominal cap, fire completed callbacks,
             check for more work
        413: halve the cap (floor 1) and resend; at cap 1 the single entry is
             dropped first
        other: fire the batch's callbacks with the raw response, keep the queue
    """

    def __init__(
        self,
        queue: EventQueue,
        transport: Transport,
        timer: Timer,
        url: str,
        api_key: str,
        upload_batch_size: int,
        batch_events: bool = False,
        event_upload_threshold: int = 30,
        event_upload_period_millis: int = 30000,
        clock: Clock = now_millis,
    ) -> None:
        """
        Initialize DeliveryScheduler.

        Args:
            queue: Queue to flush
            transport: Performs the upload and reports the response
            timer: Arms the delayed flush in batched mode
            url: Collector URL
            api_key: Project API key
            upload_batch_size: Nominal maximum entries per upload
            batch_events: Batched instead of immediate mode
            event_upload_threshold: Unsent count that triggers a batched flush
            event_upload_period_millis: Delay of the batched-mode flush timer
            clock: Source of upload timestamps
        """
        self.queue = queue
        self.transport = transport
        self.timer = timer
        self.url = url
        self.api_key = api_key
        self.nominal_batch_size = upload_batch_size
        self.upload_batch_size = upload_batch_size
        self.batch_events = batch_events
        self.event_upload_threshold = event_upload_threshold
        self.event_upload_period_millis = event_upload_period_millis
        self.clock = clock
        self.reconciler = CallbackReconciler()

        self.in_flight = False
        self.suspended = False
        self.timer_armed = False
        self._dispatching = False
        self._flush_requested = False

    # ------------------------------------------------------------------
    # Triggers
    # ------------------------------------------------------------------

    def enqueued(self, entry: QueuedEntry, callback: ResponseCallback | None = None) -> None:
        """Register the entry's callback and evaluate the flush triggers."""
        if callback is not None and entry.sequence_number is not None:
            self.reconciler.register(entry.sequence_number, callback)
        self.send_if_ready()

    def send_if_ready(self) -> bool:
        """
        Flush now or arm the delayed flush, depending on mode and unsent count.

        Returns:
            True if an upload was started
        """
        unsent = self.queue.unsent_count
        if unsent == 0:
            return False

        if not self.batch_events or unsent >= self.event_upload_threshold:
            return self.send_events()

        if not self.timer_armed:
            self.timer_armed = self.timer.call_later(self.event_upload_period_millis, self._on_timer)
        return False

    def _on_timer(self) -> None:
        self.timer_armed = False
        self.send_events()

    def send_events(self) -> bool:
        """
        Upload the next batch unless one is in flight.

        Returns:
            True if an upload was started
        """
        if self._dispatching:
            # Reentered from a response delivered synchronously; the outer
            # loop performs the flush once the current handler returns.
            self._flush_requested = True
            return False

        self._dispatching = True
        started = False
        try:
            while True:
                self._flush_requested = False
                started = self._dispatch() or started
                if not self._flush_requested:
                    break
        finally:
            self._dispatching = False
        return started

    def _dispatch(self) -> bool:
        if self.in_flight or self.suspended or self.queue.unsent_count == 0:
            return False

        batch = self.queue.snapshot(self.upload_batch_size)
        request = build_upload_request(self.url, self.api_key, batch, self.clock())
        self.in_flight = True
        logger.debug("Uploading %d entries to %s", len(batch), self.url)
        responded = False

        def on_response(response: UploadResponse) -> None:
            nonlocal responded
            responded = True
            self._on_response(batch, response)

        try:
            self.transport.send(request, on_response)
        except Exception as e:
            logger.exception("Transport raised while uploading to %s", self.url)
            if not responded:
                self._on_response(batch, UploadResponse(0, str(e)))
        return True

    # ------------------------------------------------------------------
    # Response handling
    # ------------------------------------------------------------------

    def _on_response(self, batch: list[QueuedEntry], response: UploadResponse) -> None:
        self.in_flight = False
        status, body = response.status, response.body

        if response.ok:
            logger.debug("Delivered %d entries", len(batch))
            self.queue.remove(batch)
            self.upload_batch_size = self.nominal_batch_size
            self.reconciler.resolve(self.queue, status, body)
            self.send_if_ready()

        elif status == STATUS_PAYLOAD_TOO_LARGE:
            if self.upload_batch_size == 1:
                logger.warning(
                    "Dropping entry %s: rejected as too large at batch size 1",
                    batch[0].sequence_number,
                )
                self.queue.remove(batch[:1])
                self.reconciler.resolve(self.queue, status, body)
            self.upload_batch_size = max(1, len(batch) // 2)
            logger.warning("Payload too large, retrying with batch size %d", self.upload_batch_size)
            self.send_events()

        else:
            logger.info("Upload failed with status %d, %d entries kept", status, len(batch))
            self.reconciler.fail(batch, status, body)
