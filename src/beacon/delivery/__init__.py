"""
Delivery pipeline: flush scheduling, HTTP upload with size-based backoff,
and completion callbacks.
"""

from beacon.delivery.callbacks import CallbackReconciler, ResponseCallback, invoke
from beacon.delivery.scheduler import DeliveryScheduler
from beacon.delivery.timers import AsyncioTimer, Timer
from beacon.delivery.transport import (
    AsyncHttpxTransport,
    HttpxTransport,
    Transport,
    UploadRequest,
    UploadResponse,
    build_upload_request,
)

__all__ = [
    "AsyncHttpxTransport",
    "AsyncioTimer",
    "CallbackReconciler",
    "DeliveryScheduler",
    "HttpxTransport",
    "ResponseCallback",
    "Timer",
    "Transport",
    "UploadRequest",
    "UploadResponse",
    "build_upload_request",
    "invoke",
]
