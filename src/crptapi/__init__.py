from .cancellation import CancellationToken
from .client import CrptClient
from .documents import Description, Document, JsonBuilder, JsonSerializable, Product
from .errors import (
    AdmissionInterruptedError,
    CrptApiError,
    InvalidConfigurationError,
    SubmissionFailedError,
    TransientTransportError,
)
from .limiter import RefillWindowConfig, RefillWindowRateLimiter, TimeUnit

__all__ = [
    "CrptClient",
    "CancellationToken",
    "Document",
    "Description",
    "Product",
    "JsonSerializable",
    "JsonBuilder",
    "RefillWindowRateLimiter",
    "RefillWindowConfig",
    "TimeUnit",
    "CrptApiError",
    "InvalidConfigurationError",
    "AdmissionInterruptedError",
    "TransientTransportError",
    "SubmissionFailedError",
]
