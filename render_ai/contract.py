# User value: This file keeps every render tool speaking the same failure and job vocabulary.
from __future__ import annotations

CONTRACT_VERSION = "v1"

# Failure kinds (closed set)
QUOTA_EXCEEDED = "QUOTA_EXCEEDED"
BILLING_REJECTED = "BILLING_REJECTED"
SERVICE_OVERLOADED = "SERVICE_OVERLOADED"
POOL_EXHAUSTED = "POOL_EXHAUSTED"
TRANSIENT = "TRANSIENT"
OTHER = "OTHER"

FAILURE_KINDS = frozenset(
    {
        QUOTA_EXCEEDED,
        BILLING_REJECTED,
        SERVICE_OVERLOADED,
        POOL_EXHAUSTED,
        TRANSIENT,
        OTHER,
    }
)

# Job statuses
JOB_STATUS_PENDING = "PENDING"
JOB_STATUS_PROCESSING = "PROCESSING"
JOB_STATUS_COMPLETED = "COMPLETED"
JOB_STATUS_FAILED = "FAILED"

# Output shapes accepted by the image models
ASPECT_RATIOS = ("1:1", "3:4", "4:3", "9:16", "16:9")
IMAGE_RESOLUTIONS = ("Standard", "1K", "2K", "4K")
MAX_IMAGES_PER_REQUEST = 4

# Model identifiers
MODEL_STANDARD_IMAGE = "gemini-2.5-flash-image"
MODEL_HIGH_QUALITY_IMAGE = "gemini-3-pro-image-preview"
MODEL_LEGACY_IMAGE = "imagen-4.0-generate-001"
MODEL_VIDEO = "veo-2.0-generate-001"
MODEL_TEXT = "gemini-2.5-flash"
