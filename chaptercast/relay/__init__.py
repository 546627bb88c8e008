"""Upload relay publishing narration audio to public hosts."""

from .hosts import (
    FileIoHost,
    SupabaseBucketHost,
    TmpFilesHost,
    UploadHost,
    UploadHostError,
    ZeroXZeroHost,
)
from .publisher import UploadRelay, fetch_audio_bytes

__all__ = [
    "FileIoHost",
    "SupabaseBucketHost",
    "TmpFilesHost",
    "UploadHost",
    "UploadHostError",
    "UploadRelay",
    "ZeroXZeroHost",
    "fetch_audio_bytes",
]
