"""Ring buffer, worker processes, TCP command messaging, frame file lists and storage model."""

__version__ = "0.1.0"

__all__ = [
    "filelist",
    "filereader",
    "messages",
    "network",
    "processes",
    "ring_buffer",
    "storage",
]