"""Structural concatenation of MP3 byte streams.

Each synthesized fragment arrives as a complete MP3 file, possibly wrapped in
an ID3v2 header and an ID3v1 trailer. Splicing strips the per-file tags,
concatenates the raw MPEG frames in order and re-attaches the first file's
ID3v2 header. Nothing is decoded or re-encoded, so

    len(output) == len(first_header) + sum(len(audio_data_i))
"""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Optional, Sequence

logger = logging.getLogger(__name__)

ID3V2_MAGIC = b"ID3"
ID3V2_HEADER_SIZE = 10
ID3V1_MAGIC = b"TAG"
ID3V1_SIZE = 128

# How far past the ID3v2 block we look for the first frame before giving up.
SYNC_SCAN_WINDOW = 64 * 1024
# Window used by the structural diagnostic.
VALIDATION_WINDOW = 200


@dataclass
class Mp3Parts:
    audio_data: bytes
    header: Optional[bytes] = None


def synchsafe_to_int(size_bytes: bytes) -> int:
    """Decode a 4-byte ID3v2 synchsafe integer (7 significant bits per byte)."""
    value = 0
    for byte in size_bytes[:4]:
        value = (value << 7) | (byte & 0x7F)
    return value


def id3v2_size(buffer: bytes) -> int:
    """Total size of a leading ID3v2 block (header included), 0 when absent."""
    if len(buffer) < ID3V2_HEADER_SIZE or buffer[:3] != ID3V2_MAGIC:
        return 0
    return ID3V2_HEADER_SIZE + synchsafe_to_int(buffer[6:10])


def is_frame_sync(buffer: bytes, offset: int) -> bool:
    return buffer[offset] == 0xFF and (buffer[offset + 1] & 0xE0) == 0xE0


def find_frame_sync(buffer: bytes, start: int = 0, window: Optional[int] = None) -> int:
    """Offset of the first frame sync at or after ``start``, or -1."""
    end = len(buffer) - 1
    if window is not None:
        end = min(end, start + window)
    for offset in range(start, end):
        if is_frame_sync(buffer, offset):
            return offset
    return -1


def has_frame_sync(buffer: bytes, window: int = VALIDATION_WINDOW) -> bool:
    """Diagnostic: does a frame sync occur within the first ``window`` bytes?"""
    if len(buffer) < 4:
        return False
    return find_frame_sync(buffer, 0, window) != -1


def has_id3v1_trailer(buffer: bytes) -> bool:
    return len(buffer) >= ID3V1_SIZE and buffer[-ID3V1_SIZE:-ID3V1_SIZE + 3] == ID3V1_MAGIC


def extract_audio_data(buffer: bytes, keep_header: bool = False) -> Mp3Parts:
    """Split one MP3 file into its frame data and (optionally) its ID3v2 block."""
    header = None
    audio_start = 0

    tag_size = id3v2_size(buffer)
    if tag_size:
        if keep_header and tag_size <= len(buffer):
            header = bytes(buffer[:tag_size])
        audio_start = min(tag_size, len(buffer))

    sync = find_frame_sync(buffer, audio_start, SYNC_SCAN_WINDOW)
    if sync == -1:
        if len(buffer) > audio_start:
            logger.warning(
                "No MP3 frame sync within %d bytes after offset %d; keeping %d bytes as-is",
                SYNC_SCAN_WINDOW, audio_start, len(buffer) - audio_start,
            )
    else:
        audio_start = sync

    audio_end = len(buffer)
    if has_id3v1_trailer(buffer) and audio_end - ID3V1_SIZE >= audio_start:
        audio_end -= ID3V1_SIZE

    return Mp3Parts(audio_data=bytes(buffer[audio_start:audio_end]), header=header)


def splice_mp3_buffers(buffers: Sequence[bytes]) -> bytes:
    """Concatenate MP3 files into one playable stream.

    Zero buffers give ``b""`` and a single buffer is returned untouched.
    """
    if not buffers:
        return b""
    if len(buffers) == 1:
        return bytes(buffers[0])

    header = b""
    chunks = []
    for index, buffer in enumerate(buffers):
        parts = extract_audio_data(buffer, keep_header=(index == 0))
        if index == 0 and parts.header:
            header = parts.header
        chunks.append(parts.audio_data)

    result = header + b"".join(chunks)
    logger.debug(
        "Spliced %d buffers: %d header bytes + %d audio bytes",
        len(buffers), len(header), len(result) - len(header),
    )
    if not has_frame_sync(result, VALIDATION_WINDOW + len(header)):
        logger.warning("Spliced stream has no frame sync near its start (%d bytes)", len(result))
    return result
