"""
Versioned string-to-field encoding for the ZK-Citizen core.

Strings are committed by first turning them into a list of field elements.
Any change to this encoding changes every string commitment, so its
parameters are fixed and versioned:

* version ``ENCODING_VERSION`` (1)
* UTF-8 bytes split into ``CHUNK_BYTES`` (31) byte chunks
* every chunk right-padded with zero bytes to 31 bytes
* chunk interpreted as a big-endian unsigned integer
* the empty string encodes as the single chunk ``EMPTY_CHUNK`` (0)

Because padding is with zero bytes, trailing NUL characters are not
recoverable unless the original byte length is supplied to the decoder.
"""

from typing import List, Optional, Sequence

import structlog

from .constants import CHUNK_BYTES, EMPTY_CHUNK, ENCODING_VERSION
from .exceptions import EncodingError
from .hashing import is_field_element

# Initialize structured logger
logger = structlog.get_logger(__name__)


def encode_string(value: str) -> List[int]:
    """
    Encode a string into fixed-width field-element chunks.

    Parameters
    ----------
    value : str
        String to encode.

    Returns
    -------
    List[int]
        Non-empty list of chunks, each below ``2**(8 * CHUNK_BYTES)``.

    Raises
    ------
    EncodingError
        If ``value`` is not a string or cannot be UTF-8 encoded.

    Examples
    --------
    >>> encode_string("")
    [0]
    >>> len(encode_string("a" * 32))
    2
    """
    if not isinstance(value, str):
        raise EncodingError(f"Expected str, got {type(value).__name__}")

    try:
        data = value.encode("utf-8")
    except UnicodeEncodeError as e:
        raise EncodingError(f"String is not valid UTF-8: {e.reason}")

    return encode_bytes(data)


def encode_bytes(data: bytes) -> List[int]:
    """Encode raw bytes into fixed-width chunks (see module docstring)."""
    if not data:
        return [EMPTY_CHUNK]

    chunks = []
    for start in range(0, len(data), CHUNK_BYTES):
        chunk = data[start : start + CHUNK_BYTES].ljust(CHUNK_BYTES, b"\x00")
        chunks.append(int.from_bytes(chunk, "big"))

    return chunks


def decode_chunks(chunks: Sequence[int], byte_length: Optional[int] = None) -> bytes:
    """
    Decode chunks produced by ``encode_bytes`` back into bytes.

    Parameters
    ----------
    chunks : Sequence[int]
        Encoded chunks.
    byte_length : Optional[int], default=None
        Original byte length. If None, trailing zero bytes are stripped.

    Returns
    -------
    bytes
        Decoded bytes.

    Raises
    ------
    EncodingError
        If a chunk is out of range or ``byte_length`` is inconsistent.
    """
    if not chunks:
        raise EncodingError("Cannot decode an empty chunk list")

    limit = 1 << (8 * CHUNK_BYTES)
    buffer = bytearray()
    for chunk in chunks:
        if not is_field_element(chunk) or chunk >= limit:
            raise EncodingError("Chunk does not fit the chunk width")
        buffer.extend(chunk.to_bytes(CHUNK_BYTES, "big"))

    if byte_length is None:
        return bytes(buffer).rstrip(b"\x00")

    if byte_length < 0 or byte_length > len(buffer):
        raise EncodingError(
            f"byte_length {byte_length} does not fit {len(chunks)} chunks"
        )
    if any(buffer[byte_length:]):
        raise EncodingError("Non-zero padding after byte_length")

    return bytes(buffer[:byte_length])


def decode_string(chunks: Sequence[int], byte_length: Optional[int] = None) -> str:
    """Decode chunks back into a UTF-8 string."""
    try:
        return decode_chunks(chunks, byte_length).decode("utf-8")
    except UnicodeDecodeError as e:
        raise EncodingError(f"Decoded bytes are not valid UTF-8: {e.reason}")


def describe_encoding() -> dict:
    """Return the parameters of the active encoding version."""
    return {
        "version": ENCODING_VERSION,
        "chunk_bytes": CHUNK_BYTES,
        "byte_order": "big",
        "padding": "right, zero bytes",
        "empty_input": [EMPTY_CHUNK],
        "text_encoding": "utf-8",
    }
