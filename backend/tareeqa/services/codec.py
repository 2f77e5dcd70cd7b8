# Overview: Reversible encoding of JSON values into opaque, tamper-evident artifacts.

"""
Record Codec

Turns any JSON-serializable value into a prefixed text artifact and back:

    artifact = "TAREEQA_ENCRYPTED_V1:" + base64(transform(maybe_compact(envelope_json)))
    envelope = {"data": json(value), "timestamp": epoch-ms, "checksum": hex, "version": "1.0"}

The transform is a keyed XOR stream (its own inverse) and the checksum is a
32-bit rolling hash. Together they obfuscate data at rest and detect
corruption; they are NOT authenticated encryption.

Artifacts without the version prefix are legacy plaintext JSON and are
decoded directly so migration can read them.
"""

import base64
import binascii
import json
import string
from functools import lru_cache
from itertools import groupby
from typing import Any

from ..errors import EncodingError, IntegrityError
from ..time_utils import epoch_ms


VERSION_TAG = "TAREEQA_ENCRYPTED_V1"
ARTIFACT_PREFIX = VERSION_TAG + ":"
ENVELOPE_VERSION = "1.0"

# Compaction: only payloads longer than this are considered
COMPACTION_THRESHOLD = 100
COMPACTION_MARKER = "RLE1:"
RUN_ESCAPE = "~"
MIN_RUN = 4
MAX_RUN = 255

_DIGITS = frozenset(string.digits)


# =============================================================================
# SERIALIZATION
# =============================================================================

def serialize(value: Any) -> str:
    """Compact JSON, byte-compatible with JSON.stringify for plain data."""
    return json.dumps(value, separators=(",", ":"), ensure_ascii=False, allow_nan=False)


def deserialize(text: str) -> Any:
    return json.loads(text)


# =============================================================================
# CHECKSUM
# =============================================================================

def rolling_hash(text: str) -> int:
    """
    32-bit rolling hash (hash * 31 + unit) over UTF-16 code units.

    Returns a signed 32-bit integer so hex renderings match artifacts
    written by the legacy runtime.
    """
    h = 0
    units = text.encode("utf-16-le")
    for i in range(0, len(units), 2):
        unit = units[i] | (units[i + 1] << 8)
        h = ((h << 5) - h + unit) & 0xFFFFFFFF
    if h & 0x80000000:
        h -= 1 << 32
    return h


def checksum(text: str) -> str:
    """Signed lowercase hex of the rolling hash, e.g. '-1f3a' or '7c00e1'."""
    h = rolling_hash(text)
    if h < 0:
        return "-" + format(-h, "x")
    return format(h, "x")


def verify_checksum(text: str, expected: str) -> bool:
    return checksum(text) == expected


# =============================================================================
# SYMMETRIC TRANSFORM
# =============================================================================

# Keys up to 256 bytes get their full keystream period (n * n bytes) cached
_MAX_CACHED_PERIOD = 256 * 256


@lru_cache(maxsize=32)
def _keystream_period(key: bytes) -> bytes:
    n = len(key)
    return bytes(key[j] ^ key[(j + b) % n] for b in range(n) for j in range(n))


def _keystream(key: bytes, length: int) -> bytes:
    n = len(key)
    if n * n <= _MAX_CACHED_PERIOD:
        period = _keystream_period(key)
        return (period * (length // len(period) + 1))[:length]
    return bytes(key[i % n] ^ key[(i + i // n) % n] for i in range(length))


def transform(data: bytes, key: bytes) -> bytes:
    """
    Position-dependent XOR with a primary and a rotating keystream.

    Byte i is combined with key[i % n] and key[(i + i // n) % n].
    Applying it twice with the same key returns the input.
    """
    if not key:
        raise EncodingError("Encryption key must not be empty")
    if not data:
        return b""
    stream = _keystream(key, len(data))
    mixed = int.from_bytes(data, "big") ^ int.from_bytes(stream, "big")
    return mixed.to_bytes(len(data), "big")


def _key_bytes(key: str) -> bytes:
    if not key:
        raise EncodingError("Encryption key must not be empty")
    return key.encode("utf-8")


# =============================================================================
# COMPACTION
# =============================================================================

def _runs(text: str):
    for ch, group in groupby(text):
        yield ch, len(list(group))


def compact(text: str) -> str:
    """
    Run-length encode long payloads.

    Runs of MIN_RUN+ identical characters become "~<count><char>". Digits are
    never run-encoded (the count would swallow them) and a literal "~" is
    always written as a run so expansion is unambiguous. The result is kept
    only if it is strictly shorter than the input.
    """
    if len(text) <= COMPACTION_THRESHOLD:
        return text

    parts = []
    for ch, count in _runs(text):
        while count > 0:
            n = min(count, MAX_RUN)
            if ch == RUN_ESCAPE or (n >= MIN_RUN and ch not in _DIGITS):
                parts.append(f"{RUN_ESCAPE}{n}{ch}")
            else:
                parts.append(ch * n)
            count -= n

    compacted = COMPACTION_MARKER + "".join(parts)
    return compacted if len(compacted) < len(text) else text


def _expand_runs(body: str) -> str:
    out = []
    i = 0
    size = len(body)
    while i < size:
        ch = body[i]
        if ch != RUN_ESCAPE:
            out.append(ch)
            i += 1
            continue
        j = i + 1
        while j < size and body[j] in _DIGITS:
            j += 1
        if j == i + 1 or j >= size:
            raise ValueError(f"Malformed run at offset {i}")
        count = int(body[i + 1:j])
        if count > MAX_RUN:
            raise ValueError(f"Run length {count} at offset {i} exceeds {MAX_RUN}")
        out.append(body[j] * count)
        i = j + 1
    return "".join(out)


def expand(text: str) -> str:
    """Inverse of compact(); text without the marker is returned unchanged."""
    if not text.startswith(COMPACTION_MARKER):
        return text
    return _expand_runs(text[len(COMPACTION_MARKER):])


# =============================================================================
# ENCODE / DECODE
# =============================================================================

def is_encoded(text: str | None) -> bool:
    return bool(text) and text.startswith(ARTIFACT_PREFIX)


def encode(value: Any, key: str, *, compaction: bool = True, timestamp_ms: int | None = None) -> str:
    """
    Encode a JSON-serializable value into an artifact.

    Raises EncodingError if the value can't be serialized or the key is empty.
    """
    key_bytes = _key_bytes(key)
    try:
        data = serialize(value)
        envelope = {
            "data": data,
            "timestamp": timestamp_ms if timestamp_ms is not None else epoch_ms(),
            "checksum": checksum(data),
            "version": ENVELOPE_VERSION,
        }
        payload = serialize(envelope)
        if compaction:
            payload = compact(payload)
        ciphertext = transform(payload.encode("utf-8"), key_bytes)
    except (TypeError, ValueError) as exc:
        raise EncodingError(f"Failed to encode data: {exc}") from exc

    return ARTIFACT_PREFIX + base64.b64encode(ciphertext).decode("ascii")


def _check_envelope(text: str) -> dict:
    envelope = json.loads(text)
    if not isinstance(envelope, dict):
        raise ValueError("Envelope is not an object")
    data = envelope.get("data")
    expected = envelope.get("checksum")
    if not isinstance(data, str) or not isinstance(expected, str):
        raise ValueError("Envelope is missing data or checksum")
    if not verify_checksum(data, expected):
        raise IntegrityError("Data integrity check failed")
    return envelope


def open_envelope(artifact: str, key: str) -> dict:
    """
    Decrypt an artifact and return its verified envelope.

    Raises IntegrityError when the artifact can't be read back or its
    checksum doesn't match.
    """
    key_bytes = _key_bytes(key)
    body = artifact[len(ARTIFACT_PREFIX):]
    try:
        ciphertext = base64.b64decode(body, validate=True)
        text = transform(ciphertext, key_bytes).decode("utf-8")
    except (binascii.Error, ValueError) as exc:
        raise IntegrityError("Artifact is not readable with this key") from exc

    if text.startswith(COMPACTION_MARKER):
        readers = (expand,)
    elif RUN_ESCAPE in text:
        # Legacy writers compacted without a marker
        readers = (str, _expand_runs)
    else:
        readers = (str,)

    last_error: Exception | None = None
    for reader in readers:
        try:
            return _check_envelope(reader(text))
        except (IntegrityError, ValueError) as exc:
            last_error = exc

    if isinstance(last_error, IntegrityError):
        raise last_error
    raise IntegrityError("Artifact payload is malformed") from last_error


def decode(artifact: str, key: str) -> Any:
    """
    Decode an artifact produced by encode(), or legacy plaintext JSON.

    Raises IntegrityError on checksum mismatch or unreadable input.
    """
    if not isinstance(artifact, str):
        raise IntegrityError("Artifact must be text")

    if not is_encoded(artifact):
        try:
            return deserialize(artifact)
        except ValueError as exc:
            raise IntegrityError("Legacy data is not valid JSON") from exc

    envelope = open_envelope(artifact, key)
    try:
        return deserialize(envelope["data"])
    except ValueError as exc:
        raise IntegrityError("Payload is not valid JSON") from exc


def legacy_unmask(text: str, key: str) -> str:
    """
    Reverse the single-key XOR + base64 masking used by the legacy runtime
    for its user table, session and security log.

    That runtime fell back to storing plain text whenever masking failed, so
    input that isn't base64 is returned unchanged.
    """
    try:
        raw = base64.b64decode(text, validate=True)
    except (binascii.Error, ValueError):
        return text
    key_bytes = _key_bytes(key)
    n = len(key_bytes)
    return bytes(b ^ key_bytes[i % n] for i, b in enumerate(raw)).decode("latin-1")
