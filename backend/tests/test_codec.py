"""
Codec tests.

Verifies:
- Encode/decode round trip, with and without compaction
- Tampered or foreign artifacts are rejected with IntegrityError
- Legacy plaintext and legacy masked/compacted payloads are readable
"""

import base64
import json

import pytest

from tareeqa.errors import EncodingError, IntegrityError
from tareeqa.services import codec


KEY = "installation-key-for-codec-tests"


def _ciphertext(artifact: str) -> bytes:
    return base64.b64decode(artifact[len(codec.ARTIFACT_PREFIX):])


def _artifact(ciphertext: bytes) -> str:
    return codec.ARTIFACT_PREFIX + base64.b64encode(ciphertext).decode("ascii")


def _seal_text(text: str, key: str = KEY) -> str:
    """Encrypt an arbitrary payload text the way encode() does, minus the envelope."""
    return _artifact(codec.transform(text.encode("utf-8"), key.encode("utf-8")))


# =============================================================================
# ROUND TRIP
# =============================================================================


class TestRoundTrip:
    @pytest.mark.parametrize(
        "value",
        [
            None,
            0,
            -17.5,
            True,
            "",
            "plain text",
            "مرحبا بالعالم",
            ["A", "B"],
            {"sku": "P-001", "price": 12.5, "tags": ["drink", "cold"], "stock": None},
            [{"id": i, "name": "item"} for i in range(50)],
        ],
    )
    def test_decode_returns_encoded_value(self, value):
        assert codec.decode(codec.encode(value, KEY), KEY) == value

    def test_artifact_carries_version_prefix(self):
        artifact = codec.encode({"a": 1}, KEY)
        assert artifact.startswith("TAREEQA_ENCRYPTED_V1:")
        assert codec.is_encoded(artifact)

    def test_long_repetitive_payload_is_compacted(self):
        value = {"note": "=" * 300}
        artifact = codec.encode(value, KEY)
        plain = codec.transform(_ciphertext(artifact), KEY.encode("utf-8")).decode("utf-8")

        assert plain.startswith(codec.COMPACTION_MARKER)
        assert codec.decode(artifact, KEY) == value

    def test_compaction_can_be_disabled(self):
        value = {"note": "=" * 300}
        artifact = codec.encode(value, KEY, compaction=False)
        plain = codec.transform(_ciphertext(artifact), KEY.encode("utf-8")).decode("utf-8")

        assert not plain.startswith(codec.COMPACTION_MARKER)
        assert codec.decode(artifact, KEY) == value

    def test_envelope_fields(self):
        artifact = codec.encode(["x"], KEY, timestamp_ms=1700000000000)
        envelope = codec.open_envelope(artifact, KEY)

        assert envelope == {
            "data": '["x"]',
            "timestamp": 1700000000000,
            "checksum": codec.checksum('["x"]'),
            "version": "1.0",
        }


# =============================================================================
# INTEGRITY
# =============================================================================


class TestTamperDetection:
    @pytest.mark.parametrize("position", [0, 5, 20, -1])
    def test_flipped_ciphertext_byte_is_rejected(self, position):
        artifact = codec.encode({"user": "admin", "role": "admin"}, KEY)
        data = bytearray(_ciphertext(artifact))
        data[position] ^= 0xFF

        with pytest.raises(IntegrityError):
            codec.decode(_artifact(bytes(data)), KEY)

    def test_checksum_mismatch_is_rejected(self):
        envelope = codec.serialize({"data": '"x"', "timestamp": 1, "checksum": "bad", "version": "1.0"})

        with pytest.raises(IntegrityError, match="integrity"):
            codec.decode(_seal_text(envelope), KEY)

    def test_wrong_key_is_rejected(self):
        artifact = codec.encode({"total": 99.5, "items": ["a", "b", "c"]}, KEY)

        with pytest.raises(IntegrityError):
            codec.decode(artifact, "k2")

    def test_invalid_base64_is_rejected(self):
        with pytest.raises(IntegrityError):
            codec.decode(codec.ARTIFACT_PREFIX + "not base64!!", KEY)

    def test_envelope_without_checksum_is_rejected(self):
        with pytest.raises(IntegrityError):
            codec.decode(_seal_text(json.dumps({"data": "1"})), KEY)

    def test_non_text_artifact_is_rejected(self):
        with pytest.raises(IntegrityError):
            codec.decode(None, KEY)


class TestEncodingErrors:
    def test_empty_key(self):
        with pytest.raises(EncodingError):
            codec.encode("value", "")

    def test_non_finite_number(self):
        with pytest.raises(EncodingError):
            codec.encode(float("nan"), KEY)

    def test_unserializable_value(self):
        with pytest.raises(EncodingError):
            codec.encode(object(), KEY)


# =============================================================================
# PRIMITIVES
# =============================================================================


class TestTransform:
    def test_transform_is_its_own_inverse(self):
        data = "any bytes, even ünïcode".encode("utf-8")
        key = b"short"
        assert codec.transform(codec.transform(data, key), key) == data

    def test_empty_key_rejected(self):
        with pytest.raises(EncodingError):
            codec.transform(b"data", b"")


class TestChecksum:
    @pytest.mark.parametrize(
        "text,expected",
        [
            ("", "0"),
            ("a", "61"),
            ("hello", "5e918d2"),
            # Wraps to the minimum signed 32-bit value
            ("polygenelubricants", "-80000000"),
        ],
    )
    def test_matches_legacy_rolling_hash(self, text, expected):
        assert codec.checksum(text) == expected

    def test_counts_utf16_code_units(self):
        # U+1F600 is a surrogate pair: two units, 0xD83D and 0xDE00
        assert codec.rolling_hash("\U0001F600") == 0xD83D * 31 + 0xDE00


class TestCompaction:
    def test_short_text_untouched(self):
        assert codec.compact("aaaaaaaa") == "aaaaaaaa"

    def test_runs_are_encoded_with_marker(self):
        text = "x" * 150
        compacted = codec.compact(text)
        assert compacted == "RLE1:~150x"
        assert codec.expand(compacted) == text

    def test_digit_runs_are_not_encoded(self):
        text = "1" * 150
        assert codec.compact(text) == text

    def test_literal_tilde_survives(self):
        text = "~" + "y" * 150 + "~~"
        assert codec.expand(codec.compact(text)) == text

    def test_runs_longer_than_max_are_split(self):
        text = "z" * 600
        compacted = codec.compact(text)
        assert compacted == "RLE1:~255z~255z~90z"
        assert codec.expand(compacted) == text

    def test_expand_without_marker_is_identity(self):
        assert codec.expand("~4a") == "~4a"


# =============================================================================
# LEGACY INPUT
# =============================================================================


class TestLegacyInput:
    def test_plain_json_is_read_directly(self):
        assert codec.decode('["A","B"]', KEY) == ["A", "B"]

    def test_plain_non_json_is_rejected(self):
        with pytest.raises(IntegrityError):
            codec.decode("not json", KEY)

    def test_unmarked_compaction_is_expanded(self):
        data = codec.serialize("a" * 10)
        envelope = codec.serialize({
            "data": data,
            "timestamp": 1,
            "checksum": codec.checksum(data),
            "version": "1.0",
        })
        legacy_payload = envelope.replace("a" * 10, "~10a")

        assert codec.decode(_seal_text(legacy_payload), KEY) == "a" * 10

    def test_legacy_unmask(self):
        text = '[{"username":"admin"}]'
        key_bytes = KEY.encode("utf-8")
        masked = base64.b64encode(
            bytes(ord(ch) ^ key_bytes[i % len(key_bytes)] for i, ch in enumerate(text))
        ).decode("ascii")

        assert codec.legacy_unmask(masked, KEY) == text

    def test_legacy_unmask_passes_unmasked_text_through(self):
        assert codec.legacy_unmask('{"plain": true}', KEY) == '{"plain": true}'
