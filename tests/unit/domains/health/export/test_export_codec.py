"""Tests for the password-protected export codec."""

from __future__ import annotations

from datetime import timedelta

import pytest

from healthvault.core.crypto.errors import AuthenticationFailed, MalformedEnvelope
from healthvault.core.crypto.kdf import SALT_SIZE
from healthvault.domains.health.export.codec import MIN_ARTIFACT_SIZE, ExportCodec
from healthvault.domains.health.export.renderers import CSV_HEADER, ExportFormat


@pytest.fixture
def codec(fast_kdf):
    return ExportCodec(kdf=fast_kdf)


@pytest.fixture
def records(record_factory):
    start = record_factory().start
    return [
        record_factory(kind="steps", value=120, start=start),
        record_factory(kind="heart_rate", value=72, start=start + timedelta(hours=1), unit="count/min"),
    ]


class TestExportAndOpen:
    def test_csv_round_trip(self, codec, records):
        artifact = codec.export(records, "correct horse")
        data = codec.open(artifact, "correct horse")
        assert data.decode("utf-8").splitlines()[0] == ",".join(CSV_HEADER)
        assert data == codec.render(records)

    def test_artifact_layout(self, codec, records):
        payload = codec.render(records)
        artifact = codec.export(records, "pw")
        # salt + nonce + ciphertext (same length as plaintext) + tag
        assert len(artifact) == SALT_SIZE + 12 + len(payload) + 16

    def test_fresh_salt_per_export(self, codec, records):
        a = codec.export(records, "pw")
        b = codec.export(records, "pw")
        assert a[:SALT_SIZE] != b[:SALT_SIZE]
        assert a != b

    def test_wrong_password(self, codec, records):
        artifact = codec.export(records, "correct horse")
        with pytest.raises(AuthenticationFailed):
            codec.open(artifact, "battery staple")

    def test_tampered_salt_fails(self, codec, records):
        artifact = bytearray(codec.export(records, "pw"))
        artifact[0] ^= 0x01
        with pytest.raises(AuthenticationFailed):
            codec.open(bytes(artifact), "pw")

    def test_tampered_tag_fails(self, codec, records):
        artifact = bytearray(codec.export(records, "pw"))
        artifact[-1] ^= 0x01
        with pytest.raises(AuthenticationFailed):
            codec.open(bytes(artifact), "pw")

    def test_short_artifact_is_malformed(self, codec):
        with pytest.raises(MalformedEnvelope):
            codec.open(b"\x00" * (MIN_ARTIFACT_SIZE - 1), "pw")

    def test_short_artifact_skips_key_derivation(self, records):
        class ExplodingKdf:
            def derive(self, password, salt):
                raise AssertionError("derive should not run")

        with pytest.raises(MalformedEnvelope):
            ExportCodec(kdf=ExplodingKdf()).open(b"short", "pw")

    def test_empty_record_set(self, codec):
        artifact = codec.export([], "pw")
        assert codec.open(artifact, "pw") == (",".join(CSV_HEADER) + "\n").encode("utf-8")

    def test_empty_password_rejected(self, codec, records):
        with pytest.raises(ValueError):
            codec.export(records, "")


class TestOpenDocument:
    def test_pdf_is_sniffed(self, codec, records):
        artifact = codec.export(records, "pw", ExportFormat.PDF, title="My Report")
        opened = codec.open_document(artifact, "pw")
        assert opened.format is ExportFormat.PDF
        assert opened.media_type == "application/pdf"
        assert opened.data.startswith(b"%PDF")

    def test_csv_is_sniffed(self, codec, records):
        opened = codec.open_document(codec.export(records, "pw"), "pw")
        assert opened.format is ExportFormat.CSV
        assert opened.media_type == "text/csv"

    def test_arbitrary_payload(self, codec):
        artifact = codec.export_payload(b"%PDF-1.7 hello", "pw")
        assert codec.open_document(artifact, "pw").format is ExportFormat.PDF
