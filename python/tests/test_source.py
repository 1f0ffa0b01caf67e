"""Tests for decoding assets into pixel buffers."""

import numpy as np
import pytest

from deepguard.errors import DecodeError, UnsupportedTypeError
from deepguard.source import (
    decode_image,
    load_asset,
    resolve_media_type,
    sample_video,
    sniff_mime_type,
)
from deepguard.types import MediaType

from conftest import encode_png, make_mp4


class TestSniffMimeType:
    @pytest.mark.parametrize("header,expected", [
        (b"\xff\xd8\xff\xe0" + b"\x00" * 8, "image/jpeg"),
        (b"\x89PNG\r\n\x1a\n", "image/png"),
        (b"GIF89a" + b"\x00" * 6, "image/gif"),
        (b"RIFF\x00\x00\x00\x00WEBPVP8 ", "image/webp"),
        (b"RIFF\x00\x00\x00\x00AVI LIST", "video/x-msvideo"),
        (b"\x00\x00\x00\x18ftypmp42", "video/mp4"),
        (b"\x00\x00\x00\x14ftypqt  ", "video/quicktime"),
        (b"\x1a\x45\xdf\xa3\x9f\x42\x86\x81", "video/webm"),
    ])
    def test_known_headers(self, header, expected):
        assert sniff_mime_type(header) == expected

    def test_unknown(self):
        assert sniff_mime_type(b"%PDF-1.7 something") is None

    def test_too_short(self):
        assert sniff_mime_type(b"\xff") is None


class TestResolveMediaType:
    def test_declared_image(self):
        assert resolve_media_type("image/png") is MediaType.IMAGE

    def test_declared_video(self):
        assert resolve_media_type("video/mp4") is MediaType.VIDEO

    def test_declared_type_wins(self, gray_png_bytes):
        assert resolve_media_type("video/webm", gray_png_bytes, "a.png") is MediaType.VIDEO

    def test_declared_unsupported(self):
        with pytest.raises(UnsupportedTypeError, match="application/pdf"):
            resolve_media_type("application/pdf")

    def test_guess_from_filename(self):
        assert resolve_media_type(None, filename="clip.mp4") is MediaType.VIDEO

    def test_sniff_when_filename_is_unhelpful(self, gray_png_bytes):
        assert resolve_media_type(None, gray_png_bytes, "upload.bin") is MediaType.IMAGE

    def test_nothing_known(self):
        with pytest.raises(UnsupportedTypeError):
            resolve_media_type(None, b"plain text content", "notes")


class TestDecodeImage:
    def test_png(self, gray_png_bytes):
        buf = decode_image(gray_png_bytes)
        assert (buf.width, buf.height) == (64, 64)
        assert buf.pixels[0, 0].tolist() == [128, 128, 128, 255]

    def test_jpeg(self, sample_jpeg_bytes):
        buf = decode_image(sample_jpeg_bytes)
        assert (buf.width, buf.height) == (64, 64)
        assert np.all(buf.pixels[..., 3] == 255)

    def test_keeps_alpha(self):
        arr = np.zeros((4, 6, 4), dtype=np.uint8)
        arr[..., 3] = 77
        buf = decode_image(encode_png(arr))
        assert (buf.width, buf.height) == (6, 4)
        assert np.all(buf.pixels[..., 3] == 77)

    def test_invalid_bytes(self):
        with pytest.raises(DecodeError):
            decode_image(b"definitely not an image")

    def test_truncated_png(self, gray_png_bytes):
        with pytest.raises(DecodeError):
            decode_image(gray_png_bytes[:40])


class TestLoadAsset:
    def test_image_metadata(self, gray_png_bytes):
        asset = load_asset(gray_png_bytes, "gray.png")
        assert asset.media_type is MediaType.IMAGE
        assert len(asset.frames) == 1
        assert asset.metadata.byte_size == len(gray_png_bytes)
        assert (asset.metadata.width, asset.metadata.height) == (64, 64)
        assert asset.metadata.duration is None

    def test_declared_byte_size(self, gray_png_bytes):
        asset = load_asset(gray_png_bytes, "gray.png", "image/png", byte_size=123456)
        assert asset.metadata.byte_size == 123456

    def test_unsupported(self):
        with pytest.raises(UnsupportedTypeError):
            load_asset(b"%PDF-1.4", "report.pdf", "application/pdf")


@pytest.mark.slow
class TestSampleVideo:
    def test_frame_count_and_duration(self, gray_mp4_bytes):
        sample = sample_video(gray_mp4_bytes, 5)
        assert len(sample.frames) == 5
        assert sample.duration == pytest.approx(1.0, abs=0.1)
        assert sample.fps == pytest.approx(30.0, abs=1.0)
        assert (sample.width, sample.height) == (64, 64)

    def test_frames_are_chronological(self, ramp_mp4_bytes):
        sample = sample_video(ramp_mp4_bytes, 5)
        means = [float(frame.luma().mean()) for frame in sample.frames]
        assert means == sorted(means)
        assert means[-1] - means[0] > 100

    def test_single_frame(self, gray_mp4_bytes):
        sample = sample_video(gray_mp4_bytes, 1)
        assert len(sample.frames) == 1

    def test_invalid_frame_count(self, gray_mp4_bytes):
        with pytest.raises(ValueError):
            sample_video(gray_mp4_bytes, 0)

    def test_garbage_bytes(self):
        with pytest.raises(DecodeError):
            sample_video(b"\x00\x00\x00\x18ftypmp42" + b"\x00" * 64)

    def test_load_asset_video(self, gray_mp4_bytes):
        asset = load_asset(gray_mp4_bytes, "clip.mp4", frame_count=3)
        assert asset.media_type is MediaType.VIDEO
        assert len(asset.frames) == 3
        assert asset.metadata.duration == pytest.approx(1.0, abs=0.1)

    def test_short_clip_yields_each_frame_once(self):
        frames = [np.full((64, 64, 3), level, dtype=np.uint8) for level in (0, 100, 200)]
        sample = sample_video(make_mp4(frames), 5)
        assert len(sample.frames) == 3
        means = [float(frame.luma().mean()) for frame in sample.frames]
        assert means[0] < means[1] < means[2]
