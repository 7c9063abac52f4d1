"""
Tests for the short-lived media store.
"""

import os
import time

from src.translator.media import MediaStore
from src.translator.tts_types import SynthesizedAudio


def test_save_returns_public_url(tmp_path):
    store = MediaStore(str(tmp_path), "https://test.ngrok.io/media/")

    url = store.save(SynthesizedAudio(audio_bytes=b"mp3"))

    assert url.startswith("https://test.ngrok.io/media/")
    name = url.rsplit("/", 1)[1]
    assert name.endswith(".mp3")
    assert store.resolve(name).read_bytes() == b"mp3"


def test_resolve_rejects_unsafe_names(tmp_path):
    store = MediaStore(str(tmp_path), "https://test.ngrok.io/media")
    (tmp_path / "secret.mp3").write_bytes(b"x")

    assert store.resolve("secret.mp3") is None
    assert store.resolve("../secret.mp3") is None
    assert store.resolve("") is None


def test_expired_media_is_pruned(tmp_path):
    store = MediaStore(str(tmp_path), "https://test.ngrok.io/media", ttl_seconds=60)
    name = store.save(SynthesizedAudio(audio_bytes=b"old")).rsplit("/", 1)[1]
    old = time.time() - 120
    os.utime(tmp_path / name, (old, old))

    assert store.resolve(name) is None
    assert store.prune() == 1
    assert not (tmp_path / name).exists()
