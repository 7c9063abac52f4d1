"""
Tests for WhatsApp address handling and outbound delivery.
"""

from types import SimpleNamespace
from unittest.mock import MagicMock

import pytest

from src.translator.config import get_config
from src.translator.messaging import (
    MAX_BODY_LENGTH,
    TwilioMessenger,
    empty_twiml,
    mask_address,
    normalize_whatsapp_address,
    split_body,
)
from src.translator.models import ReplyPlan


class TestAddresses:
    def test_adds_prefix(self):
        assert normalize_whatsapp_address("+14155238886") == "whatsapp:+14155238886"

    def test_keeps_single_prefix(self):
        assert normalize_whatsapp_address("whatsapp:+14155238886") == "whatsapp:+14155238886"
        assert normalize_whatsapp_address("whatsapp:whatsapp:+1415") == "whatsapp:+1415"
        assert normalize_whatsapp_address(" WhatsApp:+1415 ") == "whatsapp:+1415"

    def test_mask_address(self):
        assert mask_address("whatsapp:+15551234567") == "whatsapp:+*******4567"
        assert mask_address("") == ""

    def test_empty_twiml(self):
        assert empty_twiml().endswith("<Response></Response>")


class TestSplitBody:
    def test_short_body_is_unchanged(self):
        assert split_body("Hello") == ["Hello"]
        assert split_body("") == []

    def test_long_run_is_cut_at_limit(self):
        body = "x" * 3000
        chunks = split_body(body)
        assert [len(c) for c in chunks] == [MAX_BODY_LENGTH, 1400]
        assert "".join(chunks) == body

    def test_prefers_newline(self):
        body = "a" * 1000 + "\n" + "b" * 1000
        assert split_body(body) == ["a" * 1000, "b" * 1000]

    def test_breaks_between_words(self):
        body = " ".join(["word"] * 500)
        chunks = split_body(body)
        assert len(chunks) == 2
        assert all(len(c) <= MAX_BODY_LENGTH for c in chunks)
        assert all(c.endswith("word") and c.startswith("word") for c in chunks)
        assert " ".join(chunks) == body


class TestTwilioMessenger:
    def _messenger(self):
        client = MagicMock()
        client.messages.create.side_effect = [
            SimpleNamespace(sid=f"SM{i}") for i in range(5)
        ]
        return TwilioMessenger(get_config(), client=client), client

    def test_from_address_is_normalized(self):
        messenger, _ = self._messenger()
        assert messenger.from_address == "whatsapp:+14155238886"

    @pytest.mark.asyncio
    async def test_text_only_plan(self):
        messenger, client = self._messenger()

        sids = await messenger.send("+15551234567", ReplyPlan.text("Hello"))

        assert sids == ["SM0"]
        client.messages.create.assert_called_once_with(
            from_="whatsapp:+14155238886",
            to="whatsapp:+15551234567",
            body="Hello",
        )

    @pytest.mark.asyncio
    async def test_audio_is_sent_as_separate_message(self):
        messenger, client = self._messenger()
        plan = ReplyPlan(
            messages=["🗣 Hola", "🌐 Hello"],
            media_url="https://test.ngrok.io/media/abc.mp3",
        )

        sids = await messenger.send("whatsapp:+15551234567", plan)

        assert sids == ["SM0", "SM1", "SM2"]
        calls = client.messages.create.call_args_list
        assert [c.kwargs["body"] for c in calls] == ["🗣 Hola", "🌐 Hello", ""]
        assert "media_url" not in calls[0].kwargs
        assert calls[2].kwargs["media_url"] == ["https://test.ngrok.io/media/abc.mp3"]

    @pytest.mark.asyncio
    async def test_empty_plan_sends_nothing(self):
        messenger, client = self._messenger()
        assert await messenger.send("+15551234567", ReplyPlan()) == []
        client.messages.create.assert_not_called()

    @pytest.mark.asyncio
    async def test_long_body_is_split_across_messages(self):
        messenger, client = self._messenger()

        sids = await messenger.send("+15551234567", ReplyPlan.text("🌐 " + "x" * 3000))

        assert sids == ["SM0", "SM1"]
        bodies = [c.kwargs["body"] for c in client.messages.create.call_args_list]
        assert all(len(b) <= MAX_BODY_LENGTH for b in bodies)
        assert "".join(bodies) == "🌐 " + "x" * 3000
