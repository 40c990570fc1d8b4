"""Tests for inbound payload parsing and the queue/ignore decision."""
import pytest

from channels.admission import (
    IGNORE_SELF, IGNORE_UNMENTIONED, QUEUED, admit, mentions_bot, parse_inbound,
)
from channels.errors import AdmissionError

from conftest import BOT_ID, make_message, make_raw_event


class TestParseInbound:
    def test_direct_message(self):
        msg = parse_inbound(make_raw_event(mid=10, from_uid=3, content="hi"))
        assert msg.mid == 10
        assert msg.from_uid == 3
        assert not msg.target.is_group
        assert msg.content == "hi"
        assert msg.mentions == []

    def test_group_message_with_mentions(self):
        msg = parse_inbound(make_raw_event(gid=5, mentions=[7, 8]))
        assert msg.target.is_group
        assert msg.mentions == [7, 8]

    def test_image_detection(self):
        msg = parse_inbound(make_raw_event(content="a.jpg", content_type="vocechat/file",
                                           file_content_type="image/jpeg"))
        assert msg.is_image
        assert msg.attachment_content_type == "image/jpeg"

    def test_unknown_fields_ignored(self):
        raw = make_raw_event()
        raw["extra"] = {"anything": True}
        assert parse_inbound(raw).mid == 1

    def test_message_is_immutable(self):
        msg = parse_inbound(make_raw_event())
        with pytest.raises(Exception):
            msg.mid = 99

    @pytest.mark.parametrize("raw", [
        [],
        "text",
        None,
        {"mid": 1},
        {**make_raw_event(), "target": {}},
        {**make_raw_event(), "target": {"uid": 1, "gid": 2}},
        {**make_raw_event(), "detail": {"content_type": "text/plain"}},
    ])
    def test_malformed_payloads(self, raw):
        with pytest.raises(AdmissionError):
            parse_inbound(raw)


class TestAdmit:
    def test_self_message_ignored(self):
        decision = admit(make_message(from_uid=int(BOT_ID)), BOT_ID)
        assert not decision.accepted
        assert decision.reason == IGNORE_SELF

    def test_self_message_in_group_ignored(self):
        decision = admit(make_message(from_uid=int(BOT_ID), gid=1, mentions=[7]), BOT_ID)
        assert decision.reason == IGNORE_SELF

    def test_direct_message_always_admitted(self):
        decision = admit(make_message(content="no mention at all"), BOT_ID)
        assert decision.accepted
        assert decision.reason == QUEUED

    def test_group_without_mention_ignored(self):
        decision = admit(make_message(gid=1, content="talking among ourselves"), BOT_ID)
        assert not decision.accepted
        assert decision.reason == IGNORE_UNMENTIONED

    def test_group_mention_of_other_user_ignored(self):
        decision = admit(make_message(gid=1, mentions=[8], content="@8 hi"), BOT_ID)
        assert not decision.accepted

    def test_group_mentions_list(self):
        assert admit(make_message(gid=1, mentions=[7], content="hi"), BOT_ID).accepted

    def test_group_inline_mention(self):
        assert admit(make_message(gid=1, content="hey @7 what's up"), BOT_ID).accepted

    @pytest.mark.parametrize("content", ["@chatgpt hi", "@ChatGPT hi", "yo @CHATGPT"])
    def test_group_alias_case_insensitive(self, content):
        assert admit(make_message(gid=1, content=content), BOT_ID).accepted

    def test_custom_alias(self):
        msg = make_message(gid=1, content="@helper summarize")
        assert admit(msg, BOT_ID, alias="@Helper").accepted
        assert not admit(msg, BOT_ID).accepted

    def test_mentions_bot_with_empty_alias(self):
        assert not mentions_bot(make_message(gid=1, content="@chatgpt"), BOT_ID, alias="")
