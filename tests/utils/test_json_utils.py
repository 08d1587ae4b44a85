"""
Tests for model-output JSON parsing
"""
from chiefai.utils.json_utils import repair_json, strip_code_fences


class TestRepairJson:
    """Parsing replies from the language model"""

    def test_plain_object(self):
        assert repair_json('{"is_meeting_request": true, "confidence": 0.8}') == {
            "is_meeting_request": True,
            "confidence": 0.8,
        }

    def test_code_fences_and_prose(self):
        """Fenced replies with trailing chatter still parse"""
        text = 'Here you go:\n```json\n{"is_meeting_request": false}\n```\nHope this helps!'
        assert repair_json(text) == {"is_meeting_request": False}

    def test_truncated_reply(self):
        """A reply cut off mid-object is closed up"""
        result = repair_json('{"is_meeting_request": true, "attendees": ["Ann", "Bo')
        assert result["is_meeting_request"] is True
        assert result["attendees"] == ["Ann", "Bo"]

    def test_unusable_reply(self):
        assert repair_json("") == {}
        assert repair_json("no json here") == {}
        assert repair_json('{"a": }') == {}

    def test_non_object_is_rejected(self):
        assert repair_json('[1, 2, 3]') == {}

    def test_strip_code_fences(self):
        assert strip_code_fences('```\n{"a": 1}\n```') == '{"a": 1}'
