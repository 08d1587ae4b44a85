"""
Tests for scheduling link validation
"""
import pytest

from chiefai.utils.scheduling_links import validate_scheduling_link


class TestValidateSchedulingLink:

    def test_known_platform(self):
        link = validate_scheduling_link("https://calendly.com/dana/30min")
        assert link.url == "https://calendly.com/dana/30min"
        assert link.platform == "Calendly"
        assert link.is_known_platform

    def test_scheme_added(self):
        link = validate_scheduling_link("cal.com/dana")
        assert link.url == "https://cal.com/dana"
        assert link.platform == "Cal.com"

    def test_unknown_platform_allowed(self):
        link = validate_scheduling_link("https://book.example.org/dana")
        assert link is not None
        assert link.is_known_platform is False

    @pytest.mark.parametrize("url", [None, "", "   ", "ftp://calendly.com/dana", "https://localhost/x", "not a url"])
    def test_rejected(self, url):
        assert validate_scheduling_link(url) is None
