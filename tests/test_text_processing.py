from __future__ import annotations

from types import SimpleNamespace

import pytest

from threatnews.services.language import LanguageFilter
from threatnews.services.sanitizer import sanitize
from threatnews.services.summarizer import Summarizer, truncate


def test_sanitize_strips_tags_and_keeps_text() -> None:
    html = '<p>Critical <b>zero-day</b> in <a href="https://x.example">VPN</a> gateways</p>'

    assert sanitize(html) == "Critical zero-day in VPN gateways"


def test_sanitize_drops_scripts_and_decodes_entities() -> None:
    html = "<div>Patch &amp; reboot<script>alert('x')</script><style>p {}</style></div>"

    assert sanitize(html) == "Patch & reboot"


def test_sanitize_tolerates_malformed_markup() -> None:
    assert sanitize("<p>Unclosed <b>bold <i>text") == "Unclosed bold text"
    assert sanitize("broken </div> markup <").startswith("broken")


def test_sanitize_plain_and_empty_input() -> None:
    assert sanitize("  plain\n text  ") == "plain text"
    assert sanitize("") == ""
    assert sanitize(None) == ""


def test_sanitize_is_deterministic() -> None:
    html = "<ul><li>one</li><li>two</li></ul>"

    assert sanitize(html) == sanitize(html) == "one two"


def test_truncate_keeps_short_text() -> None:
    assert truncate("short") == "short"
    assert truncate("x" * 150) == "x" * 150


def test_truncate_cuts_long_text_with_ellipsis() -> None:
    text = "y" * 200

    assert truncate(text) == "y" * 150 + "..."


def _client_returning(content: str | None, calls: list | None = None) -> SimpleNamespace:
    def create(**kwargs):
        if calls is not None:
            calls.append(kwargs)
        return SimpleNamespace(choices=[SimpleNamespace(message=SimpleNamespace(content=content))])

    return SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))


def test_summarizer_without_key_truncates() -> None:
    summarizer = Summarizer(api_key=None)

    assert summarizer.enabled is False
    assert summarizer.summarize("z" * 151) == "z" * 150 + "..."


def test_summarizer_blank_input_returns_none() -> None:
    assert Summarizer().summarize("   ") is None
    assert Summarizer().summarize("") is None


def test_summarizer_uses_client_response() -> None:
    calls: list = []
    summarizer = Summarizer(client=_client_returning("  Two sentence summary.  ", calls), model="demo")

    assert summarizer.summarize("A long description") == "Two sentence summary."
    assert calls[0]["model"] == "demo"
    assert "1-2 sentences" in calls[0]["messages"][-1]["content"]


def test_summarizer_falls_back_on_empty_response() -> None:
    summarizer = Summarizer(client=_client_returning(""))

    assert summarizer.summarize("Original text") == "Original text"


def test_summarizer_falls_back_on_api_error() -> None:
    def create(**kwargs):
        raise ConnectionError("network down")

    client = SimpleNamespace(chat=SimpleNamespace(completions=SimpleNamespace(create=create)))
    summarizer = Summarizer(client=client)

    assert summarizer.summarize("w" * 300) == "w" * 150 + "..."


@pytest.fixture(scope="module")
def language_filter() -> LanguageFilter:
    return LanguageFilter()


def test_language_filter_detects_english(language_filter: LanguageFilter) -> None:
    text = (
        "Researchers discovered a critical vulnerability in the popular web server software "
        "that attackers are already exploiting in the wild."
    )

    assert language_filter.detect(text) == "en"
    assert language_filter.is_allowed(text) is True


def test_language_filter_rejects_other_languages(language_filter: LanguageFilter) -> None:
    text = (
        "Die Forscher haben eine kritische Sicherheitslücke in der beliebten Webserver-Software "
        "entdeckt, die von Angreifern bereits ausgenutzt wird."
    )

    assert language_filter.detect(text) == "de"
    assert language_filter.is_allowed(text) is False


def test_language_filter_only_loads_candidate_profiles(language_filter: LanguageFilter) -> None:
    assert set(language_filter.languages) == {"en", "de", "fr", "es", "ru", "zh-cn"}


def test_language_filter_undetermined_input(language_filter: LanguageFilter) -> None:
    assert language_filter.detect("") is None
    assert language_filter.detect("12345 !!!") is None
    assert language_filter.is_allowed("") is False


def test_language_filter_requires_two_profiles() -> None:
    with pytest.raises(ValueError):
        LanguageFilter(candidates=["en"], allowed=["en"])


def test_language_filter_rejects_unknown_profiles() -> None:
    with pytest.raises(ValueError, match="Unknown language profile"):
        LanguageFilter(candidates=["en", "klingon"])
