from __future__ import annotations

import pytest

from sharechat.extract.structured import Target, extract, parse_selector

EXPORT = """
<main>
  <div data-message-author-role="user">
    <div class="message-content">first question</div>
  </div>
  <div data-message-author-role="assistant">
    <div class="message-content">first <b>answer</b></div>
  </div>
  <div data-message-author-role="user">
    <div class="message-content">second &amp; last question</div>
  </div>
  <div data-message-author-role="assistant">
    <div class="message-content">second answer</div>
  </div>
</main>
"""

TEXT_TARGETS = [
    Target("user_texts", '[data-message-author-role="user"] .message-content'),
    Target("assistant_texts", '[data-message-author-role="assistant"] .message-content'),
]


def test_last_occurrence_wins_per_target():
    found = extract(EXPORT, TEXT_TARGETS)
    assert found.get("user_texts") == "second & last question"
    assert found.get("assistant_texts") == "second answer"


def test_sequence_keeps_every_match_in_document_order():
    found = extract(EXPORT, TEXT_TARGETS)
    assert found.sequence == [
        ("user_texts", "first question"),
        ("assistant_texts", "first answer"),
        ("user_texts", "second & last question"),
        ("assistant_texts", "second answer"),
    ]
    assert found.all("user_texts") == ["first question", "second & last question"]


def test_text_concatenates_nested_fragments():
    found = extract('<p class="x">a <i>b</i> <span>c</span>d</p>', [Target("t", "p.x")])
    assert found.get("t") == "a b cd"


def test_minimal_entity_set_only():
    markup = '<div class="m">&lt;tag&gt; &quot;q&quot; it&#x27;s a&#x2F;b &amp; &nbsp;&copy;</div>'
    found = extract(markup, [Target("t", ".m")])
    assert found.get("t") == "<tag> \"q\" it's a/b & &nbsp;&copy;"


def test_attribute_target_captures_value():
    markup = '<div data-message-author-role="user" data-id="u1"></div><div data-message-author-role="assistant" data-id="a1"></div>'
    found = extract(markup, [Target("ids", "[data-message-author-role]", "data-id")])
    assert found.get("ids") == "a1"
    assert found.all("ids") == ["u1", "a1"]


def test_descendant_selector_requires_ancestor():
    markup = '<div class="message-content">orphan</div>'
    found = extract(markup, TEXT_TARGETS)
    assert found.values == {}


def test_tolerates_unclosed_and_stray_tags():
    markup = '</span><div data-message-author-role="user"><div class="message-content">open <br> end'
    found = extract(markup, TEXT_TARGETS)
    assert found.get("user_texts") == "open  end"


def test_script_text_is_not_captured():
    markup = '<div class="m">safe<script>alert(1)</script></div>'
    found = extract(markup, [Target("t", ".m")])
    assert found.get("t") == "safe"


@pytest.mark.parametrize(
    "selector, expected_len",
    [
        ("div", 1),
        ("div.a.b", 1),
        ("#main", 1),
        ('[data-x="1"]', 1),
        ("[data-x='1'] span", 2),
        ("section > div", None),
    ],
)
def test_parse_selector(selector, expected_len):
    if expected_len is None:
        with pytest.raises(ValueError):
            parse_selector(selector)
    else:
        assert len(parse_selector(selector)) == expected_len


def test_compound_matching():
    (compound,) = parse_selector('div.message-content[data-role="x"]')
    assert compound.matches("div", {"class": "foo message-content", "data-role": "x"})
    assert not compound.matches("span", {"class": "message-content", "data-role": "x"})
    assert not compound.matches("div", {"class": "message-content"})
