"""
Name: CV Chunker Unit Tests

Responsibilities:
  - One chunk per bullet/paragraph, positions in document order
  - Bullet markers and extra whitespace removed
  - Long entries packed at sentence boundaries within max_chunk_chars
  - Section names normalized; entity hints extracted
"""

import pytest

from portal_chat.domain.entities import CVSection
from portal_chat.infrastructure.text.cv_chunker import (
    CVChunker,
    extract_entities,
    normalize_section_name,
)

pytestmark = pytest.mark.unit


def test_one_chunk_per_item_in_document_order():
    drafts = CVChunker().chunk(
        [
            CVSection(name="Work Experience", items=("- Worked at Acme", "* Led the Data team")),
            CVSection(name="Skills", items=("Python,   Go",)),
        ]
    )

    assert [(d.section, d.text, d.position) for d in drafts] == [
        ("work_experience", "Worked at Acme", 0),
        ("work_experience", "Led the Data team", 1),
        ("skills", "Python, Go", 2),
    ]


def test_paragraphs_split_and_lines_join():
    drafts = CVChunker().chunk(
        [CVSection(name="Summary", items=("Engineer at heart\nwho ships.\n\nMentor.",))]
    )

    assert [d.text for d in drafts] == ["Engineer at heart who ships.", "Mentor."]


def test_long_entry_is_packed_by_sentence():
    item = "First sentence here. Second sentence here. Third sentence here."
    drafts = CVChunker(max_chunk_chars=45).chunk([CVSection(name="Summary", items=(item,))])

    assert [d.text for d in drafts] == [
        "First sentence here. Second sentence here.",
        "Third sentence here.",
    ]
    assert all(len(d.text) <= 45 for d in drafts)


def test_oversized_sentence_is_split_at_words():
    item = "word " * 30
    drafts = CVChunker(max_chunk_chars=20).chunk([CVSection(name="Notes", items=(item,))])

    assert len(drafts) > 1
    assert all(len(d.text) <= 20 for d in drafts)
    assert " ".join(d.text for d in drafts).split() == item.split()


def test_blank_items_produce_nothing():
    assert CVChunker().chunk([CVSection(name="Skills", items=("", "  \n "))]) == []


def test_chunker_validates_limit():
    with pytest.raises(ValueError):
        CVChunker(max_chunk_chars=0)


@pytest.mark.parametrize(
    "raw, expected",
    [
        ("Work Experience", "work_experience"),
        ("  SKILLS ", "skills"),
        ("Projects & Talks!", "projects_talks"),
        ("", ""),
    ],
)
def test_normalize_section_name(raw, expected):
    assert normalize_section_name(raw) == expected


def test_extract_entities_skips_sentence_starts_and_stopwords():
    entities = extract_entities("Worked at Acme with Python and Go. The C++ team at Google.")

    assert entities == ("Acme", "Python", "Go", "C++", "Google")
