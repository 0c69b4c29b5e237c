from dreamweaver.playback.segmenter import segment, split_sentences

PROSE = (
    "The lantern flickered. Mira held her breath! Was something out there? "
    '"Stay close," whispered Tam. She nodded.\n\n'
    "Morning came slowly"
)


def test_split_on_terminal_punctuation_and_blank_lines():
    assert split_sentences(PROSE) == [
        "The lantern flickered.",
        "Mira held her breath!",
        "Was something out there?",
        '"Stay close," whispered Tam.',
        "She nodded.",
        "Morning came slowly",
    ]


def test_split_after_closing_quote():
    assert split_sentences('He said "Run!" Then he ran.') == ['He said "Run!"', "Then he ran."]


def test_whitespace_is_collapsed_and_empty_fragments_dropped():
    assert split_sentences("  One.   \n  Two.  \n\n\n  ") == ["One.", "Two."]
    assert split_sentences("   ") == []


def test_segment_is_deterministic():
    assert segment(PROSE, 0) == segment(PROSE, 0)


def test_indices_continue_across_chapters():
    first = segment(PROSE, chapter_index=0, start_index=0)
    second = segment("A new day. A new road.", chapter_index=1, start_index=len(first))

    sentences = first + second
    indices = [s.global_index for s in sentences]
    assert indices == list(range(len(sentences)))
    assert all(a < b for a, b in zip(indices, indices[1:]))
    assert {s.chapter_index for s in second} == {1}
