from __future__ import annotations

import unittest

from segmenter import (
    MEDIUM_THRESHOLD,
    CaptionSegmenter,
    collapse_newlines,
    extract,
    join_split_acronyms,
    latest_fragment,
    normalize,
    separate_acronym_from_word,
    space_after_punctuation,
    tighten_wide_punctuation,
)


class NormalizerTests(unittest.TestCase):
    def test_split_acronym_is_joined(self) -> None:
        self.assertEqual(join_split_acronyms("the U. S. A today"), "the USA today")
        self.assertEqual(join_split_acronyms("the U.S. economy"), "the US. economy")

    def test_acronym_rule_leaves_words_alone(self) -> None:
        self.assertEqual(join_split_acronyms("I said. Then we left"), "I said. Then we left")

    def test_acronym_is_separated_from_following_word(self) -> None:
        self.assertEqual(separate_acronym_from_word("read USAToday daily"), "read USA Today daily")
        self.assertEqual(separate_acronym_from_word("an HTTPServer"), "an HTTP Server")
        self.assertEqual(separate_acronym_from_word("NASA launched"), "NASA launched")

    def test_single_space_after_punctuation(self) -> None:
        self.assertEqual(space_after_punctuation("Hello.World"), "Hello. World")
        self.assertEqual(space_after_punctuation("Wait!   Now,then"), "Wait! Now, then")
        self.assertEqual(space_after_punctuation("pi is 3.14"), "pi is 3.14")

    def test_wide_punctuation_spaces_removed(self) -> None:
        self.assertEqual(tighten_wide_punctuation("你好 。 世界 ！"), "你好。世界！")

    def test_newlines_collapse_to_space_only_for_long_text(self) -> None:
        short = "first line\n\n\nsecond line"
        self.assertEqual(collapse_newlines(short), "first line\nsecond line")
        long_text = ("word " * 40) + "\n\n" + "tail"
        self.assertGreater(len(long_text), MEDIUM_THRESHOLD)
        self.assertNotIn("\n", collapse_newlines(long_text))

    def test_normalize_applies_rules_in_order(self) -> None:
        self.assertEqual(normalize("We met the U. S. team.Then left"), "We met the US. team. Then left")


class ExtractTests(unittest.TestCase):
    def test_fragment_after_last_boundary(self) -> None:
        self.assertEqual(extract("Hello world. How are you", ""), ("How are you", True))

    def test_trailing_punctuation_keeps_last_sentence(self) -> None:
        self.assertEqual(extract("Hello world. How are you?", ""), ("How are you?", True))

    def test_no_boundary_returns_whole_text(self) -> None:
        self.assertEqual(extract("  Where  ", ""), ("Where", True))
        self.assertEqual(extract("Hello.", ""), ("Hello.", True))

    def test_wide_punctuation_is_a_boundary(self) -> None:
        self.assertEqual(latest_fragment("你好。今天怎么样"), "今天怎么样")

    def test_trailing_whitespace_after_sentence(self) -> None:
        self.assertEqual(latest_fragment("First one. Second one.  "), "Second one.")

    def test_second_call_with_same_raw_is_noop(self) -> None:
        raw = "Good morning everyone. Today we will talk about verbs"
        fragment, changed = extract(raw, "")
        self.assertTrue(changed)
        self.assertEqual(extract(raw, fragment), (fragment, False))

    def test_empty_raw_text_is_noop(self) -> None:
        self.assertEqual(extract("", "previous"), ("previous", False))
        self.assertEqual(extract("   \n ", "previous"), ("previous", False))

    def test_punctuation_only_is_noop(self) -> None:
        self.assertEqual(extract("?!", "previous"), ("previous", False))


class CaptionSegmenterTests(unittest.TestCase):
    def test_tracks_previous_fragment(self) -> None:
        segmenter = CaptionSegmenter()
        self.assertEqual(segmenter.extract("Where are"), ("Where are", True))
        self.assertEqual(segmenter.extract("Where are"), ("Where are", False))
        self.assertEqual(segmenter.extract("Where are you going?"), ("Where are you going?", True))
        self.assertEqual(segmenter.previous_fragment, "Where are you going?")
        segmenter.reset()
        self.assertEqual(segmenter.previous_fragment, "")


if __name__ == "__main__":
    unittest.main()
