from __future__ import annotations

import unittest

from models import QuestionType
from question_classifier import classify


class QuestionClassifierTests(unittest.TestCase):
    def test_question_mark_wins_over_structure(self) -> None:
        tag = classify("Do you like coffee?")
        self.assertIsNotNone(tag)
        self.assertEqual(tag.type, QuestionType.YES_NO)
        self.assertEqual(tag.reason, "Explicit question mark")

    def test_question_mark_subtypes(self) -> None:
        self.assertEqual(classify("Where are you going?").type, QuestionType.WH_QUESTION)
        self.assertEqual(classify("You finished the homework?").type, QuestionType.DIRECT)
        self.assertEqual(classify("Why?").type, QuestionType.WH_QUESTION)

    def test_structural_rules_need_more_than_two_words(self) -> None:
        tag = classify("What time is it")
        self.assertEqual(tag.type, QuestionType.WH_QUESTION)
        self.assertEqual(tag.reason, "Starts with 'what'")
        self.assertEqual(classify("Can we start now").type, QuestionType.YES_NO)
        self.assertIsNone(classify("Is it"))
        self.assertIsNone(classify("What now"))

    def test_indirect_openers(self) -> None:
        tag = classify("I wonder if you are free")
        self.assertEqual(tag.type, QuestionType.INDIRECT)
        self.assertEqual(tag.reason, "Starts with 'i wonder'")
        self.assertEqual(classify("Please explain the second rule").type, QuestionType.INDIRECT)
        self.assertEqual(classify("I’d like to know your opinion").type, QuestionType.INDIRECT)

    def test_indirect_opener_needs_word_boundary(self) -> None:
        self.assertIsNone(classify("I wonderfully enjoyed it"))

    def test_statements_are_not_questions(self) -> None:
        self.assertIsNone(classify("The sky is blue"))
        self.assertIsNone(classify(""))
        self.assertIsNone(classify("   "))

    def test_case_insensitive_and_original_text_preserved(self) -> None:
        tag = classify("  WHERE DID YOU GO  ")
        self.assertEqual(tag.type, QuestionType.WH_QUESTION)
        self.assertEqual(tag.text, "WHERE DID YOU GO")


if __name__ == "__main__":
    unittest.main()
