"""
Tests for the critique-refine state machine and the critics.
"""

import unittest
from unittest.mock import MagicMock

from common.errors import GenerationError
from models.entities import Article, DigestContent
from summarization.critique import (
    CombinedCritic, Critic, Critique, CritiqueConfig, CritiqueLoop, CritiqueState, LLMCritic, LocalCritic,
)

ISSUES = Critique(overall_issues=["too vague"])
CLEAN = Critique()


class ScriptedCritic(Critic):
    """Returns the given critiques in order, repeating the last one."""

    name = "scripted"

    def __init__(self, *critiques):
        self.critiques = list(critiques)
        self.calls = 0

    def critique(self, draft, articles):
        self.calls += 1
        result = self.critiques[min(self.calls, len(self.critiques)) - 1]
        if isinstance(result, Exception):
            raise result
        return result


def draft(text="Draft"):
    return DigestContent(title=text, tldr_summary="tl;dr", executive_summary=text)


def counting_refiner():
    calls = []

    def refine(current, critique):
        calls.append(critique)
        return draft(f"Draft v{len(calls) + 1}")
    return refine, calls


class TestCritiqueLoop(unittest.TestCase):

    def test_clean_first_draft_finishes_without_refining(self):
        refine, calls = counting_refiner()
        outcome = CritiqueLoop(ScriptedCritic(CLEAN), refine, CritiqueConfig(max_rounds=2)).run(draft(), [])
        self.assertEqual(outcome.state, CritiqueState.DONE)
        self.assertEqual(outcome.rounds, 0)
        self.assertEqual(calls, [])
        self.assertEqual(outcome.transitions,
                         [CritiqueState.DRAFT, CritiqueState.CRITIQUE, CritiqueState.DONE])

    def test_refines_until_clean(self):
        refine, calls = counting_refiner()
        outcome = CritiqueLoop(ScriptedCritic(ISSUES, CLEAN), refine, CritiqueConfig(max_rounds=3)).run(draft(), [])
        self.assertEqual(outcome.state, CritiqueState.DONE)
        self.assertEqual(outcome.rounds, 1)
        self.assertEqual(outcome.draft.title, "Draft v2")
        self.assertEqual(len(outcome.critiques), 2)

    def test_stops_at_max_rounds(self):
        refine, calls = counting_refiner()
        critic = ScriptedCritic(ISSUES)
        outcome = CritiqueLoop(critic, refine, CritiqueConfig(max_rounds=2)).run(draft(), [])
        self.assertEqual(outcome.state, CritiqueState.MAX_ROUNDS_REACHED)
        self.assertEqual(outcome.rounds, 2)
        self.assertEqual(len(calls), 2)
        self.assertEqual(critic.calls, 3)
        self.assertEqual(outcome.draft.title, "Draft v3")

    def test_zero_rounds_runs_no_critique(self):
        refine, calls = counting_refiner()
        critic = ScriptedCritic(ISSUES)
        outcome = CritiqueLoop(critic, refine, CritiqueConfig(max_rounds=0)).run(draft(), [])
        self.assertEqual(outcome.state, CritiqueState.DONE)
        self.assertEqual(critic.calls, 0)
        self.assertEqual(outcome.transitions, [CritiqueState.DRAFT, CritiqueState.DONE])

    def test_disabled_config_runs_no_critique(self):
        refine, _ = counting_refiner()
        critic = ScriptedCritic(ISSUES)
        CritiqueLoop(critic, refine, CritiqueConfig(max_rounds=3, enabled=False)).run(draft(), [])
        self.assertEqual(critic.calls, 0)

    def test_failed_refine_keeps_previous_draft(self):
        def refine(current, critique):
            raise GenerationError("overloaded")

        original = draft("Original")
        outcome = CritiqueLoop(ScriptedCritic(ISSUES), refine, CritiqueConfig(max_rounds=2)).run(original, [])
        self.assertEqual(outcome.state, CritiqueState.DONE)
        self.assertIs(outcome.draft, original)
        self.assertEqual(outcome.rounds, 0)
        self.assertEqual(len(outcome.errors), 1)

    def test_failed_critique_keeps_draft(self):
        refine, calls = counting_refiner()
        outcome = CritiqueLoop(ScriptedCritic(GenerationError("down")), refine).run(draft(), [])
        self.assertEqual(outcome.state, CritiqueState.DONE)
        self.assertEqual(calls, [])
        self.assertEqual(len(outcome.errors), 1)

    def test_negative_rounds_rejected(self):
        from common.errors import ConfigurationError
        with self.assertRaises(ConfigurationError):
            CritiqueConfig(max_rounds=-1).validate()


class TestCritics(unittest.TestCase):

    def setUp(self):
        self.articles = [
            (1, Article(id="a1", url="https://example.com/1", title="One")),
            (2, Article(id="a2", url="https://example.com/2", title="Two")),
        ]

    def test_local_critic_flags_missing_and_vague(self):
        text = DigestContent(title="T", tldr_summary="", executive_summary="Several firms moved [1].")
        critique = LocalCritic().critique(text, self.articles)
        self.assertEqual(critique.articles_missing, [2])
        self.assertEqual(critique.vague_phrases, ["several"])
        self.assertTrue(any("figures" in issue for issue in critique.overall_issues))
        self.assertTrue(critique.has_issues)

    def test_local_critic_clean_draft(self):
        text = DigestContent(title="T", tldr_summary="", executive_summary="Nvidia sold 40,000 GPUs [1] [2].")
        self.assertFalse(LocalCritic().critique(text, self.articles).has_issues)

    def test_llm_critic_drops_unknown_article_numbers(self):
        generator = MagicMock()
        generator.generate_structured.return_value = {
            "articles_missing": [2, 9, "x"], "vague_phrases": ["various"],
            "overall_issues": [], "specificity_score": 40,
        }
        critique = LLMCritic(generator).critique(draft(), self.articles)
        self.assertEqual(critique.articles_missing, [2])
        self.assertEqual(critique.specificity_score, 40)

    def test_combined_critic_survives_one_failure(self):
        combined = CombinedCritic([ScriptedCritic(GenerationError("down")), ScriptedCritic(ISSUES)])
        critique = combined.critique(draft(), self.articles)
        self.assertEqual(critique.overall_issues, ["too vague"])
        self.assertEqual(len(combined.last_errors), 1)

    def test_combined_critic_fails_when_all_fail(self):
        combined = CombinedCritic([ScriptedCritic(GenerationError("down"))])
        with self.assertRaises(GenerationError):
            combined.critique(draft(), self.articles)

    def test_merge_unions_findings(self):
        merged = Critique(articles_missing=[3], vague_phrases=["many"], specificity_score=60).merge(
            Critique(articles_missing=[1, 3], vague_phrases=["many", "some"], specificity_score=40))
        self.assertEqual(merged.articles_missing, [1, 3])
        self.assertEqual(merged.vague_phrases, ["many", "some"])
        self.assertEqual(merged.specificity_score, 40)

    def test_notes_for_refine_prompt(self):
        notes = Critique(articles_missing=[4], vague_phrases=["several"]).notes()
        self.assertIn("Cite these uncited articles: [4]", notes)


if __name__ == "__main__":
    unittest.main()
