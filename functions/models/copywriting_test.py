# Copyright 2025 Google LLC
#
# Licensed under the Apache License, Version 2.0 (the "License");
# you may not use this file except in compliance with the License.
# You may obtain a copy of the License at
#
#     http://www.apache.org/licenses/LICENSE-2.0
#
# Unless required by applicable law or agreed to in writing, software
# distributed under the License is distributed on an "AS IS" BASIS,
# WITHOUT WARRANTIES OR CONDITIONS OF ANY KIND, either express or implied.
# See the License for the specific language governing permissions and
# limitations under the License.
# ==============================================================================
import unittest
from unittest.mock import MagicMock, patch

from models import copywriting
from models.gemini import GeminiInvalidResponseException, PredictResult, call_predict
from shared.content_types import CopyControls


class ResolveControlsTest(unittest.TestCase):

    def test_content_type_defaults(self):
        controls = copywriting.resolve_controls("instagram_post", None)
        self.assertEqual(
            controls, CopyControls(length="short", emotion="high", urgency="none", tone="casual")
        )

    def test_overrides_ignore_unknown_values(self):
        controls = copywriting.resolve_controls(
            "instagram_post", {"length": "long", "tone": "shouty", "color": "red"}
        )
        self.assertEqual(controls.length, "long")
        self.assertEqual(controls.tone, "casual")

    def test_unknown_type_uses_global_defaults(self):
        self.assertEqual(copywriting.resolve_controls("haiku", {}), CopyControls())


class PromptTest(unittest.TestCase):

    def test_system_prompt_without_profile(self):
        prompt = copywriting.build_system_prompt({})
        self.assertNotIn("BUSINESS CONTEXT", prompt)
        self.assertNotIn("USER PREFERENCES", prompt)

    def test_system_prompt_with_profile(self):
        context = {
            "business_profile": {
                "business_name": "Bloom Studio",
                "voice_profile": {"style_summary": "Warm", "signature_phrases": ["Let's go"]},
                "voice_samples": ["one", "two", "three", "four"],
                "customer_reviews": ["Loved it"],
            }
        }
        prompt = copywriting.build_system_prompt(context)
        self.assertIn("Business: Bloom Studio", prompt)
        self.assertIn("Industry: Not specified", prompt)
        self.assertIn("Let's go", prompt)
        self.assertIn("three", prompt)
        self.assertNotIn("four", prompt)
        self.assertIn("CUSTOMER VOICE", prompt)

    def test_system_prompt_with_structured_profile_lists(self):
        context = {
            "business_profile": {
                "business_name": "Bloom Studio",
                "voice_profile": "warm and direct",
                "voice_samples": [{"text": "Sample post"}, {"title": "Untitled"}, None, 42],
                "customer_reviews": {"review": "Changed my mornings", "author": "Ana"},
            }
        }
        prompt = copywriting.build_system_prompt(context)
        self.assertNotIn("BRAND VOICE PROFILE", prompt)
        self.assertIn("Sample post\n\n---\n\n{\"title\": \"Untitled\"}\n\n---\n\n42", prompt)
        self.assertIn("CUSTOMER VOICE (use their language):\nChanged my mornings", prompt)

    def test_critique_prompt_with_structured_samples(self):
        context = {"business_profile": {"voice_samples": [{"content": "Hey friend"}, ""]}}
        prompt = copywriting.build_critique_prompt("Draft", context)
        self.assertTrue(prompt.endswith("BRAND VOICE SAMPLES:\nHey friend"))

    def test_only_low_ratings_become_preferences(self):
        feedback = [
            {"user_rating": 2, "feedback_text": "Too salesy"},
            {"user_rating": 5, "feedback_text": "Perfect"},
            {"user_rating": 3, "feedback_tags": ["long", "vague"]},
            {"user_rating": None, "feedback_text": "unrated"},
        ]
        prompt = copywriting.build_system_prompt({"past_feedback": feedback})
        self.assertIn("Previously rated 2/5 because: Too salesy", prompt)
        self.assertIn("Previously rated 3/5 because: long, vague", prompt)
        self.assertNotIn("Perfect", prompt)
        self.assertNotIn("unrated", prompt)

    def test_user_prompt(self):
        context = {
            "product_to_promote": {"product_name": "Course", "product_type": "digital", "price": 99},
            "additional_context": "Launching Monday",
        }
        prompt = copywriting.build_user_prompt("welcome_email_1", context)
        self.assertIn("Name: Course", prompt)
        self.assertIn("Price: $99", prompt)
        self.assertIn("Additional context: Launching Monday", prompt)
        self.assertIn("Write a Welcome Email #1.", prompt)
        self.assertIn("Keep it brief.", prompt)

    def test_user_prompt_for_unknown_type(self):
        prompt = copywriting.build_user_prompt("haiku", {})
        self.assertTrue(prompt.startswith("Write compelling haiku copy."))


class GenerateCopyTest(unittest.TestCase):

    @patch("models.copywriting.gemini.call_predict")
    def test_three_passes(self, mock_predict):
        mock_predict.side_effect = [
            PredictResult(text="draft", tokens=10),
            PredictResult(text="critique", tokens=5),
            PredictResult(text="final copy", tokens=20),
        ]

        result = copywriting.generate_copy("promo_email", {}, api_key="key")

        self.assertEqual(result.copy, "final copy")
        self.assertEqual(result.tokens_used, 35)
        self.assertGreaterEqual(result.generation_time_ms, 0)
        self.assertEqual(mock_predict.call_count, 3)
        temperatures = [c.kwargs["temperature"] for c in mock_predict.call_args_list]
        self.assertEqual(
            temperatures,
            [
                copywriting.DRAFT_TEMPERATURE,
                copywriting.CRITIQUE_TEMPERATURE,
                copywriting.REWRITE_TEMPERATURE,
            ],
        )
        self.assertIn("COPY TO CRITIQUE:\ndraft", mock_predict.call_args_list[1].args[0])
        rewrite_prompt = mock_predict.call_args_list[2].args[0]
        self.assertIn("ORIGINAL COPY:\ndraft", rewrite_prompt)
        self.assertIn("CRITIQUE:\ncritique", rewrite_prompt)

    @patch("models.copywriting.gemini.call_predict")
    def test_failure_propagates(self, mock_predict):
        mock_predict.side_effect = GeminiInvalidResponseException()
        with self.assertRaises(GeminiInvalidResponseException):
            copywriting.generate_copy("promo_email", {}, api_key="key")


class CallPredictTest(unittest.TestCase):

    def test_requires_api_key(self):
        with self.assertRaises(ValueError):
            call_predict("hello")

    @patch("models.gemini.genai.Client")
    def test_returns_text_and_tokens(self, mock_client_cls):
        response = MagicMock(text="hi there")
        response.usage_metadata.total_token_count = 42
        mock_client_cls.return_value.models.generate_content.return_value = response

        result = call_predict("hello", system_instruction="be nice", api_key="key")

        self.assertEqual(result, PredictResult(text="hi there", tokens=42))
        mock_client_cls.assert_called_once_with(api_key="key")
        kwargs = mock_client_cls.return_value.models.generate_content.call_args.kwargs
        self.assertEqual(kwargs["contents"], "hello")
        self.assertEqual(kwargs["config"].system_instruction, "be nice")

    @patch("models.gemini.genai.Client")
    def test_empty_response_raises(self, mock_client_cls):
        mock_client_cls.return_value.models.generate_content.return_value = MagicMock(text="")
        with self.assertRaises(GeminiInvalidResponseException):
            call_predict("hello", api_key="key")


if __name__ == "__main__":
    unittest.main()
