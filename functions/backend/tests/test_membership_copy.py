import unittest
from unittest.mock import patch

from backend import membership
from backend.config import get_settings
from backend.tables import AiCopyGenerationRow, MembershipRow, UserProfileRow
from backend.tests.helpers import PREFIX, ApiTestCase, make_settings
from models.copywriting import CopyResult
from models.gemini import GeminiInvalidResponseException


class TierTests(unittest.TestCase):
    def test_highest_tier_wins(self):
        self.assertEqual(membership.tier_for_tags([]), "free")
        self.assertEqual(membership.tier_for_tags(["newsletter"]), "free")
        self.assertEqual(membership.tier_for_tags(["90dp-member"]), "member")
        self.assertEqual(
            membership.tier_for_tags(["90dp-member", "mastermind", "planner-pro"]),
            "mastermind",
        )

    def test_inactive_memberships_get_free_features(self):
        self.assertIn("ai_copywriting", membership.features_for("pro", "active"))
        self.assertNotIn("ai_copywriting", membership.features_for("pro", "cancelled"))
        self.assertEqual(membership.features_for("unknown", "active"), ["planner", "tasks", "habits"])


class MembershipWebhookTests(ApiTestCase):
    def _webhook(self, payload, secret="hook-secret"):
        headers = {"X-Webhook-Secret": secret} if secret else {}
        return self.client.post(f"{PREFIX}/ghl-membership-webhook", json=payload, headers=headers)

    def test_webhook_requires_secret(self):
        response = self._webhook({"email": "a@b.co"}, secret=None)
        self.assertEqual(response.status_code, 401)
        response = self._webhook({"email": "a@b.co"}, secret="wrong")
        self.assertEqual(response.status_code, 401)
        self.assertEqual(response.json()["error"], "Invalid webhook secret")

    def test_webhook_not_configured(self):
        settings = make_settings(ghl_webhook_secret=None)
        self.app.dependency_overrides[get_settings] = lambda: settings
        response = self._webhook({"email": "a@b.co"})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"], "Webhook is not configured")

    def test_webhook_upserts_and_links_profile(self):
        with self.db.Session() as session:
            session.add(UserProfileRow(user_id=self.user_id, email="Coach@Example.com"))
            session.commit()

        response = self._webhook(
            {"contact": {"id": "ghl-1", "email": "COACH@example.com ", "tags": "90dp-pro, vip"}}
        )
        self.assertEqual(response.status_code, 200, response.text)
        data = response.json()["data"]
        self.assertEqual(data["email"], "coach@example.com")
        self.assertEqual(data["tier"], "pro")
        self.assertEqual(data["status"], "active")
        self.assertEqual(data["tags"], ["90dp-pro", "vip"])
        self.assertEqual(data["user_id"], self.user_id)

        self._webhook({"email": "coach@example.com", "tags": ["90dp-pro"], "status": "cancelled"})
        with self.db.Session() as session:
            self.assertEqual(session.query(MembershipRow).count(), 1)
            self.assertEqual(session.get(MembershipRow, "coach@example.com").status, "cancelled")

    def test_webhook_requires_email(self):
        response = self._webhook({"contact": {"tags": ["90dp-pro"]}})
        self.assertEqual(response.status_code, 400)
        self.assertEqual(response.json()["error"], "Contact email is required")

    def test_get_membership_defaults_to_free(self):
        data = self.post("get-membership").json()["data"]
        self.assertEqual(data["tier"], "free")
        self.assertEqual(data["status"], "none")

    def test_membership_links_when_profile_arrives_later(self):
        self._webhook({"email": "late@example.com", "tags": ["mastermind"]})
        with self.db.Session() as session:
            session.add(UserProfileRow(user_id=self.user_id, email="late@example.com"))
            session.commit()

        data = self.post("get-membership").json()["data"]
        self.assertEqual(data["tier"], "mastermind")
        self.assertIn("coaching", data["features"])
        with self.db.Session() as session:
            self.assertEqual(session.get(MembershipRow, "late@example.com").user_id, self.user_id)


class MembershipSignInTests(ApiTestCase):
    user_id = "user-9"

    def _webhook(self, payload):
        return self.client.post(
            f"{PREFIX}/ghl-membership-webhook",
            json=payload,
            headers={"X-Webhook-Secret": "hook-secret"},
        )

    @patch("models.copywriting.generate_copy")
    def test_webhook_before_first_sign_in(self, mock_generate):
        mock_generate.return_value = CopyResult(copy="Hi", tokens_used=1, generation_time_ms=1)
        self._webhook({"email": "pro@example.com", "tags": ["90dp-pro"]})

        data = self.post("get-membership", email="Pro@Example.com").json()["data"]
        self.assertEqual(data["tier"], "pro")
        self.assertEqual(data["status"], "active")

        response = self.post("generate-copy", {"content_type": "blog_post"}, email="pro@example.com")
        self.assertEqual(response.status_code, 200, response.text)
        # Linked now, so the email claim is no longer needed.
        response = self.post("generate-copy", {"content_type": "blog_post"})
        self.assertEqual(response.status_code, 200, response.text)

    def test_sign_in_before_webhook(self):
        data = self.post("get-membership", email="early@example.com").json()["data"]
        self.assertEqual(data["tier"], "free")

        linked = self._webhook({"email": "early@example.com", "tags": ["planner-member"]}).json()
        self.assertEqual(linked["data"]["user_id"], self.user_id)
        self.assertEqual(self.post("get-membership").json()["data"]["tier"], "member")

    def test_membership_of_another_user_is_not_shared(self):
        self._webhook({"email": "pro@example.com", "tags": ["90dp-pro"]})
        self.post("get-membership", email="pro@example.com")

        data = self.post("get-membership", user_id="user-10", email="pro@example.com").json()["data"]
        self.assertEqual(data["tier"], "free")
        response = self.post(
            "generate-copy", {"content_type": "blog_post"}, user_id="user-10", email="pro@example.com"
        )
        self.assertEqual(response.status_code, 403)


class CopywritingTests(ApiTestCase):
    def setUp(self):
        super().setUp()
        with self.db.Session() as session:
            session.add(
                MembershipRow(
                    email="pro@example.com",
                    user_id=self.user_id,
                    tier="pro",
                    status="active",
                    tags=["90dp-pro"],
                )
            )
            session.commit()

    def test_free_members_are_gated(self):
        response = self.post("generate-copy", {"content_type": "blog_post"}, user_id="user-2")
        self.assertEqual(response.status_code, 403)
        self.assertEqual(response.json()["code"], "FEATURE_NOT_AVAILABLE")

    @patch("models.copywriting.generate_copy")
    def test_generate_copy_stores_generation(self, mock_generate):
        mock_generate.return_value = CopyResult(copy="Buy now", tokens_used=321, generation_time_ms=900)
        response = self.post(
            "generate-copy",
            {
                "content_type": "instagram_post",
                "product_to_promote": {"product_name": "Course"},
                "controls": {"tone": "formal"},
            },
        )
        self.assertEqual(response.status_code, 200, response.text)
        payload = response.json()
        self.assertEqual(payload["copy"], "Buy now")
        self.assertEqual(payload["tokens_used"], 321)

        args, kwargs = mock_generate.call_args
        self.assertEqual(args[0], "instagram_post")
        self.assertEqual(args[1]["controls"], {"tone": "formal"})
        self.assertEqual(args[1]["past_feedback"], [])
        self.assertNotIn("business_profile", args[1])
        self.assertEqual(kwargs["api_key"], "gemini-key")

        with self.db.Session() as session:
            row = session.get(AiCopyGenerationRow, payload["id"])
        self.assertEqual(row.generated_copy, "Buy now")
        self.assertNotIn("past_feedback", row.context)

    @patch("models.copywriting.generate_copy")
    def test_rated_generations_feed_back(self, mock_generate):
        mock_generate.return_value = CopyResult(copy="v1", tokens_used=1, generation_time_ms=1)
        first = self.post("generate-copy", {"content_type": "blog_post"}).json()

        rated = self.post(
            "rate-copy",
            {"generation_id": first["id"], "rating": 2, "feedback_text": "Too salesy"},
        )
        self.assertEqual(rated.status_code, 200, rated.text)
        self.assertEqual(rated.json()["data"]["user_rating"], 2)

        self.post("generate-copy", {"content_type": "blog_post"})
        context = mock_generate.call_args[0][1]
        self.assertEqual(
            context["past_feedback"], [{"user_rating": 2, "feedback_text": "Too salesy"}]
        )

    @patch("models.copywriting.generate_copy")
    def test_empty_model_response(self, mock_generate):
        mock_generate.side_effect = GeminiInvalidResponseException()
        response = self.post("generate-copy", {"content_type": "blog_post"})
        self.assertEqual(response.status_code, 502)
        self.assertEqual(response.json()["error"], "The AI model returned an empty response")

    def test_not_configured(self):
        settings = make_settings(gemini_api_key=None)
        self.app.dependency_overrides[get_settings] = lambda: settings
        response = self.post("generate-copy", {"content_type": "blog_post"})
        self.assertEqual(response.status_code, 503)
        self.assertEqual(response.json()["error"], "AI copywriting is not configured")

    def test_rate_copy_errors(self):
        response = self.post("rate-copy", {"generation_id": "x", "rating": 9})
        self.assertEqual(response.json()["error"], "Rating must be between 1 and 5")
        response = self.post("rate-copy", {"generation_id": "missing", "rating": 3})
        self.assertEqual(response.status_code, 404)


if __name__ == "__main__":
    unittest.main()
