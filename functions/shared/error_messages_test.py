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

from shared.error_messages import (
    format_validation_errors,
    friendly_error,
    get_error_message,
    operation_error,
)


class FriendlyErrorTest(unittest.TestCase):

    def test_network_errors(self):
        result = friendly_error("Failed to fetch")
        self.assertEqual(result.title, "Connection Problem")
        self.assertEqual(result.action, "retry")
        self.assertEqual(result.technical, "Failed to fetch")

    def test_auth_errors(self):
        self.assertEqual(friendly_error("Invalid authorization token").action, "refresh")
        self.assertEqual(friendly_error("No authorization header").action, "login")

    def test_membership_errors_are_access_denied(self):
        result = friendly_error("Your membership does not include this feature")
        self.assertEqual(result.title, "Access Denied")

    def test_unknown_errors_use_context(self):
        result = friendly_error("something odd", context="save the plan")
        self.assertEqual(result.title, "Something Went Wrong")
        self.assertIn("save the plan", result.message)

    def test_get_error_message_sources(self):
        self.assertEqual(get_error_message(ValueError("bad")), "bad")
        self.assertEqual(get_error_message({"error": "nope"}), "nope")
        self.assertEqual(
            get_error_message({"details": [{"field": "name"}, {"message": "too long"}]}),
            "name, too long",
        )
        self.assertEqual(get_error_message(None), "Unknown error")


class OperationErrorTest(unittest.TestCase):

    def test_required_field(self):
        result = operation_error("create", "Habit", "Habit name is required")
        self.assertEqual(result.title, "Missing Required Field")
        self.assertIn("name is required", result.message)

    def test_in_use(self):
        result = operation_error("delete", "Project", "Project has tasks attached to it")
        self.assertEqual(result.title, "Can't Delete Project")

    def test_falls_back_to_context(self):
        result = operation_error("load", "Tasks", "weird failure")
        self.assertIn("load your tasks", result.message)


class FormatValidationErrorsTest(unittest.TestCase):

    def test_formats_fields(self):
        message = format_validation_errors(
            [{"field": "habit_id", "message": "Field required"},
             {"field": "startDate", "message": "Field required"}]
        )
        self.assertEqual(message, "habit id: Field required\nstart date: Field required")

    def test_empty(self):
        self.assertEqual(
            format_validation_errors([]), "Please check your input and try again."
        )


if __name__ == "__main__":
    unittest.main()
