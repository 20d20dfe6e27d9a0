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

"""User-facing translations of technical error messages."""

import re
from dataclasses import asdict, dataclass
from typing import Any, List, Optional, Pattern, Tuple


@dataclass
class FriendlyError:
    title: str
    message: str
    action: Optional[str] = None  # retry | refresh | contact | login
    technical: Optional[str] = None

    def as_dict(self) -> dict:
        return asdict(self)


# Order matters: the first matching pattern wins.
ERROR_PATTERNS: List[Tuple[Pattern, FriendlyError]] = [
    (
        re.compile(r"failed to fetch|network|connection|offline|ERR_NETWORK", re.I),
        FriendlyError(
            "Connection Problem",
            "Couldn't connect to the server. Please check your internet "
            "connection and try again.",
            "retry",
        ),
    ),
    (
        re.compile(r"timeout|timed out", re.I),
        FriendlyError(
            "Request Timed Out",
            "The server took too long to respond. Please try again.",
            "retry",
        ),
    ),
    (
        re.compile(
            r"invalid token|invalid authorization token|jwt|expired|unauthorized"
            r"|401|not authenticated",
            re.I,
        ),
        FriendlyError(
            "Session Expired",
            "Your session has expired. Please refresh the page to log in again.",
            "refresh",
        ),
    ),
    (
        re.compile(r"no authorization header|no session", re.I),
        FriendlyError("Not Logged In", "Please log in to continue.", "login"),
    ),
    (
        re.compile(r"rate limit|too many requests|429", re.I),
        FriendlyError(
            "Too Many Requests",
            "You're making requests too quickly. Please wait a moment and try again.",
            "retry",
        ),
    ),
    (
        re.compile(r"database|postgres|sqlalchemy|500|internal server", re.I),
        FriendlyError(
            "Server Error",
            "Something went wrong on our end. Please try again, or contact "
            "support if this continues.",
            "retry",
        ),
    ),
    (
        re.compile(r"permission denied|membership|row.level.security", re.I),
        FriendlyError(
            "Access Denied",
            "You don't have permission to perform this action.",
            "contact",
        ),
    ),
    (
        re.compile(r"duplicate|unique constraint|already exists", re.I),
        FriendlyError(
            "Already Exists",
            "This item already exists. Please use a different name or update "
            "the existing one.",
            "retry",
        ),
    ),
    (
        re.compile(r"foreign key|reference|constraint", re.I),
        FriendlyError(
            "Can't Delete",
            "This item is connected to other data. Please remove those "
            "connections first.",
            "retry",
        ),
    ),
    (
        re.compile(r"validation|required|invalid|must be", re.I),
        FriendlyError(
            "Invalid Input", "Please check your input and try again.", "retry"
        ),
    ),
    (
        re.compile(r"not found|404|does not exist", re.I),
        FriendlyError(
            "Not Found",
            "The item you're looking for doesn't exist or may have been deleted.",
            "retry",
        ),
    ),
]

OPERATION_CONTEXT = {
    "create": "create the {item}",
    "update": "update the {item}",
    "delete": "delete the {item}",
    "load": "load your {item}",
    "save": "save the {item}",
}


def get_error_message(error: Any) -> str:
    """Extract a message from strings, exceptions and error payloads."""
    if isinstance(error, str):
        return error
    if isinstance(error, BaseException):
        return str(error)
    if isinstance(error, dict):
        for key in ("message", "error", "error_description"):
            if error.get(key):
                return str(error[key])
        details = error.get("details")
        if isinstance(details, list):
            return ", ".join(
                str(d.get("message") or d.get("field")) for d in details
            )
    return "Unknown error"


def friendly_error(error: Any, context: Optional[str] = None) -> FriendlyError:
    message = get_error_message(error)
    for pattern, friendly in ERROR_PATTERNS:
        if pattern.search(message):
            return FriendlyError(
                friendly.title, friendly.message, friendly.action, message
            )

    if context:
        text = (
            f"We couldn't {context}. Please try again or contact support "
            "if this continues."
        )
    else:
        text = "An unexpected error occurred. Please try again."
    return FriendlyError("Something Went Wrong", text, "retry", message)


def operation_error(operation: str, item_type: str, error: Any) -> FriendlyError:
    """Friendly error for a create/update/delete/load/save of ``item_type``."""
    message = get_error_message(error)
    lowered = message.lower()

    if "required" in lowered:
        match = re.search(r"(\w+)\s+(?:is\s+)?required", message, re.I)
        field_name = match.group(1) if match else "A field"
        return FriendlyError(
            "Missing Required Field",
            f"Couldn't {operation}: {field_name} is required.",
            "retry",
            message,
        )

    if any(
        marker in lowered
        for marker in ("in use", "attached to", "has tasks", "foreign key")
    ):
        return FriendlyError(
            f"Can't Delete {item_type}",
            f"This {item_type.lower()} is being used elsewhere. Remove those "
            "connections first.",
            "retry",
            message,
        )

    template = OPERATION_CONTEXT.get(operation, "{item}")
    return friendly_error(error, template.format(item=item_type.lower()))


def format_validation_errors(details: List[dict]) -> str:
    if not details:
        return "Please check your input and try again."

    lines = []
    for detail in details:
        field_name = str(detail.get("field", ""))
        field_name = re.sub(r"([a-z])([A-Z])", r"\1 \2", field_name.replace("_", " "))
        lines.append(f"{field_name.lower()}: {detail.get('message', '')}")
    return "\n".join(lines)
