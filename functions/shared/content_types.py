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

"""Static catalogs for the editorial calendar and AI copywriting."""

from dataclasses import asdict, dataclass, field
from typing import Dict, List, Optional

CATEGORIES = ("email", "social", "ad", "sales", "other")

FALLBACK_PLATFORM_COLOR = "#6B7280"


@dataclass(frozen=True)
class CopyControls:
    length: str = "medium"  # short | medium | long
    emotion: str = "moderate"  # low | moderate | high
    urgency: str = "none"  # none | soft | strong
    tone: str = "balanced"  # casual | balanced | formal


@dataclass(frozen=True)
class ContentType:
    id: str
    category: str
    name: str
    description: str
    color: str
    default_platforms: List[str] = field(default_factory=list)
    default_controls: CopyControls = CopyControls()
    guidance: str = ""

    def as_dict(self) -> dict:
        return asdict(self)


@dataclass(frozen=True)
class Platform:
    id: str
    label: str
    short_label: str
    color: str


PLATFORMS: Dict[str, Platform] = {
    p.id: p
    for p in (
        Platform("instagram", "Instagram", "IG", "#E4405F"),
        Platform("linkedin", "LinkedIn", "LI", "#0A66C2"),
        Platform("youtube", "YouTube", "YT", "#FF0000"),
        Platform("tiktok", "TikTok", "TT", "#000000"),
        Platform("facebook", "Facebook", "FB", "#1877F2"),
        Platform("email", "Email", "Email", "#EA580C"),
        Platform("blog", "Blog", "Blog", "#10B981"),
        Platform("podcast", "Podcast", "Pod", "#8B5CF6"),
        Platform("twitter", "Twitter/X", "X", "#1DA1F2"),
        Platform("newsletter", "Newsletter", "NL", "#F59E0B"),
        Platform("pinterest", "Pinterest", "Pin", "#E60023"),
        Platform("threads", "Threads", "Thr", "#000000"),
        Platform("substack", "Substack", "Sub", "#FF6719"),
        Platform("patreon", "Patreon", "Pat", "#F96854"),
        Platform("discord", "Discord", "Disc", "#5865F2"),
        Platform("whatsapp", "WhatsApp", "WA", "#25D366"),
        Platform("clubhouse", "Clubhouse", "Club", "#F6E05E"),
        Platform("teachable", "Teachable/Courses", "Teach", "#FF7849"),
        Platform("twitch", "Twitch", "Twi", "#9146FF"),
        Platform("slack", "Slack Community", "Slack", "#4A154B"),
        Platform("medium", "Medium", "Med", "#000000"),
        Platform("spotify", "Spotify", "Spot", "#1DB954"),
    )
}


def _welcome(number: int, description: str, controls: CopyControls, guidance: str) -> ContentType:
    return ContentType(
        id=f"welcome_email_{number}",
        category="email",
        name=f"Welcome Email #{number}",
        description=description,
        color=PLATFORMS["email"].color,
        default_platforms=["email"],
        default_controls=controls,
        guidance=f"This is Email {number} in a welcome sequence.\n\n{guidance}",
    )


CONTENT_TYPES: Dict[str, ContentType] = {
    t.id: t
    for t in (
        _welcome(
            1,
            "Deliver value + build trust (no selling)",
            CopyControls(length="short"),
            "- Include ONE tactical tip with numbered steps\n"
            "- Specific timeframe (today, this week)\n"
            "- Expected outcome stated\n"
            "- NO selling or pitching\n"
            "- Soft CTA (reply, try this)\n\nLength: 250-400 words",
        ),
        _welcome(
            2,
            "Origin story + position as guide",
            CopyControls(emotion="high"),
            "PURPOSE: Build emotional connection through story.\n"
            "- Share YOUR struggle (specific moment)\n"
            "- Turning point with details\n"
            "- Mirror reader's current situation\n"
            "- NO selling\n\nLength: 350-500 words",
        ),
        _welcome(
            3,
            "Teaching content + value",
            CopyControls(),
            "PURPOSE: Deliver teaching content that positions you as expert.\n"
            "- One clear teaching point\n"
            "- Actionable framework or method\n"
            "- Real examples with specifics\n\nLength: 400-550 words",
        ),
        _welcome(
            4,
            "Social proof + soft intro to offer",
            CopyControls(urgency="soft"),
            "PURPOSE: Build credibility through social proof and hint at solution.\n"
            "- Share client/customer wins (specifics!)\n"
            "- Show transformation\n"
            "- Soft intro to your offer\n\nLength: 400-500 words",
        ),
        _welcome(
            5,
            "Make the offer + invite next step",
            CopyControls(length="long", urgency="soft"),
            "PURPOSE: Make your offer with clear next step.\n"
            "- Clear offer presentation\n"
            "- Benefits over features\n"
            "- Overcome 2-3 objections\n"
            "- Strong but not pushy CTA\n\nLength: 500-700 words",
        ),
        ContentType(
            id="email_newsletter",
            category="email",
            name="Email Newsletter",
            description="Weekly value email",
            color=PLATFORMS["newsletter"].color,
            default_platforms=["email", "newsletter"],
            guidance="Weekly newsletter email.\n- One main topic/teaching\n"
            "- Actionable takeaway\n- Personal touch\n- Soft CTA\n- 300-500 words",
        ),
        ContentType(
            id="promo_email",
            category="email",
            name="Promo Email",
            description="Promotional/launch email",
            color=PLATFORMS["email"].color,
            default_platforms=["email"],
            default_controls=CopyControls(urgency="soft"),
            guidance="Promotional or launch email.\n- Clear offer\n- Deadline (if real)\n"
            "- Benefits focus\n- Strong CTA\n- 400-600 words",
        ),
        ContentType(
            id="instagram_post",
            category="social",
            name="Instagram Post",
            description="Stop-the-scroll caption",
            color=PLATFORMS["instagram"].color,
            default_platforms=["instagram"],
            default_controls=CopyControls(length="short", emotion="high", tone="casual"),
            guidance="Instagram post caption.\n- Hook in first 3 words\n"
            "- Line breaks for readability\n- One clear point\n"
            "- Engagement question at end\n- 100-300 words max",
        ),
        ContentType(
            id="linkedin_post",
            category="social",
            name="LinkedIn Post",
            description="Professional thought leadership",
            color=PLATFORMS["linkedin"].color,
            default_platforms=["linkedin"],
            guidance="LinkedIn post.\n- Professional but authentic\n"
            "- Clear insight/takeaway\n- Specific examples or data\n"
            "- Engagement question\n- 150-400 words",
        ),
        ContentType(
            id="twitter_thread",
            category="social",
            name="Twitter/X Thread",
            description="Multi-tweet thread",
            color=PLATFORMS["twitter"].color,
            default_platforms=["twitter", "threads"],
            default_controls=CopyControls(tone="casual"),
            guidance="Twitter/X thread.\n- Hook tweet (quotable)\n- 5-10 tweets total\n"
            "- Numbered (1/10, 2/10...)\n- Strong CTA at end\n- Max 280 chars per tweet",
        ),
        ContentType(
            id="facebook_ad",
            category="ad",
            name="Facebook Ad",
            description="Scroll-stopping ad copy",
            color=PLATFORMS["facebook"].color,
            default_platforms=["facebook", "instagram"],
            default_controls=CopyControls(
                length="short", emotion="high", urgency="soft", tone="casual"
            ),
            guidance="Facebook/Instagram ad copy.\n- Hook in first 3 words\n"
            "- Clear benefit/outcome\n- Single CTA\n- Under 150 words",
        ),
        ContentType(
            id="sales_page_headline",
            category="sales",
            name="Sales Page Headline",
            description="Attention-grabbing headline",
            color="#DC2626",
            default_platforms=["blog"],
            default_controls=CopyControls(length="short", emotion="high", urgency="soft"),
            guidance="Sales page headline.\n- Clear outcome/benefit\n"
            "- Specific (numbers if possible)\n- Under 15 words\n- Believable promise",
        ),
        ContentType(
            id="sales_page_body",
            category="sales",
            name="Sales Page Body",
            description="Long-form sales copy",
            color="#DC2626",
            default_platforms=["blog"],
            default_controls=CopyControls(length="long", urgency="soft"),
            guidance="Long-form sales page body.\n- Problem, agitation, solution\n"
            "- Benefits over features\n- Social proof\n- Objection handling\n- Clear CTA",
        ),
        ContentType(
            id="blog_post",
            category="other",
            name="Blog Post",
            description="Educational blog content",
            color=PLATFORMS["blog"].color,
            default_platforms=["blog", "medium", "substack"],
            default_controls=CopyControls(length="long"),
            guidance="Educational blog post.\n- Searchable title\n- Scannable subheadings\n"
            "- Actionable steps\n- 800-1500 words",
        ),
        ContentType(
            id="video_script",
            category="other",
            name="Video Script",
            description="Engaging video script",
            color=PLATFORMS["youtube"].color,
            default_platforms=["youtube", "tiktok"],
            default_controls=CopyControls(tone="casual"),
            guidance="Video script.\n- Hook in first 5 seconds\n- One core idea\n"
            "- Conversational delivery\n- CTA at end",
        ),
        ContentType(
            id="social_post",
            category="social",
            name="Social Media Post",
            description="General social content",
            color="#0EA5E9",
            default_platforms=["instagram", "facebook", "linkedin", "threads"],
            default_controls=CopyControls(length="short", tone="casual"),
            guidance="General social media post.\n- Strong hook\n- One idea\n"
            "- Engagement prompt",
        ),
    )
}


def get_content_type(content_type_id: str) -> Optional[ContentType]:
    return CONTENT_TYPES.get(content_type_id)


def content_types_by_category(category: str) -> List[ContentType]:
    return [t for t in CONTENT_TYPES.values() if t.category == category]


def normalize_platform(platform: Optional[str]) -> Optional[str]:
    if not platform:
        return None
    return platform.lower().replace(" ", "")


def platform_color(platform: Optional[str]) -> str:
    entry = PLATFORMS.get(normalize_platform(platform) or "")
    return entry.color if entry else FALLBACK_PLATFORM_COLOR
