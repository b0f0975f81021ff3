"""User-facing message texts."""

from typing import Optional

from app.errors import AnalysisErrorKind
from app.schemas.events import MenuOption

MSG_WELCOME = """✨ Welcome to Korean Color Analysis!

I'm your AI color expert, ready to discover your perfect palette!

🎨 I'll analyze your photo to determine:
• Your personal season (Spring, Summer, Autumn, Winter)
• Your best colors and shades
• Makeup & style recommendations
• Colors to avoid

Ready to discover your true colors? 💖"""

MSG_GUIDE = """📸 For the best results, please follow these tips:

✅ DO THIS:
• Use natural light (near a window)
• Plain, light background
• Face the camera directly
• Remove glasses/hat
• Minimal or no makeup
• Keep hair away from face

❌ AVOID:
• Artificial lighting
• Colored backgrounds
• Heavy makeup
• Shadows on face
• Blurry photos

Ready to take your perfect selfie?"""

MSG_PHOTO_INSTRUCTIONS = """📷 Perfect! Now please send me your selfie.

Remember:
• Good lighting is key!
• Face the camera
• Plain background
• Clear, unblurry photo

I'll analyze your colors as soon as you send it! ✨"""

MSG_WAITING_FOR_PHOTO = (
    "I'm waiting for your beautiful selfie! 📸 Please take a clear photo following the guidelines I shared earlier."
)
MSG_ANALYZING_ACK = "📸 Got your beautiful photo! Let me analyze your colors... This will take 30-60 seconds. ✨"
MSG_STILL_ANALYZING = "I'm still analyzing your photo... This usually takes 30-60 seconds. Please wait! ✨"
MSG_PHOTO_NOT_EXPECTED = (
    "Thanks for the photo! But I'm not ready to analyze it yet. Please type 'start' to begin the process properly. ✨"
)
MSG_PHOTO_WHILE_ANALYZING = "I'm already analyzing your previous photo. Please wait a moment! ✨"
MSG_RESTART = "Let's start fresh! 🌟 Ready for your new color analysis?"
MSG_PAYMENT_REMINDER = (
    "Please complete your payment to receive the complete style guide. "
    "If you've already paid, type 'paid' to check status. 💳"
)
MSG_CHECKING_PAYMENT = "Checking your payment status... Please wait a moment! 🔄"
MSG_PAYMENT_NOT_CONFIRMED = (
    "I couldn't verify your payment yet. Please try again in a few minutes or contact support if you've already paid. 🙏"
)
MSG_PAYMENT_CONFIRMED = "🎉 Payment confirmed! Generating your complete style guide..."
MSG_PAYMENT_LINK_FAILED = "Sorry, I couldn't create your payment link right now. Please type 'buy' again in a minute. 🙏"
MSG_NO_ANALYSIS = "Please complete your color analysis first before purchasing the guide! Type 'start' to begin. ✨"
MSG_DOCUMENT_DELAYED = (
    "Your payment is confirmed, but I couldn't prepare your guide just yet. "
    "I'll retry shortly; send any message to check, or contact support. 🙏"
)
MSG_COMPLETED = (
    "You already have your complete style guide! 💖 Type 'new' if you'd like to analyze another photo."
)
MSG_ERROR = "Sorry, I encountered an error. Please try again or contact support. 🙏"
MSG_ANALYSIS_STUCK = (
    "Sorry, your analysis took too long. Please send your selfie again! 📸"
)

ANALYSIS_FAILURE_REASONS = {
    AnalysisErrorKind.TIMEOUT: "the analysis took too long",
    AnalysisErrorKind.INVALID_FORMAT: "I couldn't read that image",
    AnalysisErrorKind.RATE_LIMITED: "I'm receiving too many photos right now",
    AnalysisErrorKind.UNKNOWN: "something went wrong on my side",
}

WELCOME_OPTIONS = [MenuOption(id="start_analysis", title="Let's Start! ✨")]
GUIDE_OPTIONS = [MenuOption(id="start_analysis", title="I'm Ready! 📸")]
RESULTS_OPTIONS = [
    MenuOption(
        id="get_pdf",
        title="📄 Get Complete Style Guide",
        description="15-page PDF with detailed recommendations",
    ),
    MenuOption(id="new_analysis", title="🔄 Analyze Another Photo", description="Start fresh with a new selfie"),
    MenuOption(id="share_results", title="📱 Share My Results", description="Share your color season with friends"),
]
MSG_RESULTS_OPTIONS = "What would you like to do next? 💖"


def format_price(amount_minor_units: int, currency: str) -> str:
    symbol = {"INR": "₹", "USD": "$", "EUR": "€", "GBP": "£"}.get(currency.upper(), f"{currency.upper()} ")
    major = amount_minor_units / 100
    return f"{symbol}{major:,.0f}" if amount_minor_units % 100 == 0 else f"{symbol}{major:,.2f}"


def _season(analysis: Optional[dict]) -> str:
    profile = (analysis or {}).get("personal_profile") or {}
    return profile.get("season") or "unique season"


def _color_list(colors, limit: int) -> str:
    items = []
    for color in (colors or [])[:limit]:
        if isinstance(color, dict):
            items.append(f"{color.get('name', 'Color')} ({color.get('hex', '')})".replace(" ()", ""))
    return "\n• ".join(items)


def format_analysis_results(analysis: dict) -> list[str]:
    """Result messages, one text per section present in the analysis."""
    profile = analysis.get("personal_profile") or {}
    palettes = analysis.get("color_palettes") or {}
    messages = [
        f"🎉 Analysis Complete!\n\n🌟 *You're a {_season(analysis)}!*\n\n"
        f"{profile.get('summary', '')}\n\n*Your undertone:* {profile.get('undertone', '-')}"
    ]

    key_colors = _color_list(palettes.get("key_colors"), 6)
    if key_colors:
        messages.append(f"🎨 *Your Key Colors:*\n• {key_colors}")

    neutrals = _color_list(palettes.get("neutrals"), 4)
    if neutrals:
        messages.append(f"🤍 *Your Best Neutrals:*\n• {neutrals}")

    recommendations = analysis.get("recommendations") or {}
    if recommendations:
        makeup = recommendations.get("makeup") or {}
        style = recommendations.get("style") or {}
        hair = ", ".join((recommendations.get("hair_colors") or [])[:3])
        messages.append(
            "💄 *Quick Recommendations:*\n\n"
            f"*Makeup Style:* {makeup.get('vibe', '-')}\n"
            f"*Best Lipstick:* {makeup.get('lipstick', '-')}\n"
            f"*Hair Colors:* {hair or '-'}\n"
            f"*Jewelry:* {style.get('jewelry', '-')}"
        )

    avoid = _color_list(analysis.get("colors_to_avoid"), 4)
    if avoid:
        messages.append(f"⚠️ *Colors to Use Carefully:*\n• {avoid}")

    return messages


def format_analysis_failure(kind: AnalysisErrorKind) -> str:
    reason = ANALYSIS_FAILURE_REASONS.get(kind, ANALYSIS_FAILURE_REASONS[AnalysisErrorKind.UNKNOWN])
    return (
        f"Sorry, I couldn't analyze your photo: {reason}.\n\n"
        "Please try with a different photo - make sure it's well-lit and shows your face clearly! 📸"
    )


def format_payment_offer(price: str) -> str:
    return f"""📚 *Complete Style Guide - {price}*

Get your personalized 15-page PDF including:
• Complete color palettes with hex codes
• Specific makeup brand recommendations
• Hair color suggestions with examples
• Fashion styling tips
• Printable wallet-sized color card

This one-time payment gives you everything you need to transform your style! 💫"""


def format_payment_link(link: str) -> str:
    return f"💳 *Pay securely here:* {link}\n\nAfter payment, I'll send your complete guide instantly! ✨"


def format_payment_failed(reason: Optional[str]) -> str:
    return (
        f"Your payment didn't go through ({reason or 'unknown error'}). "
        "Type 'buy' to get a fresh payment link, or contact support. 🙏"
    )


def format_share_text(analysis: Optional[dict]) -> str:
    share = (
        f"🎨 I just discovered I'm a {_season(analysis)}!\n\n"
        "✨ Want to find your perfect colors too?\n"
        "💬 Message this number for your free Korean Color Analysis!\n\n"
        "#ColorAnalysis #KoreanColorAnalysis #PersonalColors"
    )
    return f"Here's a message you can share with friends: 📱\n\n{share}"


def format_document_delivery(document_ref: str) -> str:
    return f"""📚 Your complete Korean Color Analysis guide is ready!

Download it here: {document_ref}

This link will be valid for 7 days. Save it to your device!

Thank you for choosing us! If you love your results, please share with friends! 💖"""
