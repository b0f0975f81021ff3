from abc import ABC, abstractmethod


class ImageAnalyzer(ABC):
    """Abstract base class for colour-analysis providers."""

    @abstractmethod
    async def analyze(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> dict:
        """Return the analysis record or raise AnalysisFailure."""
        pass


def validate_analysis(analysis) -> bool:
    """Check the keys the conversation and document layers rely on."""
    if not isinstance(analysis, dict):
        return False

    profile = analysis.get("personal_profile")
    if not isinstance(profile, dict) or not all(profile.get(key) for key in ("season", "undertone", "summary")):
        return False

    palettes = analysis.get("color_palettes")
    if not isinstance(palettes, dict):
        return False
    if not all(isinstance(palettes.get(key), list) for key in ("key_colors", "neutrals", "accent_colors")):
        return False

    recommendations = analysis.get("recommendations")
    if not isinstance(recommendations, dict):
        return False
    if not recommendations.get("makeup") or not recommendations.get("style"):
        return False
    if not isinstance(recommendations.get("hair_colors"), list):
        return False

    return isinstance(analysis.get("colors_to_avoid"), list)
