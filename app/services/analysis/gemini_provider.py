import base64
import json

import httpx

from app.errors import AnalysisErrorKind, AnalysisFailure
from app.logging_config import get_logger
from app.services.analysis.base import ImageAnalyzer, validate_analysis

logger = get_logger("analysis.gemini")

ANALYSIS_PROMPT = """
You are an expert Korean personal color analyst. Your task is to analyze the provided selfie to determine the user's personal color season based on the detailed 12-season system and provide actionable recommendations.

**Analysis Steps:**
1.  **Observe Skin Undertone:** Look for cool (pink, red, blueish), warm (yellow, peachy, golden), or neutral/olive tones.
2.  **Determine Value & Chroma:** Assess the overall lightness/darkness and brightness/softness of their features.
3.  **Synthesize:** Identify the most fitting of the 12 seasons (e.g., True Summer, Warm Autumn, Bright Winter).

**Output Format:**
Respond with a single, valid JSON object only. Do not include any markdown formatting, comments, or surrounding text.

**JSON Structure:**
{
  "personal_profile": {"season": "...", "undertone": "...", "summary": "..."},
  "color_palettes": {
    "key_colors": [{"name": "...", "hex": "#HEXCODE", "description": "..."}],
    "neutrals": [{"name": "...", "hex": "#HEXCODE", "description": "..."}],
    "accent_colors": [{"name": "...", "hex": "#HEXCODE", "description": "..."}]
  },
  "recommendations": {
    "makeup": {"vibe": "...", "foundation": "...", "blush": "...", "eyeshadow": "...", "lipstick": "..."},
    "hair_colors": ["...", "...", "..."],
    "style": {"jewelry": "...", "fabrics": "...", "patterns": "..."}
  },
  "colors_to_avoid": [{"name": "...", "hex": "#HEXCODE"}]
}

**Important Constraints:**
- Provide 6 'key_colors', 4 'neutrals', and 2 'accent_colors'.
- Provide 3-4 'hair_colors'.
- Provide 4 'colors_to_avoid'.
- Ensure all hex codes are valid.
"""


class GeminiProvider(ImageAnalyzer):
    """Google Gemini generateContent provider."""

    def __init__(self, api_key: str, model: str = "gemini-1.5-flash-latest", timeout_seconds: float = 60.0):
        self.api_key = api_key
        self.model = model
        self.timeout_seconds = timeout_seconds
        self.base_url = f"https://generativelanguage.googleapis.com/v1beta/models/{model}:generateContent"

    async def analyze(self, image_bytes: bytes, mime_type: str = "image/jpeg") -> dict:
        if not self.api_key:
            raise AnalysisFailure("Gemini API key is not configured", AnalysisErrorKind.UNKNOWN)
        if not image_bytes:
            raise AnalysisFailure("Empty image", AnalysisErrorKind.INVALID_FORMAT)

        payload = {
            "contents": [
                {
                    "parts": [
                        {"text": ANALYSIS_PROMPT},
                        {"inline_data": {"mime_type": mime_type, "data": base64.b64encode(image_bytes).decode()}},
                    ]
                }
            ],
            "generationConfig": {
                "response_mime_type": "application/json",
                "temperature": 0.4,
                "topP": 0.95,
                "topK": 40,
            },
        }
        logger.debug(f"Gemini request: model={self.model}, bytes={len(image_bytes)}")

        try:
            async with httpx.AsyncClient(timeout=self.timeout_seconds) as client:
                response = await client.post(self.base_url, params={"key": self.api_key}, json=payload)
        except httpx.TimeoutException as e:
            raise AnalysisFailure("Analysis timed out", AnalysisErrorKind.TIMEOUT) from e
        except httpx.HTTPError as e:
            raise AnalysisFailure(f"Gemini request failed: {e}", AnalysisErrorKind.UNKNOWN) from e

        logger.debug(f"Gemini response status: {response.status_code}")
        if response.status_code == 429:
            raise AnalysisFailure("Too many requests", AnalysisErrorKind.RATE_LIMITED)
        if response.status_code == 400:
            raise AnalysisFailure("Invalid image format", AnalysisErrorKind.INVALID_FORMAT)
        if response.status_code != 200:
            logger.error(f"Gemini error: {response.text[:300]}")
            raise AnalysisFailure(f"Gemini API error: {response.status_code}", AnalysisErrorKind.UNKNOWN)

        try:
            data = response.json()
        except ValueError as e:
            logger.error(f"Gemini returned a non-JSON body: {response.text[:200]}")
            raise AnalysisFailure("Invalid response format from Gemini API", AnalysisErrorKind.UNKNOWN) from e
        return self._parse(data)

    @staticmethod
    def _parse(data: dict) -> dict:
        try:
            text = data["candidates"][0]["content"]["parts"][0]["text"]
        except (KeyError, IndexError, TypeError) as e:
            raise AnalysisFailure("Invalid response format from Gemini API", AnalysisErrorKind.UNKNOWN) from e

        try:
            analysis = json.loads(text)
        except ValueError as e:
            logger.error(f"Gemini returned non-JSON analysis: {text[:200]}")
            raise AnalysisFailure("Failed to parse analysis results", AnalysisErrorKind.UNKNOWN) from e

        if not validate_analysis(analysis):
            raise AnalysisFailure("Analysis results are incomplete or invalid", AnalysisErrorKind.UNKNOWN)
        return analysis
