from app.services.analysis.base import ImageAnalyzer, validate_analysis

__all__ = ["ImageAnalyzer", "validate_analysis"]
