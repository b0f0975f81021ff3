from app.services.documents.base import DocumentGenerator

__all__ = ["DocumentGenerator"]
