from vidstudy.models.document import Document

__all__ = ["Document"]
