from .consent_document import consent_document

__all__ = ["consent_document"]
