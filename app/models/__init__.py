from .base import BaseModel
from .consent_document import ConsentDocument

__all__ = ["BaseModel", "ConsentDocument"]
