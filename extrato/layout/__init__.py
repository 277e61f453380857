"""Layout reconstruction modules."""
from .reconstructor import LayoutReconstructor, document_fragments, page_fragments

__all__ = ["LayoutReconstructor", "document_fragments", "page_fragments"]
