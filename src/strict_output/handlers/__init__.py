from .structured_output import StructuredOutputHandler

__all__ = ["StructuredOutputHandler"]
