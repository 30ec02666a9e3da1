from .analyzer_page import AnalyzerPage

__all__ = ["AnalyzerPage"]
