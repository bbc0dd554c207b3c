"""
Project Q&A retrieval core: decides per question between spreadsheet queries and
semantic document search, and builds the context for the answering model.
"""

__version__ = "0.1.0"
