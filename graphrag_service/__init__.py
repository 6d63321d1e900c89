"""
Agentic Graph RAG Service.

Routes natural-language questions to vector, graph and attribute-filter
retrieval, fuses the results and synthesizes an explainable answer.
"""

__version__ = "1.0.0"
