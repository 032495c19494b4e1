"""
Completion layer
Responsibilities: provider clients, settings, and JSON extraction for model output.
"""

from .llm_client import LLMClient, create_llm_client
from .json_utils import parse_json_payload, extract_first_json_object

__all__ = ["LLMClient", "create_llm_client", "parse_json_payload", "extract_first_json_object"]
