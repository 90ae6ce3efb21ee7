from problem_vault.llm.client import LLMClient, extract_json_block
from problem_vault.llm.config import LLMConfig

__all__ = ["LLMClient", "LLMConfig", "extract_json_block"]
