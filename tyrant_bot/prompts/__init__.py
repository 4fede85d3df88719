from .json_loader import load_prompt_json, merge_overrides

__all__ = ["load_prompt_json", "merge_overrides"]
