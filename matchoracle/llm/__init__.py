"""Qualitative analysis collaborators (LLM client, prompts, grading)."""
