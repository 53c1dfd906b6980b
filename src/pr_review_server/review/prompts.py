"""
Review Prompt Construction

The prompt always carries four inputs, in this order: PR title, PR
description, retrieved codebase context and the raw diff. Missing
description or context is replaced by an explicit placeholder, never
omitted.
"""

from __future__ import annotations

from typing import Optional, Sequence

NO_DESCRIPTION = "No description provided"
NO_CONTEXT = "No specific context found"

REVIEW_INSTRUCTIONS = """Please provide:
1. **Walkthrough**: A file-by-file explanation of the changes.
2. **Sequence Diagram**: A Mermaid sequence diagram of the changed flow, if applicable, in a ```mermaid block. Keep labels free of quotes, braces and parentheses so the diagram renders.
3. **Summary**: Brief overview.
4. **Strengths**: What's done well.
5. **Issues**: Bugs, security concerns, code smells.
6. **Suggestions**: Specific code improvements.
7. **Closing Remark**: A short, friendly note summarizing the change.

Format your response in markdown."""


def build_review_query(title: str, description: Optional[str]) -> str:
    """Retrieval query for a pull request: title and description."""
    return f"{title}\n{description or ''}".strip()


def build_review_prompt(
    title: str,
    description: Optional[str],
    context: Sequence[str],
    diff: str,
) -> str:
    description_text = description.strip() if description and description.strip() else NO_DESCRIPTION
    context_text = "\n\n".join(context) if context else NO_CONTEXT

    return (
        "You are an expert code reviewer. Analyze the following pull request "
        "and provide a detailed, constructive code review.\n\n"
        f"PR Title: {title}\n"
        f"PR Description: {description_text}\n\n"
        "Context from Codebase:\n"
        f"{context_text}\n\n"
        "Code Changes:\n"
        "```diff\n"
        f"{diff}\n"
        "```\n\n"
        f"{REVIEW_INSTRUCTIONS}"
    )
