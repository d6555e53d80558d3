"""Prompt composition for initial generations and refinements."""

from __future__ import annotations


STYLE_PROMPT = (
    "Generate a new creative image in the style of these Excalidraw and the reference images. "
    "Capture the visual aesthetic, color palette, artistic techniques, and overall mood of the "
    "references. Be creative and produce something unique while maintaining stylistic consistency "
    "with the provided examples."
)

CONTENT_HEADER = "Content to visualize:"
REFINEMENT_HEADER = "Refinement instructions:"


def compose_generation_prompt(content: str, style_prompt: str = STYLE_PROMPT) -> str:
    return f"{style_prompt}\n\n{CONTENT_HEADER}\n{content.strip()}"


def compose_refinement_prompt(
    content: str,
    instruction: str,
    style_prompt: str = STYLE_PROMPT,
) -> str:
    # style, content, then the instruction
    return (
        f"{compose_generation_prompt(content, style_prompt)}\n\n"
        f"{REFINEMENT_HEADER}\n{instruction.strip()}"
    )
