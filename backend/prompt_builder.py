from __future__ import annotations

from functools import lru_cache
from pathlib import Path
from typing import Any, Dict

STORY_RESPONSE_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "story": {
            "type": "string",
            "description": "The opening paragraph of the story.",
        },
        "prompts": {
            "type": "array",
            "description": "Three to five inspiration prompts or questions about theme, characters, or setting.",
            "items": {"type": "string"},
            "min_items": 3,
            "max_items": 5,
        },
    },
    "required": ["story", "prompts"],
}


def load_prompt(prompt_path: Path) -> str:
    """Purpose: Load a prompt file as UTF-8 text and strip BOM if present.
    Inputs/Outputs: Input is a Path to the prompt file; output is the decoded string.
    Side Effects / State: None; pure function reading the filesystem.
    Dependencies: Uses Path.read_text/read_bytes; used by PromptBuilder.
    Failure Modes: UnicodeDecodeError triggers a fallback decode with errors ignored,
        which can drop invalid bytes. A missing file raises FileNotFoundError.
    If Removed: Every templated LLM call fails.
    Testing Notes: Validate BOM-stripping and fallback decoding on non-UTF8 files.
    """
    # Read as UTF-8 and fall back to a tolerant decode if needed.
    try:
        return prompt_path.read_text(encoding="utf-8").lstrip("\ufeff")
    except UnicodeDecodeError:
        raw = prompt_path.read_bytes()
        text = raw.decode("utf-8", errors="ignore")
        return text.lstrip("\ufeff")


@lru_cache(maxsize=32)
def _cached_template(prompt_path: Path) -> str:
    return load_prompt(prompt_path).strip()


class PromptBuilder:
    """Fills the fixed instruction templates; nothing beyond substitution is configurable."""

    def __init__(self, prompts_dir: Path) -> None:
        self._prompts_dir = prompts_dir

    def _template(self, name: str) -> str:
        return _cached_template(self._prompts_dir / name)

    def chat_system_instruction(self) -> str:
        return self._template("chat_system.txt")

    def image_analysis(self, prompt: str) -> str:
        # User text goes to the model verbatim.
        return prompt

    def story_generation(self, genre: str, style: str) -> str:
        """Purpose: Build the opening-paragraph instruction for a genre and style.
        Inputs/Outputs: Inputs are genre and style; output is the prompt text.
        Side Effects / State: Reads the template once per process.
        Dependencies: story_generation.txt with <<GENRE>> and <<STYLE>> placeholders.
        Failure Modes: Missing template raises FileNotFoundError.
        If Removed: Story generation has no instruction to send.
        Testing Notes: Genre and style appear verbatim; "3 and 5" is mentioned.
        """
        return self._template("story_generation.txt").replace("<<GENRE>>", genre).replace("<<STYLE>>", style)

    def story_continuation(self, story_so_far: str, genre: str, style: str) -> str:
        """Purpose: Build the next-paragraph instruction around the full story so far.
        Inputs/Outputs: Inputs are the accumulated story, genre and style; output is text.
        Side Effects / State: Reads the template once per process.
        Dependencies: story_continuation.txt with <<STORY>>, <<GENRE>>, <<STYLE>>.
        Failure Modes: Missing template raises FileNotFoundError.
        If Removed: Continuations lose narrative context.
        Testing Notes: The story is embedded verbatim inside the quoted block.
        """
        # Substitute the story last so placeholder-like text inside it is left alone.
        template = self._template("story_continuation.txt")
        template = template.replace("<<GENRE>>", genre).replace("<<STYLE>>", style)
        return template.replace("<<STORY>>", story_so_far)

    def speech(self, text: str) -> str:
        return self._template("speech.txt").replace("<<TEXT>>", text)
