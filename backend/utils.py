import re
from typing import List, Optional

DATA_URL_PREFIX = re.compile(r"^data:[^;,]*(;[^,]*)?,", re.IGNORECASE)
CODE_FENCE = re.compile(r"^```[a-zA-Z0-9_-]*\s*\n(?P<body>.*?)\n?```$", re.DOTALL)
PARAGRAPH_BREAK = "\n\n"


def strip_data_url_prefix(value: str) -> str:
    """Purpose: Remove a data-URI header so only the base64 payload remains.
    Inputs/Outputs: Input is a base64 string or data URL; output is the bare payload.
    Side Effects / State: None; pure function.
    Dependencies: Used by the media codec and the ImageInput model.
    Failure Modes: Values without a header are returned trimmed and otherwise unchanged.
    If Removed: Browser data URLs are sent to the provider as corrupt base64.
    Testing Notes: "data:image/png;base64,AAAA" becomes "AAAA"; "AAAA" stays "AAAA".
    """
    if not value:
        return ""
    return DATA_URL_PREFIX.sub("", value.strip(), count=1)


def strip_code_fence(text: str) -> str:
    """Return the body of a Markdown code fence, or the trimmed text if unfenced."""
    cleaned = (text or "").strip()
    match = CODE_FENCE.match(cleaned)
    if match:
        return match.group("body").strip()
    return cleaned


def split_paragraphs(text: str) -> List[str]:
    """Purpose: Split story text into non-empty paragraphs.
    Inputs/Outputs: Input is story text; output is a list of trimmed paragraphs.
    Side Effects / State: None; pure function.
    Dependencies: None beyond re; used by last_paragraph and strip_repeated_paragraph.
    Failure Modes: Returns an empty list for falsy input.
    If Removed: Continuation cannot detect an echoed prior paragraph.
    Testing Notes: Blank lines with stray spaces still separate paragraphs.
    """
    if not text:
        return []
    return [chunk.strip() for chunk in re.split(r"\n\s*\n", text) if chunk.strip()]


def last_paragraph(text: str) -> Optional[str]:
    paragraphs = split_paragraphs(text)
    return paragraphs[-1] if paragraphs else None


def strip_repeated_paragraph(story_so_far: str, continuation: str) -> str:
    """Purpose: Drop a verbatim copy of the story's final paragraph from a continuation.
    Inputs/Outputs: Inputs are the prior story and the new text; output is the new text
        without any paragraph that repeats it, trimmed.
    Side Effects / State: None; pure function.
    Dependencies: Uses last_paragraph and split_paragraphs.
    Failure Modes: If the model returned nothing but echoes, output is an empty string.
        Only whole paragraphs are dropped; matching text inside a sentence is kept.
    If Removed: A model that restates the previous paragraph duplicates it in the story.
    Testing Notes: Continuation "PREV\\n\\nNEW\\n\\nPREV" after a story ending in PREV gives "NEW".
    """
    previous = last_paragraph(story_so_far)
    paragraphs = split_paragraphs(continuation)
    if previous:
        paragraphs = [paragraph for paragraph in paragraphs if paragraph != previous]
    return PARAGRAPH_BREAK.join(paragraphs)


def join_paragraphs(story: str, paragraph: str) -> str:
    # Blank line between paragraphs; an empty story takes the paragraph as is.
    story = (story or "").rstrip()
    paragraph = (paragraph or "").strip()
    if not story:
        return paragraph
    if not paragraph:
        return story
    return f"{story}{PARAGRAPH_BREAK}{paragraph}"
