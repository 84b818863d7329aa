# healthdesk/text_format.py
import re

_HEADER = re.compile(r"^#{1,6}\s+", re.MULTILINE)
_BOLD = re.compile(r"\*\*([^*]+)\*\*")
_ITALIC = re.compile(r"\*([^*\n]+)\*")
_CODE = re.compile(r"`([^`]+)`")
_STRIKE = re.compile(r"~~([^~]+)~~")
_SPACES = re.compile(r"[ \t]{2,}")
_BLANK_LINES = re.compile(r"\n{3,}")


def clean_markdown(text: str) -> str:
    """Best-effort removal of markdown the model was asked not to produce."""
    if not text:
        return ""
    text = _HEADER.sub("", text)
    text = _BOLD.sub(r"\1", text)
    text = _ITALIC.sub(r"\1", text)
    text = _CODE.sub(r"\1", text)
    text = _STRIKE.sub(r"\1", text)
    text = _SPACES.sub(" ", text)
    text = _BLANK_LINES.sub("\n\n", text)
    return text.strip()
