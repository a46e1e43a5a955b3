import re


_PLAIN_INPUT_RE = re.compile(r"^[A-Za-z0-9 ._@,:/+=-]*$")


def is_ascii(text):
    try:
        str(text).encode("ascii")
    except UnicodeEncodeError:
        return False
    return True


def is_plain_input(text):
    """True when `input text` can inject the value without shell quoting issues."""
    return bool(_PLAIN_INPUT_RE.match(text or ""))


def truncate(text, limit=200):
    if text is None:
        return ""
    text = str(text)
    if len(text) <= limit:
        return text
    return text[:limit] + "..."
