"""Subject normalization used to group messages into threads."""

import re

DEFAULT_SUBJECT = "(No Subject)"

# One or more leading reply/forward markers, e.g. "Re: Re: Fwd: "
_REPLY_PREFIX = re.compile(r"^((re|fwd):\s*)+", re.IGNORECASE)


def normalize_subject(subject: str | None) -> str:
    """
    Compute the thread key for a subject line.

    Leading runs of ``Re:``/``Fwd:`` markers are stripped, the remainder is
    trimmed and case-folded. Missing subjects share the ``(No Subject)`` key.

    Example:
        >>> normalize_subject("Re: Re: Fwd: Hello")
        'hello'
    """
    return _REPLY_PREFIX.sub("", subject or DEFAULT_SUBJECT).strip().casefold()
