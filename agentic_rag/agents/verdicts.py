"""
Parsing of free-text model verdicts.

Both branching decisions (retrieve vs. generate, relevant vs. not) come
from a model's free-text reply. All interpretation of that text lives in
parse_verdict() so a stricter structured-output contract can replace it
without touching the stages.
"""

# Analyze stage: reply containing this (any case) means "retrieve"
RETRIEVE_TOKEN = "RETRIEVE"

# Grade stage / evaluate capability: reply containing this means "relevant"
RELEVANT_TOKEN = "yes"


def parse_verdict(reply: str | None, token: str) -> bool:
    """
    True when `token` occurs anywhere in `reply`, ignoring case.

    Anything else, including an empty or missing reply, is the
    conservative False.
    """
    if not reply:
        return False
    return token.casefold() in reply.strip().casefold()
