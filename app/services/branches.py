"""
Branch display-name -> code lookup.

Students register with display names ("Computer Science"), drives and chat
groups are keyed by short codes ("CSE"). Every comparison goes through
normalize_branch() so both sides use codes.
"""

from typing import Iterable, List, Optional

ALL_BRANCHES = "All"

BRANCH_CODES = {
    "Computer Science": "CSE",
    "Information Technology": "IT",
    "Electronics & Communication": "ECE",
    "Electronics and Communication": "ECE",
    "Electrical Engineering": "EEE",
    "Mechanical Engineering": "ME",
    "Civil Engineering": "CE",
    "Data Science": "DS",
    "AIML": "AIML",
}


def normalize_branch(branch: Optional[str]) -> Optional[str]:
    """Map a display name to its code. Unknown names pass through unchanged."""
    if branch is None:
        return None
    return BRANCH_CODES.get(branch, branch)


def normalize_branches(branches: Iterable[str]) -> List[str]:
    """Normalize a list of branches, dropping duplicates but keeping order."""
    seen = []
    for branch in branches or []:
        code = normalize_branch(branch)
        if code and code not in seen:
            seen.append(code)
    return seen
