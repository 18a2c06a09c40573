"""
Eligibility Evaluator

PURPOSE:
Decide whether a student may apply to a drive and, when not, list EVERY
rule the student fails (not just the first one).

RULES (checked in this order):
1. Role must be "student" (if not, this is the only reason reported)
2. CGPA >= drive minimum
3. Backlogs <= drive maximum
4. Year >= drive minimum year (free-text years like "3rd Year" are parsed)
5. Branch is allowed, or the drive allows "All"
6. Student is not already on the drive's roster
7. Drive is active, and the deadline has not passed

Both evaluate() and is_eligible() consume the same rule generator, so the
reasons path and the boolean bulk path cannot drift apart. is_eligible()
stops at the first violation, which keeps bulk filtering cheap.
"""

import re
from datetime import datetime
from typing import Iterable, Iterator, List, NamedTuple, Optional, Union

from app.models.models import ApplicantEntry, DriveStatus, Eligibility, StudentSnapshot, UserRole
from app.services.branches import ALL_BRANCHES, normalize_branch
from app.utils.timeutils import to_naive_utc, utcnow

DEFAULT_YEAR = 4

_YEAR_DIGITS = re.compile(r"(\d+)")


class EligibilityResult(NamedTuple):
    eligible: bool
    reasons: List[str]


def normalize_year(year: Union[int, str, None]) -> int:
    """
    Turn a year label into an integer.

    "3rd Year" -> 3, 2 -> 2. Anything without digits falls back to
    DEFAULT_YEAR (4), which is the most permissive value. Kept on purpose:
    profiles created before the year field was validated carry free text.
    """
    if isinstance(year, bool):
        return DEFAULT_YEAR
    if isinstance(year, (int, float)):
        return int(year)
    if isinstance(year, str):
        match = _YEAR_DIGITS.search(year)
        if match:
            return int(match.group(1))
    return DEFAULT_YEAR


def _applicant_ids(applicants: Iterable[Union[ApplicantEntry, int]]) -> set:
    ids = set()
    for entry in applicants or []:
        ids.add(entry.student_id if isinstance(entry, ApplicantEntry) else entry)
    return ids


def _violations(
    eligibility: Eligibility,
    student: StudentSnapshot,
    applicants: Iterable[Union[ApplicantEntry, int]],
    drive_status: Union[DriveStatus, str],
    deadline: Optional[datetime],
    now: Optional[datetime],
) -> Iterator[str]:
    if student.role != UserRole.student.value:
        yield "Only students can apply to drives"
        return

    cgpa = student.cgpa if student.cgpa is not None else 0.0
    if cgpa < eligibility.min_cgpa:
        yield (f"CGPA requirement not met. Required: {eligibility.min_cgpa}, "
               f"Your CGPA: {cgpa}")

    if student.backlogs > eligibility.max_backlogs:
        yield (f"Too many backlogs. Maximum allowed: {eligibility.max_backlogs}, "
               f"Your backlogs: {student.backlogs}")

    year = normalize_year(student.year)
    if year < eligibility.min_year:
        yield f"Year requirement not met. Minimum year: {eligibility.min_year}, Your year: {year}"

    branch = normalize_branch(student.branch)
    allowed = eligibility.allowed_branches
    if ALL_BRANCHES not in allowed and branch not in allowed:
        yield (f"Branch not eligible. Allowed branches: {', '.join(sorted(allowed))}, "
               f"Your branch: {branch}")

    if student.student_id is not None and student.student_id in _applicant_ids(applicants):
        yield "You have already applied to this drive"

    status = drive_status.value if isinstance(drive_status, DriveStatus) else drive_status
    if status != DriveStatus.active.value:
        yield "Drive is not active"

    if deadline is not None:
        current = to_naive_utc(now) if now is not None else utcnow()
        if current > to_naive_utc(deadline):
            yield "Application deadline has passed"


def evaluate(
    eligibility: Eligibility,
    student: StudentSnapshot,
    applicants: Iterable[Union[ApplicantEntry, int]] = (),
    drive_status: Union[DriveStatus, str] = DriveStatus.active,
    deadline: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> EligibilityResult:
    """Check every rule and return all violated reasons."""
    reasons = list(_violations(eligibility, student, applicants, drive_status, deadline, now))
    return EligibilityResult(eligible=not reasons, reasons=reasons)


def is_eligible(
    eligibility: Eligibility,
    student: StudentSnapshot,
    applicants: Iterable[Union[ApplicantEntry, int]] = (),
    drive_status: Union[DriveStatus, str] = DriveStatus.active,
    deadline: Optional[datetime] = None,
    now: Optional[datetime] = None,
) -> bool:
    """Boolean-only variant for filtering large student / drive sets."""
    violations = _violations(eligibility, student, applicants, drive_status, deadline, now)
    return next(violations, None) is None
