"""Repository name parsing for classroom repositories.

``classify`` turns a repository name into a ClassificationResult using
the ordered rule tables in rules.py: exclusions first, then individual
conventions, then team conventions. It never raises.
"""

from typing import Iterable, List, Optional

import structlog

from src.classroom_access.classifier.models import (
    ClassificationResult,
    IndividualRepository,
    NotClassroom,
    TeamRepository,
)
from src.classroom_access.classifier.rules import (
    EXCLUDED_PATTERNS,
    INDIVIDUAL_RULES,
    TEAM_MEMBER_SEPARATORS,
    TEAM_RULES,
    is_valid_username,
)

logger = structlog.get_logger(__name__)


def is_excluded(repository_name: str) -> bool:
    return any(pattern.fullmatch(repository_name) for pattern in EXCLUDED_PATTERNS)


def classify(repository_name: str) -> ClassificationResult:
    """Classify a repository name.

    Args:
        repository_name: Repository name without the owner prefix.

    Returns:
        IndividualRepository or TeamRepository for classroom names,
        NotClassroom otherwise.
    """
    if not repository_name or is_excluded(repository_name):
        logger.debug("Repository name is excluded", repository=repository_name)
        return NotClassroom()

    for rule in INDIVIDUAL_RULES:
        parts = rule.apply(repository_name)
        if parts is not None:
            assignment, username = parts
            logger.info(
                "Parsed as individual assignment",
                repository=repository_name,
                rule=rule.name,
                assignment=assignment,
                student=username,
            )
            return IndividualRepository(student_username=username, assignment_name=assignment)

    for rule in TEAM_RULES:
        parts = rule.apply(repository_name)
        if parts is not None:
            assignment, team = parts
            logger.info(
                "Parsed as team assignment",
                repository=repository_name,
                rule=rule.name,
                assignment=assignment,
                team=team,
            )
            return TeamRepository(team_name=team, assignment_name=assignment)

    logger.debug("Repository name matches no classroom pattern", repository=repository_name)
    return NotClassroom()


def extract_students_from_team(
    team_name: str,
    org_members: Optional[Iterable[str]] = None,
) -> List[str]:
    """Guess the student logins that make up a team.

    Tries ``a-and-b``, ``a_b`` and ``a-b`` in that order and stops at the
    first separator that yields at least one valid login. If none does and
    a roster is given, a member whose login equals the whole team name
    (case-insensitively) is returned.

    Returns:
        Zero, one or two logins.
    """
    students: List[str] = []

    for separator in TEAM_MEMBER_SEPARATORS:
        match = separator.fullmatch(team_name)
        if match is None:
            continue
        students = [part for part in match.groups() if is_valid_username(part)]
        if students:
            return students

    if org_members:
        wanted = team_name.lower()
        for member in org_members:
            if member.lower() == wanted:
                return [member]

    return []
