"""Classification of repository names into classroom identities.

Classification:
- classify: name -> NotClassroom / IndividualRepository / TeamRepository
- extract_students_from_team: team name (+ optional roster) -> logins

Rules:
- INDIVIDUAL_RULES, TEAM_RULES: ordered, first-success-wins rule tables
- is_valid_username: GitHub login shape check
"""

from src.classroom_access.classifier.models import (
    ClassificationResult,
    IndividualRepository,
    NotClassroom,
    RepositoryKind,
    TeamRepository,
)
from src.classroom_access.classifier.parser import (
    classify,
    extract_students_from_team,
    is_excluded,
)
from src.classroom_access.classifier.rules import (
    INDIVIDUAL_RULES,
    TEAM_RULES,
    is_valid_username,
)

__all__ = [
    "ClassificationResult",
    "INDIVIDUAL_RULES",
    "IndividualRepository",
    "NotClassroom",
    "RepositoryKind",
    "TEAM_RULES",
    "TeamRepository",
    "classify",
    "extract_students_from_team",
    "is_excluded",
    "is_valid_username",
]
