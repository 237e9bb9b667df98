"""Repository name classification results.

A classification is one of three variants:
- NotClassroom: the name does not belong to a classroom repository
- IndividualRepository: an assignment repository owned by one student
- TeamRepository: an assignment repository owned by a team

Results are immutable and recomputed for every event.
"""

from dataclasses import dataclass
from enum import Enum
from typing import Optional, Union


class RepositoryKind(str, Enum):
    """Kinds of repository a name can be classified as."""

    NOT_CLASSROOM = "not_classroom"
    INDIVIDUAL = "individual"
    TEAM = "team"


@dataclass(frozen=True)
class NotClassroom:
    """The repository name matched no classroom naming convention."""

    kind: RepositoryKind = RepositoryKind.NOT_CLASSROOM

    @property
    def is_classroom_repo(self) -> bool:
        return False


@dataclass(frozen=True)
class IndividualRepository:
    """An individual assignment repository.

    Attributes:
        student_username: The student's GitHub login.
        assignment_name: The assignment prefix of the repository name.
    """

    student_username: str
    assignment_name: Optional[str] = None
    kind: RepositoryKind = RepositoryKind.INDIVIDUAL

    @property
    def is_classroom_repo(self) -> bool:
        return True


@dataclass(frozen=True)
class TeamRepository:
    """A team assignment repository.

    Attributes:
        team_name: The team segment of the repository name.
        assignment_name: The assignment segment of the repository name.
    """

    team_name: str
    assignment_name: Optional[str] = None
    kind: RepositoryKind = RepositoryKind.TEAM

    @property
    def is_classroom_repo(self) -> bool:
        return True


ClassificationResult = Union[NotClassroom, IndividualRepository, TeamRepository]
