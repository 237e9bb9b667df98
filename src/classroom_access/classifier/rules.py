"""Ordered naming rules for classroom repositories.

Classification is driven entirely by the tables in this module. Each
table is evaluated top to bottom and the first rule that both matches and
validates wins, so the order of the tuples below is the priority order.

GitHub Classroom names repositories ``<assignment>-<student>`` for
individual assignments and uses a handful of team conventions for group
assignments, e.g.::

    ece3574-fl25-test-assignment-2-ece3574-fl2025-test   (numbered assignment)
    homework-3-bob-smith                                 (standalone number)
    lab-exercise-alice123                                (generic)
    project-team-alpha / group-lab-red / team-lab1-assignment-red
"""

import re
from dataclasses import dataclass
from typing import Callable, Optional, Tuple


# Infrastructure repositories that are never classroom repositories.
# Matched case-sensitively against the whole name.
EXCLUDED_PATTERNS: Tuple[re.Pattern[str], ...] = (
    re.compile(r"^\.github$"),
    re.compile(r"^docs?$"),
    re.compile(r"^test$"),
    re.compile(r"^config$"),
    re.compile(r"^scripts?$"),
    re.compile(r"^tools?$"),
    re.compile(r"^templates?$"),
    re.compile(r"^starter$"),
)

# Words that end ordinary repository names and are never student logins.
# Compared case-insensitively.
COMMON_WORDS = frozenset({
    "main", "master", "dev", "develop", "staging", "production",
    "test", "testing", "demo", "example", "sample", "template",
    "starter", "boilerplate", "scaffold", "skeleton", "base",
    "core", "common", "shared", "utils", "utilities", "helpers",
    "docs", "documentation", "readme", "contributing", "license",
})

MAX_USERNAME_LENGTH = 39

# Alphanumeric segments joined by single hyphens
USERNAME_PATTERN = re.compile(r"[A-Za-z0-9](?:-?[A-Za-z0-9])*")


def is_valid_username(username: Optional[str]) -> bool:
    """Check that a string has the shape of a GitHub login.

    A login is 1-39 characters of ASCII letters, digits and single
    hyphens, and cannot start or end with a hyphen.
    """
    if not username or len(username) > MAX_USERNAME_LENGTH:
        return False
    return USERNAME_PATTERN.fullmatch(username) is not None


def is_common_word(word: str) -> bool:
    return word.lower() in COMMON_WORDS


def is_student_username(username: Optional[str]) -> bool:
    """A valid login that is not a common repository-name word."""
    return is_valid_username(username) and not is_common_word(username)


@dataclass(frozen=True)
class NamingRule:
    """One repository naming convention.

    Attributes:
        name: Identifier of the rule, used in logs and tests.
        pattern: Regular expression matched against the whole name.
        extract: Returns ``(assignment_name, identifier)`` from a match.
        validate: Accepts or rejects ``(identifier, repository_name)``.
            A rejected match falls through to the next rule.
    """

    name: str
    pattern: re.Pattern[str]
    extract: Callable[[re.Match[str]], Tuple[Optional[str], str]]
    validate: Callable[[str, str], bool]

    def apply(self, repository_name: str) -> Optional[Tuple[Optional[str], str]]:
        """Return the extracted parts if this rule accepts the name."""
        match = self.pattern.fullmatch(repository_name)
        if match is None:
            return None
        assignment, identifier = self.extract(match)
        if not self.validate(identifier, repository_name):
            return None
        return assignment or None, identifier


def _accept_any(identifier: str, repository_name: str) -> bool:
    return bool(identifier)


def _accept_student(identifier: str, repository_name: str) -> bool:
    return is_student_username(identifier)


def follows_team_convention(repository_name: str) -> bool:
    return any(rule.pattern.fullmatch(repository_name) for rule in TEAM_RULES)


def _accept_generic_student(identifier: str, repository_name: str) -> bool:
    # The generic split accepts almost anything; explicit team markers win.
    return is_student_username(identifier) and not follows_team_convention(repository_name)


TEAM_RULES: Tuple[NamingRule, ...] = (
    NamingRule(
        name="team-infix",
        pattern=re.compile(r"^(.+?)-team-(.+)$"),
        extract=lambda m: (m.group(1), m.group(2)),
        validate=_accept_any,
    ),
    NamingRule(
        name="group-prefix",
        pattern=re.compile(r"^group-(.+?)-(.+)$"),
        extract=lambda m: (m.group(1), m.group(2)),
        validate=_accept_any,
    ),
    NamingRule(
        name="team-prefix",
        pattern=re.compile(r"^team-(.+?)-assignment-(.+)$"),
        extract=lambda m: (m.group(1), m.group(2)),
        validate=_accept_any,
    ),
)

INDIVIDUAL_RULES: Tuple[NamingRule, ...] = (
    NamingRule(
        name="numbered-assignment",
        pattern=re.compile(r"^(.+-assignment-\d+)-(.+)$"),
        extract=lambda m: (m.group(1), m.group(2)),
        validate=_accept_student,
    ),
    NamingRule(
        name="standalone-number",
        pattern=re.compile(r"^(.+)-(\d+)-(.+)$"),
        extract=lambda m: (f"{m.group(1)}-{m.group(2)}", m.group(3)),
        validate=_accept_student,
    ),
    NamingRule(
        name="generic",
        pattern=re.compile(r"^(.+)-([^-]+)$"),
        extract=lambda m: (m.group(1), m.group(2)),
        validate=_accept_generic_student,
    ),
)

# Ways two student logins are joined in a team name
TEAM_MEMBER_SEPARATORS: Tuple[re.Pattern[str], ...] = (
    re.compile(r"^(.+?)-and-(.+)$"),
    re.compile(r"^(.+?)_(.+)$"),
    re.compile(r"^(.+?)-(.+)$"),
)
