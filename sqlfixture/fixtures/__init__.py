"""Domain fixture builders composed on top of the fixture registry."""

from sqlfixture.fixtures.hrm import HrmTestData

__all__ = [
    "HrmTestData",
]
