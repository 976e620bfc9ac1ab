"""
Member directory (read-only)

Groups and members are owned by member management; the quote engine only
reads them.
"""

import logging
from abc import ABC, abstractmethod
from typing import Dict, Iterable, List

import pandas as pd

from database import DatabaseConnection
from exceptions import GroupNotFound, MemberNotFound
from queries import MemberQueries
from quote_types import Member

logger = logging.getLogger(__name__)


class MemberDirectory(ABC):

    @abstractmethod
    def get_group_members(self, group_id: str) -> List[Member]:
        """All members of a group in stable order. Raises GroupNotFound."""

    @abstractmethod
    def get_member(self, group_id: str, member_id: str) -> Member:
        """One member of a group. Raises GroupNotFound or MemberNotFound."""


def _members_from_frame(df: pd.DataFrame) -> List[Member]:
    if df is None or df.empty:
        return []
    df = df.astype(object).where(pd.notna(df), None)
    return [Member.from_record(record) for record in df.to_dict('records')]


class DatabaseMemberDirectory(MemberDirectory):

    def __init__(self, db: DatabaseConnection):
        self.db = db

    def get_group_members(self, group_id: str) -> List[Member]:
        if not MemberQueries.group_exists(self.db, group_id):
            raise GroupNotFound(f"Group {group_id} not found")
        return _members_from_frame(MemberQueries.get_members_by_group(self.db, group_id))

    def get_member(self, group_id: str, member_id: str) -> Member:
        if not MemberQueries.group_exists(self.db, group_id):
            raise GroupNotFound(f"Group {group_id} not found")
        members = _members_from_frame(MemberQueries.get_member(self.db, group_id, member_id))
        if not members:
            raise MemberNotFound(f"Member {member_id} not found in group {group_id}")
        return members[0]


class InMemoryMemberDirectory(MemberDirectory):
    """Directory over plain member lists, keyed by group id."""

    def __init__(self, groups: Dict[str, Iterable[Member]]):
        self._groups = {str(gid): list(members) for gid, members in groups.items()}

    def get_group_members(self, group_id: str) -> List[Member]:
        if str(group_id) not in self._groups:
            raise GroupNotFound(f"Group {group_id} not found")
        return list(self._groups[str(group_id)])

    def get_member(self, group_id: str, member_id: str) -> Member:
        for member in self.get_group_members(group_id):
            if member.member_id == str(member_id):
                return member
        raise MemberNotFound(f"Member {member_id} not found in group {group_id}")
