"""Directory Service - Requester and role-holder lookups

Two implementations of the same contract:
- StaticDirectory: in-process tables (tests, development, seeded from a JSON file)
- HttpDirectoryService: proxies an external directory over HTTP
"""
import json
from typing import Any, Dict, List, Optional, Protocol

import httpx

from ..domain.models import ApproverIdentity, RequesterContext
from ..domain.enums import ApproverKind
from ..domain.errors import DirectoryError, NotFoundError
from ..utils.logger import get_logger

logger = get_logger(__name__)


class DirectoryLookup(Protocol):
    """Directory contract used by the approver resolver and the workflow manager"""

    def find_role_holder(
        self,
        role: str,
        company_id: Optional[str],
        department_id: Optional[str] = None
    ) -> Optional[ApproverIdentity]:
        ...

    def get_requester(self, user_id: str) -> RequesterContext:
        ...


class StaticDirectory:
    """
    In-memory directory

    Role holders are keyed by (role, company_id, department_id); a
    department_id of None means the holder covers the whole company.
    """

    def __init__(
        self,
        users: Optional[List[Dict[str, Any]]] = None,
        role_holders: Optional[List[Dict[str, Any]]] = None
    ):
        self._users: Dict[str, RequesterContext] = {}
        self._holders: Dict[tuple, ApproverIdentity] = {}
        for user in users or []:
            self.add_user(**user)
        for holder in role_holders or []:
            self.add_role_holder(**holder)

    @classmethod
    def from_file(cls, path: str) -> "StaticDirectory":
        """Load {"users": [...], "role_holders": [...]} from a JSON file"""
        with open(path, encoding="utf-8") as fh:
            data = json.load(fh)
        directory = cls(users=data.get("users"), role_holders=data.get("role_holders"))
        logger.info(f"Loaded static directory from {path}")
        return directory

    def add_user(
        self,
        user_id: str,
        display_name: str = "",
        department_id: Optional[str] = None,
        company_id: Optional[str] = None
    ) -> RequesterContext:
        context = RequesterContext(
            requester_id=user_id,
            display_name=display_name,
            department_id=department_id,
            company_id=company_id
        )
        self._users[user_id] = context
        return context

    def add_role_holder(
        self,
        role: str,
        approver_id: str,
        company_id: Optional[str] = None,
        department_id: Optional[str] = None,
        display_name: str = "",
        kind: str = ApproverKind.USER.value
    ) -> ApproverIdentity:
        identity = ApproverIdentity(
            approver_id=approver_id,
            display_name=display_name,
            role=role,
            kind=ApproverKind(kind)
        )
        self._holders[(role, company_id, department_id)] = identity
        return identity

    def find_role_holder(
        self,
        role: str,
        company_id: Optional[str],
        department_id: Optional[str] = None
    ) -> Optional[ApproverIdentity]:
        return self._holders.get((role, company_id, department_id))

    def get_requester(self, user_id: str) -> RequesterContext:
        context = self._users.get(user_id)
        if context is None:
            raise NotFoundError(f"User {user_id} not found in directory", details={"user_id": user_id})
        return context


class HttpDirectoryService:
    """
    Directory backed by an HTTP service

    Endpoints:
        GET {base}/users/{user_id}
        GET {base}/roles/{role}/holder?company_id=..&department_id=..
    A 404 on the role endpoint means "no holder".
    """

    def __init__(
        self,
        base_url: str,
        timeout: float = 5.0,
        transport: Optional[httpx.BaseTransport] = None
    ):
        self._client = httpx.Client(base_url=base_url.rstrip("/"), timeout=timeout, transport=transport)

    def close(self) -> None:
        self._client.close()

    def _get(self, path: str, params: Optional[Dict[str, str]] = None) -> Optional[Dict[str, Any]]:
        try:
            response = self._client.get(path, params=params)
        except httpx.HTTPError as e:
            logger.error(f"Directory request failed: {path}: {e}")
            raise DirectoryError(f"Directory request failed: {e}", details={"path": path}) from e

        if response.status_code == 404:
            return None
        if response.status_code != 200:
            logger.error(f"Directory error {response.status_code}: {response.text[:200]}")
            raise DirectoryError(
                f"Directory returned HTTP {response.status_code}",
                details={"path": path, "status_code": response.status_code}
            )
        return response.json()

    def find_role_holder(
        self,
        role: str,
        company_id: Optional[str],
        department_id: Optional[str] = None
    ) -> Optional[ApproverIdentity]:
        params = {}
        if company_id:
            params["company_id"] = company_id
        if department_id:
            params["department_id"] = department_id

        data = self._get(f"/roles/{role}/holder", params=params)
        if data is None:
            return None
        return ApproverIdentity(
            approver_id=data["id"],
            display_name=data.get("display_name", ""),
            role=role,
            kind=ApproverKind(data.get("kind", ApproverKind.USER.value))
        )

    def get_requester(self, user_id: str) -> RequesterContext:
        data = self._get(f"/users/{user_id}")
        if data is None:
            raise NotFoundError(f"User {user_id} not found in directory", details={"user_id": user_id})
        return RequesterContext(
            requester_id=data.get("id", user_id),
            display_name=data.get("display_name", ""),
            department_id=data.get("department_id"),
            company_id=data.get("company_id")
        )
