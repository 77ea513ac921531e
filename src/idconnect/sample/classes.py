"""Classes exposed by the sample directory connector.

Users, Groups and Memberships can be read; Users and Groups support CUD
operations and Groups supports a memberships update.  Every read streams
rows straight from the database cursor in ``page_size`` batches.
"""

from __future__ import annotations

import logging
from collections.abc import Iterator
from datetime import date, datetime, time
from typing import Any

from sqlalchemy import Table, delete, inspect, select
from sqlalchemy.exc import IntegrityError, SQLAlchemyError
from sqlalchemy.orm import Session

from idconnect.contract.base import ClassOperation, ClassRead, ClassRow, Params
from idconnect.errors import ConfigurationError, ConnectionError, OperationError
from idconnect.params.schemas import (
    ParameterItem,
    ParameterTable,
    ParameterType,
    SelectionMode,
    VisibilityRef,
)
from idconnect.sample.models import Group, Membership, User
from idconnect.sample.security import hash_password
from idconnect.semantics.schemas import Allowance, CudSemantics, MembershipsUpdateSemantics

logger = logging.getLogger(__name__)

USER_COLUMNS = ["id", "username", "display_name", "email", "enabled"]
USER_WRITABLE = {"username", "display_name", "email", "enabled"}
GROUP_WRITABLE = {"name", "description"}
PASSWORD = "accountPassword"


def page_size(system_params: Params) -> int:
    """Batch size configured for streaming reads."""
    raw = system_params.get("page_size", 100)
    try:
        size = int(raw)
    except (TypeError, ValueError) as exc:
        raise ConfigurationError(f"page_size must be an integer, got {raw!r}") from exc
    if size < 1:
        raise ConfigurationError(f"page_size must be positive, got {size}")
    return size


def _as_int(value: Any, name: str) -> int:
    try:
        return int(value)
    except (TypeError, ValueError) as exc:
        raise OperationError(f"'{name}' must be an integer id, got {value!r}", cause=exc) from exc


def _commit(session: Session, what: str) -> None:
    try:
        session.commit()
    except IntegrityError as exc:
        session.rollback()
        raise OperationError(f"{what} violates a directory constraint", cause=exc) from exc


# ---------------------------------------------------------------------------
# Users
# ---------------------------------------------------------------------------

class UsersRead(ClassRead):
    def describe(self, system_params: Params) -> list[ParameterItem]:
        return [
            ParameterItem(name="filter", type=ParameterType.TEXTBOX, label="User name contains"),
            ParameterItem(
                name="only_enabled",
                type=ParameterType.CHECKBOX,
                label="Enabled accounts only",
                value=not system_params.get("include_disabled", False),
            ),
            ParameterItem(name="advanced", type=ParameterType.CHECKBOX, label="Advanced", value=False),
            ParameterItem(
                name="attributes",
                type=ParameterType.CHECKGROUP,
                label="Attributes",
                value=list(USER_COLUMNS),
                hidden_when=VisibilityRef(target_name="advanced", negated=True),
                table=ParameterTable(
                    rows=[{"column": c} for c in USER_COLUMNS],
                    value_column="column",
                    display_column="column",
                ),
            ),
            ParameterItem(
                name="created_after",
                type=ParameterType.DATE,
                label="Created after",
                hidden_when=VisibilityRef(target_name="advanced", negated=True),
            ),
        ]

    def read(self, system_params: Params, function_params: Params, session: Session) -> Iterator[ClassRow]:
        columns = function_params.get("attributes") or USER_COLUMNS
        unknown = set(columns) - set(USER_COLUMNS)
        if unknown:
            raise OperationError(f"Unknown user attributes: {sorted(unknown)}")

        stmt = select(User).order_by(User.id)
        if function_params.get("filter"):
            stmt = stmt.where(User.username.contains(str(function_params["filter"])))
        only_enabled = function_params.get(
            "only_enabled", not system_params.get("include_disabled", False)
        )
        if only_enabled:
            stmt = stmt.where(User.enabled.is_(True))
        if function_params.get("created_after"):
            try:
                since = date.fromisoformat(str(function_params["created_after"]))
            except ValueError as exc:
                raise OperationError(f"Invalid created_after date: {exc}", cause=exc) from exc
            stmt = stmt.where(User.created_at >= datetime.combine(since, time.min))

        stmt = stmt.execution_options(yield_per=page_size(system_params))
        for user in session.scalars(stmt):
            yield {column: getattr(user, column) for column in columns}


class UserCreate(ClassOperation):
    def describe(self, system_params: Params) -> CudSemantics:
        return CudSemantics(
            kind="create",
            parameter_allowances={
                "id": Allowance.PROHIBITED,
                "username": Allowance.MANDATORY,
            },
        )

    def execute(self, system_params: Params, function_params: Params, session: Session) -> None:
        values = dict(function_params)
        password = values.pop(PASSWORD, None)
        unknown = set(values) - USER_WRITABLE
        if unknown:
            raise OperationError(f"Unknown user attributes: {sorted(unknown)}")
        user = User(**values)
        if password:
            user.password_hash = hash_password(str(password))
        session.add(user)
        _commit(session, f"Creating user '{values['username']}'")
        logger.info("UserCreate: created user id=%s username=%s", user.id, user.username)


class UserUpdate(ClassOperation):
    def describe(self, system_params: Params) -> CudSemantics:
        return CudSemantics(kind="update", parameter_allowances={"id": Allowance.MANDATORY})

    def execute(self, system_params: Params, function_params: Params, session: Session) -> None:
        values = dict(function_params)
        user_id = _as_int(values.pop("id"), "id")
        password = values.pop(PASSWORD, None)
        unknown = set(values) - USER_WRITABLE
        if unknown:
            raise OperationError(f"Unknown user attributes: {sorted(unknown)}")

        user = session.get(User, user_id)
        if user is None:
            raise OperationError(f"User {user_id} not found")
        for key, value in values.items():
            setattr(user, key, value)
        if password:
            user.password_hash = hash_password(str(password))
        _commit(session, f"Updating user {user_id}")
        logger.info("UserUpdate: updated user id=%s fields=%s", user_id, sorted(values))


class UserDelete(ClassOperation):
    def describe(self, system_params: Params) -> CudSemantics:
        return CudSemantics(
            kind="delete",
            parameter_allowances={"id": Allowance.MANDATORY, "*": Allowance.PROHIBITED},
        )

    def execute(self, system_params: Params, function_params: Params, session: Session) -> None:
        user_id = _as_int(function_params["id"], "id")
        user = session.get(User, user_id)
        if user is None:
            raise OperationError(f"User {user_id} not found")
        session.delete(user)
        _commit(session, f"Deleting user {user_id}")
        logger.info("UserDelete: deleted user id=%s", user_id)


# ---------------------------------------------------------------------------
# Groups
# ---------------------------------------------------------------------------

class GroupsRead(ClassRead):
    def read(self, system_params: Params, function_params: Params, session: Session) -> Iterator[ClassRow]:
        stmt = select(Group).order_by(Group.id).execution_options(yield_per=page_size(system_params))
        for group in session.scalars(stmt):
            yield {"id": group.id, "name": group.name, "description": group.description}


class GroupCreate(ClassOperation):
    def describe(self, system_params: Params) -> CudSemantics:
        return CudSemantics(
            kind="create",
            parameter_allowances=[
                ("name", Allowance.MANDATORY),
                ("description", Allowance.OPTIONAL),
                ("*", Allowance.PROHIBITED),
            ],
        )

    def execute(self, system_params: Params, function_params: Params, session: Session) -> None:
        group = Group(**{k: v for k, v in function_params.items() if k in GROUP_WRITABLE})
        session.add(group)
        _commit(session, f"Creating group '{group.name}'")
        logger.info("GroupCreate: created group id=%s name=%s", group.id, group.name)


class GroupMembershipsUpdate(ClassOperation):
    """Add and remove users of one group.  ``add``/``remove`` arrive as lists."""

    def describe(self, system_params: Params) -> MembershipsUpdateSemantics:
        return MembershipsUpdateSemantics(parent_class_name="Groups")

    def execute(self, system_params: Params, function_params: Params, session: Session) -> None:
        group_id = _as_int(function_params["group"], "group")
        if session.get(Group, group_id) is None:
            raise OperationError(f"Group {group_id} not found")

        add = [_as_int(v, "add") for v in function_params["add"]]
        remove = [_as_int(v, "remove") for v in function_params["remove"]]

        existing = set(
            session.scalars(select(Membership.user_id).where(Membership.group_id == group_id))
        )
        missing = [user_id for user_id in add if session.get(User, user_id) is None]
        if missing:
            raise OperationError(f"Users not found: {missing}")

        for user_id in add:
            if user_id in existing:
                continue
            session.add(Membership(group_id=group_id, user_id=user_id))
            existing.add(user_id)
        if remove:
            session.execute(
                delete(Membership).where(
                    Membership.group_id == group_id, Membership.user_id.in_(remove)
                )
            )
        _commit(session, f"Updating memberships of group {group_id}")
        logger.info(
            "GroupMembershipsUpdate: group=%s added=%d removed=%d", group_id, len(add), len(remove)
        )


# ---------------------------------------------------------------------------
# Memberships
# ---------------------------------------------------------------------------

class MembershipsRead(ClassRead):
    """Group/user pairs: ``group_id`` is the parent id, ``user_id`` the child id."""

    def __init__(self, connector) -> None:
        self.connector = connector

    def describe(self, system_params: Params) -> list[ParameterItem]:
        engine = self.connector.engine(system_params)
        try:
            # an unprovisioned database has no groups to offer yet
            rows = []
            if inspect(engine).has_table(Group.__tablename__):
                with Session(engine) as session:
                    rows = [
                        {"id": g.id, "name": g.name}
                        for g in session.scalars(select(Group).order_by(Group.name))
                    ]
        except SQLAlchemyError as exc:
            raise ConnectionError(f"Cannot list groups: {exc}") from exc
        return [
            ParameterItem(
                name="groups",
                type=ParameterType.GRID,
                label="Limit to groups",
                tooltip="Leave empty to read every membership",
                value=[],
                table=ParameterTable(
                    rows=rows,
                    columns=["id", "name"],
                    key_column="id",
                    selection_mode=SelectionMode.MULTIPLE,
                    filterable=True,
                    checkbox=True,
                ),
            )
        ]

    def read(self, system_params: Params, function_params: Params, session: Session) -> Iterator[ClassRow]:
        stmt = select(Membership.group_id, Membership.user_id).order_by(
            Membership.group_id, Membership.user_id
        )
        groups = function_params.get("groups") or []
        if not isinstance(groups, list):
            groups = [groups]
        if groups:
            stmt = stmt.where(Membership.group_id.in_([_as_int(g, "groups") for g in groups]))

        result = session.execute(stmt.execution_options(yield_per=page_size(system_params)))
        for row in result:
            yield {"group_id": row.group_id, "user_id": row.user_id}


# ---------------------------------------------------------------------------
# Raw tables (dynamic catalog)
# ---------------------------------------------------------------------------

class TableRead(ClassRead):
    """Read every row of a reflected table."""

    def __init__(self, table: Table) -> None:
        self.table = table

    def read(self, system_params: Params, function_params: Params, session: Session) -> Iterator[ClassRow]:
        stmt = select(self.table).execution_options(yield_per=page_size(system_params))
        for row in session.execute(stmt):
            yield {
                key: value.isoformat() if isinstance(value, datetime) else value
                for key, value in row._mapping.items()
                if key != "password_hash"
            }
