"""
Client and Project Services - CRUD with cascading deletes.

Deletes run as one queued operation, so a client disappears together with
its projects, their time entries and the related invoices, or not at all.
"""

import logging
from datetime import date
from typing import List, Optional, Union

from pydantic import ValidationError as PydanticValidationError

from lancr.domain.errors import NotFoundError, ValidationError, from_pydantic
from lancr.domain.models import Client, Project
from lancr.infra.repository import ClientRepository, ProjectRepository
from lancr.infra.store import SerializedStore

logger = logging.getLogger(__name__)

PROJECT_STATUSES = ("active", "paused", "completed")


class ClientService:

    def __init__(self, store: SerializedStore):
        self.store = store

    async def list(self) -> List[Client]:
        """All clients, newest first"""
        async def operation(session):
            return await ClientRepository(session).get_all()

        return await self.store.enqueue(operation)

    async def get(self, client_id: int) -> Client:
        async def operation(session):
            client = await ClientRepository(session).get_by_id(client_id)
            if client is None:
                raise NotFoundError("Client", client_id)
            return client

        return await self.store.enqueue(operation)

    async def search(self, query: str) -> List[Client]:
        async def operation(session):
            return await ClientRepository(session).search(query)

        return await self.store.enqueue(operation)

    async def add(self, name: str, email: Optional[str] = None, company: Optional[str] = None,
                  notes: Optional[str] = None) -> Client:
        """
        Raises:
            ValidationError: the name is empty
        """
        client = _build_client(name=name, email=email, company=company, notes=notes)

        async def operation(session):
            return await ClientRepository(session).create(client)

        created = await self.store.enqueue(operation)
        logger.info(f"Client created: {created.id} ({created.name})")
        return created

    async def update(self, client_id: int, name: str, email: Optional[str] = None,
                     company: Optional[str] = None, notes: Optional[str] = None) -> Client:
        client = _build_client(id=client_id, name=name, email=email, company=company, notes=notes)

        async def operation(session):
            clients = ClientRepository(session)
            if not await clients.update(client):
                raise NotFoundError("Client", client_id)
            return await clients.get_by_id(client_id)

        return await self.store.enqueue(operation)

    async def delete(self, client_id: int):
        """Delete a client with everything that belongs to it"""
        async def operation(session):
            if not await ClientRepository(session).delete_cascade(client_id):
                raise NotFoundError("Client", client_id)

        await self.store.enqueue(operation)
        logger.info(f"Client {client_id} deleted with its projects, time entries and invoices")


class ProjectService:

    def __init__(self, store: SerializedStore):
        self.store = store

    async def list(self) -> List[Project]:
        """All projects, newest first"""
        async def operation(session):
            return await ProjectRepository(session).get_all()

        return await self.store.enqueue(operation)

    async def list_by_client(self, client_id: int) -> List[Project]:
        async def operation(session):
            return await ProjectRepository(session).get_all(client_id=client_id)

        return await self.store.enqueue(operation)

    async def get(self, project_id: int) -> Project:
        async def operation(session):
            project = await ProjectRepository(session).get_by_id(project_id)
            if project is None:
                raise NotFoundError("Project", project_id)
            return project

        return await self.store.enqueue(operation)

    async def add(self, client_id: int, name: str, hourly_rate: float = 0.0,
                  deadline: Union[date, str, None] = None, notes: Optional[str] = None) -> Project:
        """
        Create an active project for an existing client.

        Raises:
            ValidationError: empty name, negative or NaN hourly rate
            NotFoundError: the client does not exist
        """
        project = _build_project(client_id=client_id, name=name, hourly_rate=hourly_rate,
                                 deadline=deadline, notes=notes)

        async def operation(session):
            if await ClientRepository(session).get_by_id(client_id) is None:
                raise NotFoundError("Client", client_id)
            return await ProjectRepository(session).create(project)

        created = await self.store.enqueue(operation)
        logger.info(f"Project created: {created.id} ({created.name}) for client {client_id}")
        return created

    async def update(self, project_id: int, name: str, hourly_rate: float,
                     deadline: Union[date, str, None] = None, notes: Optional[str] = None) -> Project:
        """Change name, rate, deadline and notes. Existing invoices keep their rate."""
        async def operation(session):
            projects = ProjectRepository(session)
            current = await projects.get_by_id(project_id)
            if current is None:
                raise NotFoundError("Project", project_id)
            changed = _build_project(id=project_id, client_id=current.client_id, name=name,
                                     hourly_rate=hourly_rate, deadline=deadline, notes=notes,
                                     status=current.status, created_at=current.created_at)
            await projects.update(changed)
            return await projects.get_by_id(project_id)

        return await self.store.enqueue(operation)

    async def set_status(self, project_id: int, status: str) -> Project:
        if status not in PROJECT_STATUSES:
            raise ValidationError(f"Unknown project status: {status!r}")

        async def operation(session):
            projects = ProjectRepository(session)
            if not await projects.set_status(project_id, status):
                raise NotFoundError("Project", project_id)
            return await projects.get_by_id(project_id)

        return await self.store.enqueue(operation)

    async def delete(self, project_id: int):
        """Delete a project with its time entries and invoices"""
        async def operation(session):
            if not await ProjectRepository(session).delete_cascade(project_id):
                raise NotFoundError("Project", project_id)

        await self.store.enqueue(operation)
        logger.info(f"Project {project_id} deleted with its time entries and invoices")


def _build_client(**fields) -> Client:
    try:
        return Client(**fields)
    except PydanticValidationError as e:
        raise from_pydantic(e) from e


def _build_project(**fields) -> Project:
    try:
        return Project(**fields)
    except PydanticValidationError as e:
        raise from_pydantic(e) from e
