"""Shared pytest fixtures for tracker tests."""

import tempfile
from pathlib import Path
from typing import Generator

import pytest

from tracker.core.models import Person, Project
from tracker.persistence.database import Database, open_database
from tracker.persistence.repositories import PersonRepository, ProjectRepository


@pytest.fixture
def temp_dir() -> Generator[Path, None, None]:
    """Provide a temporary directory for testing.

    Yields:
        Path to temporary directory that will be cleaned up after test.
    """
    with tempfile.TemporaryDirectory() as tmpdir:
        yield Path(tmpdir)


@pytest.fixture
def temp_db_path(temp_dir: Path) -> Path:
    """Provide a temporary database path.

    Args:
        temp_dir: Temporary directory fixture

    Returns:
        Path to temporary database file
    """
    return temp_dir / "tracker.db"


@pytest.fixture
def conn(temp_db_path: Path):
    """Open a migrated connection on a temporary file."""
    connection = open_database(temp_db_path)
    yield connection
    connection.close()


@pytest.fixture
def db(temp_db_path: Path) -> Generator[Database, None, None]:
    """Provide an initialized Database coordinator."""
    database = Database(temp_db_path)
    database.initialize()
    yield database
    database.close()


@pytest.fixture
def people(conn):
    """Alice manages Bob; Carol has no manager."""
    repo = PersonRepository(conn)
    alice = repo.create(Person(email="alice@example.com", name="Alice Smith"))
    bob = repo.create(Person(email="bob@example.com", name="Bob Jones", manager=alice.email))
    carol = repo.create(Person(email="carol@example.com", name="Carol White"))
    return {"alice": alice, "bob": bob, "carol": carol}


@pytest.fixture
def project(conn, people) -> Project:
    """A project managed by Alice."""
    return ProjectRepository(conn).create(
        Project(name="Launch", manager=people["alice"].email)
    )
