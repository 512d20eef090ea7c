from __future__ import annotations

from datetime import date

import pytest

from conftest import count_rows
from projectboard import models
from projectboard.errors import NotFoundError, UnauthorizedError, ValidationError
from projectboard.guards import ensure_contract_owner, ensure_project_owner
from projectboard.services import accounts, contracts, lookup, projects, saved, students
from projectboard.tagsets import TagSet

pytestmark = pytest.mark.integration


@pytest.fixture
async def people(session):
    for username in ("org", "ana", "ben"):
        await accounts.register_account(session, username, f"{username}@example.com")
    await students.create_student(session, "ana", {"first_name": "Ana", "last_name": "Lopez"})
    await students.create_student(session, "ben", {"first_name": "Ben", "last_name": "Okafor"})
    return session


@pytest.fixture
async def project_id(people):
    return await projects.create_project(
        people,
        "org",
        {"title": "Community garden map", "duration": "1-3 months", "size": "2-3"},
        tag_lists={TagSet.SKILL: ["Go", "SQL"], TagSet.ROLE: ["Mentor", "Designer"]},
        exercises={"Designer": "Sketch the map legend"},
    )


@pytest.mark.asyncio
async def test_register_account_is_idempotent(session) -> None:
    first = await accounts.register_account(session, "dana")
    second = await accounts.register_account(session, " dana ")

    assert first == second
    with pytest.raises(ValidationError):
        await accounts.register_account(session, "   ")


@pytest.mark.asyncio
async def test_create_and_read_project(people, project_id) -> None:
    project = await projects.get_project(people, project_id)

    assert project["owner"] == "org"
    assert project["status"] == "Active"
    assert project["duration"] == "1-3 months"
    assert project["size"] == "2-3"
    assert project["skills"] == ["Go", "SQL"]
    assert project["roles"] == ["Designer", "Mentor"]
    assert project["interests"] == []
    assert project["exercises"] == {"Designer": "Sketch the map legend"}

    owned = await projects.list_owned_projects(people, "org")
    assert [p["id"] for p in owned] == [project_id]


@pytest.mark.asyncio
async def test_create_project_requires_known_owner_and_title(people) -> None:
    with pytest.raises(NotFoundError):
        await projects.create_project(people, "ghost", {"title": "Haunted"})
    with pytest.raises(ValidationError):
        await projects.create_project(people, "org", {"title": "  "})
    with pytest.raises(ValidationError):
        await projects.create_project(people, "org", {"title": "Bad size", "size": "Huge"})

    assert await count_rows(people, models.Project.__table__) == 0


@pytest.mark.asyncio
async def test_update_project_changes_only_supplied_fields(people, project_id) -> None:
    await projects.update_project(
        people,
        project_id,
        {"status": "Closed", "description": "Mapping local gardens"},
        tag_lists={TagSet.SKILL: ["Go", "Rust"], TagSet.ROLE: None, TagSet.INTEREST: []},
    )

    project = await projects.get_project(people, project_id)
    assert project["title"] == "Community garden map"
    assert project["status"] == "Closed"
    assert project["description"] == "Mapping local gardens"
    assert project["skills"] == ["Go", "Rust"]
    assert project["roles"] == ["Designer", "Mentor"]
    assert project["exercises"] == {"Designer": "Sketch the map legend"}


@pytest.mark.asyncio
async def test_failed_update_rolls_back_everything(people, project_id) -> None:
    with pytest.raises(ValidationError):
        await projects.update_project(
            people,
            project_id,
            {"title": "Renamed", "duration": "Forever"},
            tag_lists={TagSet.SKILL: ["Cobol"]},
        )

    project = await projects.get_project(people, project_id)
    assert project["title"] == "Community garden map"
    assert project["skills"] == ["Go", "SQL"]


@pytest.mark.asyncio
async def test_update_missing_project(people) -> None:
    with pytest.raises(NotFoundError):
        await projects.update_project(people, 404, {"title": "Nothing"})


@pytest.mark.asyncio
async def test_delete_project_removes_dependents(people, project_id) -> None:
    await contracts.create_contract(people, project_id, "ana")
    await saved.save_project(people, "ben", project_id)

    await projects.delete_project(people, project_id)

    assert await count_rows(people, models.Project.__table__) == 0
    assert await count_rows(people, models.Contract.__table__) == 0
    assert await count_rows(people, models.SavedProject.__table__) == 0
    assert await count_rows(people, models.project_skills) == 0
    assert await count_rows(people, models.project_roles) == 0
    # Catalog names outlive their last membership
    assert await count_rows(people, models.Skill.__table__) == 2
    with pytest.raises(NotFoundError):
        await projects.get_project(people, project_id)


@pytest.mark.asyncio
async def test_student_profile_lifecycle(people) -> None:
    await students.update_student(
        people,
        "ana",
        {"degree": "Master", "major1": "Computer Science", "school": "State University", "dob": date(2001, 5, 4)},
        tag_lists={TagSet.INTEREST: ["Health"], TagSet.FIELD: ["Education"]},
    )

    profile = await students.get_student(people, "ana")
    assert profile["username"] == "ana"
    assert profile["first_name"] == "Ana"
    assert profile["degree"] == "Master"
    assert profile["major1"] == "Computer Science"
    assert profile["school"] == "State University"
    assert profile["dob"] == date(2001, 5, 4)
    assert profile["interests"] == ["Health"]
    assert profile["fields"] == ["Education"]

    await students.update_student(people, "ana", {"degree": None})
    assert (await students.get_student(people, "ana"))["degree"] is None


@pytest.mark.asyncio
async def test_student_profile_validation(people) -> None:
    with pytest.raises(ValidationError):
        await students.create_student(people, "ana", {"first_name": "Ana", "last_name": "Again"})
    with pytest.raises(ValidationError):
        await students.update_student(people, "ana", {"degree": "Wizardry"})
    with pytest.raises(ValidationError):
        await students.update_student(people, "ana", {"last_name": ""})
    with pytest.raises(NotFoundError):
        await students.get_student_id(people, "org")


@pytest.mark.asyncio
async def test_delete_student_removes_saved_entries_both_ways(people, project_id) -> None:
    await saved.save_student(people, "ana", "ben")
    await saved.save_student(people, "ben", "ana")
    await saved.save_project(people, "ana", project_id)
    await contracts.create_contract(people, project_id, "ana")

    await students.delete_student(people, "ana")

    assert await count_rows(people, models.SavedStudent.__table__) == 0
    assert await count_rows(people, models.SavedProject.__table__) == 0
    assert await count_rows(people, models.Contract.__table__) == 0
    with pytest.raises(NotFoundError):
        await students.get_student(people, "ana")


@pytest.mark.asyncio
async def test_contract_lifecycle(people, project_id) -> None:
    contract_id = await contracts.create_contract(
        people, project_id, "ana", start_date=date(2024, 1, 8), end_date=date(2024, 3, 1),
    )

    [contract] = await contracts.list_student_contracts(people, "ana")
    assert contract["id"] == contract_id
    assert contract["status"] == "Pending"
    assert contract["project_title"] == "Community garden map"

    await contracts.update_contract_status(people, contract_id, "Active")
    [contract] = await projects.list_project_contracts(people, project_id)
    assert contract["status"] == "Active"
    assert contract["student"] == "ana"

    with pytest.raises(ValidationError):
        await contracts.update_contract_status(people, contract_id, "Closed")
    with pytest.raises(NotFoundError):
        await contracts.update_contract_status(people, 999, "Active")


@pytest.mark.asyncio
async def test_contract_validation(people, project_id) -> None:
    with pytest.raises(ValidationError):
        await contracts.create_contract(people, project_id, "ana", start_date=date(2024, 3, 1), end_date=date(2024, 1, 1))
    with pytest.raises(NotFoundError):
        await contracts.create_contract(people, 999, "ana")
    with pytest.raises(NotFoundError):
        await contracts.create_contract(people, project_id, "org")


@pytest.mark.asyncio
async def test_saving_is_idempotent(people, project_id) -> None:
    await saved.save_project(people, "ana", project_id)
    await saved.save_project(people, "ana", project_id)
    await saved.save_student(people, "ana", "ben")
    await saved.save_student(people, "ana", "ben")

    lists = await saved.get_saved(people, "ana")
    assert lists["projects"] == [{"id": project_id, "title": "Community garden map", "status": "Active"}]
    assert lists["students"] == [{"username": "ben", "first_name": "Ben", "last_name": "Okafor"}]

    await saved.unsave_project(people, "ana", project_id)
    await saved.unsave_student(people, "ana", "ben")
    assert await saved.get_saved(people, "ana") == {"projects": [], "students": []}

    with pytest.raises(ValidationError):
        await saved.save_student(people, "ana", "ana")
    with pytest.raises(NotFoundError):
        await saved.save_project(people, "ana", 999)


@pytest.mark.asyncio
async def test_ownership_guard(people, project_id) -> None:
    await ensure_project_owner(people, project_id, "org")
    with pytest.raises(UnauthorizedError):
        await ensure_project_owner(people, project_id, "ana")
    with pytest.raises(NotFoundError):
        await ensure_project_owner(people, 999, "org")

    contract_id = await contracts.create_contract(people, project_id, "ben")
    assert await ensure_contract_owner(people, contract_id, "org") == project_id
    with pytest.raises(UnauthorizedError):
        await ensure_contract_owner(people, contract_id, "ben")


@pytest.mark.asyncio
async def test_option_lists(people, project_id) -> None:
    tag_options = await lookup.get_tag_options(people)
    assert tag_options["skills"] == ["Go", "SQL"]
    assert tag_options["fields"] == []

    project_options = await lookup.get_project_options(people)
    assert "Active" in project_options["statuses"]
    assert "1-3 months" in project_options["durations"]
    assert "skills" in project_options

    student_options = await lookup.get_student_options(people)
    assert "Master" in student_options["degrees"]
    assert "State University" in student_options["schools"]
    assert "Computer Science" in student_options["majors"]
