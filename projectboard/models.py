"""Core SQLAlchemy models (2.x style) for the marketplace schema.

Lookup tables (status, duration, team size, degree, major, school) are small
seeded enumerations. Catalog tables (skills, roles, interests, fields) grow
lazily as profiles reference new names and are shared by students and
projects through junction tables.
"""

from __future__ import annotations

from datetime import date, datetime

from sqlalchemy import (
    Column,
    Date,
    ForeignKey,
    Index,
    Integer,
    String,
    Table,
    Text,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship


class Base(DeclarativeBase):
    """Base class for all models."""
    pass


class User(Base):
    """Accounts; credentials live in the external credential store."""
    __tablename__ = "users"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    username: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)
    email: Mapped[str | None] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    student: Mapped[Student | None] = relationship("Student", back_populates="user", uselist=False)
    projects: Mapped[list[Project]] = relationship("Project", back_populates="owner")


# --- lookup tables -----------------------------------------------------------

class Status(Base):
    """Project and contract status names (Active, Pending, ...)."""
    __tablename__ = "statuses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)


class Duration(Base):
    __tablename__ = "durations"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)


class TeamSize(Base):
    __tablename__ = "team_sizes"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(100), nullable=False, unique=True)


class Degree(Base):
    __tablename__ = "degrees"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)


class Major(Base):
    __tablename__ = "majors"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)


class School(Base):
    __tablename__ = "schools"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True)


# --- tag catalogs ------------------------------------------------------------

class Skill(Base):
    __tablename__ = "skills"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)


class Role(Base):
    __tablename__ = "roles"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)


class Interest(Base):
    __tablename__ = "interests"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)


class FieldOfWork(Base):
    """Broad fields (e.g. Education, Health) a profile is tagged with."""
    __tablename__ = "fields"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False, unique=True, index=True)


# --- entities ----------------------------------------------------------------

class Project(Base):
    """Short-term projects posted by organizations or students."""
    __tablename__ = "projects"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    owner_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, index=True)
    title: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    description: Mapped[str | None] = mapped_column(Text)
    size_id: Mapped[int | None] = mapped_column(ForeignKey("team_sizes.id"))
    duration_id: Mapped[int | None] = mapped_column(ForeignKey("durations.id"))
    status_id: Mapped[int] = mapped_column(ForeignKey("statuses.id"), nullable=False)
    postal: Mapped[str | None] = mapped_column(String(20))
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    owner: Mapped[User] = relationship("User", back_populates="projects")
    status: Mapped[Status] = relationship("Status")
    duration: Mapped[Duration | None] = relationship("Duration")
    size: Mapped[TeamSize | None] = relationship("TeamSize")

    __table_args__ = (
        Index("ix_projects_created_at", "created_at"),
    )


class Student(Base):
    """Student profiles, one per user."""
    __tablename__ = "students"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    user_id: Mapped[int] = mapped_column(ForeignKey("users.id"), nullable=False, unique=True)
    first_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    last_name: Mapped[str] = mapped_column(String(255), nullable=False, index=True)
    email: Mapped[str | None] = mapped_column(String(255))
    dob: Mapped[date | None] = mapped_column(Date)
    school_id: Mapped[int | None] = mapped_column(ForeignKey("schools.id"))
    degree_id: Mapped[int | None] = mapped_column(ForeignKey("degrees.id"))
    major1_id: Mapped[int | None] = mapped_column(ForeignKey("majors.id"))
    major2_id: Mapped[int | None] = mapped_column(ForeignKey("majors.id"))
    resume: Mapped[str | None] = mapped_column(String(512))
    linkedin: Mapped[str | None] = mapped_column(String(512))
    website: Mapped[str | None] = mapped_column(String(512))
    postal: Mapped[str | None] = mapped_column(String(20))
    photo_url: Mapped[str | None] = mapped_column(String(512))
    joined_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)

    user: Mapped[User] = relationship("User", back_populates="student")
    school: Mapped[School | None] = relationship("School")
    degree: Mapped[Degree | None] = relationship("Degree")
    major1: Mapped[Major | None] = relationship("Major", foreign_keys=[major1_id])
    major2: Mapped[Major | None] = relationship("Major", foreign_keys=[major2_id])


class Contract(Base):
    """Engagement of a student on a project."""
    __tablename__ = "contracts"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), nullable=False, index=True)
    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), nullable=False, index=True)
    status_id: Mapped[int] = mapped_column(ForeignKey("statuses.id"), nullable=False)
    start_date: Mapped[date | None] = mapped_column(Date)
    end_date: Mapped[date | None] = mapped_column(Date)
    created_at: Mapped[datetime] = mapped_column(default=datetime.utcnow, nullable=False)
    updated_at: Mapped[datetime] = mapped_column(
        default=datetime.utcnow,
        onupdate=datetime.utcnow,
        nullable=False,
    )

    project: Mapped[Project] = relationship("Project")
    student: Mapped[Student] = relationship("Student")
    status: Mapped[Status] = relationship("Status")


class SavedProject(Base):
    __tablename__ = "saved_projects"

    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), primary_key=True)
    project_id: Mapped[int] = mapped_column(ForeignKey("projects.id"), primary_key=True)


class SavedStudent(Base):
    __tablename__ = "saved_students"

    student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), primary_key=True)
    target_student_id: Mapped[int] = mapped_column(ForeignKey("students.id"), primary_key=True)


# --- junction tables ---------------------------------------------------------

def _junction(name: str, entity_table: str, entity_column: str, catalog_table: str, catalog_column: str, *extra: Column) -> Table:
    return Table(
        name,
        Base.metadata,
        Column(entity_column, ForeignKey(f"{entity_table}.id"), primary_key=True),
        Column(catalog_column, ForeignKey(f"{catalog_table}.id"), primary_key=True),
        *extra,
        Index(f"ix_{name}_{catalog_column}", catalog_column),
    )


project_skills = _junction("project_skills", "projects", "project_id", "skills", "skill_id")
project_roles = _junction(
    "project_roles", "projects", "project_id", "roles", "role_id",
    Column("exercise", Text, nullable=True),
)
project_interests = _junction("project_interests", "projects", "project_id", "interests", "interest_id")
project_fields = _junction("project_fields", "projects", "project_id", "fields", "field_id")

student_skills = _junction("student_skills", "students", "student_id", "skills", "skill_id")
student_roles = _junction("student_roles", "students", "student_id", "roles", "role_id")
student_interests = _junction("student_interests", "students", "student_id", "interests", "interest_id")
student_fields = _junction("student_fields", "students", "student_id", "fields", "field_id")
