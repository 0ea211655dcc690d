"""
Estimatix - Project, Estimate & Profile Service
"""
import logging
from dataclasses import replace
from datetime import datetime
from typing import Any

from estimatix.domain.exceptions import ValidationError
from estimatix.domain.models.estimate import Estimate
from estimatix.domain.models.project import Profile, Project, ProjectStatus
from estimatix.application.repository import ESTIMATES, PROFILES, PROJECTS, Repository, new_id

logger = logging.getLogger(__name__)

PROJECT_FIELDS = ("title", "client_name", "owner_name", "project_address", "notes", "status")
PROFILE_FIELDS = ("full_name", "company_name", "region")


def _clean_project(data: dict[str, Any]) -> dict[str, Any]:
    unknown = set(data) - set(PROJECT_FIELDS)
    if unknown:
        name = sorted(unknown)[0]
        raise ValidationError(f"Unknown field: {name}", field_name=name)
    cleaned = dict(data)
    if "title" in cleaned:
        cleaned["title"] = (cleaned["title"] or "").strip()
        if not cleaned["title"]:
            raise ValidationError("Project title cannot be empty", field_name="title")
    if "status" in cleaned:
        try:
            cleaned["status"] = ProjectStatus(cleaned["status"])
        except ValueError:
            raise ValidationError(f"Invalid project status: {cleaned['status']}", field_name="status")
    return cleaned


class ProjectService:
    def __init__(self, repo: Repository):
        self.repo = repo

    # Projects

    def create_project(self, user_id: str, data: dict[str, Any]) -> Project:
        cleaned = _clean_project(data)
        if "title" not in cleaned:
            raise ValidationError("Project title cannot be empty", field_name="title")
        project = Project(id=new_id(), user_id=user_id, **cleaned)
        project = Project.from_row(self.repo.db.insert(PROJECTS, project.to_row()))
        logger.info(f"Created project {project.id} '{project.title}' for user {user_id}")
        return project

    def list_projects(self, user_id: str) -> list[Project]:
        rows = self.repo.db.find(PROJECTS, {"user_id": user_id}, order_by="created_at", descending=True)
        return [Project.from_row(r) for r in rows]

    def get_project(self, user_id: str, project_id: str) -> Project:
        return self.repo.owned_project(project_id, user_id)

    def update_project(self, user_id: str, project_id: str, patch: dict[str, Any]) -> Project:
        project = self.repo.owned_project(project_id, user_id)
        updated = replace(project, **_clean_project(patch), updated_at=datetime.now())
        row = updated.to_row()
        row.pop("id")
        saved = self.repo.db.update(PROJECTS, project_id, row)
        return Project.from_row(saved) if saved else updated

    def delete_project(self, user_id: str, project_id: str) -> None:
        self.repo.owned_project(project_id, user_id)
        self.repo.db.delete(PROJECTS, project_id)
        logger.info(f"Deleted project {project_id}")

    # Estimates

    def create_estimate(self, user_id: str, project_id: str) -> Estimate:
        """New empty draft estimate."""
        self.repo.owned_project(project_id, user_id)
        estimate = Estimate(id=new_id(), project_id=project_id)
        return Estimate.from_row(self.repo.db.insert(ESTIMATES, estimate.to_row()))

    def list_estimates(self, user_id: str, project_id: str) -> list[Estimate]:
        self.repo.owned_project(project_id, user_id)
        return self.repo.project_estimates(project_id)

    def get_estimate(self, user_id: str, estimate_id: str) -> Estimate:
        estimate, _ = self.repo.owned_estimate(estimate_id, user_id)
        return estimate

    # Profile

    def get_profile(self, user_id: str) -> Profile | None:
        return self.repo.get_profile(user_id)

    def upsert_profile(self, user_id: str, data: dict[str, Any]) -> Profile:
        unknown = set(data) - set(PROFILE_FIELDS)
        if unknown:
            name = sorted(unknown)[0]
            raise ValidationError(f"Unknown field: {name}", field_name=name)

        existing = self.repo.get_profile(user_id)
        if existing:
            saved = self.repo.db.update(PROFILES, existing.id, dict(data))
            return Profile.from_row(saved) if saved else replace(existing, **data)

        profile = Profile(id=new_id(), user_id=user_id, **data)
        return Profile.from_row(self.repo.db.insert(PROFILES, profile.to_row()))
