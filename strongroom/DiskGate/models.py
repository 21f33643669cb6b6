"""
DiskGate models.

Project identity as consumed from the project records, and the result type
returned by path resolution.
"""

from dataclasses import dataclass
from typing import Any, Dict, Optional, Union

from pydantic import BaseModel, ConfigDict, Field


class ProjectRef(BaseModel):
    """The project fields the file system needs, read-only."""

    model_config = ConfigDict(populate_by_name=True)

    id: str = Field(alias="_id", description="Project record identifier")
    project_number: str = Field(default="", alias="projectNumber", description="YY-MMNNN")
    name: str = Field(default="", description="Human label, used verbatim in the folder name")
    region: str = Field(default="AU")
    client_id: Optional[str] = Field(default=None, alias="clientId")

    @classmethod
    def coerce(cls, project: Union["ProjectRef", Dict[str, Any]]) -> "ProjectRef":
        """Accept either a ProjectRef or a raw project document."""
        if isinstance(project, cls):
            return project
        data = dict(project)
        if "_id" in data:
            data["_id"] = str(data["_id"])
        if data.get("clientId") is not None:
            data["clientId"] = str(data["clientId"])
        return cls.model_validate(data)

    @property
    def folder_name(self) -> str:
        return f"{self.project_number} - {self.name}"

    def to_dict(self) -> Dict[str, Any]:
        """Convert to the project document shape."""
        return self.model_dump(mode="json", by_alias=True)


@dataclass(frozen=True)
class Ok:
    """Successful path resolution."""

    path: str

    def __bool__(self) -> bool:
        return True


@dataclass(frozen=True)
class Invalid:
    """Project identifiers that cannot be mapped to a disk path."""

    reason: str

    def __bool__(self) -> bool:
        return False


PathResolution = Union[Ok, Invalid]
