from __future__ import annotations

from typing import Any, Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class CodeBlockRef(BaseModel):
    """Reference from a turn to one version of a code block."""

    id: str
    language: str
    version_id: str
    contextual_name: Optional[str] = None


class CodeBlockVersion(BaseModel):
    """Immutable snapshot of a code block's content."""

    model_config = ConfigDict(frozen=True)

    id: str
    code: str
    created_at: float
    turn_id: str
    parent_version_id: Optional[str] = None
    change_summary: Optional[str] = None
    diff_from_parent: Optional[str] = Field(default=None, description="Advisory unified diff against the parent")


class CodeBlockMetadata(BaseModel):
    tags: List[str] = Field(default_factory=list)
    complexity: Optional[float] = None
    classification: Optional[str] = Field(default=None, description="component, utility, config, ...")
    custom: Dict[str, Any] = Field(default_factory=dict)


class CodeBlock(BaseModel):
    """A logical code artifact with an independent version lineage."""

    id: str
    language: str
    filename: Optional[str] = None
    purpose: Optional[str] = None
    created_at: float
    versions: List[CodeBlockVersion] = Field(default_factory=list)
    current_version_id: str
    turn_ids: List[str] = Field(default_factory=list)
    related_block_ids: List[str] = Field(default_factory=list)
    metadata: CodeBlockMetadata = Field(default_factory=CodeBlockMetadata)

    def get_version(self, version_id: str) -> Optional[CodeBlockVersion]:
        for version in self.versions:
            if version.id == version_id:
                return version
        return None

    @property
    def current_version(self) -> CodeBlockVersion:
        version = self.get_version(self.current_version_id)
        if version is None:
            raise ValueError(f"Current version {self.current_version_id} missing from block {self.id}")
        return version

    @property
    def updated_at(self) -> float:
        return self.current_version.created_at
