"""
Request argument models for the dbjson host facade.

Hosts send loosely shaped argument objects ({type, name, attr, value,
ifNew, columns, numEntries, ...}). These models validate them before
they reach the store. Field aliases keep the host's camelCase names
while the Python side uses snake_case.
"""

from __future__ import annotations

from typing import Any, Dict, List, Optional, Union

from pydantic import BaseModel, ConfigDict, Field, model_validator

PathValue = Union[str, List[Union[str, int]]]


class ArgsModel(BaseModel):
    """Base for all argument models: unknown keys are rejected."""

    model_config = ConfigDict(extra="forbid", populate_by_name=True)


class SetIdentityArgs(ArgsModel):
    """Establish the acting user."""

    username: str = Field(..., min_length=1, description="Acting username")
    settings: Optional[Dict[str, Any]] = Field(None, description="Host settings")


class PathArgs(ArgsModel):
    """Addresses a subtree either by explicit path or by type/name/attr."""

    path: Optional[PathValue] = Field(None, description="Dotted path or segment list")
    type: Optional[str] = Field(None, description="Table (first segment)")
    name: Optional[str] = Field(None, description="Record name (second segment)")
    attr: Optional[str] = Field(None, description="Attribute (third segment)")

    @model_validator(mode="after")
    def _check_addressing(self) -> PathArgs:
        if self.path is not None and any(v is not None for v in (self.type, self.name, self.attr)):
            raise ValueError("use either 'path' or 'type'/'name'/'attr', not both")
        if self.name is not None and self.type is None:
            raise ValueError("'name' requires 'type'")
        if self.attr is not None and self.name is None:
            raise ValueError("'attr' requires 'name'")
        return self

    def target(self) -> PathValue:
        """Path the request addresses (empty list = root)."""
        if self.path is not None:
            return self.path
        return [seg for seg in (self.type, self.name, self.attr) if seg is not None]


class GetIndexArgs(PathArgs):
    pass


class GetItemArgs(PathArgs):
    pass


class AddAttributeArgs(PathArgs):
    value: Any = Field(..., description="Attribute value")


class CreateItemArgs(PathArgs):
    value: Dict[str, Any] = Field(..., description="Attribute name -> value")
    if_new: bool = Field(True, alias="ifNew", description="Fail if the item already exists")


class DeleteArgs(PathArgs):
    must_exist: bool = Field(False, alias="mustExist", description="Fail if nothing is removed")


class DuplicateArgs(PathArgs):
    destination: PathValue = Field(..., alias="target", description="Path to copy to")


class TableArgs(ArgsModel):
    type: str = Field(..., min_length=1, description="Table name")


class NextIdArgs(TableArgs):
    pass


class NewRecordArgs(TableArgs):
    value: Dict[str, Any] = Field(default_factory=dict, description="Column -> value")
    username: Optional[str] = Field(None, description="Acting user (defaults to the store identity)")


class UpdateRecordArgs(TableArgs):
    id: int = Field(..., ge=0, description="Record id")
    value: Dict[str, Any] = Field(..., description="Column -> value")
    username: Optional[str] = Field(None, description="Acting user (defaults to the store identity)")


class GetRecordArgs(TableArgs):
    id: int = Field(..., ge=0, description="Record id")
    columns: Union[str, List[str]] = Field("all", description="Columns, or 'all'")
    num_entries: Union[int, str] = Field(1, alias="numEntries", description="History window")


class GetTableArgs(TableArgs):
    columns: Union[str, List[str]] = Field("all", description="Columns, or 'all'")
    num_entries: Union[int, str] = Field(1, alias="numEntries", description="History window")
