"""
Starkpack Data Model

Pydantic models exchanged between the detect phase, the build phase and the
lifecycle that invokes them.
"""

from typing import Optional, List, Dict, Any
from pydantic import BaseModel, ConfigDict, Field, model_validator


# ===== Dependency Models =====

class DependencyDescriptor(BaseModel):
    """A resolved, downloadable toolchain artifact. Identity is (id, version)."""
    model_config = ConfigDict(frozen=True)

    id: str = Field(..., description="Dependency id, e.g. 'starkli-gnu'")
    name: str = Field(..., description="Human-readable dependency name")
    version: str = Field(..., description="Exact resolved version")
    sha256: str = Field(..., description="Hex sha256 of the artifact")
    uri: str = Field(..., description="Download location (http(s):// or file://)")
    stacks: List[str] = Field(default_factory=list, description="Stacks the artifact runs on")
    licenses: List[str] = Field(default_factory=list)

    def as_metadata(self) -> Dict[str, Any]:
        return self.model_dump()


# ===== Detection Models =====

class BuildPlanProvide(BaseModel):
    name: str


class BuildPlanRequire(BaseModel):
    name: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class BuildPlan(BaseModel):
    """One provides/requires alternative handed to the lifecycle."""
    provides: List[BuildPlanProvide] = Field(default_factory=list)
    requires: List[BuildPlanRequire] = Field(default_factory=list)


class DetectResult(BaseModel):
    """Outcome of the detect phase. passed=False is a normal, non-error result."""
    passed: bool = Field(default=False)
    plans: List[BuildPlan] = Field(default_factory=list)
    reason: Optional[str] = Field(None, description="Why detection did not pass")


# ===== Build Models =====

class PlanEntry(BaseModel):
    """An entry of the resolved buildpack plan passed into the build phase."""
    name: str
    metadata: Dict[str, Any] = Field(default_factory=dict)


class ProcessDefinition(BaseModel):
    """A launchable process contributed to the application image."""
    model_config = ConfigDict(frozen=True)

    type: str = Field(..., description="Process type, also the launcher alias")
    command: str
    arguments: List[str] = Field(default_factory=list)
    default: bool = Field(default=False)


class BuildResult(BaseModel):
    """Outcome of the build phase."""
    layers: List[str] = Field(default_factory=list, description="Names of contributed layers")
    processes: List[ProcessDefinition] = Field(default_factory=list)

    @model_validator(mode="after")
    def _single_default_process(self):
        defaults = [p.type for p in self.processes if p.default]
        if len(defaults) > 1:
            raise ValueError(f"at most one default process is allowed, got {defaults}")
        return self
