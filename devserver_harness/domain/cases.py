"""Test case models and the run matrix table."""

from __future__ import annotations

from typing import Iterable

from pydantic import BaseModel, Field, computed_field, field_validator, model_validator

from devserver_harness.core.exceptions import ConfigurationConflictError
from devserver_harness.domain.endpoint import DevServerVersion


APP_YAMLS_MODE = "appYamls"
SERVICES_MODE = "services"

CONFLICT_MESSAGE = (
    "Both <appYamls> and <services> are defined."
    " <appYamls> is deprecated, use <services> only."
)
BUILD_FAILURE_MARKER = "BUILD FAILURE"

# Configuration modes each profile switches on in the project under test
PROFILE_MODES: dict[str, frozenset[str]] = {
    "appyamls": frozenset({APP_YAMLS_MODE}),
    "services": frozenset({SERVICES_MODE}),
    "appYamlsAndServices": frozenset({APP_YAMLS_MODE, SERVICES_MODE}),
}

CONFLICT_PROFILE = "appYamlsAndServices"


def active_modes(profiles: Iterable[str]) -> frozenset[str]:
    modes: set[str] = set()
    for profile in profiles:
        modes |= PROFILE_MODES.get(profile, frozenset())
    return frozenset(modes)


def profile_cli_options(profiles: Iterable[str]) -> list[str]:
    """Translate profile names into ``-P`` flags, skipping blanks."""
    return [f"-P{profile}" for profile in profiles if profile]


class ProfileSet(BaseModel):
    """One row of the profile table: profiles and the module they deploy."""

    profiles: tuple[str, ...] = Field(default_factory=tuple)
    expected_label: str = Field(..., min_length=1)

    model_config = {"frozen": True}


class TestCase(BaseModel):
    """One run-then-stop scenario."""

    __test__ = False  # not a pytest class

    version: DevServerVersion
    profiles: tuple[str, ...] = Field(default_factory=tuple)
    expected_label: str = Field(..., min_length=1)

    model_config = {"frozen": True}

    @field_validator("profiles", mode="before")
    @classmethod
    def _coerce_profiles(cls, v):
        if isinstance(v, str):
            return (v,)
        return tuple(v)

    @model_validator(mode="after")
    def _reject_conflicting_modes(self) -> "TestCase":
        if {APP_YAMLS_MODE, SERVICES_MODE} <= active_modes(self.profiles):
            raise ConfigurationConflictError(
                CONFLICT_MESSAGE, details={"profiles": list(self.profiles)}
            )
        return self

    @computed_field
    @property
    def name(self) -> str:
        profiles = ",".join(p for p in self.profiles if p) or "default"
        return f"{self.version.name}-{profiles}"

    def cli_options(self) -> list[str]:
        return profile_cli_options(self.profiles)


DEFAULT_PROFILE_SETS: tuple[ProfileSet, ...] = (
    ProfileSet(profiles=(), expected_label="standard-project"),
    ProfileSet(
        profiles=("base-it-profile", "appyamls"),
        expected_label="standard-project-appyamls",
    ),
    ProfileSet(
        profiles=("base-it-profile", "services"),
        expected_label="standard-project-services",
    ),
)


def build_matrix(
    variants: Iterable[DevServerVersion] | None = None,
    profile_sets: Iterable[ProfileSet] = DEFAULT_PROFILE_SETS,
) -> list[TestCase]:
    """Cross every version variant with every profile set, variant-major."""
    variants = list(DevServerVersion) if variants is None else list(variants)
    profile_sets = list(profile_sets)
    return [
        TestCase(
            version=version,
            profiles=profile_set.profiles,
            expected_label=profile_set.expected_label,
        )
        for version in variants
        for profile_set in profile_sets
    ]
