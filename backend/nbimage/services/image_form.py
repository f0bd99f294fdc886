"""
Add-image form as an explicit state machine.

    unselected --select--> selected --validate--> validated --submit--> submitted
        ^                     |  ^                    |
        +-------clear---------+  +------set-----------+

``reduce(state, action)`` is pure: it returns a new FormState and never
mutates its input. Selecting a mode starts from empty values. Changing a
value after validation drops back to ``selected``. ``submit`` is ignored
unless the form is validated.
"""
from __future__ import annotations
from dataclasses import dataclass, field, replace
from types import MappingProxyType
from typing import Any, Mapping, Union

from ..constants import Mode
from ..schemas.cre import CREResourceCreateRequest, RuntimeEnvironmentInput
from . import spec_compiler
from .annotation_codec import parse_requirements
from .errors import ValidationError


class Stage:
    UNSELECTED = "unselected"
    SELECTED = "selected"
    VALIDATED = "validated"
    SUBMITTED = "submitted"


# Fields whose validity is tracked per mode ("source" is baseImage or a full runtime)
REQUIRED_FIELDS: dict[str, tuple[str, ...]] = {
    Mode.IMPORT: ("name", "from_image"),
    Mode.EXISTING: ("name", "source"),
    Mode.BUILD: ("name", "package_versions", "os_name", "os_version", "python_version"),
    Mode.GIT: ("name", "repository"),
}

def _frozen() -> Mapping[str, Any]:
    return MappingProxyType({})


@dataclass(frozen=True)
class FormState:
    stage: str = Stage.UNSELECTED
    mode: str | None = None
    values: Mapping[str, Any] = field(default_factory=_frozen)
    valid: Mapping[str, bool] = field(default_factory=_frozen)
    error: str | None = None


# ─── Actions ─────────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class Select:
    mode: str


@dataclass(frozen=True)
class SetValue:
    key: str
    value: Any


@dataclass(frozen=True)
class Validate:
    pass


@dataclass(frozen=True)
class Submit:
    pass


@dataclass(frozen=True)
class Clear:
    pass


Action = Union[Select, SetValue, Validate, Submit, Clear]


# ─── Field checks ────────────────────────────────────────────────────────────

def _filled(value: Any) -> bool:
    if value is None:
        return False
    if isinstance(value, str):
        return bool(value.strip())
    if isinstance(value, (list, tuple)):
        return any(_filled(v) for v in value)
    return True


def _packages(values: Mapping[str, Any]) -> list[str]:
    raw = values.get("package_versions")
    if isinstance(raw, str):
        return parse_requirements(raw)
    return [str(v).strip() for v in (raw or []) if _filled(v)]


def field_validity(mode: str, values: Mapping[str, Any]) -> dict[str, bool]:
    checks: dict[str, bool] = {}
    for key in REQUIRED_FIELDS[mode]:
        if key == "source":
            checks[key] = _filled(values.get("base_image")) or all(
                _filled(values.get(k)) for k in ("os_name", "os_version", "python_version")
            )
        elif key == "package_versions":
            checks[key] = bool(_packages(values))
        else:
            checks[key] = _filled(values.get(key))
    return checks


def to_request(state: FormState, user: str | None = None) -> CREResourceCreateRequest:
    """Request body for the current values of a selected form."""
    if state.mode is None:
        raise ValidationError("No image source selected")
    v = state.values
    runtime = None
    if any(_filled(v.get(k)) for k in ("os_name", "os_version", "python_version")):
        runtime = RuntimeEnvironmentInput(
            os_name=v.get("os_name"),
            os_version=v.get("os_version"),
            python_version=v.get("python_version"),
        )
    return CREResourceCreateRequest(
        mode=state.mode,
        name=v.get("name") or "",
        description=v.get("description"),
        user=user,
        from_image=v.get("from_image"),
        image_pull_secret_name=v.get("image_pull_secret_name"),
        base_image=v.get("base_image"),
        runtime_environment=runtime,
        package_versions=_packages(v) or None,
        repository=v.get("repository"),
        git_ref=v.get("git_ref"),
    )


# ─── Reducer ─────────────────────────────────────────────────────────────────

def reduce(state: FormState, action: Action) -> FormState:
    if isinstance(action, Clear):
        return FormState()

    if isinstance(action, Select):
        if action.mode not in REQUIRED_FIELDS:
            return replace(state, error=f"Unknown image source '{action.mode}'")
        return FormState(
            stage=Stage.SELECTED,
            mode=action.mode,
            valid=MappingProxyType(field_validity(action.mode, {})),
        )

    if state.mode is None:
        return state

    if isinstance(action, SetValue):
        if state.stage == Stage.SUBMITTED:
            return state
        values = MappingProxyType({**state.values, action.key: action.value})
        return replace(
            state,
            stage=Stage.SELECTED,
            values=values,
            valid=MappingProxyType(field_validity(state.mode, values)),
            error=None,
        )

    if isinstance(action, Validate):
        if state.stage == Stage.SUBMITTED:
            return state
        valid = field_validity(state.mode, state.values)
        error = None
        if all(valid.values()):
            try:
                spec_compiler.compile_spec(to_request(state))
            except ValidationError as e:
                error = str(e)
        else:
            error = "Required fields are missing: " + ", ".join(k for k, ok in valid.items() if not ok)
        return replace(
            state,
            stage=Stage.SELECTED if error else Stage.VALIDATED,
            valid=MappingProxyType(valid),
            error=error,
        )

    if isinstance(action, Submit):
        if state.stage != Stage.VALIDATED:
            return state
        return replace(state, stage=Stage.SUBMITTED)

    return state


def run(actions: list[Action], state: FormState | None = None) -> FormState:
    """Fold a sequence of actions over ``state`` (default: a fresh form)."""
    state = state or FormState()
    for action in actions:
        state = reduce(state, action)
    return state
