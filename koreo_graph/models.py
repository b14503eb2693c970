import logging
from collections.abc import Iterator
from enum import Enum
from typing import Any, Literal

from pydantic import (
    BaseModel,
    ConfigDict,
    Field,
    ValidationError,
    ValidationInfo,
    ValidatorFunctionWrapHandler,
    field_validator,
)
from pydantic.alias_generators import to_camel

logger = logging.getLogger(__name__)

DEFAULT_CONFIG_STEP_LABEL = "config"

LogicKind = Literal["ResourceFunction", "ValueFunction", "Workflow"]


class NodeType(str, Enum):
    """Kinds of node in the internal workflow graph."""

    PARENT = "Parent"
    WORKFLOW = "Workflow"
    VALUE_FUNCTION = "ValueFunction"
    RESOURCE_FUNCTION = "ResourceFunction"
    REF_SWITCH = "RefSwitch"
    SUB_WORKFLOW = "SubWorkflow"


class EdgeType(str, Enum):
    """Kinds of edge shared by the internal and inflated graphs."""

    PARENT_TO_WORKFLOW = "ParentToWorkflow"
    WORKFLOW_TO_STEP = "WorkflowToStep"
    STEP_TO_STEP = "StepToStep"
    STEP_TO_RESOURCE = "StepToResource"


class DomainType(str, Enum):
    """Node type names that belong to Koreo itself rather than to a managed kind."""

    WORKFLOW = "Workflow"
    SUB_WORKFLOW = "SubWorkflow"
    REF_SWITCH = "RefSwitch"
    REF_SWITCH_RESULT = "RefSwitchResult"
    RESOURCE_FUNCTION = "ResourceFunction"
    VALUE_FUNCTION = "ValueFunction"


class _SpecModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        extra="ignore",
        frozen=True,
    )


class CRDRef(_SpecModel):
    api_group: str
    version: str
    kind: str

    @property
    def api_version(self) -> str:
        return f"{self.api_group}/{self.version}"


class LogicRef(_SpecModel):
    kind: LogicKind
    name: str = Field(min_length=1)


class RefSwitchCase(_SpecModel):
    case: str
    default: bool = False
    kind: LogicKind
    name: str = Field(min_length=1)

    @field_validator("case", mode="before")
    @classmethod
    def stringify_case(cls, v: Any) -> Any:
        """Case values may be written as YAML numbers or booleans."""
        if isinstance(v, bool):
            return str(v).lower()
        if isinstance(v, (int, float)):
            return str(v)
        return v


class RefSwitch(_SpecModel):
    switch_on: str
    cases: list[RefSwitchCase] = Field(default_factory=list)

    @field_validator("cases", mode="before")
    @classmethod
    def drop_invalid_cases(cls, v: Any) -> Any:
        """A malformed case is skipped; the remaining cases still form the switch."""
        if not isinstance(v, list):
            return v
        cases = []
        for raw in v:
            try:
                cases.append(RefSwitchCase.model_validate(raw))
            except ValidationError as e:
                logger.warning(f"Skipping invalid refSwitch case {raw!r}: {e}")
        return cases


class ForEach(_SpecModel):
    item_in: str
    input_key: str | None = None


class Condition(_SpecModel):
    type: str
    name: str


class Step(_SpecModel):
    """
    One step of a workflow (or its config step).

    A usable step has either ``ref`` or ``ref_switch``. The label is optional
    only on the config step, which falls back to ``"config"``.
    """

    label: str | None = None
    ref: LogicRef | None = None
    ref_switch: RefSwitch | None = None
    skip_if: str | None = None
    for_each: ForEach | None = None
    inputs: dict[str, Any] | None = None
    condition: Condition | None = None
    state: dict[str, Any] | None = None

    @field_validator("skip_if", "for_each", "condition", "state", mode="wrap")
    @classmethod
    def drop_malformed_field(
        cls, v: Any, handler: ValidatorFunctionWrapHandler, info: ValidationInfo
    ) -> Any:
        """A malformed side field is dropped rather than the whole step."""
        try:
            return handler(v)
        except ValidationError as e:
            logger.warning(f"Ignoring malformed step field '{info.field_name}': {e}")
            return None

    @property
    def is_valid(self) -> bool:
        return self.ref is not None or self.ref_switch is not None


class WorkflowSpec(_SpecModel):
    crd_ref: CRDRef | None = None
    config_step: dict[str, Any] | None = None
    steps: list[Any] = Field(default_factory=list)

    def iter_steps(self, workflow_name: str = "") -> Iterator[tuple[str, Step]]:
        """
        Yield ``(label, step)`` for every usable step, config step first.

        Steps that fail validation, have neither ``ref`` nor ``refSwitch``, or
        reuse an earlier label are skipped.
        """
        raw_steps: list[tuple[Any, str | None]] = []
        if self.config_step is not None:
            raw_steps.append((self.config_step, DEFAULT_CONFIG_STEP_LABEL))
        raw_steps.extend((raw, None) for raw in self.steps)

        seen: set[str] = set()
        for raw, default_label in raw_steps:
            try:
                step = Step.model_validate(raw)
            except ValidationError as e:
                logger.warning(f"Skipping invalid step in workflow '{workflow_name}': {e}")
                continue

            label = step.label or default_label
            if not label:
                logger.warning(f"Skipping unlabelled step in workflow '{workflow_name}'")
                continue
            if not step.is_valid:
                logger.warning(
                    f"Skipping step '{label}' in workflow '{workflow_name}': "
                    f"neither ref nor refSwitch is set"
                )
                continue
            if label in seen:
                logger.warning(f"Skipping duplicate step label '{label}' in '{workflow_name}'")
                continue

            seen.add(label)
            yield label, step


def parse_workflow_spec(workflow: dict[str, Any]) -> WorkflowSpec:
    """Parse ``workflow.spec``; an unreadable spec is treated as having no steps."""
    try:
        return WorkflowSpec.model_validate(workflow.get("spec") or {})
    except ValidationError as e:
        name = (workflow.get("metadata") or {}).get("name", "unknown")
        logger.warning(f"Workflow '{name}' has an unreadable spec: {e}")
        return WorkflowSpec()


class ManagedKubernetesResource(BaseModel):
    """A live object created by a ResourceFunction step, plus its readonly flag."""

    model_config = ConfigDict(frozen=True)

    resource: dict[str, Any]
    readonly: bool = False


class BuildOptions(BaseModel):
    """
    Options for building workflow graphs.

    Attributes:
        max_depth: Maximum sub-workflow nesting depth before the build fails
        fetch_concurrency: Maximum number of in-flight client fetches per build
    """

    model_config = ConfigDict(frozen=True)

    max_depth: int = Field(default=16, ge=1, le=128)
    fetch_concurrency: int = Field(default=32, ge=1, le=256)


class _InflatedModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class InflatedNodeType(_InflatedModel):
    is_domain_type: bool
    name: str

    @classmethod
    def domain(cls, name: DomainType) -> "InflatedNodeType":
        return cls(is_domain_type=True, name=name.value)

    @classmethod
    def kind(cls, name: str) -> "InflatedNodeType":
        return cls(is_domain_type=False, name=name)


class InflatedNode(_InflatedModel):
    id: str
    label: str
    type: InflatedNodeType
    underlying_object: dict[str, Any] | None = None
    metadata: dict[str, Any] | None = None


class InflatedEdge(_InflatedModel):
    id: str
    source: str
    target: str
    type: EdgeType

    @classmethod
    def create(cls, source: str, target: str, edge_type: EdgeType) -> "InflatedEdge":
        return cls(id=f"{source}:{target}", source=source, target=target, type=edge_type)


class InflatedGraph(_InflatedModel):
    nodes: list[InflatedNode] = Field(default_factory=list)
    edges: list[InflatedEdge] = Field(default_factory=list)

    def to_dict(self) -> dict[str, Any]:
        return self.model_dump(mode="json", by_alias=True, exclude_none=True)
