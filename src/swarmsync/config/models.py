# Copyright 2026 Kezie Iwueke
# SPDX-License-Identifier: Apache-2.0

# src/swarmsync/config/models.py
from __future__ import annotations

from typing import Any, Dict, FrozenSet, List, Literal, Optional, Tuple

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator, model_validator

ROLE_MANAGER = "manager"
ROLE_WORKER = "worker"

MACHINE_ID_LABEL = "machine.id"
MACHINE_ROLE_LABEL = "machine.role"
IDENTITY_LABEL_KEYS: FrozenSet[str] = frozenset({MACHINE_ID_LABEL, MACHINE_ROLE_LABEL})


def parse_label(label: str) -> Tuple[str, str]:
    """Split a ``key=value`` label. The value may be empty or contain '='."""
    key, sep, value = label.partition("=")
    key = key.strip()
    if not sep or not key:
        raise ValueError(f"label '{label}' must be in key=value form")
    return key, value.strip()


def _label_value(value: Any) -> str:
    # YAML mapping values arrive typed; docker compares label text
    if value is None:
        return ""
    if isinstance(value, bool):
        return "true" if value else "false"
    return str(value)


def format_label(key: str, value: Any) -> str:
    return f"{key}={_label_value(value)}"


class Machine(BaseModel):
    """
    Desired state of one machine in the topology file.
    """

    model_config = ConfigDict(frozen=True, extra="ignore")

    id: str
    host: str = Field(validation_alias=AliasChoices("host", "ip"))
    user: str = Field(validation_alias=AliasChoices("user", "ssh_user"))
    role: Literal["manager", "worker"] = ROLE_WORKER
    labels: FrozenSet[str] = Field(default_factory=frozenset)

    @field_validator("id", "host", "user")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        value = value.strip()
        if not value:
            raise ValueError("must not be empty")
        return value

    @field_validator("role", mode="before")
    @classmethod
    def _normalise_role(cls, value: Any) -> Any:
        if value is None:
            return ROLE_WORKER
        if isinstance(value, str):
            return value.strip().lower()
        return value

    @field_validator("labels", mode="before")
    @classmethod
    def _normalise_labels(cls, value: Any) -> Any:
        # labels may be a list of key=value strings or a key: value mapping
        if value is None:
            return frozenset()
        if isinstance(value, dict):
            value = [format_label(k, v) for k, v in value.items()]
        if isinstance(value, str):
            value = [value]
        if not isinstance(value, (list, tuple, set, frozenset)):
            raise ValueError("labels must be a list of key=value strings")

        seen: Dict[str, str] = {}
        out = set()
        for raw in value:
            key, val = parse_label(str(raw))
            if key in IDENTITY_LABEL_KEYS:
                raise ValueError(f"label key '{key}' is reserved")
            if key in seen and seen[key] != val:
                raise ValueError(f"label key '{key}' is set twice ({seen[key]!r}, {val!r})")
            seen[key] = val
            out.add(format_label(key, val))
        return frozenset(out)

    @property
    def user_host(self) -> str:
        return f"{self.user}@{self.host}"

    @property
    def is_manager(self) -> bool:
        return self.role == ROLE_MANAGER

    @property
    def identity_labels(self) -> FrozenSet[str]:
        return frozenset(
            {
                format_label(MACHINE_ID_LABEL, self.id),
                format_label(MACHINE_ROLE_LABEL, self.role),
            }
        )

    @property
    def desired_labels(self) -> FrozenSet[str]:
        return self.identity_labels | self.labels

    def custom_label_map(self) -> Dict[str, str]:
        return dict(parse_label(label) for label in sorted(self.labels))


class DesiredTopology(BaseModel):
    """
    All machines from the topology file, in file order.

    Exactly one machine must be the manager; multi-manager HA is not supported.
    """

    model_config = ConfigDict(frozen=True)

    machines: Tuple[Machine, ...]

    @model_validator(mode="after")
    def _check_machines(self) -> "DesiredTopology":
        if not self.machines:
            raise ValueError("topology must declare at least one machine")

        ids = [m.id for m in self.machines]
        dupes = sorted({i for i in ids if ids.count(i) > 1})
        if dupes:
            raise ValueError(f"duplicate machine ids: {', '.join(dupes)}")

        managers = [m.id for m in self.machines if m.is_manager]
        if not managers:
            raise ValueError("no machine has role 'manager'")
        if len(managers) > 1:
            raise ValueError(
                f"exactly one manager is supported, found {len(managers)}: {', '.join(managers)}"
            )
        return self

    @classmethod
    def from_config(cls, machines: Any) -> "DesiredTopology":
        """
        Build a topology from the ``machines`` section of the topology file.

        The section is normally a mapping of machine id to settings; a list of
        entries carrying their own ``id`` (or ``name``) is accepted too.
        """
        entries: List[Any] = []
        if isinstance(machines, dict):
            for machine_id, spec in machines.items():
                if spec is None:
                    spec = {}
                entries.append({"id": str(machine_id), **spec} if isinstance(spec, dict) else spec)
        elif isinstance(machines, list):
            for spec in machines:
                if isinstance(spec, dict) and "id" not in spec:
                    ident = spec.get("name") or spec.get("host") or spec.get("ip")
                    spec = {"id": ident, **spec}
                entries.append(spec)
        else:
            entries = machines
        return cls.model_validate({"machines": entries})

    @property
    def manager(self) -> Machine:
        return next(m for m in self.machines if m.is_manager)

    @property
    def workers(self) -> List[Machine]:
        return [m for m in self.machines if not m.is_manager]

    @property
    def ids(self) -> List[str]:
        return [m.id for m in self.machines]

    def get(self, machine_id: str) -> Optional[Machine]:
        return next((m for m in self.machines if m.id == machine_id), None)
