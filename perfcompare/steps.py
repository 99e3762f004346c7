"""Scenario scripts: typed steps, scenario definitions, and test data."""

import logging
from dataclasses import dataclass, field
from typing import Any, List, Optional, Union

from perfcompare.errors import ConfigurationError
from perfcompare.models import UserCredentials

logger = logging.getLogger(__name__)

DEFAULT_USERS = (UserCredentials(username="testuser@example.com", password="testpass"),)


@dataclass(frozen=True)
class NavigateStep:
    url: str = ""
    timeout: Optional[int] = None

    action = "navigate"


@dataclass(frozen=True)
class ClickStep:
    selector: Optional[str] = None
    timeout: Optional[int] = None

    action = "click"

    def __post_init__(self):
        if not self.selector:
            raise ConfigurationError("click step requires a selector")


@dataclass(frozen=True)
class FillStep:
    selector: Optional[str] = None
    value: Optional[str] = None
    timeout: Optional[int] = None

    action = "fill"

    def __post_init__(self):
        # An empty string is a valid value; only a missing one is rejected.
        if not self.selector or self.value is None:
            raise ConfigurationError("fill step requires a selector and a value")


@dataclass(frozen=True)
class WaitStep:
    selector: Optional[str] = None
    timeout: Optional[int] = None

    action = "wait"


@dataclass(frozen=True)
class CustomStep:
    custom_function: Optional[str] = None
    timeout: Optional[int] = None

    action = "custom"

    def __post_init__(self):
        if not self.custom_function:
            raise ConfigurationError("custom step requires a customFunction")


Step = Union[NavigateStep, ClickStep, FillStep, WaitStep, CustomStep]


@dataclass(frozen=True)
class ScenarioDefinition:
    name: str
    description: str = ""
    steps: List[Step] = field(default_factory=list)
    expected_metrics: dict = field(default_factory=dict)
    # None means every scenario except one named "login".
    requires_login: Optional[bool] = None

    @property
    def needs_login(self) -> bool:
        if self.requires_login is not None:
            return self.requires_login
        return self.name != "login"


class TestDataContext:
    """Read-only nested test data plus a pool of login credentials."""

    __test__ = False  # not a pytest test class

    def __init__(self, data: Optional[dict] = None, users: Optional[List[UserCredentials]] = None):
        self._data = dict(data or {})
        self._users = tuple(users) if users else DEFAULT_USERS

    @classmethod
    def from_dict(cls, raw: Optional[dict]) -> "TestDataContext":
        """Build a context from the ``testData`` block of a scenario file."""
        raw = raw or {}
        users = []
        for i, entry in enumerate(raw.get("users") or []):
            if not isinstance(entry, dict):
                raise ConfigurationError(f"testData.users[{i}] must be a mapping")
            users.append(UserCredentials(
                username=str(entry.get("username", "")),
                password=str(entry.get("password", "")),
            ))
        return cls(data=raw, users=users)

    @property
    def users(self):
        return self._users

    def lookup(self, path: str) -> Any:
        """Resolve a dotted path such as ``formData.basic.title``; None if absent."""
        value: Any = self._data
        for key in path.split("."):
            if not isinstance(value, dict) or key not in value:
                return None
            value = value[key]
        return value


def parse_step(raw: dict) -> Optional[Step]:
    """Build a typed step from one entry of a scenario's ``steps`` list.

    Args:
        raw: The step mapping as found in the scenario file.

    Returns:
        The typed step, or None when the action is not recognised.

    Raises:
        ConfigurationError: If the entry is not a mapping or is missing a
            field its action requires.
    """
    if not isinstance(raw, dict):
        raise ConfigurationError("each step must be a mapping")

    action = raw.get("action")
    timeout = raw.get("timeout")
    if timeout is not None and not isinstance(timeout, (int, float)):
        raise ConfigurationError(f"{action} step timeout must be a number")
    timeout = int(timeout) if timeout is not None else None

    if action == "navigate":
        return NavigateStep(url=raw.get("url") or "", timeout=timeout)
    if action == "click":
        return ClickStep(selector=raw.get("selector"), timeout=timeout)
    if action == "fill":
        value = raw.get("value")
        if value is not None and not isinstance(value, str):
            value = str(value)
        return FillStep(selector=raw.get("selector"), value=value, timeout=timeout)
    if action == "wait":
        return WaitStep(selector=raw.get("selector"), timeout=timeout)
    if action == "custom":
        return CustomStep(custom_function=raw.get("customFunction"), timeout=timeout)

    logger.warning("Unknown step action %r, skipping", action)
    return None


def scenario_from_dict(raw: dict) -> ScenarioDefinition:
    """Build a ScenarioDefinition, dropping steps with unknown actions."""
    name = raw.get("name")
    if not name or not isinstance(name, str):
        raise ConfigurationError("scenario 'name' is required and must be a string")

    raw_steps = raw.get("steps", [])
    if not isinstance(raw_steps, list):
        raise ConfigurationError(f"scenario '{name}': 'steps' must be a list")

    steps = []
    for i, entry in enumerate(raw_steps):
        try:
            step = parse_step(entry)
        except ConfigurationError as exc:
            raise ConfigurationError(f"scenario '{name}', step {i + 1}: {exc}") from exc
        if step is not None:
            steps.append(step)

    expected = raw.get("expectedMetrics") or {}
    if not isinstance(expected, dict):
        raise ConfigurationError(f"scenario '{name}': 'expectedMetrics' must be a mapping")

    requires_login = raw.get("requiresLogin")
    if requires_login is not None and not isinstance(requires_login, bool):
        raise ConfigurationError(f"scenario '{name}': 'requiresLogin' must be true or false")

    return ScenarioDefinition(
        name=name,
        description=str(raw.get("description", "")),
        steps=steps,
        expected_metrics=expected,
        requires_login=requires_login,
    )
