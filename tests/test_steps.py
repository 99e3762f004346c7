"""Tests for step parsing, scenario definitions, and test data."""

import pytest

from perfcompare.errors import ConfigurationError
from perfcompare.steps import (
    ClickStep,
    CustomStep,
    FillStep,
    NavigateStep,
    TestDataContext,
    WaitStep,
    parse_step,
    scenario_from_dict,
)


class TestParseStep:
    def test_navigate(self):
        step = parse_step({"action": "navigate", "url": "/login", "timeout": 5000})
        assert step == NavigateStep(url="/login", timeout=5000)

    def test_click(self):
        assert parse_step({"action": "click", "selector": "#go"}) == ClickStep(selector="#go")

    def test_fill_allows_empty_value(self):
        step = parse_step({"action": "fill", "selector": "#q", "value": ""})
        assert isinstance(step, FillStep)
        assert step.value == ""

    def test_fill_stringifies_scalars(self):
        assert parse_step({"action": "fill", "selector": "#n", "value": 42}).value == "42"

    def test_wait_without_selector(self):
        assert parse_step({"action": "wait", "timeout": 2000}) == WaitStep(timeout=2000)

    def test_custom(self):
        step = parse_step({"action": "custom", "customFunction": "upload-test-file"})
        assert step == CustomStep(custom_function="upload-test-file")

    def test_unknown_action_is_dropped(self):
        assert parse_step({"action": "hover", "selector": "#x"}) is None

    @pytest.mark.parametrize("raw", [
        {"action": "click"},
        {"action": "fill", "selector": "#a"},
        {"action": "fill", "value": "x"},
        {"action": "custom"},
    ])
    def test_missing_required_field(self, raw):
        with pytest.raises(ConfigurationError):
            parse_step(raw)

    def test_non_numeric_timeout(self):
        with pytest.raises(ConfigurationError, match="timeout"):
            parse_step({"action": "wait", "timeout": "soon"})

    def test_not_a_mapping(self):
        with pytest.raises(ConfigurationError):
            parse_step(["navigate"])

    def test_steps_are_immutable(self):
        step = ClickStep(selector="#go")
        with pytest.raises(AttributeError):
            step.selector = "#other"


class TestScenarioFromDict:
    def test_builds_ordered_steps(self):
        scenario = scenario_from_dict({
            "name": "login",
            "description": "Sign in",
            "steps": [
                {"action": "navigate", "url": "/login"},
                {"action": "hover", "selector": "#ignored"},
                {"action": "click", "selector": "#submit"},
            ],
            "expectedMetrics": {"lcp": 2000},
        })
        assert scenario.name == "login"
        assert [s.action for s in scenario.steps] == ["navigate", "click"]
        assert scenario.expected_metrics == {"lcp": 2000}

    def test_error_names_scenario_and_step(self):
        with pytest.raises(ConfigurationError, match=r"scenario 'broken', step 2"):
            scenario_from_dict({
                "name": "broken",
                "steps": [{"action": "navigate", "url": "/"}, {"action": "click"}],
            })

    def test_requires_name(self):
        with pytest.raises(ConfigurationError):
            scenario_from_dict({"steps": []})

    def test_steps_must_be_a_list(self):
        with pytest.raises(ConfigurationError, match="'steps' must be a list"):
            scenario_from_dict({"name": "x", "steps": {"action": "navigate"}})

    def test_login_needed_except_for_login_scenario(self):
        assert scenario_from_dict({"name": "dashboard", "steps": []}).needs_login is True
        assert scenario_from_dict({"name": "login", "steps": []}).needs_login is False

    def test_requires_login_flag_wins(self):
        assert scenario_from_dict({"name": "login", "requiresLogin": True}).needs_login is True
        assert scenario_from_dict({"name": "signup", "requiresLogin": False}).needs_login is False

    def test_requires_login_must_be_boolean(self):
        with pytest.raises(ConfigurationError, match="'requiresLogin' must be true or false"):
            scenario_from_dict({"name": "x", "requiresLogin": "yes"})


class TestTestDataContext:
    def test_default_user_pool(self):
        ctx = TestDataContext()
        assert [u.username for u in ctx.users] == ["testuser@example.com"]
        assert ctx.users[0].password == "testpass"

    def test_users_from_dict(self):
        ctx = TestDataContext.from_dict({"users": [{"username": "a@x.io", "password": "pw"}]})
        assert ctx.users[0].username == "a@x.io"
        assert ctx.users[0].password == "pw"

    def test_empty_user_list_falls_back_to_default(self):
        assert TestDataContext.from_dict({"users": []}).users[0].username == "testuser@example.com"

    def test_lookup_dotted_path(self):
        ctx = TestDataContext.from_dict({"formData": {"basic": {"title": "Hello"}}})
        assert ctx.lookup("formData.basic.title") == "Hello"
        assert ctx.lookup("formData.basic") == {"title": "Hello"}

    def test_lookup_missing_returns_none(self):
        ctx = TestDataContext.from_dict({"formData": {"basic": {}}})
        assert ctx.lookup("formData.basic.title") is None
        assert ctx.lookup("nothing.here") is None

    def test_malformed_user_entry(self):
        with pytest.raises(ConfigurationError):
            TestDataContext.from_dict({"users": ["not-a-mapping"]})
