"""Tests for AppRegistry building and lookup."""

import dataclasses
from pathlib import Path

import pytest

from deployhook.errors import AppNotFoundError, ConfigError, EnvironmentNotFoundError
from deployhook.registry import AppRegistry
from deployhook.schemas import AppEnvironmentDefinition, DeploymentStep


@pytest.fixture
def apps():
    return {
        "shop": {
            "production": {
                "path": "/srv/shop",
                "steps": [
                    {"name": "Pull", "command": "git pull"},
                    {"command": "npm ci"},
                    "systemctl restart shop",
                ],
            },
            "staging": {
                "path": "/srv/shop-staging",
                "steps": [{"name": "Pull", "command": "git pull"}],
            },
        },
        "api": {
            "production": {"path": "/srv/api", "steps": [{"command": "make deploy"}]},
        },
    }


class TestBuildRegistry:

    def test_from_dict(self, apps):
        registry = AppRegistry.from_dict(apps)

        assert registry.list_apps() == ["api", "shop"]
        assert registry.list_envs("shop") == ["production", "staging"]
        assert len(registry) == 2

    def test_steps_keep_order_and_default_names(self, apps):
        definition = AppRegistry.from_dict(apps).lookup("shop", "production")

        assert definition.working_directory == Path("/srv/shop")
        assert definition.steps == (
            DeploymentStep(name="Pull", command="git pull"),
            DeploymentStep(name="Step 2", command="npm ci"),
            DeploymentStep(name="Step 3", command="systemctl restart shop"),
        )

    def test_empty_apps(self):
        assert len(AppRegistry.from_dict(None)) == 0
        assert len(AppRegistry.from_dict({})) == 0

    def test_items(self, apps):
        pairs = [(app, env) for app, env, _ in AppRegistry.from_dict(apps).items()]
        assert pairs == [("api", "production"), ("shop", "production"), ("shop", "staging")]


class TestLookup:

    def test_lookup_unknown_returns_none(self, apps):
        registry = AppRegistry.from_dict(apps)
        assert registry.lookup("ghost", "production") is None
        assert registry.lookup("shop", "qa") is None

    def test_resolve_unknown_app(self, apps):
        with pytest.raises(AppNotFoundError) as exc_info:
            AppRegistry.from_dict(apps).resolve("ghost", "production")
        assert exc_info.value.available == ["api", "shop"]

    def test_resolve_unknown_env(self, apps):
        with pytest.raises(EnvironmentNotFoundError) as exc_info:
            AppRegistry.from_dict(apps).resolve("shop", "qa")
        assert exc_info.value.available == ["production", "staging"]

    def test_definitions_are_immutable(self, apps):
        definition = AppRegistry.from_dict(apps).lookup("api", "production")
        with pytest.raises(dataclasses.FrozenInstanceError):
            definition.working_directory = Path("/tmp")


class TestValidation:

    @pytest.mark.parametrize("env_data, message", [
        ({"steps": [{"command": "x"}]}, "Missing 'path' for shop.production"),
        ({"path": "/srv"}, "Missing or invalid 'steps' for shop.production"),
        ({"path": "/srv", "steps": "make"}, "Missing or invalid 'steps' for shop.production"),
        ({"path": "/srv", "steps": []}, "No steps defined for shop.production"),
        ({"path": "/srv", "steps": [{"name": "no command"}]}, "Step 1 of shop.production has no 'command'"),
        ("just a string", "Invalid definition for shop.production"),
    ])
    def test_invalid_environment(self, env_data, message):
        with pytest.raises(ConfigError, match=message):
            AppRegistry.from_dict({"shop": {"production": env_data}})

    def test_app_without_environments(self):
        with pytest.raises(ConfigError, match="defines no environments"):
            AppRegistry.from_dict({"shop": {}})

    @pytest.mark.parametrize("name", ["shop:v2", "my shop"])
    def test_invalid_app_name(self, name):
        with pytest.raises(ConfigError, match="Invalid app name"):
            AppRegistry.from_dict({name: {"production": {"path": "/srv", "steps": ["x"]}}})

    def test_invalid_env_name(self):
        with pytest.raises(ConfigError, match="Invalid environment name"):
            AppRegistry.from_dict({"shop": {"prod:eu": {"path": "/srv", "steps": ["x"]}}})

    def test_apps_must_be_mapping(self):
        with pytest.raises(ConfigError):
            AppRegistry.from_dict(["shop"])

    def test_definition_requires_steps(self):
        with pytest.raises(ValueError):
            AppEnvironmentDefinition(working_directory=Path("/srv"), steps=())
