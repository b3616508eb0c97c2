"""Tests for configuration loading, options and plan validation."""

from pathlib import Path

import pytest
import yaml

from iterdeploy.config.options import DeploymentOptions
from iterdeploy.config.validation import (
    build_steps, check_steps, validate_against_schema, validate_plan,
)
from iterdeploy.deployment.utils import (
    deep_merge, get_bucket_key, get_http_url, load_config, prefixed_token,
)

EXAMPLE_PLAN = Path(__file__).parent.parent / "plans" / "example-plan.yaml"


def operation(stack="api-stack", template="current/template.json", **extra):
    data = {'stack_name': stack, 'template': template}
    data.update(extra)
    return data


def plan(*steps, **extra):
    data = {'bucket': 'deploy-bucket', 'region': 'us-east-1', 'steps': list(steps)}
    data.update(extra)
    return data


# ── Config Loading Tests ─────────────────────────────────────────────


class TestLoadConfig:
    def write(self, tmp_path, name, data):
        path = tmp_path / name
        path.write_text(yaml.safe_dump(data))
        return path

    def test_missing_file_is_empty(self, tmp_path):
        assert load_config(tmp_path / "missing.yaml") == {}

    def test_loads_base(self, tmp_path, monkeypatch):
        monkeypatch.delenv('DEPLOYMENT_ENV', raising=False)
        path = self.write(tmp_path, "deployment-config.yaml", {'aws': {'region': 'us-east-1'}})
        self.write(tmp_path, "deployment-config.local.yaml", {'aws': {'region': 'eu-west-1'}})
        assert load_config(path) == {'aws': {'region': 'us-east-1'}}

    def test_local_override_merges(self, tmp_path, monkeypatch):
        monkeypatch.setenv('DEPLOYMENT_ENV', 'local')
        path = self.write(tmp_path, "deployment-config.yaml", {
            'deployment': {'storage_backend': 's3', 'state_key': 'state.yaml'},
            'options': {'throttle_delay': 1.0},
        })
        self.write(tmp_path, "deployment-config.local.yaml", {'deployment': {'storage_backend': 'local'}})

        config = load_config(path)
        assert config['deployment'] == {'storage_backend': 'local', 'state_key': 'state.yaml'}
        assert config['options'] == {'throttle_delay': 1.0}

    def test_deep_merge_does_not_mutate(self):
        base = {'a': {'b': 1}}
        merged = deep_merge(base, {'a': {'c': 2}})
        assert merged == {'a': {'b': 1, 'c': 2}}
        assert base == {'a': {'b': 1}}


class TestDeploymentOptions:
    def test_defaults(self):
        options = DeploymentOptions.from_config({})
        assert options.throttle_delay == 1.0
        assert options.stability_poll_delay == 30
        assert options.readiness_timeout == 1800.0

    def test_from_config(self):
        options = DeploymentOptions.from_config({'options': {'throttle_delay': 0.2, 'preflight_workers': 2}})
        assert options.throttle_delay == 0.2
        assert options.preflight_workers == 2

    def test_unknown_option_rejected(self):
        with pytest.raises(ValueError, match="throttle"):
            DeploymentOptions.from_config({'options': {'throttle': 1}})


class TestTemplateLocations:
    def test_bucket_key(self):
        assert get_bucket_key("iterative/1/t.json", "b1") == "iterative/1/t.json"
        assert get_bucket_key("https://s3.amazonaws.com/b1/iterative/1/t.json", "b1") == "iterative/1/t.json"

    def test_http_url(self):
        assert get_http_url("iterative/1/t.json", "b1") == "https://s3.amazonaws.com/b1/iterative/1/t.json"
        assert get_http_url("https://example.com/t.json", "b1") == "https://example.com/t.json"

    def test_prefixed_token(self):
        assert prefixed_token("abc", "rollback") == "rollback-abc"
        assert prefixed_token(None, "deploy") is None


# ── Plan Validation Tests ────────────────────────────────────────────


class TestPlanSchema:
    def test_valid_plan(self):
        is_valid, errors = validate_against_schema(plan({'forward': operation(), 'backward': operation()}))
        assert is_valid, errors

    def test_missing_backward(self):
        is_valid, errors = validate_against_schema(plan({'forward': operation()}))
        assert not is_valid
        assert any("'backward' is a required property" in e for e in errors)

    def test_empty_steps(self):
        is_valid, _ = validate_against_schema(plan())
        assert not is_valid

    def test_unknown_capability(self):
        step = {'forward': operation(capabilities=['CAPABILITY_ROOT']), 'backward': operation()}
        is_valid, errors = validate_against_schema(plan(step))
        assert not is_valid
        assert "steps -> 0 -> forward -> capabilities -> 0" in errors[0]

    def test_unknown_field(self):
        step = {'forward': operation(), 'backward': operation(), 'retries': 3}
        is_valid, _ = validate_against_schema(plan(step))
        assert not is_valid


class TestCheckSteps:
    def test_backward_stack_must_match(self):
        step = {'name': 'swap', 'forward': operation(stack='api'), 'backward': operation(stack='auth')}
        errors = check_steps(plan(step))
        assert errors == ["swap: backward stack 'auth' differs from forward stack 'api'"]

    def test_tokens_unique(self):
        step_1 = {'forward': operation(client_request_token='t1'), 'backward': operation()}
        step_2 = {'forward': operation(client_request_token='t1'), 'backward': operation()}
        errors = check_steps(plan(step_1, step_2))
        assert len(errors) == 1
        assert "step 1" in errors[0]


class TestValidatePlan:
    def test_example_plan_is_valid(self):
        is_valid, errors = validate_plan(EXAMPLE_PLAN)
        assert is_valid, errors

    def test_missing_file(self, tmp_path):
        is_valid, errors = validate_plan(tmp_path / "none.yaml")
        assert not is_valid
        assert errors[0].startswith("File not found")

    def test_yaml_error(self, tmp_path):
        path = tmp_path / "plan.yaml"
        path.write_text("steps: [unclosed")
        is_valid, errors = validate_plan(path)
        assert not is_valid
        assert errors[0].startswith("YAML syntax error")

    def test_empty_file(self, tmp_path):
        path = tmp_path / "plan.yaml"
        path.write_text("")
        assert validate_plan(path) == (False, ["Plan file is empty"])


class TestBuildSteps:
    def test_builds_operations(self):
        data = plan({
            'forward': operation(
                template='iterative/1/template.json',
                parameters={'env': 'dev', 'shards': 2, 'enabled': True},
                capabilities=['CAPABILITY_IAM'],
                client_request_token='t1',
                table_names=['Todo-dev'],
            ),
            'backward': operation(parameters={'enabled': False}),
        })
        step = build_steps(data)[0]
        assert step.forward.template_path == 'iterative/1/template.json'
        assert dict(step.forward.parameters) == {'env': 'dev', 'shards': '2', 'enabled': 'true'}
        assert step.forward.capabilities == ('CAPABILITY_IAM',)
        assert step.forward.table_names == frozenset({'Todo-dev'})
        assert step.forward.client_request_token == 't1'
        assert dict(step.backward.parameters) == {'enabled': 'false'}
        assert step.backward.table_names == frozenset()
