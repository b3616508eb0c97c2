#!/usr/bin/env python3
"""
Deployment Plan Validation
Validates plan files for schema compliance and step consistency, and
turns a valid plan into deployment steps.
"""

import json
from pathlib import Path

import jsonschema
import yaml

from ..deployment.models import DeploymentStep, StepOperation

SCHEMA_FILE = Path(__file__).parent / 'schemas' / 'deployment-plan-schema.json'


def load_yaml(file_path):
    """Load YAML file safely."""
    try:
        with open(file_path, 'r') as f:
            return yaml.safe_load(f), None
    except yaml.YAMLError as e:
        return None, str(e)
    except OSError as e:
        return None, str(e)


def load_schema():
    with open(SCHEMA_FILE, 'r') as f:
        return json.load(f)


def validate_against_schema(plan):
    """
    Validate plan against the JSON schema.
    Returns (is_valid, errors_list)
    """
    validator = jsonschema.Draft7Validator(load_schema())
    errors = []
    for error in sorted(validator.iter_errors(plan), key=lambda e: list(e.path)):
        error_path = ' -> '.join(str(p) for p in error.path) if error.path else 'root'
        errors.append(f"Schema validation failed at '{error_path}': {error.message}")
    return len(errors) == 0, errors


def check_steps(plan):
    """Consistency rules the schema can't express. Returns list of errors."""
    errors = []
    previous_tokens = set()

    for i, step in enumerate(plan.get('steps', [])):
        label = step.get('name', f"step {i}")
        forward = step['forward']
        backward = step['backward']

        # RULE 1: Rollback redeploys the same stack
        if forward['stack_name'] != backward['stack_name']:
            errors.append(
                f"{label}: backward stack '{backward['stack_name']}' differs from "
                f"forward stack '{forward['stack_name']}'"
            )

        # RULE 2: Client request tokens must be unique across the plan
        for operation in (forward, backward):
            token = operation.get('client_request_token')
            if token and token in previous_tokens:
                errors.append(f"{label}: client_request_token '{token}' is used more than once")
            elif token:
                previous_tokens.add(token)

    return errors


def validate_plan(plan_file):
    """
    Validate a deployment plan file.
    Uses JSON schema validation + step consistency rules.
    """
    plan_path = Path(plan_file)

    if not plan_path.exists():
        return False, [f"File not found: {plan_file}"]

    plan, err = load_yaml(plan_path)
    if err:
        return False, [f"YAML syntax error: {err}"]

    if not plan:
        return False, ["Plan file is empty"]

    # STEP 1: Validate against JSON schema
    is_valid, schema_errors = validate_against_schema(plan)
    if not is_valid:
        return False, schema_errors

    # STEP 2: Apply step rules
    errors = check_steps(plan)
    return len(errors) == 0, errors


def build_operation(data):
    return StepOperation(
        stack_name=data['stack_name'],
        template_path=data['template'],
        parameters={k: _parameter_value(v) for k, v in (data.get('parameters') or {}).items()},
        capabilities=data.get('capabilities') or (),
        client_request_token=data.get('client_request_token'),
        table_names=data.get('table_names') or (),
    )


def _parameter_value(value):
    # YAML booleans become CloudFormation's lowercase strings
    if isinstance(value, bool):
        return 'true' if value else 'false'
    return str(value)


def build_steps(plan):
    return [
        DeploymentStep(forward=build_operation(step['forward']), backward=build_operation(step['backward']))
        for step in plan['steps']
    ]
