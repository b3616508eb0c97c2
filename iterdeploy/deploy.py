#!/usr/bin/env python3
"""
Iterative Deployment CLI
Validates deployment plans and runs them against CloudFormation with automatic rollback.
"""

import argparse
import logging
import sys

from .config.options import DeploymentOptions
from .config.validation import build_steps, load_yaml, validate_plan
from .deployment.errors import (
    DeploymentError, DeploymentFailed, DeploymentRolledBack, PreflightArtifactMissing,
)
from .deployment.orchestrator import DeploymentOrchestrator
from .deployment.progress import ConsoleProgressPrinter
from .deployment.state_manager import DEFAULT_STATE_KEY, DeploymentStateManager
from .deployment.utils import load_config
from .storage import get_storage_backend

EXIT_ROLLED_BACK = 1
EXIT_FAILED = 2


def _print_phase(phase_name):
    """Helper to print phase headers."""
    print(f"\n{'='*60}")
    print(phase_name)
    print(f"{'='*60}")


def _configure_logging(verbose):
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )


def _state_manager(config):
    deployment = config.get('deployment') or {}
    storage = get_storage_backend(config)
    return DeploymentStateManager(storage, deployment.get('state_key', DEFAULT_STATE_KEY))


def validate_command(plan_file):
    """Validate a plan file and exit on failure."""
    print("\n=== VALIDATING DEPLOYMENT PLAN ===")
    is_valid, errors = validate_plan(plan_file)
    if not is_valid:
        print("Plan validation failed:")
        for error in errors:
            print(f"  - {error}")
        sys.exit(1)
    print("[OK] Plan validation successful\n")
    plan, _ = load_yaml(plan_file)
    return plan


def status_command(config_file):
    """Print the persisted deployment state."""
    config = load_config(config_file)
    manager = _state_manager(config)
    state = manager.get_state()

    _print_phase("DEPLOYMENT STATE")
    print(f"Location: {manager.storage.describe(manager.state_key)}")
    print(f"Status:   {state['status']}")
    if state.get('started_at'):
        print(f"Started:  {state['started_at']}")
    if state.get('finished_at'):
        print(f"Finished: {state['finished_at']}")
    for i, step in enumerate(state.get('steps', [])):
        marker = '>' if i == state.get('current_step_index') and manager.is_deployment_in_progress() else ' '
        print(f" {marker} step {i}: {step['status']}")
    return state


def deploy_command(plan_file, config_file):
    """Validate, pre-flight, deploy and, on failure, roll back every step of the plan."""
    plan = validate_command(plan_file)
    config = load_config(config_file)
    options = DeploymentOptions.from_config(config)
    aws = config.get('aws') or {}
    manager = _state_manager(config)

    if manager.is_deployment_in_progress():
        print("ERROR: A deployment is already in progress")
        print(f"Check {manager.storage.describe(manager.state_key)} before starting another one")
        sys.exit(1)

    steps = build_steps(plan)
    _print_phase(f"DEPLOYMENT ({len(steps)} STEPS)")
    print(f"Bucket: {plan['bucket']}, Region: {plan.get('region') or aws.get('region') or 'default'}")

    try:
        orchestrator = DeploymentOrchestrator.create_instance(
            plan['bucket'],
            region=plan.get('region') or aws.get('region'),
            profile=aws.get('profile'),
            options=options,
        )
        for step in steps:
            orchestrator.add_step(step)
        outcome = orchestrator.run(ConsoleProgressPrinter(), manager)
    except PreflightArtifactMissing as e:
        print(f"ERROR: {e}")
        print("Nothing was deployed")
        sys.exit(1)
    except DeploymentRolledBack as e:
        print(f"ERROR: {e.error}")
        print("All stacks were restored to their previous templates")
        sys.exit(EXIT_ROLLED_BACK)
    except DeploymentFailed as e:
        print(f"ERROR: {e.error}")
        print(f"ERROR: Rollback failed: {e.rollback_error}")
        print("Stacks are in an indeterminate state, manual intervention is required")
        sys.exit(EXIT_FAILED)
    except DeploymentError as e:
        print(f"ERROR: {e}")
        sys.exit(1)

    print("=" * 60)
    print(f"DEPLOYMENT COMPLETE ({outcome.steps} STEPS)")
    print("=" * 60)
    return outcome


def main(argv=None):
    """Main entry point - parse command line and run the command."""
    parser = argparse.ArgumentParser(
        description='Iterative CloudFormation deployment with automatic rollback',
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Check a plan before deploying
  iterdeploy validate --plan plans/api-indexes.yaml

  # Deploy a plan, rolling back every step on failure
  iterdeploy deploy --plan plans/api-indexes.yaml

  # Show the persisted deployment state
  iterdeploy status --config config/deployment-config.yaml
        """
    )
    parser.add_argument('command', choices=['validate', 'deploy', 'status'], help='Command to run')
    parser.add_argument('--plan', help='Deployment plan file (e.g., plans/api-indexes.yaml)')
    parser.add_argument('--config', help='Config file (default: config/deployment-config.yaml)')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable debug logging')
    args = parser.parse_args(argv)

    if args.command in ['validate', 'deploy'] and not args.plan:
        parser.error(f"{args.command} requires --plan argument")

    _configure_logging(args.verbose)

    if args.command == 'validate':
        validate_command(args.plan)
    elif args.command == 'deploy':
        deploy_command(args.plan, args.config)
    elif args.command == 'status':
        status_command(args.config)


if __name__ == '__main__':
    main()
