#!/usr/bin/env python3
"""CLI entry point for maas-deployer.

Commands:
- deploy: Run the full deployment sequence (default)
- status: Print component and policy status only

Exit code is 1 only when the run aborts (not an OpenShift cluster, or the
cluster domain cannot be resolved) or on invalid arguments/configuration.
Stages that do not converge are reported and the run continues.
"""

import argparse
import json
import logging
import subprocess
import sys
from pathlib import Path

from actions.status import collect_status, format_status
from config import ConfigError, load_config
from sequencer import DeployContext, FailurePolicy, Sequencer, stage_names
from stages import build_stages

COMMANDS = {
    "deploy": "Deploy the MaaS platform (default)",
    "status": "Show component and policy status",
}

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format='%(asctime)s [%(levelname)s] %(message)s',
    datefmt='%Y-%m-%d %H:%M:%S'
)
logger = logging.getLogger(__name__)


def get_version():
    """Get version from git tags."""
    try:
        result = subprocess.run(
            ['git', 'describe', '--tags', '--abbrev=0'],
            capture_output=True, text=True,
            cwd=Path(__file__).parent,
            check=False,
        )
        return result.stdout.strip() if result.returncode == 0 else 'dev'
    except Exception:
        return 'dev'


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        description='MaaS platform deployer - applies manifests in order and waits for operators to converge'
    )
    parser.add_argument(
        'command',
        nargs='?',
        default='deploy',
        choices=list(COMMANDS),
        help='; '.join(f"{name}: {desc}" for name, desc in COMMANDS.items())
    )
    parser.add_argument(
        '--version',
        action='version',
        version=f'maas-deployer {get_version()}'
    )
    parser.add_argument(
        '--config', '-c',
        type=Path,
        help='YAML file overriding stage parameters (default: <project-root>/deploy.yaml if present)'
    )
    parser.add_argument(
        '--project-root', '-p',
        type=Path,
        help='Repository root holding deployment/ manifests (default: current directory)'
    )
    parser.add_argument(
        '--skip', '-s',
        action='append',
        default=[],
        help='Stages to skip (can be repeated)'
    )
    parser.add_argument(
        '--list-stages',
        action='store_true',
        help='List stages and exit'
    )
    parser.add_argument(
        '--dry-run',
        action='store_true',
        help='Show what would be executed without running actions'
    )
    parser.add_argument(
        '--verbose', '-v',
        action='store_true',
        help='Enable verbose logging'
    )
    parser.add_argument(
        '--json-output',
        action='store_true',
        help='Output structured JSON to stdout (logs go to stderr)'
    )
    return parser


def _log_to_stderr():
    """Route logging to stderr so stdout carries only JSON."""
    root_logger = logging.getLogger()
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    stderr_handler = logging.StreamHandler(sys.stderr)
    stderr_handler.setFormatter(logging.Formatter(
        '%(asctime)s [%(levelname)s] %(message)s',
        datefmt='%Y-%m-%d %H:%M:%S'
    ))
    root_logger.addHandler(stderr_handler)


def print_next_steps(domain: str):
    """Print post-deployment pointers."""
    host = f"maas.{domain}" if domain else "maas.<cluster-domain>"
    print("")
    print("Next Steps:")
    print("  1. Deploy a sample model:")
    print("     kustomize build docs/samples/models/simulator | kubectl apply -f -")
    print(f"  2. Gateway endpoint: https://{host}")
    print("  3. Get a token:")
    print(f"     curl -sSk -H \"Authorization: Bearer $(oc whoami -t)\" -X POST "
          f"-d '{{\"expiration\": \"10m\"}}' https://{host}/maas-api/v1/tokens")
    print("  4. If policies are not enforced, restart the Kuadrant operators:")
    print("     kubectl rollout restart deployment/kuadrant-operator-controller-manager -n kuadrant-system")
    print("  5. Re-run validation: ./deployment/scripts/validate-deployment.sh")


def main(argv=None):
    """CLI entry point."""
    args = build_parser().parse_args(argv)

    if args.json_output:
        _log_to_stderr()
    if args.verbose:
        logging.getLogger().setLevel(logging.DEBUG)

    try:
        config = load_config(args.config, project_root=args.project_root)
    except ConfigError as e:
        print(f"Error: {e}")
        return 1

    if args.command == 'status':
        status = collect_status(config)
        if args.json_output:
            print(json.dumps(status, indent=2))
        else:
            print(format_status(status))
        return 0

    stages = build_stages(config)
    names = stage_names(stages)

    if args.list_stages:
        print("Deployment stages:")
        for stage in stages:
            print(f"  {stage.name:20} [{stage.policy.value}] {stage.description}")
        return 0

    unknown = [name for name in args.skip if name not in names]
    if unknown:
        print(f"Error: Unknown stage(s): {', '.join(unknown)}")
        print(f"Available stages: {', '.join(names)}")
        return 1

    required = [s.name for s in stages if s.policy is FailurePolicy.ABORT and s.name in args.skip]
    if required:
        print(f"Error: Cannot skip required stage(s): {', '.join(required)}")
        return 1

    context = DeployContext()
    sequencer = Sequencer(stages, config, skip_stages=args.skip, dry_run=args.dry_run, context=context)
    outcome = sequencer.run()

    if args.dry_run:
        return 0

    if args.json_output:
        print(json.dumps(outcome.to_dict(), indent=2))
        return outcome.exit_code

    print("")
    print("=========================================")
    print('\n'.join(outcome.summary_lines()))
    print("=========================================")
    if not outcome.aborted:
        if outcome.status:
            print("")
            print(format_status(outcome.status))
        print_next_steps(context.cluster_domain)
    return outcome.exit_code


if __name__ == '__main__':
    sys.exit(main())
