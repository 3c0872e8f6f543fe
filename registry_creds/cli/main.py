"""CLI entrypoint for registry-creds."""
import sys
import argparse
import logging
from pathlib import Path

import yaml

from .validators import validate_resource_name

VERSION = "0.1.0"

logging.basicConfig(
    level=logging.WARNING,
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    stream=sys.stderr
)
logger = logging.getLogger(__name__)


def _load_config(args):
    from registry_creds.pullsecrets.domains.config_loader import load_config

    config = load_config(args.config)
    level = "DEBUG" if args.verbose else config["logging"]["level"]
    logging.getLogger().setLevel(level)
    return config


def cmd_version(args):
    """Show version information."""
    print(f"registry-creds {VERSION}")


def cmd_run(args):
    """Start the operator and watch ClusterPullSecrets cluster-wide."""
    import kopf
    from registry_creds import operator  # noqa: F401  registers the handlers
    from registry_creds.pullsecrets.workflows.reconcile import ClusterPullSecretReconciler

    config = _load_config(args)
    memo = kopf.Memo(config=config, reconciler=ClusterPullSecretReconciler.from_config(config))

    kopf.run(
        clusterwide=True,
        standalone=args.standalone,
        liveness_endpoint=args.liveness,
        memo=memo,
    )


def cmd_reconcile(args):
    """Run a single convergence pass and print its outcome."""
    from registry_creds.pullsecrets.workflows.reconcile import ClusterPullSecretReconciler

    validate_resource_name(args.name)
    config = _load_config(args)
    reconciler = ClusterPullSecretReconciler.from_config(config)

    outcome = reconciler.reconcile(args.name)
    print(yaml.safe_dump(outcome.summary(), sort_keys=False), end="")

    if outcome.failed or outcome.skipped:
        sys.exit(1)


def cmd_credential_name(args):
    """Print the Secret name a ClusterPullSecret materializes as."""
    from registry_creds.pullsecrets.domains.models import credential_name

    validate_resource_name(args.name)
    config = _load_config(args)
    print(credential_name(args.name, config["credentials"]["name_suffix"]))


def cmd_config_show(args):
    """Show which config file is used and the effective values."""
    from registry_creds.pullsecrets.domains.config_loader import _get_config_path

    config_path = args.config or _get_config_path()
    config = _load_config(args)
    print(f"Config path: {config_path or '(none, using defaults)'}")
    print(yaml.safe_dump(config, sort_keys=False), end="")


def cmd_config_set_path(args):
    """Set config file path preference."""
    from registry_creds.pullsecrets.domains.preferences import set_preference

    config_path = Path(args.path).resolve()
    if not config_path.is_file():
        print(f"Error: Config file does not exist: {config_path}", file=sys.stderr)
        sys.exit(1)

    set_preference("config_path", str(config_path))
    print(f"Config path set to: {config_path}")


def cmd_config_clear(args):
    """Clear config path preference."""
    from registry_creds.pullsecrets.domains.preferences import clear_preference

    clear_preference("config_path")
    print("Config path preference cleared.")


def build_parser():
    parser = argparse.ArgumentParser(
        prog="registry-creds",
        description="Propagate ClusterPullSecret registry credentials to every namespace and service account",
        epilog="""
Exit codes:
  0 - Success
  1 - Runtime error (cluster unreachable, objects failed to sync, etc.)
  2 - Usage error (invalid arguments, invalid resource name, etc.)

Environment variables:
  REGISTRY_CREDS_CONFIG - Path to the config file
  GCP_PROJECT           - GCP project for passwordSecret lookups
        """
    )
    parser.add_argument("--config", help="Path to config file (skips the usual lookup)")
    parser.add_argument("-v", "--verbose", action="store_true", help="Enable debug logging")

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    subparsers.add_parser("version", help="Show version information")

    run_parser = subparsers.add_parser(
        "run",
        help="Run the operator",
        description="Watch ClusterPullSecrets cluster-wide and keep credentials in sync"
    )
    run_parser.add_argument(
        "--standalone",
        action="store_true",
        help="Do not coordinate with other operator replicas (no peering)"
    )
    run_parser.add_argument(
        "--liveness",
        help="Liveness endpoint, e.g. http://0.0.0.0:8080/healthz"
    )

    reconcile_parser = subparsers.add_parser(
        "reconcile",
        help="Run one convergence pass",
        description="""
Run a single convergence pass for one ClusterPullSecret and print the outcome.

If the ClusterPullSecret exists, its credential is written to every namespace and
referenced from every service account. If it doesn't, the reference is removed
from every service account.

Exit codes:
  0 - All objects converged
  1 - Some objects failed to sync, or the declaration was skipped
  2 - Invalid name
        """
    )
    reconcile_parser.add_argument("name", help="ClusterPullSecret name")

    name_parser = subparsers.add_parser(
        "credential-name",
        help="Show the Secret name derived from a ClusterPullSecret"
    )
    name_parser.add_argument("name", help="ClusterPullSecret name")

    config_parser = subparsers.add_parser(
        "config",
        help="Configuration management",
        description="Manage registry-creds configuration"
    )
    config_subparsers = config_parser.add_subparsers(dest="config_command")
    config_subparsers.add_parser("show", help="Show config path and effective values")
    set_path_parser = config_subparsers.add_parser("set-path", help="Set config file path")
    set_path_parser.add_argument("path", help="Path to config file")
    config_subparsers.add_parser("clear", help="Clear config path preference")

    return parser, config_parser


def main(argv=None):
    """Main CLI entrypoint.

    Exit codes:
        0 - Success
        1 - Runtime errors
        2 - Usage errors
    """
    parser, config_parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        sys.exit(2)

    config_commands = {
        "show": cmd_config_show,
        "set-path": cmd_config_set_path,
        "clear": cmd_config_clear,
    }
    commands = {
        "version": cmd_version,
        "run": cmd_run,
        "reconcile": cmd_reconcile,
        "credential-name": cmd_credential_name,
    }

    try:
        if args.command == "config":
            handler = config_commands.get(args.config_command)
            if handler is None:
                config_parser.print_help()
                sys.exit(2)
            handler(args)
        else:
            commands[args.command](args)
    except KeyboardInterrupt:
        print("\nInterrupted", file=sys.stderr)
        sys.exit(1)
    except Exception as e:
        print(f"Error: {e}", file=sys.stderr)
        sys.exit(1)


if __name__ == "__main__":
    main()
