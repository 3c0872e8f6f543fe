"""Input validation for CLI arguments."""
import re
import sys

# DNS-1123 subdomain, the format Kubernetes requires for Secret and CRD object names
_NAME_PATTERN = re.compile(r'^[a-z0-9]([-a-z0-9]*[a-z0-9])?(\.[a-z0-9]([-a-z0-9]*[a-z0-9])?)*$')
_MAX_LENGTH = 253


def is_valid_resource_name(name: str) -> bool:
    return bool(name) and len(name) <= _MAX_LENGTH and bool(_NAME_PATTERN.match(name))


def validate_resource_name(name: str) -> None:
    """
    Validate a ClusterPullSecret name is a legal Kubernetes object name.

    Args:
        name: Object name to validate

    Raises:
        SystemExit with code 2 if validation fails
    """
    if is_valid_resource_name(name):
        return

    print(f"Error: Invalid resource name '{name}'", file=sys.stderr)
    print("\nNames must be lowercase DNS-1123 subdomains:", file=sys.stderr)
    print("  - letters a-z, digits, '-' and '.'", file=sys.stderr)
    print("  - start and end with a letter or digit", file=sys.stderr)
    print(f"  - at most {_MAX_LENGTH} characters", file=sys.stderr)
    print("\nExamples of valid names:", file=sys.stderr)
    print("  ✓ regcred", file=sys.stderr)
    print("  ✓ ghcr-pull.prod", file=sys.stderr)
    print("\nExamples of invalid names:", file=sys.stderr)
    print("  ✗ RegCred (uppercase)", file=sys.stderr)
    print("  ✗ -regcred (leading hyphen)", file=sys.stderr)
    sys.exit(2)
