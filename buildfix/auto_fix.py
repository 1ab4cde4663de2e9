"""
Cloud Build auto-fix: list recent builds, pull a build log, look for known
permission failures and recommend (optionally apply) IAM roles for the
Cloud Build service account.
"""
import argparse
import logging
import sys

from buildfix import builds, iam
from buildfix.applier import (
    CONFIRMED,
    DRY_RUN,
    UNCONFIRMED,
    apply_grants,
    failed_grants,
    print_apply_report,
)
from buildfix.config import get_output_dir, get_project_id, resolve_project
from buildfix.errors import ExternalCallFailure, MissingDependency, NoProjectConfigured
from buildfix.gcloud import require_gcloud
from buildfix.prompt import ask_yes_no
from buildfix.recommender import needs_remediation, recommend
from buildfix.signatures import matched_patterns


def build_parser():
    parser = argparse.ArgumentParser(
        prog="buildfix-auto-fix",
        description="Diagnose Cloud Build permission failures and fix the service account's IAM roles.",
    )
    parser.add_argument("--project", help="GCP project (defaults to gcloud config)")
    parser.add_argument("--build", dest="build_id", help="Cloud Build ID to fetch logs for")
    parser.add_argument("--enable-apis", action="store_true",
                        help="Enable Security Command Center and Cloud Resource Manager APIs")
    parser.add_argument("--apply", action="store_true",
                        help="Apply recommended IAM bindings (asks first unless --yes)")
    parser.add_argument("--yes", action="store_true", help="Non-interactive: accept prompts")
    parser.add_argument("--dry-run", action="store_true",
                        help="Show recommendations but don't apply changes")
    parser.add_argument("--retry", action="store_true",
                        help="Retry the build afterwards and stream its logs")
    parser.add_argument("--service-account",
                        help="Identity to grant roles to (defaults to the Cloud Build service account)")
    parser.add_argument("--audit-dir", help="Where to write logs and audit records")
    parser.add_argument("--limit", type=int, default=5, help="How many recent builds to list")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every gcloud call")
    return parser


def choose_mode(args):
    if args.dry_run:
        return DRY_RUN
    if args.apply:
        return CONFIRMED if args.yes else UNCONFIRMED
    return None


def print_builds(build_list):
    print("Recent builds:")
    if not build_list:
        print("  (none)")
        return
    print(f"  {'ID':<38} {'STATUS':<16} {'CREATED':<28} IMAGES")
    for build in build_list:
        images = ", ".join(build.get("images", []) or [])
        print(f"  {build.get('id', ''):<38} {build.get('status', ''):<16} "
              f"{build.get('createTime', ''):<28} {images}")


def print_summary(failures):
    print("\n══════════════════════════════════════")
    if failures:
        print(f"Completed with {len(failures)} failure(s):")
        for step, error in failures:
            print(f"  ✗ {step}: {error}")
    else:
        print("Completed without errors.")
    print("══════════════════════════════════════")


def diagnose_build(args, project, output_dir, failures, confirm):
    """Fetch, analyze and remediate a single build."""
    print(f"Fetching build logs for {args.build_id}...")
    try:
        log_text = builds.fetch_build_log(project, args.build_id)
    except ExternalCallFailure as e:
        failures.append(("fetch log", e))
        return
    log_path = builds.save_build_log(args.build_id, log_text, output_dir)
    print(f"Saved logs to: {log_path}")

    try:
        described = builds.describe_build(project, args.build_id)
        print(f"Build status: {described.get('status', 'UNKNOWN')}")
        failure_info = described.get("failureInfo") or {}
        if failure_info.get("detail"):
            print(f"Failure detail: {failure_info['detail']}")
    except ExternalCallFailure as e:
        failures.append(("describe build", e))

    print("Analyzing logs for common errors...")
    hits = matched_patterns(log_text)
    for label, pattern in hits:
        print(f"  - Detected: {pattern} ({label})")
    matched = {label for label, _ in hits}

    if not matched:
        print("No obvious permission-related errors detected in the logs.")
        return

    roles = recommend(matched)
    if not needs_remediation(roles):
        print("No IAM recommendations generated from heuristics.")
        return

    print("Potential permission/artifact issues found. Recommended roles:")
    for role in roles:
        print(f"  - {role}")

    mode = choose_mode(args)
    if mode is None:
        print("To apply these roles, re-run with --apply (and --yes for non-interactive).")
        return

    identity = args.service_account
    if not identity and mode == DRY_RUN:
        # the project number lookup is a gcloud call; dry-run makes none
        identity = iam.build_service_account("PROJECT_NUMBER")
    elif not identity:
        try:
            identity = iam.build_service_account(iam.get_project_number(project))
        except ExternalCallFailure as e:
            failures.append(("resolve project number", e))
            return
    print(f"Cloud Build service account: {identity}")

    result = apply_grants(identity, roles, mode, project, confirm=confirm,
                          audit_dir=output_dir, build_id=args.build_id)
    print_apply_report(result)
    for grant in failed_grants(result):
        failures.append((f"apply {grant['role']}", grant.get("error") or "failed"))


def retry_and_stream(project, build_id, failures):
    print(f"Retrying build {build_id}...")
    try:
        print(builds.retry_build(project, build_id))
    except ExternalCallFailure as e:
        failures.append(("retry build", e))
        return
    print("Streaming logs (press Ctrl+C to stop)...")
    try:
        if builds.stream_build_log(project, build_id) != 0:
            failures.append(("stream logs", "gcloud exited non-zero"))
    except KeyboardInterrupt:
        print("\nStopped streaming.")
    print("Check Cloud Console for full logs and status.")


def main(argv=None, resolver=get_project_id, confirm=ask_yes_no):
    args = build_parser().parse_args(argv)
    logging.basicConfig(
        level=logging.DEBUG if args.verbose else logging.WARNING,
        format="%(levelname)s %(name)s: %(message)s",
    )

    try:
        require_gcloud()
    except MissingDependency as e:
        print(f"Error: {e}", file=sys.stderr)
        return 2

    try:
        project = resolve_project(args.project, resolver)
    except NoProjectConfigured as e:
        print(str(e), file=sys.stderr)
        return 1

    print(f"Project: {project}")
    output_dir = get_output_dir(args.audit_dir)
    failures = []

    print("Checking for Dockerfile in current directory...")
    if builds.check_dockerfile():
        print("OK: Dockerfile found.")
    else:
        print("WARNING: No Dockerfile found in current directory.")

    if args.enable_apis or args.yes:
        print(f"Enabling APIs for project {project}...")
        try:
            builds.enable_apis(project)
        except ExternalCallFailure as e:
            failures.append(("enable APIs", e))
    else:
        print("APIs not enabled (use --enable-apis or --yes to enable).")

    try:
        print_builds(builds.list_builds(project, limit=args.limit))
    except ExternalCallFailure as e:
        failures.append(("list builds", e))

    if args.build_id:
        diagnose_build(args, project, output_dir, failures, confirm)
        if args.retry:
            retry_and_stream(project, args.build_id, failures)
    elif args.retry:
        print("--retry needs --build.")

    print_summary(failures)
    return 0


if __name__ == "__main__":
    sys.exit(main())
