"""
Revert IAM roles that buildfix-auto-fix granted, using its audit record.
"""
import argparse
import logging
import sys

from buildfix.applier import CONFIRMED, DRY_RUN, UNCONFIRMED
from buildfix.config import get_output_dir, get_project_id, resolve_project
from buildfix.errors import MalformedAuditRecord, MissingDependency, NoGrantsFound, NoProjectConfigured
from buildfix.gcloud import require_gcloud
from buildfix.prompt import ask_yes_no
from buildfix.revoker import print_revoke_report, revoke_grants


def build_parser():
    parser = argparse.ArgumentParser(
        prog="buildfix-revert",
        description="Remove roles listed in an applied-roles audit record from the Cloud Build service account.",
    )
    parser.add_argument("-f", "--file", dest="audit_file", required=True,
                        help="The applied-roles audit record")
    parser.add_argument("-p", "--project", help="GCP project (default: gcloud config project)")
    parser.add_argument("--service-account", help="Override the identity found in the record")
    parser.add_argument("--dry-run", action="store_true",
                        help="Show the removals that would happen without applying them")
    parser.add_argument("--yes", action="store_true",
                        help="Non-interactive: assume yes for confirmations")
    parser.add_argument("--log-dir", help="Where to write the revocation log")
    parser.add_argument("-v", "--verbose", action="store_true", help="Log every gcloud call")
    return parser


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
        print(f"Error: {e}", file=sys.stderr)
        return 1

    if args.dry_run:
        mode = DRY_RUN
    elif args.yes:
        mode = CONFIRMED
    else:
        mode = UNCONFIRMED

    try:
        result = revoke_grants(
            args.audit_file,
            project,
            identity_override=args.service_account,
            mode=mode,
            confirm=confirm,
            log_dir=get_output_dir(args.log_dir),
        )
    except (MalformedAuditRecord, NoGrantsFound) as e:
        print(f"Error: {e}", file=sys.stderr)
        return 1

    print_revoke_report(result)
    return 0


if __name__ == "__main__":
    sys.exit(main())
