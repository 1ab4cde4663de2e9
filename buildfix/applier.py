"""
Apply recommended roles to the Cloud Build service account and leave an
audit record behind so the grants can be reverted later.
"""
import logging
import os
from datetime import datetime, timezone

from buildfix import iam
from buildfix.config import get_output_dir
from buildfix.errors import ExternalCallFailure
from buildfix.prompt import ask_yes_no

logger = logging.getLogger(__name__)

DRY_RUN = "dry-run"
CONFIRMED = "confirmed"
UNCONFIRMED = "unconfirmed"

MODES = (DRY_RUN, CONFIRMED, UNCONFIRMED)


def _timestamp(now):
    return now.strftime("%Y%m%d%H%M%S%f")


def create_record(directory, stem, content):
    """
    Write a new record file and return its path.
    Existing records are never overwritten; a clashing name gets a counter.
    """
    path = os.path.join(directory, f"{stem}.txt")
    counter = 0
    while True:
        try:
            with open(path, "x") as f:
                f.write(content)
            return path
        except FileExistsError:
            counter += 1
            path = os.path.join(directory, f"{stem}-{counter}.txt")


def write_audit_record(identity, grants, project, directory, build_id=None, now=None):
    """
    Write the audit record for an apply run.

    Every attempted grant is listed with its outcome, failed ones included,
    so the revert tool can still find and check them.
    Returns the path of the record.
    """
    now = now or datetime.now(timezone.utc)
    lines = [
        f"Applied roles for {identity} on {now.isoformat()}",
        f"Service account: {identity}",
        f"Project: {project}",
    ]
    if build_id:
        lines.append(f"Build: {build_id}")
    for grant in grants:
        lines.append(f"  - {grant['role']}: {grant['status']}")

    path = create_record(
        directory,
        f"applied-roles-{build_id or project}-{_timestamp(now)}",
        "\n".join(lines) + "\n",
    )
    logger.info("wrote audit record %s", path)
    return path


def apply_grants(identity, grants, mode, project, confirm=ask_yes_no,
                 audit_dir=None, build_id=None):
    """
    Bind each role in `grants` to `identity` on `project`.

    mode:
      dry-run     - report the plan, no gcloud calls, no audit record
      unconfirmed - ask `confirm` first; a "no" aborts without changes
      confirmed   - apply straight away

    Failures are recorded per role and never stop the loop.
    Returns a result dict with the per-role statuses and the audit path.
    """
    if mode not in MODES:
        raise ValueError(f"unknown mode: {mode}")

    result = {
        "identity": identity,
        "project": project,
        "mode": mode,
        "grants": [],
        "aborted": False,
        "audit_path": None,
    }

    if mode == DRY_RUN:
        result["grants"] = [{"role": role, "status": "skipped-dry-run"} for role in grants]
        return result

    if not grants:
        return result

    if mode == UNCONFIRMED:
        if not confirm(f"Apply these roles to {identity}?"):
            result["aborted"] = True
            return result

    for role in grants:
        print(f"Applying {role} to {identity}...")
        try:
            iam.add_role_binding(project, identity, role)
        except ExternalCallFailure as e:
            logger.warning("failed to add %s: %s", role, e)
            result["grants"].append({"role": role, "status": "failed", "error": e.stderr})
            continue
        result["grants"].append({"role": role, "status": "applied"})

    result["audit_path"] = write_audit_record(
        identity, result["grants"], project, audit_dir or get_output_dir(), build_id=build_id
    )
    return result


def failed_grants(result):
    return [g for g in result["grants"] if g["status"] == "failed"]


def print_apply_report(result):
    """Print a clean report."""
    print("══════════════════════════════════════")
    print("Cloud Build IAM Remediation Report")
    print(f"Project         : {result['project']}")
    print(f"Service account : {result['identity']}")
    print(f"Mode            : {result['mode']}")
    print("══════════════════════════════════════\n")

    if result["aborted"]:
        print("Aborted by operator. No roles were changed.")
        return

    if not result["grants"]:
        print("No roles to apply.")
        return

    for grant in result["grants"]:
        line = f"[{grant['status']}] {grant['role']}"
        if grant.get("error"):
            line += f" ({grant['error']})"
        print(line)
    print("──────────────────────────────────────")

    applied = sum(1 for g in result["grants"] if g["status"] == "applied")
    failed = len(failed_grants(result))
    if result["mode"] == DRY_RUN:
        print("\nDry-run: not applying roles.")
    else:
        print(f"\nApplied: {applied}, Failed: {failed}")
        if failed:
            print("WARNING: some roles were not applied; re-run to retry them.")

    if result["audit_path"]:
        print(f"Audit record: {result['audit_path']}")
