"""
Revert roles recorded in an audit record.

The record is plain text: a "Service account: ..." line or any Cloud Build
service account, plus some roles/... identifiers, will do. That includes
a console transcript of an earlier run.
"""
import logging
import os
import re
from datetime import datetime, timezone

from buildfix import iam
from buildfix.applier import CONFIRMED, DRY_RUN, MODES, UNCONFIRMED, create_record
from buildfix.config import get_output_dir
from buildfix.errors import ExternalCallFailure, MalformedAuditRecord, NoGrantsFound
from buildfix.prompt import ask_yes_no

logger = logging.getLogger(__name__)

# records written by buildfix name the account explicitly, whatever its domain
SERVICE_ACCOUNT_LINE = re.compile(r"Service account\s*:\s*(?:serviceAccount:)?(\S+@\S+)")
IDENTITY_PATTERN = re.compile(r"[0-9]+@" + re.escape(iam.CLOUDBUILD_DOMAIN))
GRANT_PATTERN = re.compile(r"roles/[A-Za-z0-9_.-]+")


def parse_audit_text(text, identity_override=None):
    """
    Pull the service account and roles out of audit text.

    Raises MalformedAuditRecord when no identity is found (and none was
    given), NoGrantsFound when there are no roles.
    """
    identity = identity_override
    if not identity:
        match = SERVICE_ACCOUNT_LINE.search(text)
        if match:
            identity = match.group(1).rstrip(".")
        else:
            match = IDENTITY_PATTERN.search(text)
            if not match:
                raise MalformedAuditRecord(
                    f"could not find a {iam.CLOUDBUILD_DOMAIN} service account in the audit record"
                )
            identity = match.group(0)

    grants = []
    for match in GRANT_PATTERN.finditer(text):
        # a role at the end of a sentence picks up the full stop
        role = match.group(0).rstrip(".")
        if role not in grants:
            grants.append(role)

    if not grants:
        raise NoGrantsFound("no roles found in the audit record")

    return {"identity": identity, "grants": grants}


def load_audit_record(path, identity_override=None):
    if not os.path.isfile(path):
        raise MalformedAuditRecord(f"audit record {path} not found")
    try:
        with open(path, errors="replace") as f:
            text = f.read()
    except OSError as e:
        raise MalformedAuditRecord(f"could not read audit record {path}: {e}") from e
    record = parse_audit_text(text, identity_override)
    record["path"] = path
    return record


def write_revocation_log(result, directory, now=None):
    """Write the timestamped revocation log. Returns its path."""
    now = now or datetime.now(timezone.utc)
    lines = [
        f"Reverting roles for {result['identity']} on {now.isoformat()}",
        f"Service account: {result['identity']}",
        f"Project: {result['project']}",
        f"Source: {result['source']}",
        f"Mode: {result['mode']}",
    ]
    for grant in result["grants"]:
        line = f"  - {grant['role']}: {grant['status']}"
        if grant.get("error"):
            line += f" ({grant['error']})"
        lines.append(line)
    if result["aborted"]:
        lines.append("Aborted by operator.")
    lines.append("Reversion complete.")

    return create_record(
        directory,
        f"reverted-roles-{now.strftime('%Y%m%d%H%M%S%f')}",
        "\n".join(lines) + "\n",
    )


def _revoke_one(project, identity, role, mode):
    try:
        bound = iam.is_role_bound(project, identity, role)
    except ExternalCallFailure as e:
        return {"role": role, "status": "check-failed", "error": e.stderr}

    if not bound:
        return {"role": role, "status": "skipped-not-bound"}
    if mode == DRY_RUN:
        return {"role": role, "status": "would-remove"}

    try:
        iam.remove_role_binding(project, identity, role)
    except ExternalCallFailure as e:
        logger.warning("failed to remove %s: %s", role, e)
        return {"role": role, "status": "remove-failed", "error": e.stderr}
    return {"role": role, "status": "removed"}


def revoke_grants(audit_path, project, identity_override=None, mode=UNCONFIRMED,
                  confirm=ask_yes_no, log_dir=None):
    """
    Remove the roles listed in an audit record from its service account.

    Each role is checked before removal and skipped when it is not bound,
    so running this twice on the same record is safe. Per-role failures are
    recorded and the loop carries on. A revocation log is written on every
    path, dry-run and a declined prompt included.
    """
    if mode not in MODES:
        raise ValueError(f"unknown mode: {mode}")

    record = load_audit_record(audit_path, identity_override)
    identity = record["identity"]

    result = {
        "identity": identity,
        "project": project,
        "source": audit_path,
        "mode": mode,
        "grants": [],
        "aborted": False,
        "log_path": None,
    }

    if mode == UNCONFIRMED:
        question = f"Remove {', '.join(record['grants'])} from {identity} in project {project}?"
        if not confirm(question):
            result["aborted"] = True
            result["grants"] = [
                {"role": role, "status": "skipped-declined"} for role in record["grants"]
            ]

    if not result["aborted"]:
        effective = DRY_RUN if mode == DRY_RUN else CONFIRMED
        for role in record["grants"]:
            print(f"Processing {role}...")
            result["grants"].append(_revoke_one(project, identity, role, effective))

    result["log_path"] = write_revocation_log(result, log_dir or get_output_dir())
    return result


def failed_grants(result):
    return [g for g in result["grants"] if g["status"] in ("remove-failed", "check-failed")]


def print_revoke_report(result):
    print("══════════════════════════════════════")
    print("Cloud Build IAM Revert Report")
    print(f"Project         : {result['project']}")
    print(f"Service account : {result['identity']}")
    print(f"Mode            : {result['mode']}")
    print("══════════════════════════════════════\n")

    if result["aborted"]:
        print("Aborted by operator. No roles were removed.")

    for grant in result["grants"]:
        line = f"[{grant['status']}] {grant['role']}"
        if grant.get("error"):
            line += f" ({grant['error']})"
        print(line)
    print("──────────────────────────────────────")

    removed = sum(1 for g in result["grants"] if g["status"] == "removed")
    skipped = sum(1 for g in result["grants"] if g["status"] == "skipped-not-bound")
    failed = len(failed_grants(result))
    print(f"\nRemoved: {removed}, Not bound: {skipped}, Failed: {failed}")
    if failed:
        print("WARNING: some roles could not be checked or removed; re-run to retry them.")
    if result["mode"] == DRY_RUN:
        print("Dry run: IAM was not modified.")
    print(f"Revocation log: {result['log_path']}")
