import logging
import os
import subprocess
import tempfile

from buildfix.errors import NoProjectConfigured

logger = logging.getLogger(__name__)

AUDIT_DIR_ENV = "BUILDFIX_AUDIT_DIR"


def get_project_id():
    """Get the current GCP project ID from gcloud config."""
    cmd = ["gcloud", "config", "get-value", "project"]
    logger.debug("running %s", " ".join(cmd))
    result = subprocess.run(
        cmd,
        capture_output=True,
        text=True
    )
    project = result.stdout.strip()
    # gcloud prints "(unset)" on some versions instead of nothing
    if project == "(unset)":
        return ""
    return project


def resolve_project(explicit=None, resolver=get_project_id):
    """
    Return the project to operate on.

    An explicit --project wins; otherwise the resolver (gcloud config by
    default) is asked. Raises NoProjectConfigured when both come up empty.
    """
    project = (explicit or "").strip()
    if not project:
        project = (resolver() or "").strip()
    if not project:
        raise NoProjectConfigured(
            "No project set. Use --project or run 'gcloud config set project PROJECT_ID'"
        )
    return project


def get_output_dir(explicit=None):
    """Directory for cached build logs and audit records."""
    directory = explicit or os.environ.get(AUDIT_DIR_ENV) or tempfile.gettempdir()
    os.makedirs(directory, exist_ok=True)
    return directory
