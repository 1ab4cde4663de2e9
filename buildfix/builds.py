import json
import logging
import os
import subprocess

import yaml

from buildfix.gcloud import run_gcloud

logger = logging.getLogger(__name__)

REQUIRED_APIS = ["securitycenter.googleapis.com", "cloudresourcemanager.googleapis.com"]


def list_builds(project, limit=5):
    """
    List the most recent builds in the project.
    Returns a list of build dicts (id, status, createTime, images, ...).
    """
    result = run_gcloud([
        "gcloud", "builds", "list",
        f"--project={project}",
        f"--limit={limit}",
        "--format=json",
    ])
    if not result.stdout.strip():
        return []
    return json.loads(result.stdout)


def fetch_build_log(project, build_id):
    """Fetch the full log text of a build."""
    result = run_gcloud(["gcloud", "builds", "log", build_id, f"--project={project}"])
    return result.stdout


def save_build_log(build_id, text, directory):
    """Cache a build log next to the audit records. Returns the file path."""
    path = os.path.join(directory, f"cloudbuild-{build_id}.log")
    with open(path, "w") as f:
        f.write(text)
    return path


def describe_build(project, build_id):
    """
    Describe a build.
    Returns the build resource as a dict (status, failureInfo, steps, ...).
    """
    result = run_gcloud([
        "gcloud", "builds", "describe", build_id,
        f"--project={project}",
        "--format=yaml",
    ])
    return yaml.safe_load(result.stdout) or {}


def retry_build(project, build_id):
    """Start a new build from an existing one. Returns gcloud's output."""
    result = run_gcloud(["gcloud", "builds", "retry", build_id, f"--project={project}"])
    return result.stdout.strip()


def stream_build_log(project, build_id):
    """
    Stream a build log straight to the terminal until the build ends
    or the operator interrupts. Returns the gcloud exit code.
    """
    cmd = ["gcloud", "builds", "log", "--stream", build_id, f"--project={project}"]
    logger.debug("running %s", " ".join(cmd))
    result = subprocess.run(cmd)
    return result.returncode


def check_dockerfile(directory="."):
    """True when the directory has a Dockerfile for a default docker build step."""
    return os.path.isfile(os.path.join(directory, "Dockerfile"))


def enable_apis(project, apis=None):
    """Enable the APIs the remediation workflow relies on."""
    run_gcloud(["gcloud", "services", "enable", *(apis or REQUIRED_APIS), f"--project={project}"])
