import logging
import shutil
import subprocess

from buildfix.errors import ExternalCallFailure, MissingDependency

logger = logging.getLogger(__name__)


def require_gcloud(which=shutil.which):
    """Fail fast when the gcloud CLI is not available."""
    if not which("gcloud"):
        raise MissingDependency(
            "gcloud CLI not found. Run in Cloud Shell or install the Google Cloud SDK."
        )


def run_gcloud(cmd):
    """
    Run a gcloud command and return the completed process.
    Raises ExternalCallFailure on a non-zero exit.
    """
    logger.debug("running %s", " ".join(cmd))
    result = subprocess.run(
        cmd,
        capture_output=True,
        text=True
    )
    if result.returncode != 0:
        logger.warning("gcloud failed (%s): %s", result.returncode, result.stderr.strip())
        raise ExternalCallFailure(cmd, result.stderr)
    return result
