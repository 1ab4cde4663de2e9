"""Errors raised by buildfix."""


class BuildFixError(Exception):
    """Base class for every error buildfix raises on purpose."""


class MissingDependency(BuildFixError):
    """The gcloud CLI is not installed or not on PATH."""


class NoProjectConfigured(BuildFixError):
    """No project was given and gcloud config has none set."""


class MalformedAuditRecord(BuildFixError):
    """An audit record is missing or holds no service account identity."""


class NoGrantsFound(BuildFixError):
    """An audit record holds no roles/... identifiers."""


class ExternalCallFailure(BuildFixError):
    """
    A gcloud command exited non-zero.
    Keeps the command and its stderr so reports can show what failed.
    """

    def __init__(self, command, stderr=""):
        self.command = list(command)
        self.stderr = (stderr or "").strip()
        message = f"command failed: {' '.join(self.command)}"
        if self.stderr:
            message += f" ({self.stderr})"
        super().__init__(message)
