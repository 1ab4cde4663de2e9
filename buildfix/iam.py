from buildfix.errors import ExternalCallFailure
from buildfix.gcloud import run_gcloud

CLOUDBUILD_DOMAIN = "cloudbuild.gserviceaccount.com"


def _member(identity):
    if identity.startswith("serviceAccount:"):
        return identity
    return f"serviceAccount:{identity}"


def get_project_number(project):
    """
    Resolve a project ID to its immutable project number.
    Raises ExternalCallFailure if gcloud fails or prints nothing.
    """
    cmd = ["gcloud", "projects", "describe", project, "--format=value(projectNumber)"]
    result = run_gcloud(cmd)
    number = result.stdout.strip()
    if not number:
        raise ExternalCallFailure(cmd, f"Unable to determine project number for {project}")
    return number


def build_service_account(project_number):
    """The Cloud Build service account for a project number."""
    return f"{project_number}@{CLOUDBUILD_DOMAIN}"


def add_role_binding(project, identity, role):
    """Bind a role to the identity at project scope."""
    run_gcloud([
        "gcloud", "projects", "add-iam-policy-binding", project,
        f"--member={_member(identity)}",
        f"--role={role}",
        "--condition=None",
    ])


def remove_role_binding(project, identity, role):
    """Remove a project-scope role binding from the identity."""
    run_gcloud([
        "gcloud", "projects", "remove-iam-policy-binding", project,
        f"--member={_member(identity)}",
        f"--role={role}",
        "--condition=None",
    ])


def is_role_bound(project, identity, role):
    """
    Check whether the identity currently holds the role on the project.

    The policy is flattened to one row per binding and filtered on role and
    member, so any output at all means the binding exists.
    """
    result = run_gcloud([
        "gcloud", "projects", "get-iam-policy", project,
        "--flatten=bindings[]",
        f"--filter=bindings.role={role} AND bindings.members:{_member(identity)}",
        "--format=value(bindings.role)",
    ])
    return bool(result.stdout.strip())
