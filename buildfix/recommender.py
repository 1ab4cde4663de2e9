"""
Decision table from matched signature labels to IAM roles for the
Cloud Build service account.
"""

# Trigger for rules that fire whatever the log says.
ALWAYS = "*"

LOG_WRITER = "roles/logging.logWriter"

RULES = (
    (ALWAYS, (LOG_WRITER,)),
    ("artifact-registry", ("roles/artifactregistry.writer",)),
    ("container-registry", ("roles/storage.admin",)),
    ("cloud-run", ("roles/run.admin", "roles/iam.serviceAccountUser")),
    ("service-account-token", ("roles/iam.serviceAccountUser",)),
)


def recommend(matched, rules=RULES):
    """
    Walk the rules in order and collect the roles of every rule that fires.
    A role triggered by more than one rule keeps its first position.
    """
    matched = set(matched or ())
    roles = []
    seen = set()

    for trigger, grants in rules:
        if trigger != ALWAYS and trigger not in matched:
            continue
        for role in grants:
            if role not in seen:
                seen.add(role)
                roles.append(role)

    return roles


def needs_remediation(roles, rules=RULES):
    """True when the roles go beyond the ones every build gets anyway."""
    base = {role for trigger, grants in rules if trigger == ALWAYS for role in grants}
    return any(role not in base for role in roles)
