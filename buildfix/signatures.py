"""
Known failure signatures for Cloud Build logs.

Each entry is a (label, pattern) pair. Several patterns can share a label;
a label counts as matched as soon as any one of its patterns is present.
"""

SIGNATURES = (
    ("permission-denied", "PERMISSION_DENIED"),
    ("permission-denied", "PermissionDenied"),
    ("permission-denied", "permission denied"),
    ("permission-denied", "403"),
    ("permission-denied", "Forbidden"),
    ("permission-denied", "AccessDenied"),
    ("permission-denied", "not authorized"),
    ("service-account-token", "iam.serviceAccounts.getAccessToken"),
    ("service-account-token", "does not have"),
    ("artifact-registry", "artifactregistry"),
    ("artifact-registry", "artifact registry"),
    ("image-push", "Failed to push"),
    ("image-push", "error building image"),
    ("image-push", "docker build"),
    ("container-registry", "gcr.io"),
    ("container-registry", "storage"),
    ("cloud-run", "cloud run"),
)


def _normalize(log):
    if not log:
        return ""
    if isinstance(log, bytes):
        log = log.decode("utf-8", errors="replace")
    return log.lower()


def matched_patterns(log, signatures=SIGNATURES):
    """
    Return the (label, pattern) pairs present in the log, in table order.
    Matching is a case-insensitive substring test, first hit is enough.
    """
    text = _normalize(log)
    if not text:
        return []

    hits = []
    for label, pattern in signatures:
        if pattern.lower() in text:
            hits.append((label, pattern))
    return hits


def match_signatures(log, signatures=SIGNATURES):
    """Return the set of labels whose signatures appear in the log."""
    return {label for label, _ in matched_patterns(log, signatures)}
