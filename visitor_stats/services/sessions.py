import secrets

SESSION_ID_BYTES = 16


def issue_session_id() -> str:
    """
    Generate an opaque visitor session id.

    32 hex characters from the OS CSPRNG. Nothing is persisted and no
    uniqueness check is made against the store.
    """
    return secrets.token_hex(SESSION_ID_BYTES)
