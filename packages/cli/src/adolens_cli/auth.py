"""Azure DevOps credential resolution with Azure CLI fallback.

Resolution order (stops at first success):
  1. ADO_PAT / AZURE_DEVOPS_EXT_PAT environment variable (CI / explicit override)
  2. PAT saved by `adolens init` in the settings store
  3. `az account get-access-token` (Azure CLI session, works after `az login`)

The result is a ready-to-send header dict, or None when nothing is available.
"""

from __future__ import annotations

import base64
import logging
import re
import subprocess

import requests

from adolens_core.ado.client import CONNECTION_DATA_PATH

logger = logging.getLogger(__name__)

PAT_LENGTH = 84

# Application id of Azure DevOps, the resource the Azure CLI mints tokens for.
_ADO_RESOURCE_ID = "499b84ac-1321-427f-aa17-267ca6975798"


def pat_headers(pat: str) -> dict[str, str]:
    token = base64.b64encode(f":{pat}".encode()).decode()
    return {"Authorization": f"Basic {token}"}


def _azure_cli_token() -> str | None:
    try:
        result = subprocess.run(
            [
                "az",
                "account",
                "get-access-token",
                "--resource",
                _ADO_RESOURCE_ID,
                "--query",
                "accessToken",
                "-o",
                "tsv",
            ],
            capture_output=True,
            text=True,
            timeout=15,
        )
    except (FileNotFoundError, subprocess.TimeoutExpired):
        # az is not installed or timed out; fall through to "not authenticated".
        return None
    if result.returncode != 0:
        logger.debug("az account get-access-token failed: %s", result.stderr.strip())
        return None
    return result.stdout.strip() or None


def resolve_auth_headers(config: dict, store=None) -> dict[str, str] | None:
    """Return Azure DevOps auth headers or None if no valid source is available.

    Never raises; callers should check for None and emit a UsageError.
    """
    pat = config.get("ado_pat")
    if pat:
        logger.debug("Using PAT from the environment.")
        return pat_headers(pat)

    if store is not None:
        stored = store.get_pat()
        if stored:
            logger.debug("Using PAT from the settings store.")
            return pat_headers(stored)

    token = _azure_cli_token()
    if token:
        logger.debug("Resolved Azure DevOps token via az CLI session.")
        return {"Authorization": f"Bearer {token}"}

    return None


def validate_pat_format(pat: str) -> str | None:
    """Return an error message, or None if the PAT looks well-formed."""
    if len(pat) != PAT_LENGTH:
        return f"PAT must be exactly {PAT_LENGTH} characters (got {len(pat)})"
    if re.search(r"\s", pat):
        return "PAT must not contain whitespace"
    return None


def check_pat(pat: str, org_url: str | None = None) -> str | None:
    """Check the PAT against Azure DevOps. Returns an error message or None."""
    base = (org_url or "https://dev.azure.com").rstrip("/")
    try:
        resp = requests.get(
            f"{base}{CONNECTION_DATA_PATH}",
            headers={"Accept": "application/json", **pat_headers(pat)},
            timeout=15,
        )
    except requests.RequestException as e:
        return f"Network error testing PAT: {e}"
    if resp.ok:
        return None
    return f"PAT rejected by Azure DevOps (HTTP {resp.status_code})"
