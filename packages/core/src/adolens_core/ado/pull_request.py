from __future__ import annotations

import logging

from adolens_core.ado.client import AdoApiError, AdoClient
from adolens_core.models import ChangeEntry, ChangeKind, PrMetadata, PullRequestRef

logger = logging.getLogger(__name__)

CHANGES_PAGE_SIZE = 100

# VersionControlChangeType flags. An entry can carry several ("edit, rename").
_CHANGE_TYPE_FLAGS = {1: ChangeKind.ADD, 2: ChangeKind.EDIT, 8: ChangeKind.RENAME, 16: ChangeKind.DELETE}
# Most significant kind first: a deleted file is never reviewable, a renamed
# one with edits is still an edit for review purposes.
_KIND_PRECEDENCE = [ChangeKind.DELETE, ChangeKind.ADD, ChangeKind.EDIT, ChangeKind.RENAME]


def decode_change_type(value) -> ChangeKind:
    """Map an ADO change type (flag int or "edit, rename" string) to a ChangeKind.

    Unknown values are treated as edits.
    """
    kinds: set[ChangeKind] = set()
    if isinstance(value, int):
        kinds = {kind for flag, kind in _CHANGE_TYPE_FLAGS.items() if value & flag}
    elif isinstance(value, str):
        for part in value.split(","):
            try:
                kinds.add(ChangeKind(part.strip().lower()))
            except ValueError:
                continue
    for kind in _KIND_PRECEDENCE:
        if kind in kinds:
            return kind
    return ChangeKind.EDIT


async def get_pr_metadata(client: AdoClient, ref: PullRequestRef) -> PrMetadata:
    data = await client.get(ref.api_url)
    return PrMetadata(
        source_revision=data["lastMergeSourceCommit"]["commitId"],
        target_revision=data["lastMergeTargetCommit"]["commitId"],
        title=data.get("title") or "",
        description=data.get("description") or "",
    )


async def get_latest_iteration_id(client: AdoClient, ref: PullRequestRef) -> int:
    """Return the highest iteration id; every push to the source branch adds one."""
    data = await client.get(f"{ref.api_url}/iterations")
    iterations = data.get("value") or []
    if not iterations:
        raise ValueError(f"PR {ref.pr_id} has no iterations.")
    return max(int(i["id"]) for i in iterations)


async def get_changed_files(client: AdoClient, ref: PullRequestRef, iteration_id: int) -> list[ChangeEntry]:
    """Return every file changed in the iteration, following pages until a short one."""
    entries: list[ChangeEntry] = []
    skip = 0
    while True:
        data = await client.get(
            f"{ref.api_url}/iterations/{iteration_id}/changes",
            params={"$top": CHANGES_PAGE_SIZE, "$skip": skip},
        )
        page = data.get("changeEntries") or []
        for change in page:
            item = change.get("item") or {}
            path = item.get("path")
            if not path or item.get("isFolder") or item.get("gitObjectType") == "tree":
                continue
            entries.append(ChangeEntry(path=path, kind=decode_change_type(change.get("changeType"))))
        if len(page) < CHANGES_PAGE_SIZE:
            break
        skip += CHANGES_PAGE_SIZE
    return entries


async def get_file_content(client: AdoClient, ref: PullRequestRef, path: str, revision: str) -> str:
    """Fetch a file's text at a commit. Missing content comes back as an empty string."""
    data = await client.get(
        f"{ref.base_url}/_apis/git/repositories/{ref.repo}/items",
        params={
            "path": path,
            "includeContent": "true",
            "versionDescriptor.version": revision,
            "versionDescriptor.versionType": "commit",
            "$format": "json",
        },
    )
    return data.get("content") or ""


async def get_file_text(client: AdoClient, ref: PullRequestRef, path: str, revision: str) -> str | None:
    """Like get_file_content, but None when the file does not exist at that revision."""
    try:
        return await get_file_content(client, ref, path, revision)
    except AdoApiError as e:
        if e.status == 404:
            return None
        raise
