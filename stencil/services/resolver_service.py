"""Resolve template references into a commit and archive URL via GitHub GraphQL."""

from __future__ import annotations

import logging
from dataclasses import dataclass
from typing import Any, Mapping

import httpx

from ..config import Context
from ..errors import AuthError, NotFoundError, TransportError
from ..reference import RefKind, SourceReference
from ..text import Messages

logger = logging.getLogger(__name__)

_COMMIT_FIELDS = """
        ... on Commit {
          oid
          zipballUrl
        }
        ... on Tag {
          target {
            ... on Commit {
              oid
              zipballUrl
            }
          }
        }"""

DEFAULT_BRANCH_QUERY = """query ($owner: String!, $name: String!) {
  repository(owner: $owner, name: $name, followRenames: false) {
    url
    defaultBranchRef {
      target {
        ... on Commit {
          oid
          zipballUrl
        }
      }
    }
  }
}"""

REF_QUERY = (
    """query ($owner: String!, $name: String!, $expression: String!) {
  repository(owner: $owner, name: $name, followRenames: false) {
    url
    object(expression: $expression) {"""
    + _COMMIT_FIELDS
    + """
    }
  }
}"""
)

COMMIT_QUERY = """query ($owner: String!, $name: String!, $oid: GitObjectID!) {
  repository(owner: $owner, name: $name, followRenames: false) {
    url
    object(oid: $oid) {
      ... on Commit {
        oid
        zipballUrl
      }
    }
  }
}"""

_REF_PREFIXES = {
    RefKind.branch: "refs/heads",
    RefKind.tag: "refs/tags",
}


@dataclass(frozen=True, slots=True)
class ResolvedRepo:
    canonical_url: str
    commit: str
    archive_url: str


def build_request(ref: SourceReference) -> tuple[str, dict[str, str]]:
    """Return the GraphQL document and variables for *ref*'s lookup strategy."""

    variables = {"owner": ref.owner, "name": ref.name}
    if ref.query is None:
        return DEFAULT_BRANCH_QUERY, variables
    if ref.query.kind is RefKind.commit:
        variables["oid"] = ref.query.value
        return COMMIT_QUERY, variables
    prefix = _REF_PREFIXES[ref.query.kind]
    variables["expression"] = f"{prefix}/{ref.query.value}"
    return REF_QUERY, variables


class GitHubResolver:
    def __init__(self, context: Context, client: httpx.AsyncClient) -> None:
        self.context = context
        self.client = client

    async def resolve(self, ref: SourceReference) -> ResolvedRepo:
        token = self.context.token()
        if not token:
            raise AuthError(Messages.ERROR_TOKEN_MISSING)
        query, variables = build_request(ref)
        strategy = ref.query.kind.value if ref.query else "default"
        logger.debug("Resolving %s using %s lookup", ref, strategy)
        data = await self._request(query, variables, token)
        return _extract_result(ref, data)

    async def _request(
        self,
        query: str,
        variables: Mapping[str, str],
        token: str,
    ) -> Mapping[str, Any]:
        endpoint = self.context.endpoint
        try:
            response = await self.client.post(
                endpoint,
                json={"query": query, "variables": dict(variables)},
                headers={"Authorization": f"bearer {token}"},
            )
        except httpx.HTTPError as exc:
            raise TransportError(
                Messages.ERROR_REQUEST_FAILED.format(url=endpoint, reason=exc)
            ) from exc

        if response.status_code in (401, 403):
            raise AuthError(
                Messages.ERROR_TOKEN_REJECTED.format(reason=f"HTTP {response.status_code}")
            )
        try:
            payload = response.json()
        except ValueError:
            payload = None
        if response.status_code != 200:
            reason = f"HTTP {response.status_code}"
            if isinstance(payload, dict) and payload.get("message"):
                reason = f"{reason}: {payload['message']}"
            raise TransportError(Messages.ERROR_REQUEST_FAILED.format(url=endpoint, reason=reason))
        if not isinstance(payload, dict):
            raise TransportError(
                Messages.ERROR_REQUEST_FAILED.format(url=endpoint, reason="invalid JSON response")
            )

        errors = payload.get("errors")
        if errors:
            _raise_graphql_error(errors, variables)
        data = payload.get("data")
        return data if isinstance(data, dict) else {}


def _raise_graphql_error(errors: Any, variables: Mapping[str, str]) -> None:
    first = errors[0] if isinstance(errors, list) and errors else {}
    if not isinstance(first, dict):
        first = {}
    error_type = str(first.get("type") or "").upper()
    message = str(first.get("message") or "unknown error")
    if error_type == "NOT_FOUND":
        raise NotFoundError(
            Messages.ERROR_REPO_NOT_FOUND.format(owner=variables["owner"], name=variables["name"])
        )
    if error_type in {"FORBIDDEN", "UNAUTHORIZED"}:
        raise AuthError(Messages.ERROR_TOKEN_REJECTED.format(reason=message))
    raise TransportError(Messages.ERROR_GRAPHQL.format(reason=message))


def _peel(target: Any) -> Mapping[str, Any] | None:
    # Annotated tags point at a Tag object whose own target is the commit.
    if not isinstance(target, dict):
        return None
    if "oid" not in target and isinstance(target.get("target"), dict):
        return target["target"]
    return target


def _extract_result(ref: SourceReference, data: Mapping[str, Any]) -> ResolvedRepo:
    repository = data.get("repository")
    if not isinstance(repository, dict):
        raise NotFoundError(Messages.ERROR_REPO_NOT_FOUND.format(owner=ref.owner, name=ref.name))

    if ref.query is None:
        branch = repository.get("defaultBranchRef")
        if not isinstance(branch, dict):
            raise NotFoundError(
                Messages.ERROR_DEFAULT_BRANCH_MISSING.format(owner=ref.owner, name=ref.name)
            )
        target = _peel(branch.get("target"))
        missing_message = Messages.ERROR_DEFAULT_BRANCH_MISSING.format(
            owner=ref.owner, name=ref.name
        )
    else:
        target = _peel(repository.get("object"))
        missing_message = Messages.ERROR_REF_NOT_FOUND.format(
            kind=ref.query.kind.value,
            value=ref.query.value,
            owner=ref.owner,
            name=ref.name,
        )

    if not target or not target.get("oid") or not target.get("zipballUrl"):
        raise NotFoundError(missing_message)
    canonical_url = str(repository.get("url") or f"https://github.com/{ref.slug}")
    return ResolvedRepo(
        canonical_url=canonical_url,
        commit=str(target["oid"]),
        archive_url=str(target["zipballUrl"]),
    )
