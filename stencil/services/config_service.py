"""Logic helpers for the `stencil token` command."""

from __future__ import annotations

from dataclasses import dataclass

from ..config import Context, load_config, resolve_token, set_token


@dataclass(slots=True)
class TokenUpdateResult:
    token_set: bool = False
    token_cleared: bool = False

    @property
    def changed(self) -> bool:
        return self.token_set or self.token_cleared


def apply_token_update(
    context: Context,
    *,
    value: str | None = None,
    clear: bool = False,
) -> TokenUpdateResult:
    result = TokenUpdateResult()
    if clear:
        set_token(None, context.root_dir)
        result.token_cleared = True
        return result
    if value is not None and value.strip():
        set_token(value, context.root_dir)
        result.token_set = True
    return result


def get_token(context: Context) -> str:
    """Return the effective token after re-reading the config file."""
    return resolve_token(load_config(context.root_dir).token)
