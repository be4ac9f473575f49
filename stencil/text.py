"""Centralized user-facing text for Stencil CLI."""

from __future__ import annotations


class Styles:
    ERROR = "red"
    WARNING = "yellow"
    SUCCESS = "green"
    INFO = "dim"
    ADDED = "green"
    REMOVED = "red"
    UPDATED = "cyan"


class Messages:
    APP_HELP = "Stencil – reuse GitHub repositories and local folders as project templates."
    HELP_ADD_SOURCES = "GitHub references (owner/name[/subdir][?branch|tag|commit=value]), URLs or local directories."
    HELP_ADD_DEPTH = "0 stores each source as one template; 1 stores every child directory of it."
    HELP_ADD_NAME = "Store a single depth-0 source under this name."
    HELP_ADD_REPLACE = "Overwrite an existing template with the same name instead of renaming."
    HELP_REMOVE_NAMES = "Names of stored templates to remove."
    HELP_CREATE_SOURCE = "Stored template name, GitHub reference or local directory."
    HELP_CREATE_DESTINATION = "Directory to create (defaults to ./<name>)."
    HELP_CREATE_OVERWRITE = "Replace the destination directory if it already exists."
    HELP_RENAME_OLD = "Current template name."
    HELP_RENAME_NEW = "New template name."
    HELP_LIST_PRUNE = "Drop templates whose directory no longer exists."
    HELP_LIST_SHOW_MORE = "Show source, URL, commit and path for each template."
    HELP_TOKEN_VALUE = "GitHub personal access token to store."
    HELP_TOKEN_CLEAR = "Remove the stored token."
    HELP_VERBOSE = "Print debug logs."

    ERROR_PARSE = "Could not parse the input: '{value}'."
    ERROR_PARSE_DETAIL = "Could not parse the input: '{value}' ({reason})."
    ERROR_TOKEN_MISSING = (
        "GitHub personal access token is not configured. "
        "Run `stencil token <value>` or set GITHUB_TOKEN."
    )
    ERROR_TOKEN_REJECTED = "GitHub rejected the configured token ({reason})."
    ERROR_REPO_NOT_FOUND = "Repository '{owner}/{name}' does not exist or is not accessible."
    ERROR_REF_NOT_FOUND = "No {kind} '{value}' in '{owner}/{name}'."
    ERROR_DEFAULT_BRANCH_MISSING = "Repository '{owner}/{name}' has no default branch."
    ERROR_REQUEST_FAILED = "Request to {url} failed ({reason})."
    ERROR_GRAPHQL = "GitHub API error: {reason}."
    ERROR_DOWNLOAD_FAILED = "Download of {url} failed ({reason})."
    ERROR_ARCHIVE_INVALID = "Downloaded archive {path} is not a valid zip file."
    ERROR_ARCHIVE_EMPTY = "Downloaded archive from {url} is empty."
    ERROR_SUBDIR_MISSING = "No such directory: '{path}'."
    ERROR_NO_CHILDREN = "No template directories found in '{path}'."
    ERROR_ITEM_NOT_FOUND = "Not found: '{name}'."
    ERROR_ITEM_EXISTS = "'{name}' already exists."
    ERROR_SELF_COPY = "Source path and target paths cannot be the same."
    ERROR_DIRECTORY_EXISTS = "Directory '{path}' already exists."
    ERROR_DIRECTORY_MISSING = "Can't find directory '{path}'."
    ERROR_NOT_A_DIRECTORY = "'{path}' is not a directory."
    ERROR_FILESYSTEM = "Filesystem operation failed on '{path}' ({reason})."
    ERROR_STORE_CORRUPT = "Store file '{path}' is corrupt ({reason})."
    ERROR_CONFIG_CORRUPT = "Config file '{path}' is corrupt ({reason})."
    ERROR_DEPTH_INVALID = "Depth must be 0 or 1, got {value}."

    INFO_DOWNLOADING = "Downloading..."
    INFO_PROJECT_CREATED = "Project created in '{path}'."
    INFO_RESULT_SUMMARY = "{success} succeeded, {failed} failed."
    INFO_STORE_EMPTY = "No templates stored yet."
    INFO_RENAMED = "Renamed '{old}' to '{new}'."
    INFO_TOKEN_SAVED = "Token saved."
    INFO_TOKEN_CLEARED = "Token cleared."
    INFO_TOKEN_UNSET = "No token configured."
    INFO_PRUNED = "Pruned {count} template(s) with missing directories."
