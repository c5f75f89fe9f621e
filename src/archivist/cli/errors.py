"""Rich-markup messages for CLI failures.

Each message names the problem and the command or setting that fixes it.
Commands print one and raise ``typer.Exit(1)``:

    console.print(err_no_db(str(db)))
    raise typer.Exit(1)
"""

from __future__ import annotations

from archivist.rag.llm_client import key_env_for


def err_no_api_key(provider: str) -> str:
    """No API key for *provider*.

    Example:
        No API key for 'openai'. Set:  export OPENAI_API_KEY=sk-...
    """
    env_var = key_env_for(provider) or f"{provider.upper()}_API_KEY"
    return (
        f"[red]Error:[/] No API key for '{provider}'.\n"
        f"  Set:  export {env_var}=sk-..."
    )


def err_no_db(db_path: str = ".archivist.db") -> str:
    """No .archivist.db found."""
    return (
        f"[red]Error:[/] No database found at '{db_path}'.\n"
        "  Run:  archivist init"
    )


def err_object_not_found(object_id: str) -> str:
    """Object id not in the knowledge base."""
    return (
        f"[red]Error:[/] Object '{object_id}' is not in the knowledge base.\n"
        "  Run:  archivist status --list  to see all objects."
    )


def err_invalid_type(value: str, valid: list[str]) -> str:
    return (
        f"[red]Error:[/] Unknown object type '{value}'.\n"
        f"  Use one of: {', '.join(valid)}"
    )


def err_no_content() -> str:
    """add called without --content or --file."""
    return (
        "[red]Error:[/] No content given.\n"
        "  Use --content TEXT or --file PATH (txt, md, html, pdf)."
    )


def err_unsupported_file(path: str, supported: list[str]) -> str:
    return (
        f"[red]Error:[/] Unsupported file type: '{path}'\n"
        f"  Supported extensions: {' '.join(supported)}"
    )


def err_config(message: str, config_path: str) -> str:
    """Config file is invalid or contains a forbidden key."""
    return (
        f"[red]Error:[/] Invalid configuration: {message}\n"
        f"  Fix {config_path} or remove the offending key.\n"
        "  API keys must be set via environment variables, not config files."
    )


def err_provider_failed(exc: Exception) -> str:
    """Embedding / completion provider call failed."""
    return (
        f"[red]Error:[/] Provider call failed: {exc}\n"
        "  Check your API key, model name and network connection, then retry."
    )


def warn_not_indexed(pending: int) -> str:
    """Shown by context/ask when objects are still waiting for embedding."""
    return (
        f"[yellow]⚠[/] {pending} object(s) are not embedded yet and cannot be retrieved.\n"
        "  Run:  archivist index"
    )
