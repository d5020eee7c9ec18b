"""BookOps CLI — review and resolve build clashes.

Entry point registered in pyproject.toml:
    bookops = "bookops.cli:app"

Commands:
    bookops clashes     — print the clash report for your builds
    bookops resolve     — resolve one account's clash
    bookops create-key  — issue an API key
"""

import typer

from bookops.cli.clashes import clashes, create_key, resolve

app = typer.Typer(
    name="bookops",
    help="BookOps CLI — review and resolve account ownership clashes",
    no_args_is_help=True,
)

app.command()(clashes)
app.command()(resolve)
app.command(name="create-key")(create_key)
